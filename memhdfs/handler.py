"""
内存 WebHDFS 存储处理器。

每次请求调用一次 MemoryStorage(err, path, operation, params, payload, response, completion)：
- err 非空时原样交给 completion，不触碰存储
- create/append 从 payload（bytes 块的可迭代对象）按到达顺序写入，迭代结束后才调用 completion
- open/liststatus/getfilestatus 先通过 response 写出响应，再调用 completion
- 每次调用 completion 恰好一次：成功时不带参数，失败时带错误对象
"""

from __future__ import annotations

import json
import logging
import posixpath
import threading
from typing import Any, Callable, Iterable, Mapping, Protocol

from memhdfs.errors import AlreadyExistsError, InvalidParameterError, NotFoundError, WebHDFSError
from memhdfs.models import Entry
from memhdfs.store import PathStore, parent_path

logger = logging.getLogger(__name__)

Params = Mapping[str, Any]
Payload = Iterable[bytes | str] | None
Completion = Callable[..., None]


class ResponseSink(Protocol):
    """响应写出能力：先 write_headers，再 write_body。"""

    def write_headers(self, status: int, headers: dict[str, str]) -> None: ...

    def write_body(self, body: bytes) -> None: ...


def _flag(params: Params, key: str, default: bool) -> bool:
    """读取布尔参数，兼容 WebHDFS 的字符串 "true"/"false"。"""
    if key not in params:
        return default
    value = params[key]
    if isinstance(value, str):
        return value.strip().lower() not in ("", "false", "0", "no")
    return bool(value)


def _as_bytes(chunk: bytes | str) -> bytes:
    if isinstance(chunk, str):
        return chunk.encode("utf-8")
    if isinstance(chunk, (bytes, bytearray, memoryview)):
        return bytes(chunk)
    raise TypeError(f"payload chunk must be bytes or str, not {type(chunk).__name__}")


class MemoryStorage:
    """
    WebHDFS 操作的内存实现，持有独立的 PathStore。

    createsymlink 让两个路径引用同一个 Entry 对象：通过任一路径修改元数据，另一路径可见；
    删除其中一个路径后，另一个仍然保留该 Entry。
    """

    def __init__(self, store: PathStore | None = None) -> None:
        self.store = store if store is not None else PathStore()
        self._lock = threading.RLock()
        self._operations: dict[str, Callable[..., None]] = {
            "mkdirs": self._mkdirs,
            "create": self._create,
            "append": self._append,
            "open": self._open,
            "liststatus": self._liststatus,
            "getfilestatus": self._getfilestatus,
            "rename": self._rename,
            "setpermission": self._setpermission,
            "setowner": self._setowner,
            "createsymlink": self._createsymlink,
            "delete": self._delete,
        }

    def __call__(
        self,
        err: BaseException | None,
        path: str,
        operation: str,
        params: Params,
        payload: Payload,
        response: ResponseSink | None,
        completion: Completion,
    ) -> None:
        if err is not None:
            logger.warning("forwarding transport error for %s %s: %s", operation, path, err)
            return completion(err)

        op = (operation or "").lower()
        handler = self._operations.get(op)
        if handler is None:
            logger.debug("ignoring unsupported operation %r on %s", operation, path)
            return completion()

        logger.debug("%s %s params=%s", op, path, dict(params))
        try:
            handler(path, params, payload, response)
        except WebHDFSError as e:
            logger.warning("%s %s failed: %s", op, path, e)
            return completion(e)
        except Exception as e:
            logger.exception("%s %s failed", op, path)
            return completion(e)
        return completion()

    # ------------------------- 目录 -------------------------

    def _mkdirs(self, path: str, params: Params, payload: Payload, response: ResponseSink | None) -> None:
        with self._lock:
            if path in self.store:
                raise AlreadyExistsError("File already exists", path)
            self.store.put(path, Entry.directory(path, params.get("user.name")))
        logger.info("created directory %s", path)

    # ------------------------- 写入（create / append） -------------------------

    def _create(self, path: str, params: Params, payload: Payload, response: ResponseSink | None) -> None:
        overwrite = _flag(params, "overwrite", True)
        with self._lock:
            if not overwrite and path in self.store:
                raise AlreadyExistsError("File already exists", path)
            entry = self._ensure_file(path, params)
        self._ingest(path, entry, payload)

    def _append(self, path: str, params: Params, payload: Payload, response: ResponseSink | None) -> None:
        # append 不检查 overwrite，路径不存在时与 create 一样新建
        with self._lock:
            entry = self._ensure_file(path, params)
        self._ingest(path, entry, payload)

    def _ensure_file(self, path: str, params: Params) -> Entry:
        """返回 path 上已有的条目；不存在时新建文件条目，并在父目录缺失时补建父目录。"""
        entry = self.store.get(path)
        if entry is not None:
            return entry
        owner = params.get("user.name")
        entry = Entry.file(path, owner)
        self.store.put(path, entry)
        parent = parent_path(path)
        if parent and parent != "." and parent not in self.store:
            self.store.put(parent, Entry.directory(parent, owner))
            logger.info("materialized parent directory %s", parent)
        logger.info("created file %s", path)
        return entry

    def _ingest(self, path: str, entry: Entry, payload: Payload) -> None:
        """
        按到达顺序写入 payload：当前内容为空时替换，否则追加。
        create 与 append 在这里的行为相同，区别只在前置检查。
        """
        received = 0
        try:
            for chunk in payload or ():
                data = _as_bytes(chunk)
                received += len(data)
                with self._lock:
                    entry.content = entry.content + data if entry.content else data
        finally:
            # 流中途失败时 length 也与已写入的内容一致
            with self._lock:
                entry.path_suffix = posixpath.basename(path)
                entry.length = len(entry.content)
                entry.touch()
        logger.debug("ingested %d bytes into %s (length=%d)", received, path, entry.length)

    # ------------------------- 读取 -------------------------

    def _open(self, path: str, params: Params, payload: Payload, response: ResponseSink | None) -> None:
        with self._lock:
            entry = self._require(path)
            data = entry.content
        if response is not None:
            response.write_headers(200, {
                "content-length": str(len(data)),
                "content-type": "application/octet-stream",
            })
            response.write_body(data)

    def _liststatus(self, path: str, params: Params, payload: Payload, response: ResponseSink | None) -> None:
        with self._lock:
            statuses = [entry.to_file_status() for entry in self.store.list_children(path)]
        self._write_json(response, {"FileStatuses": {"FileStatus": statuses}})

    def _getfilestatus(self, path: str, params: Params, payload: Payload, response: ResponseSink | None) -> None:
        with self._lock:
            status = self._require(path).to_file_status()
        self._write_json(response, {"FileStatus": status})

    # ------------------------- 元数据与路径 -------------------------

    def _rename(self, path: str, params: Params, payload: Payload, response: ResponseSink | None) -> None:
        destination = self._destination(params)
        with self._lock:
            entry = self._require(path)
            if destination in self.store:
                raise AlreadyExistsError("Destination path exist", destination)
            self.store.put(destination, entry)
            self.store.remove(path)
            entry.path_suffix = posixpath.basename(destination)
        logger.info("renamed %s -> %s", path, destination)

    def _setpermission(self, path: str, params: Params, payload: Payload, response: ResponseSink | None) -> None:
        with self._lock:
            self._require(path).permission = params.get("permission")

    def _setowner(self, path: str, params: Params, payload: Payload, response: ResponseSink | None) -> None:
        with self._lock:
            entry = self._require(path)
            entry.owner = params.get("owner")
            entry.group = params.get("group")

    def _createsymlink(self, path: str, params: Params, payload: Payload, response: ResponseSink | None) -> None:
        destination = self._destination(params)
        with self._lock:
            entry = self._require(path)
            if destination in self.store:
                raise AlreadyExistsError("Destination path exist", destination)
            # 同一对象，不复制
            self.store.put(destination, entry)
        logger.info("aliased %s -> %s", destination, path)

    def _delete(self, path: str, params: Params, payload: Payload, response: ResponseSink | None) -> None:
        with self._lock:
            if _flag(params, "recursive", False):
                removed = self.store.remove_children(path)
                if not removed and path not in self.store:
                    raise NotFoundError(path)
                logger.info("deleted %d entries under %s", removed, path)
            elif self.store.remove(path):
                logger.info("deleted %s", path)

    # ------------------------- 工具 -------------------------

    @staticmethod
    def _destination(params: Params) -> str:
        destination = params.get("destination")
        if not destination:
            raise InvalidParameterError("destination parameter is required")
        return str(destination)

    def _require(self, path: str) -> Entry:
        entry = self.store.get(path)
        if entry is None:
            raise NotFoundError(path)
        return entry

    @staticmethod
    def _write_json(response: ResponseSink | None, data: dict[str, Any]) -> None:
        if response is None:
            return
        body = json.dumps(data).encode("utf-8")
        response.write_headers(200, {
            "content-length": str(len(body)),
            "content-type": "application/json",
        })
        response.write_body(body)

"""
WebHDFS Python 客户端（基于 httpx）。

可连接真实的 WebHDFS 端点，也可以注入 MemoryTransport 直接驱动内存存储：

    with WebHDFSClient("http://memhdfs", user="webuser", transport=MemoryTransport()) as client:
        client.mkdir("/files")
"""

from __future__ import annotations

from typing import Any, BinaryIO, Iterator
from urllib.parse import quote

import httpx

from memhdfs.errors import WebHDFSRemoteError
from memhdfs.models import FileStatus
from memhdfs.transport import DEFAULT_PREFIX


def _path_for_url(path: str) -> str:
    """将路径按段做 UTF-8 百分号编码，供 URL 使用（保留段间的 /）。"""
    segments = (path.strip("/").split("/") if path.strip("/") else [])
    return "/" + "/".join(quote(seg, safe="") for seg in segments) if segments else "/"


def _bool_param(value: bool) -> str:
    return "true" if value else "false"


class WebHDFSClient:
    """
    WebHDFS REST 客户端。

    认证方式：WebHDFS 伪认证，每个请求携带 user.name 参数。
    测试示例： base_url="http://127.0.0.1:50070", user="webuser"
    """

    WRITE_CHUNK_SIZE = 64 * 1024  # 流式写入块大小

    def __init__(
        self,
        base_url: str,
        user: str | None = None,
        *,
        prefix: str = DEFAULT_PREFIX,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        """
        :param base_url: 服务器根地址，如 http://127.0.0.1:50070（不要带 /webhdfs/v1）
        :param user: 作为 user.name 发送的用户名
        :param prefix: REST 路径前缀
        :param timeout: 请求超时秒数
        :param transport: 可选 httpx 传输层，如 MemoryTransport
        """
        self.base_url = base_url.rstrip("/")
        self.user = user
        self.prefix = "/" + prefix.strip("/") if prefix.strip("/") else ""
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.Client | None = None

    def _get_client(self) -> httpx.Client:
        if self._client is None or self._client.is_closed:
            self._client = httpx.Client(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
                follow_redirects=True,
            )
        return self._client

    def close(self) -> None:
        """关闭底层 HTTP 客户端。"""
        if self._client and not self._client.is_closed:
            self._client.close()
            self._client = None

    def __enter__(self) -> WebHDFSClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def _url(self, path: str) -> str:
        return f"{self.prefix}{_path_for_url(path)}"

    def _request(
        self,
        method: str,
        path: str,
        op: str,
        params: dict[str, Any] | None = None,
        content: bytes | Iterator[bytes] | None = None,
    ) -> httpx.Response:
        query: dict[str, Any] = {"op": op.upper()}
        if self.user is not None:
            query["user.name"] = self.user
        if params:
            query.update(params)
        r = self._get_client().request(method, self._url(path), params=query, content=content)
        if not r.is_success:
            raise self._remote_error(r)
        return r

    @staticmethod
    def _remote_error(r: httpx.Response) -> WebHDFSRemoteError:
        """从 RemoteException 响应体解析错误；无法解析时用响应文本。"""
        try:
            remote = r.json().get("RemoteException") or {}
        except ValueError:
            remote = {}
        return WebHDFSRemoteError(r.status_code, remote.get("exception"), remote.get("message") or r.text)

    # ------------------------- 目录 -------------------------

    def mkdir(self, path: str, *, permission: str | None = None) -> bool:
        """
        创建目录（MKDIRS）。目录已存在时抛出 WebHDFSRemoteError（FileAlreadyExistsException）。

        :param path: 绝对路径，如 "/files/data"
        :param permission: 可选八进制权限，如 "0777"
        """
        params = {"permission": permission} if permission else None
        r = self._request("PUT", path, "mkdirs", params)
        return bool(r.json().get("boolean", True)) if r.content else True

    def list_status(self, path: str = "/") -> list[FileStatus]:
        """列出目录下的直接子项（LISTSTATUS）。"""
        r = self._request("GET", path, "liststatus")
        return r.json().get("FileStatuses", {}).get("FileStatus", [])

    # ------------------------- 文件读写 -------------------------

    def _body(self, data: bytes | str | BinaryIO) -> bytes | Iterator[bytes]:
        """bytes/str 整块发送；文件对象按 WRITE_CHUNK_SIZE 流式发送。"""
        if isinstance(data, str):
            return data.encode("utf-8")
        if isinstance(data, (bytes, bytearray)):
            return bytes(data)

        def stream_chunks() -> Iterator[bytes]:
            while True:
                chunk = data.read(self.WRITE_CHUNK_SIZE)
                if not chunk:
                    break
                yield chunk

        return stream_chunks()

    def write_file(self, path: str, data: bytes | str | BinaryIO, *, overwrite: bool = True) -> None:
        """
        创建文件并写入内容（CREATE）。

        :param path: 远程文件路径；父目录不存在时由服务端创建
        :param data: bytes、str 或可读文件对象（流式上传）
        :param overwrite: False 时若文件已存在则失败
        """
        self._request("PUT", path, "create", {"overwrite": _bool_param(overwrite)}, self._body(data))

    def append_file(self, path: str, data: bytes | str | BinaryIO) -> None:
        """向文件末尾追加内容（APPEND）；文件不存在时新建。"""
        self._request("POST", path, "append", None, self._body(data))

    def read_file(self, path: str) -> bytes:
        """读取文件全部内容（OPEN）。"""
        return self._request("GET", path, "open").content

    def iter_file(self, path: str, chunk_size: int | None = None) -> Iterator[bytes]:
        """流式读取文件（OPEN），逐块返回。"""
        query: dict[str, Any] = {"op": "OPEN"}
        if self.user is not None:
            query["user.name"] = self.user
        with self._get_client().stream("GET", self._url(path), params=query) as r:
            if not r.is_success:
                r.read()
                raise self._remote_error(r)
            yield from r.iter_bytes(chunk_size)

    # ------------------------- 元数据 -------------------------

    def get_file_status(self, path: str) -> FileStatus:
        """获取单个路径的 FileStatus（GETFILESTATUS）。"""
        return self._request("GET", path, "getfilestatus").json().get("FileStatus", {})

    def exists(self, path: str) -> bool:
        """路径是否存在；仅将 404 视为不存在。"""
        try:
            self.get_file_status(path)
        except WebHDFSRemoteError as e:
            if e.status_code == 404:
                return False
            raise
        return True

    def set_permission(self, path: str, permission: str) -> None:
        """设置权限（SETPERMISSION），如 "755"。"""
        self._request("PUT", path, "setpermission", {"permission": permission})

    def set_owner(self, path: str, owner: str | None = None, group: str | None = None) -> None:
        """设置 owner/group（SETOWNER）。"""
        params = {k: v for k, v in (("owner", owner), ("group", group)) if v is not None}
        self._request("PUT", path, "setowner", params)

    # ------------------------- 路径 -------------------------

    def rename(self, path: str, destination: str) -> bool:
        """重命名/移动（RENAME）；目标已存在时失败。"""
        r = self._request("PUT", path, "rename", {"destination": destination})
        return bool(r.json().get("boolean", True)) if r.content else True

    def create_symlink(self, path: str, destination: str) -> None:
        """为 path 创建别名 destination（CREATESYMLINK），两个路径共享同一条目。"""
        self._request("PUT", path, "createsymlink", {"destination": destination})

    def delete(self, path: str, *, recursive: bool = False) -> bool:
        """
        删除路径（DELETE）。

        :param recursive: True 时删除 path 下的直接子项
        """
        r = self._request("DELETE", path, "delete", {"recursive": _bool_param(recursive)})
        return bool(r.json().get("boolean", True)) if r.content else True

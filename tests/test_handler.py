"""
MemoryStorage 处理器单元测试：按处理器调用约定直接执行操作，验证前置检查、存储变更与响应。
"""

from __future__ import annotations

import json
import threading
from typing import Iterator

import pytest

from memhdfs import AlreadyExistsError, InvalidParameterError, MemoryStorage, NotFoundError, PassthroughError
from memhdfs.models import DIRECTORY_LENGTH
from memhdfs.transport import CompletionRecorder, ResponseCollector

from tests.config import SAMPLE_DIR, SAMPLE_FILE, WEBHDFS_USER


def _read(call, path: str) -> bytes:
    res = call("open", path)
    assert res.error is None
    return res.body


def _status(call, path: str) -> dict:
    res = call("getfilestatus", path)
    assert res.error is None
    return json.loads(res.body)["FileStatus"]


# ------------------------- 错误转发与未知操作 -------------------------


def test_transport_error_forwarded_unchanged(storage: MemoryStorage) -> None:
    """err 非空时原样交给 completion，存储不变。"""
    err = PassthroughError("bad request")
    completion = CompletionRecorder()
    storage(err, "/x", "mkdirs", {"user.name": WEBHDFS_USER}, None, ResponseCollector(), completion)
    assert completion.error is err
    assert "/x" not in storage.store


def test_unknown_operation_is_noop(call, storage: MemoryStorage) -> None:
    """未知操作直接成功，不写响应。"""
    res = call("getcontentsummary", "/x")
    assert res.error is None
    assert res.status is None
    assert len(storage.store) == 0


def test_operation_name_case_insensitive(call) -> None:
    """WebHDFS 发送大写操作名。"""
    assert call("MKDIRS", "/x").error is None
    assert call("GETFILESTATUS", "/x").error is None


# ------------------------- 不存在的路径 -------------------------


@pytest.mark.parametrize("op", ["getfilestatus", "open", "setpermission", "setowner"])
def test_missing_path_not_found(call, op: str) -> None:
    """未创建的路径：getfilestatus/open 等返回 NotFound。"""
    res = call(op, "/never/created")
    assert isinstance(res.error, NotFoundError)
    assert str(res.error) == "File does not exist: /never/created"
    assert res.status is None


# ------------------------- mkdirs -------------------------


def test_mkdirs_twice_already_exists(call, storage: MemoryStorage) -> None:
    """重复 mkdirs 失败，且失败的调用不改变存储。"""
    assert call("mkdirs", SAMPLE_DIR).error is None
    before = storage.store.get(SAMPLE_DIR)
    res = call("mkdirs", SAMPLE_DIR, {"user.name": "someone-else"})
    assert isinstance(res.error, AlreadyExistsError)
    assert storage.store.get(SAMPLE_DIR) is before
    assert before.owner == WEBHDFS_USER
    assert before.length == DIRECTORY_LENGTH


# ------------------------- create / append / open -------------------------


def test_create_then_append(call) -> None:
    """create 写入 D1，append 追加 D2，open 返回 D1+D2。"""
    assert call("create", SAMPLE_FILE, payload=[b"random data"]).error is None
    assert _read(call, SAMPLE_FILE) == b"random data"
    assert call("append", SAMPLE_FILE, payload=[b"more random data"]).error is None
    assert _read(call, SAMPLE_FILE) == b"random datamore random data"
    assert _status(call, SAMPLE_FILE)["length"] == len(b"random datamore random data")


def test_chunks_applied_in_order(call) -> None:
    """多块 payload 按到达顺序拼接。"""
    assert call("create", "/f", payload=iter([b"a", b"b", "c", b"d"])).error is None
    assert _read(call, "/f") == b"abcd"


def test_completion_waits_for_end_of_stream(storage: MemoryStorage) -> None:
    """payload 迭代结束前不调用 completion。"""
    completion = CompletionRecorder()
    seen: list[bool] = []

    def chunks() -> Iterator[bytes]:
        yield b"x"
        seen.append(completion.called)
        yield b"y"
        seen.append(completion.called)

    storage(None, "/f", "create", {"user.name": WEBHDFS_USER}, chunks(), ResponseCollector(), completion)
    assert seen == [False, False]
    assert completion.called and completion.error is None
    assert storage.store.get("/f").content == b"xy"


def test_create_overwrite_false_existing_fails(call) -> None:
    """overwrite=false 且路径存在时 AlreadyExists，内容不变。"""
    call("create", SAMPLE_FILE, payload=[b"keep"])
    res = call("create", SAMPLE_FILE, {"overwrite": False}, payload=[b"lost"])
    assert isinstance(res.error, AlreadyExistsError)
    assert _read(call, SAMPLE_FILE) == b"keep"

    res = call("create", SAMPLE_FILE, {"overwrite": "false"}, payload=[b"lost"])
    assert isinstance(res.error, AlreadyExistsError)


def test_create_existing_non_empty_concatenates(call) -> None:
    """对已有非空内容的路径 create：内容为空才替换，否则追加。"""
    call("create", "/f", payload=[b"one"])
    assert call("create", "/f", payload=[b"two"]).error is None
    assert _read(call, "/f") == b"onetwo"


def test_append_ignores_overwrite(call) -> None:
    """append 不参考 overwrite。"""
    call("create", "/f", payload=[b"a"])
    assert call("append", "/f", {"overwrite": False}, payload=[b"b"]).error is None
    assert _read(call, "/f") == b"ab"


def test_append_creates_missing_file_and_parent(call, storage: MemoryStorage) -> None:
    """append 对不存在的路径新建文件，并补建父目录。"""
    assert call("append", "/new/dir/f", payload=[b"x"]).error is None
    assert _read(call, "/new/dir/f") == b"x"
    parent = _status(call, "/new/dir")
    assert parent["type"] == "DIRECTORY"
    assert parent["owner"] == WEBHDFS_USER
    # 只补建直接父目录
    assert "/new" not in storage.store


def test_create_does_not_recreate_existing_parent(call, storage: MemoryStorage) -> None:
    """父目录已存在时不重建（保留原对象）。"""
    call("mkdirs", "/x", {"user.name": "owner-x"})
    parent = storage.store.get("/x")
    call("create", "/x/f", payload=[b"hello"])
    assert storage.store.get("/x") is parent
    assert parent.owner == "owner-x"


def test_create_empty_payload(call) -> None:
    """无 payload 时创建空文件。"""
    assert call("create", "/empty").error is None
    status = _status(call, "/empty")
    assert status["type"] == "FILE"
    assert status["length"] == 0
    assert status["pathSuffix"] == "empty"


def test_open_headers(call) -> None:
    """open 返回 octet-stream 与 content-length。"""
    call("create", "/f", payload=[b"hello"])
    res = call("open", "/f")
    assert res.status == 200
    assert res.headers["content-type"] == "application/octet-stream"
    assert res.headers["content-length"] == "5"
    assert res.body == b"hello"


def test_scenario_mkdirs_create_open_append(call, storage: MemoryStorage) -> None:
    """mkdirs /x → create /x/f → open → append → open。"""
    assert call("mkdirs", "/x").error is None
    assert call("create", "/x/f", payload=[b"hello"]).error is None
    assert _read(call, "/x/f") == b"hello"
    assert call("append", "/x/f", payload=[b" world"]).error is None
    assert _read(call, "/x/f") == b"hello world"
    assert storage.store.paths() == ["/x", "/x/f"]


def test_failing_stream_completes_with_error(storage: MemoryStorage) -> None:
    """payload 中途抛错：completion 恰好调用一次并带该错误，length 与已写入内容一致。"""
    completion = CompletionRecorder()

    def chunks() -> Iterator[bytes]:
        yield b"a"
        raise OSError("client went away")

    storage(None, "/f", "create", {"user.name": WEBHDFS_USER}, chunks(), ResponseCollector(), completion)
    assert completion.called
    assert isinstance(completion.error, OSError)
    entry = storage.store.get("/f")
    assert entry.content == b"a"
    assert entry.length == 1
    assert entry.path_suffix == "f"


@pytest.mark.parametrize("chunk", [5, None, 1.5])
def test_non_bytes_chunk_rejected(call, storage: MemoryStorage, chunk) -> None:
    """非 bytes/str 的块不被静默转换：以 TypeError 结束，内容不变。"""
    res = call("create", "/f", payload=[chunk])
    assert isinstance(res.error, TypeError)
    assert storage.store.get("/f").content == b""


# ------------------------- liststatus / getfilestatus -------------------------


def test_liststatus_two_files(call) -> None:
    """目录下两个文件：恰好两项，pathSuffix 为 a 与 b。"""
    call("mkdirs", "/dir")
    call("create", "/dir/a", payload=[b"1"])
    call("create", "/dir/b", payload=[b"22"])
    res = call("liststatus", "/dir")
    assert res.error is None
    assert res.headers["content-type"] == "application/json"
    statuses = json.loads(res.body)["FileStatuses"]["FileStatus"]
    assert sorted(s["pathSuffix"] for s in statuses) == ["a", "b"]


def test_liststatus_missing_dir_is_empty(call) -> None:
    """liststatus 从不失败。"""
    res = call("liststatus", "/nothing")
    assert res.error is None
    assert json.loads(res.body) == {"FileStatuses": {"FileStatus": []}}


def test_getfilestatus_shape(call) -> None:
    """getfilestatus 返回 {FileStatus: entry}，含全部属性。"""
    call("mkdirs", "/d")
    status = _status(call, "/d")
    assert set(status) == {
        "accessTime", "blockSize", "group", "length", "modificationTime",
        "owner", "pathSuffix", "permission", "replication", "type",
    }
    assert status["type"] == "DIRECTORY"


# ------------------------- rename -------------------------


def test_rename_moves_entry(call) -> None:
    """rename 后目标存在、源不存在，pathSuffix 跟随目标。"""
    call("create", "/p", payload=[b"data"])
    assert call("rename", "/p", {"destination": "/q"}).error is None
    assert isinstance(call("getfilestatus", "/p").error, NotFoundError)
    assert _status(call, "/q")["pathSuffix"] == "q"
    assert _read(call, "/q") == b"data"


def test_rename_destination_exists(call, storage: MemoryStorage) -> None:
    """目标已存在时 AlreadyExists，存储不变。"""
    call("create", "/p", payload=[b"p"])
    call("create", "/q", payload=[b"q"])
    res = call("rename", "/p", {"destination": "/q"})
    assert isinstance(res.error, AlreadyExistsError)
    assert str(res.error) == "Destination path exist"
    assert _read(call, "/p") == b"p"
    assert _read(call, "/q") == b"q"


def test_rename_missing_source(call) -> None:
    assert isinstance(call("rename", "/none", {"destination": "/q"}).error, NotFoundError)


def test_rename_requires_destination(call) -> None:
    """缺少 destination：InvalidParameterError（而非传输层的 PassthroughError）。"""
    call("create", "/p")
    res = call("rename", "/p")
    assert isinstance(res.error, InvalidParameterError)
    assert not isinstance(res.error, PassthroughError)
    assert res.error.status_code == 400
    assert isinstance(call("createsymlink", "/p").error, InvalidParameterError)


# ------------------------- setpermission / setowner -------------------------


def test_setpermission_and_setowner(call) -> None:
    call("mkdirs", "/d")
    assert call("setpermission", "/d", {"permission": "755"}).error is None
    assert call("setowner", "/d", {"owner": "hdfs", "group": "hadoop"}).error is None
    status = _status(call, "/d")
    assert status["permission"] == "755"
    assert status["owner"] == "hdfs"
    assert status["group"] == "hadoop"


# ------------------------- createsymlink -------------------------


def test_symlink_shares_entry(call, storage: MemoryStorage) -> None:
    """别名与源共享同一对象：通过别名 setowner，源可见；删除一方另一方仍在。"""
    call("create", "/p", payload=[b"data"])
    assert call("createsymlink", "/p", {"destination": "/q"}).error is None
    assert storage.store.get("/p") is storage.store.get("/q")

    call("setowner", "/q", {"owner": "O", "group": "G"})
    assert _status(call, "/p")["owner"] == "O"

    call("delete", "/p")
    assert _read(call, "/q") == b"data"


def test_symlink_preconditions(call) -> None:
    assert isinstance(call("createsymlink", "/none", {"destination": "/q"}).error, NotFoundError)
    call("mkdirs", "/d")
    call("mkdirs", "/e")
    assert isinstance(call("createsymlink", "/d", {"destination": "/e"}).error, AlreadyExistsError)


# ------------------------- delete -------------------------


def test_delete_recursive_removes_children(call, storage: MemoryStorage) -> None:
    """递归删除父路径为 dir 的所有条目，之后 liststatus 为空。"""
    call("mkdirs", "/dir")
    call("create", "/dir/a", payload=[b"1"])
    call("create", "/dir/b", payload=[b"2"])
    assert call("delete", "/dir", {"recursive": True}).error is None
    res = call("liststatus", "/dir")
    assert json.loads(res.body)["FileStatuses"]["FileStatus"] == []
    assert "/dir/a" not in storage.store


def test_delete_recursive_missing_not_found(call) -> None:
    """递归删除：无子项且路径不存在时 NotFound。"""
    assert isinstance(call("delete", "/none", {"recursive": "true"}).error, NotFoundError)


def test_delete_recursive_empty_existing_dir_ok(call) -> None:
    call("mkdirs", "/dir")
    assert call("delete", "/dir", {"recursive": True}).error is None


def test_delete_non_recursive(call, storage: MemoryStorage) -> None:
    """非递归删除移除路径本身；路径不存在时静默成功。"""
    call("create", "/f", payload=[b"x"])
    assert call("delete", "/f").error is None
    assert "/f" not in storage.store
    assert call("delete", "/f", {"recursive": "false"}).error is None


def test_independent_instances() -> None:
    """不同 MemoryStorage 实例互不共享状态。"""
    a, b = MemoryStorage(), MemoryStorage()
    done = CompletionRecorder()
    a(None, "/x", "mkdirs", {"user.name": WEBHDFS_USER}, None, None, done)
    assert "/x" in a.store
    assert "/x" not in b.store


def test_concurrent_mkdirs_exactly_one_wins(storage: MemoryStorage) -> None:
    """多线程同时 mkdirs 同一路径：恰好一个成功，其余 AlreadyExists。"""
    workers = 8
    barrier = threading.Barrier(workers)
    results: list[BaseException | None] = []
    results_lock = threading.Lock()

    def worker() -> None:
        completion = CompletionRecorder()
        barrier.wait()
        storage(None, "/race", "mkdirs", {"user.name": WEBHDFS_USER}, None, None, completion)
        with results_lock:
            results.append(completion.error)

    threads = [threading.Thread(target=worker) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(results) == workers
    assert results.count(None) == 1
    assert sum(isinstance(e, AlreadyExistsError) for e in results) == workers - 1
    assert storage.store.paths() == ["/race"]

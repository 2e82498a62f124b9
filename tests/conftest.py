"""
pytest 配置与共享 fixture。

每个测试都拿到独立的 MemoryStorage（互不共享状态）；
call fixture 直接以处理器的调用约定执行一次操作，client fixture 则经由 httpx 传输层。
"""

from __future__ import annotations

from typing import Any, Callable, Iterable

import pytest

from memhdfs import MemoryStorage, MemoryTransport, WebHDFSClient
from memhdfs.transport import CompletionRecorder, ResponseCollector

from tests.config import WEBHDFS_BASE_URL, WEBHDFS_PREFIX, WEBHDFS_USER


class CallResult:
    def __init__(self, error: BaseException | None, sink: ResponseCollector) -> None:
        self.error = error
        self.status = sink.status
        self.headers = sink.headers
        self.body = sink.body


@pytest.fixture
def storage() -> MemoryStorage:
    """空的内存存储。"""
    return MemoryStorage()


@pytest.fixture
def call(storage: MemoryStorage) -> Callable[..., CallResult]:
    """以 (err, path, op, params, payload, response, completion) 约定调用一次处理器。"""

    def _call(
        op: str,
        path: str,
        params: dict[str, Any] | None = None,
        payload: Iterable[bytes] | None = None,
    ) -> CallResult:
        merged = {"user.name": WEBHDFS_USER, **(params or {})}
        sink = ResponseCollector()
        completion = CompletionRecorder()
        storage(None, path, op, merged, payload, sink, completion)
        assert completion.called
        return CallResult(completion.error, sink)

    return _call


@pytest.fixture
def client(storage: MemoryStorage) -> Iterable[WebHDFSClient]:
    """经 MemoryTransport 连接到 storage 的 WebHDFS 客户端。"""
    transport = MemoryTransport(storage, prefix=WEBHDFS_PREFIX)
    with WebHDFSClient(WEBHDFS_BASE_URL, user=WEBHDFS_USER, prefix=WEBHDFS_PREFIX, transport=transport) as c:
        yield c

"""
httpx 传输层：把 WebHDFS HTTP 请求解码为 MemoryStorage 的调用，无需网络。

  GET/PUT/POST/DELETE {prefix}{path}?op=OPERATION&user.name=...&...

请求体（request.stream）按块交给处理器；处理器通过 completion 报告结果，
错误按 Hadoop 约定转为 RemoteException JSON 响应。
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from memhdfs.errors import PassthroughError, WebHDFSError
from memhdfs.handler import MemoryStorage

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "/webhdfs/v1"

# 以布尔值传给处理器的参数
_BOOLEAN_PARAMS = ("overwrite", "recursive")
# 无响应体的成功操作中，按 WebHDFS 约定返回 {"boolean": true} 的操作
_BOOLEAN_RESULT_OPS = ("mkdirs", "rename", "delete")


class ResponseCollector:
    """实现 ResponseSink，收集处理器写出的状态码、头与响应体。"""

    def __init__(self) -> None:
        self.status: int | None = None
        self.headers: dict[str, str] = {}
        self.body = b""

    def write_headers(self, status: int, headers: dict[str, str]) -> None:
        self.status = status
        self.headers = dict(headers)

    def write_body(self, body: bytes) -> None:
        self.body = body


class CompletionRecorder:
    """记录 completion 的唯一一次调用。"""

    def __init__(self) -> None:
        self.called = False
        self.error: BaseException | None = None

    def __call__(self, error: BaseException | None = None) -> None:
        if self.called:
            raise RuntimeError("completion called more than once")
        self.called = True
        self.error = error


def decode_params(params: httpx.QueryParams) -> tuple[str | None, dict[str, Any]]:
    """拆出 op，其余 query 参数原样保留；overwrite/recursive 转为 bool。"""
    decoded: dict[str, Any] = {}
    operation = None
    for key, value in params.multi_items():
        if key.lower() == "op":
            operation = value
        elif key in _BOOLEAN_PARAMS:
            decoded[key] = value.strip().lower() == "true"
        else:
            decoded[key] = value
    return operation, decoded


def error_response(error: BaseException) -> httpx.Response:
    if isinstance(error, WebHDFSError):
        return httpx.Response(error.status_code, json=error.to_remote_exception())
    return httpx.Response(
        500,
        json={
            "RemoteException": {
                "exception": type(error).__name__,
                "javaClassName": type(error).__name__,
                "message": str(error),
            }
        },
    )


class MemoryTransport(httpx.BaseTransport):
    """
    把 httpx.Client 的请求交给内存存储处理。

    :param storage: 处理器；默认新建一个空的 MemoryStorage
    :param prefix: URL 路径前缀，默认 /webhdfs/v1
    """

    def __init__(self, storage: MemoryStorage | None = None, *, prefix: str = DEFAULT_PREFIX) -> None:
        self.storage = storage if storage is not None else MemoryStorage()
        self.prefix = "/" + prefix.strip("/") if prefix.strip("/") else ""

    def _split_path(self, url_path: str) -> str | None:
        """去掉前缀后的文件系统路径；不在前缀下时返回 None。"""
        if not url_path.startswith(self.prefix):
            return None
        rest = url_path[len(self.prefix):]
        if rest and not rest.startswith("/"):
            return None
        path = rest.rstrip("/") or "/"
        return path

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        operation, params = decode_params(request.url.params)
        path = self._split_path(request.url.path)
        err: WebHDFSError | None = None
        if path is None:
            err = PassthroughError(f"Path is not under {self.prefix or '/'}: {request.url.path}")
        elif not operation:
            err = PassthroughError("op parameter is required")

        sink = ResponseCollector()
        completion = CompletionRecorder()
        logger.debug("%s %s op=%s", request.method, request.url.path, operation)
        self.storage(err, path or request.url.path, operation or "", params, request.stream, sink, completion)

        if not completion.called:
            raise RuntimeError(f"operation {operation} on {path} did not complete")
        if completion.error is not None:
            return error_response(completion.error)
        if sink.status is not None:
            return httpx.Response(sink.status, headers=sink.headers, content=sink.body)

        op = operation.lower()
        if op in _BOOLEAN_RESULT_OPS:
            body = json.dumps({"boolean": True}).encode("utf-8")
            return httpx.Response(200, headers={"content-type": "application/json"}, content=body)
        if op == "create":
            return httpx.Response(201)
        return httpx.Response(200)

"""
错误类型。

存储侧：AlreadyExistsError / NotFoundError / InvalidParameterError 由操作处理器抛出；
PassthroughError 只表示传输层在分发前就已失败、原样转交 completion 的错误。
客户端侧：WebHDFSRemoteError 对应服务端返回的 RemoteException。
"""

from __future__ import annotations

from typing import Any


class WebHDFSError(Exception):
    """所有存储侧错误的基类。exception/status 对应 WebHDFS RemoteException 与 HTTP 状态码。"""

    exception = "IOException"
    status_code = 500

    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.path = path

    def to_remote_exception(self) -> dict[str, Any]:
        return {
            "RemoteException": {
                "exception": self.exception,
                "javaClassName": self.java_class_name,
                "message": self.message,
            }
        }

    @property
    def java_class_name(self) -> str:
        return f"java.io.{self.exception}"


class AlreadyExistsError(WebHDFSError):
    exception = "FileAlreadyExistsException"
    status_code = 403

    @property
    def java_class_name(self) -> str:
        return f"org.apache.hadoop.fs.{self.exception}"


class NotFoundError(WebHDFSError):
    exception = "FileNotFoundException"
    status_code = 404

    def __init__(self, path: str) -> None:
        super().__init__(f"File does not exist: {path}", path)


class PassthroughError(WebHDFSError):
    exception = "IllegalArgumentException"
    status_code = 400

    @property
    def java_class_name(self) -> str:
        return f"java.lang.{self.exception}"


class InvalidParameterError(WebHDFSError):
    """操作缺少必需参数（如 rename 的 destination）。"""

    exception = "IllegalArgumentException"
    status_code = 400

    @property
    def java_class_name(self) -> str:
        return f"java.lang.{self.exception}"


class WebHDFSRemoteError(Exception):
    """客户端收到非 2xx 响应时抛出，携带 RemoteException 字段。"""

    def __init__(self, status_code: int, exception: str | None, message: str) -> None:
        super().__init__(f"{status_code} {exception or 'HTTPError'}: {message}")
        self.status_code = status_code
        self.exception = exception
        self.message = message

"""内存 WebHDFS 模拟：在不依赖真实 HDFS 的情况下测试 WebHDFS 客户端或代理。"""

from memhdfs.client import WebHDFSClient
from memhdfs.errors import (
    AlreadyExistsError,
    InvalidParameterError,
    NotFoundError,
    PassthroughError,
    WebHDFSError,
    WebHDFSRemoteError,
)
from memhdfs.handler import MemoryStorage, ResponseSink
from memhdfs.models import (
    Entry,
    EntryType,
    FileStatus,
    status_is_dir,
    status_length,
    status_modified,
    status_owner,
)
from memhdfs.store import PathStore
from memhdfs.transport import MemoryTransport

__all__ = [
    "MemoryStorage",
    "MemoryTransport",
    "PathStore",
    "ResponseSink",
    "WebHDFSClient",
    "Entry",
    "EntryType",
    "FileStatus",
    "status_is_dir",
    "status_length",
    "status_modified",
    "status_owner",
    "WebHDFSError",
    "AlreadyExistsError",
    "InvalidParameterError",
    "NotFoundError",
    "PassthroughError",
    "WebHDFSRemoteError",
]

"""
内存 WebHDFS 数据模型（与 WebHDFS FileStatus JSON 一致）。

Entry 为存储中的单个节点（文件或目录）：
- 目录的 length 为固定占位值 DIRECTORY_LENGTH
- 文件的 content 为累积写入的字节，不参与序列化
- path_suffix 为路径最后一段，在写入结束和重命名时重新计算
"""

from __future__ import annotations

import posixpath
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

DEFAULT_GROUP = "supergroup"
DEFAULT_PERMISSION = "644"
DEFAULT_REPLICATION = 1
# 目录 length 占位值（与参考实现返回一致）
DIRECTORY_LENGTH = 24930

# FileStatus：getfilestatus / liststatus 返回的单项
FileStatus = dict[str, Any]


class EntryType(str, Enum):
    FILE = "FILE"
    DIRECTORY = "DIRECTORY"


def now_millis() -> int:
    """当前时间（毫秒时间戳），WebHDFS 的 accessTime/modificationTime 单位。"""
    return int(time.time() * 1000)


@dataclass
class Entry:
    type: EntryType
    owner: str | None = None
    group: str = DEFAULT_GROUP
    permission: str = DEFAULT_PERMISSION
    replication: int = DEFAULT_REPLICATION
    block_size: int = 0
    length: int = 0
    access_time: int = field(default_factory=now_millis)
    modification_time: int = field(default_factory=now_millis)
    path_suffix: str = ""
    content: bytes = b""

    @classmethod
    def directory(cls, path: str, owner: str | None) -> Entry:
        return cls(
            type=EntryType.DIRECTORY,
            owner=owner,
            length=DIRECTORY_LENGTH,
            path_suffix=posixpath.basename(path),
        )

    @classmethod
    def file(cls, path: str, owner: str | None) -> Entry:
        return cls(type=EntryType.FILE, owner=owner, path_suffix=posixpath.basename(path))

    def touch(self) -> None:
        """更新访问与修改时间。"""
        self.access_time = self.modification_time = now_millis()

    def to_file_status(self) -> FileStatus:
        """序列化为 WebHDFS FileStatus（不含 content）。"""
        return {
            "accessTime": self.access_time,
            "blockSize": self.block_size,
            "group": self.group,
            "length": self.length,
            "modificationTime": self.modification_time,
            "owner": self.owner,
            "pathSuffix": self.path_suffix,
            "permission": self.permission,
            "replication": self.replication,
            "type": self.type.value,
        }


def status_length(status: FileStatus) -> int:
    """条目大小（字节）；目录为占位值。"""
    return int(status.get("length") or 0)


def status_is_dir(status: FileStatus) -> bool:
    return status.get("type") == EntryType.DIRECTORY.value


def status_owner(status: FileStatus) -> str:
    """owner:group 形式的归属字符串。"""
    return f"{status.get('owner') or '-'}:{status.get('group') or '-'}"


def status_modified(status: FileStatus) -> str | None:
    """修改时间（本地时间字符串，精确到秒）；未提供时返回 None。"""
    ms = status.get("modificationTime")
    if ms is None:
        return None
    return time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(int(ms) / 1000))

"""
路径存储：绝对路径 -> Entry 的映射。

不维护树结构，目录成员关系按需用 posixpath.dirname 比较得出；
同一 Entry 可以被多个路径引用（createsymlink 产生的别名）。
"""

from __future__ import annotations

import posixpath

from memhdfs.models import Entry


def parent_path(path: str) -> str:
    """父路径（"/a/b" -> "/a"，"/a" -> "/"）。"""
    return posixpath.dirname(path)


class PathStore:
    def __init__(self) -> None:
        self._entries: dict[str, Entry] = {}

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, path: str) -> Entry | None:
        return self._entries.get(path)

    def put(self, path: str, entry: Entry) -> None:
        self._entries[path] = entry

    def remove(self, path: str) -> bool:
        """删除路径；存在时返回 True。"""
        return self._entries.pop(path, None) is not None

    def list_children(self, parent: str) -> list[Entry]:
        """全量扫描，返回父路径等于 parent 的条目（不含 parent 自身）。"""
        return [
            entry for key, entry in self._entries.items()
            if key != parent and parent_path(key) == parent
        ]

    def remove_children(self, parent: str) -> int:
        """删除父路径等于 parent 的所有键，返回删除数量。parent 为 "/" 时也会删除根自身。"""
        keys = [key for key in self._entries if parent_path(key) == parent]
        for key in keys:
            del self._entries[key]
        return len(keys)

    def paths(self) -> list[str]:
        return sorted(self._entries)

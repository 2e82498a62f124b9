"""
CLI 配置：本地保存/读取 base_url、user（WebHDFS user.name）。
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

DEFAULT_USER = "webuser"


def _config_dir() -> Path:
    """配置目录：~/.config/memhdfs（所有平台统一）。"""
    return Path.home() / ".config" / "memhdfs"


def _config_path() -> Path:
    return _config_dir() / "config.json"


def load_config() -> dict[str, Any] | None:
    """读取本地配置；不存在或无效则返回 None。"""
    p = _config_path()
    if not p.exists():
        return None
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return None
    if not isinstance(data, dict) or "base_url" not in data:
        return None
    return data


def save_config(base_url: str, user: str | None = None) -> None:
    """保存连接信息到本地。"""
    p = _config_path()
    p.parent.mkdir(parents=True, exist_ok=True)
    data: dict[str, Any] = {"base_url": base_url.rstrip("/")}
    if user is not None:
        data["user"] = user
    p.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")


def clear_config() -> bool:
    """清除本地配置；存在则删除并返回 True。"""
    p = _config_path()
    if p.exists():
        p.unlink()
        return True
    return False

"""插件清单

清单是整个流程的权威记录：包名 → 来源、下载配置、跟踪状态。
由顶层工作流加载一次，在内存中流经各阶段，结束时保存一次。
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from addonsync.core.exceptions import ConfigError, ValidationError
from addonsync.core.models import ManifestEntry
from addonsync.utils.fileio import load_json, save_json

logger = logging.getLogger(__name__)


class Manifest:
    """包名大小写不敏感的清单容器，保持插入顺序"""

    def __init__(self, entries: list[ManifestEntry] | None = None) -> None:
        self._entries: dict[str, ManifestEntry] = {}
        for entry in entries or []:
            self.add(entry)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[ManifestEntry]:
        return iter(list(self._entries.values()))

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._entries

    def get(self, name: str) -> ManifestEntry | None:
        return self._entries.get(name.lower())

    def names(self) -> list[str]:
        return [e.name for e in self._entries.values()]

    def add(self, entry: ManifestEntry, *, replace: bool = False) -> ManifestEntry:
        """添加条目；仅大小写不同的重名视为冲突"""
        if not entry.name:
            raise ValidationError("清单条目缺少 name")
        existing = self._entries.get(entry.key)
        if existing is not None and not replace:
            raise ValidationError(
                f"清单中已存在同名插件: '{existing.name}' (新增: '{entry.name}')"
            )
        self._entries[entry.key] = entry
        return entry

    def remove(self, name: str) -> bool:
        """显式删除条目（流程中不会自动删除）"""
        return self._entries.pop(name.lower(), None) is not None

    def owner_of(self, folder: str) -> ManifestEntry | None:
        """查找拥有某个已安装目录的条目（按名称或上次安装记录的目录）"""
        entry = self.get(folder)
        if entry is not None:
            return entry
        key = folder.lower()
        for e in self._entries.values():
            if key == e.install_folder.lower():
                return e
            if any(key == f.lower() for f in e.tracking.folders):
                return e
        return None

    # ------------------------------------------------------------------
    # 序列化
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, data: dict[str, Any] | list[Any]) -> Manifest:
        """从 JSON 结构构造

        标准格式为 {name: entry}；也接受扁平条目列表 [{"name": ..., ...}]。
        """
        manifest = cls()
        if isinstance(data, list):
            items = [(item.get("name", ""), item) for item in data if isinstance(item, dict)]
        elif isinstance(data, dict):
            items = [(name, info or {}) for name, info in data.items()]
        else:
            raise ValidationError(f"清单格式无效: 期望对象或列表, 实际 {type(data).__name__}")
        for name, info in items:
            manifest.add(ManifestEntry.from_dict(name, info))
        return manifest

    def to_dict(self) -> dict[str, Any]:
        return {e.name: e.to_dict() for e in self._entries.values()}

    @classmethod
    def load(cls, path: str | Path) -> Manifest:
        """加载清单文件，不存在视为配置错误"""
        p = Path(path)
        if not p.exists():
            raise ConfigError(f"清单文件不存在: {p}")
        try:
            data = load_json(p)
        except (json.JSONDecodeError, ValueError) as e:
            raise ConfigError(f"清单文件无效: {p} - {e}") from e
        manifest = cls.from_dict(data or {})
        logger.info("已加载 %d 个插件: %s", len(manifest), p)
        return manifest

    def save(self, path: str | Path) -> None:
        save_json(path, self.to_dict())
        logger.info("清单已保存: %s (%d 个插件)", path, len(self))

"""插件描述文件解析与已安装清单

描述文件与插件目录同名（<folder>/<folder>.toc），识别 `## Key: Value` 行。
每次扫描整体重建已安装列表，依赖声明在扫描时一次性解析为列表。
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from addonsync.core.models import Descriptor, InstalledPackage
from addonsync.utils.fileio import load_json, save_json

logger = logging.getLogger(__name__)

DESCRIPTOR_SUFFIX = ".toc"

_LINE_RE = re.compile(r"^##\s*([^:]+?)\s*:\s*(.*?)\s*$")
_DEPENDENCY_KEYS = ("dependencies", "requireddeps", "dependancies")
# 标题中的颜色转义，如 |cff00ff00BugSack|r
_COLOR_RE = re.compile(r"\|c[0-9a-fA-F]{8}|\|r")


def parse_descriptor(text: str) -> Descriptor:
    """解析描述文件文本"""
    fields: dict[str, str] = {}
    for raw in text.splitlines():
        m = _LINE_RE.match(raw.lstrip("\ufeff").strip())
        if m:
            fields.setdefault(m.group(1).lower(), m.group(2))

    deps: list[str] = []
    for key in _DEPENDENCY_KEYS:
        for name in (fields.get(key) or "").split(","):
            name = name.strip()
            if name and name.lower() not in {d.lower() for d in deps}:
                deps.append(name)

    return Descriptor(
        title=_COLOR_RE.sub("", fields.get("title", "")).strip(),
        version=fields.get("version", ""),
        author=fields.get("author", ""),
        notes=fields.get("notes", ""),
        dependencies=deps,
    )


def find_descriptor(folder: Path, name: str = "") -> Path | None:
    """查找目录下的描述文件

    优先 <name>.toc，其次 <name>_<flavor>.toc（如 _Mainline / _Vanilla）。
    """
    name = name or folder.name
    exact = folder / f"{name}{DESCRIPTOR_SUFFIX}"
    if exact.is_file():
        return exact
    if not folder.is_dir():
        return None
    prefix = f"{name.lower()}_"
    for p in sorted(folder.iterdir()):
        lname = p.name.lower()
        if p.is_file() and lname.startswith(prefix) and lname.endswith(DESCRIPTOR_SUFFIX):
            return p
    return None


def read_descriptor(folder: Path) -> Descriptor | None:
    path = find_descriptor(folder)
    if path is None:
        return None
    text = path.read_text(encoding="utf-8", errors="replace")
    return parse_descriptor(text)


def scan_installed(addons_dir: Path) -> dict[str, InstalledPackage]:
    """扫描插件目录，返回 {小写目录名: InstalledPackage}"""
    installed: dict[str, InstalledPackage] = {}
    if not addons_dir.is_dir():
        return installed
    for d in sorted(addons_dir.iterdir()):
        if not d.is_dir() or d.name.startswith("."):
            continue
        installed[d.name.lower()] = InstalledPackage(
            folder=d.name, path=d, descriptor=read_descriptor(d),
        )
    logger.debug("扫描到 %d 个已安装插件: %s", len(installed), addons_dir)
    return installed


# =========================================================================
# 已安装清单文档
# =========================================================================


def write_inventory(
    path: Path, target: str, installed: dict[str, InstalledPackage],
) -> dict[str, Any]:
    """整体重写已安装清单文档（不做增量修改）"""
    doc = {
        "target": target,
        "generated_at": datetime.now(tz=timezone.utc).isoformat(),
        "packages": [pkg.to_dict() for pkg in installed.values()],
    }
    save_json(path, doc)
    logger.info("已安装清单已生成: %s (%d 个)", path, len(installed))
    return doc


def read_inventory_names(path: Path) -> list[str]:
    """读取清单文档中记录的插件目录名，文件缺失或格式不符返回空列表"""
    doc = load_json(path)
    if not isinstance(doc, dict):
        return []
    return [
        p["folder"] for p in doc.get("packages") or []
        if isinstance(p, dict) and p.get("folder")
    ]

"""依赖解析器

计算“不可安装集合”：
  1. 种子: 清单中没有来源的条目
  2. 迭代到不动点: 任一声明依赖已在集合中的包加入集合

成员只会从种子沿反向依赖边传播，与种子不连通的依赖环不会被误判。
纯计算，不做任何 I/O；依赖声明由调用方在一次扫描中解析好后传入。
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from addonsync.core.manifest import Manifest
from addonsync.core.models import InstalledPackage

logger = logging.getLogger(__name__)


@dataclass
class UninstallableSet:
    """不可安装集合，键为小写包名

    reasons 记录每个成员被拉入集合时违反的依赖名（种子为空串），
    names 保留原始大小写用于日志。
    """

    reasons: dict[str, str] = field(default_factory=dict)
    names: dict[str, str] = field(default_factory=dict)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self.reasons

    def __len__(self) -> int:
        return len(self.reasons)

    def __iter__(self):
        return iter(self.names.values())

    def add(self, name: str, violated: str = "") -> bool:
        key = name.lower()
        if key in self.reasons:
            return False
        self.reasons[key] = violated
        self.names[key] = name
        return True

    def reason(self, name: str) -> str:
        """返回导致 name 不可安装的依赖名，种子或非成员返回空串"""
        return self.reasons.get(name.lower(), "")

    def is_seed(self, name: str) -> bool:
        return name in self and not self.reason(name)

    def as_set(self) -> set[str]:
        return set(self.names.values())


def dependency_map(installed: Mapping[str, InstalledPackage]) -> dict[str, list[str]]:
    """从一次扫描结果构造 {目录名: [依赖名]}"""
    return {pkg.folder: list(pkg.dependencies) for pkg in installed.values()}


def compute_uninstallable(
    manifest: Manifest,
    dependencies: Mapping[str, Iterable[str]],
) -> UninstallableSet:
    """计算最大不可安装集合

    参数:
        manifest: 清单
        dependencies: 已落盘包的声明依赖；未安装过（无描述文件）的包视为无依赖
    """
    result = UninstallableSet()
    for entry in manifest:
        if entry.source is None:
            result.add(entry.name)

    deps: dict[str, list[str]] = {}
    display: dict[str, str] = {}
    for entry in manifest:
        deps.setdefault(entry.key, [])
        display.setdefault(entry.key, entry.name)
    for name, declared in dependencies.items():
        deps[name.lower()] = list(declared)
        display.setdefault(name.lower(), name)

    if not result:
        return result

    changed = True
    while changed:
        changed = False
        for key, declared in deps.items():
            if key in result.reasons:
                continue
            violated = next((d for d in declared if d in result), None)
            if violated is not None:
                result.add(display[key], result.names[violated.lower()])
                changed = True

    logger.debug("不可安装集合: %s", sorted(result.as_set()))
    return result

"""依赖解析

- resolver.py: 不可安装集合的传递闭包计算
"""

from addonsync.core.dep.resolver import (
    UninstallableSet,
    compute_uninstallable,
    dependency_map,
)

__all__ = [
    "UninstallableSet",
    "compute_uninstallable",
    "dependency_map",
]

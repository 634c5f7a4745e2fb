"""核心数据模型

清单条目、已安装插件、发布信息、执行报告等数据类集中定义，
各层统一从此处导入，避免循环依赖。
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

# =========================================================================
# 清单条目
# =========================================================================


@dataclass
class SourceRef:
    """插件来源仓库"""

    owner: str
    repo: str
    branch: str = ""  # 空表示使用仓库默认分支

    @property
    def slug(self) -> str:
        return f"{self.owner}/{self.repo}"


@dataclass
class DownloadConfig:
    """发布资源筛选与安装目录配置"""

    asset_include: str = "*.zip"
    asset_exclude: list[str] = field(default_factory=list)
    folder: str = ""  # 空表示与包名相同


@dataclass
class TrackingState:
    """跟踪状态，仅在获取成功后更新（enabled 除外）"""

    enabled: bool = True
    installed_version: str = ""
    latest_version: str = ""
    last_checked: str = ""
    folders: list[str] = field(default_factory=list)  # 上次安装的全部顶层目录


_FLAT_SOURCE_KEYS = ("owner", "repo", "branch")
_FLAT_DOWNLOAD_KEYS = ("asset_include", "asset_exclude", "folder")


@dataclass
class ManifestEntry:
    """清单中的单个插件"""

    name: str
    source: SourceRef | None = None
    download: DownloadConfig = field(default_factory=DownloadConfig)
    tracking: TrackingState = field(default_factory=TrackingState)
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def key(self) -> str:
        return self.name.lower()

    @property
    def install_folder(self) -> str:
        return self.download.folder or self.name

    @classmethod
    def from_dict(cls, name: str, data: dict[str, Any]) -> ManifestEntry:
        """从清单 JSON 构造条目

        同时接受嵌套格式（source/download/tracking/metadata）和扁平简写
        （owner/repo/branch/asset_include/asset_exclude/folder 直接放在顶层）。
        """
        name = data.get("name") or name

        src = dict(data.get("source") or {})
        for k in _FLAT_SOURCE_KEYS:
            if k in data:
                src.setdefault(k, data[k])
        source = None
        if src.get("owner") and src.get("repo"):
            source = SourceRef(
                owner=src["owner"], repo=src["repo"], branch=src.get("branch") or "",
            )

        dl = dict(data.get("download") or {})
        for k in _FLAT_DOWNLOAD_KEYS:
            if k in data:
                dl.setdefault(k, data[k])
        exclude = dl.get("asset_exclude") or []
        if isinstance(exclude, str):
            exclude = [exclude]
        download = DownloadConfig(
            asset_include=dl.get("asset_include") or "*.zip",
            asset_exclude=list(exclude),
            folder=dl.get("folder") or "",
        )

        tr = data.get("tracking") or {}
        tracking = TrackingState(
            enabled=bool(tr.get("enabled", data.get("enabled", True))),
            installed_version=tr.get("installed_version", ""),
            latest_version=tr.get("latest_version", ""),
            last_checked=tr.get("last_checked", ""),
            folders=list(tr.get("folders") or []),
        )

        return cls(
            name=name,
            source=source,
            download=download,
            tracking=tracking,
            metadata=dict(data.get("metadata") or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        """序列化为嵌套格式"""
        return {
            "source": asdict(self.source) if self.source else None,
            "metadata": dict(self.metadata),
            "tracking": asdict(self.tracking),
            "download": asdict(self.download),
        }


# =========================================================================
# 已安装插件（每次扫描整体重建）
# =========================================================================


@dataclass
class Descriptor:
    """插件描述文件 (.toc) 解析结果"""

    title: str = ""
    version: str = ""
    author: str = ""
    notes: str = ""
    dependencies: list[str] = field(default_factory=list)


@dataclass
class InstalledPackage:
    """磁盘上的插件目录"""

    folder: str
    path: Path
    descriptor: Descriptor | None = None

    @property
    def dependencies(self) -> list[str]:
        return self.descriptor.dependencies if self.descriptor else []

    def to_dict(self) -> dict[str, Any]:
        d = self.descriptor or Descriptor()
        return {
            "folder": self.folder,
            "title": d.title,
            "version": d.version,
            "author": d.author,
            "dependencies": list(d.dependencies),
        }


# =========================================================================
# 发布信息
# =========================================================================


@dataclass
class ReleaseAsset:
    name: str
    url: str = ""


@dataclass
class Release:
    """仓库最新发布"""

    tag: str
    assets: list[ReleaseAsset] = field(default_factory=list)


@dataclass
class AcquisitionResult:
    """单次获取结果"""

    version: str
    folders: list[str]
    strategy: str  # "release" / "checkout"


# =========================================================================
# 执行报告
# =========================================================================


class PackageOutcome(str, Enum):
    """单包状态机，CANDIDATE 之外均为本次执行的终态"""

    CANDIDATE = "candidate"
    EXCLUDED = "excluded"
    SKIPPED = "skipped"
    INSTALLED = "installed"
    FAILED = "failed"
    WARNED = "warned"


@dataclass
class TargetReport:
    """单个部署目标的安装汇总"""

    target: str
    installed: int = 0
    skipped: int = 0
    warned: int = 0
    failed: int = 0
    removed: int = 0
    excluded: int = 0
    outcomes: dict[str, PackageOutcome] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)
    removed_names: list[str] = field(default_factory=list)

    def record(self, name: str, outcome: PackageOutcome, message: str = "") -> None:
        self.outcomes[name] = outcome
        if outcome == PackageOutcome.INSTALLED:
            self.installed += 1
        elif outcome == PackageOutcome.SKIPPED:
            self.skipped += 1
        elif outcome == PackageOutcome.WARNED:
            self.warned += 1
        elif outcome == PackageOutcome.FAILED:
            self.failed += 1
        elif outcome == PackageOutcome.EXCLUDED:
            self.excluded += 1
        if message:
            self.errors[name] = message

    def record_removed(self, folder: str) -> None:
        self.removed += 1
        self.removed_names.append(folder)

    @property
    def success(self) -> bool:
        return self.failed == 0

    def summary(self) -> str:
        return (
            f"{self.target}: installed={self.installed} skipped={self.skipped} "
            f"warned={self.warned} failed={self.failed} "
            f"removed={self.removed} excluded={self.excluded}"
        )

"""顶层工作流

每个工作流持有一个内存中的清单对象：开始时加载一次，流经各阶段，
结束时保存一次，避免阶段之间对清单文件的交错读写。

  install:  按清单安装插件
  pull:     恢复配置快照 → 按快照记录的插件安装
  push:     刷新已安装清单文档 → 发布配置快照
  discover: 把清单之外的已安装目录登记为无来源条目
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from addonsync.core.config import Config
from addonsync.core.descriptor import read_inventory_names, scan_installed, write_inventory
from addonsync.core.exceptions import ConfigError
from addonsync.core.manifest import Manifest
from addonsync.core.models import ManifestEntry, TargetReport
from addonsync.services.installer import InstallationOrchestrator
from addonsync.services.version_sync import LATEST, VersionSyncController

logger = logging.getLogger(__name__)


@dataclass
class PullResult:
    version: int
    reports: list[TargetReport] = field(default_factory=list)


class AddonSyncWorkflow:
    """串联版本同步与安装编排"""

    def __init__(
        self,
        config: Config,
        orchestrator: InstallationOrchestrator,
        sync: VersionSyncController,
    ) -> None:
        self.config = config
        self.orchestrator = orchestrator
        self.sync = sync

    @property
    def manifest_path(self) -> Path:
        return Path(self.config.manifest)

    def load_manifest(self, *, create: bool = False) -> Manifest:
        if create and not self.manifest_path.exists():
            return Manifest()
        return Manifest.load(self.manifest_path)

    def install(
        self,
        names: list[str] | None = None,
        *,
        force: bool = False,
        targets: list[str] | None = None,
    ) -> list[TargetReport]:
        manifest = self.load_manifest()
        if names:
            unknown = [n for n in names if n not in manifest]
            if unknown:
                logger.warning("清单中不存在: %s", ", ".join(unknown))
        try:
            return self.orchestrator.install_all(
                manifest, names=names or None, force=force, targets=targets,
            )
        finally:
            manifest.save(self.manifest_path)

    def pull(
        self,
        version: int | str = LATEST,
        *,
        force: bool = False,
        targets: list[str] | None = None,
    ) -> PullResult:
        """恢复配置快照，再安装该快照记录的插件"""
        manifest = self.load_manifest()
        targets = targets or self.config.targets
        restored = self.sync.restore(version, targets)

        result = PullResult(version=restored.version)
        try:
            for target in targets:
                recorded: list[str] = []
                if target in restored.skipped:
                    logger.warning("  %s: 快照中没有该目标，按完整清单安装", target)
                else:
                    recorded = read_inventory_names(self.config.inventory_path(target))
                    if not recorded:
                        logger.warning("  %s: 快照中没有已安装清单，按完整清单安装", target)
                result.reports.append(self.orchestrator.install_target(
                    target, manifest, names=recorded or None, force=force,
                ))
        finally:
            manifest.save(self.manifest_path)
        return result

    def push(self, targets: list[str] | None = None) -> int:
        """刷新已安装清单文档后发布配置快照"""
        targets = targets or self.config.targets
        for target in targets:
            self.config.require_target(target)
            write_inventory(
                self.config.inventory_path(target), target,
                scan_installed(self.config.addons_dir(target)),
            )
        return self.sync.publish(targets)

    def discover(self, targets: list[str] | None = None) -> list[str]:
        """登记清单之外的已安装目录（无来源，需手动补充 owner/repo）"""
        manifest = self.load_manifest(create=True)
        added: list[str] = []
        for target in targets or self.config.targets:
            self.config.require_target(target)
            for pkg in scan_installed(self.config.addons_dir(target)).values():
                if manifest.owner_of(pkg.folder) is not None:
                    continue
                d = pkg.descriptor
                metadata = {"title": d.title, "author": d.author, "notes": d.notes} if d else {}
                manifest.add(ManifestEntry(
                    name=pkg.folder,
                    metadata={k: v for k, v in metadata.items() if v},
                ))
                added.append(pkg.folder)
                logger.info("  发现未登记插件: %s", pkg.folder)
        manifest.save(self.manifest_path)
        return added

    def add(self, entry: ManifestEntry) -> ManifestEntry:
        """向清单登记新插件"""
        if entry.source is None:
            raise ConfigError(f"插件 '{entry.name}' 需要 owner 和 repo")
        manifest = self.load_manifest(create=True)
        manifest.add(entry)
        manifest.save(self.manifest_path)
        return entry

"""安装编排器

按部署目标逐个执行:
  1. 扫描已安装插件（一次扫描，依赖解析为列表）
  2. 选出候选条目（启用 + 可选名称过滤）
  3. 计算不可安装集合，排除依赖不满足的条目
  4. 对其余条目: 已存在且未强制 → 跳过；否则调用获取器
  5. 重新扫描全部已安装插件，删除依赖落入不可安装集合的插件，直到稳定
  6. 整体重写已安装清单文档

单包失败只计数，不中断后续包的处理。
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path

from addonsync.core.config import Config
from addonsync.core.dep import UninstallableSet, compute_uninstallable, dependency_map
from addonsync.core.descriptor import scan_installed, write_inventory
from addonsync.core.exceptions import AcquisitionError, ValidationError
from addonsync.core.manifest import Manifest
from addonsync.core.models import (
    InstalledPackage,
    ManifestEntry,
    PackageOutcome,
    TargetReport,
)
from addonsync.services.acquirer import ArtifactAcquirer

logger = logging.getLogger(__name__)


class InstallationOrchestrator:
    """按部署目标驱动依赖解析与插件获取"""

    def __init__(self, config: Config, acquirer: ArtifactAcquirer) -> None:
        self.config = config
        self.acquirer = acquirer

    def install_all(
        self,
        manifest: Manifest,
        *,
        names: Iterable[str] | None = None,
        force: bool = False,
        targets: list[str] | None = None,
    ) -> list[TargetReport]:
        """对全部（或指定）部署目标执行安装"""
        selected = list(names) if names is not None else None
        reports = []
        for target in targets or self.config.targets:
            reports.append(
                self.install_target(target, manifest, names=selected, force=force),
            )
        return reports

    def install_target(
        self,
        target: str,
        manifest: Manifest,
        *,
        names: Iterable[str] | None = None,
        force: bool = False,
    ) -> TargetReport:
        """对单个部署目标执行安装并返回计数"""
        self.config.require_target(target)
        addons_dir = self.config.addons_dir(target)
        addons_dir.mkdir(parents=True, exist_ok=True)
        report = TargetReport(target=target)
        logger.info("==== 部署目标: %s (%s) ====", target, addons_dir)

        installed = scan_installed(addons_dir)
        uninstallable = compute_uninstallable(manifest, dependency_map(installed))

        for entry in self._candidates(manifest, names):
            if entry.source is None:
                logger.warning("  %s: 清单中没有来源，跳过", entry.name)
                report.record(entry.name, PackageOutcome.WARNED)
                continue

            excluded_as = next(
                (n for n in (entry.name, entry.install_folder) if n in uninstallable), None,
            )
            if excluded_as is not None:
                violated = uninstallable.reason(excluded_as)
                logger.warning("  %s: 依赖 %s 不可安装，排除", entry.name, violated)
                report.record(
                    entry.name, PackageOutcome.EXCLUDED, f"依赖不可安装: {violated}",
                )
                continue

            if (addons_dir / entry.install_folder).exists() and not force:
                logger.info("  %s: 已安装，跳过", entry.name)
                report.record(entry.name, PackageOutcome.SKIPPED)
                continue

            self._acquire_one(entry, addons_dir, report)

        self._prune(manifest, addons_dir, report)
        write_inventory(self.config.inventory_path(target), target, scan_installed(addons_dir))
        logger.info("汇总 %s", report.summary())
        return report

    @staticmethod
    def _candidates(
        manifest: Manifest, names: Iterable[str] | None,
    ) -> list[ManifestEntry]:
        entries = [e for e in manifest if e.tracking.enabled]
        if names is None:
            return entries
        wanted = {n.lower() for n in names}
        return [
            e for e in entries
            if e.key in wanted
            or e.install_folder.lower() in wanted
            or any(f.lower() in wanted for f in e.tracking.folders)
        ]

    def _acquire_one(
        self, entry: ManifestEntry, addons_dir: Path, report: TargetReport,
    ) -> None:
        try:
            result = self.acquirer.acquire(entry, addons_dir)
        except (AcquisitionError, ValidationError, OSError) as e:
            logger.error("  %s: 获取失败 - %s", entry.name, e)
            report.record(entry.name, PackageOutcome.FAILED, str(e))
            return

        entry.tracking.installed_version = result.version
        entry.tracking.latest_version = result.version
        entry.tracking.last_checked = datetime.now(tz=timezone.utc).isoformat()
        entry.tracking.folders = list(result.folders)
        report.record(entry.name, PackageOutcome.INSTALLED)
        logger.info(
            "  %s: 已安装 %s (%s, 目录: %s)",
            entry.name, result.version, result.strategy, ", ".join(result.folders),
        )

    def _prune(self, manifest: Manifest, addons_dir: Path, report: TargetReport) -> None:
        """删除依赖落入不可安装集合的已安装插件，级联直到稳定

        每次都重新检查全部已安装插件，而不仅是本次改动过的。
        """
        while True:
            installed = scan_installed(addons_dir)
            uninstallable = compute_uninstallable(manifest, dependency_map(installed))
            doomed = [
                pkg for pkg in installed.values()
                if self._violates(pkg, uninstallable)
            ]
            if not doomed:
                return
            for pkg in doomed:
                logger.warning(
                    "  删除 %s: 依赖 %s 不可安装", pkg.folder, uninstallable.reason(pkg.folder),
                )
                shutil.rmtree(pkg.path)
                report.record_removed(pkg.folder)

    @staticmethod
    def _violates(pkg: InstalledPackage, uninstallable: UninstallableSet) -> bool:
        return any(dep in uninstallable for dep in pkg.dependencies)

"""插件获取器 — 发布资源优先，源码检出回退

策略在开始时一次性选定:
  - ReleaseStrategy:  最新发布中存在符合筛选条件的资源 → 下载并解压
  - CheckoutStrategy: 无发布或无匹配资源 → 按分支浅克隆

两条路径共用同一个落盘步骤: 删除目标目录 → 复制 → 去除版本控制元数据。
临时目录在每次获取结束时无条件删除。
是否跳过已存在的目录由调用方决定，这里总是执行获取。
"""

from __future__ import annotations

import fnmatch
import logging
import shutil
import tarfile
import tempfile
import zipfile
from dataclasses import dataclass
from pathlib import Path

from addonsync.core.descriptor import DESCRIPTOR_SUFFIX, find_descriptor
from addonsync.core.exceptions import ExtractionError, MalformedSourceError
from addonsync.core.models import (
    AcquisitionResult,
    DownloadConfig,
    ManifestEntry,
    Release,
    ReleaseAsset,
    SourceRef,
)
from addonsync.core.protocols import SourceProvider

logger = logging.getLogger(__name__)

VCS_METADATA = (".git", ".github", ".gitignore", ".gitattributes", ".gitmodules")


@dataclass
class ReleaseStrategy:
    release: Release
    asset: ReleaseAsset


@dataclass
class CheckoutStrategy:
    branch: str


AcquisitionStrategy = ReleaseStrategy | CheckoutStrategy


def select_asset(assets: list[ReleaseAsset], download: DownloadConfig) -> ReleaseAsset | None:
    """按 include/exclude 筛选发布资源，取第一个（保持提供方顺序）"""
    for asset in assets:
        name = asset.name.lower()
        if not fnmatch.fnmatch(name, download.asset_include.lower()):
            continue
        if any(fnmatch.fnmatch(name, pat.lower()) for pat in download.asset_exclude):
            continue
        return asset
    return None


def install_tree(src: Path, dest: Path) -> None:
    """整体替换目标目录（不合并），并去除版本控制元数据"""
    if dest.exists():
        shutil.rmtree(dest)
    dest.parent.mkdir(parents=True, exist_ok=True)
    shutil.copytree(src, dest, ignore=shutil.ignore_patterns(*VCS_METADATA))
    logger.info("  已安装: %s", dest)


def extract_archive(archive: Path, dest: Path) -> None:
    """解压 zip / tar 包，失败抛 ExtractionError"""
    dest.mkdir(parents=True, exist_ok=True)
    try:
        if zipfile.is_zipfile(archive):
            with zipfile.ZipFile(archive) as zf:
                root = dest.resolve()
                for member in zf.namelist():
                    target = (dest / member).resolve()
                    if root != target and root not in target.parents:
                        raise ExtractionError(f"压缩包包含越界路径: {member}")
                zf.extractall(dest)
        elif tarfile.is_tarfile(archive):
            with tarfile.open(archive) as tf:
                tf.extractall(path=str(dest), filter="data")  # noqa: S202
        else:
            raise ExtractionError(f"不支持的压缩格式: {archive.name}")
    except (zipfile.BadZipFile, tarfile.TarError, OSError) as e:
        raise ExtractionError(f"解压失败 {archive.name}: {e}") from e


class ArtifactAcquirer:
    """单个插件的获取器"""

    def __init__(self, provider: SourceProvider) -> None:
        self.provider = provider

    @staticmethod
    def _require_source(entry: ManifestEntry) -> SourceRef:
        if entry.source is None:
            raise MalformedSourceError(f"插件 '{entry.name}' 没有来源")
        return entry.source

    def select_strategy(self, entry: ManifestEntry) -> AcquisitionStrategy:
        """选定获取策略: 有匹配资源的发布 → 发布；否则 → 检出"""
        return self._strategy_for(entry, self._require_source(entry))

    def _strategy_for(self, entry: ManifestEntry, src: SourceRef) -> AcquisitionStrategy:
        release = self.provider.latest_release(src.owner, src.repo)
        if release is not None:
            asset = select_asset(release.assets, entry.download)
            if asset is not None:
                return ReleaseStrategy(release=release, asset=asset)
            logger.info(
                "  发布 %s 无匹配资源 (include=%s)，回退到源码检出",
                release.tag, entry.download.asset_include,
            )

        branch = src.branch or self.provider.default_branch(src.owner, src.repo)
        return CheckoutStrategy(branch=branch)

    def acquire(self, entry: ManifestEntry, dest_root: Path) -> AcquisitionResult:
        """获取插件并安装到 dest_root 下

        返回安装的全部顶层目录（主目录在前）。
        失败抛 AcquisitionError 的子类。
        """
        src = self._require_source(entry)
        strategy = self._strategy_for(entry, src)
        with tempfile.TemporaryDirectory(prefix="addonsync-") as scratch:
            match strategy:
                case ReleaseStrategy(release=release, asset=asset):
                    logger.info("  发布获取: %s@%s (%s)", entry.name, release.tag, asset.name)
                    folders = self._from_release(
                        entry, src, release, asset, Path(scratch), dest_root,
                    )
                    return AcquisitionResult(
                        version=release.tag, folders=folders, strategy="release",
                    )
                case CheckoutStrategy(branch=branch):
                    logger.info("  源码检出: %s@%s", entry.name, branch)
                    folders, sha = self._from_checkout(
                        entry, src, branch, Path(scratch), dest_root,
                    )
                    version = f"{branch}@{sha}" if sha else branch
                    return AcquisitionResult(
                        version=version, folders=folders, strategy="checkout",
                    )
                case _:
                    raise TypeError(f"未知获取策略: {strategy!r}")

    def _from_release(
        self,
        entry: ManifestEntry,
        src: SourceRef,
        release: Release,
        asset: ReleaseAsset,
        scratch: Path,
        dest_root: Path,
    ) -> list[str]:
        archive = self.provider.download_asset(
            src.owner, src.repo, release.tag, asset.name, scratch / "download",
        )
        extracted = scratch / "extracted"
        extract_archive(archive, extracted)

        top = sorted(
            (d for d in extracted.iterdir() if d.is_dir() and not d.name.startswith(".")),
            key=lambda d: d.name.lower(),
        )
        if not top:
            raise MalformedSourceError(f"压缩包 {asset.name} 中没有目录")

        wanted = entry.install_folder.lower()
        primary = next((d for d in top if d.name.lower() == wanted), top[0])
        ordered = [primary] + [d for d in top if d is not primary]

        # 附带的其他目录按自身名称独立安装
        for folder in ordered:
            install_tree(folder, dest_root / folder.name)
        return [d.name for d in ordered]

    def _from_checkout(
        self,
        entry: ManifestEntry,
        src: SourceRef,
        branch: str,
        scratch: Path,
        dest_root: Path,
    ) -> tuple[list[str], str]:
        checkout = scratch / "checkout"
        sha = self.provider.clone(src.owner, src.repo, branch, checkout)

        folder = entry.install_folder
        if find_descriptor(checkout, folder) or any(checkout.glob(f"*{DESCRIPTOR_SUFFIX}")):
            install_tree(checkout, dest_root / folder)
        elif find_descriptor(checkout / folder, folder):
            install_tree(checkout / folder, dest_root / folder)
        else:
            raise MalformedSourceError(
                f"{src.slug}@{branch} 中未找到描述文件 {folder}{DESCRIPTOR_SUFFIX}"
                f"（仓库根目录或 {folder}/ 子目录）"
            )
        return [folder], sha

"""配置版本同步

将每个部署目标的配置子树发布为带编号的远端快照，或从快照恢复。
远端布局: v<N>/<target>/<config_subdir>/<path...>
每个版本另有一个标记 blob v<N>/.snapshot，配置子树为空时版本号同样被占用。

  - 版本号为正整数，单调递增，永不复用（下一版本 = 现有最大值 + 1）
  - 指定的本地专属文件（默认 WTF/Config.wtf）既不上传也不被恢复覆盖
  - 远端存储/版本不存在时在任何本地修改之前失败
"""

from __future__ import annotations

import logging
import re
import shutil
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from addonsync.core.config import Config
from addonsync.core.exceptions import (
    StoreNotFoundError,
    SyncError,
    ValidationError,
    VersionNotFoundError,
)
from addonsync.core.protocols import BlobStore
from addonsync.utils.fileio import save_json

logger = logging.getLogger(__name__)

LATEST = "latest"
SNAPSHOT_MARKER = ".snapshot"
_VERSION_RE = re.compile(r"^v(\d+)/")


@dataclass
class RestoreResult:
    version: int
    restored: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


class VersionSyncController:
    """配置快照的发布与恢复"""

    def __init__(self, config: Config, store: BlobStore) -> None:
        self.config = config
        self.store = store

    # ------------------------------------------------------------------
    # 版本查询
    # ------------------------------------------------------------------

    def _require_store(self) -> None:
        if not self.store.exists():
            raise StoreNotFoundError("远端存储不存在或不可访问")

    def list_versions(self) -> list[int]:
        """列出远端已有版本号（升序）"""
        self._require_store()
        versions = set()
        for name in self.store.list_blobs("v"):
            m = _VERSION_RE.match(name)
            if m and int(m.group(1)) > 0:
                versions.add(int(m.group(1)))
        return sorted(versions)

    def latest_version(self) -> int:
        versions = self.list_versions()
        return versions[-1] if versions else 0

    def resolve_version(self, version: int | str = LATEST) -> int:
        """解析版本: 整数 / 数字字符串 / "latest"，不存在抛 VersionNotFoundError"""
        versions = self.list_versions()
        if isinstance(version, str):
            text = version.strip().lower()
            if text == LATEST:
                if not versions:
                    raise VersionNotFoundError("远端没有任何配置快照")
                return versions[-1]
            text = text.removeprefix("v")
            if not text.isdigit():
                raise ValidationError(f"无效的版本: {version!r}，应为正整数或 latest")
            version = int(text)
        if version not in versions:
            raise VersionNotFoundError(f"配置快照 v{version} 不存在，已有: {versions}")
        return version

    # ------------------------------------------------------------------
    # 发布
    # ------------------------------------------------------------------

    def _local_files(self, target: str) -> list[Path]:
        """配置子树下的全部文件，排除本地专属文件"""
        root = self.config.config_dir(target)
        if not root.is_dir():
            return []
        local_only = (root / self.config.local_only_file).resolve()
        return sorted(
            p for p in root.rglob("*")
            if p.is_file() and p.resolve() != local_only
        )

    def _blob_name(self, version: int, target: str, path: Path) -> str:
        rel = path.relative_to(self.config.target_dir(target)).as_posix()
        return f"v{version}/{target}/{rel}"

    def publish(self, targets: list[str] | None = None) -> int:
        """发布新快照，返回新版本号"""
        targets = targets or self.config.targets
        for target in targets:
            self.config.require_target(target)
        version = self.latest_version() + 1
        self._write_marker(version, targets)

        total = 0
        for target in targets:
            files = self._local_files(target)
            for path in files:
                self.store.upload_file(path, self._blob_name(version, target, path))
            total += len(files)
            logger.info("  %s: 已上传 %d 个文件", target, len(files))

        logger.info("配置快照已发布: v%d (%d 个文件)", version, total)
        return version

    def _write_marker(self, version: int, targets: list[str]) -> None:
        """先写版本标记，占用版本号"""
        with tempfile.TemporaryDirectory(prefix="addonsync-marker-") as tmp:
            marker = Path(tmp) / SNAPSHOT_MARKER
            save_json(marker, {
                "version": version,
                "targets": list(targets),
                "created_at": datetime.now(tz=timezone.utc).isoformat(),
            })
            self.store.upload_file(marker, f"v{version}/{SNAPSHOT_MARKER}")

    # ------------------------------------------------------------------
    # 恢复
    # ------------------------------------------------------------------

    def restore(
        self, version: int | str = LATEST, targets: list[str] | None = None,
    ) -> RestoreResult:
        """恢复快照到本地配置子树，返回实际版本号及恢复/跳过的目标

        本地专属文件先移到一旁，清空子树并拉取远端文件后再放回；
        拉取中途失败时也会放回，此时子树处于已清空/部分恢复状态，需重新执行恢复。
        """
        targets = targets or self.config.targets
        resolved = self.resolve_version(version)

        # 本地修改前完成全部检查和远端列举
        result = RestoreResult(version=resolved)
        plan: dict[str, list[str]] = {}
        for target in targets:
            self.config.require_target(target)
            prefix = f"v{resolved}/{target}/{self.config.config_subdir.strip('/')}/"
            blobs = self.store.list_blobs(prefix)
            if not blobs:
                logger.warning("  %s: 快照 v%d 中没有该目标的文件，跳过", target, resolved)
                result.skipped.append(target)
                continue
            plan[target] = blobs

        for target, blobs in plan.items():
            self._restore_target(resolved, target, blobs)
            result.restored.append(target)

        logger.info("配置快照已恢复: v%d -> %s", resolved, ", ".join(plan) or "(无)")
        return result

    def _restore_target(self, version: int, target: str, blobs: list[str]) -> None:
        config_dir = self.config.config_dir(target)
        local_only = config_dir / self.config.local_only_file
        target_root = self.config.target_dir(target)
        prefix = f"v{version}/{target}/"

        with tempfile.TemporaryDirectory(prefix="addonsync-keep-") as keep:
            kept = Path(keep) / local_only.name
            has_local = local_only.is_file()
            if has_local:
                shutil.copy2(local_only, kept)

            if config_dir.exists():
                shutil.rmtree(config_dir)
            config_dir.mkdir(parents=True)

            try:
                for blob in blobs:
                    rel = blob[len(prefix):]
                    if rel == Path(self.config.config_subdir, self.config.local_only_file).as_posix():
                        continue
                    self.store.download_file(blob, target_root / rel)
            except (SyncError, OSError) as e:
                raise SyncError(
                    f"{target}: 拉取 v{version} 中途失败，配置目录已清空，"
                    f"本地专属文件已保留，请重新执行恢复: {e}"
                ) from e
            finally:
                if has_local:
                    local_only.parent.mkdir(parents=True, exist_ok=True)
                    shutil.copy2(kept, local_only)

        logger.info("  %s: 已恢复 %d 个文件", target, len(blobs))

    # ------------------------------------------------------------------
    # 清理
    # ------------------------------------------------------------------

    def prune(self, keep: int) -> list[int]:
        """只保留最新的 keep 个版本，返回被删除的版本号

        最新版本始终保留，版本号不会因删除而被复用。
        """
        if keep < 1:
            raise ValidationError("keep 至少为 1")
        versions = self.list_versions()
        doomed = versions[:-keep] if len(versions) > keep else []
        for v in doomed:
            count = self.store.delete_prefix(f"v{v}/")
            logger.info("  已删除快照 v%d (%d 个文件)", v, count)
        return doomed

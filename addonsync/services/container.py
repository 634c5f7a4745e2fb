"""服务容器 — 统一依赖注入

CLI 通过容器获取服务，同一容器内的实例共享；测试可在构造时注入
source provider / blob store / executor 的替身。

依赖关系（→ 表示依赖）:
  workflow     → orchestrator, sync
  orchestrator → acquirer → source
  sync         → store
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from addonsync.core.config import Config
    from addonsync.core.protocols import BlobStore, SourceProvider
    from addonsync.services.acquirer import ArtifactAcquirer
    from addonsync.services.installer import InstallationOrchestrator
    from addonsync.services.version_sync import VersionSyncController
    from addonsync.services.workflow import AddonSyncWorkflow
    from addonsync.utils.shell import CommandExecutor

logger = logging.getLogger(__name__)


class ServiceContainer:
    """懒加载服务容器"""

    def __init__(
        self,
        config: Config | None = None,
        *,
        source: SourceProvider | None = None,
        store: BlobStore | None = None,
        executor: CommandExecutor | None = None,
    ) -> None:
        if config is None:
            from addonsync.core.config import get_config
            config = get_config()
        self._config = config
        self._executor = executor
        self._instances: dict[str, object] = {}
        if source is not None:
            self._instances["source"] = source
        if store is not None:
            self._instances["store"] = store

    @property
    def config(self) -> Config:
        return self._config

    @property
    def source(self) -> SourceProvider:
        if "source" not in self._instances:
            from addonsync.services.sources import GitHubCliSource
            self._instances["source"] = GitHubCliSource(
                self._executor, timeout=self._config.command_timeout,
            )
        return self._instances["source"]  # type: ignore[return-value]

    @property
    def store(self) -> BlobStore:
        if "store" not in self._instances:
            from addonsync.services.blobstore import create_blob_store
            cfg = self._config
            self._instances["store"] = create_blob_store({
                "backend": cfg.storage_backend,
                "local_dir": cfg.storage_dir,
                "account": cfg.storage_account,
                "container": cfg.storage_container,
                "auth_mode": cfg.storage_auth_mode,
                "timeout": cfg.command_timeout,
            }, executor=self._executor)
        return self._instances["store"]  # type: ignore[return-value]

    @property
    def acquirer(self) -> ArtifactAcquirer:
        if "acquirer" not in self._instances:
            from addonsync.services.acquirer import ArtifactAcquirer
            self._instances["acquirer"] = ArtifactAcquirer(self.source)
        return self._instances["acquirer"]  # type: ignore[return-value]

    @property
    def orchestrator(self) -> InstallationOrchestrator:
        if "orchestrator" not in self._instances:
            from addonsync.services.installer import InstallationOrchestrator
            self._instances["orchestrator"] = InstallationOrchestrator(
                self._config, self.acquirer,
            )
        return self._instances["orchestrator"]  # type: ignore[return-value]

    @property
    def sync(self) -> VersionSyncController:
        if "sync" not in self._instances:
            from addonsync.services.version_sync import VersionSyncController
            self._instances["sync"] = VersionSyncController(self._config, self.store)
        return self._instances["sync"]  # type: ignore[return-value]

    @property
    def workflow(self) -> AddonSyncWorkflow:
        if "workflow" not in self._instances:
            from addonsync.services.workflow import AddonSyncWorkflow
            self._instances["workflow"] = AddonSyncWorkflow(
                self._config, self.orchestrator, self.sync,
            )
        return self._instances["workflow"]  # type: ignore[return-value]


_container: ServiceContainer | None = None


def get_container() -> ServiceContainer:
    """获取全局容器（未初始化则使用当前全局配置创建）"""
    global _container  # noqa: PLW0603
    if _container is None:
        _container = ServiceContainer()
    return _container


def reset_container(container: ServiceContainer | None = None) -> None:
    """替换或清空全局容器（配置变更后、测试中使用）"""
    global _container  # noqa: PLW0603
    _container = container

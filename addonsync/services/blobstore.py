"""远端 blob 存储后端

两种后端：
  - local: 本地/网络共享目录，blob 名即相对路径（默认）
  - azure: 通过 az CLI 访问 Azure Blob Storage 容器

凭据由 az login / 环境变量提供，这里不做引导。
"""

from __future__ import annotations

import json
import logging
import shutil
from pathlib import Path
from typing import Any

from addonsync.core.exceptions import ConfigError, ExecutionError, SyncError, ValidationError
from addonsync.utils.shell import CommandExecutor, get_executor, run_checked

logger = logging.getLogger(__name__)


def _check_blob_name(name: str) -> str:
    """blob 名规范化为 / 分隔且不允许路径穿越"""
    name = name.replace("\\", "/").lstrip("/")
    if not name or any(part in ("", ".", "..") for part in name.split("/")):
        raise ValidationError(f"非法 blob 名称: {name!r}")
    return name


class LocalBlobStore:
    """目录形式的 blob 存储"""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def _path(self, blob_name: str) -> Path:
        return self.root / _check_blob_name(blob_name)

    def exists(self) -> bool:
        return self.root.is_dir()

    def list_blobs(self, prefix: str = "") -> list[str]:
        if not self.root.is_dir():
            return []
        names = (
            p.relative_to(self.root).as_posix()
            for p in self.root.rglob("*") if p.is_file()
        )
        return sorted(n for n in names if n.startswith(prefix))

    def upload_file(self, local_path: Path, blob_name: str) -> None:
        dest = self._path(blob_name)
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(local_path, dest)
        logger.debug("  上传: %s -> %s", local_path, blob_name)

    def download_file(self, blob_name: str, local_path: Path) -> None:
        src = self._path(blob_name)
        if not src.is_file():
            raise SyncError(f"blob 不存在: {blob_name}")
        local_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(src, local_path)
        logger.debug("  下载: %s -> %s", blob_name, local_path)

    def delete_blob(self, blob_name: str) -> None:
        self._path(blob_name).unlink(missing_ok=True)

    def delete_prefix(self, prefix: str) -> int:
        names = self.list_blobs(prefix)
        for name in names:
            self.delete_blob(name)
        # 清理空目录
        for d in sorted(self.root.rglob("*"), key=lambda p: len(p.parts), reverse=True):
            if d.is_dir() and not any(d.iterdir()):
                d.rmdir()
        return len(names)


class AzureBlobStore:
    """通过 az storage blob 命令访问的容器"""

    def __init__(
        self,
        account: str,
        container: str,
        *,
        auth_mode: str = "login",
        executor: CommandExecutor | None = None,
        timeout: int | None = None,
    ) -> None:
        if not account or not container:
            raise ConfigError("azure 存储需要配置 storage_account 和 storage_container")
        self.account = account
        self.container = container
        self.auth_mode = auth_mode
        self.executor = executor or get_executor()
        self.timeout = timeout

    def _az(self, *args: str, label: str) -> str:
        cmd = [
            "az", "storage", *args,
            "--account-name", self.account,
            "--auth-mode", self.auth_mode,
            "--only-show-errors",
        ]
        try:
            r = run_checked(self.executor, cmd, timeout=self.timeout, label=label)
        except ExecutionError as e:
            raise SyncError(f"{label} 失败: {e}") from e
        return r.stdout

    @staticmethod
    def _parse(output: str) -> Any:
        try:
            return json.loads(output or "null")
        except json.JSONDecodeError as e:
            raise SyncError(f"az 输出格式错误: {e}") from e

    def exists(self) -> bool:
        out = self._az(
            "container", "exists", "--name", self.container, "--output", "json",
            label="az container exists",
        )
        data = self._parse(out)
        return bool(isinstance(data, dict) and data.get("exists"))

    def list_blobs(self, prefix: str = "") -> list[str]:
        args = [
            "blob", "list", "--container-name", self.container,
            "--num-results", "*", "--query", "[].name", "--output", "json",
        ]
        if prefix:
            args += ["--prefix", prefix]
        data = self._parse(self._az(*args, label="az blob list"))
        return sorted(n for n in data or [] if isinstance(n, str))

    def upload_file(self, local_path: Path, blob_name: str) -> None:
        self._az(
            "blob", "upload", "--container-name", self.container,
            "--name", _check_blob_name(blob_name), "--file", str(local_path),
            "--overwrite",
            label="az blob upload",
        )

    def download_file(self, blob_name: str, local_path: Path) -> None:
        local_path.parent.mkdir(parents=True, exist_ok=True)
        self._az(
            "blob", "download", "--container-name", self.container,
            "--name", _check_blob_name(blob_name), "--file", str(local_path),
            "--overwrite",
            label="az blob download",
        )

    def delete_blob(self, blob_name: str) -> None:
        self._az(
            "blob", "delete", "--container-name", self.container,
            "--name", _check_blob_name(blob_name),
            label="az blob delete",
        )

    def delete_prefix(self, prefix: str) -> int:
        names = self.list_blobs(prefix)
        if names:
            self._az(
                "blob", "delete-batch", "--source", self.container,
                "--pattern", f"{prefix}*",
                label="az blob delete-batch",
            )
        return len(names)


def create_blob_store(
    config: dict | None = None,
    executor: CommandExecutor | None = None,
) -> LocalBlobStore | AzureBlobStore:
    """根据配置创建存储后端"""
    if config is None:
        config = {}

    backend = config.get("backend", "local")
    if backend == "azure":
        return AzureBlobStore(
            account=config.get("account", ""),
            container=config.get("container", ""),
            auth_mode=config.get("auth_mode", "login"),
            executor=executor,
            timeout=config.get("timeout"),
        )
    if backend != "local":
        raise ConfigError(f"不支持的存储后端: {backend}")
    return LocalBlobStore(config.get("local_dir", "data/remote"))

"""外部协作方协议

源码托管平台与远端 blob 存储都通过命令行工具访问，核心逻辑只依赖这里
定义的逻辑操作，不关心具体传输方式。使用 typing.Protocol，
测试替身无需继承即可满足协议。
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

from addonsync.core.models import Release

# =========================================================================
# 源码托管平台
# =========================================================================


class SourceProvider(Protocol):
    """源码仓库提供者"""

    def latest_release(self, owner: str, repo: str) -> Release | None:
        """获取最新发布，无发布返回 None"""
        ...

    def download_asset(
        self, owner: str, repo: str, tag: str, asset_name: str, dest_dir: Path,
    ) -> Path:
        """下载发布资源到 dest_dir，返回文件路径"""
        ...

    def clone(self, owner: str, repo: str, ref: str, dest: Path) -> str:
        """浅克隆指定分支到 dest，返回 commit SHA"""
        ...

    def default_branch(self, owner: str, repo: str) -> str:
        """获取仓库默认分支名"""
        ...


# =========================================================================
# 远端 blob 存储
# =========================================================================


class BlobStore(Protocol):
    """blob 存储，名称使用 / 分隔的路径"""

    def exists(self) -> bool:
        """存储（容器/根目录）是否存在"""
        ...

    def list_blobs(self, prefix: str = "") -> list[str]:
        """列出以 prefix 开头的 blob 名称"""
        ...

    def upload_file(self, local_path: Path, blob_name: str) -> None:
        ...

    def download_file(self, blob_name: str, local_path: Path) -> None:
        ...

    def delete_blob(self, blob_name: str) -> None:
        ...

    def delete_prefix(self, prefix: str) -> int:
        """删除 prefix 下的全部 blob，返回删除数量"""
        ...

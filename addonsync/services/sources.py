"""源码托管平台适配器 — gh CLI + git

职责：
- 查询最新发布及其资源列表 (gh api)
- 下载发布资源 (gh release download)
- 浅克隆指定分支 (git clone --depth 1)
- 查询默认分支
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path

from addonsync.core.exceptions import ExecutionError, TransportError, ValidationError
from addonsync.core.models import Release, ReleaseAsset
from addonsync.utils.shell import CommandExecutor, get_executor, run_checked

logger = logging.getLogger(__name__)

_SAFE_REF_RE = re.compile(r"^[a-zA-Z0-9_./@\-]+$")
_SAFE_NAME_RE = re.compile(r"^[a-zA-Z0-9_.\-]+$")
_NOT_FOUND_MARKERS = ("HTTP 404", "Not Found")


def _check_slug(owner: str, repo: str) -> None:
    for part in (owner, repo):
        if not _SAFE_NAME_RE.match(part or ""):
            raise ValidationError(f"仓库名包含非法字符: {owner}/{repo}")


class GitHubCliSource:
    """通过 gh / git 命令行访问 GitHub"""

    def __init__(
        self,
        executor: CommandExecutor | None = None,
        *,
        host: str = "github.com",
        timeout: int | None = None,
    ) -> None:
        self.executor = executor or get_executor()
        self.host = host
        self.timeout = timeout

    def _gh_api(self, path: str) -> dict | None:
        """调用 gh api，404 返回 None，其他失败抛 TransportError"""
        try:
            r = self.executor.execute(
                ["gh", "api", "-H", "Accept: application/vnd.github+json", path],
                timeout=self.timeout,
            )
        except ExecutionError as e:
            raise TransportError(f"gh api 调用失败 {path}: {e}") from e
        if r.success:
            try:
                data = json.loads(r.stdout or "null")
            except json.JSONDecodeError as e:
                raise TransportError(f"gh api 响应格式错误: {path} - {e}") from e
            return data if isinstance(data, dict) else None
        if any(m in r.stderr for m in _NOT_FOUND_MARKERS):
            return None
        raise TransportError(f"gh api 失败 (rc={r.returncode}) {path}: {r.stderr.strip()[:300]}")

    def latest_release(self, owner: str, repo: str) -> Release | None:
        _check_slug(owner, repo)
        data = self._gh_api(f"repos/{owner}/{repo}/releases/latest")
        if not data or not data.get("tag_name"):
            logger.info("  无发布: %s/%s", owner, repo)
            return None
        assets = [
            ReleaseAsset(name=a.get("name", ""), url=a.get("browser_download_url", ""))
            for a in data.get("assets") or []
            if a.get("name")
        ]
        return Release(tag=data["tag_name"], assets=assets)

    def download_asset(
        self, owner: str, repo: str, tag: str, asset_name: str, dest_dir: Path,
    ) -> Path:
        _check_slug(owner, repo)
        dest_dir.mkdir(parents=True, exist_ok=True)
        try:
            run_checked(
                self.executor,
                [
                    "gh", "release", "download", tag,
                    "--repo", f"{owner}/{repo}",
                    "--pattern", asset_name,
                    "--dir", str(dest_dir),
                    "--clobber",
                ],
                timeout=self.timeout,
                label="gh release download",
            )
        except ExecutionError as e:
            raise TransportError(f"下载失败 {owner}/{repo}@{tag} {asset_name}: {e}") from e
        path = dest_dir / asset_name
        if not path.is_file():
            raise TransportError(f"下载后未找到资源文件: {path}")
        return path

    def clone(self, owner: str, repo: str, ref: str, dest: Path) -> str:
        _check_slug(owner, repo)
        if ref and not _SAFE_REF_RE.match(ref):
            raise ValidationError(f"ref 包含非法字符: {ref}")
        url = f"https://{self.host}/{owner}/{repo}.git"
        cmd = ["git", "clone", "--depth", "1"]
        if ref:
            cmd += ["--branch", ref]
        cmd += [url, str(dest)]
        try:
            run_checked(self.executor, cmd, timeout=self.timeout, label="git clone")
        except ExecutionError as e:
            raise TransportError(f"克隆失败 {owner}/{repo}@{ref or 'HEAD'}: {e}") from e
        try:
            r = self.executor.execute(
                ["git", "rev-parse", "HEAD"], cwd=str(dest), timeout=self.timeout,
            )
        except ExecutionError as e:
            raise TransportError(f"读取检出版本失败 {owner}/{repo}: {e}") from e
        return r.stdout.strip()[:12] if r.success else ""

    def default_branch(self, owner: str, repo: str) -> str:
        _check_slug(owner, repo)
        data = self._gh_api(f"repos/{owner}/{repo}")
        if not data:
            raise TransportError(f"仓库不存在: {owner}/{repo}")
        return data.get("default_branch") or "main"

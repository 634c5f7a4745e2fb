"""共享 fixture — 内存中的源码平台替身 + 游戏目录布局

FakeSource 满足 SourceProvider 协议:
  - releases:  {(owner, repo): Release}
  - archives:  {(owner, repo, tag, asset): {相对路径: 内容}}，下载时现场打成 zip
  - repos:     {(owner, repo): {相对路径: 内容}}，clone 时写入目标目录（附带 .git/）
  - fail_download / fail_clone: 需要模拟网络失败的仓库集合
"""

from __future__ import annotations

import zipfile
from pathlib import Path

import pytest

from addonsync.core.config import Config
from addonsync.core.exceptions import TransportError
from addonsync.core.models import Release, ReleaseAsset
from addonsync.utils.shell import CommandResult


def toc(title: str, version: str = "1.0", deps: str = "") -> str:
    """生成描述文件文本"""
    lines = [f"## Title: {title}", f"## Version: {version}", "## Author: tester"]
    if deps:
        lines.append(f"## Dependencies: {deps}")
    lines.append(f"{title}.lua")
    return "\n".join(lines) + "\n"


def addon_files(folder: str, version: str = "1.0", deps: str = "") -> dict[str, str]:
    return {
        f"{folder}/{folder}.toc": toc(folder, version, deps),
        f"{folder}/{folder}.lua": f"-- {folder}\n",
    }


def make_addon(addons_dir: Path, folder: str, version: str = "1.0", deps: str = "") -> Path:
    """直接在磁盘上放一个已安装插件"""
    for rel, content in addon_files(folder, version, deps).items():
        p = addons_dir / rel
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(content, encoding="utf-8")
    return addons_dir / folder


class FakeSource:
    def __init__(self) -> None:
        self.releases: dict[tuple[str, str], Release] = {}
        self.archives: dict[tuple[str, str, str, str], dict[str, str]] = {}
        self.repos: dict[tuple[str, str], dict[str, str]] = {}
        self.default_branches: dict[tuple[str, str], str] = {}
        self.fail_download: set[tuple[str, str]] = set()
        self.fail_clone: set[tuple[str, str]] = set()
        self.calls: list[tuple] = []

    # ---- 构造数据的便捷方法 ----

    def add_release(
        self, owner: str, repo: str, tag: str, asset: str, files: dict[str, str],
    ) -> None:
        rel = self.releases.setdefault((owner, repo), Release(tag=tag))
        rel.tag = tag
        rel.assets.append(ReleaseAsset(name=asset, url=f"https://example.com/{asset}"))
        self.archives[(owner, repo, tag, asset)] = files

    def add_repo(self, owner: str, repo: str, files: dict[str, str], branch: str = "main") -> None:
        self.repos[(owner, repo)] = files
        self.default_branches[(owner, repo)] = branch

    # ---- SourceProvider ----

    def latest_release(self, owner: str, repo: str) -> Release | None:
        self.calls.append(("latest_release", owner, repo))
        return self.releases.get((owner, repo))

    def download_asset(
        self, owner: str, repo: str, tag: str, asset_name: str, dest_dir: Path,
    ) -> Path:
        self.calls.append(("download_asset", owner, repo, tag, asset_name))
        if (owner, repo) in self.fail_download:
            raise TransportError(f"模拟下载失败: {owner}/{repo}")
        dest_dir.mkdir(parents=True, exist_ok=True)
        path = dest_dir / asset_name
        files = self.archives[(owner, repo, tag, asset_name)]
        if files is None:
            path.write_bytes(b"not an archive")
            return path
        with zipfile.ZipFile(path, "w") as zf:
            for rel, content in files.items():
                zf.writestr(rel, content)
        return path

    def clone(self, owner: str, repo: str, ref: str, dest: Path) -> str:
        self.calls.append(("clone", owner, repo, ref))
        if (owner, repo) in self.fail_clone or (owner, repo) not in self.repos:
            raise TransportError(f"模拟克隆失败: {owner}/{repo}")
        dest.mkdir(parents=True, exist_ok=True)
        (dest / ".git").mkdir()
        (dest / ".git" / "HEAD").write_text("ref: refs/heads/main\n")
        for rel, content in self.repos[(owner, repo)].items():
            p = dest / rel
            p.parent.mkdir(parents=True, exist_ok=True)
            p.write_text(content, encoding="utf-8")
        return "abc123def456"

    def default_branch(self, owner: str, repo: str) -> str:
        self.calls.append(("default_branch", owner, repo))
        return self.default_branches.get((owner, repo), "main")


class RecordingExecutor:
    """按命令前缀返回预设结果的执行器，记录全部命令"""

    def __init__(self) -> None:
        self.commands: list[list[str]] = []
        self.responses: dict[tuple[str, ...], CommandResult] = {}

    def on(self, *prefix: str, stdout: str = "", returncode: int = 0, stderr: str = "") -> None:
        self.responses[prefix] = CommandResult(returncode, stdout, stderr)

    def execute(self, cmd: list[str], *, cwd: str = ".", timeout: int | None = None) -> CommandResult:
        self.commands.append(cmd)
        for prefix, result in self.responses.items():
            if tuple(cmd[:len(prefix)]) == prefix:
                return result
        return CommandResult(0, "", "")


@pytest.fixture()
def fake_source() -> FakeSource:
    return FakeSource()


@pytest.fixture()
def config(tmp_path: Path) -> Config:
    """单目标游戏目录: <tmp>/game/_retail_/{Interface/AddOns, WTF}"""
    game = tmp_path / "game"
    (game / "_retail_" / "Interface" / "AddOns").mkdir(parents=True)
    (game / "_retail_" / "WTF").mkdir(parents=True)
    return Config(
        game_dir=str(game),
        targets=["_retail_"],
        manifest=str(tmp_path / "addons.json"),
        storage_dir=str(tmp_path / "remote"),
    )

"""安装编排器测试 — 状态机、计数、依赖排除与删除"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from addonsync.core.exceptions import ConfigError, ExecutionError
from addonsync.core.manifest import Manifest
from addonsync.core.models import ManifestEntry, PackageOutcome, SourceRef
from addonsync.services.acquirer import ArtifactAcquirer
from addonsync.services.installer import InstallationOrchestrator
from addonsync.services.sources import GitHubCliSource
from addonsync.utils.shell import CommandResult
from tests.conftest import addon_files, make_addon


def _entry(name: str, sourced: bool = True) -> ManifestEntry:
    src = SourceRef(owner="dev", repo=name) if sourced else None
    return ManifestEntry(name=name, source=src)


class TimeoutOnceExecutor:
    """对 slow 仓库的 gh api 超时；其他仓库无发布，检出时写入插件文件"""

    def __init__(self, slow: str) -> None:
        self.slow = slow

    def execute(self, cmd: list[str], *, cwd: str = ".", timeout: int | None = None) -> CommandResult:
        if cmd[:2] == ["gh", "api"]:
            path = cmd[-1]
            if path.startswith(f"repos/dev/{self.slow}"):
                raise ExecutionError(f"命令超时 (30s): {' '.join(cmd)}")
            if path.endswith("/releases/latest"):
                return CommandResult(1, "", "gh: Not Found (HTTP 404)")
            return CommandResult(0, json.dumps({"default_branch": "main"}), "")
        if cmd[:2] == ["git", "clone"]:
            dest = Path(cmd[-1])
            name = cmd[-2].rsplit("/", 1)[-1].removesuffix(".git")
            make_addon(dest, name)
            return CommandResult(0, "", "")
        if cmd[:2] == ["git", "rev-parse"]:
            return CommandResult(0, "0123456789abcdef\n", "")
        return CommandResult(1, "", f"unexpected: {cmd}")


@pytest.fixture()
def orchestrator(config, fake_source) -> InstallationOrchestrator:
    return InstallationOrchestrator(config, ArtifactAcquirer(fake_source))


@pytest.fixture()
def addons_dir(config) -> Path:
    return config.addons_dir("_retail_")


class TestInstallTarget:
    def test_installs_and_tracks_version(self, orchestrator, fake_source, addons_dir) -> None:
        fake_source.add_release("dev", "BugSack", "v1.0", "BugSack.zip", addon_files("BugSack"))
        manifest = Manifest([_entry("BugSack")])

        report = orchestrator.install_target("_retail_", manifest)

        assert (addons_dir / "BugSack").is_dir()
        assert report.installed == 1
        assert report.outcomes["BugSack"] == PackageOutcome.INSTALLED
        tracking = manifest.get("BugSack").tracking
        assert tracking.installed_version == "v1.0"
        assert tracking.latest_version == "v1.0"
        assert tracking.last_checked
        assert tracking.folders == ["BugSack"]

    def test_second_run_skips_everything(self, orchestrator, fake_source) -> None:
        fake_source.add_release("dev", "A", "v1", "A.zip", addon_files("A"))
        fake_source.add_repo("dev", "B", addon_files("B"))
        manifest = Manifest([_entry("A"), _entry("B")])

        first = orchestrator.install_target("_retail_", manifest)
        calls_after_first = len(fake_source.calls)
        second = orchestrator.install_target("_retail_", manifest)

        assert first.installed == 2
        assert second.installed == 0
        assert second.skipped == 2
        assert len(fake_source.calls) == calls_after_first

    def test_force_reinstalls(self, orchestrator, fake_source, addons_dir) -> None:
        fake_source.add_release("dev", "A", "v2", "A.zip", addon_files("A", "v2"))
        make_addon(addons_dir, "A", version="v1")
        manifest = Manifest([_entry("A")])

        report = orchestrator.install_target("_retail_", manifest, force=True)

        assert report.installed == 1
        assert "v2" in (addons_dir / "A" / "A.toc").read_text()

    def test_unsourced_entry_is_warned(self, orchestrator) -> None:
        manifest = Manifest([_entry("Local", sourced=False)])
        report = orchestrator.install_target("_retail_", manifest)
        assert report.warned == 1
        assert report.failed == 0
        assert report.outcomes["Local"] == PackageOutcome.WARNED

    def test_disabled_entry_ignored(self, orchestrator, fake_source) -> None:
        entry = _entry("A")
        entry.tracking.enabled = False
        report = orchestrator.install_target("_retail_", Manifest([entry]))
        assert report.outcomes == {}
        assert fake_source.calls == []

    def test_failure_does_not_stop_loop(self, orchestrator, fake_source, addons_dir) -> None:
        fake_source.add_release("dev", "Bad", "v1", "Bad.zip", addon_files("Bad"))
        fake_source.fail_download.add(("dev", "Bad"))
        fake_source.add_release("dev", "Good", "v1", "Good.zip", addon_files("Good"))
        manifest = Manifest([_entry("Bad"), _entry("Good")])

        report = orchestrator.install_target("_retail_", manifest)

        assert report.failed == 1
        assert report.installed == 1
        assert "模拟下载失败" in report.errors["Bad"]
        assert manifest.get("Bad").tracking.installed_version == ""
        assert (addons_dir / "Good").is_dir()

    def test_command_timeout_isolated_to_one_package(self, config, addons_dir) -> None:
        source = GitHubCliSource(TimeoutOnceExecutor(slow="A"))
        orch = InstallationOrchestrator(config, ArtifactAcquirer(source))
        manifest = Manifest([_entry("A"), _entry("B")])

        report = orch.install_target("_retail_", manifest)

        assert report.outcomes["A"] == PackageOutcome.FAILED
        assert "命令超时" in report.errors["A"]
        assert report.outcomes["B"] == PackageOutcome.INSTALLED
        assert (addons_dir / "B" / "B.toc").is_file()
        assert manifest.get("B").tracking.installed_version == "main@0123456789ab"
        assert config.inventory_path("_retail_").is_file()

    def test_installed_dependency_violation_excluded_and_removed(
        self, orchestrator, fake_source, addons_dir,
    ) -> None:
        # Lib 没有来源；Mod 依赖 Lib，Ext 依赖 Mod，均已安装
        make_addon(addons_dir, "Lib")
        make_addon(addons_dir, "Mod", deps="Lib")
        make_addon(addons_dir, "Ext", deps="Mod")
        manifest = Manifest([_entry("Lib", sourced=False), _entry("Mod"), _entry("Ext")])

        report = orchestrator.install_target("_retail_", manifest)

        assert report.outcomes["Mod"] == PackageOutcome.EXCLUDED
        assert report.errors["Mod"] == "依赖不可安装: Lib"
        assert report.errors["Ext"] == "依赖不可安装: Mod"
        assert report.excluded == 2
        assert sorted(report.removed_names) == ["Ext", "Mod"]
        assert report.removed == 2
        assert (addons_dir / "Lib").is_dir()
        assert not (addons_dir / "Mod").exists()
        assert not (addons_dir / "Ext").exists()
        assert fake_source.calls == []

    def test_newly_installed_package_pruned_when_dependency_unsatisfiable(
        self, orchestrator, fake_source, addons_dir,
    ) -> None:
        fake_source.add_release("dev", "Mod", "v1", "Mod.zip", addon_files("Mod", deps="Lib"))
        manifest = Manifest([_entry("Lib", sourced=False), _entry("Mod")])

        report = orchestrator.install_target("_retail_", manifest)

        assert report.installed == 1
        assert report.removed_names == ["Mod"]
        assert not (addons_dir / "Mod").exists()

    def test_prune_covers_untouched_packages(self, orchestrator, addons_dir) -> None:
        """清单之外的已安装插件同样参与删除检查"""
        make_addon(addons_dir, "Manual", deps="Lib")
        manifest = Manifest([_entry("Lib", sourced=False)])
        report = orchestrator.install_target("_retail_", manifest)
        assert report.removed_names == ["Manual"]

    def test_cycle_not_excluded(self, orchestrator, addons_dir) -> None:
        make_addon(addons_dir, "X", deps="Y")
        make_addon(addons_dir, "Y", deps="X")
        manifest = Manifest([_entry("X"), _entry("Y")])
        report = orchestrator.install_target("_retail_", manifest)
        assert report.skipped == 2
        assert report.excluded == 0
        assert report.removed == 0

    def test_names_narrowing(self, orchestrator, fake_source) -> None:
        fake_source.add_release("dev", "A", "v1", "A.zip", addon_files("A"))
        fake_source.add_release("dev", "B", "v1", "B.zip", addon_files("B"))
        manifest = Manifest([_entry("A"), _entry("B")])
        report = orchestrator.install_target("_retail_", manifest, names=["a"])
        assert list(report.outcomes) == ["A"]

    def test_companion_folders_installed(self, orchestrator, fake_source, addons_dir) -> None:
        files = {**addon_files("BugSack", deps="!BugGrabber"), **addon_files("!BugGrabber")}
        fake_source.add_release("dev", "BugSack", "v1", "BugSack.zip", files)
        manifest = Manifest([_entry("BugSack")])

        report = orchestrator.install_target("_retail_", manifest)

        assert report.removed == 0
        assert (addons_dir / "BugSack").is_dir()
        assert (addons_dir / "!BugGrabber").is_dir()
        assert manifest.get("BugSack").tracking.folders == ["BugSack", "!BugGrabber"]

    def test_inventory_regenerated(self, orchestrator, fake_source, config) -> None:
        fake_source.add_release("dev", "A", "v1", "A.zip", addon_files("A", "v1"))
        orchestrator.install_target("_retail_", Manifest([_entry("A")]))
        doc = json.loads(config.inventory_path("_retail_").read_text(encoding="utf-8"))
        assert doc["target"] == "_retail_"
        assert [p["folder"] for p in doc["packages"]] == ["A"]
        assert doc["packages"][0]["version"] == "v1"

    def test_missing_target_is_config_error(self, orchestrator) -> None:
        with pytest.raises(ConfigError):
            orchestrator.install_target("_ptr_", Manifest())


class TestInstallAll:
    def test_one_report_per_target(self, config, fake_source) -> None:
        (Path(config.game_dir) / "_classic_").mkdir()
        config.targets = ["_retail_", "_classic_"]
        fake_source.add_release("dev", "A", "v1", "A.zip", addon_files("A"))
        orch = InstallationOrchestrator(config, ArtifactAcquirer(fake_source))

        reports = orch.install_all(Manifest([_entry("A")]))

        assert [r.target for r in reports] == ["_retail_", "_classic_"]
        assert all(r.installed == 1 for r in reports)
        assert (config.addons_dir("_classic_") / "A").is_dir()

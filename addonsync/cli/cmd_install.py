"""CLI — 插件清单与安装命令"""

from __future__ import annotations

import click

from addonsync.cli import _svc
from addonsync.core.models import DownloadConfig, ManifestEntry, SourceRef, TargetReport


def register(group: click.Group) -> None:
    group.add_command(install)
    group.add_command(list_addons)
    group.add_command(add)
    group.add_command(discover)
    group.add_command(inventory)


def echo_reports(reports: list[TargetReport]) -> None:
    """输出各部署目标的汇总和失败明细"""
    for r in reports:
        click.echo(r.summary())
        for name, msg in r.errors.items():
            click.echo(f"  {name}: {msg}")


@click.command()
@click.argument("names", nargs=-1)
@click.option("--force", "-f", is_flag=True, help="已安装的插件也重新获取")
@click.option("--target", "-t", multiple=True, help="只处理指定部署目标（可多次指定）")
def install(names: tuple[str, ...], force: bool, target: tuple[str, ...]) -> None:
    """按清单安装插件（可指定插件名）"""
    reports = _svc().workflow.install(
        list(names) or None, force=force, targets=list(target) or None,
    )
    echo_reports(reports)
    if any(not r.success for r in reports):
        raise SystemExit(1)


@click.command(name="list")
def list_addons() -> None:
    """列出清单中的插件"""
    manifest = _svc().workflow.load_manifest()
    if not len(manifest):
        click.echo("清单为空。")
        return
    for e in manifest:
        src = e.source.slug if e.source else "(无来源)"
        state = "" if e.tracking.enabled else " [禁用]"
        click.echo(
            f"  {e.name:24s} {e.tracking.installed_version or '-':16s} {src}{state}"
        )


@click.command()
@click.argument("name")
@click.argument("owner")
@click.argument("repo")
@click.option("--branch", default="", help="源码检出分支（默认使用仓库默认分支）")
@click.option("--include", "asset_include", default="*.zip", help="发布资源匹配模式")
@click.option("--exclude", "asset_exclude", multiple=True, help="排除的发布资源模式（可多次指定）")
@click.option("--folder", default="", help="安装目录名（默认与插件名相同）")
def add(
    name: str, owner: str, repo: str, branch: str,
    asset_include: str, asset_exclude: tuple[str, ...], folder: str,
) -> None:
    """向清单登记插件"""
    entry = _svc().workflow.add(ManifestEntry(
        name=name,
        source=SourceRef(owner=owner, repo=repo, branch=branch),
        download=DownloadConfig(
            asset_include=asset_include,
            asset_exclude=list(asset_exclude),
            folder=folder,
        ),
    ))
    click.echo(f"已登记: {entry.name} -> {entry.source.slug}")  # type: ignore[union-attr]


@click.command()
@click.option("--target", "-t", multiple=True, help="只扫描指定部署目标")
def discover(target: tuple[str, ...]) -> None:
    """把清单之外的已安装插件登记为无来源条目"""
    added = _svc().workflow.discover(list(target) or None)
    if not added:
        click.echo("没有发现未登记的插件。")
        return
    click.echo(f"已登记 {len(added)} 个插件（需补充来源）:")
    for name in added:
        click.echo(f"  {name}")


@click.command()
@click.argument("target")
def inventory(target: str) -> None:
    """显示部署目标的已安装插件"""
    from addonsync.core.descriptor import scan_installed

    cfg = _svc().config
    cfg.require_target(target)
    installed = scan_installed(cfg.addons_dir(target))
    if not installed:
        click.echo("没有已安装的插件。")
        return
    for pkg in installed.values():
        d = pkg.to_dict()
        deps = f"  deps: {', '.join(d['dependencies'])}" if d["dependencies"] else ""
        click.echo(f"  {d['folder']:28s} {d['version'] or '-':14s}{deps}")

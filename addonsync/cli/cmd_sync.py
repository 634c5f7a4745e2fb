"""CLI — 配置快照同步命令"""

from __future__ import annotations

import click

from addonsync.cli import _svc
from addonsync.cli.cmd_install import echo_reports


def register(group: click.Group) -> None:
    group.add_command(push)
    group.add_command(pull)
    group.add_command(versions)
    group.add_command(prune)


@click.command()
@click.option("--target", "-t", multiple=True, help="只发布指定部署目标")
def push(target: tuple[str, ...]) -> None:
    """发布配置快照（新版本号 = 远端最大版本 + 1）"""
    version = _svc().workflow.push(list(target) or None)
    click.echo(f"配置快照已发布: v{version}")


@click.command()
@click.argument("version", default="latest")
@click.option("--force", "-f", is_flag=True, help="已安装的插件也重新获取")
@click.option("--target", "-t", multiple=True, help="只恢复指定部署目标")
@click.option("--no-install", is_flag=True, help="只恢复配置，不安装插件")
def pull(version: str, force: bool, target: tuple[str, ...], no_install: bool) -> None:
    """恢复配置快照并安装快照记录的插件"""
    svc = _svc()
    targets = list(target) or None
    if no_install:
        restored = svc.sync.restore(version, targets)
        click.echo(f"配置快照已恢复: v{restored.version}")
        for name in restored.skipped:
            click.echo(f"  {name}: 快照中没有该目标，未改动")
        return
    result = svc.workflow.pull(version, force=force, targets=targets)
    click.echo(f"配置快照已恢复: v{result.version}")
    echo_reports(result.reports)
    if any(not r.success for r in result.reports):
        raise SystemExit(1)


@click.command()
def versions() -> None:
    """列出远端配置快照版本"""
    found = _svc().sync.list_versions()
    if not found:
        click.echo("远端没有配置快照。")
        return
    latest = found[-1]
    for v in found:
        marker = " <- latest" if v == latest else ""
        click.echo(f"  v{v}{marker}")


@click.command()
@click.option("--keep", default=10, show_default=True, help="保留最新的版本数")
def prune(keep: int) -> None:
    """删除旧的配置快照"""
    removed = _svc().sync.prune(keep)
    if not removed:
        click.echo("没有需要删除的快照。")
        return
    click.echo(f"已删除: {', '.join(f'v{v}' for v in removed)}")

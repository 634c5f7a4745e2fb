"""addonsync 命令行接口

CLI 按领域拆分为子模块，每个模块注册自己的命令到 main group。
"""

from __future__ import annotations

import os
from typing import Any

import click

from addonsync import __version__
from addonsync.core.exceptions import AddonSyncError
from addonsync.utils.logger import setup_logging


class _ErrorReportingGroup(click.Group):
    """业务异常统一输出一次并以退出码 1 结束"""

    def invoke(self, ctx: click.Context) -> Any:
        try:
            return super().invoke(ctx)
        except AddonSyncError as e:
            raise click.ClickException(f"[{e.code}] {e}") from e


def _svc() -> Any:
    """获取全局服务容器的快捷方式"""
    from addonsync.services.container import get_container
    return get_container()


@click.group(cls=_ErrorReportingGroup)
@click.version_option(version=__version__)
@click.option(
    "--config", "-c", "config_path",
    default=lambda: os.getenv("ADDONSYNC_CONFIG", "addonsync.yml"),
    help="配置文件路径",
)
def main(config_path: str) -> None:
    """addonsync - 插件安装与配置版本同步"""
    setup_logging(
        level=os.getenv("ADDONSYNC_LOG_LEVEL", "INFO"),
        json_output=os.getenv("ADDONSYNC_LOG_JSON", "") == "1",
    )
    from addonsync.core.config import init_config
    from addonsync.services.container import ServiceContainer, reset_container
    reset_container(ServiceContainer(init_config(config_path)))


from addonsync.cli.cmd_install import register as _reg_install  # noqa: E402
from addonsync.cli.cmd_sync import register as _reg_sync  # noqa: E402

_reg_install(main)
_reg_sync(main)

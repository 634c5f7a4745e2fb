"""集中配置管理

统一的配置入口，支持从 YAML 文件加载 + 编程式覆盖。
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path

import yaml

from addonsync.core.exceptions import ConfigError
from addonsync.utils.fileio import load_yaml

logger = logging.getLogger(__name__)


@dataclass
class Config:
    """全局配置"""

    # 游戏客户端
    game_dir: str = "."
    targets: list[str] = field(default_factory=lambda: ["_retail_"])
    addons_subdir: str = "Interface/AddOns"
    config_subdir: str = "WTF"
    local_only_file: str = "Config.wtf"
    inventory_file: str = "AddonInventory.json"

    # 清单
    manifest: str = "data/addons.json"

    # 远端存储: local（目录）/ azure（az CLI）
    storage_backend: str = "local"
    storage_dir: str = "data/remote"
    storage_account: str = ""
    storage_container: str = "addonsync"
    storage_auth_mode: str = "login"

    # 外部命令超时（秒），不设置则由底层传输决定
    command_timeout: int | None = None

    extra: dict = field(default_factory=dict)

    @classmethod
    def from_file(cls, path: str = "addonsync.yml") -> Config:
        """从 YAML 文件加载配置，文件不存在返回默认值"""
        try:
            data = load_yaml(path)
        except (yaml.YAMLError, ValueError) as e:
            raise ConfigError(f"配置文件无效: {path} - {e}") from e
        if not data:
            return cls()
        known = {f.name for f in cls.__dataclass_fields__.values()}
        matched = {k: v for k, v in data.items() if k in known and k != "extra"}
        extra = {k: v for k, v in data.items() if k not in known}
        if isinstance(matched.get("targets"), str):
            matched["targets"] = [matched["targets"]]
        cfg = cls(**matched)
        cfg.extra = extra
        return cfg

    def target_dir(self, target: str) -> Path:
        return Path(self.game_dir) / target

    def addons_dir(self, target: str) -> Path:
        """插件安装目录: <game_dir>/<target>/Interface/AddOns"""
        return self.target_dir(target) / self.addons_subdir

    def config_dir(self, target: str) -> Path:
        """配置子树: <game_dir>/<target>/WTF"""
        return self.target_dir(target) / self.config_subdir

    def inventory_path(self, target: str) -> Path:
        return self.config_dir(target) / self.inventory_file

    def require_target(self, target: str) -> Path:
        """校验目标目录存在，不存在视为配置错误"""
        path = self.target_dir(target)
        if not path.is_dir():
            raise ConfigError(f"部署目标目录不存在: {path}")
        return path

    def to_dict(self) -> dict:
        return asdict(self)


# 全局单例，首次 import 时不加载文件；由 CLI 入口显式初始化
_current: Config | None = None


def get_config() -> Config:
    """获取当前配置（未初始化则返回默认值）"""
    global _current  # noqa: PLW0603
    if _current is None:
        _current = Config()
    return _current


def init_config(path: str = "addonsync.yml") -> Config:
    """从文件初始化全局配置"""
    global _current  # noqa: PLW0603
    _current = Config.from_file(path)
    logger.info("配置已加载: %s", path)
    return _current

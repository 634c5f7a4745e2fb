"""addonsync - 游戏客户端插件安装与配置版本同步工具"""

__version__ = "0.3.0"

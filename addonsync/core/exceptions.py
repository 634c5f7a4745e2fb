"""统一异常体系

所有业务异常继承 AddonSyncError。CLI 层据此输出一次友好提示并以非零码退出；
编排器据此区分“单包可恢复失败”和“致命配置错误”。
"""

from __future__ import annotations


class AddonSyncError(Exception):
    """基础异常"""

    code: str = "UNKNOWN"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ConfigError(AddonSyncError):
    """配置缺失或无效（清单文件、游戏目录等），致命"""

    code = "CONFIG_ERROR"


class ValidationError(AddonSyncError):
    """输入数据校验失败"""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, details: list[str] | None = None) -> None:
        super().__init__(message)
        self.details = details or []


class ExecutionError(AddonSyncError):
    """外部命令执行失败"""

    code = "EXECUTION_ERROR"

    def __init__(self, message: str, returncode: int = -1, stderr: str = "") -> None:
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


# =========================================================================
# 插件获取（单包级，编排器捕获后继续处理下一个包）
# =========================================================================

class AcquisitionError(AddonSyncError):
    """插件获取失败基类"""

    code = "ACQUISITION_ERROR"


class TransportError(AcquisitionError):
    """发布查询、资源下载或 clone 失败"""

    code = "TRANSPORT_ERROR"


class ExtractionError(AcquisitionError):
    """压缩包解压失败"""

    code = "EXTRACTION_ERROR"


class MalformedSourceError(AcquisitionError):
    """来源结构不符合约定（找不到描述文件、压缩包内无目录等）"""

    code = "MALFORMED_SOURCE"


# =========================================================================
# 配置同步
# =========================================================================

class SyncError(AddonSyncError):
    """配置快照发布/恢复失败"""

    code = "SYNC_ERROR"


class StoreNotFoundError(SyncError):
    """远端存储不存在或不可访问"""

    code = "STORE_NOT_FOUND"


class VersionNotFoundError(SyncError):
    """请求的快照版本不存在"""

    code = "VERSION_NOT_FOUND"

"""领域层业务异常定义，供领域与基础设施使用。

核心（core）层仅负责全局映射与异常处理，尽量避免领域层反向依赖核心层。

异常分类（HTTP 映射见 core.exceptions）：
- DomainValidationException: 输入缺失或金额越界
- NotFoundException: 支付、退款记录、所属交易、用户不存在
- ConflictException: 状态冲突（已全额退款、非法状态迁移等）
- GatewayException: 网关业务拒绝，按 kind 分类
- InfrastructureException: 网关或存储不可达/超时，可重试
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
        code: int = BusinessCode.PARAM_VALIDATION_ERROR,
        error_type: str = "DomainValidationError",
    ):
        super().__init__(
            code=code,
            message=message,
            error_type=error_type,
            details=details,
            field=field,
        )


class NotFoundException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        code: int = BusinessCode.NOT_FOUND,
        error_type: str = "NotFound",
        details: Optional[dict] = None,
    ):
        super().__init__(code=code, message=message, error_type=error_type, details=details)


class ConflictException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        code: int = BusinessCode.CONFLICT,
        error_type: str = "Conflict",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ):
        super().__init__(
            code=code, message=message, error_type=error_type, details=details, field=field
        )


class GatewayException(BusinessException):
    """网关业务拒绝；kind 为分类后的子类型，message 为面向调用方的提示。"""

    def __init__(
        self,
        kind: str,
        message: str,
        *,
        code: int,
        details: Optional[dict] = None,
    ):
        self.kind = kind
        super().__init__(code=code, message=message, error_type="GatewayError", details=details)


class InfrastructureException(BusinessException):
    """基础设施异常：对调用方表现为通用的可重试失败。"""

    def __init__(
        self,
        message: str = "Service temporarily unavailable, please retry",
        *,
        code: int = BusinessCode.SERVICE_UNAVAILABLE,
        error_type: str = "InfrastructureError",
        details: Optional[dict] = None,
    ):
        super().__init__(code=code, message=message, error_type=error_type, details=details)

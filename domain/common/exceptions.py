"""领域层业务异常定义，供领域与基础设施使用。

核心（core）层仅负责全局映射与异常处理，尽量避免领域层反向依赖核心层。
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode


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
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
        )


class CheckoutGroupInvalidException(BusinessException):
    """结账组不满足不变量（同一买家、同一渠道订单号等）"""

    def __init__(self, message: str, *, details: Optional[dict] = None):
        super().__init__(
            code=BusinessCode.CHECKOUT_GROUP_INVALID,
            message=message,
            error_type="CheckoutGroupInvalid",
            details=details,
        )


class PaymentVerificationFailedException(BusinessException):
    """客户端回传的支付签名校验失败，未支付订单已被移除"""

    def __init__(self, *, removed_order_ids: Optional[list[str]] = None):
        super().__init__(
            code=PaymentCode.VERIFICATION_FAILED,
            message="Payment verification failed - invalid signature",
            error_type="PaymentVerificationFailed",
            details={"removed_order_ids": removed_order_ids or []},
        )


class ReconciliationIncompleteException(BusinessException):
    """部分订单因存储故障未能完成对账，调用方应重试"""

    def __init__(self, *, failed_order_ids: list[str], details: Optional[dict] = None):
        full_details = {"failed_order_ids": failed_order_ids}
        if details:
            full_details.update(details)
        super().__init__(
            code=PaymentCode.RECONCILIATION_INCOMPLETE,
            message="Payment reconciliation incomplete, retry later",
            error_type="ReconciliationIncomplete",
            details=full_details,
        )

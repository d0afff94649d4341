"""
跨层共享的业务码（domain / core / api 共用）

通用码定义在 BusinessCode；支付对账相关的码位于
`shared.codes.payment_codes`，HTTP 状态映射见 core.exceptions。
"""
from enum import IntEnum


class BusinessCode(IntEnum):
    SUCCESS = 0

    # 请求参数 (1xxxx)
    PARAM_ERROR = 10000
    PARAM_VALIDATION_ERROR = 10003

    # 业务规则 (2xxxx)
    BUSINESS_ERROR = 20000
    NOT_FOUND = 20006
    CHECKOUT_GROUP_INVALID = 20102  # 结账组不变量被破坏

    # 买家身份 (3xxxx)
    UNAUTHORIZED = 30001
    FORBIDDEN = 30002
    TOKEN_INVALID = 30003

    # 系统 (4xxxx)
    SYSTEM_ERROR = 40000
    SERVICE_UNAVAILABLE = 40003


__all__ = ["BusinessCode"]

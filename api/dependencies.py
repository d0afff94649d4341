"""
API依赖项 - 买家认证与服务装配
"""
from functools import lru_cache
from typing import Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from application.ports.payment_gateway import PaymentGateway
from application.services.cart_service import CartClearingService
from application.services.checkout_service import CheckoutService
from application.services.order_query_service import OrderQueryService
from application.services.reconciliation_service import PaymentReconciliationService
from application.services.webhook_router import WebhookEventRouter
from core.config import settings
from core.exceptions import TokenInvalidException, UnauthorizedException
from core.logging_config import get_logger
from core.settings import payment_settings
from infrastructure.external.payments import get_payment_gateway
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


logger = get_logger(__name__)

# HTTP Bearer for direct API calls
http_bearer = HTTPBearer(
    scheme_name="Bearer",
    description="JWT Bearer token authentication",
    auto_error=False,
)


def decode_buyer_id(token: str) -> str:
    """从JWT中解析买家ID（sub），无效时抛出 TokenInvalidException"""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.PyJWTError as exc:
        logger.info("buyer_token_rejected", error_type=type(exc).__name__)
        raise TokenInvalidException()
    sub = payload.get("sub")
    if not sub:
        raise TokenInvalidException()
    return str(sub)


async def get_optional_buyer_id(
    bearer_token: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
) -> Optional[str]:
    """可选认证：未携带令牌时返回 None，携带无效令牌时拒绝"""
    if bearer_token is None or not bearer_token.credentials:
        return None
    return decode_buyer_id(bearer_token.credentials)


async def get_current_buyer_id(
    buyer_id: Optional[str] = Depends(get_optional_buyer_id),
) -> str:
    """获取当前登录买家"""
    if buyer_id is None:
        raise UnauthorizedException("未提供认证凭据")
    return buyer_id


@lru_cache(maxsize=1)
def get_gateway() -> PaymentGateway:
    """进程内共享的支付网关（复用 httpx 连接池），应用关闭时释放"""
    return get_payment_gateway(payment_settings.default_provider)


def get_uow_factory():
    return SQLAlchemyUnitOfWork


def get_reconciliation_service(
    gateway: PaymentGateway = Depends(get_gateway),
    uow_factory=Depends(get_uow_factory),
) -> PaymentReconciliationService:
    return PaymentReconciliationService(
        uow_factory=uow_factory,
        gateway=gateway,
        carts=CartClearingService(uow_factory),
    )


def get_webhook_router(
    gateway: PaymentGateway = Depends(get_gateway),
    reconciliation: PaymentReconciliationService = Depends(get_reconciliation_service),
) -> WebhookEventRouter:
    return WebhookEventRouter(gateway=gateway, reconciliation=reconciliation)


def get_checkout_service(
    gateway: PaymentGateway = Depends(get_gateway),
    uow_factory=Depends(get_uow_factory),
) -> CheckoutService:
    return CheckoutService(
        uow_factory=uow_factory,
        gateway=gateway,
        receipt_max_length=payment_settings.razorpay.receipt_max_length,
    )


def get_order_query_service(uow_factory=Depends(get_uow_factory)) -> OrderQueryService:
    return OrderQueryService(uow_factory=uow_factory)

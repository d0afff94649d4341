"""
订单API路由 - 买家订单查询
"""
from typing import List

from fastapi import APIRouter, Depends, Query

from application.dtos.payments import OrderResponseDTO
from application.services.order_query_service import OrderQueryService
from api.dependencies import get_current_buyer_id, get_order_query_service
from core.config import settings
from core.response import Response as ApiResponse, success_response

router = APIRouter(
    prefix="/orders",
    tags=["订单"]
)


@router.get("", summary="已支付订单列表", response_model=ApiResponse[List[OrderResponseDTO]])
async def list_orders(
    skip: int = Query(0, ge=0),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    buyer_id: str = Depends(get_current_buyer_id),
    service: OrderQueryService = Depends(get_order_query_service),
):
    """当前买家的已支付订单，按创建时间倒序"""
    orders = await service.list_paid_orders(buyer_id, skip=skip, limit=limit)
    return success_response(data=orders)

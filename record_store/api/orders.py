from fastapi import APIRouter, Depends, Query
from record_store.api.deps import get_order_service, get_requester
from record_store.api.responses import ApiResponse
from record_store.application.orders import OrderService
from record_store.application.schemas import MAX_PAGE_SIZE, OrderCreate, OrderPage, OrderRead, OrderUpdate
from record_store.domain import messages
from record_store.domain.access import Requester

router = APIRouter(prefix="/orders", tags=["orders"])

@router.get("/", response_model=ApiResponse[OrderPage])
def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=MAX_PAGE_SIZE),
    requester: Requester = Depends(get_requester),
    service: OrderService = Depends(get_order_service),
):
    """Newest first; admins see every order, customers only their own."""
    return ApiResponse[OrderPage](status=200, message=messages.ORDERS_RETRIEVED, data=service.list(requester, page, limit))

@router.get("/{order_id}", response_model=ApiResponse[OrderRead])
def get_order(order_id: int, requester: Requester = Depends(get_requester), service: OrderService = Depends(get_order_service)):
    return ApiResponse[OrderRead](status=200, message=messages.ORDER_RETRIEVED, data=service.get(requester, order_id))

@router.post("/", response_model=ApiResponse[OrderRead], status_code=201)
def create_order(payload: OrderCreate, requester: Requester = Depends(get_requester), service: OrderService = Depends(get_order_service)):
    return ApiResponse[OrderRead](status=201, message=messages.ORDER_CREATED, data=service.create(requester, payload))

@router.patch("/{order_id}", response_model=ApiResponse[OrderRead])
def update_order(
    order_id: int,
    payload: OrderUpdate,
    requester: Requester = Depends(get_requester),
    service: OrderService = Depends(get_order_service),
):
    return ApiResponse[OrderRead](status=200, message=messages.ORDER_UPDATED, data=service.update(requester, order_id, payload))

@router.delete("/{order_id}", response_model=ApiResponse)
def delete_order(order_id: int, requester: Requester = Depends(get_requester), service: OrderService = Depends(get_order_service)):
    service.delete(requester, order_id)
    return ApiResponse(status=200, message=messages.ORDER_DELETED)

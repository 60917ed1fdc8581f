"""
Order placement against catalog stock.

Every mutation moves stock and order state together inside one transaction:
the catalog row is re-read under ``SELECT ... FOR UPDATE`` and both rows
carry a version counter, so for any record

    stock + sum(quantity of its non-cancelled orders) == stock before any order

holds after every committed operation, concurrent ones included.
"""

from typing import Optional, Tuple
from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload
from shared.core import get_logger
from record_store.core_settings import Settings, get_settings
from record_store.domain import messages
from record_store.domain.access import AccessPolicy, OwnerOrAdminPolicy, Requester, authorize
from record_store.domain.exceptions import BadRequestError, InsufficientStockError, NotFoundError
from record_store.domain.models import ORDER_TRANSITIONS, Order, OrderStatus, Record
from record_store.infrastructure.cache import (
    ORDERS_DETAIL, ORDERS_LIST, RECORDS_DETAIL, RECORDS_LIST,
    CacheInvalidator, CacheOptions, CacheStore, detail_key, list_pattern, read_through,
)
from .schemas import MAX_PAGE_SIZE, OrderCreate, OrderPage, OrderRead, OrderUpdate, PageMeta
from .unit_of_work import run_atomically

logger = get_logger(__name__)


class OrderService:
    def __init__(
        self,
        db: Session,
        cache: CacheStore,
        policy: Optional[AccessPolicy] = None,
        settings: Optional[Settings] = None,
    ):
        settings = settings or get_settings()
        self.db = db
        self.cache = cache
        self.invalidator = CacheInvalidator(cache)
        self.policy = policy or OwnerOrAdminPolicy()
        self.retry_attempts = settings.STOCK_RETRY_ATTEMPTS
        self.list_cache = CacheOptions(ORDERS_LIST, settings.CACHE_TTL_ORDERS_LIST)
        self.detail_cache = CacheOptions(ORDERS_DETAIL, settings.CACHE_TTL_ORDERS_DETAIL)

    # -- reads -----------------------------------------------------------

    def list(self, requester: Requester, page: int = 1, limit: int = 10, cache_options: Optional[CacheOptions] = None) -> OrderPage:
        if page < 1 or not 1 <= limit <= MAX_PAGE_SIZE:
            raise BadRequestError(f"page must be >= 1 and limit between 1 and {MAX_PAGE_SIZE}", page=page, limit=limit)
        owner = None if self._is_elevated(requester) else requester.identity

        def load():
            stmt = select(Order)
            count_stmt = select(func.count()).select_from(Order)
            if owner is not None:
                stmt = stmt.where(Order.email == owner)
                count_stmt = count_stmt.where(Order.email == owner)
            total = self.db.scalar(count_stmt)
            orders = self.db.scalars(
                stmt.options(selectinload(Order.record))
                .execution_options(populate_existing=True)
                .order_by(Order.created_at.desc(), Order.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            ).all()
            result = OrderPage(
                items=[OrderRead.model_validate(o) for o in orders],
                meta=PageMeta.build(total, len(orders), page, limit),
            )
            return result.model_dump(mode="json")

        params = {"page": page, "limit": limit, "owner": owner}
        return OrderPage.model_validate(read_through(self.cache, cache_options or self.list_cache, params, load))

    def get(self, requester: Requester, order_id: int, cache_options: Optional[CacheOptions] = None) -> OrderRead:
        def load():
            order = self.db.get(Order, order_id, populate_existing=True)
            if order is None:
                raise NotFoundError(messages.order_not_found(order_id), order_id=order_id)
            return OrderRead.model_validate(order).model_dump(mode="json")

        # Cached per order, not per requester: ownership is checked on every read
        order = OrderRead.model_validate(
            read_through(self.cache, cache_options or self.detail_cache, {"id": order_id}, load)
        )
        authorize(self.policy, requester, order.email)
        return order

    # -- mutations -------------------------------------------------------

    def create(self, requester: Requester, data: OrderCreate) -> OrderRead:
        if data.quantity <= 0:
            raise BadRequestError("quantity must be greater than zero", quantity=data.quantity)
        owner = self._resolve_owner(requester, data.email)

        def unit() -> Order:
            record = self._lock_record(data.record_id)
            if record is None:
                raise NotFoundError(messages.record_not_found(data.record_id), record_id=data.record_id)
            self._ensure_stock(record, data.quantity)
            record.qty -= data.quantity
            order = Order(
                record_id=record.id,
                quantity=data.quantity,
                total_price=record.price * data.quantity,
                status=OrderStatus.PENDING.value,
                email=owner,
            )
            order.record = record
            self.db.add(order)
            return order

        order = run_atomically(self.db, unit, self.retry_attempts, "order creation")
        logger.info(
            f"Order {order.id} placed for record {order.record_id}",
            extra={"extra_fields": {"order_id": order.id, "record_id": order.record_id, "quantity": order.quantity}},
        )
        self._invalidate(order.id, order.record_id, include_detail=False)
        return OrderRead.model_validate(order)

    def update(self, requester: Requester, order_id: int, data: OrderUpdate) -> OrderRead:
        patch = data.model_dump(exclude_unset=True, exclude_none=True)
        new_quantity: Optional[int] = patch.get("quantity")
        new_status: Optional[OrderStatus] = patch.get("status")

        def unit() -> Tuple[Order, Optional[int]]:
            order = self._load_order(order_id, lock=True)
            authorize(self.policy, requester, order.email)
            current = OrderStatus(order.status)
            changes_status = new_status is not None and new_status != current
            changes_quantity = new_quantity is not None and new_quantity != order.quantity
            if changes_status and new_status not in ORDER_TRANSITIONS[current]:
                raise BadRequestError(
                    messages.invalid_status_transition(current.value, new_status.value),
                    current=current.value, requested=new_status.value,
                )
            stock_record_id = None

            if changes_quantity:
                if current != OrderStatus.PENDING:
                    raise BadRequestError(messages.ORDER_QUANTITY_LOCKED, status=current.value)
                if new_status == OrderStatus.CANCELLED:
                    raise BadRequestError(messages.ORDER_CANCEL_WITH_QUANTITY)
                record = self._lock_record(order.record_id)
                if record is None:
                    raise NotFoundError(messages.record_not_found(order.record_id), record_id=order.record_id)
                delta = new_quantity - order.quantity
                if delta > 0:
                    self._ensure_stock(record, delta)
                record.qty -= delta
                order.quantity = new_quantity
                order.total_price = record.price * new_quantity
                stock_record_id = record.id

            if changes_status:
                if new_status == OrderStatus.CANCELLED:
                    stock_record_id = self._return_stock(order)
                order.status = new_status.value

            return order, stock_record_id

        order, stock_record_id = run_atomically(self.db, unit, self.retry_attempts, "order update")
        if patch:
            logger.info(
                f"Order {order_id} updated",
                extra={"extra_fields": {"order_id": order_id, "patch": {k: str(v) for k, v in patch.items()}}},
            )
            self._invalidate(order_id, stock_record_id)
        return OrderRead.model_validate(order)

    def delete(self, requester: Requester, order_id: int) -> None:
        def unit() -> Optional[int]:
            order = self._load_order(order_id, lock=True)
            authorize(self.policy, requester, order.email)
            stock_record_id = None
            if order.status != OrderStatus.CANCELLED.value:
                stock_record_id = self._return_stock(order)
            self.db.delete(order)
            return stock_record_id

        stock_record_id = run_atomically(self.db, unit, self.retry_attempts, "order removal")
        logger.info(f"Order {order_id} removed", extra={"extra_fields": {"order_id": order_id}})
        self._invalidate(order_id, stock_record_id)

    # -- helpers ---------------------------------------------------------

    def _is_elevated(self, requester: Requester) -> bool:
        return self.policy.check(requester.role, requester.identity, None)

    def _resolve_owner(self, requester: Requester, email: Optional[str]) -> str:
        if not email or email == requester.identity:
            return requester.identity
        authorize(self.policy, requester, None, messages.FORBIDDEN)
        return email

    def _load_order(self, order_id: int, lock: bool = False) -> Order:
        stmt = select(Order).where(Order.id == order_id).execution_options(populate_existing=True)
        if lock:
            stmt = stmt.with_for_update()
        order = self.db.scalars(stmt).first()
        if order is None:
            raise NotFoundError(messages.order_not_found(order_id), order_id=order_id)
        return order

    def _lock_record(self, record_id: Optional[int]) -> Optional[Record]:
        if record_id is None:
            return None
        stmt = (
            select(Record)
            .where(Record.id == record_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self.db.scalars(stmt).first()

    @staticmethod
    def _ensure_stock(record: Record, requested: int) -> None:
        if record.qty < requested:
            logger.warning(f"Insufficient stock on record {record.id}: requested {requested}, available {record.qty}")
            raise InsufficientStockError(
                messages.INSUFFICIENT_STOCK, requested=requested, available=record.qty, record_id=record.id
            )

    def _return_stock(self, order: Order) -> Optional[int]:
        record = self._lock_record(order.record_id)
        if record is None:
            logger.warning(f"Record {order.record_id} of order {order.id} is gone, stock not returned")
            return None
        record.qty += order.quantity
        return record.id

    def _invalidate(self, order_id: int, record_id: Optional[int], include_detail: bool = True) -> None:
        patterns = [list_pattern(ORDERS_LIST)]
        if include_detail:
            patterns.append(detail_key(ORDERS_DETAIL, order_id))
        if record_id is not None:
            patterns += [list_pattern(RECORDS_LIST), detail_key(RECORDS_DETAIL, record_id)]
        self.invalidator.invalidate(*patterns)

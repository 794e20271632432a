
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload, selectinload

from checkout_service.core.errors import ConflictError, PersistenceError
from checkout_service.db.models import CartItem, Order, OrderItem, Product

log = structlog.get_logger(__name__)

UNIQUE_VIOLATION = "23505"


def is_session_conflict(exc: IntegrityError) -> bool:
    """True when the integrity error is the unique index on ``stripe_session_id``."""
    sqlstate = getattr(exc.orig, "sqlstate", None) or getattr(exc.orig, "pgcode", None)
    if sqlstate is not None and sqlstate != UNIQUE_VIOLATION:
        return False
    return "stripe_session_id" in str(exc.orig)


class OrderStore:
    """Relational access for carts, products, orders and order items.

    Every write commits on its own; the order engine decides which failures
    are fatal.
    """

    def __init__(self, db: Session):
        self.db = db

    def find_order_by_session(self, session_id: str) -> Optional[Order]:
        try:
            return self.db.execute(
                select(Order).where(Order.stripe_session_id == session_id)
            ).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise PersistenceError("Failed to check existing order") from exc

    def get_order(self, order_id: str) -> Optional[Order]:
        try:
            return self.db.execute(
                select(Order).options(selectinload(Order.items)).where(Order.id == order_id)
            ).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise PersistenceError("Failed to fetch order") from exc

    def list_cart_items(self, cart_id: str) -> List[CartItem]:
        stmt = (
            select(CartItem)
            .options(joinedload(CartItem.product))
            .where(CartItem.cart_id == cart_id)
            .order_by(CartItem.id)
        )
        try:
            return list(self.db.execute(stmt).scalars().all())
        except SQLAlchemyError as exc:
            raise PersistenceError("Failed to fetch cart items") from exc

    def insert_order(self, **fields: Any) -> Order:
        order = Order(**fields)
        self.db.add(order)
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            if is_session_conflict(exc):
                raise ConflictError(fields.get("stripe_session_id", "")) from exc
            raise PersistenceError("Failed to create order in database") from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceError("Failed to create order in database") from exc
        self.db.refresh(order)
        return order

    def insert_order_items(self, order: Order, rows: List[Dict[str, Any]]) -> List[OrderItem]:
        items = [OrderItem(order_id=order.id, **row) for row in rows]
        self.db.add_all(items)
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceError("Failed to create order items in database") from exc
        for it in items:
            self.db.refresh(it)
        return items

    def increment_sold_items(self, quantities: Dict[str, int]) -> None:
        try:
            for product_id, qty in quantities.items():
                self.db.execute(
                    update(Product)
                    .where(Product.id == product_id)
                    .values(sold_items=Product.sold_items + qty)
                )
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceError("Failed to update inventory") from exc

    def delete_cart_items(self, cart_id: str) -> List[Dict[str, Any]]:
        """Delete all lines of a cart and return snapshots of the deleted rows."""
        try:
            rows = self.db.execute(
                select(CartItem).where(CartItem.cart_id == cart_id).order_by(CartItem.id)
            ).scalars().all()
            deleted = [
                {
                    "id": r.id,
                    "cart_id": r.cart_id,
                    "product_id": r.product_id,
                    "quantity": r.quantity,
                    "selected_color": r.selected_color,
                    "selected_size": r.selected_size,
                    "delivery_option": r.delivery_option,
                }
                for r in rows
            ]
            if deleted:
                self.db.execute(
                    delete(CartItem).where(CartItem.id.in_([d["id"] for d in deleted])),
                    execution_options={"synchronize_session": "fetch"},
                )
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceError("Failed to delete cart items") from exc
        log.debug("cart_items_deleted", cart_id=cart_id, count=len(deleted))
        return deleted

"""Order placement and order status management.

Placing an order is all-or-nothing: stock is taken line by line with the
store's conditional decrement, and every decrement already applied is given
back if a later line (or the order insert) fails. The administrator is
notified only after the order is stored.

State Machine:
    PENDING → PROCESSING → SHIPPED → DELIVERED
    PENDING | PROCESSING → CANCELLED
"""

from enum import Enum

from catalog import CatalogService
from errors import PharmacyError, ValidationError
from logging_config import get_logger
from notifications import NotificationDispatcher
from stores import AccountStore, OrderStore

logger = get_logger(__name__)


class OrderStatus(Enum):
    PENDING = "Pending"
    PROCESSING = "Processing"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


_VALID_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),  # Terminal
    OrderStatus.CANCELLED: set(),  # Terminal
}


def _parse_status(value: str) -> OrderStatus:
    for status in OrderStatus:
        if status.value.lower() == (value or "").strip().lower():
            return status
    allowed = ", ".join(s.value for s in OrderStatus)
    raise ValidationError(f"Unknown order status '{value}'. Expected one of: {allowed}")


def _merge_line_items(line_items: list[dict]) -> dict[str, int]:
    """Validate the cart and sum quantities per product, keeping first-seen order."""
    if not line_items:
        raise ValidationError("An order needs at least one line item")

    merged: dict[str, int] = {}
    for item in line_items:
        product_id = item.get("product_id")
        quantity = item.get("quantity")
        if not product_id:
            raise ValidationError("Every line item needs a product_id")
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
            raise ValidationError(f"Quantity for product {product_id} must be a whole number of at least 1")
        merged[product_id] = merged.get(product_id, 0) + quantity
    return merged


class OrderWorkflow:
    def __init__(
        self,
        catalog: CatalogService,
        orders: OrderStore,
        accounts: AccountStore,
        notifier: NotificationDispatcher,
    ):
        self._catalog = catalog
        self._orders = orders
        self._accounts = accounts
        self._notifier = notifier

    def place_order(self, account_id: str, line_items: list[dict], delivery_address: str) -> str:
        if not delivery_address or not delivery_address.strip():
            raise ValidationError("Delivery address is required")
        quantities = _merge_line_items(line_items)

        # Raises NotFoundError; no stock moves for an unknown account.
        account = self._accounts.get(account_id)

        # Every product must exist before any stock moves.
        products = {product_id: self._catalog.get_product(product_id) for product_id in quantities}

        self._reserve(quantities)

        order_items = [
            {
                "product_id": product_id,
                "name": products[product_id].get("name"),
                "unit_price": float(products[product_id].get("price", 0)),
                "quantity": quantity,
            }
            for product_id, quantity in quantities.items()
        ]
        total_amount = round(sum(item["unit_price"] * item["quantity"] for item in order_items), 2)

        try:
            order_id = self._orders.add(
                {
                    "account_id": account_id,
                    "line_items": order_items,
                    "total_amount": total_amount,
                    "delivery_address": delivery_address.strip(),
                    "status": OrderStatus.PENDING.value,
                }
            )
        except Exception:
            self._release(quantities)
            raise

        logger.info("Order placed", order_id=order_id, account_id=account_id, total_amount=total_amount)

        self._notify(order_id, account, order_items, total_amount, delivery_address.strip())
        return order_id

    def _reserve(self, quantities: dict[str, int]) -> None:
        taken: dict[str, int] = {}
        try:
            for product_id, quantity in quantities.items():
                self._catalog.decrement_stock(product_id, quantity)
                taken[product_id] = quantity
        except PharmacyError as e:
            logger.info("Stock reservation rejected, rolling back", reason=e.message, rolled_back=len(taken))
            self._release(taken)
            raise
        except Exception:
            logger.exception("Stock reservation failed, rolling back", rolled_back=len(taken))
            self._release(taken)
            raise

    def _release(self, quantities: dict[str, int]) -> None:
        for product_id, quantity in quantities.items():
            try:
                self._catalog.increment_stock(product_id, quantity)
            except PharmacyError:
                # The product was deleted mid-checkout; nothing left to restock.
                logger.warning("Could not restock product", product_id=product_id, quantity=quantity)

    def _notify(self, order_id, account, order_items, total_amount, delivery_address) -> None:
        summary = {
            "order_id": order_id,
            "account_id": account["id"],
            "customer_name": account.get("name"),
            "customer_email": account.get("email"),
            "customer_phone": account.get("phone"),
            "line_items": order_items,
            "total_amount": total_amount,
            "delivery_address": delivery_address,
        }

        try:
            self._notifier.notify_new_order(summary)
        except Exception:
            # The order is already stored; a dead dispatcher must not undo that.
            logger.exception("Could not dispatch order notifications", order_id=order_id)

    def update_order_status(self, order_id: str, new_status: str) -> dict:
        target = _parse_status(new_status)
        order = self._orders.get(order_id)
        current = _parse_status(order["status"])

        if target == current:
            return order
        if target not in _VALID_TRANSITIONS[current]:
            raise ValidationError(f"Cannot move order from {current.value} to {target.value}")

        if not self._orders.update_status(order_id, current.value, target.value):
            raise ValidationError("Order status changed concurrently, reload and retry")

        logger.info("Order status updated", order_id=order_id, previous=current.value, status=target.value)
        return self._orders.get(order_id)

    def list_orders(self, account_id: str | None = None) -> list[dict]:
        return self._orders.find(account_id=account_id)

    def get_order(self, order_id: str) -> dict:
        return self._orders.get(order_id)

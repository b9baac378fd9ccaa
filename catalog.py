"""Drug catalog operations."""

from errors import ValidationError
from logging_config import get_logger
from stores import ProductStore

logger = get_logger(__name__)

PRODUCT_FIELDS = ("name", "price", "stock", "description", "image", "category")
CLEARABLE_FIELDS = ("description", "image", "category")


def _validate_fields(fields: dict) -> None:
    unknown = set(fields) - set(PRODUCT_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown product fields: {', '.join(sorted(unknown))}")
    if "name" in fields and not (fields["name"] or "").strip():
        raise ValidationError("Product name is required")
    if "price" in fields and (fields["price"] is None or fields["price"] < 0):
        raise ValidationError("Price must be zero or more")
    if "stock" in fields:
        stock = fields["stock"]
        if not isinstance(stock, int) or isinstance(stock, bool) or stock < 0:
            raise ValidationError("Stock must be a whole number, zero or more")


class CatalogService:
    def __init__(self, store: ProductStore):
        self._store = store

    def add_product(self, fields: dict) -> str:
        if "name" not in fields or "price" not in fields:
            raise ValidationError("Product name and price are required")
        fields = {"stock": 0, **fields}
        _validate_fields(fields)

        product_id = self._store.add(fields)
        logger.info("Product added", product_id=product_id, name=fields["name"], stock=fields["stock"])
        return product_id

    def list_products(self, category: str | None = None) -> list[dict]:
        return self._store.find(category=category)

    def get_product(self, product_id: str) -> dict:
        return self._store.get(product_id)

    def update_product(self, product_id: str, fields: dict) -> None:
        """Change only the given fields.

        None clears ``description``, ``image`` or ``category``; on ``name``,
        ``price`` and ``stock`` it means "leave as is".
        """
        fields = {k: v for k, v in fields.items() if v is not None or k in CLEARABLE_FIELDS}
        if not fields:
            raise ValidationError("No changes supplied")
        _validate_fields(fields)

        self._store.update(product_id, fields)
        logger.info("Product updated", product_id=product_id, fields=sorted(fields))

    def delete_product(self, product_id: str) -> None:
        self._store.delete(product_id)
        logger.info("Product deleted", product_id=product_id)

    def decrement_stock(self, product_id: str, quantity: int) -> int:
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")
        return self._store.decrement_stock(product_id, quantity)

    def increment_stock(self, product_id: str, quantity: int) -> int:
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")
        return self._store.increment_stock(product_id, quantity)

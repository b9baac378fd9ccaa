"""In-memory stores for local runs and tests.

Each store serializes its mutations behind a lock so the conditional
operations (unique email, stock decrement, status change) stay atomic when
requests run on several threads.
"""

import copy
import itertools
import threading

from bson import ObjectId

from database import utcnow
from errors import InsufficientStockError, NotFoundError, ValidationError
from stores import AccountStore, OrderStore, ProductStore, Stores, normalize_email


class _Collection:
    """Dict-backed document collection with insertion sequence for stable ordering."""

    def __init__(self):
        self.lock = threading.Lock()
        self.docs: dict[str, dict] = {}
        self._seq = itertools.count()
        self._order: dict[str, int] = {}

    def insert(self, data: dict) -> str:
        doc_id = str(ObjectId())
        now = utcnow()
        doc = copy.deepcopy(data)
        doc.pop("id", None)
        doc.setdefault("created_at", now)
        doc["updated_at"] = now
        doc["id"] = doc_id
        self.docs[doc_id] = doc
        self._order[doc_id] = next(self._seq)
        return doc_id

    def newest_first(self, predicate=None) -> list[dict]:
        docs = [d for d in self.docs.values() if predicate is None or predicate(d)]
        docs.sort(key=lambda d: (d["created_at"], self._order[d["id"]]), reverse=True)
        return [copy.deepcopy(d) for d in docs]


class MemoryAccountStore(AccountStore):
    def __init__(self):
        self._collection = _Collection()

    def add(self, account: dict) -> str:
        email = normalize_email(account["email"])
        with self._collection.lock:
            if any(doc["email"] == email for doc in self._collection.docs.values()):
                raise ValidationError("Email already registered")
            return self._collection.insert(dict(account, email=email))

    def find_by_email(self, email: str) -> dict | None:
        email = normalize_email(email)
        with self._collection.lock:
            for doc in self._collection.docs.values():
                if doc["email"] == email:
                    return copy.deepcopy(doc)
        return None

    def get(self, account_id: str) -> dict:
        with self._collection.lock:
            doc = self._collection.docs.get(account_id)
            if doc is None:
                raise NotFoundError("Account", account_id)
            return copy.deepcopy(doc)


class MemoryProductStore(ProductStore):
    def __init__(self):
        self._collection = _Collection()

    def add(self, product: dict) -> str:
        with self._collection.lock:
            return self._collection.insert(product)

    def find(self, category: str | None = None) -> list[dict]:
        with self._collection.lock:
            if category:
                return self._collection.newest_first(lambda d: d.get("category") == category)
            return self._collection.newest_first()

    def get(self, product_id: str) -> dict:
        with self._collection.lock:
            return copy.deepcopy(self._get(product_id))

    def update(self, product_id: str, fields: dict) -> None:
        with self._collection.lock:
            doc = self._get(product_id)
            doc.update(copy.deepcopy(fields))
            doc["updated_at"] = utcnow()

    def delete(self, product_id: str) -> None:
        with self._collection.lock:
            self._get(product_id)
            del self._collection.docs[product_id]

    def decrement_stock(self, product_id: str, quantity: int) -> int:
        with self._collection.lock:
            doc = self._get(product_id)
            stock = doc.get("stock")
            if stock is None or stock < quantity:
                raise InsufficientStockError(product_id, stock, quantity)
            doc["stock"] = stock - quantity
            doc["updated_at"] = utcnow()
            return doc["stock"]

    def increment_stock(self, product_id: str, quantity: int) -> int:
        with self._collection.lock:
            doc = self._get(product_id)
            doc["stock"] = (doc.get("stock") or 0) + quantity
            doc["updated_at"] = utcnow()
            return doc["stock"]

    def _get(self, product_id: str) -> dict:
        doc = self._collection.docs.get(product_id)
        if doc is None:
            raise NotFoundError("Product", product_id)
        return doc


class MemoryOrderStore(OrderStore):
    def __init__(self):
        self._collection = _Collection()

    def add(self, order: dict) -> str:
        with self._collection.lock:
            return self._collection.insert(order)

    def get(self, order_id: str) -> dict:
        with self._collection.lock:
            doc = self._collection.docs.get(order_id)
            if doc is None:
                raise NotFoundError("Order", order_id)
            return copy.deepcopy(doc)

    def find(self, account_id: str | None = None) -> list[dict]:
        with self._collection.lock:
            if account_id:
                return self._collection.newest_first(lambda d: d.get("account_id") == account_id)
            return self._collection.newest_first()

    def update_status(self, order_id: str, expected_status: str, new_status: str) -> bool:
        with self._collection.lock:
            doc = self._collection.docs.get(order_id)
            if doc is None:
                raise NotFoundError("Order", order_id)
            if doc.get("status") != expected_status:
                return False
            doc["status"] = new_status
            doc["updated_at"] = utcnow()
            return True


def memory_stores() -> Stores:
    return Stores(
        accounts=MemoryAccountStore(),
        products=MemoryProductStore(),
        orders=MemoryOrderStore(),
        backend="memory",
    )

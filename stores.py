"""Persistence ports and their MongoDB implementation.

Records cross the store boundary as plain dicts with a string ``id``; the
in-memory implementation in ``memory_stores`` honours the same contract.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from pymongo import ASCENDING, ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

from database import create_document, get_documents, to_object_id, to_public, utcnow
from errors import InsufficientStockError, NotFoundError, ValidationError
from logging_config import get_logger

logger = get_logger(__name__)


def normalize_email(email: str) -> str:
    return email.strip().lower()


class AccountStore(ABC):
    @abstractmethod
    def add(self, account: dict) -> str:
        """Persist a new account. Raises ValidationError if the email is taken."""

    @abstractmethod
    def find_by_email(self, email: str) -> dict | None: ...

    @abstractmethod
    def get(self, account_id: str) -> dict: ...


class ProductStore(ABC):
    @abstractmethod
    def add(self, product: dict) -> str: ...

    @abstractmethod
    def find(self, category: str | None = None) -> list[dict]: ...

    @abstractmethod
    def get(self, product_id: str) -> dict: ...

    @abstractmethod
    def update(self, product_id: str, fields: dict) -> None: ...

    @abstractmethod
    def delete(self, product_id: str) -> None: ...

    @abstractmethod
    def decrement_stock(self, product_id: str, quantity: int) -> int:
        """Atomically take ``quantity`` units if at least that many are in stock.

        Returns the remaining stock. Raises NotFoundError for an unknown product
        and InsufficientStockError when the stock is short; in both cases
        nothing changes.
        """

    @abstractmethod
    def increment_stock(self, product_id: str, quantity: int) -> int: ...


class OrderStore(ABC):
    @abstractmethod
    def add(self, order: dict) -> str: ...

    @abstractmethod
    def get(self, order_id: str) -> dict: ...

    @abstractmethod
    def find(self, account_id: str | None = None) -> list[dict]: ...

    @abstractmethod
    def update_status(self, order_id: str, expected_status: str, new_status: str) -> bool:
        """Set the status only if it still equals ``expected_status``."""


@dataclass
class Stores:
    accounts: AccountStore
    products: ProductStore
    orders: OrderStore
    backend: str

    def open(self) -> None:
        """Prepare the backend (indexes, connections)."""

    def close(self) -> None:
        """Release backend resources."""

    def health(self) -> dict:
        return {"backend": self.backend, "database": "connected"}


# ---------------------------------------------------------------------------
# MongoDB
# ---------------------------------------------------------------------------
class MongoAccountStore(AccountStore):
    collection_name = "account"

    def __init__(self, db: Database):
        self._db = db
        self._collection = db[self.collection_name]

    def ensure_indexes(self) -> None:
        self._collection.create_index([("email", ASCENDING)], unique=True)

    def add(self, account: dict) -> str:
        account = dict(account, email=normalize_email(account["email"]))
        try:
            return create_document(self._db, self.collection_name, account)
        except DuplicateKeyError:
            raise ValidationError("Email already registered") from None

    def find_by_email(self, email: str) -> dict | None:
        doc = self._collection.find_one({"email": normalize_email(email)})
        return to_public(doc) if doc else None

    def get(self, account_id: str) -> dict:
        oid = to_object_id(account_id)
        doc = self._collection.find_one({"_id": oid}) if oid else None
        if doc is None:
            raise NotFoundError("Account", account_id)
        return to_public(doc)


class MongoProductStore(ProductStore):
    collection_name = "product"

    def __init__(self, db: Database):
        self._db = db
        self._collection = db[self.collection_name]

    def ensure_indexes(self) -> None:
        self._collection.create_index([("category", ASCENDING)])

    def add(self, product: dict) -> str:
        return create_document(self._db, self.collection_name, product)

    def find(self, category: str | None = None) -> list[dict]:
        query = {"category": category} if category else {}
        return get_documents(self._db, self.collection_name, query)

    def get(self, product_id: str) -> dict:
        oid = to_object_id(product_id)
        doc = self._collection.find_one({"_id": oid}) if oid else None
        if doc is None:
            raise NotFoundError("Product", product_id)
        return to_public(doc)

    def update(self, product_id: str, fields: dict) -> None:
        oid = to_object_id(product_id)
        if oid is None:
            raise NotFoundError("Product", product_id)
        res = self._collection.update_one({"_id": oid}, {"$set": {**fields, "updated_at": utcnow()}})
        if res.matched_count == 0:
            raise NotFoundError("Product", product_id)

    def delete(self, product_id: str) -> None:
        oid = to_object_id(product_id)
        res = self._collection.delete_one({"_id": oid}) if oid else None
        if res is None or res.deleted_count == 0:
            raise NotFoundError("Product", product_id)

    def decrement_stock(self, product_id: str, quantity: int) -> int:
        oid = to_object_id(product_id)
        if oid is None:
            raise NotFoundError("Product", product_id)

        doc = self._collection.find_one_and_update(
            {"_id": oid, "stock": {"$gte": quantity}},
            {"$inc": {"stock": -quantity}, "$set": {"updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        if doc is not None:
            return doc["stock"]

        current = self._collection.find_one({"_id": oid}, {"stock": 1})
        if current is None:
            raise NotFoundError("Product", product_id)
        raise InsufficientStockError(product_id, current.get("stock"), quantity)

    def increment_stock(self, product_id: str, quantity: int) -> int:
        oid = to_object_id(product_id)
        doc = None
        if oid is not None:
            doc = self._collection.find_one_and_update(
                {"_id": oid},
                {"$inc": {"stock": quantity}, "$set": {"updated_at": utcnow()}},
                return_document=ReturnDocument.AFTER,
            )
        if doc is None:
            raise NotFoundError("Product", product_id)
        return doc["stock"]


class MongoOrderStore(OrderStore):
    collection_name = "order"

    def __init__(self, db: Database):
        self._db = db
        self._collection = db[self.collection_name]

    def ensure_indexes(self) -> None:
        self._collection.create_index([("account_id", ASCENDING), ("created_at", ASCENDING)])

    def add(self, order: dict) -> str:
        return create_document(self._db, self.collection_name, order)

    def get(self, order_id: str) -> dict:
        oid = to_object_id(order_id)
        doc = self._collection.find_one({"_id": oid}) if oid else None
        if doc is None:
            raise NotFoundError("Order", order_id)
        return to_public(doc)

    def find(self, account_id: str | None = None) -> list[dict]:
        query = {"account_id": account_id} if account_id else {}
        return get_documents(self._db, self.collection_name, query)

    def update_status(self, order_id: str, expected_status: str, new_status: str) -> bool:
        oid = to_object_id(order_id)
        if oid is None:
            raise NotFoundError("Order", order_id)
        res = self._collection.update_one(
            {"_id": oid, "status": expected_status},
            {"$set": {"status": new_status, "updated_at": utcnow()}},
        )
        return res.matched_count == 1


@dataclass
class MongoStores(Stores):
    db: Database | None = None

    def open(self) -> None:
        for store in (self.accounts, self.products, self.orders):
            store.ensure_indexes()
        logger.info("MongoDB indexes ensured", database=self.db.name)

    def close(self) -> None:
        self.db.client.close()

    def health(self) -> dict:
        info = {"backend": self.backend, "database": "disconnected"}
        try:
            info["collections"] = self.db.list_collection_names()
            info["database"] = "connected"
        except PyMongoError as e:
            info["error"] = str(e)[:80]
        return info


def mongo_stores(db: Database) -> MongoStores:
    return MongoStores(
        accounts=MongoAccountStore(db),
        products=MongoProductStore(db),
        orders=MongoOrderStore(db),
        backend="mongodb",
        db=db,
    )

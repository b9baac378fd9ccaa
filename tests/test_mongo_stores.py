"""MongoDB stores, run against mongomock."""

import mongomock
import pytest
from bson import ObjectId

from errors import InsufficientStockError, NotFoundError, ValidationError
from main import build_services
from stores import mongo_stores

MISSING_ID = "64b000000000000000000000"


@pytest.fixture()
def mongo():
    client = mongomock.MongoClient(tz_aware=True)
    stores = mongo_stores(client["pharmacy_test"])
    stores.open()
    yield stores
    stores.close()


@pytest.fixture()
def product_id(mongo):
    return mongo.products.add({"name": "Amoxicillin 500mg", "price": 4.5, "stock": 5})


class TestMongoAccountStore:
    def test_add_and_find_by_email(self, mongo):
        account_id = mongo.accounts.add({"name": "Omar", "email": "Omar@Example.com", "password_hash": "x"})

        found = mongo.accounts.find_by_email("omar@example.COM")
        assert found["id"] == account_id
        assert found["email"] == "omar@example.com"
        assert "_id" not in found
        assert mongo.accounts.get(account_id)["name"] == "Omar"

    def test_duplicate_email_in_other_case(self, mongo):
        mongo.accounts.add({"name": "Omar", "email": "omar@example.com", "password_hash": "x"})

        with pytest.raises(ValidationError, match="already registered"):
            mongo.accounts.add({"name": "Copy", "email": "OMAR@EXAMPLE.COM", "password_hash": "y"})

    @pytest.mark.parametrize("account_id", [MISSING_ID, "not-an-object-id"])
    def test_get_unknown_account(self, mongo, account_id):
        with pytest.raises(NotFoundError):
            mongo.accounts.get(account_id)

    def test_unknown_email(self, mongo):
        assert mongo.accounts.find_by_email("ghost@example.com") is None


class TestMongoProductStore:
    def test_decrement_to_exactly_zero(self, mongo, product_id):
        assert mongo.products.decrement_stock(product_id, 2) == 3
        assert mongo.products.decrement_stock(product_id, 3) == 0
        assert mongo.products.get(product_id)["stock"] == 0

    def test_insufficient_decrement_changes_nothing(self, mongo, product_id):
        with pytest.raises(InsufficientStockError) as exc:
            mongo.products.decrement_stock(product_id, 6)

        assert exc.value.available == 5
        assert exc.value.requested == 6
        assert mongo.products.get(product_id)["stock"] == 5

    @pytest.mark.parametrize("missing", [MISSING_ID, "not-an-object-id"])
    def test_decrement_unknown_product(self, mongo, missing):
        with pytest.raises(NotFoundError):
            mongo.products.decrement_stock(missing, 1)

    def test_increment(self, mongo, product_id):
        assert mongo.products.increment_stock(product_id, 4) == 9

    def test_increment_unknown_product(self, mongo):
        with pytest.raises(NotFoundError):
            mongo.products.increment_stock(MISSING_ID, 1)

    def test_update_and_delete(self, mongo, product_id):
        mongo.products.update(product_id, {"price": 3.0, "description": None})

        product = mongo.products.get(product_id)
        assert product["price"] == 3.0
        assert product["name"] == "Amoxicillin 500mg"

        mongo.products.delete(product_id)
        with pytest.raises(NotFoundError):
            mongo.products.get(product_id)

    @pytest.mark.parametrize("missing", [MISSING_ID, "not-an-object-id"])
    def test_update_and_delete_unknown(self, mongo, missing):
        with pytest.raises(NotFoundError):
            mongo.products.update(missing, {"price": 1.0})
        with pytest.raises(NotFoundError):
            mongo.products.delete(missing)

    def test_find_by_category_newest_first(self, mongo):
        first = mongo.products.add({"name": "Ibuprofen", "price": 1, "stock": 1, "category": "analgesics"})
        mongo.products.add({"name": "Azithromycin", "price": 2, "stock": 1, "category": "antibiotics"})
        third = mongo.products.add({"name": "Paracetamol", "price": 1, "stock": 1, "category": "analgesics"})

        assert [p["id"] for p in mongo.products.find(category="analgesics")] == [third, first]
        assert len(mongo.products.find()) == 3


class TestMongoOrderStore:
    @pytest.fixture()
    def order_id(self, mongo):
        return mongo.orders.add(
            {"account_id": "acc-1", "line_items": [], "total_amount": 0, "delivery_address": "Amman", "status": "Pending"}
        )

    def test_status_compare_and_set(self, mongo, order_id):
        assert mongo.orders.update_status(order_id, "Pending", "Processing") is True
        assert mongo.orders.update_status(order_id, "Pending", "Cancelled") is False
        assert mongo.orders.get(order_id)["status"] == "Processing"

    @pytest.mark.parametrize("missing", [MISSING_ID, "not-an-object-id"])
    def test_get_unknown_order(self, mongo, missing):
        with pytest.raises(NotFoundError):
            mongo.orders.get(missing)

    def test_update_status_of_malformed_id(self, mongo):
        with pytest.raises(NotFoundError):
            mongo.orders.update_status("not-an-object-id", "Pending", "Processing")

    def test_find_by_account(self, mongo, order_id):
        mongo.orders.add({"account_id": "acc-2", "line_items": [], "total_amount": 0, "status": "Pending"})

        assert [o["id"] for o in mongo.orders.find(account_id="acc-1")] == [order_id]
        assert ObjectId.is_valid(order_id)


class TestMongoStoresHealth:
    def test_health_lists_collections(self, mongo, product_id):
        info = mongo.health()

        assert info["backend"] == "mongodb"
        assert info["database"] == "connected"
        assert "product" in info["collections"]


class TestOrderWorkflowOnMongo:
    @pytest.fixture()
    def services(self, settings, mongo, notifier):
        return build_services(settings, stores=mongo, notifier=notifier)

    def test_rejected_order_leaves_stock_untouched(self, services):
        account_id = services.accounts.register("Khadija Haddad", "khadija@example.com", None, "s3cret-pass")
        drug_a = services.catalog.add_product({"name": "A", "price": 1.0, "stock": 5})
        drug_b = services.catalog.add_product({"name": "B", "price": 2.0, "stock": 1})

        with pytest.raises(InsufficientStockError):
            services.orders.place_order(
                account_id,
                [{"product_id": drug_a, "quantity": 2}, {"product_id": drug_b, "quantity": 2}],
                "Amman",
            )

        assert services.catalog.get_product(drug_a)["stock"] == 5
        assert services.catalog.get_product(drug_b)["stock"] == 1

        order_id = services.orders.place_order(account_id, [{"product_id": drug_a, "quantity": 5}], "Amman")

        assert services.catalog.get_product(drug_a)["stock"] == 0
        assert services.orders.get_order(order_id)["total_amount"] == 5.0
        assert services.orders.list_orders(account_id)[0]["id"] == order_id

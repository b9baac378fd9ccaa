"""Drug catalog CRUD and the conditional stock decrement."""

import threading

import pytest

from errors import InsufficientStockError, NotFoundError, ValidationError


class TestProductLifecycle:
    def test_add_list_update_delete_round_trip(self, services):
        catalog = services.catalog
        product_id = catalog.add_product(
            {"name": "Paracetamol 500mg", "price": 2.25, "stock": 40, "description": "Pain relief", "image": "p.png"}
        )

        listed = {p["id"]: p for p in catalog.list_products()}
        assert listed[product_id]["name"] == "Paracetamol 500mg"

        catalog.update_product(product_id, {"price": 1.99})

        updated = catalog.get_product(product_id)
        assert updated["price"] == 1.99
        assert updated["name"] == "Paracetamol 500mg"
        assert updated["stock"] == 40
        assert updated["description"] == "Pain relief"
        assert updated["image"] == "p.png"

        catalog.delete_product(product_id)

        assert product_id not in {p["id"] for p in catalog.list_products()}
        with pytest.raises(NotFoundError):
            catalog.get_product(product_id)

    def test_stock_defaults_to_zero(self, services):
        product_id = services.catalog.add_product({"name": "Vitamin C", "price": 3.0})

        assert services.catalog.get_product(product_id)["stock"] == 0

    def test_listing_is_newest_first(self, services, add_drug):
        first = add_drug(name="First")
        second = add_drug(name="Second")

        assert [p["id"] for p in services.catalog.list_products()] == [second, first]

    def test_listing_by_category(self, services, add_drug):
        add_drug(name="Ibuprofen", category="analgesics")
        add_drug(name="Azithromycin", category="antibiotics")

        names = [p["name"] for p in services.catalog.list_products(category="antibiotics")]
        assert names == ["Azithromycin"]

    def test_none_leaves_required_fields_untouched(self, services, add_drug):
        product_id = add_drug(name="Keep me", price=2.0)

        services.catalog.update_product(product_id, {"name": None, "price": None, "stock": 9})

        product = services.catalog.get_product(product_id)
        assert product["name"] == "Keep me"
        assert product["price"] == 2.0
        assert product["stock"] == 9

    def test_none_clears_optional_fields(self, services, add_drug):
        product_id = add_drug(description="Old leaflet", image="old.png", category="antibiotics")

        services.catalog.update_product(product_id, {"description": None, "category": None})

        product = services.catalog.get_product(product_id)
        assert product["description"] is None
        assert product["category"] is None
        assert product["image"] == "old.png"


class TestProductValidation:
    def test_name_and_price_required(self, services):
        with pytest.raises(ValidationError):
            services.catalog.add_product({"name": "No price"})

    @pytest.mark.parametrize(
        "fields",
        [
            {"name": "Bad", "price": -1},
            {"name": "Bad", "price": 1, "stock": -3},
            {"name": "Bad", "price": 1, "stock": 1.5},
            {"name": "", "price": 1},
            {"name": "Bad", "price": 1, "colour": "red"},
        ],
    )
    def test_invalid_products_rejected(self, services, fields):
        with pytest.raises(ValidationError):
            services.catalog.add_product(fields)

    def test_empty_update_rejected(self, services, add_drug):
        product_id = add_drug()

        with pytest.raises(ValidationError):
            services.catalog.update_product(product_id, {})

    def test_update_unknown_product(self, services):
        with pytest.raises(NotFoundError):
            services.catalog.update_product("unknown-id", {"price": 1.0})

    def test_delete_unknown_product(self, services):
        with pytest.raises(NotFoundError):
            services.catalog.delete_product("unknown-id")


class TestStockDecrement:
    def test_decrement_returns_remaining_stock(self, services, add_drug):
        product_id = add_drug(stock=5)

        assert services.catalog.decrement_stock(product_id, 2) == 3
        assert services.catalog.get_product(product_id)["stock"] == 3

    def test_decrement_to_exactly_zero(self, services, add_drug):
        product_id = add_drug(stock=4)

        assert services.catalog.decrement_stock(product_id, 4) == 0

    def test_insufficient_stock_changes_nothing(self, services, add_drug):
        product_id = add_drug(stock=2)

        with pytest.raises(InsufficientStockError) as exc:
            services.catalog.decrement_stock(product_id, 3)

        assert exc.value.available == 2
        assert exc.value.requested == 3
        assert services.catalog.get_product(product_id)["stock"] == 2

    def test_unknown_product(self, services):
        with pytest.raises(NotFoundError):
            services.catalog.decrement_stock("unknown-id", 1)

    def test_quantity_must_be_positive(self, services, add_drug):
        product_id = add_drug()

        with pytest.raises(ValidationError):
            services.catalog.decrement_stock(product_id, 0)

    def test_increment_restores_stock(self, services, add_drug):
        product_id = add_drug(stock=1)

        assert services.catalog.increment_stock(product_id, 4) == 5

    def test_concurrent_decrements_are_all_applied_once(self, services, add_drug):
        product_id = add_drug(stock=100)
        quantities = [1, 2, 3, 4, 5, 6, 7, 8, 9, 10] + [5] * 9  # 100 in total
        barrier = threading.Barrier(len(quantities))

        def take(quantity):
            barrier.wait()
            services.catalog.decrement_stock(product_id, quantity)

        threads = [threading.Thread(target=take, args=(q,)) for q in quantities]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert services.catalog.get_product(product_id)["stock"] == 100 - sum(quantities) == 0

    def test_concurrent_decrements_never_oversell(self, services, add_drug):
        product_id = add_drug(stock=10)
        barrier = threading.Barrier(25)
        outcomes = []
        lock = threading.Lock()

        def take():
            barrier.wait()
            try:
                services.catalog.decrement_stock(product_id, 1)
                result = True
            except InsufficientStockError:
                result = False
            with lock:
                outcomes.append(result)

        threads = [threading.Thread(target=take) for _ in range(25)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert outcomes.count(True) == 10
        assert services.catalog.get_product(product_id)["stock"] == 0

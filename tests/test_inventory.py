import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from pymongo.errors import PyMongoError

from errors import ConflictError
from services import inventory


def stock(db, product, size=None):
    doc = db.products.find_one({"_id": product["_id"]})
    if size:
        return next(s["stock"] for s in doc["sizes"] if s["size"] == size)
    return doc["product_stock"]


def test_merge_lines_groups_by_bucket():
    merged = inventory.merge_lines([
        {"product_id": "a", "quantity": 1, "selected_size": "M"},
        {"product_id": "a", "quantity": 2, "selected_size": "M"},
        {"product_id": "a", "quantity": 4, "selected_size": "L"},
        {"product_id": "b", "quantity": 1, "selected_size": ""},
    ])

    assert merged == [
        {"product_id": "a", "selected_size": "M", "quantity": 3},
        {"product_id": "a", "selected_size": "L", "quantity": 4},
        {"product_id": "b", "selected_size": None, "quantity": 1},
    ]


def test_reserve_and_restore_sized_bucket(db, sized_product):
    lines = [{"product_id": str(sized_product["_id"]), "selected_size": "M", "quantity": 3}]

    taken = inventory.reserve(db, lines)
    assert stock(db, sized_product, "M") == 1
    assert stock(db, sized_product, "L") == 2

    inventory.restore(db, taken)
    assert stock(db, sized_product, "M") == 4


def test_partial_failure_rolls_back(db, product, sized_product):
    lines = [
        {"product_id": str(product["_id"]), "quantity": 2},
        {"product_id": str(sized_product["_id"]), "selected_size": "L", "quantity": 3},
    ]

    with pytest.raises(ConflictError, match="size L has only 2 units"):
        inventory.reserve(db, lines)
    assert stock(db, product) == 5
    assert stock(db, sized_product, "L") == 2


def test_storage_error_mid_reservation_rolls_back(db, product, sized_product, monkeypatch):
    real_take = inventory._take

    def flaky_take(db_, line):
        if line.get("selected_size"):
            raise PyMongoError("connection reset")
        return real_take(db_, line)

    monkeypatch.setattr(inventory, "_take", flaky_take)
    lines = [
        {"product_id": str(product["_id"]), "quantity": 2},
        {"product_id": str(sized_product["_id"]), "selected_size": "M", "quantity": 1},
    ]

    with pytest.raises(PyMongoError):
        inventory.reserve(db, lines)
    assert stock(db, product) == 5
    assert stock(db, sized_product, "M") == 4


def test_stock_never_goes_negative(db, product):
    line = [{"product_id": str(product["_id"]), "quantity": 2}]
    results = []
    for _ in range(4):
        try:
            inventory.reserve(db, line)
            results.append(True)
        except ConflictError:
            results.append(False)

    assert results == [True, True, False, False]
    assert stock(db, product) == 1


def test_concurrent_reservations_never_oversell(shared_db, db, product, sized_product):
    workers = 8
    start = threading.Barrier(workers)
    lines = [
        {"product_id": str(product["_id"]), "quantity": 1},
        {"product_id": str(sized_product["_id"]), "selected_size": "L", "quantity": 1},
    ]

    def attempt(_):
        start.wait()
        try:
            inventory.reserve(shared_db, lines)
            return True
        except ConflictError:
            return False

    with ThreadPoolExecutor(max_workers=workers) as pool:
        results = list(pool.map(attempt, range(workers)))

    # size L holds 2 units, so it caps the number of winners
    assert results.count(True) == 2
    assert stock(db, sized_product, "L") == 0
    assert stock(db, product) == 3
    assert stock(db, sized_product, "M") == 4

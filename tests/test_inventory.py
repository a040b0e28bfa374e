import random

import pytest
from bson.objectid import ObjectId

from inventory import initialize_stock, receive_purchase_order

MDF_ROW = {"material": "MDF", "board_size": "6 x 4 inches", "thickness": "3mm-4mm", "color": "brown"}


def release_body(quantity, **overrides):
    body = {
        "designer_name": " Kasun Perera ",
        "designer_email": "Kasun@WoodArt.lk",
        **MDF_ROW,
        "quantity": quantity,
        "notes": "For the crest order",
    }
    body.update(overrides)
    return body


def stock_row(db):
    return db["stock"].find_one(MDF_ROW)


def test_initialize_creates_every_combination(client, db):
    res = client.post("/api/stock/initialize")
    assert res.json()["count"] == 135
    assert db["stock"].count_documents({}) == 135
    row = stock_row(db)
    assert 100 <= row["price"] <= 200
    assert row["available_quantity"] == 0
    assert row["reorder_level"] == 100


def test_initialize_is_repeatable(db):
    initialize_stock(db, random.Random(1))
    db["stock"].update_one(MDF_ROW, {"$set": {"available_quantity": 300}})
    assert initialize_stock(db, random.Random(2)) == 135
    assert db["stock"].count_documents({}) == 135
    assert stock_row(db)["available_quantity"] == 0


def test_summary_and_filters(client, db):
    client.post("/api/stock/initialize")
    db["stock"].update_one(MDF_ROW, {"$set": {"available_quantity": 500}})

    summary = client.get("/api/stock/summary").json()["summary"]
    assert summary == {
        "total_combinations": 135,
        "low_stock_items": 134,
        "out_of_stock_items": 134,
        "total_quantity": 500,
    }
    assert client.get("/api/stock/low-stock-count").json()["count"] == 134
    assert client.get("/api/stock", params={"material": "MDF"}).json()["total_combinations"] == 27
    low = client.get("/api/stock", params={"material": "MDF", "low_stock": "true"}).json()
    assert low["total_combinations"] == 26


def test_combination_lookup(client):
    client.post("/api/stock/initialize")
    assert client.get("/api/stock/combination", params={"material": "MDF"}).status_code == 400
    res = client.get("/api/stock/combination", params=MDF_ROW)
    assert res.json()["stock"]["material"] == "MDF"


def test_release_keeps_fifty_boards(client, db):
    db["stock"].insert_one({**MDF_ROW, "price": 150, "available_quantity": 100, "reorder_level": 100})

    res = client.post("/api/stock/release", json=release_body(60))
    assert res.status_code == 400
    assert res.json()["message"].startswith("Stock cannot go below 50 units")

    res = client.post("/api/stock/release", json=release_body(120))
    assert res.json()["message"] == "Insufficient stock. Available: 100, Requested: 120"

    res = client.post("/api/stock/release", json=release_body(50))
    assert res.status_code == 200
    body = res.json()
    assert body["updated_stock"]["available_quantity"] == 50
    assert body["stock_release"]["designer_email"] == "kasun@woodart.lk"
    assert body["stock_release"]["designer_name"] == "Kasun Perera"
    assert stock_row(db)["available_quantity"] == 50

    releases = client.get("/api/stock/releases", params={"designer_email": "KASUN@woodart.lk"}).json()
    assert releases["total"] == 1


def test_release_of_unknown_combination(client):
    res = client.post("/api/stock/release", json=release_body(5))
    assert res.status_code == 404


def test_manual_update_respects_floor(client, db):
    client.post("/api/stock/initialize")
    stock_id = str(stock_row(db)["_id"])
    res = client.put(f"/api/stock/{stock_id}", json={"available_quantity": 40})
    assert res.status_code == 400
    assert res.json()["message"] == "Available quantity cannot be less than 50"
    res = client.put(f"/api/stock/{stock_id}", json={"available_quantity": 80, "reorder_level": 60})
    assert res.json()["stock"]["available_quantity"] == 80


def test_update_prices(client, db):
    client.post("/api/stock/initialize")
    res = client.post("/api/stock/update-prices").json()
    assert res["updated_count"] == 135
    assert all(100 <= row["price"] <= 200 for row in db["stock"].find({}))


def test_reset_rebuilds_rows(client, db):
    db["stock"].insert_one({"material": "Teak", "board_size": "x", "thickness": "y", "color": "z"})
    res = client.post("/api/stock/reset")
    assert res.json()["count"] == 135
    assert db["stock"].count_documents({"material": "Teak"}) == 0


# ----------------------- Suppliers and purchase orders -----------------------
@pytest.fixture
def supplier(client):
    return client.post("/api/suppliers", json={
        "name": "Lanka Timber", "email": "sales@lankatimber.lk", "phone": "0112345678", "address": "Moratuwa",
    }).json()["supplier"]


def test_supplier_crud(client, supplier):
    assert [s["name"] for s in client.get("/api/suppliers").json()["suppliers"]] == ["Lanka Timber"]
    res = client.put(f"/api/suppliers/{supplier['id']}", json={"active": False})
    assert res.json()["supplier"]["active"] is False
    assert client.delete(f"/api/suppliers/{supplier['id']}").status_code == 200
    res = client.delete(f"/api/suppliers/{supplier['id']}")
    assert res.status_code == 404
    assert res.json()["message"] == "Supplier not found"


def test_receiving_purchase_order_adds_stock(client, supplier, db):
    client.post("/api/stock/initialize")
    res = client.post("/api/purchase-orders", json={
        "supplier_id": supplier["id"], "item_name": "MDF", "quantity": 200,
        "board_size": "6 x 4 inches", "thickness": "3mm-4mm", "color": "brown",
    })
    po = res.json()["purchase_order"]
    assert po["po_code"].startswith("PO-")
    assert po["supplier"]["name"] == "Lanka Timber"

    assert client.put(f"/api/purchase-orders/{po['id']}", json={"status": "shipped"}).status_code == 400
    res = client.put(f"/api/purchase-orders/{po['id']}", json={"status": "received"})
    assert res.json()["purchase_order"]["received_at"]
    assert stock_row(db)["available_quantity"] == 200

    listed = client.get("/api/purchase-orders", params={"supplier_id": supplier["id"]}).json()
    assert len(listed["purchase_orders"]) == 1
    assert client.delete(f"/api/purchase-orders/{po['id']}").status_code == 200
    assert client.get(f"/api/purchase-orders/{po['id']}").status_code == 404


def test_receipt_creates_missing_row(db):
    receive_purchase_order(db, {"item_name": "", "quantity": 70, "board_size": "8 x 6 inches",
                                "thickness": "5mm-6mm", "color": "tan"})
    row = db["stock"].find_one({"board_size": "8 x 6 inches", "thickness": "5mm-6mm", "color": "tan"})
    assert row["material"] == "MDF"
    assert row["available_quantity"] == 70


def test_purchase_order_needs_known_supplier(client):
    res = client.post("/api/purchase-orders", json={
        "supplier_id": str(ObjectId()), "item_name": "HDF", "quantity": 10,
        "board_size": "6 x 4 inches", "thickness": "3mm-4mm", "color": "blue",
    })
    assert res.status_code == 404


# ----------------------- Material requests -----------------------
def request_body(**overrides):
    body = {**MDF_ROW, "quantity": 20, "description": "  Need boards for crest  "}
    body.update(overrides)
    return body


def test_material_request_lifecycle(client):
    res = client.post("/api/material-requests", json=request_body())
    assert res.status_code == 201
    request = res.json()["request"]
    assert request["status"] == "pending"
    assert request["description"] == "Need boards for crest"
    assert request["staff_designer_name"] == "Staff Designer"

    res = client.put(f"/api/material-requests/{request['id']}", json={"status": "fulfilled"})
    updated = res.json()["request"]
    assert updated["fulfilled_by"] == "Admin"
    assert updated["fulfilled_at"]

    assert client.post("/api/material-requests", json=request_body(quantity=0)).status_code == 400
    assert client.delete(f"/api/material-requests/{request['id']}").status_code == 200
    assert client.get(f"/api/material-requests/{request['id']}").status_code == 404


def test_bulk_update_and_stats(client):
    ids = [client.post("/api/material-requests", json=request_body()).json()["request"]["id"] for _ in range(3)]

    assert client.post("/api/material-requests/bulk-update", json={"status": "approved"}).status_code == 400
    res = client.post("/api/material-requests/bulk-update", json={"request_ids": ids[:2]})
    assert res.json()["message"] == "Status is required"

    res = client.post("/api/material-requests/bulk-update",
                      json={"request_ids": ids[:2], "status": "approved", "admin_notes": "Go ahead"})
    assert res.json()["modified_count"] == 2

    stats = client.get("/api/material-requests/stats/summary").json()["stats"]
    assert stats["total"] == 3
    assert stats["approved"] == 2
    assert stats["pending"] == 1
    assert client.get("/api/material-requests", params={"status": "approved"}).json()["total"] == 2

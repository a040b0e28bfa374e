import pytest
from bson.objectid import ObjectId

from database import utcnow
from tests.conftest import PNG

FORM = {
    "customer_name": "Dilani",
    "customer_email": "dilani@woodart.lk",
    "customer_phone": "0711111111",
    "board_color": "brown",
    "material": "Mahogany",
    "board_size": "12 x 8 inches",
    "board_thickness": "8mm-10mm",
    "description": "Family crest",
    "total_price": "6000",
}


def create(client, **overrides):
    files = {"image": ("crest.jpg", PNG, "image/jpeg")}
    if overrides.get("payment_method") == "bank":
        files["bank_slip"] = ("slip.png", PNG, "image/png")
    return client.post("/api/customOrder/create", data={**FORM, **overrides}, files=files)


@pytest.fixture
def staff(make_user):
    return make_user("Kasun Perera", "kasun@woodart.lk", role="staff-designer")


def test_cash_order_defaults(client):
    res = create(client)
    assert res.status_code == 200
    order = res.json()["order"]
    assert order["order_id"].startswith("WA-")
    assert order["payment_status"] == "paid"
    assert order["status"] == "pending"
    assert order["delivery_fee"] == 250
    assert order["estimated_price"] == 6000


def test_bank_order_needs_slip_and_waits(client):
    res = client.post("/api/customOrder/create", data={**FORM, "payment_method": "bank"},
                      files={"image": ("crest.jpg", PNG, "image/jpeg")})
    assert res.status_code == 400
    assert res.json()["message"] == "Bank slip is required for bank payments"

    order = create(client, payment_method="bank").json()["order"]
    assert order["payment_status"] == "pending"
    assert order["bank_slip_id"]


def test_create_validation(client):
    res = client.post("/api/customOrder/create", data={**FORM, "material": ""},
                      files={"image": ("crest.jpg", PNG, "image/jpeg")})
    assert res.json()["message"] == "Missing required fields"
    res = client.post("/api/customOrder/create", data=FORM)
    assert res.json()["message"] == "Reference image is required"


def test_accept_requires_paid_pending_order(client, staff):
    bank = create(client, payment_method="bank").json()["order"]
    res = client.put(f"/api/customOrder/{bank['order_id']}/accept", json={"staff_designer_id": str(staff["_id"])})
    assert res.status_code == 400
    assert res.json()["message"] == "Order payment has not been approved yet"

    cash = create(client).json()["order"]
    res = client.put(f"/api/customOrder/{cash['order_id']}/accept",
                     json={"staff_designer_id": str(staff["_id"]), "estimated_price": 6500})
    assert res.status_code == 200
    assert res.json()["order"]["status"] == "accepted"
    assert res.json()["order"]["estimated_price"] == 6500

    res = client.put(f"/api/customOrder/{cash['order_id']}/accept", json={})
    assert res.json()["message"] == "Order is not in pending status"

    accepted = client.get("/api/customOrder/accepted").json()["orders"]
    assert [o["order_id"] for o in accepted] == [cash["order_id"]]
    mine = client.get(f"/api/customOrder/staff/{staff['_id']}", params={"status": "accepted"}).json()["orders"]
    assert len(mine) == 1


def test_lookup_by_mongo_id_and_bad_ids(client):
    order = create(client).json()["order"]
    res = client.put(f"/api/customOrder/{order['id']}/status", json={"status": "in_progress"})
    assert res.json()["order"]["status"] == "in_progress"
    assert client.put("/api/customOrder/undefined/status", json={"status": "accepted"}).status_code == 400
    assert client.put("/api/customOrder/garbage/status", json={"status": "accepted"}).status_code == 400
    res = client.put(f"/api/customOrder/{ObjectId()}/status", json={"status": "accepted"})
    assert res.status_code == 404


def test_completion_and_delivery(client, db):
    order = create(client).json()["order"]
    ref = order["order_id"]

    res = client.post(f"/api/customOrder/{ref}/notify-delivery")
    assert res.status_code == 400

    res = client.put(f"/api/customOrder/{ref}/status", json={"status": "completed", "final_price": 7000})
    assert res.json()["order"]["final_price"] == 7000
    assert [o["order_id"] for o in client.get("/api/customOrder/completed").json()["orders"]] == [ref]

    client.post(f"/api/customOrder/{ref}/notify-delivery")
    ready = client.get("/api/customOrder/delivery/custom").json()
    assert ready["section"] == "ready"
    assert [o["order_id"] for o in ready["orders"]] == [ref]

    res = client.put(f"/api/customOrder/{ref}/delivery-status", json={"delivery_status": "teleported"})
    assert res.status_code == 400
    client.put(f"/api/customOrder/{ref}/delivery-status", json={"delivery_status": "picked_up"})
    on = client.get("/api/customOrder/delivery/custom", params={"section": "on"}).json()["orders"]
    assert [o["order_id"] for o in on] == [ref]

    res = client.put(f"/api/customOrder/{ref}/delivery-status", json={"delivery_status": "delivered"})
    assert res.json()["order"]["delivery_date"]

    res = client.post("/api/customOrder/collect-cash", json={"order_id": ref})
    assert res.json()["order"]["cash_collected"] is True

    res = client.put(f"/api/customOrder/{order['id']}/release-delivery-payment",
                     json={"delivery_transaction_id": "DLV-9"})
    assert res.json()["order"]["payment_released"] is True


def test_delivery_address_falls_back_to_profile(client, make_user, db):
    make_user("Dilani", "dilani@woodart.lk", address="77 Galle Road, Colombo")
    ref = create(client, customer_address="").json()["order"]["order_id"]
    db["customorder"].update_one({"order_id": ref},
                                 {"$set": {"status": "completed", "delivery_status": "ready_for_delivery"}})
    orders = client.get("/api/customOrder/delivery/custom").json()["orders"]
    assert orders[0]["customer_address"] == "77 Galle Road, Colombo"


def test_collect_cash_rejects_bank_orders(client):
    ref = create(client, payment_method="bank").json()["order"]["order_id"]
    res = client.post("/api/customOrder/collect-cash", json={"order_id": ref})
    assert res.status_code == 400
    assert res.json()["message"] == "This order is not a cash payment"


def test_download_reference_image(client):
    ref = create(client).json()["order"]["order_id"]
    res = client.get(f"/api/customOrder/{ref}/download-image")
    assert res.status_code == 200
    assert res.content == PNG
    assert f"{ref}_reference.jpg" in res.headers["content-disposition"]


def test_migrate_assigns_missing_order_ids(client, db):
    db["customorder"].insert_one({"customer_name": "Legacy", "customer_email": "old@woodart.lk",
                                  "status": "pending", "created_at": utcnow()})
    res = client.post("/api/customOrder/migrate-order-ids").json()
    assert res["updated_count"] == 1
    assert res["total_found"] == 1
    assert db["customorder"].find_one({"customer_name": "Legacy"})["order_id"].startswith("WA-")


def test_user_orders_include_staff_designer(client, staff):
    ref = create(client).json()["order"]["order_id"]
    client.put(f"/api/customOrder/{ref}/accept", json={"staff_designer_id": str(staff["_id"])})
    res = client.get("/api/customOrder/user/dilani@woodart.lk").json()
    assert res["message"] == "Found 1 custom orders for dilani@woodart.lk"
    assert res["orders"][0]["staff_designer"] == {"name": "Kasun Perera", "email": "kasun@woodart.lk"}


def test_delete_order(client, db):
    ref = create(client).json()["order"]["order_id"]
    res = client.delete(f"/api/customOrder/{ref}")
    assert res.json()["deleted_order"]["order_id"] == ref
    assert db["customorder"].count_documents({}) == 0
    assert len(client.get("/api/customOrder/all").json()["orders"]) == 0


def test_rejected_slip_leaves_no_files(client, files):
    res = client.post("/api/customOrder/create", data={**FORM, "payment_method": "bank"}, files={
        "image": ("crest.jpg", PNG, "image/jpeg"),
        "bank_slip": ("slip.pdf", b"%PDF-1.4", "application/pdf"),
    })
    assert res.status_code == 400
    assert res.json()["message"] == "Only image files are allowed!"
    assert files.files == {}

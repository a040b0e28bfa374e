from datetime import timedelta

from bson.objectid import ObjectId

from database import utcnow


def order_doc(**fields):
    return {
        "order_id": f"WAG-{ObjectId()}",
        "items": [{"item_id": "1"}],
        "status": "confirmed",
        "delivery_status": "not_assigned",
        "delivery_fee": 250.0,
        "payment_released": False,
        "updated_at": utcnow(),
        **fields,
    }


def test_delivery_overview_counts(client, db):
    yesterday = utcnow() - timedelta(days=1)
    db["order"].insert_many([
        order_doc(status="ready_for_delivery"),
        order_doc(delivery_status="picked_up"),
        order_doc(delivery_status="in_transit"),
        order_doc(delivery_status="delivered", delivery_date=utcnow(), payment_released=True),
        order_doc(delivery_status="delivered", delivery_date=yesterday),
    ])
    db["customorder"].insert_many([
        {"order_id": "WA-1", "delivery_status": "ready_for_delivery", "updated_at": utcnow()},
        {"order_id": "WA-2", "delivery_status": "delivered", "delivery_fee": 300.0,
         "payment_released": True, "updated_at": utcnow()},
    ])

    res = client.get("/api/delivery/overview")
    assert res.status_code == 200
    data = res.json()["data"]
    assert data["ready_to_delivery"] == 2
    assert data["on_the_delivery"] == 2
    assert data["completed_delivery"] == 2
    assert data["total_revenue"] == 550


def test_delivery_overview_empty(client):
    data = client.get("/api/delivery/overview").json()["data"]
    assert data == {"ready_to_delivery": 0, "on_the_delivery": 0, "completed_delivery": 0, "total_revenue": 0}


# ----------------------- Admin -----------------------
def test_admin_routes_need_admin_token(client, make_user, auth_headers):
    assert client.get("/api/admin/customers").status_code in (401, 403)
    customer = make_user("Dilani", "dilani@woodart.lk")
    res = client.get("/api/admin/customers", headers=auth_headers(customer))
    assert res.status_code == 403
    assert res.json()["message"] == "Admin only"


def test_customer_directory_counts_orders(client, admin_headers, make_user, db):
    customer = make_user("Dilani", "dilani@woodart.lk")
    make_user("Ruwan", "ruwan@woodart.lk", role="designer")
    db["order"].insert_many([
        order_doc(customer_id=str(customer["_id"])),
        order_doc(customer_id=str(customer["_id"]), status="cancelled"),
    ])
    db["customorder"].insert_one({"order_id": "WA-1", "customer_email": customer["email"], "status": "completed"})

    res = client.get("/api/admin/customers", headers=admin_headers).json()
    assert res["count"] == 1
    assert res["customers"][0]["email"] == "dilani@woodart.lk"
    assert res["customers"][0]["total_marketplace_orders"] == 1
    assert res["customers"][0]["total_custom_orders"] == 1


def test_customer_with_orders_cannot_be_deleted(client, admin_headers, make_user, db):
    customer = make_user("Dilani", "dilani@woodart.lk")
    db["customorder"].insert_one({"order_id": "WA-1", "customer_email": customer["email"], "status": "pending"})
    res = client.delete(f"/api/admin/customers/{customer['_id']}", headers=admin_headers)
    assert res.status_code == 400

    db["customorder"].delete_many({})
    res = client.delete(f"/api/admin/customers/{customer['_id']}", headers=admin_headers)
    assert res.status_code == 200
    assert db["user"].find_one({"_id": customer["_id"]}) is None


def test_delete_endpoints_check_role(client, admin_headers, make_user):
    designer = make_user("Ruwan", "ruwan@woodart.lk", role="designer")
    res = client.delete(f"/api/admin/customers/{designer['_id']}", headers=admin_headers)
    assert res.status_code == 400
    assert res.json()["message"] == "Only customers can be deleted through this endpoint"
    res = client.delete(f"/api/admin/designers/{ObjectId()}", headers=admin_headers)
    assert res.status_code == 404
    assert res.json()["message"] == "Designer not found"


def test_designer_directory_and_delete(client, admin_headers, make_user, make_design, db):
    designer = make_user("Ruwan", "ruwan@woodart.lk", role="designer")
    design = make_design(designer)
    res = client.get("/api/admin/designers", headers=admin_headers).json()
    assert res["designers"][0]["total_uploads"] == 1

    res = client.delete(f"/api/admin/designers/{designer['_id']}", headers=admin_headers)
    assert res.status_code == 400
    db["design"].delete_one({"_id": design["_id"]})
    res = client.delete(f"/api/admin/designers/{designer['_id']}", headers=admin_headers)
    assert res.json()["message"] == "Designer deleted successfully"


def test_admin_stats(client, admin_headers, make_user, db):
    make_user("Dilani", "dilani@woodart.lk")
    db["order"].insert_one(order_doc(payment_method="bank_transfer", payment_status="pending"))
    stats = client.get("/api/admin/stats", headers=admin_headers).json()["stats"]
    assert stats["users"]["customer"] == 1
    assert stats["users"]["admin"] == 1
    assert stats["orders"] == 1
    assert stats["pending_bank_payments"] == 1

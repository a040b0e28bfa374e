"""
Response shaping.

Mongo documents are turned into JSON-ready dicts here, together with the
handful of reshaped views (designer orders, income rows, user summaries)
the dashboards consume.
"""
from datetime import datetime

from bson.objectid import ObjectId


def _plain(value):
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value


def serialize_doc(doc):
    if not doc:
        return doc
    doc = dict(doc)
    _id = doc.pop("_id", None)
    if _id is not None:
        doc["id"] = str(_id)
    return _plain(doc)


def serialize_docs(docs):
    return [serialize_doc(d) for d in docs]


def public_user(user):
    doc = serialize_doc(user)
    doc.pop("password_hash", None)
    return doc


def designer_order_view(order, designer_id: str):
    """Order trimmed to the lines belonging to one designer."""
    items = [i for i in order.get("items", []) if i.get("designer_id") == designer_id]
    return serialize_doc({
        "_id": order["_id"],
        "order_id": order.get("order_id"),
        "customer_name": order.get("customer_name"),
        "customer_email": order.get("customer_email"),
        "customer_phone": order.get("customer_phone"),
        "customer_address": order.get("customer_address"),
        "items": items,
        "designer_total": sum(i.get("subtotal", 0) for i in items),
        "total_amount": order.get("total_amount"),
        "delivery_fee": order.get("delivery_fee"),
        "payment_method": order.get("payment_method"),
        "payment_status": order.get("payment_status"),
        "status": order.get("status"),
        "delivery_status": order.get("delivery_status"),
        "order_date": order.get("order_date"),
        "delivery_date": order.get("delivery_date"),
        "notes": order.get("notes"),
    })


def marketplace_income_row(order, item, commission, designer_amount, designer_email, payment):
    delivery_fee = order.get("delivery_fee") or 250
    return serialize_doc({
        "order_id": order.get("order_id"),
        "order_mongo_id": order["_id"],
        "order_item_id": item["item_id"],
        "design_id": item["design_id"],
        "item_name": item.get("item_name"),
        "quantity": item.get("quantity"),
        "customer_name": order.get("customer_name"),
        "customer_email": order.get("customer_email"),
        "designer_name": item.get("designer_name"),
        "designer_email": designer_email,
        "payment_method": order.get("payment_method"),
        "total_price": item["subtotal"] + delivery_fee,
        "delivery_fee": delivery_fee,
        "item_price": item["subtotal"],
        "commission": commission,
        "designer_amount": designer_amount,
        "released": payment is not None,
        "released_at": payment.get("released_at") if payment else None,
        "payment_record_id": payment["_id"] if payment else None,
    })


def custom_income_row(order, staff_designer, total_price, delivery_fee, item_price):
    return serialize_doc({
        "order_id": order.get("order_id") or str(order["_id"]),
        "order_mongo_id": order["_id"],
        "customer_name": order.get("customer_name"),
        "customer_email": order.get("customer_email"),
        "staff_designer_name": staff_designer["name"] if staff_designer else "Not Assigned",
        "staff_designer_email": staff_designer["email"] if staff_designer else "",
        "payment_method": "Cash on delivery" if order.get("payment_method") == "cash" else "Bank payment",
        "total_price": total_price,
        "delivery_fee": delivery_fee,
        "item_price": item_price,
        "paid_at": order.get("updated_at"),
        "status": order.get("status"),
    })


def user_summary(user, **counts):
    doc = {
        "id": str(user["_id"]),
        "name": user.get("name"),
        "email": user.get("email"),
        "phone": user.get("phone"),
        "address": user.get("address"),
    }
    doc.update(counts)
    return doc

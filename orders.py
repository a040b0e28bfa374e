import json
import logging
from datetime import datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile
from pydantic import BaseModel, Field
from pymongo import DESCENDING, ReturnDocument

from database import get_db, touch, utcnow
from lifecycle import cancel_order, collect_cash, find_order, place_order, release_delivery_payment
from schemas import OrderDeliveryStatus, OrderPaymentMethod, OrderStatus
from storage import UPLOADS, get_file_store, store_upload
from views import designer_order_view, serialize_doc, serialize_docs

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/orders", tags=["orders"])

BANK_SLIP_PREFIX = "/api/bankSlip/file/"


class RequestedItem(BaseModel):
    design_id: str
    quantity: int = Field(1, ge=1)


class OrderCreateBody(BaseModel):
    user_email: str
    items: List[RequestedItem] = Field(..., min_length=1)
    payment_method: OrderPaymentMethod
    bank_slip_url: Optional[str] = None
    order_type: Literal["cart", "individual"] = "cart"


class StatusUpdateBody(BaseModel):
    order_id: str
    status: Optional[OrderStatus] = None
    delivery_status: Optional[OrderDeliveryStatus] = None
    notes: Optional[str] = None


class NotifyDeliveryBody(BaseModel):
    order_id: str
    designer_email: str


class CollectCashBody(BaseModel):
    order_id: str
    collected_by: Optional[str] = None


class DeliveryReleaseBody(BaseModel):
    delivery_transaction_id: Optional[str] = None
    release_date: Optional[datetime] = None


def _customer(db, email: str):
    customer = db["user"].find_one({"email": email})
    if not customer:
        raise HTTPException(status_code=404, detail="Customer not found")
    return customer


def _clear_cart(db, customer):
    db["cart"].update_one({"user_id": str(customer["_id"])}, {"$set": touch({"items": []})})


@router.post("/create")
def create_order(body: OrderCreateBody, request: Request, db=Depends(get_db)):
    customer = _customer(db, body.user_email)
    bank_slip_id = bank_slip_filename = None
    if body.bank_slip_url and body.bank_slip_url.startswith(BANK_SLIP_PREFIX):
        bank_slip_id = body.bank_slip_url[len(BANK_SLIP_PREFIX):]
        bank_slip_filename = f"bank-slip-{int(utcnow().timestamp() * 1000)}"

    order = place_order(
        db, customer, [i.model_dump() for i in body.items], body.payment_method,
        bank_slip_id=bank_slip_id, bank_slip_filename=bank_slip_filename,
        bank_slip_url=body.bank_slip_url, events=request.app.state.events,
    )
    if body.order_type == "cart":
        _clear_cart(db, customer)
    return {
        "success": True,
        "message": "Order created successfully",
        "order": serialize_doc({
            "order_id": order["order_id"],
            "total_amount": order["total_amount"],
            "status": order["status"],
            "order_date": order["order_date"],
        }),
    }


@router.post("/create-with-bankslip")
def create_order_with_bank_slip(
    request: Request,
    user_email: str = Form(...),
    items: str = Form(...),
    payment_method: OrderPaymentMethod = Form(...),
    order_type: Literal["cart", "individual"] = Form("cart"),
    bank_slip: Optional[UploadFile] = File(None),
    db=Depends(get_db),
    store=Depends(get_file_store),
):
    try:
        parsed = json.loads(items)
        requested = [RequestedItem(**i).model_dump() for i in parsed]
    except (ValueError, TypeError):
        raise HTTPException(status_code=400, detail="Invalid items format")
    if payment_method == "bank_transfer" and bank_slip is None:
        raise HTTPException(status_code=400, detail="Bank slip is required for bank transfer payments")
    customer = _customer(db, user_email)

    bank_slip_id = bank_slip_filename = None
    if payment_method == "bank_transfer":
        bank_slip_id, bank_slip_filename = store_upload(
            store, UPLOADS, bank_slip, {"type": "bankSlip", "customerEmail": user_email}, image_only=False
        )

    try:
        order = place_order(
            db, customer, requested, payment_method,
            bank_slip_id=bank_slip_id, bank_slip_filename=bank_slip_filename,
            events=request.app.state.events,
        )
    except Exception:
        if bank_slip_id:
            store.delete(UPLOADS, bank_slip_id)
        raise
    if order_type == "cart":
        _clear_cart(db, customer)
    return {
        "success": True,
        "message": "Order created successfully",
        "order_id": order["order_id"],
        "order": serialize_doc(order),
    }


@router.get("/designer/{email}")
def designer_orders(email: str, db=Depends(get_db)):
    designer = db["user"].find_one({"email": email})
    if not designer:
        raise HTTPException(status_code=404, detail="Designer not found")
    designer_id = str(designer["_id"])
    orders = db["order"].find({
        "items.designer_id": designer_id,
        "status": {"$ne": "cancelled"},
        "payment_status": "paid",
    }).sort("order_date", DESCENDING)
    return {"success": True, "orders": [designer_order_view(o, designer_id) for o in orders]}


@router.get("/customer/{email}")
def customer_orders(email: str, db=Depends(get_db)):
    customer = _customer(db, email)
    orders = db["order"].find({"customer_id": str(customer["_id"])}).sort("order_date", DESCENDING)
    return {"success": True, "orders": serialize_docs(orders)}


@router.put("/update-status")
def update_order_status(body: StatusUpdateBody, db=Depends(get_db)):
    update = body.model_dump(exclude_none=True, exclude={"order_id"})
    if body.delivery_status == "delivered":
        update["delivery_date"] = utcnow()
    order = db["order"].find_one_and_update(
        {"order_id": body.order_id}, {"$set": touch(update)}, return_document=ReturnDocument.AFTER
    )
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return {"success": True, "message": "Order updated successfully", "order": serialize_doc(order)}


@router.post("/notify-delivery")
def notify_delivery(body: NotifyDeliveryBody, db=Depends(get_db)):
    order = db["order"].find_one_and_update(
        {"order_id": body.order_id},
        {"$set": touch({"status": "ready_for_delivery", "delivery_status": "not_assigned"})},
        return_document=ReturnDocument.AFTER,
    )
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    logger.info("Designer %s marked order %s as ready for delivery", body.designer_email, body.order_id)
    return {"success": True, "message": "Delivery team has been notified", "order": serialize_doc(order)}


@router.get("/delivery/marketplace")
def marketplace_deliveries(section: Optional[str] = None, db=Depends(get_db)):
    filt = {"items.0": {"$exists": True}, "status": {"$ne": "cancelled"}}
    if section == "on":
        filt["delivery_status"] = {"$in": ["picked_up", "in_transit"]}
    elif section == "completed":
        filt["delivery_status"] = "delivered"
    else:
        filt["status"] = "ready_for_delivery"
        filt["delivery_status"] = "not_assigned"
    orders = db["order"].find(filt).sort("order_date", DESCENDING)
    return {"success": True, "orders": serialize_docs(orders)}


@router.post("/collect-cash")
def collect_order_cash(body: CollectCashBody, db=Depends(get_db)):
    order = db["order"].find_one({"order_id": body.order_id})
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    order = collect_cash(db, order, is_custom=False, collected_by=body.collected_by)
    return {"success": True, "message": "Cash collected recorded", "order": serialize_doc(order)}


@router.get("/user/{email}")
def user_orders(email: str, db=Depends(get_db)):
    orders = serialize_docs(db["order"].find({"customer_email": email}).sort("order_date", DESCENDING))
    return {"success": True, "orders": orders, "message": f"Found {len(orders)} orders for {email}"}


@router.put("/{order_id}/release-delivery-payment")
def release_order_delivery_payment(order_id: str, body: DeliveryReleaseBody, db=Depends(get_db)):
    order = release_delivery_payment(db, "order", order_id, body.delivery_transaction_id, body.release_date)
    return {
        "success": True,
        "message": "Delivery payment released successfully",
        "order": serialize_doc({
            "_id": order["_id"],
            "order_id": order.get("order_id"),
            "payment_released": order["payment_released"],
            "delivery_transaction_id": order.get("delivery_transaction_id"),
            "release_date": order.get("release_date"),
        }),
    }


@router.put("/{order_id}/cancel")
def cancel(order_id: str, request: Request, db=Depends(get_db)):
    order = find_order(db, order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    order = cancel_order(db, order, request.app.state.events)
    logger.info("Order %s cancelled", order.get("order_id"))
    return {"success": True, "message": "Order cancelled", "order": serialize_doc(order)}

import logging
import os
from datetime import datetime
from typing import Optional

from bson.objectid import ObjectId
from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import Response
from pydantic import BaseModel
from pymongo import DESCENDING, ReturnDocument

from codes import CUSTOM_ORDER_IDS, CodeGenerationError
from database import create_document, get_db, is_object_id, touch, utcnow
from lifecycle import collect_cash, find_custom_order, release_delivery_payment
from schemas import CustomDeliveryStatus, CustomOrder as CustomOrderSchema, CustomOrderStatus, CustomPaymentMethod
from schemas import DEFAULT_DELIVERY_FEE
from storage import UPLOADS, content_type_for, get_file_store, read_image, save_upload
from views import serialize_doc, serialize_docs

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/customOrder", tags=["custom orders"])


class AcceptBody(BaseModel):
    staff_designer_id: Optional[str] = None
    estimated_price: Optional[float] = None
    notes: Optional[str] = None


class StatusBody(BaseModel):
    status: CustomOrderStatus
    final_price: Optional[float] = None
    notes: Optional[str] = None


class DeliveryStatusBody(BaseModel):
    delivery_status: str


class CollectCashBody(BaseModel):
    order_id: str


class DeliveryReleaseBody(BaseModel):
    delivery_transaction_id: Optional[str] = None
    release_date: Optional[datetime] = None


def _require(order):
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


def _find_loose(db, ref: str):
    """Match either the readable order id or the Mongo id, without rejecting odd formats."""
    clauses = [{"order_id": ref}]
    if is_object_id(ref):
        clauses.append({"_id": ObjectId(ref)})
    order = db["customorder"].find_one({"$or": clauses})
    if not order:
        raise HTTPException(status_code=404, detail="Custom order not found")
    return order


def _set(db, order, update: dict):
    return db["customorder"].find_one_and_update(
        {"_id": order["_id"]}, {"$set": touch(update)}, return_document=ReturnDocument.AFTER
    )


@router.post("/create")
def create_custom_order(
    customer_name: str = Form(""),
    customer_email: str = Form(""),
    customer_phone: str = Form(""),
    customer_address: str = Form(""),
    board_color: str = Form(""),
    material: str = Form(""),
    board_size: str = Form(""),
    board_thickness: str = Form(""),
    description: str = Form(""),
    total_price: Optional[float] = Form(None),
    delivery_fee: Optional[float] = Form(None),
    payment_method: CustomPaymentMethod = Form("cash"),
    image: Optional[UploadFile] = File(None),
    bank_slip: Optional[UploadFile] = File(None),
    db=Depends(get_db),
    store=Depends(get_file_store),
):
    if not all([customer_name, customer_email, board_color, material, board_size, board_thickness]):
        raise HTTPException(status_code=400, detail="Missing required fields")
    if image is None:
        raise HTTPException(status_code=400, detail="Reference image is required")
    if payment_method == "bank" and bank_slip is None:
        raise HTTPException(status_code=400, detail="Bank slip is required for bank payments")

    # both files are checked before either is stored
    image_data = read_image(image)
    slip_data = read_image(bank_slip) if payment_method == "bank" else None

    image_id, image_filename = save_upload(
        store, UPLOADS, image, image_data, {"type": "referenceImage", "customerEmail": customer_email}
    )
    stored = [image_id]
    bank_slip_id = bank_slip_filename = None
    try:
        if slip_data is not None:
            bank_slip_id, bank_slip_filename = save_upload(
                store, UPLOADS, bank_slip, slip_data, {"type": "bankSlip", "customerEmail": customer_email}
            )
            stored.append(bank_slip_id)
        order = CustomOrderSchema(
            customer_name=customer_name,
            customer_email=customer_email,
            customer_phone=customer_phone,
            customer_address=customer_address,
            board_color=board_color,
            material=material,
            board_size=board_size,
            board_thickness=board_thickness,
            reference_image_id=image_id,
            reference_image_filename=image_filename,
            description=description,
            estimated_price=total_price or 0,
            delivery_fee=DEFAULT_DELIVERY_FEE if delivery_fee is None else delivery_fee,
            payment_method=payment_method,
            payment_status="pending" if payment_method == "bank" else "paid",
            bank_slip_id=bank_slip_id,
            bank_slip_filename=bank_slip_filename,
        ).model_dump()
        CUSTOM_ORDER_IDS.assign(db, order)
        order_mongo_id = create_document(db, "customorder", order)
    except Exception:
        for file_id in stored:
            store.delete(UPLOADS, file_id)
        raise
    logger.info("Custom order %s created for %s (%s)", order["order_id"], customer_email, payment_method)
    return {
        "success": True,
        "message": "Custom design order created successfully",
        "order": serialize_doc(db["customorder"].find_one({"_id": ObjectId(order_mongo_id)})),
    }


@router.get("/pending")
def pending_orders(db=Depends(get_db)):
    # bank orders only surface once finance has approved the slip
    orders = db["customorder"].find({"status": "pending", "payment_status": "paid"}).sort("created_at", DESCENDING)
    return {"success": True, "orders": serialize_docs(orders)}


@router.get("/accepted")
def accepted_orders(db=Depends(get_db)):
    orders = db["customorder"].find({"status": "accepted"}).sort("updated_at", DESCENDING)
    return {"success": True, "orders": serialize_docs(orders)}


@router.get("/completed")
def completed_orders(db=Depends(get_db)):
    orders = db["customorder"].find({"status": "completed"}).sort("updated_at", DESCENDING)
    return {"success": True, "orders": serialize_docs(orders)}


@router.get("/all")
def all_orders(db=Depends(get_db)):
    orders = db["customorder"].find({}).sort("created_at", DESCENDING)
    return {"success": True, "orders": serialize_docs(orders)}


@router.put("/{order_id}/accept")
def accept_order(order_id: str, body: AcceptBody, db=Depends(get_db)):
    order = _require(find_custom_order(db, order_id))
    if order.get("status") != "pending":
        raise HTTPException(status_code=400, detail="Order is not in pending status")
    if order.get("payment_status") != "paid":
        raise HTTPException(status_code=400, detail="Order payment has not been approved yet")

    update = {"status": "accepted"}
    if body.staff_designer_id:
        update["staff_designer_id"] = body.staff_designer_id
    if body.estimated_price:
        update["estimated_price"] = body.estimated_price
    if body.notes:
        update["notes"] = body.notes
    order = _set(db, order, update)

    base_url = os.getenv("BASE_URL", "")
    logger.info("Order accepted notice for %s <%s>: %s/track/%s",
                order.get("customer_name"), order.get("customer_email"), base_url, order.get("order_id"))
    return {"success": True, "message": "Order accepted successfully", "order": serialize_doc(order)}


@router.get("/staff/{staff_designer_id}")
def staff_orders(staff_designer_id: str, status: Optional[str] = None, db=Depends(get_db)):
    query = {"staff_designer_id": staff_designer_id}
    if status:
        query["status"] = status
    orders = db["customorder"].find(query).sort("updated_at", DESCENDING)
    return {"success": True, "orders": serialize_docs(orders)}


@router.put("/{order_id}/status")
def update_status(order_id: str, body: StatusBody, db=Depends(get_db)):
    order = _require(find_custom_order(db, order_id))
    update = {"status": body.status}
    if body.final_price:
        update["final_price"] = body.final_price
    if body.notes:
        update["notes"] = body.notes
    order = _set(db, order, update)
    return {"success": True, "message": "Order status updated successfully", "order": serialize_doc(order)}


@router.get("/{order_id}/download-image")
def download_reference_image(order_id: str, db=Depends(get_db), store=Depends(get_file_store)):
    order = _require(find_custom_order(db, order_id))
    if not order.get("reference_image_id"):
        raise HTTPException(status_code=404, detail="No reference image found for this order")
    stored = store.get(UPLOADS, order["reference_image_id"])
    if stored is None:
        raise HTTPException(status_code=404, detail="Image file not found in database")
    filename = f"{order.get('order_id')}_reference{stored.extension}"
    return Response(
        content=stored.data,
        media_type=content_type_for(stored),
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/migrate-order-ids")
def migrate_order_ids(db=Depends(get_db)):
    missing = list(db["customorder"].find({"$or": [
        {"order_id": {"$exists": False}}, {"order_id": None}, {"order_id": ""},
    ]}))
    updated = 0
    for order in missing:
        try:
            code = CUSTOM_ORDER_IDS.generate(db, now=order.get("created_at"))
        except CodeGenerationError as e:
            logger.error("Failed to generate unique order id for %s: %s", order["_id"], e)
            continue
        db["customorder"].update_one({"_id": order["_id"]}, {"$set": touch({"order_id": code})})
        updated += 1
    return {
        "success": True,
        "message": f"Migration completed. Updated {updated} orders with readable IDs.",
        "updated_count": updated,
        "total_found": len(missing),
    }


@router.post("/{order_id}/notify-delivery")
def notify_delivery(order_id: str, db=Depends(get_db)):
    order = _find_loose(db, order_id)
    if order.get("status") != "completed":
        raise HTTPException(status_code=400, detail="Order must be completed before notifying delivery")
    order = _set(db, order, {"delivery_status": "ready_for_delivery"})
    logger.info("Delivery team notified about custom order %s", order.get("order_id"))
    return {
        "success": True,
        "message": "Delivery team has been notified about the completed custom order",
        "order": serialize_doc(order),
    }


@router.get("/delivery/custom")
def custom_deliveries(section: Optional[str] = None, db=Depends(get_db)):
    filt = {"status": {"$ne": "cancelled"}}
    if section == "on":
        filt["delivery_status"] = "picked_up"
    elif section == "completed":
        filt["delivery_status"] = "delivered"
    else:
        filt["status"] = "completed"
        filt["delivery_status"] = "ready_for_delivery"

    orders = []
    for order in db["customorder"].find(filt).sort("updated_at", DESCENDING):
        if not (order.get("customer_address") or "").strip() and order.get("customer_email"):
            customer = db["user"].find_one({"email": order["customer_email"]})
            if customer and customer.get("address"):
                order["customer_address"] = customer["address"]
        orders.append(serialize_doc(order))
    return {"success": True, "orders": orders, "section": section or "ready"}


@router.put("/{order_id}/delivery-status")
def update_delivery_status(order_id: str, body: DeliveryStatusBody, db=Depends(get_db)):
    if body.delivery_status not in CustomDeliveryStatus.__args__:
        raise HTTPException(status_code=400, detail="Invalid delivery status")
    order = _find_loose(db, order_id)
    update = {"delivery_status": body.delivery_status}
    if body.delivery_status == "delivered":
        update["delivery_date"] = utcnow()
    order = _set(db, order, update)
    return {
        "success": True,
        "message": f"Delivery status updated to {body.delivery_status}",
        "order": serialize_doc(order),
    }


@router.post("/collect-cash")
def collect_custom_cash(body: CollectCashBody, db=Depends(get_db)):
    if not body.order_id:
        raise HTTPException(status_code=400, detail="Order ID is required")
    order = _find_loose(db, body.order_id)
    order = collect_cash(db, order, is_custom=True)
    return {"success": True, "message": "Cash collection recorded successfully", "order": serialize_doc(order)}


@router.delete("/{order_id}")
def delete_order(order_id: str, db=Depends(get_db)):
    order = _require(find_custom_order(db, order_id))
    db["customorder"].delete_one({"_id": order["_id"]})
    logger.info("Custom order %s deleted", order.get("order_id"))
    return {
        "success": True,
        "message": "Order deleted successfully",
        "deleted_order": {
            "order_id": order.get("order_id"),
            "customer_name": order.get("customer_name"),
            "status": order.get("status"),
        },
    }


@router.get("/user/{email}")
def user_custom_orders(email: str, db=Depends(get_db)):
    orders = list(db["customorder"].find({"customer_email": email}).sort("created_at", DESCENDING))
    staff_ids = {ObjectId(o["staff_designer_id"]) for o in orders if is_object_id(o.get("staff_designer_id"))}
    staff = {str(u["_id"]): u for u in db["user"].find({"_id": {"$in": list(staff_ids)}})}
    result = []
    for order in orders:
        doc = serialize_doc(order)
        designer = staff.get(order.get("staff_designer_id"))
        doc["staff_designer"] = {"name": designer.get("name"), "email": designer.get("email")} if designer else None
        result.append(doc)
    return {"success": True, "orders": result, "message": f"Found {len(result)} custom orders for {email}"}


@router.put("/{order_id}/release-delivery-payment")
def release_custom_delivery_payment(order_id: str, body: DeliveryReleaseBody, db=Depends(get_db)):
    order = release_delivery_payment(db, "customorder", order_id, body.delivery_transaction_id, body.release_date)
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

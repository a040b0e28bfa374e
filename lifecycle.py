"""
Order, payment and stock lifecycle rules shared by the order routers.

Every mutation is a single-document MongoDB update. Multi-line operations
(order placement, stock restoration) run line by line; placement compensates
lines it already deducted, restoration logs and skips lines it cannot undo.
"""
import logging
import math
from typing import List, Optional

from bson.objectid import ObjectId
from fastapi import HTTPException
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from codes import ORDER_IDS
from database import create_document, is_object_id, touch, utcnow
from events import publish_design_update
from schemas import DEFAULT_DELIVERY_FEE, DesignerPayment as DesignerPaymentSchema, Order as OrderSchema

logger = logging.getLogger(__name__)

COMMISSION_RATE = 0.20


# ----------------------- Lookups -----------------------
def find_order(db, ref: str):
    """Marketplace order by readable order_id or Mongo _id."""
    order = db["order"].find_one({"order_id": ref})
    if order is None and is_object_id(ref):
        order = db["order"].find_one({"_id": ObjectId(ref)})
    return order


def find_custom_order(db, ref: str):
    if not ref or ref == "undefined":
        raise HTTPException(status_code=400, detail="Invalid order ID provided")
    if ref.startswith("WA-"):
        return db["customorder"].find_one({"order_id": ref})
    if not is_object_id(ref):
        raise HTTPException(status_code=400, detail="Invalid order ID format")
    return db["customorder"].find_one({"_id": ObjectId(ref)})


def find_any_order(db, ref: str):
    """Resolve a bank-payment order reference. Returns (order, is_custom)."""
    if not ref or ref == "undefined":
        raise HTTPException(status_code=400, detail="Invalid order ID provided")
    if ref.startswith("WA-"):
        return db["customorder"].find_one({"order_id": ref}), True
    if ref.startswith("WAG-"):
        return db["order"].find_one({"order_id": ref}), False
    if is_object_id(ref):
        custom = db["customorder"].find_one({"_id": ObjectId(ref)})
        if custom is not None:
            return custom, True
        return db["order"].find_one({"_id": ObjectId(ref)}), False
    raise HTTPException(status_code=400, detail="Invalid order ID format")


def _load_design(db, design_id: str):
    if not is_object_id(design_id):
        return None
    return db["design"].find_one({"_id": ObjectId(design_id)})


def designer_display_name(designer) -> str:
    if not designer:
        return "Unknown Designer"
    return designer.get("name") or designer.get("email") or "Unknown Designer"


# ----------------------- Stock on designs -----------------------
def _deduct_design(db, design_id: str, quantity: int):
    return db["design"].find_one_and_update(
        {"_id": ObjectId(design_id), "quantity": {"$gte": quantity}},
        {"$inc": {"quantity": -quantity}},
        return_document=ReturnDocument.AFTER,
    )


def _restore_design(db, design_id: str, quantity: int):
    return db["design"].find_one_and_update(
        {"_id": ObjectId(design_id)},
        {"$inc": {"quantity": quantity}},
        return_document=ReturnDocument.AFTER,
    )


def restore_stock(db, order: dict, events=None) -> List[str]:
    """Give each line's quantity back to its design. Returns the restored design ids."""
    restored = []
    for item in order.get("items", []):
        design_id = item.get("design_id")
        try:
            design = _restore_design(db, design_id, item["quantity"]) if is_object_id(design_id) else None
        except Exception as e:
            logger.error("Error restoring stock for design %s: %s", design_id, e)
            continue
        if design is None:
            logger.error("Design %s not found for stock restoration", design_id)
            continue
        restored.append(design_id)
        publish_design_update(events, design)
    logger.info("Restored stock for %d/%d lines of order %s",
                len(restored), len(order.get("items", [])), order.get("order_id"))
    return restored


# ----------------------- Placement -----------------------
def build_order_lines(db, requested: List[dict]) -> List[dict]:
    lines = []
    for entry in requested:
        design_id = str(entry.get("design_id"))
        quantity = int(entry.get("quantity", 1))
        if quantity < 1:
            raise HTTPException(status_code=400, detail="Quantity must be at least 1")
        design = _load_design(db, design_id)
        if design is None:
            raise HTTPException(status_code=404, detail=f"Design {design_id} not found")
        if quantity > design.get("quantity", 0):
            raise HTTPException(
                status_code=400,
                detail=f"Insufficient stock for {design['item_name']}. Only {design.get('quantity', 0)} available.",
            )
        designer = None
        if is_object_id(design.get("designer_id")):
            designer = db["user"].find_one({"_id": ObjectId(design["designer_id"])})
        lines.append({
            "item_id": str(ObjectId()),
            "design_id": design_id,
            "item_name": design["item_name"],
            "price": design["price"],
            "quantity": quantity,
            "subtotal": design["price"] * quantity,
            "image_url": design.get("image_url"),
            "designer_id": design["designer_id"],
            "designer_name": designer_display_name(designer),
            "material": design.get("material"),
            "board_size": design.get("board_size"),
            "board_color": design.get("board_color"),
            "board_thickness": design.get("board_thickness"),
            "description": design.get("description"),
        })
    return lines


def place_order(db, customer: dict, requested: List[dict], payment_method: str,
                bank_slip_id: Optional[str] = None, bank_slip_filename: Optional[str] = None,
                bank_slip_url: Optional[str] = None, events=None) -> dict:
    if not requested:
        raise HTTPException(status_code=400, detail="At least one item is required")
    lines = build_order_lines(db, requested)

    cod = payment_method == "cash_on_delivery"
    order = OrderSchema(
        customer_id=str(customer["_id"]),
        customer_name=customer.get("name") or "",
        customer_email=customer.get("email"),
        customer_phone=customer.get("phone"),
        customer_address=customer.get("address"),
        items=lines,
        total_amount=sum(line["subtotal"] for line in lines),
        payment_method=payment_method,
        payment_status="paid" if cod else "pending",
        status="confirmed" if cod else "pending",
        bank_slip_id=bank_slip_id,
        bank_slip_filename=bank_slip_filename,
        bank_slip_url=None if bank_slip_id else bank_slip_url,
        stock_deducted=True,
        order_date=utcnow(),
    ).model_dump()

    deducted = []
    for line in order["items"]:
        design = _deduct_design(db, line["design_id"], line["quantity"])
        if design is None:
            for done in deducted:
                _restore_design(db, done["design_id"], done["quantity"])
            raise HTTPException(status_code=400, detail=f"Insufficient stock for {line['item_name']}")
        deducted.append(line)
        publish_design_update(events, design)

    try:
        ORDER_IDS.assign(db, order)
        order_mongo_id = create_document(db, "order", order)
    except Exception:
        for done in deducted:
            _restore_design(db, done["design_id"], done["quantity"])
        raise
    logger.info("Order %s placed by %s (%d lines, %s)",
                order["order_id"], customer.get("email"), len(lines), payment_method)
    return db["order"].find_one({"_id": ObjectId(order_mongo_id)})


def cancel_order(db, order: dict, events=None) -> dict:
    if order.get("status") == "cancelled":
        raise HTTPException(status_code=400, detail="Order is already cancelled")
    if order.get("status") == "delivered" or order.get("delivery_status") == "delivered":
        raise HTTPException(status_code=400, detail="Delivered orders cannot be cancelled")
    # claim the transition first so only one caller gives the stock back
    before = db["order"].find_one_and_update(
        {"_id": order["_id"], "status": {"$nin": ["cancelled", "delivered"]},
         "delivery_status": {"$ne": "delivered"}},
        {"$set": touch({"status": "cancelled", "stock_deducted": False})},
        return_document=ReturnDocument.BEFORE,
    )
    if before is None:
        raise HTTPException(status_code=400, detail="Order is already cancelled")
    if before.get("stock_deducted"):
        restore_stock(db, before, events)
    return db["order"].find_one({"_id": order["_id"]})


# ----------------------- Payments -----------------------
def review_bank_payment(db, ref: str, payment_status: str, notes: Optional[str] = None, events=None):
    """Approve or deny a bank-transfer payment. Returns (order, is_custom)."""
    if payment_status not in ("paid", "failed"):
        raise HTTPException(status_code=400, detail="Valid payment status (paid/failed) is required")
    order, is_custom = find_any_order(db, ref)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    expected = "bank" if is_custom else "bank_transfer"
    if order.get("payment_method") != expected:
        raise HTTPException(status_code=400, detail="Order is not a bank payment")
    if order.get("payment_status") != "pending":
        raise HTTPException(status_code=400, detail="Payment is not in pending status")

    update = {"payment_status": payment_status}
    if not is_custom and payment_status == "paid":
        update["status"] = "confirmed"
    if not is_custom and payment_status == "failed":
        update["stock_deducted"] = False
    if notes:
        line = f"Payment {payment_status}: {notes}"
        update["notes"] = f"{order['notes']}\n\n{line}" if order.get("notes") else line

    collection = "customorder" if is_custom else "order"
    before = db[collection].find_one_and_update(
        {"_id": order["_id"], "payment_status": "pending"},
        {"$set": touch(update)},
        return_document=ReturnDocument.BEFORE,
    )
    if before is None:
        raise HTTPException(status_code=400, detail="Payment is not in pending status")
    if not is_custom and payment_status == "failed" and before.get("stock_deducted"):
        restore_stock(db, before, events)
    logger.info("Payment %s for %s order %s (%s)",
                "approved" if payment_status == "paid" else "denied",
                "custom" if is_custom else "marketplace",
                order.get("order_id"), order.get("customer_email"))
    return db[collection].find_one({"_id": order["_id"]}), is_custom


def collect_cash(db, order: dict, is_custom: bool, collected_by: Optional[str] = None) -> dict:
    if is_custom:
        if order.get("payment_method") != "cash":
            raise HTTPException(status_code=400, detail="This order is not a cash payment")
        update = {"cash_collected": True}
    else:
        if order.get("payment_method") not in ("cash_on_delivery", "cash"):
            raise HTTPException(status_code=400, detail="Order is not cash on delivery")
        update = {"cash_collected": True, "cash_collected_at": utcnow(), "payment_status": "paid"}
        if collected_by:
            update["cash_collected_by"] = collected_by
    collection = "customorder" if is_custom else "order"
    return db[collection].find_one_and_update(
        {"_id": order["_id"]}, {"$set": touch(update)}, return_document=ReturnDocument.AFTER
    )


def release_delivery_payment(db, collection: str, order_id: str, transaction_id: Optional[str],
                             release_date=None) -> dict:
    if not is_object_id(order_id):
        raise HTTPException(status_code=404, detail="Order not found")
    updated = db[collection].find_one_and_update(
        {"_id": ObjectId(order_id)},
        {"$set": touch({
            "payment_released": True,
            "delivery_transaction_id": transaction_id,
            "release_date": release_date or utcnow(),
        })},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        raise HTTPException(status_code=404, detail="Order not found")
    return updated


def split_commission(subtotal: float):
    commission = round(subtotal * COMMISSION_RATE, 2)
    return commission, round(subtotal - commission, 2)


def release_designer_payment(db, order_id: str, design_id: Optional[str] = None,
                             order_item_id: Optional[str] = None, released_by: Optional[str] = None) -> dict:
    order = db["order"].find_one({"order_id": order_id})
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    if order_item_id:
        item = next((i for i in order.get("items", []) if i.get("item_id") == order_item_id), None)
    else:
        item = next((i for i in order.get("items", []) if i.get("design_id") == design_id), None)
    if item is None:
        raise HTTPException(status_code=404, detail="Order item not found")

    if db["designerpayment"].find_one({"order_id": order_id, "order_item_id": item["item_id"]}):
        raise HTTPException(status_code=400, detail="Payment already released for this order line")

    commission, designer_amount = split_commission(item["subtotal"])
    designer = None
    if is_object_id(item.get("designer_id")):
        designer = db["user"].find_one({"_id": ObjectId(item["designer_id"])})
    payment = DesignerPaymentSchema(
        order_id=order["order_id"],
        order_mongo_id=str(order["_id"]),
        order_item_id=item["item_id"],
        order_item_design_id=item["design_id"],
        designer_id=item["designer_id"],
        designer_name=item.get("designer_name") or designer_display_name(designer),
        designer_email=designer["email"] if designer else "",
        customer_name=order.get("customer_name") or "",
        customer_email=order.get("customer_email") or "",
        item_name=item.get("item_name") or "",
        quantity=item["quantity"],
        item_subtotal=item["subtotal"],
        delivery_fee=order.get("delivery_fee") or DEFAULT_DELIVERY_FEE,
        commission=commission,
        designer_amount=designer_amount,
        released_by=released_by or "financial@system",
        released_at=utcnow(),
    ).model_dump()
    return insert_designer_payment(db, payment)


def insert_designer_payment(db, payment: dict) -> dict:
    """Insert a payment record; the unique (order_id, order_item_id) index rejects a second one."""
    try:
        payment_id = create_document(db, "designerpayment", payment)
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="Payment already released for this order line item")
    logger.info("Released %.2f to %s for %s line %s",
                payment["designer_amount"], payment["designer_email"],
                payment["order_id"], payment["order_item_id"])
    return db["designerpayment"].find_one({"_id": ObjectId(payment_id)})


# ----------------------- Payroll -----------------------
def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def compute_salary(basic_salary: float, allowances: float = 0, tax_percentage: float = 0,
                   loan_installments: float = 0) -> dict:
    if loan_installments > basic_salary:
        raise HTTPException(status_code=400, detail="Loan installments cannot exceed basic salary")
    epf_company = round_half_up(basic_salary * 0.12)
    epf_employee = round_half_up(basic_salary * 0.08)
    etf_company = round_half_up(basic_salary * 0.03)
    tax_amount = round_half_up((basic_salary + allowances) * (tax_percentage / 100))
    return {
        "epf_company_share": epf_company,
        "epf_employee_share": epf_employee,
        "etf_company_share": etf_company,
        "tax_amount": tax_amount,
        "gross_salary": round_half_up(basic_salary + allowances + epf_company + etf_company),
        "net_salary": round_half_up(basic_salary + allowances - epf_employee - tax_amount - loan_installments),
    }

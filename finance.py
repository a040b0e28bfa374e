import logging
import re
from datetime import datetime
from typing import Optional

from bson.objectid import ObjectId
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, ValidationError
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from codes import SALARY_TXN_IDS, SUPPLIER_TXN_IDS
from database import create_document, get_db, get_documents, is_object_id, to_object_id, touch, utcnow
from lifecycle import compute_salary, release_designer_payment, split_commission
from schemas import DEFAULT_DELIVERY_FEE, MONTHS
from schemas import StaffDesignerSalary as SalarySchema, SupplierPayment as SupplierPaymentSchema
from views import custom_income_row, marketplace_income_row, serialize_doc, serialize_docs

logger = logging.getLogger(__name__)

financial_router = APIRouter(prefix="/api/financial", tags=["financial"])
supplier_payment_router = APIRouter(prefix="/api/supplier-payments", tags=["supplier payments"])
salary_router = APIRouter(prefix="/api/staff-designer-salaries", tags=["salaries"])

STAFF_DESIGNER_ROLES = ["staff-designer", "staff_designer", "staffdesigner"]
SUPPLIER_PAYMENT_STATUSES = ("pending", "paid", "overdue")


# ----------------------- Income reports -----------------------
class ReleasePaymentBody(BaseModel):
    order_id: str
    design_id: str
    order_item_id: Optional[str] = None
    released_by: Optional[str] = None


@financial_router.get("/customize-order-income")
def customize_order_income(db=Depends(get_db)):
    orders = list(db["customorder"].find({
        "status": {"$ne": "cancelled"},
        "$or": [
            {"payment_method": "bank", "payment_status": "paid"},
            {"payment_method": "cash", "cash_collected": True},
        ],
    }).sort("updated_at", DESCENDING))

    staff_ids = {ObjectId(o["staff_designer_id"]) for o in orders if is_object_id(o.get("staff_designer_id"))}
    staff = {str(u["_id"]): u for u in db["user"].find({"_id": {"$in": list(staff_ids)}})}

    rows = []
    totals = {"total_amount": 0, "delivery": 0, "item_price": 0}
    for order in orders:
        total_price = order.get("final_price") or order.get("estimated_price") or 0
        delivery_fee = order.get("delivery_fee") or DEFAULT_DELIVERY_FEE
        item_price = max(0, total_price - delivery_fee)
        totals["total_amount"] += total_price
        totals["delivery"] += delivery_fee
        totals["item_price"] += item_price
        rows.append(custom_income_row(order, staff.get(order.get("staff_designer_id")),
                                      total_price, delivery_fee, item_price))
    return {"success": True, "rows": rows, "totals": totals, "count": len(rows)}


@financial_router.get("/marketplace-income")
def marketplace_income(db=Depends(get_db)):
    # cash on delivery only counts once the rider has the money
    orders = list(db["order"].find({
        "status": {"$ne": "cancelled"},
        "$or": [
            {"payment_method": {"$in": ["bank_transfer", "bank"]}, "payment_status": "paid"},
            {"payment_method": {"$in": ["cash_on_delivery", "cash"]}, "payment_status": "paid",
             "cash_collected": True},
        ],
    }).sort("created_at", DESCENDING))

    designer_ids = {ObjectId(i["designer_id"]) for o in orders for i in o.get("items", [])
                    if is_object_id(i.get("designer_id"))}
    designers = {str(u["_id"]): u for u in db["user"].find({"_id": {"$in": list(designer_ids)}})}
    payments = {
        (p["order_id"], p["order_item_id"]): p
        for p in db["designerpayment"].find({"order_id": {"$in": [o["order_id"] for o in orders]}})
    }

    rows = []
    totals = {"total_price": 0, "delivery": 0, "item_price": 0, "commission": 0, "designer_payment": 0}
    for order in orders:
        totals["delivery"] += order.get("delivery_fee") or DEFAULT_DELIVERY_FEE
        for item in order.get("items", []):
            commission, designer_amount = split_commission(item["subtotal"])
            totals["item_price"] += item["subtotal"]
            totals["commission"] += commission
            totals["designer_payment"] += designer_amount
            designer = designers.get(item.get("designer_id"))
            rows.append(marketplace_income_row(
                order, item, commission, designer_amount,
                designer["email"] if designer else "",
                payments.get((order["order_id"], item["item_id"])),
            ))
    totals["total_price"] = totals["item_price"] + totals["delivery"]
    totals["commission"] = round(totals["commission"], 2)
    totals["designer_payment"] = round(totals["designer_payment"], 2)
    return {"success": True, "rows": rows, "totals": totals}


@financial_router.post("/release-designer-payment")
def release_payment(body: ReleasePaymentBody, db=Depends(get_db)):
    payment = release_designer_payment(
        db, body.order_id, design_id=body.design_id,
        order_item_id=body.order_item_id, released_by=body.released_by,
    )
    return {"success": True, "message": "Payment released successfully", "payment": serialize_doc(payment)}


@financial_router.get("/designer-payment-history/{email}")
def designer_payment_history(email: str, db=Depends(get_db)):
    payments = db["designerpayment"].find({"designer_email": email}).sort("released_at", DESCENDING)
    return {"success": True, "payments": serialize_docs(payments)}


# ----------------------- Supplier payments -----------------------
class SupplierPaymentBody(BaseModel):
    supplier_name: str = Field(..., min_length=1)
    supplier_email: str = Field(..., min_length=1)
    item: str = Field(..., min_length=1)
    color: str = Field(..., min_length=1)
    size: str = Field(..., min_length=1)
    thickness: str = Field(..., min_length=1)
    quantity: int = Field(..., ge=1)
    paid_amount: float = Field(..., gt=0)
    purchase_order_id: Optional[str] = None


class SupplierPaymentStatusBody(BaseModel):
    status: str


@supplier_payment_router.get("")
def list_supplier_payments(supplier_name: Optional[str] = None, status: Optional[str] = None,
                           start_date: Optional[datetime] = None, end_date: Optional[datetime] = None,
                           db=Depends(get_db)):
    filt = {}
    if supplier_name:
        filt["supplier_name"] = {"$regex": re.escape(supplier_name), "$options": "i"}
    if status:
        filt["status"] = status
    if start_date or end_date:
        filt["transaction_date"] = {}
        if start_date:
            filt["transaction_date"]["$gte"] = start_date
        if end_date:
            filt["transaction_date"]["$lte"] = end_date
    payments = get_documents(db, "supplierpayment", filt, sort=[("transaction_date", DESCENDING)], limit=100)

    po_ids = [ObjectId(p["purchase_order_id"]) for p in payments if is_object_id(p.get("purchase_order_id"))]
    pos = {str(po["_id"]): po for po in db["purchaseorder"].find({"_id": {"$in": po_ids}})}
    result = []
    for payment in payments:
        doc = serialize_doc(payment)
        po = pos.get(payment.get("purchase_order_id"))
        doc["purchase_order"] = {"id": str(po["_id"]), "status": po.get("status"),
                                 "description": po.get("description")} if po else None
        result.append(doc)
    return {"success": True, "payments": result, "total": len(result)}


@supplier_payment_router.get("/summary")
def supplier_payment_summary(db=Depends(get_db)):
    payments = list(db["supplierpayment"].find({}, {"status": 1, "paid_amount": 1}))
    return {
        "success": True,
        "summary": {
            "total_payments": len(payments),
            "pending_payments": sum(1 for p in payments if p.get("status") == "pending"),
            "paid_payments": sum(1 for p in payments if p.get("status") == "paid"),
            "overdue_payments": sum(1 for p in payments if p.get("status") == "overdue"),
            "total_amount": sum(p.get("paid_amount", 0) for p in payments),
            "pending_amount": sum(p.get("paid_amount", 0) for p in payments if p.get("status") == "pending"),
        },
    }


@supplier_payment_router.post("")
def create_supplier_payment(body: SupplierPaymentBody, db=Depends(get_db)):
    payment = SupplierPaymentSchema(
        **body.model_dump(),
        transaction_date=utcnow(),
        transaction_id=SUPPLIER_TXN_IDS.generate(db),
    )
    payment_id = create_document(db, "supplierpayment", payment)
    logger.info("Supplier payment %s of %.2f to %s", payment.transaction_id, payment.paid_amount,
                payment.supplier_name)
    return {
        "success": True,
        "message": "Supplier payment record created successfully",
        "payment": serialize_doc(db["supplierpayment"].find_one({"_id": to_object_id(payment_id)})),
    }


@supplier_payment_router.put("/{payment_id}/status")
def update_supplier_payment_status(payment_id: str, body: SupplierPaymentStatusBody, db=Depends(get_db)):
    if body.status not in SUPPLIER_PAYMENT_STATUSES:
        raise HTTPException(status_code=400, detail="Invalid status")
    payment = db["supplierpayment"].find_one_and_update(
        {"_id": to_object_id(payment_id, "payment id")}, {"$set": touch({"status": body.status})},
        return_document=ReturnDocument.AFTER,
    )
    if not payment:
        raise HTTPException(status_code=404, detail="Payment not found")
    return {"success": True, "payment": serialize_doc(payment)}


@supplier_payment_router.delete("/{payment_id}")
def delete_supplier_payment(payment_id: str, db=Depends(get_db)):
    res = db["supplierpayment"].delete_one({"_id": to_object_id(payment_id, "payment id")})
    if res.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Payment not found")
    return {"success": True, "message": "Payment deleted successfully"}


# ----------------------- Staff designer salaries -----------------------
class SalaryBody(BaseModel):
    staff_designer_name: str = Field(..., min_length=1)
    staff_designer_email: str = Field(..., min_length=1)
    year: int
    month: str
    basic_salary: float = Field(..., gt=0)
    allowances: float = 0
    tax_percentage: float = 0
    loan_installments: float = 0


class SalaryUpdateBody(BaseModel):
    staff_designer_name: Optional[str] = None
    staff_designer_email: Optional[str] = None
    year: Optional[int] = None
    month: Optional[str] = None
    basic_salary: Optional[float] = None
    allowances: Optional[float] = None
    tax_percentage: Optional[float] = None
    loan_installments: Optional[float] = None


DUPLICATE_SALARY = "Salary record already exists for this staff designer in the specified month and year"


def _find_staff_designer(db, name, email):
    return db["user"].find_one({"name": name, "email": email, "role": {"$in": STAFF_DESIGNER_ROLES}})


def _build_salary(fields: dict) -> dict:
    """Validate the inputs and fill in the derived contributions, tax and totals."""
    try:
        salary = SalarySchema(**fields)
    except ValidationError as e:
        first = e.errors()[0]
        raise HTTPException(status_code=400, detail=f"{'.'.join(map(str, first['loc']))}: {first['msg']}")
    derived = compute_salary(salary.basic_salary, salary.allowances, salary.tax_percentage,
                             salary.loan_installments)
    return salary.model_copy(update=derived).model_dump()


def _salary_or_404(db, salary_id: str):
    salary = db["staffdesignersalary"].find_one({"_id": to_object_id(salary_id, "salary id")})
    if not salary:
        raise HTTPException(status_code=404, detail="Salary record not found")
    return salary


@salary_router.get("")
def list_salaries(db=Depends(get_db)):
    return {"success": True, "salaries": serialize_docs(db["staffdesignersalary"].find({}).sort("created_at", DESCENDING))}


@salary_router.get("/staff-designers")
def list_staff_designers(db=Depends(get_db)):
    users = db["user"].find({"role": {"$in": STAFF_DESIGNER_ROLES}}, {"name": 1, "email": 1}).sort("name", ASCENDING)
    return {"success": True, "staff_designers": serialize_docs(users)}


@salary_router.post("", status_code=201)
def create_salary(body: SalaryBody, db=Depends(get_db)):
    if not _find_staff_designer(db, body.staff_designer_name, body.staff_designer_email):
        raise HTTPException(status_code=400, detail="Staff designer not found with the provided name and email")
    if db["staffdesignersalary"].find_one({
        "staff_designer_email": body.staff_designer_email, "year": body.year, "month": body.month,
    }):
        raise HTTPException(
            status_code=400,
            detail=f"Salary record already exists for {body.staff_designer_name} in {body.month} {body.year}",
        )

    salary = _build_salary(body.model_dump())
    salary["transaction_id"] = SALARY_TXN_IDS.generate(
        db, year=body.year, month_number=MONTHS.index(body.month) + 1
    )
    try:
        salary_id = create_document(db, "staffdesignersalary", salary)
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail=DUPLICATE_SALARY)
    logger.info("Salary %s recorded for %s (%s %s)", salary["transaction_id"], body.staff_designer_email,
                body.month, body.year)
    return {
        "success": True,
        "message": "Salary record created successfully",
        "salary": serialize_doc(db["staffdesignersalary"].find_one({"_id": to_object_id(salary_id)})),
    }


@salary_router.get("/{salary_id}")
def get_salary(salary_id: str, db=Depends(get_db)):
    return {"success": True, "salary": serialize_doc(_salary_or_404(db, salary_id))}


@salary_router.put("/{salary_id}")
def update_salary(salary_id: str, body: SalaryUpdateBody, db=Depends(get_db)):
    current = _salary_or_404(db, salary_id)
    changes = body.model_dump(exclude_none=True)
    if body.staff_designer_email and body.staff_designer_email != current["staff_designer_email"]:
        name = body.staff_designer_name or current["staff_designer_name"]
        if not _find_staff_designer(db, name, body.staff_designer_email):
            raise HTTPException(status_code=400, detail="Staff designer not found with the provided name and email")

    fields = {k: current.get(k) for k in SalaryBody.model_fields}
    fields.update(changes)
    fields["transaction_id"] = current.get("transaction_id")
    salary = _build_salary(fields)
    if db["staffdesignersalary"].find_one({
        "_id": {"$ne": current["_id"]},
        "staff_designer_email": salary["staff_designer_email"],
        "year": salary["year"],
        "month": salary["month"],
    }):
        raise HTTPException(status_code=400, detail=DUPLICATE_SALARY)
    try:
        updated = db["staffdesignersalary"].find_one_and_update(
            {"_id": current["_id"]}, {"$set": touch(salary)}, return_document=ReturnDocument.AFTER
        )
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail=DUPLICATE_SALARY)
    return {"success": True, "message": "Salary record updated successfully", "salary": serialize_doc(updated)}


@salary_router.delete("/{salary_id}")
def delete_salary(salary_id: str, db=Depends(get_db)):
    res = db["staffdesignersalary"].delete_one({"_id": to_object_id(salary_id, "salary id")})
    if res.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Salary record not found")
    return {"success": True, "message": "Salary record deleted successfully"}

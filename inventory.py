"""
Inventory: the raw board stock ledger, suppliers, purchase orders and
material requests from staff designers.

Stock rows are keyed by (material, board_size, thickness, color). Purchase
order receipt adds to a row, releases to designers take from it and may not
leave fewer than STOCK_FLOOR boards behind.
"""
import itertools
import logging
import random
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, EmailStr, Field
from pymongo import ASCENDING, DESCENDING, ReturnDocument

from codes import PO_CODES
from database import create_document, get_db, get_documents, to_object_id, touch, utcnow
from schemas import (
    BOARD_SIZES, COLORS, MATERIALS, THICKNESSES,
    BoardSize, Color, Material, MaterialRequest as MaterialRequestSchema,
    PurchaseOrder as PurchaseOrderSchema, Stock as StockSchema, StockRelease as StockReleaseSchema,
    Supplier as SupplierSchema, Thickness,
)
from views import serialize_doc, serialize_docs

logger = logging.getLogger(__name__)

STOCK_FLOOR = 50
LOW_STOCK_THRESHOLD = 100
PRICE_RANGE = (100, 200)
PO_STATUSES = ("pending", "approved", "ordered", "received", "cancelled")

stock_router = APIRouter(prefix="/api/stock", tags=["stock"])
supplier_router = APIRouter(prefix="/api/suppliers", tags=["suppliers"])
purchase_order_router = APIRouter(prefix="/api/purchase-orders", tags=["purchase orders"])
material_request_router = APIRouter(prefix="/api/material-requests", tags=["material requests"])


# ----------------------- Stock ledger -----------------------
def _combination(material, board_size, thickness, color) -> dict:
    return {"material": material, "board_size": board_size, "thickness": thickness, "color": color}


def initialize_stock(db, rng=random) -> int:
    """Upsert every material/size/thickness/color row with a seed price and no boards."""
    count = 0
    for material, board_size, thickness, color in itertools.product(MATERIALS, BOARD_SIZES, THICKNESSES, COLORS):
        row = StockSchema(
            material=material, board_size=board_size, thickness=thickness, color=color,
            price=rng.randint(*PRICE_RANGE), available_quantity=0, reorder_level=LOW_STOCK_THRESHOLD,
        )
        db["stock"].update_one(
            _combination(material, board_size, thickness, color),
            {
                "$set": touch(row.model_dump()),
                "$setOnInsert": {"created_at": utcnow()},
            },
            upsert=True,
        )
        count += 1
    logger.info("Initialized %d stock combinations", count)
    return count


def reset_stock(db, rng=random) -> int:
    removed = db["stock"].delete_many({}).deleted_count
    logger.info("Cleared %d stock rows", removed)
    return initialize_stock(db, rng)


def randomize_prices(db, rng=random) -> int:
    updated = 0
    for row in db["stock"].find({}, {"_id": 1}):
        db["stock"].update_one({"_id": row["_id"]}, {"$set": touch({"price": rng.randint(*PRICE_RANGE)})})
        updated += 1
    logger.info("Updated prices for %d stock items", updated)
    return updated


def receive_purchase_order(db, po: dict) -> dict:
    """Add a received purchase order's boards to its stock row, creating the row if needed."""
    return db["stock"].find_one_and_update(
        _combination(po.get("item_name") or "MDF", po["board_size"], po["thickness"], po["color"]),
        {"$inc": {"available_quantity": po["quantity"]}, "$set": {"updated_at": utcnow()}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )


def release_stock(db, designer_name: str, designer_email: str, material: str, board_size: str,
                  thickness: str, color: str, quantity: int, notes: Optional[str] = None):
    """Hand boards to a designer. Returns (release, updated stock row)."""
    key = _combination(material, board_size, thickness, color)
    row = db["stock"].find_one(key)
    if not row:
        raise HTTPException(status_code=404, detail="Stock combination not found")
    available = row.get("available_quantity", 0)
    if available < quantity:
        raise HTTPException(status_code=400,
                            detail=f"Insufficient stock. Available: {available}, Requested: {quantity}")
    if available - quantity < STOCK_FLOOR:
        raise HTTPException(
            status_code=400,
            detail=f"Stock cannot go below {STOCK_FLOOR} units. Current: {available}, "
                   f"Requested: {quantity}, Would result in: {available - quantity}",
        )

    updated = db["stock"].find_one_and_update(
        {**key, "available_quantity": {"$gte": quantity + STOCK_FLOOR}},
        {"$inc": {"available_quantity": -quantity}, "$set": {"updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        # another release got there first
        raise HTTPException(status_code=400, detail=f"Stock cannot go below {STOCK_FLOOR} units")

    release = StockReleaseSchema(
        designer_name=designer_name.strip(),
        designer_email=designer_email.strip().lower(),
        material=material,
        board_size=board_size,
        thickness=thickness,
        color=color,
        quantity=quantity,
        release_date=utcnow(),
        notes=notes.strip() if notes else None,
    )
    release_id = create_document(db, "stockrelease", release)
    logger.info("Released %d x %s/%s/%s/%s to %s", quantity, material, board_size, thickness, color, designer_email)
    return db["stockrelease"].find_one({"_id": to_object_id(release_id)}), updated


def _is_low(row) -> bool:
    return row.get("available_quantity", 0) <= row.get("reorder_level", LOW_STOCK_THRESHOLD)


class StockUpdateBody(BaseModel):
    available_quantity: Optional[int] = Field(None, ge=0)
    reorder_level: Optional[int] = Field(None, ge=0)


class StockReleaseBody(BaseModel):
    designer_name: str
    designer_email: EmailStr
    material: Material
    board_size: BoardSize
    thickness: Thickness
    color: Color
    quantity: int = Field(..., ge=1)
    notes: Optional[str] = None


@stock_router.post("/initialize")
def initialize(db=Depends(get_db)):
    count = initialize_stock(db)
    return {"success": True, "message": "Stock combinations initialized successfully", "count": count}


@stock_router.post("/reset")
def reset(db=Depends(get_db)):
    count = reset_stock(db)
    return {
        "success": True,
        "message": "Stock cleared and reinitialized successfully with correct materials",
        "count": count,
    }


@stock_router.get("")
def list_stock(material: Optional[str] = None, board_size: Optional[str] = None,
               thickness: Optional[str] = None, color: Optional[str] = None,
               low_stock: bool = False, db=Depends(get_db)):
    filt = {k: v for k, v in {
        "material": material, "board_size": board_size, "thickness": thickness, "color": color,
    }.items() if v}
    if low_stock:
        filt["available_quantity"] = {"$lte": LOW_STOCK_THRESHOLD}
    rows = list(db["stock"].find(filt).sort([
        ("material", ASCENDING), ("board_size", ASCENDING), ("thickness", ASCENDING), ("color", ASCENDING),
    ]))
    return {"success": True, "stock": serialize_docs(rows), "total_combinations": len(rows)}


@stock_router.get("/summary")
def stock_summary(db=Depends(get_db)):
    rows = list(db["stock"].find({}, {"available_quantity": 1, "reorder_level": 1}))
    return {
        "success": True,
        "summary": {
            "total_combinations": len(rows),
            "low_stock_items": sum(1 for r in rows if _is_low(r)),
            "out_of_stock_items": sum(1 for r in rows if r.get("available_quantity", 0) == 0),
            "total_quantity": sum(r.get("available_quantity", 0) for r in rows),
        },
    }


@stock_router.get("/low-stock-count")
def low_stock_count(db=Depends(get_db)):
    rows = db["stock"].find({}, {"available_quantity": 1, "reorder_level": 1})
    return {"success": True, "count": sum(1 for r in rows if _is_low(r))}


@stock_router.get("/releases")
def list_releases(designer_email: Optional[str] = None, material: Optional[str] = None,
                  start_date: Optional[datetime] = None, end_date: Optional[datetime] = None,
                  db=Depends(get_db)):
    filt = {}
    if designer_email:
        filt["designer_email"] = designer_email.lower()
    if material:
        filt["material"] = material
    if start_date or end_date:
        filt["release_date"] = {}
        if start_date:
            filt["release_date"]["$gte"] = start_date
        if end_date:
            filt["release_date"]["$lte"] = end_date
    releases = get_documents(db, "stockrelease", filt, sort=[("release_date", DESCENDING)], limit=100)
    return {"success": True, "releases": serialize_docs(releases), "total": len(releases)}


@stock_router.get("/combination")
def stock_combination(material: Optional[str] = None, board_size: Optional[str] = None,
                      thickness: Optional[str] = None, color: Optional[str] = None, db=Depends(get_db)):
    if not all([material, board_size, thickness, color]):
        raise HTTPException(status_code=400,
                            detail="All parameters required: material, board_size, thickness, color")
    row = db["stock"].find_one(_combination(material, board_size, thickness, color))
    if not row:
        raise HTTPException(status_code=404, detail="Stock combination not found")
    return {"success": True, "stock": serialize_doc(row)}


@stock_router.post("/release")
def create_release(body: StockReleaseBody, db=Depends(get_db)):
    release, updated = release_stock(db, **body.model_dump())
    return {
        "success": True,
        "message": "Stock released successfully",
        "stock_release": serialize_doc(release),
        "updated_stock": serialize_doc(updated),
    }


@stock_router.post("/update-prices")
def update_prices(db=Depends(get_db)):
    count = randomize_prices(db)
    low, high = PRICE_RANGE
    return {
        "success": True,
        "message": f"Successfully updated {count} stock items with random prices between Rs. {low}-{high}",
        "updated_count": count,
    }


@stock_router.put("/{stock_id}")
def update_stock(stock_id: str, body: StockUpdateBody, db=Depends(get_db)):
    if body.available_quantity is not None and body.available_quantity < STOCK_FLOOR:
        raise HTTPException(status_code=400, detail=f"Available quantity cannot be less than {STOCK_FLOOR}")
    update = body.model_dump(exclude_none=True)
    row = db["stock"].find_one_and_update(
        {"_id": to_object_id(stock_id, "stock id")}, {"$set": touch(update)},
        return_document=ReturnDocument.AFTER,
    )
    if not row:
        raise HTTPException(status_code=404, detail="Stock item not found")
    return {"success": True, "stock": serialize_doc(row)}


# ----------------------- Suppliers -----------------------
class SupplierBody(BaseModel):
    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)


class SupplierUpdateBody(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    active: Optional[bool] = None


@supplier_router.post("")
def create_supplier(body: SupplierBody, db=Depends(get_db)):
    supplier_id = create_document(db, "supplier", SupplierSchema(**body.model_dump()))
    return {"success": True, "supplier": serialize_doc(db["supplier"].find_one({"_id": to_object_id(supplier_id)}))}


@supplier_router.get("")
def list_suppliers(db=Depends(get_db)):
    return {"success": True, "suppliers": serialize_docs(db["supplier"].find({}).sort("created_at", DESCENDING))}


@supplier_router.put("/{supplier_id}")
def update_supplier(supplier_id: str, body: SupplierUpdateBody, db=Depends(get_db)):
    supplier = db["supplier"].find_one_and_update(
        {"_id": to_object_id(supplier_id, "supplier id")},
        {"$set": touch(body.model_dump(exclude_none=True))},
        return_document=ReturnDocument.AFTER,
    )
    if not supplier:
        raise HTTPException(status_code=404, detail="Supplier not found")
    return {"success": True, "supplier": serialize_doc(supplier)}


@supplier_router.delete("/{supplier_id}")
def delete_supplier(supplier_id: str, db=Depends(get_db)):
    res = db["supplier"].delete_one({"_id": to_object_id(supplier_id, "supplier id")})
    if res.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Supplier not found")
    return {"success": True, "message": "Supplier deleted"}


# ----------------------- Purchase orders -----------------------
class PurchaseOrderBody(BaseModel):
    supplier_id: str
    item_name: str = Field(..., min_length=1)
    quantity: int = Field(..., ge=1)
    board_size: str
    thickness: str
    color: str
    description: Optional[str] = None


class PurchaseOrderUpdateBody(BaseModel):
    status: Optional[str] = None
    quantity: Optional[int] = Field(None, ge=1)
    description: Optional[str] = None


def _with_supplier(db, po):
    doc = serialize_doc(po)
    supplier = db["supplier"].find_one({"_id": to_object_id(po["supplier_id"])}, {"name": 1, "email": 1, "phone": 1}) \
        if po.get("supplier_id") else None
    doc["supplier"] = serialize_doc(supplier) if supplier else None
    return doc


@purchase_order_router.post("")
def create_purchase_order(body: PurchaseOrderBody, db=Depends(get_db)):
    if not db["supplier"].find_one({"_id": to_object_id(body.supplier_id, "supplier id")}):
        raise HTTPException(status_code=404, detail="Supplier not found")
    po = PurchaseOrderSchema(**body.model_dump()).model_dump()
    PO_CODES.assign(db, po)
    po_id = create_document(db, "purchaseorder", po)
    logger.info("Purchase order %s raised for %d x %s", po["po_code"], po["quantity"], po["item_name"])
    po = db["purchaseorder"].find_one({"_id": to_object_id(po_id)})
    return {"success": True, "purchase_order": _with_supplier(db, po)}


@purchase_order_router.get("")
def list_purchase_orders(supplier_id: Optional[str] = None, db=Depends(get_db)):
    filt = {"supplier_id": supplier_id} if supplier_id else {}
    orders = db["purchaseorder"].find(filt).sort("created_at", DESCENDING)
    return {"success": True, "purchase_orders": [_with_supplier(db, po) for po in orders]}


@purchase_order_router.get("/{po_id}")
def get_purchase_order(po_id: str, db=Depends(get_db)):
    po = db["purchaseorder"].find_one({"_id": to_object_id(po_id, "purchase order id")})
    if not po:
        raise HTTPException(status_code=404, detail="Not found")
    return {"success": True, "purchase_order": _with_supplier(db, po)}


@purchase_order_router.put("/{po_id}")
def update_purchase_order(po_id: str, body: PurchaseOrderUpdateBody, db=Depends(get_db)):
    if body.status and body.status not in PO_STATUSES:
        raise HTTPException(status_code=400, detail=f"Invalid status {body.status}")
    update = body.model_dump(exclude_none=True)
    if body.status == "received":
        update["received_at"] = utcnow()
    po = db["purchaseorder"].find_one_and_update(
        {"_id": to_object_id(po_id, "purchase order id")}, {"$set": touch(update)},
        return_document=ReturnDocument.AFTER,
    )
    if not po:
        raise HTTPException(status_code=404, detail="Not found")

    if body.status == "received":
        try:
            receive_purchase_order(db, po)
            logger.info("Stock updated for PO %s: %d %s added", po.get("po_code"), po["quantity"], po["item_name"])
        except Exception:
            # the purchase order update stands even when the ledger write fails
            logger.exception("Error updating stock for PO %s", po.get("po_code"))
    return {"success": True, "purchase_order": _with_supplier(db, po)}


@purchase_order_router.delete("/{po_id}")
def delete_purchase_order(po_id: str, db=Depends(get_db)):
    res = db["purchaseorder"].delete_one({"_id": to_object_id(po_id, "purchase order id")})
    if res.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Not found")
    return {"success": True, "message": "Purchase order deleted"}


# ----------------------- Material requests -----------------------
class MaterialRequestBody(BaseModel):
    material: Material
    board_size: BoardSize
    thickness: Thickness
    color: Color
    quantity: int
    description: str = ""
    staff_designer_id: Optional[str] = None
    staff_designer_name: Optional[str] = None
    staff_designer_email: Optional[str] = None


class MaterialRequestUpdateBody(BaseModel):
    material: Optional[Material] = None
    board_size: Optional[BoardSize] = None
    thickness: Optional[Thickness] = None
    color: Optional[Color] = None
    quantity: Optional[int] = None
    description: Optional[str] = Field(None, max_length=500)
    status: Optional[str] = None
    admin_notes: Optional[str] = None


class BulkUpdateBody(BaseModel):
    request_ids: List[str] = []
    status: Optional[str] = None
    admin_notes: Optional[str] = None


REQUEST_STATUSES = ("pending", "approved", "fulfilled", "rejected")


def _status_fields(status: str) -> dict:
    if status not in REQUEST_STATUSES:
        raise HTTPException(status_code=400, detail=f"Invalid status {status}")
    fields = {"status": status}
    if status == "fulfilled":
        fields["fulfilled_at"] = utcnow()
        fields["fulfilled_by"] = "Admin"
    return fields


@material_request_router.get("")
def list_material_requests(status: Optional[str] = None, staff_designer_id: Optional[str] = None,
                           db=Depends(get_db)):
    filt = {}
    if status:
        filt["status"] = status
    if staff_designer_id:
        filt["staff_designer_id"] = staff_designer_id
    requests = get_documents(db, "materialrequest", filt, sort=[("created_at", DESCENDING)], limit=100)
    return {"success": True, "requests": serialize_docs(requests), "total": len(requests)}


@material_request_router.get("/stats/summary")
def material_request_stats(db=Depends(get_db)):
    stats = {"total": db["materialrequest"].count_documents({})}
    for status in REQUEST_STATUSES:
        stats[status] = db["materialrequest"].count_documents({"status": status})
    return {"success": True, "stats": stats}


@material_request_router.get("/{request_id}")
def get_material_request(request_id: str, db=Depends(get_db)):
    request = db["materialrequest"].find_one({"_id": to_object_id(request_id, "request id")})
    if not request:
        raise HTTPException(status_code=404, detail="Material request not found")
    return {"success": True, "request": serialize_doc(request)}


@material_request_router.post("", status_code=201)
def create_material_request(body: MaterialRequestBody, db=Depends(get_db)):
    if body.quantity <= 0:
        raise HTTPException(status_code=400, detail="Quantity must be greater than 0")
    data = body.model_dump(exclude_none=True)
    data["description"] = data.get("description", "").strip()
    request = MaterialRequestSchema(**data)
    request_id = create_document(db, "materialrequest", request)
    return {
        "success": True,
        "message": "Material request created successfully",
        "request": serialize_doc(db["materialrequest"].find_one({"_id": to_object_id(request_id)})),
    }


@material_request_router.put("/{request_id}")
def update_material_request(request_id: str, body: MaterialRequestUpdateBody, db=Depends(get_db)):
    oid = to_object_id(request_id, "request id")
    if not db["materialrequest"].find_one({"_id": oid}):
        raise HTTPException(status_code=404, detail="Material request not found")
    if body.quantity is not None and body.quantity <= 0:
        raise HTTPException(status_code=400, detail="Quantity must be greater than 0")
    update = body.model_dump(exclude_none=True, exclude={"status"})
    if body.status:
        update.update(_status_fields(body.status))
    request = db["materialrequest"].find_one_and_update(
        {"_id": oid}, {"$set": touch(update)}, return_document=ReturnDocument.AFTER
    )
    return {"success": True, "message": "Material request updated successfully", "request": serialize_doc(request)}


@material_request_router.delete("/{request_id}")
def delete_material_request(request_id: str, db=Depends(get_db)):
    res = db["materialrequest"].delete_one({"_id": to_object_id(request_id, "request id")})
    if res.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Material request not found")
    return {"success": True, "message": "Material request deleted successfully"}


@material_request_router.post("/bulk-update")
def bulk_update_material_requests(body: BulkUpdateBody, db=Depends(get_db)):
    if not body.request_ids:
        raise HTTPException(status_code=400, detail="Request IDs array is required")
    if not body.status:
        raise HTTPException(status_code=400, detail="Status is required")
    update = _status_fields(body.status)
    if body.admin_notes:
        update["admin_notes"] = body.admin_notes
    ids = [to_object_id(i, "request id") for i in body.request_ids]
    result = db["materialrequest"].update_many({"_id": {"$in": ids}}, {"$set": touch(update)})
    return {
        "success": True,
        "message": f"Updated {result.modified_count} material requests",
        "modified_count": result.modified_count,
    }

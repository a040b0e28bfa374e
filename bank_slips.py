import logging
from typing import Literal, Optional

from bson.objectid import ObjectId
from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile
from fastapi.responses import Response
from pydantic import BaseModel

from database import get_db
from lifecycle import find_any_order, review_bank_payment
from storage import UPLOADS, content_type_for, get_file_store, store_upload
from views import serialize_doc

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/bankSlip", tags=["bank slips"])


class PaymentReviewBody(BaseModel):
    payment_status: Literal["paid", "failed"]
    notes: Optional[str] = None


def _attachment(stored, filename: str) -> Response:
    return Response(
        content=stored.data,
        media_type=content_type_for(stored),
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/upload")
def upload_bank_slip(bank_slip: Optional[UploadFile] = File(None), store=Depends(get_file_store)):
    if bank_slip is None:
        raise HTTPException(status_code=400, detail="No file uploaded")
    file_id, filename = store_upload(store, UPLOADS, bank_slip, {"type": "bankSlip"}, image_only=False)
    return {
        "success": True,
        "file_path": f"/api/bankSlip/file/{file_id}",
        "file_id": file_id,
        "filename": filename,
    }


@router.get("/file/{file_id}")
def get_bank_slip_file(file_id: str, store=Depends(get_file_store)):
    if not ObjectId.is_valid(file_id):
        raise HTTPException(status_code=400, detail="Invalid file id")
    stored = store.get(UPLOADS, file_id)
    if stored is None:
        raise HTTPException(status_code=404, detail="File not found in database")
    return _attachment(stored, f"bank-slip-{file_id}{stored.extension}")


@router.get("/pending")
def pending_bank_slips(db=Depends(get_db)):
    custom = [
        {**serialize_doc(o), "order_type": "custom", "_created": o.get("created_at")}
        for o in db["customorder"].find({"payment_method": "bank", "payment_status": "pending"})
    ]
    regular = [
        {**serialize_doc(o), "order_type": "regular", "_created": o.get("created_at")}
        for o in db["order"].find({"payment_method": "bank_transfer", "payment_status": "pending"})
    ]
    slips = sorted(custom + regular, key=lambda s: s["_created"].timestamp() if s["_created"] else 0, reverse=True)
    for slip in slips:
        del slip["_created"]
    return {"success": True, "bank_slips": slips}


@router.put("/{order_id}/status")
def review_bank_slip(order_id: str, body: PaymentReviewBody, request: Request, db=Depends(get_db)):
    order, is_custom = review_bank_payment(db, order_id, body.payment_status, body.notes, request.app.state.events)
    if body.payment_status == "paid":
        amount = (order.get("final_price") or order.get("estimated_price")) if is_custom else order.get("total_amount")
        logger.info("Payment approved notice to %s for %s order %s (amount %s)",
                    order.get("customer_email"), "custom" if is_custom else "regular",
                    order.get("order_id") or order["_id"], amount)
    else:
        logger.info("Payment denied notice to %s for %s order %s: %s",
                    order.get("customer_email"), "custom" if is_custom else "regular",
                    order.get("order_id") or order["_id"], body.notes or "no reason given")
    return {
        "success": True,
        "message": f"Payment {'approved' if body.payment_status == 'paid' else 'denied'} successfully",
        "order": serialize_doc(order),
    }


@router.get("/{order_id}/download-slip")
def download_bank_slip(order_id: str, db=Depends(get_db), store=Depends(get_file_store)):
    order, _ = find_any_order(db, order_id)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    if not order.get("bank_slip_id"):
        raise HTTPException(status_code=404, detail="No bank slip found for this order")
    stored = store.get(UPLOADS, order["bank_slip_id"])
    if stored is None:
        raise HTTPException(status_code=404, detail="Bank slip not found in database")
    return _attachment(stored, f"bank-slip-{order.get('order_id') or order['_id']}{stored.extension}")

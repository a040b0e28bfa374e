"""
Admin dashboard: customer and designer directories with guarded deletes.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException

from auth import require_roles
from database import get_db, to_object_id
from schemas import Role
from views import user_summary

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_roles("admin"))])

SUMMARY_FIELDS = {"name": 1, "email": 1, "phone": 1, "address": 1}


def _user_with_role(db, user_id: str, role: str, label: str):
    user = db["user"].find_one({"_id": to_object_id(user_id, f"{label.lower()} id")})
    if not user:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    if user.get("role") != role:
        raise HTTPException(status_code=400, detail=f"Only {role}s can be deleted through this endpoint")
    return user


@router.get("/customers")
def list_customers(db=Depends(get_db)):
    customers = []
    for user in db["user"].find({"role": "customer"}, SUMMARY_FIELDS):
        customers.append(user_summary(
            user,
            total_marketplace_orders=db["order"].count_documents({
                "customer_id": str(user["_id"]), "status": {"$ne": "cancelled"},
            }),
            total_custom_orders=db["customorder"].count_documents({
                "customer_email": user["email"], "status": "completed",
            }),
        ))
    return {"success": True, "customers": customers, "count": len(customers)}


@router.delete("/customers/{customer_id}")
def delete_customer(customer_id: str, db=Depends(get_db)):
    customer = _user_with_role(db, customer_id, "customer", "Customer")
    orders = db["order"].count_documents({"customer_id": str(customer["_id"])})
    custom_orders = db["customorder"].count_documents({"customer_email": customer["email"]})
    if orders or custom_orders:
        raise HTTPException(status_code=400,
                            detail="Cannot delete customer with existing orders. Please handle orders first.")
    db["user"].delete_one({"_id": customer["_id"]})
    logger.info("Admin deleted customer %s", customer["email"])
    return {"success": True, "message": "Customer deleted successfully"}


@router.get("/designers")
def list_designers(db=Depends(get_db)):
    designers = [
        user_summary(user, total_uploads=db["design"].count_documents({"designer_id": str(user["_id"])}))
        for user in db["user"].find({"role": "designer"}, SUMMARY_FIELDS)
    ]
    return {"success": True, "designers": designers, "count": len(designers)}


@router.delete("/designers/{designer_id}")
def delete_designer(designer_id: str, db=Depends(get_db)):
    designer = _user_with_role(db, designer_id, "designer", "Designer")
    if db["design"].count_documents({"designer_id": str(designer["_id"])}):
        raise HTTPException(status_code=400,
                            detail="Cannot delete designer with existing designs. Please handle designs first.")
    db["user"].delete_one({"_id": designer["_id"]})
    logger.info("Admin deleted designer %s", designer["email"])
    return {"success": True, "message": "Designer deleted successfully"}


@router.get("/stats")
def admin_stats(db=Depends(get_db)):
    users = {role: db["user"].count_documents({"role": role}) for role in Role.__args__}
    return {
        "success": True,
        "stats": {
            "users": users,
            "designs": db["design"].count_documents({}),
            "orders": db["order"].count_documents({}),
            "custom_orders": db["customorder"].count_documents({}),
            "pending_bank_payments": (
                db["order"].count_documents({"payment_method": "bank_transfer", "payment_status": "pending"})
                + db["customorder"].count_documents({"payment_method": "bank", "payment_status": "pending"})
            ),
        },
    }

import logging

from bson.objectid import ObjectId
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from database import get_db, is_object_id, touch, utcnow
from lifecycle import designer_display_name
from schemas import CartItem
from views import serialize_doc

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/cart", tags=["cart"])


class CartLineBody(BaseModel):
    user_email: str
    design_id: str


class CartQuantityBody(BaseModel):
    user_email: str
    item_id: str
    quantity: int


def _user(db, email: str):
    user = db["user"].find_one({"email": email})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


def _existing_cart(db, user):
    cart = db["cart"].find_one({"user_id": str(user["_id"])})
    if not cart:
        raise HTTPException(status_code=404, detail="Cart not found")
    return cart


def _save_items(db, user, items):
    db["cart"].update_one(
        {"user_id": str(user["_id"])},
        {"$set": touch({"items": items}), "$setOnInsert": {"created_at": utcnow()}},
        upsert=True,
    )


def _lines(items):
    return [serialize_doc(i) for i in items]


@router.get("/{email}")
def get_cart(email: str, db=Depends(get_db)):
    user = _user(db, email)
    cart = db["cart"].find_one({"user_id": str(user["_id"])})
    items = cart.get("items", []) if cart else []

    fresh = []
    for item in items:
        design = db["design"].find_one({"_id": ObjectId(item["design_id"])}) \
            if is_object_id(item.get("design_id")) else None
        if design is None:
            logger.warning("Dropping cart line for missing design %s", item.get("design_id"))
            continue
        item["available_quantity"] = design.get("quantity", 0)
        item["price"] = design.get("price", item.get("price"))
        fresh.append(item)

    _save_items(db, user, fresh)
    logger.info("Cart loaded for user %s: %d items", email, len(fresh))
    return {"success": True, "cart": _lines(fresh)}


@router.post("/add")
def add_to_cart(body: CartLineBody, db=Depends(get_db)):
    if not body.user_email or not body.design_id:
        raise HTTPException(status_code=400, detail="User email and Design ID are required")
    user = _user(db, body.user_email)
    design = db["design"].find_one({"_id": ObjectId(body.design_id)}) if is_object_id(body.design_id) else None
    if not design:
        raise HTTPException(status_code=404, detail="Design not found")
    if design.get("quantity", 0) < 1:
        raise HTTPException(status_code=400, detail="Item is out of stock")

    cart = db["cart"].find_one({"user_id": str(user["_id"])})
    items = cart.get("items", []) if cart else []
    if any(i.get("design_id") == body.design_id for i in items):
        raise HTTPException(status_code=400, detail="Item is already in cart")

    designer = db["user"].find_one({"_id": ObjectId(design["designer_id"])}) \
        if is_object_id(design.get("designer_id")) else None
    line = CartItem(
        design_id=body.design_id,
        item_name=design["item_name"],
        price=design["price"],
        quantity=1,
        available_quantity=design["quantity"],
        image_url=design.get("image_url", ""),
        designer_name=designer_display_name(designer),
        designer_id=design.get("designer_id"),
        material=design.get("material", ""),
        board_size=design.get("board_size", ""),
        board_color=design.get("board_color", ""),
        board_thickness=design.get("board_thickness", ""),
        description=design.get("description", ""),
        added_at=utcnow(),
    )
    items.append(line.model_dump())
    _save_items(db, user, items)
    return {
        "success": True,
        "message": "Item added to cart successfully",
        "cart": _lines(items),
        "cart_length": len(items),
    }


@router.delete("/remove")
def remove_from_cart(body: CartLineBody, db=Depends(get_db)):
    if not body.user_email or not body.design_id:
        raise HTTPException(status_code=400, detail="User email and Design ID are required")
    user = _user(db, body.user_email)
    cart = _existing_cart(db, user)
    items = [i for i in cart.get("items", []) if i.get("design_id") != body.design_id]
    _save_items(db, user, items)
    return {"success": True, "message": "Item removed from cart", "cart": _lines(items)}


@router.delete("/clear/{email}")
def clear_cart(email: str, db=Depends(get_db)):
    user = _user(db, email)
    _existing_cart(db, user)
    _save_items(db, user, [])
    return {"success": True, "message": "Cart cleared successfully", "cart": []}


@router.put("/update")
def update_cart_quantity(body: CartQuantityBody, db=Depends(get_db)):
    if body.quantity < 1:
        raise HTTPException(status_code=400, detail="Quantity must be at least 1")
    user = _user(db, body.user_email)
    cart = _existing_cart(db, user)
    items = cart.get("items", [])
    line = next((i for i in items if i.get("design_id") == body.item_id), None)
    if line is None:
        raise HTTPException(status_code=404, detail="Item not found in cart")
    design = db["design"].find_one({"_id": ObjectId(body.item_id)}) if is_object_id(body.item_id) else None
    if not design:
        raise HTTPException(status_code=404, detail="Design not found")
    if body.quantity > design.get("quantity", 0):
        raise HTTPException(
            status_code=400,
            detail=f"Cannot set quantity to {body.quantity}. Only {design.get('quantity', 0)} available.",
        )
    line["quantity"] = body.quantity
    _save_items(db, user, items)
    return {"success": True, "message": "Cart item quantity updated successfully", "cart": _lines(items)}

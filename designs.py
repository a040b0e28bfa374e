import logging
from typing import Optional

from bson.objectid import ObjectId
from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import Response
from pymongo import DESCENDING, ReturnDocument

from codes import ITEM_CODES
from database import create_document, get_db, to_object_id, touch
from events import publish_design_update
from schemas import Design as DesignSchema
from storage import IMAGES, content_type_for, get_file_store, store_upload
from views import serialize_doc, serialize_docs

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/design", tags=["designs"])


def _designer_by_email(db, email: Optional[str]):
    designer = db["user"].find_one({"email": email}) if email else None
    if not designer:
        raise HTTPException(status_code=404, detail="Designer not found")
    return designer


def _get_design(db, design_id: str):
    design = db["design"].find_one({"_id": to_object_id(design_id, "design id")})
    if not design:
        raise HTTPException(status_code=404, detail="Design not found")
    return design


def _drop_image(store, design):
    if not design.get("image_id"):
        return
    if not store.delete(IMAGES, design["image_id"]):
        logger.warning("Image %s for design %s was already gone", design["image_id"], design["_id"])


@router.get("/image/{image_id}")
def get_image(image_id: str, store=Depends(get_file_store)):
    if not ObjectId.is_valid(image_id):
        raise HTTPException(status_code=400, detail="Invalid image ID")
    stored = store.get(IMAGES, image_id)
    if stored is None:
        raise HTTPException(status_code=404, detail="Image not found")
    return Response(
        content=stored.data,
        media_type=content_type_for(stored),
        headers={"Cache-Control": "public, max-age=31557600"},
    )


@router.post("/upload")
def upload_design(
    email: str = Form(...),
    item_name: str = Form(...),
    description: str = Form(...),
    price: float = Form(...),
    quantity: int = Form(...),
    board_color: str = Form(...),
    board_thickness: str = Form(...),
    material: str = Form(...),
    board_size: str = Form(...),
    image: Optional[UploadFile] = File(None),
    db=Depends(get_db),
    store=Depends(get_file_store),
):
    if image is None:
        raise HTTPException(status_code=400, detail="No image uploaded")
    designer = _designer_by_email(db, email)
    image_id, _ = store_upload(store, IMAGES, image)
    try:
        design = DesignSchema(
            designer_id=str(designer["_id"]),
            item_name=item_name,
            description=description,
            price=price,
            quantity=quantity,
            board_color=board_color,
            board_thickness=board_thickness,
            material=material,
            board_size=board_size,
            image_url=f"/api/design/image/{image_id}",
            image_id=image_id,
        ).model_dump()
        ITEM_CODES.assign(db, design)
        design_id = create_document(db, "design", design)
    except Exception:
        store.delete(IMAGES, image_id)
        raise
    logger.info("Design %s (%s) uploaded by %s", design_id, design["item_code"], email)
    return {
        "success": True,
        "message": "Design uploaded and saved successfully",
        "design_id": design_id,
        "item_code": design["item_code"],
    }


@router.get("/my-uploads")
def my_uploads(email: Optional[str] = None, db=Depends(get_db)):
    if not email:
        raise HTTPException(status_code=400, detail="Designer email is required")
    designer = _designer_by_email(db, email)
    designs = list(db["design"].find({"designer_id": str(designer["_id"])}).sort("created_at", DESCENDING))
    return {"success": True, "designs": serialize_docs(designs), "count": len(designs)}


@router.put("/update/{design_id}")
def update_design(
    design_id: str,
    request: Request,
    email: str = Form(...),
    item_name: str = Form(...),
    description: str = Form(...),
    price: float = Form(...),
    quantity: int = Form(...),
    board_color: str = Form(...),
    board_thickness: str = Form(...),
    material: str = Form(...),
    board_size: str = Form(...),
    image: Optional[UploadFile] = File(None),
    db=Depends(get_db),
    store=Depends(get_file_store),
):
    designer = _designer_by_email(db, email)
    existing = _get_design(db, design_id)
    if existing["designer_id"] != str(designer["_id"]):
        raise HTTPException(status_code=403, detail="Not authorized to edit this design")
    if price < 0 or quantity < 0:
        raise HTTPException(status_code=400, detail="Price and quantity must not be negative")

    update = {
        "item_name": item_name,
        "description": description,
        "price": price,
        "quantity": quantity,
        "board_color": board_color,
        "board_thickness": board_thickness,
        "material": material,
        "board_size": board_size,
    }
    if image is not None:
        image_id, _ = store_upload(store, IMAGES, image)
        _drop_image(store, existing)
        update["image_id"] = image_id
        update["image_url"] = f"/api/design/image/{image_id}"

    design = db["design"].find_one_and_update(
        {"_id": existing["_id"]}, {"$set": touch(update)}, return_document=ReturnDocument.AFTER
    )
    publish_design_update(request.app.state.events, design)
    return {"success": True, "message": "Design updated successfully", "design": serialize_doc(design)}


@router.get("/all-designs")
def all_designs(db=Depends(get_db)):
    designs = list(db["design"].find({}).sort("created_at", DESCENDING))
    designer_ids = {ObjectId(d["designer_id"]) for d in designs if ObjectId.is_valid(d.get("designer_id", ""))}
    designers = {str(u["_id"]): u for u in db["user"].find({"_id": {"$in": list(designer_ids)}})}
    result = []
    for design in designs:
        doc = serialize_doc(design)
        designer = designers.get(design.get("designer_id"))
        doc["designer"] = {"id": str(designer["_id"]), "name": designer["name"], "email": designer["email"]} \
            if designer else None
        result.append(doc)
    return {"success": True, "designs": result, "count": len(result)}


@router.delete("/delete/{design_id}")
def delete_design(design_id: str, email: Optional[str] = None, db=Depends(get_db), store=Depends(get_file_store)):
    designer = _designer_by_email(db, email)
    design = _get_design(db, design_id)
    if design["designer_id"] != str(designer["_id"]):
        raise HTTPException(status_code=403, detail="You are not authorized to delete this design")
    _drop_image(store, design)
    db["design"].delete_one({"_id": design["_id"]})
    logger.info("Design %s deleted by %s", design_id, email)
    return {"success": True, "message": "Design deleted successfully"}


@router.delete("/admin-delete/{design_id}")
def admin_delete_design(design_id: str, db=Depends(get_db), store=Depends(get_file_store)):
    design = _get_design(db, design_id)
    designer = None
    if ObjectId.is_valid(design.get("designer_id", "")):
        designer = db["user"].find_one({"_id": ObjectId(design["designer_id"])})
    _drop_image(store, design)
    db["design"].delete_one({"_id": design["_id"]})
    logger.info(
        "Design %s (%s) removed from marketplace, notifying %s: violation of marketplace terms and conditions",
        design.get("item_name"), design.get("item_code"), designer["email"] if designer else "unknown designer",
    )
    return {"success": True, "message": "Design removed from marketplace and designer notified"}

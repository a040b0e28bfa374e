import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, EmailStr
from pymongo.errors import DuplicateKeyError
from starlette.exceptions import HTTPException as StarletteHTTPException

import database
from auth import get_current_user, hash_password, token_for_user
from database import create_document, ensure_indexes, get_db, touch
from events import EventBroker
from schemas import Role, User as UserSchema
from views import public_user

import admin
import bank_slips
import cart
import custom_orders
import delivery
import designs
import finance
import inventory
import orders

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.events = EventBroker()
    if database.db is not None:
        try:
            ensure_indexes(database.db)
        except Exception as e:
            logger.warning("Unable to ensure indexes: %s", e)
    yield
    app.state.events.close()


app = FastAPI(title="Wood Art Gallery API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ----------------------- Errors -----------------------
@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"success": False, "message": exc.detail},
                        headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", [])[1:])
    message = f"{field}: {first.get('msg')}" if field else first.get("msg", "Invalid request")
    return JSONResponse(status_code=400, content={
        "success": False,
        "message": message,
        "errors": [{"loc": [str(p) for p in e.get("loc", [])], "msg": e.get("msg")} for e in errors],
    })


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"success": False, "message": str(exc)})


# ----------------------- Models -----------------------
class RegisterBody(BaseModel):
    name: str
    email: EmailStr
    password: str
    phone: str
    address: str
    role: Role = "customer"


class LoginBody(BaseModel):
    email: EmailStr
    password: str


class ProfileUpdateBody(BaseModel):
    email: EmailStr
    name: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    password: Optional[str] = None


# ----------------------- Health -----------------------
@app.get("/")
def root():
    return {"message": "Wood Art Gallery API running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if database.DATABASE_URL else "❌ Not Set",
        "database_name": database.DATABASE_NAME,
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        if database.db is not None:
            response["database"] = "✅ Connected & Working"
            response["connection_status"] = "Connected"
            response["collections"] = database.db.list_collection_names()[:10]
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response


# ----------------------- Auth -----------------------
@app.post("/api/register")
def register(body: RegisterBody, db=Depends(get_db)):
    if db["user"].find_one({"email": body.email}):
        raise HTTPException(status_code=409, detail="User already exists")
    user = UserSchema(
        name=body.name,
        email=body.email,
        password_hash=hash_password(body.password),
        phone=body.phone,
        address=body.address,
        role=body.role,
    )
    try:
        create_document(db, "user", user)
    except DuplicateKeyError:
        raise HTTPException(status_code=409, detail="User already exists")
    stored = db["user"].find_one({"email": body.email})
    logger.info("Registered %s as %s", body.email, body.role)
    return {
        "success": True,
        "message": "Registration successful",
        "token": token_for_user(stored),
        "user": {"email": stored["email"], "role": stored["role"]},
    }


@app.post("/api/login")
def login(body: LoginBody, db=Depends(get_db)):
    user = db["user"].find_one({"email": body.email})
    if not user or user.get("password_hash") != hash_password(body.password):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return {
        "success": True,
        "token": token_for_user(user),
        "user": {"id": str(user["_id"]), "name": user["name"], "email": user["email"], "role": user.get("role")},
    }


@app.get("/api/me")
def me(user=Depends(get_current_user)):
    return {"success": True, "user": user}


@app.get("/api/user/profile")
def get_profile(email: Optional[str] = None, db=Depends(get_db)):
    if not email:
        raise HTTPException(status_code=400, detail="Email is required")
    user = db["user"].find_one({"email": email})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return {"success": True, "user": public_user(user)}


@app.put("/api/user/profile")
def update_profile(body: ProfileUpdateBody, db=Depends(get_db)):
    update = body.model_dump(exclude_none=True, exclude={"email", "password"})
    if body.password:
        if len(body.password) < 6:
            raise HTTPException(status_code=400, detail="Password must be at least 6 characters")
        update["password_hash"] = hash_password(body.password)
    res = db["user"].update_one({"email": body.email}, {"$set": touch(update)})
    if res.matched_count == 0:
        raise HTTPException(status_code=404, detail="User not found")
    return {"success": True, "user": public_user(db["user"].find_one({"email": body.email}))}


# ----------------------- Live updates -----------------------
@app.get("/api/events")
async def event_stream(request: Request):
    broker = request.app.state.events
    queue = broker.subscribe()
    return StreamingResponse(
        broker.stream(queue),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


app.include_router(designs.router)
app.include_router(cart.router)
app.include_router(orders.router)
app.include_router(custom_orders.router)
app.include_router(bank_slips.router)
app.include_router(inventory.stock_router)
app.include_router(inventory.supplier_router)
app.include_router(inventory.purchase_order_router)
app.include_router(inventory.material_request_router)
app.include_router(finance.financial_router)
app.include_router(finance.supplier_payment_router)
app.include_router(finance.salary_router)
app.include_router(delivery.router)
app.include_router(admin.router)


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)

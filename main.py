from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Depends, Body, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import cart as carts
import catalog
import orders
import users
from auth import create_access_token, get_current_user, require_admin
from checkout import checkout
from config import SECRET_KEY, DEFAULT_SECRET
from db import db, ensure_indexes, get_db
from errors import StoreError
from logging_setup import configure_logging
from models import (
    AddToCartRequest, AuthResponse, Cart, CheckoutRequest, LoginRequest, Order,
    ProductIn, ProductUpdate, PublicUser, SignupRequest, StatusUpdateRequest,
    UpdateCartRequest,
)

configure_logging()
logger = structlog.get_logger(__name__)

if SECRET_KEY == DEFAULT_SECRET:
    logger.warning("JWT_SECRET not set, using the development default")


@asynccontextmanager
async def lifespan(app: FastAPI):
    await ensure_indexes(db)
    yield


app = FastAPI(title="Storefront API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    if exc.status_code >= 500:
        logger.error("Request failed", path=request.url.path, error=exc.message)
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field}: {first.get('msg')}" if field else first.get("msg")
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content={"message": message})


@app.get("/health")
async def health():
    return {"status": "OK", "message": "Server is running"}

# ---------------- AUTH ----------------
@app.post("/auth/signup", status_code=201, response_model=AuthResponse)
async def signup(body: SignupRequest, db=Depends(get_db)):
    user = await users.register(db, body.name, body.email, body.password)
    return {
        "message": "User created successfully",
        "token": create_access_token(user["id"]),
        "user": user,
    }

@app.post("/auth/login", response_model=AuthResponse)
async def login(body: LoginRequest, db=Depends(get_db)):
    user = await users.authenticate(db, body.email, body.password)
    return {
        "message": "Login successful",
        "token": create_access_token(user["id"]),
        "user": user,
    }

@app.get("/auth/me", response_model=PublicUser)
async def me(user=Depends(get_current_user)):
    return user

@app.put("/auth/profile", response_model=PublicUser)
async def update_profile(fields: dict = Body(...), user=Depends(get_current_user), db=Depends(get_db)):
    return await users.update_profile(db, user, fields)

# ---------------- PRODUCTS ----------------
@app.get("/products/{product_id}")
async def get_product(product_id: str, db=Depends(get_db)):
    product = await catalog.require_product(db, product_id)
    return catalog.serialize_product(product)

@app.post("/products", status_code=201)
async def create_product(body: ProductIn, admin=Depends(require_admin), db=Depends(get_db)):
    product = await catalog.create_product(db, body.model_dump())
    logger.info("Product created", product_id=product["_id"], by=admin["id"])
    return catalog.serialize_product(product)

@app.put("/products/{product_id}")
async def update_product(product_id: str, body: ProductUpdate, admin=Depends(require_admin), db=Depends(get_db)):
    product = await catalog.update_product(db, product_id, body.model_dump(exclude_unset=True))
    return catalog.serialize_product(product)

@app.delete("/products/{product_id}")
async def delete_product(product_id: str, admin=Depends(require_admin), db=Depends(get_db)):
    await catalog.delete_product(db, product_id)
    logger.info("Product deleted", product_id=product_id, by=admin["id"])
    return {"message": "Product deleted"}

# ---------------- CART ----------------
@app.get("/cart", response_model=Cart)
async def get_cart(user=Depends(get_current_user), db=Depends(get_db)):
    return carts.serialize_cart(await carts.get_cart(db, user["id"]))

@app.post("/cart/add", response_model=Cart)
async def add_to_cart(item: AddToCartRequest, user=Depends(get_current_user), db=Depends(get_db)):
    cart = await carts.add_item(db, user["id"], item.product_id, item.quantity)
    return carts.serialize_cart(cart)

@app.put("/cart/update", response_model=Cart)
async def update_cart(item: UpdateCartRequest, user=Depends(get_current_user), db=Depends(get_db)):
    cart = await carts.update_item(db, user["id"], item.product_id, item.quantity)
    return carts.serialize_cart(cart)

@app.delete("/cart/remove/{product_id}", response_model=Cart)
async def remove_from_cart(product_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    cart = await carts.remove_item(db, user["id"], product_id)
    return carts.serialize_cart(cart)

@app.delete("/cart/clear", response_model=Cart)
async def clear_cart(user=Depends(get_current_user), db=Depends(get_db)):
    return carts.serialize_cart(await carts.clear_cart(db, user["id"]))

# ---------------- ORDERS ----------------
@app.post("/orders", status_code=201, response_model=Order)
async def place_order(body: Optional[CheckoutRequest] = None, user=Depends(get_current_user), db=Depends(get_db)):
    body = body or CheckoutRequest()
    order = await checkout(db, user["id"], body.shipping_address, body.payment_method)
    return orders.serialize_order(order)

@app.get("/orders")
async def get_orders(user=Depends(get_current_user), db=Depends(get_db)):
    found = await orders.list_orders(db, user["id"])
    return {"count": len(found), "orders": [Order(**o) for o in found]}

@app.get("/orders/{order_id}", response_model=Order)
async def get_order(order_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    return orders.serialize_order(await orders.get_order(db, user, order_id))

@app.put("/orders/{order_id}/status", response_model=Order)
async def update_order_status(order_id: str, body: StatusUpdateRequest, user=Depends(get_current_user), db=Depends(get_db)):
    return await orders.set_status(
        db, user, order_id,
        order_status=body.order_status.value if body.order_status else None,
        payment_status=body.payment_status.value if body.payment_status else None,
    )

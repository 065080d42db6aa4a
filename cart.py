import uuid
from datetime import datetime, timezone

import structlog
from pymongo.errors import DuplicateKeyError, PyMongoError

from catalog import require_product
from errors import NotFound, PersistenceFailure, ValidationError

logger = structlog.get_logger(__name__)


def serialize_cart(cart: dict):
    """Convert a cart document into a JSON serializable dict."""
    return {
        "user_id": cart["user_id"],
        "items": [
            {
                "product_id": item["product_id"],
                "quantity": item["quantity"]
            }
            for item in cart.get("items", [])
        ]
    }


async def _load(db, user_id: str) -> dict:
    cart = await db["carts"].find_one({"user_id": user_id})
    if not cart:
        cart = {"_id": str(uuid.uuid4()), "user_id": user_id, "items": []}
        try:
            await db["carts"].insert_one(cart)
        except DuplicateKeyError:
            # Another request created it first
            cart = await db["carts"].find_one({"user_id": user_id})
    return cart


async def _save(db, cart: dict):
    await db["carts"].update_one(
        {"user_id": cart["user_id"]},
        {"$set": {"items": cart["items"], "updated_at": datetime.now(timezone.utc)}},
    )


def _subtract(items: list, ordered: list) -> list:
    remaining = {item["product_id"]: item["quantity"] for item in items}
    for line in ordered:
        if line["product_id"] in remaining:
            remaining[line["product_id"]] -= line["quantity"]
    return [
        {"product_id": item["product_id"], "quantity": remaining[item["product_id"]]}
        for item in items
        if remaining[item["product_id"]] > 0
    ]


async def reconcile(db, cart: dict) -> dict:
    """Finish any checkout whose cart-clearing step never completed.

    The ordered quantities are taken back out of the cart instead of emptying
    it, so items added after that checkout survive.
    """
    cursor = db["orders"].find({"user_id": cart["user_id"], "cart_cleared": False})
    async for order in cursor:
        cart["items"] = _subtract(cart["items"], order["items"])
        await _save(db, cart)
        await db["orders"].update_one({"_id": order["_id"]}, {"$set": {"cart_cleared": True}})
        logger.info("Reconciled cart after checkout", user_id=cart["user_id"], order_id=order["_id"])
    return cart


async def get_cart(db, user_id: str) -> dict:
    try:
        cart = await _load(db, user_id)
        return await reconcile(db, cart)
    except PyMongoError as exc:
        raise PersistenceFailure() from exc


async def add_item(db, user_id: str, product_id: str, quantity: int = 1) -> dict:
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1")
    await require_product(db, product_id)

    cart = await get_cart(db, user_id)
    for item in cart["items"]:
        if item["product_id"] == product_id:
            item["quantity"] += quantity
            break
    else:
        cart["items"].append({"product_id": product_id, "quantity": quantity})

    try:
        await _save(db, cart)
    except PyMongoError as exc:
        raise PersistenceFailure() from exc
    return cart


async def update_item(db, user_id: str, product_id: str, quantity: int) -> dict:
    cart = await get_cart(db, user_id)
    if quantity <= 0:
        cart["items"] = [i for i in cart["items"] if i["product_id"] != product_id]
    else:
        item = next((i for i in cart["items"] if i["product_id"] == product_id), None)
        if item is None:
            raise NotFound("Item not in cart")
        item["quantity"] = quantity

    try:
        await _save(db, cart)
    except PyMongoError as exc:
        raise PersistenceFailure() from exc
    return cart


async def remove_item(db, user_id: str, product_id: str) -> dict:
    return await update_item(db, user_id, product_id, 0)


async def clear_cart(db, user_id: str) -> dict:
    try:
        cart = await _load(db, user_id)
        cart["items"] = []
        await _save(db, cart)
    except PyMongoError as exc:
        raise PersistenceFailure() from exc
    return cart

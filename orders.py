from datetime import datetime, timezone

import structlog
from pymongo.errors import PyMongoError

from auth import ensure_owner
from errors import NotFound, PersistenceFailure, ValidationError

logger = structlog.get_logger(__name__)


def serialize_order(doc: dict) -> dict:
    order = dict(doc)
    order["id"] = order.pop("_id")
    return order


async def list_orders(db, user_id: str) -> list:
    orders = []
    try:
        cursor = db["orders"].find({"user_id": user_id}).sort("created_at", -1)
        async for o in cursor:
            orders.append(serialize_order(o))
    except PyMongoError as exc:
        raise PersistenceFailure() from exc
    return orders


async def get_order(db, user: dict, order_id: str) -> dict:
    try:
        order = await db["orders"].find_one({"_id": order_id})
    except PyMongoError as exc:
        raise PersistenceFailure() from exc
    if not order:
        raise NotFound("Order not found")
    ensure_owner(user, order["user_id"])
    return order


async def set_status(db, user: dict, order_id: str, order_status=None, payment_status=None) -> dict:
    """Update order and/or payment status.

    Any value may follow any other; only the fields supplied are changed.
    """
    updates = {}
    if order_status is not None:
        updates["order_status"] = order_status
    if payment_status is not None:
        updates["payment_status"] = payment_status
    if not updates:
        raise ValidationError("Provide order_status or payment_status")

    order = await get_order(db, user, order_id)
    updates["updated_at"] = datetime.now(timezone.utc)
    try:
        await db["orders"].update_one({"_id": order_id}, {"$set": updates})
    except PyMongoError as exc:
        raise PersistenceFailure() from exc

    order.update(updates)
    logger.info("Order status updated", order_id=order_id, by=user["id"],
                order_status=order["order_status"], payment_status=order["payment_status"])
    return serialize_order(order)

"""Read-only product lookup plus the admin-only catalog mutations."""

import uuid
from datetime import datetime, timezone

from pymongo.errors import PyMongoError

from errors import NotFound, PersistenceFailure


def serialize_product(doc: dict) -> dict:
    product = dict(doc)
    product["id"] = product.pop("_id")
    return product


async def get_product(db, product_id: str):
    try:
        return await db["products"].find_one({"_id": product_id})
    except PyMongoError as exc:
        raise PersistenceFailure() from exc


async def require_product(db, product_id: str) -> dict:
    product = await get_product(db, product_id)
    if not product:
        raise NotFound(f"Product {product_id} not found")
    return product


async def create_product(db, fields: dict) -> dict:
    now = datetime.now(timezone.utc)
    product = {"_id": str(uuid.uuid4()), **fields, "created_at": now, "updated_at": now}
    try:
        await db["products"].insert_one(product)
    except PyMongoError as exc:
        raise PersistenceFailure() from exc
    return product


async def update_product(db, product_id: str, fields: dict) -> dict:
    product = await require_product(db, product_id)
    updates = {**fields, "updated_at": datetime.now(timezone.utc)}
    try:
        await db["products"].update_one({"_id": product_id}, {"$set": updates})
    except PyMongoError as exc:
        raise PersistenceFailure() from exc
    product.update(updates)
    return product


async def delete_product(db, product_id: str):
    try:
        result = await db["products"].delete_one({"_id": product_id})
    except PyMongoError as exc:
        raise PersistenceFailure() from exc
    if not result.deleted_count:
        raise NotFound(f"Product {product_id} not found")

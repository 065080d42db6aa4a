"""Checkout: turn a user's cart into an order, then empty the cart.

States::

    PENDING_CART -> VALIDATING -> ORDER_CREATED -> CART_CLEARED
                         |              |
                         +--> ABORTED <-+

The order is always written before the cart is touched. If the order write
fails the cart is left as it was. If clearing the cart fails after the order
was written, the order is still returned with ``cart_cleared`` false and the
next cart read takes the ordered items back out (see ``cart.reconcile``).
"""

import uuid
from datetime import datetime, timezone
from enum import Enum

import structlog
from pydantic import ValidationError as PydanticValidationError
from pymongo.errors import PyMongoError

from cart import clear_cart, get_cart
from catalog import require_product
from errors import StoreError
from models import DEFAULT_PAYMENT_METHOD, OrderStatus, PaymentStatus, ShippingAddress

logger = structlog.get_logger(__name__)


class CheckoutState(str, Enum):
    PENDING_CART = "pending_cart"
    VALIDATING = "validating"
    ORDER_CREATED = "order_created"
    CART_CLEARED = "cart_cleared"
    ABORTED = "aborted"


class AbortReason(str, Enum):
    EMPTY_CART = "empty_cart"
    MISSING_ADDRESS = "missing_address"
    PERSISTENCE_FAILURE = "persistence_failure"


ABORT_MESSAGES = {
    AbortReason.EMPTY_CART: (400, "Cart is empty"),
    AbortReason.MISSING_ADDRESS: (400, "Shipping address is required"),
    AbortReason.PERSISTENCE_FAILURE: (500, "Could not place order"),
}


class CheckoutAborted(StoreError):
    def __init__(self, reason: AbortReason):
        self.reason = reason
        self.status_code, message = ABORT_MESSAGES[reason]
        super().__init__(message)


def parse_address(address):
    """Return a complete ShippingAddress or None."""
    if not address:
        return None
    try:
        parsed = ShippingAddress(**address)
    except (PydanticValidationError, TypeError):
        return None
    if any(not value.strip() for value in parsed.model_dump().values()):
        return None
    return parsed


class Checkout:
    def __init__(self, db, user_id: str):
        self.db = db
        self.user_id = user_id
        self.state = CheckoutState.PENDING_CART
        self.order = None

    def _abort(self, reason: AbortReason):
        self.state = CheckoutState.ABORTED
        logger.warning("Checkout aborted", user_id=self.user_id, reason=reason.value)
        raise CheckoutAborted(reason)

    async def _snapshot(self, items: list):
        lines = []
        total = 0
        for entry in items:
            product = await require_product(self.db, entry["product_id"])
            lines.append({
                "product_id": entry["product_id"],
                "name": product["name"],
                "image": product.get("image"),
                "price": product["new_price"],
                "quantity": entry["quantity"],
            })
            total += product["new_price"] * entry["quantity"]
        return lines, total

    async def run(self, shipping_address=None, payment_method=None) -> dict:
        self.state = CheckoutState.VALIDATING
        cart = await get_cart(self.db, self.user_id)

        if not cart["items"]:
            self._abort(AbortReason.EMPTY_CART)

        address = parse_address(shipping_address)
        if address is None:
            self._abort(AbortReason.MISSING_ADDRESS)

        lines, total = await self._snapshot(cart["items"])

        now = datetime.now(timezone.utc)
        order = {
            "_id": str(uuid.uuid4()),
            "user_id": self.user_id,
            "items": lines,
            "total_amount": total,
            "shipping_address": address.model_dump(),
            "payment_method": payment_method or DEFAULT_PAYMENT_METHOD,
            "payment_status": PaymentStatus.PENDING.value,
            "order_status": OrderStatus.PENDING.value,
            "cart_cleared": False,
            "created_at": now,
            "updated_at": now,
        }
        try:
            await self.db["orders"].insert_one(order)
        except PyMongoError:
            logger.exception("Order write failed", user_id=self.user_id)
            self._abort(AbortReason.PERSISTENCE_FAILURE)

        self.state = CheckoutState.ORDER_CREATED
        self.order = order
        logger.info("Order created", user_id=self.user_id, order_id=order["_id"], total=total)

        try:
            await clear_cart(self.db, self.user_id)
            await self.db["orders"].update_one({"_id": order["_id"]}, {"$set": {"cart_cleared": True}})
        except (StoreError, PyMongoError):
            # Order stands; the cart is reconciled on its next read.
            logger.exception("Cart clear failed after checkout", user_id=self.user_id, order_id=order["_id"])
            return order

        order["cart_cleared"] = True
        self.state = CheckoutState.CART_CLEARED
        return order


async def checkout(db, user_id: str, shipping_address=None, payment_method=None) -> dict:
    return await Checkout(db, user_id).run(shipping_address, payment_method)

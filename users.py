import uuid
from datetime import datetime, timezone

import structlog
from email_validator import EmailNotValidError, validate_email
from passlib.context import CryptContext
from pymongo.errors import DuplicateKeyError, PyMongoError

from config import BCRYPT_ROUNDS
from errors import Conflict, InvalidCredentials, PersistenceFailure, ValidationError
from models import Role

logger = structlog.get_logger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=BCRYPT_ROUNDS)

PROFILE_FIELDS = ("name", "phone", "address")


def normalize_email(email: str) -> str:
    return email.strip().lower()


def public_user(user: dict) -> dict:
    """Convert a user document into its outward form (no password hash)."""
    return {
        "id": user["_id"],
        "name": user.get("name"),
        "email": user["email"],
        "role": user.get("role", Role.USER.value),
        "phone": user.get("phone"),
        "address": user.get("address"),
    }


async def get_user(db, user_id: str):
    try:
        return await db["users"].find_one({"_id": user_id})
    except PyMongoError as exc:
        raise PersistenceFailure() from exc


async def register(db, name: str, email: str, password: str) -> dict:
    if not name or not email or not password:
        raise ValidationError("Please provide all required fields")

    email = normalize_email(email)
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        raise ValidationError("Please provide a valid email")

    try:
        if await db["users"].find_one({"email": email}):
            raise Conflict()

        now = datetime.now(timezone.utc)
        user = {
            "_id": str(uuid.uuid4()),
            "name": name,
            "email": email,
            "password": pwd_context.hash(password),
            "role": Role.USER.value,
            "created_at": now,
            "updated_at": now,
        }
        await db["users"].insert_one(user)
    except DuplicateKeyError:
        # Lost a race with a concurrent signup; the unique index caught it
        raise Conflict()
    except PyMongoError as exc:
        raise PersistenceFailure() from exc

    logger.info("User registered", user_id=user["_id"])
    return public_user(user)


async def authenticate(db, email: str, password: str) -> dict:
    if not email or not password:
        raise ValidationError("Please provide email and password")

    try:
        user = await db["users"].find_one({"email": normalize_email(email)})
    except PyMongoError as exc:
        raise PersistenceFailure() from exc

    # Same error whether the email is unknown or the password is wrong
    if not user or not pwd_context.verify(password, user["password"]):
        logger.info("Login failed")
        raise InvalidCredentials()

    return public_user(user)


async def update_profile(db, user: dict, fields: dict) -> dict:
    invalid = [key for key in fields if key not in PROFILE_FIELDS]
    if invalid:
        raise ValidationError("Invalid updates")
    if "name" in fields and not (isinstance(fields["name"], str) and fields["name"].strip()):
        raise ValidationError("Name cannot be empty")
    if "phone" in fields and not isinstance(fields["phone"], (str, type(None))):
        raise ValidationError("Phone must be a string")
    if "address" in fields and not isinstance(fields["address"], (str, dict, type(None))):
        raise ValidationError("Invalid address")

    updates = dict(fields)
    updates["updated_at"] = datetime.now(timezone.utc)
    try:
        await db["users"].update_one({"_id": user["id"]}, {"$set": updates})
    except PyMongoError as exc:
        raise PersistenceFailure() from exc

    profile = dict(user)
    profile.update(fields)
    return profile

"""
MongoDB connection and document helpers for the Nutri Store API.

`db` is None when DATABASE_URL is not configured; the helpers below turn that
into a 500 for the caller.
"""

import os
from datetime import datetime, timezone
from typing import Optional

from bson import ObjectId
from dotenv import load_dotenv
from fastapi import HTTPException
from pymongo import MongoClient

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME", "nutri_store")

client = None
db = None
if DATABASE_URL:
    client = MongoClient(DATABASE_URL)
    db = client[DATABASE_NAME]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # pymongo hands back naive UTC datetimes
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _require_db():
    if db is None:
        raise HTTPException(status_code=500, detail="Database not configured")
    return db


def to_oid(val):
    try:
        return ObjectId(str(val))
    except Exception:
        return None


def require_oid(val, label: str = "ID"):
    if not ObjectId.is_valid(str(val)):
        raise HTTPException(status_code=400, detail=f"Invalid {label} format")
    return str(val)


def insert_with_id(collection, doc: dict) -> str:
    database = _require_db()
    oid = ObjectId()
    doc["_id"] = oid
    doc["id"] = str(oid)
    database[collection].insert_one(doc)
    return doc["id"]


def get_by_id(collection: str, id_str: str):
    database = _require_db()
    if not id_str:
        return None
    oid = to_oid(id_str)
    q = {"$or": ([{"_id": oid}] if oid else []) + [{"id": str(id_str)}]}
    return database[collection].find_one(q)


def list_many(collection: str, query: dict = None, sort: Optional[list] = None, limit: Optional[int] = None):
    database = _require_db()
    cursor = database[collection].find(query or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    res = []
    for d in cursor:
        d["id"] = str(d.get("_id")) if not d.get("id") else d["id"]
        res.append(d)
    return res


def serialize_doc(doc: dict, hidden=()) -> dict:
    """Make a stored document JSON friendly: string ids, ISO timestamps."""
    if not doc:
        return doc
    out = {}
    for k, v in doc.items():
        if k in hidden:
            continue
        if isinstance(v, ObjectId):
            v = str(v)
        elif isinstance(v, datetime):
            v = as_utc(v).isoformat()
        elif isinstance(v, dict):
            v = serialize_doc(v)
        out[k] = v
    if "_id" in out:
        out["id"] = out.get("id") or out["_id"]
    return out


def ensure_indexes():
    if db is None:
        return
    db["user"].create_index("username", unique=True)
    db["user"].create_index([("email", 1), ("userType", 1)], unique=True)
    db["product"].create_index("sellerId")
    db["order"].create_index("orderId")
    db["order"].create_index("sellerId")
    db["order"].create_index("buyerId")
    db["notification"].create_index([("orderId", 1), ("audience", 1)], unique=True)
    db["otp"].create_index([("userId", 1), ("purpose", 1)], unique=True)
    db["cart"].create_index([("userId", 1), ("productId", 1)], unique=True)
    db["message"].create_index("orderId")

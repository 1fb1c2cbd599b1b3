"""
app/services/cms_service.py

Purpose: Generic admin content management

- One CRUD surface over a fixed set of content collections
- Paged, searchable listing
- Singleton upsert for settings resources
"""

import math
from typing import Dict, Any, Optional

from pymongo import ASCENDING, DESCENDING

from app.core.exceptions import BadRequestError, ResourceNotFoundError
from app.core.logging import get_logger
from app.db.mongo import get_collection
from utils.doc_utils import new_id, serialize_doc, serialize_docs, strip_protected
from utils.time_utils import utcnow
from utils.validation_utils import escape_search

logger = get_logger(__name__)

# resource -> fields searched by ?search=
RESOURCES: Dict[str, tuple] = {
    "cms_pages": ("title", "slug"),
    "blog_posts": ("title", "slug"),
    "pricing_plans": ("name",),
    "appearance_settings": (),
    "seo_settings": (),
    "email_templates": ("name",),
    "shop_products": ("name", "sku"),
    "products": ("name", "sku"),
}

PUBLIC_RESOURCES = ("pricing_plans", "appearance_settings", "seo_settings")
SINGLETON_RESOURCES = ("appearance_settings", "seo_settings")
SINGLETON_ID = "default"


def validate_resource(resource: str) -> str:
    if resource not in RESOURCES:
        raise BadRequestError("Invalid resource")
    return resource


def is_public(resource: str) -> bool:
    return resource in PUBLIC_RESOURCES


def _sort_for(resource: str):
    if resource == "pricing_plans":
        return [("display_order", ASCENDING)]
    return [("created_at", DESCENDING)]


async def list_items(resource: str, page: int = 1, limit: int = 50, search: Optional[str] = None) -> Dict[str, Any]:
    validate_resource(resource)
    page = max(page, 1)
    limit = min(max(limit, 1), 200)

    query: Dict[str, Any] = {}
    pattern = escape_search(search)
    if pattern and RESOURCES[resource]:
        query["$or"] = [{field: {"$regex": pattern, "$options": "i"}} for field in RESOURCES[resource]]

    collection = get_collection(resource)
    total = await collection.count_documents(query)
    docs = await (
        collection.find(query)
        .sort(_sort_for(resource))
        .skip((page - 1) * limit)
        .limit(limit)
        .to_list(length=limit)
    )
    return {
        "data": serialize_docs(docs),
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": math.ceil(total / limit) if total else 0,
        },
    }


async def get_item(resource: str, item_id: Optional[str] = None) -> Dict[str, Any]:
    validate_resource(resource)
    query = {"_id": item_id} if item_id else {}
    doc = await get_collection(resource).find_one(query)
    if item_id and not doc:
        raise ResourceNotFoundError(f"{resource} item not found")
    return serialize_doc(doc) or {}


async def create_item(resource: str, data: Dict[str, Any]) -> Dict[str, Any]:
    validate_resource(resource)
    now = utcnow()
    doc = strip_protected(data)
    doc.update({"_id": new_id(), "created_at": now, "updated_at": now})

    await get_collection(resource).insert_one(doc)
    logger.info(f"📝 Created {resource} item {doc['_id']}", extra={"resource": resource})
    return serialize_doc(doc)


async def update_item(resource: str, data: Dict[str, Any], item_id: Optional[str] = None) -> Dict[str, Any]:
    """
    With an id: updates that document (404 if missing).
    Without: upserts the resource singleton.
    """
    validate_resource(resource)
    updates = strip_protected(data)
    now = utcnow()
    updates["updated_at"] = now
    collection = get_collection(resource)

    if item_id:
        result = await collection.update_one({"_id": item_id}, {"$set": updates})
        if result.matched_count == 0:
            raise ResourceNotFoundError(f"{resource} item not found")
        doc = await collection.find_one({"_id": item_id})
    elif resource not in SINGLETON_RESOURCES:
        raise BadRequestError("ID required for update")
    else:
        existing = await collection.find_one({}, {"_id": 1})
        target = existing["_id"] if existing else SINGLETON_ID
        await collection.update_one(
            {"_id": target},
            {"$set": updates, "$setOnInsert": {"created_at": now}},
            upsert=True,
        )
        doc = await collection.find_one({"_id": target})

    logger.info(f"📝 Updated {resource} item {doc['_id'] if doc else item_id}", extra={"resource": resource})
    return serialize_doc(doc)


async def delete_item(resource: str, item_id: Optional[str]) -> Dict[str, Any]:
    validate_resource(resource)
    if not item_id:
        raise BadRequestError("ID required for delete")

    result = await get_collection(resource).delete_one({"_id": item_id})
    if result.deleted_count == 0:
        raise ResourceNotFoundError(f"{resource} item not found")
    logger.info(f"🗑️ Deleted {resource} item {item_id}", extra={"resource": resource})
    return {"success": True}

"""
app/services/shop_service.py

Purpose: Offline shop (point of sale) data

- Shops with plan-based limits
- Generic CRUD for products, categories, customers, suppliers, expenses
- EAN-13 barcode generation for products
- Sales with invoice numbering, stock decrement and profit
- Dashboard figures
- Trash retention cleanup
"""

from datetime import timedelta
from typing import Dict, Any, Optional, List

from pymongo import ReturnDocument

from app.core.exceptions import BadRequestError, ForbiddenError, ResourceNotFoundError
from app.core.logging import get_logger, LogContext
from app.db.mongo import (
    get_collection,
    get_shops_collection,
    get_shop_settings_collection,
    get_shop_trash_collection,
    get_users_collection,
)
from app.services.event_service import emit_event, EVENT_TYPES
from utils.doc_utils import new_id, serialize_doc, serialize_docs, strip_protected
from utils.time_utils import utcnow, parse_datetime

logger = get_logger(__name__)

# API resource -> collection
TABLES = {
    "products": "shop_products",
    "categories": "shop_categories",
    "customers": "shop_customers",
    "suppliers": "shop_suppliers",
    "expenses": "shop_expenses",
    "sales": "shop_sales",
}
CRUD_RESOURCES = ("products", "categories", "customers", "suppliers", "expenses")
ITEM_LABELS = {
    "shop_products": "Product",
    "shop_categories": "Category",
    "shop_customers": "Customer",
    "shop_suppliers": "Supplier",
    "shop_expenses": "Expense",
    "shop_sales": "Sale",
}

DEFAULT_SHOP_NAME = "My Shop"
DEFAULT_INVOICE_PREFIX = "INV"
DEFAULT_MAX_SHOPS = 1
BARCODE_PREFIX = "890"
TRASH_RETENTION_DAYS = 7

NUMERIC_PRODUCT_FIELDS = ("purchase_price", "selling_price", "stock_quantity", "min_stock_alert")


def resolve_table(name: str) -> str:
    """Accepts either the API resource name or the collection name."""
    if name in TABLES:
        return TABLES[name]
    if name in TABLES.values():
        return name
    raise BadRequestError(f"Unknown table: {name}")


def _resource_for(table: str) -> str:
    for resource, collection in TABLES.items():
        if collection == table:
            return resource
    return table


def _scope(user_id: str, shop_id: Optional[str]) -> Dict[str, Any]:
    query: Dict[str, Any] = {"user_id": user_id}
    if shop_id:
        query["shop_id"] = shop_id
    return query


def _parse_date(value: Any, field: str):
    try:
        return parse_datetime(value)
    except (TypeError, ValueError):
        raise BadRequestError(f"Invalid date for {field}")


def _number(value: Any, default: float = 0) -> float:
    try:
        return float(value) if value not in (None, "") else default
    except (TypeError, ValueError):
        return default


# ============================================================
# BARCODES
# ============================================================

def ean13_check_digit(digits: str) -> int:
    """Check digit for the first 12 digits of an EAN-13."""
    total = sum(int(d) * (3 if i % 2 else 1) for i, d in enumerate(digits[:12]))
    return (10 - total % 10) % 10


def generate_barcode(owner_id: str, sequence: int) -> str:
    """
    890 + last 4 owner id characters (non-digits -> 0) + 5-digit sequence + check digit
    """
    tail = "".join(c if c.isdigit() else "0" for c in owner_id[-4:]).rjust(4, "0")
    body = f"{BARCODE_PREFIX}{tail}{sequence % 100000:05d}"
    return body + str(ean13_check_digit(body))


async def next_barcode_sequence(user_id: str, shop_id: Optional[str]) -> int:
    count = await get_collection("shop_products").count_documents(_scope(user_id, shop_id))
    return count + 1


# ============================================================
# SHOPS
# ============================================================

async def _max_shops(user_id: str) -> Dict[str, Any]:
    user = await get_users_collection().find_one({"_id": user_id}, {"subscription_plan": 1})
    plan_id = (user or {}).get("subscription_plan") or "none"
    plan = await get_collection("pricing_plans").find_one({"_id": plan_id}, {"max_shops": 1, "name": 1})
    max_shops = (plan or {}).get("max_shops")
    return {
        "max_shops": DEFAULT_MAX_SHOPS if max_shops is None else max_shops,
        "plan_name": (plan or {}).get("name") or plan_id,
    }


def _limits(plan: Dict[str, Any], count: int) -> Dict[str, Any]:
    max_shops = plan["max_shops"]
    return {
        "max_shops": max_shops,
        "current_shop_count": count,
        "can_create_more": max_shops == -1 or count < max_shops,
        "plan_name": plan["plan_name"],
    }


async def list_shops(user_id: str) -> Dict[str, Any]:
    """
    Active shops, creating the default shop on first use.
    """
    shops_collection = get_shops_collection()
    shops = await (
        shops_collection.find({"user_id": user_id, "is_active": True})
        .sort("created_at", 1)
        .to_list(length=None)
    )

    if not shops:
        now = utcnow()
        default = {
            "_id": new_id(),
            "user_id": user_id,
            "name": DEFAULT_SHOP_NAME,
            "is_default": True,
            "is_active": True,
            "created_at": now,
            "updated_at": now,
        }
        await shops_collection.insert_one(default)
        logger.info("🏪 Created default shop", extra={"user_id": user_id})
        shops = [default]

    plan = await _max_shops(user_id)
    return {"shops": serialize_docs(shops), "limits": _limits(plan, len(shops))}


async def create_shop(user_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    name = str(data.get("name") or "").strip()
    if not name:
        raise BadRequestError("Shop name is required")

    plan = await _max_shops(user_id)
    shops_collection = get_shops_collection()
    count = await shops_collection.count_documents({"user_id": user_id, "is_active": True})
    if not _limits(plan, count)["can_create_more"]:
        raise ForbiddenError(
            f"Your {plan['plan_name']} plan allows up to {plan['max_shops']} shop(s). Please upgrade to add more.",
            details={"limit_reached": True, "max_shops": plan["max_shops"]},
        )

    now = utcnow()
    shop = strip_protected(data, extra=("user_id",))
    shop.update({
        "_id": new_id(),
        "user_id": user_id,
        "name": name,
        "is_default": count == 0,
        "is_active": True,
        "created_at": now,
        "updated_at": now,
    })
    await shops_collection.insert_one(shop)
    logger.info(f"🏪 Shop created: {name}", extra={"user_id": user_id, "shop_id": shop["_id"]})
    return serialize_doc(shop)


# ============================================================
# GENERIC CRUD
# ============================================================

async def list_items(user_id: str, resource: str, shop_id: Optional[str] = None) -> List[Dict[str, Any]]:
    table = resolve_table(resource)
    docs = await (
        get_collection(table)
        .find(_scope(user_id, shop_id))
        .sort("created_at", -1)
        .to_list(length=None)
    )
    return serialize_docs(docs)


async def create_item(user_id: str, resource: str, shop_id: Optional[str], data: Dict[str, Any]) -> Dict[str, Any]:
    table = resolve_table(resource)
    if table == "shop_sales":
        return await create_sale(user_id, shop_id, data)

    now = utcnow()
    doc = strip_protected(data, extra=("user_id", "shop_id"))
    if data.get("id"):
        # client generated ids (offline queue) are kept
        doc["_id"] = str(data["id"])
    else:
        doc["_id"] = new_id()
    doc.update({"user_id": user_id, "shop_id": shop_id, "created_at": now, "updated_at": now})

    if table == "shop_products":
        for field in NUMERIC_PRODUCT_FIELDS:
            if field in doc:
                doc[field] = _number(doc[field])
        doc.setdefault("stock_quantity", 0)
        doc.setdefault("min_stock_alert", 0)
        doc.setdefault("is_active", True)
        doc["average_cost"] = _number(doc.get("purchase_price"))
        if not doc.get("barcode"):
            sequence = await next_barcode_sequence(user_id, shop_id)
            doc["barcode"] = generate_barcode(shop_id or user_id, sequence)

    if table == "shop_expenses":
        doc["amount"] = _number(doc.get("amount"))
        doc["expense_date"] = _parse_date(doc.get("expense_date"), "expense_date") or now

    await get_collection(table).insert_one(doc)
    logger.info(f"🧾 Created {_resource_for(table)} item", extra={"user_id": user_id, "shop_id": shop_id})

    if table == "shop_products":
        await emit_event(EVENT_TYPES["PRODUCT_CREATED"], user_id, {
            "product_id": doc["_id"],
            "name": doc.get("name"),
            "shop_id": shop_id,
            "source": "offline",
        })
    return serialize_doc(doc)


async def update_item(user_id: str, resource: str, shop_id: Optional[str], data: Dict[str, Any]) -> Dict[str, Any]:
    table = resolve_table(resource)
    item_id = data.get("id")
    if not item_id:
        raise BadRequestError("ID required for update")

    updates = strip_protected(data, extra=("user_id", "shop_id"))
    if table == "shop_products":
        for field in NUMERIC_PRODUCT_FIELDS:
            if field in updates:
                updates[field] = _number(updates[field])
    updates["updated_at"] = utcnow()

    collection = get_collection(table)
    query = _scope(user_id, shop_id)
    query["_id"] = item_id
    result = await collection.update_one(query, {"$set": updates})
    if result.matched_count == 0:
        raise ResourceNotFoundError(f"{ITEM_LABELS.get(table, 'Item')} not found")

    doc = await collection.find_one({"_id": item_id})
    if table == "shop_products":
        await emit_event(EVENT_TYPES["PRODUCT_UPDATED"], user_id, {
            "product_id": item_id,
            "changed_fields": sorted(updates),
            "shop_id": shop_id,
            "source": "offline",
        })
    return serialize_doc(doc)


async def delete_items(user_id: str, resource: str, shop_id: Optional[str], data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Deletes by body `id`, or by `ids[]` for products.
    Products are moved to shop_trash for TRASH_RETENTION_DAYS.

    Returns:
        {"deleted": [...ids], "failed": [...ids]}
    """
    table = resolve_table(resource)
    ids = data.get("ids") if table == "shop_products" else None
    if not ids:
        ids = [data["id"]] if data.get("id") else []
    if not ids:
        raise BadRequestError("ID required for delete")

    collection = get_collection(table)
    deleted: List[str] = []
    failed: List[str] = []

    with LogContext(user_id=user_id, shop_id=shop_id):
        for item_id in ids:
            query = _scope(user_id, shop_id)
            query["_id"] = item_id
            doc = await collection.find_one(query)
            if not doc:
                failed.append(item_id)
                continue

            if table == "shop_products":
                deleted_at = utcnow()
                await get_shop_trash_collection().insert_one({
                    "_id": new_id(),
                    "user_id": user_id,
                    "shop_id": doc.get("shop_id"),
                    "original_table": table,
                    "original_id": item_id,
                    "data": doc,
                    "deleted_at": deleted_at,
                    "expires_at": deleted_at + timedelta(days=TRASH_RETENTION_DAYS),
                })

            await collection.delete_one({"_id": item_id})
            deleted.append(item_id)

        if table == "shop_products" and deleted:
            await emit_event(EVENT_TYPES["PRODUCT_DELETED"], user_id, {
                "product_ids": deleted,
                "shop_id": shop_id,
                "source": "offline",
            })
        logger.info(f"🗑️ Deleted {len(deleted)} {_resource_for(table)} (failed: {len(failed)})")

    if len(ids) == 1 and failed:
        raise ResourceNotFoundError(f"{ITEM_LABELS.get(table, 'Item')} not found")
    return {"deleted": deleted, "failed": failed}


async def cleanup_trash() -> Dict[str, Any]:
    """
    Purges trashed products past their retention window.
    Rows without expires_at fall back to deleted_at.
    """
    now = utcnow()
    result = await get_shop_trash_collection().delete_many({"$or": [
        {"expires_at": {"$lte": now}},
        {"expires_at": None, "deleted_at": {"$lte": now - timedelta(days=TRASH_RETENTION_DAYS)}},
    ]})
    logger.info(f"🧹 Trash cleanup removed {result.deleted_count} items")
    return {"success": True, "deleted": result.deleted_count}


# ============================================================
# SALES
# ============================================================

def calculate_sale_totals(items: List[Dict[str, Any]], discount: Any = 0, tax: Any = 0, paid_amount: Any = None) -> Dict[str, Any]:
    """
    Pure totals for a sale. A missing paid amount means paid in full.
    """
    subtotal = sum(_number(item.get("total")) for item in items)
    total_cost = sum(_number(item.get("purchase_price")) * _number(item.get("quantity")) for item in items)
    discount = _number(discount)
    tax = _number(tax)
    total = subtotal - discount + tax
    paid = total if paid_amount in (None, "") else _number(paid_amount)
    due = total - paid

    return {
        "subtotal": subtotal,
        "discount": discount,
        "tax": tax,
        "total": total,
        "total_cost": total_cost,
        "total_profit": total - total_cost,
        "paid_amount": paid,
        "due_amount": due,
        "payment_status": "partial" if due > 0 else "paid",
    }


async def next_invoice_number(user_id: str) -> str:
    """
    Advances the per-user invoice counter in shop_settings.
    The counter starts from the number of sales already stored.
    """
    settings_collection = get_shop_settings_collection()
    current = await settings_collection.find_one({"user_id": user_id}, {"invoice_counter": 1})
    if not current or current.get("invoice_counter") is None:
        existing = await get_collection("shop_sales").count_documents({"user_id": user_id})
        await settings_collection.update_one(
            {"user_id": user_id},
            {"$max": {"invoice_counter": existing}, "$setOnInsert": {"_id": new_id(), "created_at": utcnow()}},
            upsert=True,
        )

    doc = await settings_collection.find_one_and_update(
        {"user_id": user_id},
        {"$inc": {"invoice_counter": 1}},
        projection={"invoice_prefix": 1, "invoice_counter": 1},
        return_document=ReturnDocument.AFTER,
    )
    prefix = doc.get("invoice_prefix") or DEFAULT_INVOICE_PREFIX
    return f"{prefix}-{doc['invoice_counter']:06d}"


async def create_sale(user_id: str, shop_id: Optional[str], data: Dict[str, Any]) -> Dict[str, Any]:
    items = data.get("items") or []
    if not isinstance(items, list) or not items:
        raise BadRequestError("At least one item is required")

    totals = calculate_sale_totals(items, data.get("discount"), data.get("tax"), data.get("paid_amount"))
    now = utcnow()

    sale = {
        "_id": str(data["id"]) if data.get("id") else new_id(),
        "user_id": user_id,
        "shop_id": shop_id,
        "invoice_number": await next_invoice_number(user_id),
        "customer_id": data.get("customer_id"),
        "customer_name": data.get("customer_name"),
        "customer_phone": data.get("customer_phone"),
        "items": [
            {
                "product_id": item.get("product_id"),
                "product_name": item.get("product_name"),
                "quantity": _number(item.get("quantity")),
                "unit_price": _number(item.get("unit_price")),
                "purchase_price": _number(item.get("purchase_price")),
                "total": _number(item.get("total")),
                "profit": _number(item.get("total")) - _number(item.get("purchase_price")) * _number(item.get("quantity")),
            }
            for item in items
        ],
        "payment_method": data.get("payment_method") or "cash",
        "notes": data.get("notes"),
        "sale_date": _parse_date(data.get("sale_date"), "sale_date") or now,
        "created_at": now,
        "updated_at": now,
    }
    sale.update(totals)

    with LogContext(user_id=user_id, shop_id=shop_id):
        await get_collection("shop_sales").insert_one(sale)

        products = get_collection("shop_products")
        for item in sale["items"]:
            if not item["product_id"]:
                continue
            product = await products.find_one({"_id": item["product_id"], "user_id": user_id}, {"stock_quantity": 1})
            if not product:
                continue
            new_stock = max(0, _number(product.get("stock_quantity")) - item["quantity"])
            await products.update_one(
                {"_id": item["product_id"]},
                {"$set": {"stock_quantity": new_stock, "updated_at": now}}
            )

        logger.info(f"🧾 Sale {sale['invoice_number']} recorded: total={totals['total']}")

        await emit_event(EVENT_TYPES["ORDER_CREATED"], user_id, {
            "sale_id": sale["_id"],
            "invoice_number": sale["invoice_number"],
            "total": totals["total"],
            "items_count": len(sale["items"]),
            "shop_id": shop_id,
            "source": "offline",
        })

    return serialize_doc(sale)


async def list_sales(
    user_id: str,
    shop_id: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    customer_id: Optional[str] = None,
    payment_status: Optional[str] = None,
) -> List[Dict[str, Any]]:
    query = _scope(user_id, shop_id)

    date_range: Dict[str, Any] = {}
    start = _parse_date(start_date, "start_date")
    if start:
        date_range["$gte"] = start
    end = _parse_date(end_date, "end_date")
    if end:
        # a plain date includes the whole day
        if len(end_date.strip()) == 10:
            end = end + timedelta(days=1) - timedelta(microseconds=1)
        date_range["$lte"] = end
    if date_range:
        query["sale_date"] = date_range
    if customer_id:
        query["customer_id"] = customer_id
    if payment_status:
        query["payment_status"] = payment_status

    docs = await (
        get_collection("shop_sales")
        .find(query)
        .sort("sale_date", -1)
        .to_list(length=None)
    )
    return serialize_docs(docs)


# ============================================================
# DASHBOARD
# ============================================================

async def get_dashboard(user_id: str, shop_id: Optional[str] = None) -> Dict[str, Any]:
    scope = _scope(user_id, shop_id)
    today = utcnow().replace(hour=0, minute=0, second=0, microsecond=0)

    sales = await get_collection("shop_sales").find(
        scope, {"total": 1, "total_profit": 1, "due_amount": 1, "sale_date": 1}
    ).to_list(length=None)
    expenses = await get_collection("shop_expenses").find(scope, {"amount": 1}).to_list(length=None)

    low_stock_query = dict(scope)
    low_stock_query.update({"is_active": True, "$expr": {"$lte": ["$stock_quantity", "$min_stock_alert"]}})
    low_stock = await get_collection("shop_products").count_documents(low_stock_query)

    today_sales = [s for s in sales if s.get("sale_date") and s["sale_date"] >= today]
    total_expenses = sum(_number(e.get("amount")) for e in expenses)
    gross_profit = sum(_number(s.get("total_profit")) for s in sales)

    return {
        "today_sales": sum(_number(s.get("total")) for s in today_sales),
        "today_sales_count": len(today_sales),
        "total_sales": sum(_number(s.get("total")) for s in sales),
        "total_expenses": total_expenses,
        "gross_profit": gross_profit,
        "net_profit": gross_profit - total_expenses,
        "low_stock_count": low_stock,
        "customer_dues": sum(_number(s.get("due_amount")) for s in sales if _number(s.get("due_amount")) > 0),
    }


# ============================================================
# SYNC SUPPORT
# ============================================================

async def apply_operation(user_id: str, shop_id: Optional[str], table: str, operation: str, data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Applies one queued offline change.
    """
    resolve_table(table)
    if operation == "create":
        return await create_item(user_id, table, shop_id, data)
    if operation == "update":
        return await update_item(user_id, table, shop_id, data)
    if operation == "delete":
        return await delete_items(user_id, table, shop_id, data)
    raise BadRequestError(f"Unknown operation: {operation}")


async def changed_since(user_id: str, shop_id: Optional[str], since=None) -> Dict[str, List[Dict[str, Any]]]:
    """
    Every shop table's rows updated after `since` (all rows when None).
    """
    pulled: Dict[str, List[Dict[str, Any]]] = {}
    for resource, table in TABLES.items():
        query = _scope(user_id, shop_id)
        if since:
            query["updated_at"] = {"$gt": since}
        docs = await get_collection(table).find(query).to_list(length=None)
        pulled[resource] = serialize_docs(docs)
    return pulled

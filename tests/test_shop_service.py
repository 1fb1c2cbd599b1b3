from datetime import datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest

from app.core.exceptions import BadRequestError, ForbiddenError, ResourceNotFoundError
from app.services import shop_service
from app.services.shop_service import (
    ean13_check_digit,
    generate_barcode,
    calculate_sale_totals,
    resolve_table,
)


def _patch_collections(mapping):
    return patch.object(shop_service, "get_collection", side_effect=lambda name: mapping[name])


def test_ean13_check_digit_known_code():
    # 4006381333931 is a published EAN-13 example
    assert ean13_check_digit("400638133393") == 1


def test_generate_barcode_layout():
    barcode = generate_barcode("shop-ab12", 7)
    assert len(barcode) == 13
    assert barcode.startswith("890")
    assert barcode[3:7] == "0012"
    assert barcode[7:12] == "00007"
    assert int(barcode[-1]) == ean13_check_digit(barcode[:12])


def test_generate_barcode_sequence_wraps():
    assert generate_barcode("1234", 100001)[7:12] == "00001"


def test_resolve_table():
    assert resolve_table("products") == "shop_products"
    assert resolve_table("shop_sales") == "shop_sales"
    with pytest.raises(BadRequestError):
        resolve_table("users")


def test_sale_totals_with_partial_payment():
    items = [
        {"quantity": 2, "unit_price": 50, "purchase_price": 30, "total": 100},
        {"quantity": 1, "unit_price": 20, "purchase_price": 10, "total": 20},
    ]
    totals = calculate_sale_totals(items, discount=10, tax=5, paid_amount=100)
    assert totals["subtotal"] == 120
    assert totals["total"] == 115
    assert totals["total_cost"] == 70
    assert totals["total_profit"] == 45
    assert totals["due_amount"] == 15
    assert totals["payment_status"] == "partial"


def test_sale_totals_default_to_paid_in_full():
    totals = calculate_sale_totals([{"quantity": "3", "purchase_price": "2", "total": "9"}], paid_amount="")
    assert totals["paid_amount"] == 9
    assert totals["due_amount"] == 0
    assert totals["payment_status"] == "paid"


async def test_create_sale_decrements_stock_with_floor(make_collection):
    sales = make_collection(count=4)
    products = make_collection(find_one={"_id": "p1", "stock_quantity": 1})
    shop_settings = make_collection(find_one={"invoice_prefix": "SHOP", "invoice_counter": 4})
    shop_settings.find_one_and_update = AsyncMock(return_value={"invoice_prefix": "SHOP", "invoice_counter": 5})
    emit = AsyncMock()

    with _patch_collections({"shop_sales": sales, "shop_products": products}), \
         patch.object(shop_service, "get_shop_settings_collection", return_value=shop_settings), \
         patch.object(shop_service, "emit_event", emit):
        sale = await shop_service.create_sale("user-1", "shop-1", {
            "items": [{"product_id": "p1", "quantity": 3, "unit_price": 10, "purchase_price": 6, "total": 30}],
        })

    assert sale["invoice_number"] == "SHOP-000005"
    assert sale["total"] == 30
    assert sale["items"][0]["profit"] == 12
    products.update_one.assert_awaited_once()
    assert products.update_one.call_args.args[1]["$set"]["stock_quantity"] == 0
    assert emit.call_args.args[0] == "order.created"
    assert emit.call_args.args[2]["source"] == "offline"


async def test_create_sale_requires_items():
    with pytest.raises(BadRequestError):
        await shop_service.create_sale("user-1", None, {"items": []})


async def test_create_product_assigns_barcode_and_keeps_client_id(make_collection):
    products = make_collection(count=2)
    emit = AsyncMock()

    with _patch_collections({"shop_products": products}), patch.object(shop_service, "emit_event", emit):
        item = await shop_service.create_item("user-1", "products", "0042", {
            "id": "client-uuid",
            "name": "Tea",
            "purchase_price": "12.5",
            "user_id": "someone-else",
        })

    assert item["id"] == "client-uuid"
    assert item["user_id"] == "user-1"
    assert item["purchase_price"] == 12.5
    assert item["average_cost"] == 12.5
    assert item["barcode"] == generate_barcode("0042", 3)
    emit.assert_awaited_once()


async def test_create_expense_rejects_bad_date(make_collection):
    with _patch_collections({"shop_expenses": make_collection()}), pytest.raises(BadRequestError):
        await shop_service.create_item("user-1", "expenses", None, {"amount": 5, "expense_date": "yesterday"})


async def test_delete_single_missing_item_is_not_found(make_collection):
    categories = make_collection(find_one=None)
    with _patch_collections({"shop_categories": categories}), pytest.raises(ResourceNotFoundError) as exc:
        await shop_service.delete_items("user-1", "categories", None, {"id": "c1"})
    assert exc.value.message == "Category not found"


async def test_delete_products_moves_to_trash(make_collection):
    products = make_collection()
    products.find_one = AsyncMock(side_effect=[{"_id": "p1", "shop_id": "s1"}, None])
    trash = make_collection()

    with _patch_collections({"shop_products": products}), \
         patch.object(shop_service, "get_shop_trash_collection", return_value=trash), \
         patch.object(shop_service, "emit_event", AsyncMock()):
        result = await shop_service.delete_items("user-1", "products", None, {"ids": ["p1", "p2"]})

    assert result == {"deleted": ["p1"], "failed": ["p2"]}
    trashed = trash.insert_one.call_args.args[0]
    assert trashed["original_id"] == "p1"
    assert trashed["expires_at"] - trashed["deleted_at"] == timedelta(days=7)
    trashed = trash.insert_one.call_args.args[0]
    assert trashed["expires_at"] - trashed["deleted_at"] == timedelta(days=7)


async def test_create_shop_at_plan_limit_is_forbidden(make_collection):
    users = make_collection(find_one={"_id": "user-1", "subscription_plan": "starter"})
    plans = make_collection(find_one={"_id": "starter", "name": "Starter", "max_shops": 1})
    shops = make_collection(count=1)

    with patch.object(shop_service, "get_users_collection", return_value=users), \
         _patch_collections({"pricing_plans": plans}), \
         patch.object(shop_service, "get_shops_collection", return_value=shops):
        with pytest.raises(ForbiddenError) as exc:
            await shop_service.create_shop("user-1", {"name": "Second"})

    assert exc.value.details["max_shops"] == 1
    shops.insert_one.assert_not_awaited()


async def test_list_shops_creates_default_shop(make_collection):
    shops = make_collection(find_docs=[])
    with patch.object(shop_service, "get_shops_collection", return_value=shops), \
         patch.object(shop_service, "get_users_collection", return_value=make_collection()), \
         _patch_collections({"pricing_plans": make_collection()}):
        result = await shop_service.list_shops("user-1")

    assert [s["name"] for s in result["shops"]] == ["My Shop"]
    assert result["limits"] == {"max_shops": 1, "current_shop_count": 1, "can_create_more": False, "plan_name": "none"}


async def test_apply_operation_rejects_unknown_table():
    with pytest.raises(BadRequestError):
        await shop_service.apply_operation("user-1", None, "users", "create", {})


async def test_invoice_counter_seeded_from_existing_sales(make_collection):
    shop_settings = make_collection(find_one={"_id": "s1", "invoice_prefix": None})
    shop_settings.find_one_and_update = AsyncMock(return_value={"invoice_prefix": None, "invoice_counter": 13})
    sales = make_collection(count=12)

    with _patch_collections({"shop_sales": sales}), \
         patch.object(shop_service, "get_shop_settings_collection", return_value=shop_settings):
        number = await shop_service.next_invoice_number("user-1")

    assert number == "INV-000013"
    seed = shop_settings.update_one.call_args
    assert seed.args[1]["$max"] == {"invoice_counter": 12}
    assert seed.kwargs["upsert"] is True
    assert shop_settings.find_one_and_update.call_args.args[1] == {"$inc": {"invoice_counter": 1}}


async def test_invoice_counter_not_reseeded_after_deletes(make_collection):
    shop_settings = make_collection(find_one={"invoice_counter": 9})
    shop_settings.find_one_and_update = AsyncMock(return_value={"invoice_prefix": "POS", "invoice_counter": 10})
    sales = make_collection(count=3)

    with _patch_collections({"shop_sales": sales}), \
         patch.object(shop_service, "get_shop_settings_collection", return_value=shop_settings):
        number = await shop_service.next_invoice_number("user-1")

    assert number == "POS-000010"
    sales.count_documents.assert_not_awaited()
    shop_settings.update_one.assert_not_awaited()


async def test_cleanup_trash_removes_expired_rows(make_collection):
    trash = make_collection()
    trash.delete_many.return_value.deleted_count = 4

    with patch.object(shop_service, "get_shop_trash_collection", return_value=trash):
        result = await shop_service.cleanup_trash()

    assert result == {"success": True, "deleted": 4}
    expired, legacy = trash.delete_many.call_args.args[0]["$or"]
    assert "$lte" in expired["expires_at"]
    assert legacy["expires_at"] is None
    assert expired["expires_at"]["$lte"] - legacy["deleted_at"]["$lte"] == timedelta(days=7)


async def test_list_sales_end_date_covers_whole_day(make_collection):
    sales = make_collection(find_docs=[{"_id": "sale-1", "total": 10}])

    with _patch_collections({"shop_sales": sales}):
        result = await shop_service.list_sales(
            "user-1", shop_id="shop-1", start_date="2024-05-01", end_date="2024-05-03", payment_status="partial"
        )

    query = sales.find.call_args.args[0]
    assert query["shop_id"] == "shop-1"
    assert query["payment_status"] == "partial"
    assert query["sale_date"]["$gte"] == datetime(2024, 5, 1)
    assert query["sale_date"]["$lte"] == datetime(2024, 5, 3, 23, 59, 59, 999999)
    assert result == [{"id": "sale-1", "total": 10}]


async def test_list_sales_rejects_bad_date():
    with pytest.raises(BadRequestError):
        await shop_service.list_sales("user-1", start_date="last tuesday")


async def test_dashboard_figures(make_collection):
    now = datetime.utcnow()
    sales = make_collection(find_docs=[
        {"total": 100, "total_profit": 30, "due_amount": 20, "sale_date": now},
        {"total": 50, "total_profit": 10, "due_amount": 0, "sale_date": now - timedelta(days=3)},
    ])
    expenses = make_collection(find_docs=[{"amount": 15}, {"amount": "5"}])
    products = make_collection(count=2)

    with _patch_collections({"shop_sales": sales, "shop_expenses": expenses, "shop_products": products}):
        result = await shop_service.get_dashboard("user-1")

    assert result == {
        "today_sales": 100,
        "today_sales_count": 1,
        "total_sales": 150,
        "total_expenses": 20,
        "gross_profit": 40,
        "net_profit": 20,
        "low_stock_count": 2,
        "customer_dues": 20,
    }
    low_stock_query = products.count_documents.call_args.args[0]
    assert low_stock_query["$expr"] == {"$lte": ["$stock_quantity", "$min_stock_alert"]}

"""
app/db/indexes.py

Purpose: Database index management

- Creates unique and performance indexes
- Ensures fast lookups and data integrity
- TTL indexes for OTPs, rate-limit records and shop trash
"""

from app.db.mongo import get_collection
from app.core.logging import get_logger

logger = get_logger(__name__)

SHOP_COLLECTIONS = (
    "shop_products",
    "shop_categories",
    "shop_customers",
    "shop_suppliers",
    "shop_expenses",
    "shop_sales",
)


async def create_indexes():
    """
    Creates all necessary database indexes.
    This function is idempotent - safe to run multiple times.
    """
    try:
        logger.info("Creating database indexes...")

        # ==============================================
        # ACCOUNTS
        # ==============================================
        users = get_collection("users")
        await users.create_index("email", unique=True, name="email_unique")
        await users.create_index("phone", sparse=True, name="phone_idx")
        await users.create_index(
            [("subscription_plan", 1), ("is_trial_active", 1), ("trial_end_date", 1)],
            name="trial_expiry_idx"
        )
        await users.create_index("subscription_ends_at", sparse=True, name="subscription_end_idx")
        logger.debug("Created indexes on users")

        await get_collection("user_roles").create_index(
            [("user_id", 1), ("role", 1)], unique=True, name="user_role_unique"
        )
        await get_collection("email_usage_history").create_index("email", name="history_email_idx")

        # OTP rows vanish after an hour even if never used
        otps = get_collection("verification_otps")
        await otps.create_index([("user_id", 1), ("type", 1)], name="otp_user_type_idx")
        await otps.create_index("created_at", expireAfterSeconds=3600, name="otp_ttl_idx")

        deletion_otps = get_collection("account_deletion_otps")
        await deletion_otps.create_index("user_id", name="deletion_user_idx")
        await deletion_otps.create_index("expires_at", expireAfterSeconds=0, name="deletion_ttl_idx")

        attempts = get_collection("login_attempts")
        await attempts.create_index(
            [("identifier", 1), ("identifier_type", 1)], unique=True, name="attempt_identifier_unique"
        )
        await attempts.create_index("expires_at", expireAfterSeconds=0, name="attempt_ttl_idx")

        signups = get_collection("signup_rate_limits")
        await signups.create_index([("ip_address", 1), ("created_at", -1)], name="signup_ip_idx")
        await signups.create_index("created_at", expireAfterSeconds=86400, name="signup_ttl_idx")
        logger.debug("Created indexes on auth collections")

        # ==============================================
        # BILLING / NOTIFICATIONS
        # ==============================================
        await get_collection("payment_requests").create_index(
            [("user_id", 1), ("status", 1), ("plan_id", 1)], name="payment_user_status_idx"
        )
        await get_collection("payment_requests").create_index("transaction_id", name="payment_txn_idx")
        await get_collection("subscriptions").create_index("user_id", unique=True, name="subscription_user_unique")
        await get_collection("subscription_reminders").create_index(
            [("user_id", 1), ("reminder_type", 1)], name="reminder_user_type_idx"
        )
        await get_collection("notifications").create_index(
            [("user_id", 1), ("created_at", -1)], name="notification_user_idx"
        )
        logger.debug("Created indexes on billing collections")

        # ==============================================
        # AUTOMATION / EVENTS
        # ==============================================
        accounts = get_collection("connected_accounts")
        await accounts.create_index(
            [("platform", 1), ("external_id", 1)], name="account_platform_external_idx"
        )
        await accounts.create_index(
            [("user_id", 1), ("platform", 1), ("external_id", 1)], unique=True, name="account_owner_unique"
        )
        await get_collection("automations").create_index(
            [("user_id", 1), ("account_id", 1)], name="automation_owner_idx"
        )
        await get_collection("execution_logs").create_index(
            [("user_id", 1), ("created_at", -1)], name="execution_user_idx"
        )
        await get_collection("outgoing_events").create_index(
            [("status", 1), ("created_at", 1)], name="event_status_idx"
        )
        logger.debug("Created indexes on automation collections")

        # ==============================================
        # CMS
        # ==============================================
        await get_collection("blog_posts").create_index("slug", name="post_slug_idx")
        await get_collection("cms_pages").create_index("slug", name="page_slug_idx")
        await get_collection("pricing_plans").create_index("display_order", name="plan_order_idx")

        # ==============================================
        # OFFLINE SHOP
        # ==============================================
        await get_collection("shops").create_index([("user_id", 1), ("is_active", 1)], name="shop_owner_idx")
        await get_collection("sync_settings").create_index("user_id", unique=True, name="sync_user_unique")
        await get_collection("shop_settings").create_index("user_id", unique=True, name="shop_settings_user_unique")
        await get_collection("shop_trash").create_index("user_id", name="trash_user_idx")
        await get_collection("shop_trash").create_index("expires_at", expireAfterSeconds=0, name="trash_ttl_idx")
        for name in SHOP_COLLECTIONS:
            collection = get_collection(name)
            await collection.create_index([("user_id", 1), ("shop_id", 1)], name=f"{name}_owner_idx")
            await collection.create_index([("user_id", 1), ("updated_at", 1)], name=f"{name}_updated_idx")
        await get_collection("shop_products").create_index("barcode", sparse=True, name="shop_product_barcode_idx")

        logger.info("✅ All database indexes created successfully")

    except Exception as e:
        logger.error(f"Failed to create indexes: {str(e)}", exc_info=True)
        raise


if __name__ == "__main__":
    """
    Run this script directly to create indexes manually.
    """
    import asyncio
    from app.db.mongo import connect_to_mongo, close_mongo_connection

    async def main():
        await connect_to_mongo()
        await create_indexes()
        await close_mongo_connection()

    asyncio.run(main())

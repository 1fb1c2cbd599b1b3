"""
app/db/mongo.py

Purpose: MongoDB connection setup

- Initializes Motor client with connection pooling
- One getter per collection (users, OTPs, events, shop data, CMS...)
- Health checks and retry logic
- Proper connection lifecycle management
"""

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase, AsyncIOMotorCollection
from pymongo.errors import ConnectionFailure, ServerSelectionTimeoutError
from typing import Optional
import asyncio
from app.core.config import settings
from app.core.logging import get_logger


logger = get_logger(__name__)

# Global MongoDB client
_client: Optional[AsyncIOMotorClient] = None
_database: Optional[AsyncIOMotorDatabase] = None


async def connect_to_mongo():
    """
    Establishes connection to MongoDB with retry logic.
    Called during application startup.
    """
    global _client, _database

    if _client is not None:
        logger.warning("MongoDB client already initialized")
        return

    max_retries = 3
    retry_delay = 2

    for attempt in range(1, max_retries + 1):
        try:
            logger.info(
                f"Attempting to connect to MongoDB (attempt {attempt}/{max_retries})"
            )

            _client = AsyncIOMotorClient(
                settings.MONGODB_URL,
                maxPoolSize=50,
                minPoolSize=5,
                serverSelectionTimeoutMS=5000,
                connectTimeoutMS=10000,
                retryWrites=True,
                retryReads=True,
                tz_aware=False,
            )
            _database = _client[settings.MONGODB_DB_NAME]

            await _client.admin.command("ping")

            logger.info(f"✅ Successfully connected to MongoDB: {settings.MONGODB_DB_NAME}")
            return

        except (ConnectionFailure, ServerSelectionTimeoutError) as e:
            logger.error(
                f"Failed to connect to MongoDB (attempt {attempt}/{max_retries}): {e}"
            )
            _client = None
            _database = None

            if attempt < max_retries:
                logger.info(f"Retrying in {retry_delay} seconds...")
                await asyncio.sleep(retry_delay)
                retry_delay *= 2  # Exponential backoff
            else:
                logger.critical("Failed to connect to MongoDB after all retries")
                raise ConnectionError("Could not establish MongoDB connection") from e


async def close_mongo_connection():
    """
    Closes the MongoDB connection.
    Called during application shutdown.
    """
    global _client, _database

    if _client:
        logger.info("Closing MongoDB connection")
        _client.close()
        _client = None
        _database = None
        logger.info("MongoDB connection closed")


async def check_database_health() -> bool:
    """
    Checks if the database connection is healthy.
    """
    try:
        if _client is None:
            logger.error("MongoDB client not initialized")
            return False

        await _client.admin.command("ping")
        return True

    except Exception as e:
        logger.error(f"Database health check failed: {str(e)}")
        return False


def get_collection(name: str) -> AsyncIOMotorCollection:
    """
    Returns a collection by name.

    Raises:
        RuntimeError: If database is not initialized
    """
    if _database is None:
        raise RuntimeError(
            "Database not initialized. Call connect_to_mongo() during startup."
        )
    return _database[name]


# ---- accounts ----

def get_users_collection():
    """
    Users.

    Fields: _id, email, password_hash, phone, display_name, avatar_url,
    subscription_plan, is_trial_active, trial_started_at, trial_end_date,
    has_used_trial, subscription_started_at, subscription_ends_at,
    email_verified, phone_verified, status, can_sync_business,
    created_at, updated_at
    """
    return get_collection("users")


def get_user_roles_collection():
    return get_collection("user_roles")


def get_email_usage_history_collection():
    """Outlives account deletion so a deleted email cannot re-earn a trial."""
    return get_collection("email_usage_history")


def get_verification_otps_collection():
    return get_collection("verification_otps")


def get_account_deletion_otps_collection():
    return get_collection("account_deletion_otps")


def get_login_attempts_collection():
    return get_collection("login_attempts")


def get_signup_rate_limits_collection():
    return get_collection("signup_rate_limits")


# ---- billing ----

def get_payment_requests_collection():
    return get_collection("payment_requests")


def get_subscriptions_collection():
    return get_collection("subscriptions")


def get_subscription_reminders_collection():
    return get_collection("subscription_reminders")


def get_notifications_collection():
    return get_collection("notifications")


# ---- automation / integrations ----

def get_connected_accounts_collection():
    return get_collection("connected_accounts")


def get_automations_collection():
    return get_collection("automations")


def get_execution_logs_collection():
    return get_collection("execution_logs")


def get_outgoing_events_collection():
    return get_collection("outgoing_events")


def get_webhook_configs_collection():
    return get_collection("webhook_configs")


# ---- site / cms ----

def get_site_settings_collection():
    return get_collection("site_settings")


def get_seo_settings_collection():
    return get_collection("seo_settings")


def get_blog_posts_collection():
    return get_collection("blog_posts")


def get_cms_pages_collection():
    return get_collection("cms_pages")


# ---- offline shop ----

def get_shops_collection():
    return get_collection("shops")


def get_shop_settings_collection():
    return get_collection("shop_settings")


def get_sync_settings_collection():
    return get_collection("sync_settings")


def get_shop_trash_collection():
    return get_collection("shop_trash")

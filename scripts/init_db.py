"""
Database initialization script

Run once (or after schema changes) to create indexes and seed singletons:
    python scripts/init_db.py
    python scripts/init_db.py --admin-email owner@example.com
"""

import argparse
import asyncio
import sys
from pathlib import Path
from dotenv import load_dotenv

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Load environment variables
load_dotenv()

from app.core.logging import setup_logging, get_logger
from app.db.mongo import connect_to_mongo, close_mongo_connection, get_collection
from app.db.indexes import create_indexes
from app.services.event_service import CENTRAL_WEBHOOK_ID
from utils.constants import SITE_SETTINGS_ID, DEFAULT_COMPANY_NAME, ROLE_ADMIN
from utils.doc_utils import new_id
from utils.time_utils import utcnow

setup_logging()
logger = get_logger("scripts.init_db")


async def seed_singletons():
    """Site settings and the central webhook config, only if missing."""
    now = utcnow()

    result = await get_collection("site_settings").update_one(
        {"_id": SITE_SETTINGS_ID},
        {"$setOnInsert": {"company_name": DEFAULT_COMPANY_NAME, "created_at": now, "updated_at": now}},
        upsert=True,
    )
    logger.info("  ✅ Site settings created" if result.upserted_id else "  ℹ️  Site settings already exist")

    result = await get_collection("webhook_configs").update_one(
        {"_id": CENTRAL_WEBHOOK_ID},
        {"$setOnInsert": {"url": None, "secret": None, "is_active": False, "created_at": now}},
        upsert=True,
    )
    logger.info(
        "  ✅ Central webhook config created (set url/secret and is_active to enable)"
        if result.upserted_id else "  ℹ️  Central webhook config already exists"
    )


async def grant_admin(email: str):
    user = await get_collection("users").find_one({"email": email.strip().lower()}, {"_id": 1})
    if not user:
        logger.error(f"❌ No user with email {email}")
        return

    await get_collection("user_roles").update_one(
        {"user_id": user["_id"], "role": ROLE_ADMIN},
        {"$setOnInsert": {"_id": new_id(), "created_at": utcnow()}},
        upsert=True,
    )
    logger.info(f"  ✅ Admin role granted to {email}")


async def main(admin_email=None):
    logger.info("=" * 60)
    logger.info("  AutoFloy Database Setup")
    logger.info("=" * 60)

    await connect_to_mongo()
    try:
        await create_indexes()
        await seed_singletons()
        if admin_email:
            await grant_admin(admin_email)

        logger.info("✅ Database initialization complete!")
    finally:
        await close_mongo_connection()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create indexes and seed AutoFloy defaults")
    parser.add_argument("--admin-email", help="Grant the admin role to this existing user")
    args = parser.parse_args()
    asyncio.run(main(args.admin_email))

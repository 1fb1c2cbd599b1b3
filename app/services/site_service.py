"""
app/services/site_service.py

Purpose: Public site artifacts and global settings

- Site settings singleton (read / admin upsert)
- robots.txt from SEO settings with a safe default
- sitemap.xml from static routes, blog posts and CMS pages
- Client app version manifest
"""

from datetime import datetime
from typing import Dict, Any, Optional, List, Tuple
from xml.sax.saxutils import escape

from pymongo.errors import PyMongoError

from app.core.config import settings
from app.core.exceptions import ResourceNotFoundError
from app.core.logging import get_logger
from app.db.mongo import (
    get_site_settings_collection,
    get_seo_settings_collection,
    get_blog_posts_collection,
    get_cms_pages_collection,
)
from app.services.event_service import emit_event, EVENT_TYPES
from utils.constants import SITE_SETTINGS_ID, DEFAULT_COMPANY_NAME
from utils.doc_utils import serialize_doc, strip_protected
from utils.time_utils import utcnow

logger = get_logger(__name__)

# (path, priority, changefreq)
STATIC_ROUTES: List[Tuple[str, float, str]] = [
    ("/", 1.0, "daily"),
    ("/about", 0.8, "monthly"),
    ("/pricing", 0.9, "weekly"),
    ("/contact", 0.7, "monthly"),
    ("/blog", 0.8, "daily"),
    ("/features", 0.8, "weekly"),
    ("/help", 0.6, "weekly"),
    ("/documentation", 0.7, "weekly"),
    ("/privacy-policy", 0.3, "yearly"),
    ("/terms-of-service", 0.3, "yearly"),
    ("/gdpr", 0.3, "yearly"),
    ("/cookie-policy", 0.3, "yearly"),
    ("/careers", 0.5, "monthly"),
]


def sitemap_url() -> str:
    return f"{settings.SITE_URL.rstrip('/')}/sitemap.xml"


def default_robots_txt() -> str:
    lines = []
    for agent in ("Googlebot", "Bingbot", "Twitterbot", "facebookexternalhit", "*"):
        lines += [f"User-agent: {agent}", "Allow: /", ""]
    lines.append("# Disallow admin and private areas")
    for path in ("/admin", "/dashboard", "/settings", "/login", "/signup"):
        lines.append(f"Disallow: {path}")
    lines += ["", f"Sitemap: {sitemap_url()}"]
    return "\n".join(lines)


# ============================================================
# SITE SETTINGS
# ============================================================

async def get_site_settings() -> Dict[str, Any]:
    doc = await get_site_settings_collection().find_one({"_id": SITE_SETTINGS_ID})
    return serialize_doc(doc) or {"id": SITE_SETTINGS_ID}


async def get_company_name() -> str:
    doc = await get_site_settings_collection().find_one({"_id": SITE_SETTINGS_ID}, {"company_name": 1})
    return (doc or {}).get("company_name") or DEFAULT_COMPANY_NAME


async def update_site_settings(data: Dict[str, Any], admin_id: Optional[str] = None) -> Dict[str, Any]:
    """
    Upserts the singleton. id / timestamps in the payload are ignored.
    """
    updates = strip_protected(data)
    now = utcnow()
    updates["updated_at"] = now

    await get_site_settings_collection().update_one(
        {"_id": SITE_SETTINGS_ID},
        {"$set": updates, "$setOnInsert": {"created_at": now}},
        upsert=True,
    )
    logger.info(f"⚙️ Site settings updated: {sorted(k for k in updates if k != 'updated_at')}")

    await emit_event(EVENT_TYPES["SITE_SETTINGS_UPDATED"], admin_id, {"changed_fields": sorted(updates)})
    return await get_site_settings()


# ============================================================
# ROBOTS / SITEMAP
# ============================================================

async def build_robots_txt() -> str:
    """
    Custom robots content from SEO settings, else the default.
    Database problems fall back to the default.
    """
    try:
        seo = await get_seo_settings_collection().find_one({})
    except PyMongoError as e:
        logger.error(f"Failed to load SEO settings for robots.txt: {e}")
        return default_robots_txt()

    custom = (seo or {}).get("robots_txt_content") or ""
    if not custom.strip():
        return default_robots_txt()

    robots = custom
    if seo.get("sitemap_enabled") is not False and "sitemap:" not in robots.lower():
        robots += f"\n\nSitemap: {sitemap_url()}"
    return robots


def _lastmod(value: Any, fallback: datetime) -> str:
    dt = value if isinstance(value, datetime) else fallback
    return dt.strftime("%Y-%m-%d")


def _url_entry(loc: str, lastmod: str, changefreq: str, priority: float) -> str:
    return (
        "  <url>\n"
        f"    <loc>{escape(loc)}</loc>\n"
        f"    <lastmod>{lastmod}</lastmod>\n"
        f"    <changefreq>{changefreq}</changefreq>\n"
        f"    <priority>{priority:.1f}</priority>\n"
        "  </url>"
    )


async def build_sitemap_xml() -> str:
    """
    Raises:
        ResourceNotFoundError: sitemap disabled in SEO settings
    """
    seo = await get_seo_settings_collection().find_one({}, {"sitemap_enabled": 1})
    if seo and seo.get("sitemap_enabled") is False:
        raise ResourceNotFoundError("Sitemap is disabled")

    base = settings.SITE_URL.rstrip("/")
    now = utcnow()
    today = _lastmod(now, now)

    entries = [_url_entry(f"{base}{path}", today, freq, priority) for path, priority, freq in STATIC_ROUTES]

    posts = await (
        get_blog_posts_collection()
        .find({"is_published": True}, {"slug": 1, "updated_at": 1, "published_at": 1})
        .sort("published_at", -1)
        .to_list(length=None)
    )
    for post in posts:
        if post.get("slug"):
            lastmod = _lastmod(post.get("updated_at") or post.get("published_at"), now)
            entries.append(_url_entry(f"{base}/blog/{post['slug']}", lastmod, "weekly", 0.7))

    pages = await get_cms_pages_collection().find({"is_published": True}, {"slug": 1, "updated_at": 1}).to_list(length=None)
    for page in pages:
        if page.get("slug"):
            entries.append(_url_entry(f"{base}/{page['slug']}", _lastmod(page.get("updated_at"), now), "monthly", 0.6))

    logger.info(f"🗺️ Generated sitemap with {len(entries)} URLs")
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">\n'
        + "\n".join(entries)
        + "\n</urlset>"
    )


def app_version() -> Dict[str, Any]:
    return {
        "version": settings.APP_VERSION,
        "build_number": settings.APP_BUILD_NUMBER,
        "timestamp": utcnow().isoformat() + "Z",
        "force_update": settings.APP_FORCE_UPDATE,
    }

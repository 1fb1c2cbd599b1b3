"""
app/api/site.py

Public site endpoints
=====================

- Site settings (public read, admin write)
- robots.txt / sitemap.xml
- Client app version manifest
"""

from fastapi import APIRouter, Body, Depends
from fastapi.responses import PlainTextResponse, Response, JSONResponse
from typing import Dict, Any

from app.api.deps import require_admin
from app.core.config import settings
from app.core.exceptions import ResourceNotFoundError
from app.services import site_service

router = APIRouter(prefix=settings.API_PREFIX, tags=["Site"])

# robots.txt / sitemap.xml are also served at the site root
seo_router = APIRouter(tags=["SEO"])

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


@router.get("/site-settings")
async def get_site_settings():
    return {"settings": await site_service.get_site_settings()}


@router.api_route("/site-settings", methods=["PUT", "PATCH"])
async def update_site_settings(body: Dict[str, Any] = Body(...), admin_id: str = Depends(require_admin)):
    return {"success": True, "settings": await site_service.update_site_settings(body, admin_id)}


@router.get("/app-version")
async def app_version():
    return JSONResponse(site_service.app_version(), headers=NO_CACHE_HEADERS)


@router.get("/robots.txt", response_class=PlainTextResponse)
@seo_router.get("/robots.txt", response_class=PlainTextResponse)
async def robots_txt():
    return PlainTextResponse(
        await site_service.build_robots_txt(),
        headers={"Cache-Control": "public, max-age=3600"},
    )


@router.get("/sitemap.xml")
@seo_router.get("/sitemap.xml")
async def sitemap_xml():
    try:
        xml = await site_service.build_sitemap_xml()
    except ResourceNotFoundError as e:
        return PlainTextResponse(e.message, status_code=404)
    return Response(
        content=xml,
        media_type="application/xml",
        headers={"Cache-Control": "public, max-age=3600"},
    )

from fastapi import APIRouter

from app.api.v1.endpoints import admin_domains, custom_domains, profiles

api_router = APIRouter()
api_router.include_router(custom_domains.router, prefix="/domains", tags=["custom-domains"])
api_router.include_router(profiles.router, prefix="/profiles", tags=["profiles"])
api_router.include_router(admin_domains.router, prefix="/admin/domains", tags=["admin"])

from fastapi import APIRouter
from app.api import auth
from app.api.admin import newsletter as admin_newsletter
from app.api.public import newsletter as public_newsletter

api_router = APIRouter()

api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(public_newsletter.router, prefix="/newsletter", tags=["newsletter"])
api_router.include_router(admin_newsletter.router, prefix="/admin/newsletter", tags=["newsletter-admin"])

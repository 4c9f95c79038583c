from fastapi import APIRouter

from citymaid.api.routes import admin, auth, contact, health, payments, posts, unlock_requests, uploads

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(posts.router, prefix="/posts", tags=["posts"])
api_router.include_router(unlock_requests.router, tags=["contact-unlock"])
api_router.include_router(payments.router, prefix="/payments", tags=["payments"])
api_router.include_router(uploads.router, prefix="/uploads", tags=["uploads"])
api_router.include_router(contact.router, prefix="/contact", tags=["contact"])
api_router.include_router(auth.router, tags=["accounts"])
api_router.include_router(admin.router, prefix="/admin", tags=["admin"])

from fastapi import APIRouter

from . import admin, auth, chat, cloudinary, gamification, push, reports


api_router = APIRouter(prefix="/api")
api_router.include_router(auth.router)
api_router.include_router(reports.router)
api_router.include_router(gamification.router)
api_router.include_router(admin.router)
api_router.include_router(chat.router)
api_router.include_router(push.router)
api_router.include_router(cloudinary.router)

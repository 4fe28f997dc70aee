"""
API routes package
"""
from fastapi import APIRouter
from iotmon.api.routes import auth, me, users, controllers, readings, audit, admin

api_router = APIRouter()

# Include all route modules
api_router.include_router(auth.router)
api_router.include_router(me.router)
api_router.include_router(users.router)
api_router.include_router(controllers.router)
api_router.include_router(readings.router)
api_router.include_router(audit.router)
api_router.include_router(admin.router)

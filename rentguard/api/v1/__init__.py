from fastapi import APIRouter

from rentguard.api.v1.routers import health, policies, review, tenant

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(tenant.router)
api_router.include_router(policies.router)
api_router.include_router(review.router)

__all__ = ["api_router"]

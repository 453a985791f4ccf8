from fastapi import APIRouter
from valence.api.v1.routes.auth import router as auth_router
from valence.api.v1.routes.bookings import router as bookings_router
from valence.api.v1.routes.payments import router as payments_router
from valence.api.v1.routes.providers import router as providers_router
from valence.api.v1.routes.services import router as services_router
from valence.api.v1.routes.webhooks import router as webhooks_router

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(auth_router)
api_router.include_router(services_router)
api_router.include_router(providers_router)
api_router.include_router(bookings_router)
api_router.include_router(payments_router)
api_router.include_router(webhooks_router)

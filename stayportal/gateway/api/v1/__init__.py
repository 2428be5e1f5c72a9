from stayportal.gateway.api.v1.admin import router as admin_router
from stayportal.gateway.api.v1.auth import router as auth_router
from stayportal.gateway.api.v1.cron import router as cron_router
from stayportal.gateway.api.v1.reservation import router as reservation_router
from stayportal.gateway.api.v1.upsells import router as upsells_router
from stayportal.gateway.api.v1.webhooks import router as webhooks_router

__all__ = ["routers"]
routers = [auth_router, reservation_router, upsells_router, webhooks_router, admin_router, cron_router]

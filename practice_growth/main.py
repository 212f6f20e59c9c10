"""FastAPI application entry point."""
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from practice_growth.core.config import settings
from practice_growth.core.exceptions import GrowthError
from practice_growth.core.structured_logging import configure_logging
from practice_growth.db.session import engine

configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

# ============================================================================
# FastAPI App
# ============================================================================

app = FastAPI(
    title="Practice Growth API",
    description="Multi-tenant referral, lead, nurture, review and campaign engine",
    version=settings.VERSION,
    docs_url="/docs" if settings.ENV == "dev" else None,
    redoc_url="/redoc" if settings.ENV == "dev" else None,
)

# CORS middleware - must be added before routers
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Organization-ID", "X-User-ID", "X-Internal-Secret"],
)


# ============================================================================
# Error Mapping
# ============================================================================

@app.exception_handler(GrowthError)
async def growth_error_handler(request: Request, exc: GrowthError):
    if exc.status_code >= 500:
        logger.error("Unhandled growth error %s on %s", exc.code, request.url.path)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# ============================================================================
# Routers
# ============================================================================

from practice_growth.routers import referrals

app.include_router(referrals.programs_router, prefix="/referral-programs", tags=["referrals"])
app.include_router(referrals.router, prefix="/referrals", tags=["referrals"])

from practice_growth.routers import leads
app.include_router(leads.router, prefix="/leads", tags=["leads"])

from practice_growth.routers import nurture
app.include_router(nurture.router, prefix="/nurture-sequences", tags=["nurture"])

from practice_growth.routers import reviews
app.include_router(reviews.router, prefix="/review-requests", tags=["reviews"])

from practice_growth.routers import campaigns, landing_pages
app.include_router(campaigns.router, prefix="/campaigns", tags=["campaigns"])
app.include_router(landing_pages.router, prefix="/landing-pages", tags=["campaigns"])

# Dashboard widgets
from practice_growth.routers import dashboard
app.include_router(dashboard.router)  # Already has /marketing prefix

# Internal endpoints (scheduled/cron driver - protected by INTERNAL_SECRET)
from practice_growth.routers import internal
app.include_router(internal.router)


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health")
def health():
    """
    Health check endpoint.

    Verifies database connectivity and returns environment info.
    """
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return {"status": "ok", "env": settings.ENV, "version": settings.VERSION}

"""
Main FastAPI Application
"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging

from agencyops.core.config import settings
from agencyops.core.database import init_db, SessionLocal
from agencyops.core.rate_limit import RateLimitMiddleware
from agencyops.api.v1 import (
    auth, agencies, products, clients, consultations, proposals, contract_templates, contracts,
    questionnaires, invoices, quotations, quotation_templates, forms, emails, public, super_admin
)
from agencyops.services.form_service import seed_field_option_sets

# Configure logging
logging.basicConfig(level=logging.DEBUG if settings.DEBUG else logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    # Startup
    logger.info("Starting up...")
    init_db()

    # Seed system option sets
    db = SessionLocal()
    try:
        seed_field_option_sets(db)
    finally:
        db.close()

    logger.info("Database initialized and option sets seeded")

    yield

    # Shutdown
    logger.info("Shutting down...")


# Create app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Rate limiting middleware (must be after CORS)
if settings.RATE_LIMIT_ENABLED:
    app.add_middleware(RateLimitMiddleware)


# Exception handlers
@app.exception_handler(PermissionError)
async def permission_error_handler(request: Request, exc: PermissionError):
    logger.info(f"Permission denied on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=403, content={"detail": str(exc) or "Permission denied"})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    content = {"detail": "An unexpected error occurred"}
    if settings.DEBUG:
        content["error"] = str(exc)
    return JSONResponse(status_code=500, content=content)


# Health check
@app.get("/health")
async def health_check():
    return {"status": "healthy", "version": settings.APP_VERSION}


# Include routers
app.include_router(auth.router, prefix="/api/v1")
app.include_router(agencies.router, prefix="/api/v1")
app.include_router(products.router, prefix="/api/v1")
app.include_router(clients.router, prefix="/api/v1")
app.include_router(consultations.router, prefix="/api/v1")
app.include_router(proposals.router, prefix="/api/v1")
app.include_router(contract_templates.router, prefix="/api/v1")
app.include_router(contracts.router, prefix="/api/v1")
app.include_router(questionnaires.router, prefix="/api/v1")
app.include_router(invoices.router, prefix="/api/v1")
app.include_router(quotations.router, prefix="/api/v1")
app.include_router(quotation_templates.router, prefix="/api/v1")
app.include_router(forms.router, prefix="/api/v1")
app.include_router(emails.router, prefix="/api/v1")
app.include_router(public.router, prefix="/api/v1")
app.include_router(super_admin.router, prefix="/api/v1")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)

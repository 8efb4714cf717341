from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from campus import __version__
from campus.api.errors import register_exception_handlers
from campus.api.middleware.rate_limit import RateLimitMiddleware
from campus.api.middleware.security_headers import SecurityHeadersMiddleware
from campus.api.routers import admin, approvals, auth, health, notifications, organizations
from campus.core.config import get_settings
from campus.core.logger import setup_logging

settings = get_settings()
setup_logging()

app = FastAPI(
    title=settings.app_name,
    description="Approval workflow and role-scoped access for campus recruitment",
    version=__version__,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.debug else settings.cors_origins_list,
    allow_credentials=not settings.debug,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RateLimitMiddleware)

register_exception_handlers(app)

# Include routers
app.include_router(auth.router, prefix="/api")
app.include_router(organizations.router, prefix="/api")
app.include_router(approvals.router, prefix="/api")
app.include_router(admin.router, prefix="/api")
app.include_router(notifications.router, prefix="/api")
app.include_router(health.router)


@app.get("/")
async def root():
    return {
        "name": settings.app_name,
        "version": __version__,
        "docs": "/docs" if settings.debug else None,
    }

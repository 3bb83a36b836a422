from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

from portal_auth.core.config import get_settings
from portal_auth.core.errors import register_exception_handlers
from portal_auth.core.logger import setup_logging
from portal_auth.db.session import SessionLocal
from portal_auth.routers.admin import router as admin_router
from portal_auth.routers.auth import router as auth_router
from portal_auth.routers.health import router as health_router
from portal_auth.sessions.identity import SqlAlchemyIdentityStore
from portal_auth.sessions.manager import SessionManager

logger = logging.getLogger(__name__)
settings = get_settings()
setup_logging(settings.LOG_LEVEL)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the session manager once per process and stop its timer on shutdown."""
    manager = SessionManager.from_settings(settings, SessionLocal)
    app.state.session_manager = manager
    app.state.identity_store = SqlAlchemyIdentityStore(SessionLocal)
    manager.start_cleanup(settings.SESSION_CLEANUP_INTERVAL_SECONDS)
    logger.info(f"Session manager started (cache={settings.SESSION_CACHE_BACKEND}, ttl={settings.SESSION_TTL_HOURS}h)")
    try:
        yield
    finally:
        await manager.shutdown()
        logger.info("Session manager stopped")


app = FastAPI(
    title=settings.APP_NAME,
    description="Session authentication for the compliance platform - login, device-bound sessions, revocation and role policy.",
    version="0.1.0",
    lifespan=lifespan,
)

register_exception_handlers(app)


# Global exception handler for unhandled errors
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected server errors with structured response."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "An unexpected error occurred. Please try again later.",
            "request_id": request.headers.get("X-Request-ID"),
        }
    )

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health_router)
app.include_router(auth_router, prefix="/api")
app.include_router(admin_router, prefix="/api")


@app.get("/")
def read_root():
    return {
        "message": "Welcome to Portal Auth API",
        "docs": "/docs",
        "health": "/health"
    }

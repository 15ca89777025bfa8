"""Purchase Approval: Main FastAPI Application.

Vendors submit purchases on behalf of children; anything over the
family's limit is held until a parent approves or declines it from a
push notification, or until the approval window lapses and it is
auto-approved.
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api import api_router, public_router
from .core import (
    async_session_factory,
    close_db,
    close_redis,
    create_redis,
    get_settings,
    init_db,
)
from .jobs import AutoApprovalScheduler
from .schemas import ErrorDetail, ErrorResponse
from .services import (
    PendingApprovalStore,
    PyWebAuthnCeremony,
    ServiceError,
    StorageConflictError,
    WebPushSender,
)

logger = logging.getLogger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    # Startup - skip init_db in production (tables already exist)
    if os.getenv("ENVIRONMENT") != "production":
        try:
            await init_db()
        except Exception as e:
            logger.warning(f"Could not initialize database: {e}")

    app.state.redis = create_redis()
    app.state.push_sender = WebPushSender.from_settings()
    app.state.webauthn = PyWebAuthnCeremony.from_settings()
    if not settings.push_enabled:
        logger.warning("VAPID keys not configured - push notifications disabled")

    auto_approval = AutoApprovalScheduler(
        async_session_factory,
        PendingApprovalStore(app.state.redis, settings.pending_ttl_seconds),
        app.state.push_sender,
    )
    auto_approval.start()
    app.state.auto_approval = auto_approval

    yield

    # Shutdown
    auto_approval.shutdown()
    await close_redis(app.state.redis)
    await close_db()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
    ## Purchase Approval API

    Parent approval for purchases children make at participating vendors.

    ### Key Features

    - **Spending Limits**: A family default plus per-vendor overrides.
    - **Push Approvals**: Parents approve or decline from a notification.
    - **Auto-Approval**: Unanswered requests are approved when the window lapses.

    ### Authentication

    Passkeys (WebAuthn). The session token is sent as an HTTP-only cookie
    or in the `Authorization: Bearer <token>` header.
    """,
    openapi_url=f"{settings.api_prefix}/openapi.json",
    docs_url=f"{settings.api_prefix}/docs",
    redoc_url=f"{settings.api_prefix}/redoc",
    lifespan=lifespan,
)

# Credentials require explicit origins, not "*"
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    max_age=86400,
)


# =============================================================================
# EXCEPTION HANDLERS
# =============================================================================


@app.exception_handler(StorageConflictError)
async def storage_conflict_handler(request: Request, exc: StorageConflictError):
    """A concurrent resolver got there first; report it as a normal outcome."""
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={"status": "already_processed", "message": exc.message},
    )


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    details = []
    if exc.field:
        details.append(ErrorDetail(field=exc.field, message=exc.message, code=exc.code))
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=exc.code, message=exc.message, details=details).model_dump(),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    details = [
        ErrorDetail(
            field=".".join(str(part) for part in err.get("loc", ())[1:]) or None,
            message=err.get("msg", "Invalid value"),
            code=err.get("type", "value_error"),
        )
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=ErrorResponse(
            error="validation_error",
            message=details[0].message if details else "Invalid request",
            details=details,
        ).model_dump(),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions without leaking internals."""
    logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(
            error="internal_error",
            message="An unexpected error occurred",
        ).model_dump(),
    )


# Health check endpoint
@app.get("/health", tags=["health"])
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": settings.app_version}


# Include API routes
app.include_router(public_router)
app.include_router(api_router, prefix=settings.api_prefix)


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "purchase_approval.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )

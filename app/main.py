import asyncio
import logging
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import settings
from app.core.errors import AppError, ErrorCode, code_for_status, error_body
from app.core.rate_limit import limiter, rate_limit_exceeded_handler
from app.modules.auth import routes as auth_routes
from app.modules.credits import routes as credits_routes
from app.modules.models import routes as models_routes
from app.modules.processing import routes as processing_routes
from app.modules.subscriptions import routes as subscriptions_routes
from app.modules.webhooks import routes as webhooks_routes
from app.modules.pseo import routes as pseo_routes
from app.modules.sync import routes as sync_routes

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.app_name,
    debug=settings.debug,
    redirect_slashes=False,
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if isinstance(exc, AppError):
        content = error_body(exc.code, exc.message, exc.details)
    else:
        content = error_body(code_for_status(exc.status_code), str(exc.detail))
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(part) for part in err.get("loc", [])), "message": err.get("msg")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content=error_body(ErrorCode.VALIDATION_ERROR, "Invalid request", {"errors": errors}),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception: %s", exc)
    message = "Internal server error" if settings.is_production else str(exc)
    return JSONResponse(status_code=500, content=error_body(ErrorCode.INTERNAL_ERROR, message))


class SecurityHeadersMiddleware:
    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_with_headers(message):
            if message["type"] == "http.response.start":
                message.setdefault("headers", [])
                message["headers"].extend([
                    (b"X-Content-Type-Options", b"nosniff"),
                    (b"X-Frame-Options", b"DENY"),
                    (b"Referrer-Policy", b"strict-origin-when-cross-origin"),
                ])
            await send(message)

        await self.app(scope, receive, send_with_headers)


app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_routes.router, prefix="/api/v1")
app.include_router(credits_routes.router, prefix="/api/v1")
app.include_router(models_routes.router, prefix="/api/v1")
app.include_router(processing_routes.router, prefix="/api/v1")
app.include_router(subscriptions_routes.router, prefix="/api/v1")
app.include_router(webhooks_routes.router, prefix="/api/v1")
app.include_router(pseo_routes.router, prefix="/api/v1")
app.include_router(sync_routes.router, prefix="/api/v1")


@app.on_event("startup")
async def startup_event():
    logger.info(f"Application startup ({settings.environment})")
    if not settings.is_test:
        from app.modules.limits.cleanup_scheduler import limits_cleanup_loop
        asyncio.create_task(limits_cleanup_loop())
        logger.info(
            f"Limit cleanup started - pruning counters every {settings.limits_cleanup_interval_seconds}s"
        )


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Application shutdown")


@app.get("/")
@limiter.exempt
async def root():
    return {"message": f"Welcome to {settings.app_name} API", "status": "healthy"}


@app.get("/health")
@limiter.exempt
async def health():
    return {"status": "healthy"}


@app.get("/ready")
@limiter.exempt
async def ready():
    """Readiness check: configuration needed for billing is present."""
    missing = [
        name for name, value in (
            ("supabase_url", settings.supabase_url),
            ("stripe_secret_key", settings.stripe_secret_key),
        ) if not value
    ]
    if missing:
        return JSONResponse(status_code=503, content={"status": "not_ready", "missing": missing})
    return {"status": "ready"}

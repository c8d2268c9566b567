import logging
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

from dbconsole.config.settings import settings
from dbconsole.modules.permissions import routes as permissions_routes
from dbconsole.modules.permissions.validation import PermissionValidationError
from dbconsole.modules.roles import routes as roles_routes

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
app = FastAPI(
    title=settings.app_name,
    debug=settings.debug,
    redirect_slashes=False,
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


def _field_error_response(message: str, errors: dict) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={"success": False, "message": message, "errors": errors},
    )


@app.exception_handler(PermissionValidationError)
async def permission_validation_handler(request: Request, exc: PermissionValidationError):
    return _field_error_response(exc.message, exc.errors)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = {}
    for error in exc.errors():
        # Drop the leading "body"/"query" location so keys match form field names
        location = [str(part) for part in error.get("loc", ())[1:]]
        errors.setdefault(".".join(location) or "root", []).append(error.get("msg", "Invalid value"))
    return _field_error_response("Validation failed", errors)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception: %s", exc)
    if settings.is_production:
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})
    return JSONResponse(status_code=500, content={"detail": str(exc)})


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
                    (b"Cache-Control", b"no-store"),
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

app.include_router(permissions_routes.router, prefix="/api/v1")
app.include_router(roles_routes.router, prefix="/api/v1")


@app.on_event("startup")
async def startup_event():
    logger.info(
        "Application startup (permission cache ttl=%ss, max entries=%s)",
        settings.permissions_cache_ttl_sec,
        settings.permissions_cache_max_size,
    )


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Application shutdown")


@app.get("/health")
@limiter.exempt
async def health():
    return {"status": "healthy"}


@app.get("/ready")
@limiter.exempt
async def ready():
    return {"status": "ready"}

"""
FastAPI app assembly: middleware, error rendering and router wiring.
"""
import logging
import os

from fastapi import Depends, FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import Request
from starlette.responses import JSONResponse

# Configure logging
LOG_LEVEL_NAME = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_LEVEL = getattr(logging, LOG_LEVEL_NAME, logging.INFO)
logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger(__name__)
logger.setLevel(LOG_LEVEL)
logger.info("app_startup: log_level=%s", LOG_LEVEL_NAME)


from arcana.api.accounts import router as accounts_router
from arcana.api.checkout import router as checkout_router
from arcana.api.deps import get_database
from arcana.api.orders import router as orders_router
from arcana.api.query import router as query_router
from arcana.api.shop import router as shop_router
from arcana.api.upload import router as upload_router
from arcana.api.users import router as users_router
from arcana.db.database import DatabaseService
from arcana.db.errors import (
    DatabaseError,
    DuplicateKeyError,
    InvalidIdentifierError,
    UnsupportedOperationError,
)
from arcana.utils.jwt_tokens import (
    SESSION_COOKIE,
    InvalidSessionToken,
    decode_session_token,
    is_remember_session,
    lifetime_for,
    refresh_session_token,
    session_cookie_kwargs,
    should_refresh,
)

# Database schema is managed by Alembic migrations; generic collections are created on first write.

app = FastAPI(
    title="Arcana Shop Service",
    description="Catalog, checkout, accounts and admin API for the Arcana tarot shop.",
    version="1.0.0",
)

# Avoid implicit trailing-slash redirects for predictable URLs
app.router.redirect_slashes = False

DEFAULT_ORIGINS = [
    "http://localhost",
    "http://localhost:3000",
    "http://localhost:8000",
]


def _cors_origins():
    raw = os.getenv("CORS_ORIGINS", "")
    origins = [o.strip().rstrip("/") for o in raw.split(",") if o.strip()]
    return origins or DEFAULT_ORIGINS


app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _sets_session_cookie(response) -> bool:
    return any(
        value.startswith(f"{SESSION_COOKIE}=")
        for value in response.headers.getlist("set-cookie")
    )


# Middleware: re-issue the session cookie when it enters the last quarter of its lifetime
@app.middleware("http")
async def refresh_session_cookie(request: Request, call_next):
    response = await call_next(request)
    token = request.cookies.get(SESSION_COOKIE)
    if not token or _sets_session_cookie(response):
        return response
    try:
        claims = decode_session_token(token)
    except InvalidSessionToken:
        return response
    if should_refresh(claims):
        fresh = refresh_session_token(claims)
        max_age = int(lifetime_for(is_remember_session(claims)).total_seconds())
        response.set_cookie(value=fresh, **session_cookie_kwargs(max_age))
        logger.debug("Refreshed session for user %s", claims.get("id"))
    return response


# Error rendering: every failure is returned as {"error": message}

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse({"error": exc.detail}, status_code=exc.status_code, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
    else:
        message = "Invalid request"
    return JSONResponse({"error": message}, status_code=400)


@app.exception_handler(DatabaseError)
async def database_exception_handler(request: Request, exc: DatabaseError):
    if isinstance(exc, InvalidIdentifierError):
        return JSONResponse({"error": str(exc)}, status_code=400)
    if isinstance(exc, DuplicateKeyError):
        return JSONResponse({"error": "Record already exists"}, status_code=409)
    if isinstance(exc, UnsupportedOperationError):
        return JSONResponse({"error": str(exc)}, status_code=501)
    logger.error("Database error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse({"error": "Database error"}, status_code=500)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse({"error": "Internal server error"}, status_code=500)


app.include_router(accounts_router)
app.include_router(query_router)
app.include_router(shop_router)
app.include_router(upload_router)
app.include_router(checkout_router)
app.include_router(orders_router)
app.include_router(users_router)


@app.get("/api/health")
def health_check(db: DatabaseService = Depends(get_database)):
    result = db.health_check()
    return JSONResponse(result, status_code=200 if result["status"] == "healthy" else 503)


# Local file storage used by the SQL provider
app.mount(
    "/uploads",
    StaticFiles(directory=os.getenv("UPLOAD_DIR", "uploads"), check_dir=False),
    name="uploads",
)

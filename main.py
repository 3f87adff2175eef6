# File: main.py

import asyncio
import contextlib
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from config import settings
from database import ensure_indexes, get_db, ping
from errors import StoreError
from services import analytics

from auth.router import router as auth_router
from routers.admins import router as admins_router
from routers.analytics import router as analytics_router
from routers.campaigns import router as campaigns_router
from routers.cart import router as cart_router
from routers.categories import router as categories_router
from routers.orders import router as orders_router
from routers.products import router as products_router
from routers.slides import router as slides_router
from routers.users import router as users_router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI):
    if ping():
        db = get_db()
        ensure_indexes(db)
        # enrichment interrupted by the last shutdown
        app.state.replay = asyncio.create_task(analytics.replay_pending(db))
    yield

    replay = getattr(app.state, "replay", None)
    if replay is not None and not replay.done():
        replay.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await replay


app = FastAPI(
    title=settings.APP_NAME,
    description="Backend services for the BZ Cart storefront and admin dashboard.",
    version="1.0.0",
    lifespan=lifespan,
)


# --- CORS Middleware ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Error responses: always {"message": ...} ---
@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


@app.exception_handler(HTTPException)
async def http_error_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"{field}: {first.get('msg')}" if field else first.get("msg", "Invalid request")
    return JSONResponse(status_code=400, content={"message": message})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"message": "Internal server error"})


# --- Include Routers ---
app.include_router(auth_router)
app.include_router(users_router)
app.include_router(admins_router)
app.include_router(products_router)
app.include_router(cart_router)
app.include_router(categories_router)
app.include_router(orders_router)
app.include_router(analytics_router)
app.include_router(campaigns_router)
app.include_router(slides_router)


# --- Root Endpoint ---
@app.get("/")
def read_root():
    return {"status": "BZ Cart API is online and operational."}

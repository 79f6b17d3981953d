# app/main.py
from contextlib import asynccontextmanager
import logging

from fastapi.middleware.cors import CORSMiddleware
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from app.core.config import get_settings
from app.core.changefeed import PgNotifyRelay, change_feed, install_change_triggers, libpq_dsn
from app.database import create_db_and_tables, db_url, engine, is_postgres
from app.repositories.query_gateway import COLLECTIONS, InvalidQueryError

# Import models so SQLModel metadata is populated before create_all()
from app.models import user as _user_models  # noqa: F401
from app.models import vendor as _vendor_models  # noqa: F401
from app.models import partnership as _partnership_models  # noqa: F401
from app.models import quotation as _quotation_models  # noqa: F401
from app.models import product as _product_models  # noqa: F401


# Routers
from app.routers.auth import router as auth_router
from app.routers.users import router as users_router
from app.routers.vendors import router as vendors_router
from app.routers.partnerships import router as partnerships_router
from app.routers.quotations import router as quotations_router
from app.routers.products import router as products_router
from app.routers.products import vendor_products_router

settings = get_settings()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("uvicorn")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
      - Verify DB connectivity and create tables.
      - On Postgres, install change triggers and start the NOTIFY relay
        that drives realtime subscriptions.

    Shutdown:
      - Stop the relay.
    """
    logger.info("Startup: connecting to Supabase Postgres...")
    try:
        create_db_and_tables()
        logger.info("Startup: DB connection OK, tables verified.")
    except Exception as e:
        logger.error(f"Startup: DB connection FAILED: {e}")
        raise

    relay = None
    if is_postgres(db_url):
        install_change_triggers(engine, COLLECTIONS, settings.REALTIME_CHANNEL)
        relay = PgNotifyRelay(
            libpq_dsn(settings.REALTIME_LISTEN_URL or db_url),
            change_feed,
            settings.REALTIME_CHANNEL,
        )
        relay.start()

    yield

    if relay is not None:
        relay.stop(timeout=5)


app = FastAPI(
    title=settings.PROJECT_NAME,
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(InvalidQueryError)
async def invalid_query_handler(request: Request, exc: InvalidQueryError):
    """Malformed list queries (unknown field, bad cursor, ...) are client errors."""
    logger.info("Rejected query on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": str(exc)},
    )


# --- CORS configuration ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Versioned API prefix, e.g. /api/v1
app.include_router(auth_router, prefix=settings.API_V1_STR)
app.include_router(users_router, prefix=settings.API_V1_STR)
app.include_router(vendors_router, prefix=settings.API_V1_STR)
app.include_router(vendor_products_router, prefix=settings.API_V1_STR)
app.include_router(partnerships_router, prefix=settings.API_V1_STR)
app.include_router(quotations_router, prefix=settings.API_V1_STR)
app.include_router(products_router, prefix=settings.API_V1_STR)


@app.get("/")
def root():
    """Health check endpoint."""
    return {"status": "ok", "service": "viridian-backend"}

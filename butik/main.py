"""
Butik Backend
FastAPI application entry point

- Order, cart and product API with payment-proof stock reconciliation
- Uniform {success, message, error, data} response envelope
- Request size limit sized to the upload limit
- Health endpoint with DB ping
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from butik import __version__
from butik.api.routes import cart, orders, products, users
from butik.core.config import settings
from butik.core.database import get_db, init_models
from butik.core.error_handler import register_exception_handlers
from butik.schemas.common import error_response


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables on startup outside production; production uses migrations."""
    if settings.ENVIRONMENT != "production":
        await init_models()
        logger.info("Database tables ensured (%s)", settings.ENVIRONMENT)
    logger.info("%s API %s started", settings.APP_NAME, __version__)
    yield
    logger.info("%s API shutting down", settings.APP_NAME)


app = FastAPI(
    lifespan=lifespan,
    title=f"{settings.APP_NAME} API",
    description="""
## Butik E-Commerce API

### Order flow
1. Add products to the cart (stock is checked, not reserved)
2. Create an order with the chosen lines (status `belum_bayar`)
3. Upload the transfer proof: stock for every line is taken in one transaction
4. Admin moves the order to `dikirim` then `selesai`

### Authentication
Bearer JWT issued by the auth service.
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

register_exception_handlers(app)


# Multipart overhead on top of the upload limit
MAX_REQUEST_SIZE = (settings.MAX_UPLOAD_SIZE_MB + 1) * 1024 * 1024


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject requests that exceed the size limit."""

    async def dispatch(self, request: Request, call_next):
        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > MAX_REQUEST_SIZE:
            logger.warning(
                "Request size limit exceeded: %s bytes from %s",
                content_length, request.client.host if request.client else "unknown",
            )
            return JSONResponse(
                status_code=413,
                content=error_response(
                    f"Request body exceeds maximum size of {MAX_REQUEST_SIZE // (1024 * 1024)}MB",
                    code="REQUEST_TOO_LARGE",
                ),
            )
        return await call_next(request)


app.add_middleware(RequestSizeLimitMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(products.router, prefix="/api/products", tags=["Products"])
app.include_router(cart.router, prefix="/api/cart", tags=["Cart"])
app.include_router(orders.router, prefix="/api/orders", tags=["Orders"])
app.include_router(users.router, prefix="/api/users", tags=["Users"])

# Stored product images and transfer proofs
app.mount("/public", StaticFiles(directory=settings.UPLOAD_DIR, check_dir=False), name="public")


@app.get("/", tags=["Health"])
async def root():
    return {"name": f"{settings.APP_NAME} API", "version": __version__, "docs": "/docs"}


@app.get("/health", tags=["Health"])
async def health_check(db: AsyncSession = Depends(get_db)):
    """Returns 503 if the database is unreachable."""
    health_status = {
        "status": "healthy",
        "database": "unknown",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    try:
        await db.execute(text("SELECT 1"))
        health_status["database"] = "connected"
    except Exception as e:
        logger.error("Health check database ping failed: %s", e)
        health_status["database"] = f"error: {type(e).__name__}"
        health_status["status"] = "unhealthy"
        return JSONResponse(status_code=503, content=health_status)

    return health_status

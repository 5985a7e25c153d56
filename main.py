from contextlib import asynccontextmanager

from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from shared.config import settings
from shared.config.database import engine, Base
from shared.errors import register_exception_handlers
from shared.observability import setup_observability
from shared.security import limiter

# IMPORTANT: import models so they register with Base
from services.auth_service import models as auth_models
from services.product_service import models as product_models
from services.bid_service import models as bid_models
from services.order_service import models as order_models

from services.auth_service.router import router as auth_router
from services.product_service.router import router as product_router
from services.bid_service.router import router as bid_router
from services.order_service.router import router as order_router
from services.payment_service.router import router as payment_router
from services.auction_service.router import router as auction_router
from services.auction_service.scheduler import start_scheduler, stop_scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    if settings.AUCTION_SCHEDULER_ENABLED:
        start_scheduler()
    yield
    await stop_scheduler()
    await engine.dispose()


app = FastAPI(
    title="Auction Commerce API",
    version="1.0.0",
    description="Fixed-price checkout, auctions with bidding, and gateway-backed payments.",
    lifespan=lifespan,
)

# --- OBSERVABILITY BOOTSTRAP ---
setup_observability(app, "auction_commerce")

# --- SECURITY SETUP ---
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
register_exception_handlers(app)

app.include_router(auth_router)
app.include_router(product_router)
app.include_router(bid_router)
app.include_router(order_router)
app.include_router(payment_router)
app.include_router(auction_router)


@app.get("/health", include_in_schema=False)
async def health_check():
    return {"service": "auction_commerce", "status": "running"}


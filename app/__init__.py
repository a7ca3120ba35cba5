import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import Config
from app.core.logging import setup_logging
from app.db.database import AsyncSessionLocal, init_db
from app.routers.cart import router as cart_router
from app.routers.discounts import router as discounts_router
from app.routers.flash_sales import router as flash_sales_router
from app.routers.orders import router as orders_router
from app.services.scheduler_service import FlashSaleScheduler
from dotenv import load_dotenv

load_dotenv()
setup_logging(Config.LOG_LEVEL)

logger = logging.getLogger(__name__)

api_version = "v1"
swagger_docs_url = f"/api/{api_version}/docs"
redoc_docs_url = f"/api/{api_version}/redoc"
openapi_url = f"/api/{api_version}/openapi.json"


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()

    scheduler = FlashSaleScheduler(
        AsyncSessionLocal,
        timezone_name=Config.SCHEDULER_TIMEZONE,
        sweep_interval_seconds=Config.FLASH_SALE_SWEEP_INTERVAL_SECONDS,
        sweep_window_seconds=Config.FLASH_SALE_SWEEP_WINDOW_SECONDS,
    )
    app.state.flash_sale_scheduler = scheduler

    if Config.SCHEDULER_ENABLED:
        await scheduler.start()
    else:
        logger.info("Flash sale scheduler is disabled")

    yield

    await scheduler.shutdown()


app = FastAPI(
    docs_url=swagger_docs_url,
    redoc_url=redoc_docs_url,
    openapi_url=openapi_url,
    title="Commerce Core API",
    description="Carts, discounts, flash sales and orders for the storefront.",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        'http://localhost',
        'http://localhost:3000',
        f'https://{Config.DOMAIN}',
    ],
    allow_credentials=True,
    allow_methods=['GET', 'POST', 'PUT', 'PATCH', 'DELETE'],
    allow_headers=["*"],
)

# Register endpoints
app.include_router(cart_router, prefix=f'/api/{api_version}/cart', tags=["Cart"])
app.include_router(orders_router, prefix=f'/api/{api_version}/orders', tags=['Orders'])
app.include_router(discounts_router, prefix=f'/api/{api_version}/discounts', tags=["Discounts"])
app.include_router(flash_sales_router, prefix=f'/api/{api_version}/flash-sales', tags=["Flash Sales"])

# Add a root endpoint for health check
@app.get("/")
async def root():
    return {
        "message": "Commerce Core API",
        "version": "1.0.0",
        "docs": swagger_docs_url,
        "status": "running"
    }

@app.get("/health")
async def health_check():
    return {"status": "healthy"}

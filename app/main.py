from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
import logging

# Import database components
from app.database.database import sync_engine, Base

# Import middleware and error handlers
from app.common.middleware import TenantMiddleware
from app.common.exceptions import register_exception_handlers

# Import routers
from app.modules.pricing.router import pricing_router
from app.modules.products.router import product_router
from app.modules.quotations.router import quotation_router
from app.modules.sales_orders.router import sales_order_router

# Import models for table creation
import app.common.sequences
import app.modules.products.models
import app.modules.quotations.models
import app.modules.sales_orders.models

from app.core.config import settings

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.ENVIRONMENT == "production" else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# FastAPI app
app = FastAPI(
    title="ERP-lite API",
    description="Multi-tenant quotations, sales orders and payments API built with FastAPI and PostgreSQL",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None
)

# Add middleware (order matters!)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(TenantMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Add your frontend URLs
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Include routers
app.include_router(pricing_router)  # Public endpoint - no tenant header
app.include_router(product_router)
app.include_router(quotation_router)
app.include_router(sales_order_router)


@app.get("/")
async def read_root():
    return {
        "message": "ERP-lite API is running",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy", "environment": settings.ENVIRONMENT}


@app.on_event("startup")
async def startup_event():
    logger.info("ERP-lite API starting up...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug mode: {settings.DEBUG}")

    # Create database tables (only for development - use migrations in production)
    if settings.ENVIRONMENT == "development":
        Base.metadata.create_all(bind=sync_engine)


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("ERP-lite API shutting down...")

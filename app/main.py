from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
import logging

# Import database components
from app.database.database import engine, Base, SessionLocal

# Import middleware and error handlers
from app.common.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from app.common.exceptions import register_exception_handlers

# Import routers
from app.modules.auth.router import auth_router
from app.modules.company.router import company_router
from app.modules.branches.router import branch_router
from app.modules.customers.router import customer_router
from app.modules.products.router import product_router
from app.modules.inventory.router import stock_router, movements_router, movement_types_router, transfers_router
from app.modules.invoices.router import invoices_router

# Import models for table creation
import app.modules.auth.models
import app.modules.company.models
import app.modules.branches.models
import app.modules.customers.models
import app.modules.products.models
import app.modules.inventory.models
import app.modules.invoices.models

from app.modules.inventory.service import seed_movement_types
from app.core.config import settings

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.ENVIRONMENT == "production" else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# FastAPI app
app = FastAPI(
    title="Ally360 API",
    description="Multi-tenant inventory and invoicing API built with FastAPI and PostgreSQL",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None
)

# Add middleware (order matters!)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestLoggingMiddleware)

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
app.include_router(auth_router, prefix=f"{settings.API_PREFIX}/auth", tags=["Auth"])
app.include_router(company_router, prefix=settings.API_PREFIX, tags=["Companies"])
app.include_router(branch_router, prefix=settings.API_PREFIX, tags=["Branches"])
app.include_router(customer_router, prefix=settings.API_PREFIX, tags=["Customers"])
app.include_router(product_router, prefix=settings.API_PREFIX, tags=["Products"])
app.include_router(stock_router, prefix=settings.API_PREFIX)
app.include_router(movements_router, prefix=settings.API_PREFIX)
app.include_router(movement_types_router, prefix=settings.API_PREFIX)
app.include_router(transfers_router, prefix=settings.API_PREFIX)
app.include_router(invoices_router, prefix=settings.API_PREFIX, tags=["Invoices"])


@app.get("/")
async def read_root():
    return {
        "message": "Ally360 API is running",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy", "environment": settings.ENVIRONMENT}


@app.on_event("startup")
async def startup_event():
    logger.info("Ally360 API starting up...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug mode: {settings.DEBUG}")

    # Create database tables (only for development - use migrations in production)
    if settings.ENVIRONMENT == "development":
        Base.metadata.create_all(bind=engine)
        db = SessionLocal()
        try:
            seed_movement_types(db)
        finally:
            db.close()


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Ally360 API shutting down...")

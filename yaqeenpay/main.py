# yaqeenpay/main.py

import logging
import traceback
import datetime
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from yaqeenpay.core.config import settings
from yaqeenpay.core.database import init_db, close_db
from yaqeenpay.core.exceptions import YaqeenPayError
from yaqeenpay.api import auth, wallets, orders, disputes, withdrawals, \
    notifications, admin, admin_settings, users, ratings, products, webhooks, \
    cart, wishlist
from yaqeenpay.api.utils import create_error_response
from yaqeenpay.services.background_jobs import start_background_jobs, \
    stop_background_jobs

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Escrow-backed marketplace payments and PKR wallets",
    version="1.0.0",
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def catch_exceptions_middleware(request: Request, call_next):
    try:
        response = await call_next(request)
        return response
    except Exception as exc:
        logger.error(f"Unhandled error in middleware: {str(exc)}")
        logger.error(traceback.format_exc())
        return JSONResponse(
            status_code=500,
            content=create_error_response("Internal Server Error"),
        )


app.include_router(auth.router, prefix="/api/auth", tags=["authentication"])
app.include_router(users.router, prefix="/api/users", tags=["users"])
app.include_router(wallets.router, prefix="/api/wallets", tags=["wallets"])
app.include_router(orders.router, prefix="/api/orders", tags=["orders"])
app.include_router(disputes.router, prefix="/api/disputes", tags=["disputes"])
app.include_router(withdrawals.router, prefix="/api/withdrawals",
                   tags=["withdrawals"])
app.include_router(notifications.router, prefix="/api/notifications",
                   tags=["notifications"])
app.include_router(ratings.router, prefix="/api/ratings", tags=["ratings"])
app.include_router(products.router, prefix="/api/products", tags=["products"])
app.include_router(cart.router, prefix="/api/cart", tags=["cart"])
app.include_router(wishlist.router, prefix="/api/wishlist", tags=["cart"])
app.include_router(products.categories_router, prefix="/api/categories",
                   tags=["products"])
app.include_router(admin_settings.router, prefix="/api/admin/settings",
                   tags=["admin"])
app.include_router(admin.router, prefix="/api/admin", tags=["admin"])
app.include_router(webhooks.router, prefix="/api/webhooks", tags=["webhooks"])


@app.get("/", tags=["status"])
def root():
    return {
        "status": "ok",
        "version": "1.0.0",
        "service": settings.PROJECT_NAME
    }


@app.get("/health", tags=["status"])
def health_check():
    return {
        "status": "healthy",
        "timestamp": str(datetime.datetime.utcnow()),
        "background_jobs": settings.BACKGROUND_JOBS_ENABLED,
        "outbox": settings.OUTBOX_ENABLED,
        "currency": settings.DEFAULT_CURRENCY
    }


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request,
                                 exc: StarletteHTTPException):
    logger.warning(f"HTTPException {exc.status_code}: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(str(exc.detail)),
        headers=getattr(exc, "headers", None)
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request,
                                       exc: RequestValidationError):
    logger.warning(f"Validation error: {exc.errors()}")
    errors = jsonable_encoder(exc.errors())
    return JSONResponse(
        status_code=422,
        content={**create_error_response("Validation failed", errors),
                 "detail": errors}
    )


@app.exception_handler(YaqeenPayError)
async def domain_exception_handler(request: Request, exc: YaqeenPayError):
    logger.warning(f"{type(exc).__name__}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(exc.message)
    )


@app.on_event("startup")
async def startup_event():
    logger.info(f"Starting {settings.PROJECT_NAME}")
    logger.info(f"Debug mode: {settings.DEBUG}")
    init_db()
    start_background_jobs()


@app.on_event("shutdown")
async def shutdown_event():
    logger.info(f"Shutting down {settings.PROJECT_NAME}")
    await stop_background_jobs()
    close_db()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "yaqeenpay.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info"
    )

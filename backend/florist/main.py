from contextlib import asynccontextmanager

from apscheduler.schedulers.background import BackgroundScheduler
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from florist.api.health import router as health_router
from florist.api.routes_admin import router as admin_router
from florist.api.routes_cart import router as cart_router
from florist.api.routes_catalogue import router as catalogue_router
from florist.api.routes_order import router as order_router
from florist.api.routes_payments import router as payments_router
from florist.config import settings
from florist.db import SessionLocal, init_db
from florist.errors import ShopError
from florist.services.cart_service import CartService
from florist.utils.logging import get_logger

log = get_logger("app")


def clean_expired_carts_job():
    db = SessionLocal()
    try:
        CartService(db).clean_expired_carts()
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # RESET_DB=1 drops and recreates tables
    init_db()

    scheduler = BackgroundScheduler()
    scheduler.add_job(
        clean_expired_carts_job,
        "interval",
        seconds=settings.CART_CLEANUP_INTERVAL_SECONDS,
        id="clean_expired_carts",
    )
    scheduler.start()

    try:
        yield
    finally:
        scheduler.shutdown(wait=False)


app = FastAPI(title="Bella Fleurs - Backend", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.FRONTEND_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ShopError)
async def shop_error_handler(request: Request, exc: ShopError):
    if exc.status_code >= 500:
        log.error("%s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.to_dict()})


app.include_router(health_router, prefix="/api", tags=["health"])

app.include_router(catalogue_router, prefix="/api/products", tags=["catalogue"])

app.include_router(cart_router, tags=["cart"])

app.include_router(order_router, prefix="/api/orders", tags=["orders"])

app.include_router(payments_router, tags=["payments"])

app.include_router(admin_router, tags=["admin"])


def run():
    import uvicorn

    uvicorn.run("florist.main:app", host=settings.APP_HOST, port=settings.APP_PORT)

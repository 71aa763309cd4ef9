from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from florist.adapters.registry import get_notifier, get_payment_gateway
from florist.db import engine

router = APIRouter()


@router.get("/health", tags=["health"])
def health(gateway=Depends(get_payment_gateway), notifier=Depends(get_notifier)):
    db_ok = False
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            db_ok = True
    except SQLAlchemyError:
        db_ok = False
    payment_ok = gateway.health_check()
    notifier_ok = notifier.health_check()

    return {
        "status": "ok" if db_ok and payment_ok and notifier_ok else "degraded",
        "db": db_ok,
        "payment_adapter": payment_ok,
        "notifier": notifier_ok,
    }

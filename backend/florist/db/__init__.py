import importlib
import os

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from florist.config import settings
from florist.utils.logging import get_logger

log = get_logger("db")

DATABASE_URL = settings.DATABASE_URL
# sqlite connections are handed across FastAPI's threadpool workers
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, future=True, echo=False, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

# Model modules must be imported before create_all so metadata is populated.
MODEL_MODULES = [
    "florist.models.product",
    "florist.models.cart",
    "florist.models.cart_item",
    "florist.models.order",
    "florist.models.invoice",
]


def init_db(reset: bool = None):
    """
    Initialize DB schema.

    Behavior:
      - If `reset` is True, or RESET_DB env var is set to 1/true/yes, drop & recreate tables.
      - Otherwise, leave existing tables in place.
    """
    if reset is None:
        reset = os.environ.get("RESET_DB", "false").lower() in ("1", "true", "yes")

    for mod in MODEL_MODULES:
        importlib.import_module(mod)

    if reset:
        log.info("Resetting database (drop & recreate)")
        Base.metadata.drop_all(bind=engine)

    Base.metadata.create_all(bind=engine)
    log.debug("Database initialized at %s", DATABASE_URL)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

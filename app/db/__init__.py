import importlib
import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from app.config import settings

log = logging.getLogger(__name__)

DATABASE_URL = settings.DATABASE_URL

# SQLite connections are handed between FastAPI's threadpool workers
_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, future=True, echo=False, connect_args=_connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

# Model modules that must be imported so Base.metadata knows every table.
MODEL_MODULES = [
    "app.models.product",
    "app.models.cart",
    "app.models.cart_item",
]


def init_db(reset: bool = False):
    """
    Initialize DB schema.

    With reset=True (or RESET_DB set in the environment) all tables are
    dropped and recreated, which gives tests and local runs a clean database.
    Otherwise existing tables are left in place and only missing ones created.
    """
    for mod in MODEL_MODULES:
        importlib.import_module(mod)

    if reset or settings.RESET_DB:
        log.warning("Resetting database %s", engine.url.render_as_string(hide_password=True))
        Base.metadata.drop_all(bind=engine)

    Base.metadata.create_all(bind=engine)
    log.info("Database initialized: tables=%s", sorted(Base.metadata.tables))


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

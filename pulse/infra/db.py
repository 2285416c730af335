from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from pulse.config import SETTINGS

Base = declarative_base()


def make_engine(database_url: str, echo: bool = False) -> Engine:
    return create_engine(database_url, pool_pre_ping=True, echo=echo)


def make_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(bind=bind, autoflush=False, autocommit=False, expire_on_commit=False)


engine = make_engine(SETTINGS.database_url, echo=SETTINGS.database_echo)
SessionLocal = make_session_factory(engine)


def init_db(create_schema: bool = False) -> None:
    with engine.connect() as connection:
        connection.execute(text("SELECT 1"))
    if create_schema:
        # Local/dev databases only; deployed schemas come from alembic.
        from . import models  # noqa: F401

        Base.metadata.create_all(engine)

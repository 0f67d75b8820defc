import os
from typing import Any, Generator

from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, SQLModel, create_engine

from soloflow.core.config import settings
from soloflow.core.logging_setup import logger
from soloflow.db import base  # noqa: F401

connect_args: dict[str, Any] = {}
if settings.database_url.startswith("sqlite"):
    connect_args["check_same_thread"] = False
elif settings.database_url.startswith("postgresql"):
    client_encoding = os.getenv("POSTGRES_CLIENT_ENCODING", "UTF8")
    connect_args["options"] = f"-c client_encoding={client_encoding}"

engine = create_engine(
    settings.database_url,
    echo=settings.debug,
    future=True,
    connect_args=connect_args,
)


def init_db() -> None:
    SQLModel.metadata.create_all(bind=engine)
    _ensure_schema_compatibility()


def get_session() -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session


def _ensure_schema_compatibility() -> None:
    """
    Keep backward compatibility with databases created before the feedback column existed.
    """
    try:
        with engine.begin() as conn:
            inspector = inspect(conn)
            if "user_subscriptions" not in set(inspector.get_table_names()):
                return
            columns = {column["name"] for column in inspector.get_columns("user_subscriptions")}
            if "cancellation_feedback" not in columns:
                logger.warning("Column 'cancellation_feedback' missing on 'user_subscriptions'; adding it.")
                statement = "ALTER TABLE user_subscriptions ADD COLUMN cancellation_feedback VARCHAR"
                if settings.database_url.startswith("postgresql"):
                    statement = "ALTER TABLE user_subscriptions ADD COLUMN IF NOT EXISTS cancellation_feedback VARCHAR"
                conn.exec_driver_sql(statement)
                logger.info("Column 'cancellation_feedback' added to 'user_subscriptions'.")
    except SQLAlchemyError as exc:  # pragma: no cover - best effort safeguard
        logger.error("Failed to adjust database schema: %s", exc)

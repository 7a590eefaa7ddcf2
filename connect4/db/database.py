"""Generate database session"""

from typing import Any, Iterator

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from connect4.core.config import get_settings
from connect4.db.schema import Base


def configure_sqlite(engine: Engine) -> None:
    """
    pysqlite opens transactions lazily on its own, which breaks SAVEPOINT.
    Let SQLAlchemy emit BEGIN itself so that `Session.begin_nested()` works (used when retrying generated ids).

    SQLite also ignores foreign keys unless asked, so `ondelete="SET NULL"` on `rematch_game_id` would leave a
    dangling link when the cleanup job deletes a rematch game.
    """

    @event.listens_for(engine, "connect")
    def _configure_pysqlite_connection(dbapi_connection: Any, _connection_record: Any) -> None:
        dbapi_connection.isolation_level = None
        dbapi_connection.execute("PRAGMA foreign_keys=ON")

    @event.listens_for(engine, "begin")
    def _emit_begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN")


def build_engine(database_url: str, echo: bool = False, **kwargs: Any) -> Engine:
    engine = create_engine(database_url, echo=echo, **kwargs)
    if engine.dialect.name == "sqlite":
        configure_sqlite(engine)
    return engine


settings = get_settings()
engine = build_engine(
    settings.database_url,
    echo=settings.sql_echo,
    connect_args={"check_same_thread": False} if settings.database_url.startswith("sqlite") else {},
)
SessionLocal = sessionmaker(bind=engine, autoflush=False)


def init_db(bind: Engine = engine) -> None:
    """Ensure all tables are created"""
    Base.metadata.create_all(bind=bind)


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

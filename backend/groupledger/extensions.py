"""Relational database capability injected into every ledger service."""
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import create_engine, event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool

from groupledger.utils.errors import InfrastructureError
from groupledger.utils.logging import get_logger

logger = get_logger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class Database:
    """
    Owns the connection pool and hands out scoped sessions.

    ``transaction()`` is the only way to write: the session is committed when
    the block exits normally, rolled back on any exception, and always closed
    so its connection goes back to the pool. ``reader()`` gives a session for
    read-only folds; it never commits.
    """

    def __init__(
        self,
        url: str,
        pool_size: int = 5,
        max_overflow: int = 10,
        pool_timeout: int = 30,
        statement_timeout_ms: int = None,
        echo: bool = False,
    ):
        self.url = url
        engine_kwargs = {"echo": echo, "pool_pre_ping": True}

        if url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if url in ("sqlite://", "sqlite:///:memory:"):
                # A single shared connection keeps the in-memory database alive
                engine_kwargs["poolclass"] = StaticPool
        else:
            engine_kwargs.update(
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_timeout=pool_timeout,
            )
            if statement_timeout_ms and url.startswith("postgresql"):
                engine_kwargs["connect_args"] = {
                    "options": f"-c statement_timeout={int(statement_timeout_ms)}"
                }

        self.engine = create_engine(url, **engine_kwargs)
        self.dialect = self.engine.dialect.name
        if self.dialect == "sqlite":
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)

        self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)

    @contextmanager
    def transaction(self, **context):
        """Acquire, yield, commit-or-rollback, release."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.exception("transaction_failed", **context)
            raise InfrastructureError() from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @contextmanager
    def reader(self, **context):
        """Session for read-only work; one consistent snapshot where supported."""
        session = self._session_factory()
        try:
            if self.dialect == "postgresql":
                session.connection(
                    execution_options={"isolation_level": "REPEATABLE READ"}
                )
            yield session
        except SQLAlchemyError as exc:
            logger.exception("read_failed", **context)
            raise InfrastructureError() from exc
        finally:
            session.rollback()
            session.close()

    def create_all(self):
        # Import models so they are registered on Base.metadata
        from groupledger.groups import models as _groups  # noqa: F401
        from groupledger.expenses import models as _expenses  # noqa: F401
        from groupledger.settlements import models as _settlements  # noqa: F401
        from groupledger.users import model as _users  # noqa: F401

        Base.metadata.create_all(self.engine)

    def dispose(self):
        self.engine.dispose()


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def init_db(app) -> Database:
    database = Database(
        app.config["DATABASE_URL"],
        pool_size=app.config.get("DB_POOL_SIZE", 5),
        max_overflow=app.config.get("DB_MAX_OVERFLOW", 10),
        pool_timeout=app.config.get("DB_POOL_TIMEOUT", 30),
        statement_timeout_ms=app.config.get("DB_STATEMENT_TIMEOUT_MS"),
    )
    if app.config.get("DB_CREATE_TABLES"):
        database.create_all()
    logger.info("database_ready", dialect=database.dialect)
    return database

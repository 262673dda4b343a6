# app/core/db.py - Engine, sessions and transaction scope for the fee ledger
from sqlalchemy import create_engine, text, event
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool, QueuePool
from typing import Generator, Optional
import logging
import time
import threading
from contextlib import contextmanager

from app.core.config import settings

logger = logging.getLogger(__name__)

IN_MEMORY_URLS = ("sqlite://", "sqlite:///:memory:")
SLOW_CONNECTION_SECONDS = 1.0


class DatabaseManager:
    """
    Owns the engine and session factory.

    Obligation and ledger writes rely on ``SELECT ... FOR UPDATE``, which
    only PostgreSQL honours; SQLite is accepted for development and tests,
    where the in-process locks in ``app.core.locks`` serialize writers.
    """

    def __init__(self):
        self.engine: Optional[Engine] = None
        self.SessionLocal: Optional[sessionmaker] = None
        self.database_url: str = settings.DATABASE_URL
        self._initialized = False
        self._lock = threading.Lock()

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @property
    def supports_row_locks(self) -> bool:
        return not self.is_sqlite

    def initialize(self, database_url: Optional[str] = None):
        """Create the engine once; later calls are no-ops until close()"""
        if self._initialized:
            return

        with self._lock:
            if self._initialized:
                return
            if database_url:
                self.database_url = database_url

            try:
                self.engine = self._create_engine()
                self.SessionLocal = sessionmaker(
                    autocommit=False,
                    autoflush=False,
                    expire_on_commit=False,
                    bind=self.engine,
                )
                self._setup_event_listeners()
                self._log_backend()
            except Exception as e:
                logger.error(f"Failed to initialize fee ledger database: {e}")
                raise

            self._initialized = True
            if not self.supports_row_locks:
                logger.warning("SQLite backend: student fee writes are serialized in-process only")

    def _create_engine(self) -> Engine:
        engine_args = {
            "url": self.database_url,
            "echo": settings.DATABASE_ECHO,
        }

        if self.is_sqlite:
            engine_args["connect_args"] = {
                "check_same_thread": False,
                "timeout": settings.LOCK_TIMEOUT_SECONDS,
            }
            if self.database_url in IN_MEMORY_URLS:
                engine_args["poolclass"] = StaticPool
        else:
            engine_args.update({
                "poolclass": QueuePool,
                "pool_size": settings.DATABASE_POOL_SIZE,
                "max_overflow": settings.DATABASE_MAX_OVERFLOW,
                "pool_timeout": settings.DATABASE_POOL_TIMEOUT,
                "pool_recycle": settings.DATABASE_POOL_RECYCLE,
                "pool_pre_ping": True,
                "connect_args": {
                    "connect_timeout": 10,
                    "application_name": f"fee_ledger_{settings.ENV}",
                    "options": "-c timezone=UTC",
                },
            })

        return create_engine(**engine_args)

    def _setup_event_listeners(self):
        if self.is_sqlite:
            @event.listens_for(self.engine, "connect")
            def set_sqlite_pragma(dbapi_connection, connection_record):
                # WAL: readers never block the single writer
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA journal_mode=WAL")
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.execute("PRAGMA synchronous=NORMAL")
                cursor.close()

        @event.listens_for(self.engine, "checkout")
        def receive_checkout(dbapi_connection, connection_record, connection_proxy):
            connection_record.info["checkout_time"] = time.time()

        @event.listens_for(self.engine, "checkin")
        def receive_checkin(dbapi_connection, connection_record):
            checkout_time = connection_record.info.pop("checkout_time", None)
            if checkout_time is None:
                return
            held = time.time() - checkout_time
            if held > SLOW_CONNECTION_SECONDS:
                logger.warning(f"Connection held for {held:.2f}s; long lock waits show up here")

    def _log_backend(self):
        with self.engine.connect() as conn:
            if self.is_sqlite:
                version = conn.execute(text("SELECT sqlite_version()")).scalar()
                logger.info(f"Fee ledger database: SQLite {version}")
            else:
                version = conn.execute(text("SELECT version()")).scalar()
                logger.info(f"Fee ledger database: {version[:50]}")

    def get_session(self) -> Generator[Session, None, None]:
        """One session per request; uncommitted work is rolled back on error"""
        if not self._initialized:
            self.initialize()

        session = self.SessionLocal()
        try:
            yield session
        except Exception as e:
            session.rollback()
            logger.error(f"Rolled back request session: {e}")
            raise
        finally:
            session.close()

    def health_check(self) -> dict:
        try:
            start_time = time.time()
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            elapsed_ms = (time.time() - start_time) * 1000
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return {"status": "unhealthy", "error": str(e)}

        return {
            "status": "healthy",
            "backend": self.engine.dialect.name,
            "row_locks": self.supports_row_locks,
            "response_time_ms": round(elapsed_ms, 2),
        }

    def close(self):
        """Dispose of the pool; initialize() may be called again afterwards"""
        if self.engine:
            self.engine.dispose()
            logger.info("Database connections closed")
        self.engine = None
        self.SessionLocal = None
        self._initialized = False


db_manager = DatabaseManager()


@contextmanager
def atomic(session: Session):
    """
    Commit the work done inside the block, or roll all of it back.

    Services wrap every multi-record mutation in this, so a failure
    leaves no partial side effects.
    """
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency yielding a request-scoped session.

        @router.get("/fee-types")
        def list_fee_types(db: Session = Depends(get_db)):
            ...
    """
    yield from db_manager.get_session()


def get_engine() -> Engine:
    if not db_manager._initialized:
        db_manager.initialize()
    return db_manager.engine


def health_check() -> dict:
    if not db_manager._initialized:
        db_manager.initialize()
    return db_manager.health_check()


__all__ = [
    "atomic",
    "get_db",
    "get_engine",
    "health_check",
    "db_manager",
]

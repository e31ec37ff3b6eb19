import logging
import time
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

import config
from errors import ServiceError, StoreFailure

logger = logging.getLogger(__name__)

Base = declarative_base()


class Database:
    """Store handle shared by the managers of one application instance."""

    def __init__(self, url: Optional[str] = None):
        self.url = url or config.DATABASE_URL

        if self.url.startswith("sqlite"):
            # in-memory SQLite must share a single connection across threads
            self.engine = create_engine(
                self.url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self.engine = create_engine(
                self.url,
                pool_pre_ping=True,
                echo=False,
                pool_recycle=300,
            )

        self.session_factory = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=self.engine,
        )

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """
        One unit of work: commit on success, roll back on any failure.

        Store errors are surfaced as StoreFailure once the rollback has run;
        typed service errors pass through unchanged.
        """
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except ServiceError:
            session.rollback()
            raise
        except SQLAlchemyError as e:
            session.rollback()
            logger.exception("Transaction rolled back after store error")
            raise StoreFailure("Database operation failed", {"reason": str(e)}) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def init_schema(self) -> None:
        import models  # noqa: F401  registers mappers on Base
        Base.metadata.create_all(bind=self.engine)

    def wait_for_db(self, max_retries: int = 30, retry_interval: int = 2) -> bool:
        logger.info("Waiting for database connection...")

        for attempt in range(max_retries):
            try:
                with self.engine.connect() as conn:
                    conn.execute(text("SELECT 1"))
                logger.info("Database is available")
                return True
            except OperationalError as e:
                logger.warning(f"Attempt {attempt + 1}/{max_retries}: database not available yet ({e})")
                if attempt < max_retries - 1:
                    time.sleep(retry_interval)

        logger.error("Could not connect to the database after all retries")
        return False

    def seed_tables(self, count: Optional[int] = None, capacity: Optional[int] = None) -> int:
        """Create the initial dining tables when the registry is empty."""
        from models import DiningTable

        count = config.SEED_TABLES if count is None else min(count, 100)
        capacity = capacity or config.DEFAULT_TABLE_CAPACITY

        with self.transaction() as session:
            existing = session.query(DiningTable).count()
            if existing:
                logger.info(f"Database already has {existing} tables")
                return 0
            for _ in range(count):
                session.add(DiningTable(capacity=capacity, is_active=True))
        logger.info(f"Created {count} tables")
        return count

"""
Database operations module for ledger blob storage.

This module handles database connections, schema creation and key/value blob
access using SQLAlchemy ORM. The ledger is stored as one opaque text payload
per key; SQLite is the default with easy migration to other databases.
"""

import logging
from datetime import UTC, datetime
from typing import List, Optional

from sqlalchemy import Column, DateTime, String, Text, create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from exceptions import PersistenceError

# Configure logging
logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    """
    Get current UTC datetime with timezone awareness.

    All timestamps in the database are stored in UTC.

    Returns:
        Current datetime in UTC with timezone info
    """
    return datetime.now(UTC)


# Base class for declarative models (using SQLAlchemy 2.0+ pattern)
Base = declarative_base()


class LedgerBlob(Base):
    """
    SQLAlchemy model holding one serialized ledger payload.

    Attributes:
        key: Blob key (e.g. "ledger")
        payload: Serialized snapshot (JSON, optionally Fernet-encrypted)
        created_at: Timestamp when the key was first written
        updated_at: Timestamp of the last write
    """

    __tablename__ = "ledger_blobs"

    key = Column(String(128), primary_key=True)
    payload = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)

    def __repr__(self) -> str:
        """String representation of the blob row."""
        return f"<LedgerBlob(key='{self.key}', size={len(self.payload or '')}, updated_at={self.updated_at})>"


class DatabaseManager:
    """
    Manages database connections and blob operations.

    This class handles database initialization, session management, and provides
    get/put/delete access to ledger blobs.
    """

    def __init__(self, connection_string: str):
        """
        Initialize the database manager.

        Args:
            connection_string: SQLAlchemy connection string (e.g., 'sqlite:///data/ledger.db')

        Raises:
            PersistenceError: If the engine cannot be created
        """
        try:
            self.engine = create_engine(connection_string, echo=False)
            self.SessionLocal = sessionmaker(bind=self.engine)
            self.connection_string = connection_string
            logger.info(f"Database manager initialized with connection: {connection_string}")
        except (SQLAlchemyError, ValueError) as e:
            logger.error(f"Failed to initialize database: {e}")
            raise PersistenceError(
                "Failed to initialize database",
                details={"connection_string": connection_string},
                original_error=e
            ) from e

    def create_tables(self) -> None:
        """
        Create all database tables if they don't exist.

        Raises:
            PersistenceError: If table creation fails
        """
        try:
            Base.metadata.create_all(self.engine)
            logger.info("Database tables created/verified successfully")
        except SQLAlchemyError as e:
            logger.error(f"Failed to create database tables: {e}")
            raise PersistenceError("Failed to create database tables", original_error=e) from e

    def get_session(self) -> Session:
        """
        Get a new database session.

        Returns:
            SQLAlchemy session object

        Note:
            Caller is responsible for closing the session.
        """
        return self.SessionLocal()

    def get_blob(self, key: str) -> Optional[str]:
        """
        Read the payload stored under a key.

        Args:
            key: Blob key

        Returns:
            Stored payload, or None if the key does not exist

        Raises:
            PersistenceError: If the query fails
        """
        session = self.get_session()
        try:
            row = session.get(LedgerBlob, key)
            return None if row is None else row.payload
        except SQLAlchemyError as e:
            logger.error(f"Failed to read blob '{key}': {e}")
            raise PersistenceError("Failed to read ledger blob", details={"key": key}, original_error=e) from e
        finally:
            session.close()

    def put_blob(self, key: str, payload: str) -> None:
        """
        Insert or replace the payload stored under a key.

        Raises:
            PersistenceError: If the write fails (the transaction is rolled back)
        """
        session = self.get_session()
        try:
            row = session.get(LedgerBlob, key)
            if row is None:
                session.add(LedgerBlob(key=key, payload=payload))
            else:
                row.payload = payload
                row.updated_at = utc_now()
            session.commit()
            logger.debug(f"Stored blob '{key}' ({len(payload)} chars)")
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Failed to write blob '{key}': {e}")
            raise PersistenceError("Failed to write ledger blob", details={"key": key}, original_error=e) from e
        finally:
            session.close()

    def delete_blob(self, key: str) -> bool:
        """
        Delete the payload stored under a key.

        Returns:
            True if a row was deleted, False if the key did not exist
        """
        session = self.get_session()
        try:
            deleted = session.query(LedgerBlob).filter(LedgerBlob.key == key).delete()
            session.commit()
            return bool(deleted)
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Failed to delete blob '{key}': {e}")
            raise PersistenceError("Failed to delete ledger blob", details={"key": key}, original_error=e) from e
        finally:
            session.close()

    def list_keys(self) -> List[str]:
        """Return all stored blob keys in alphabetical order."""
        session = self.get_session()
        try:
            return [row[0] for row in session.query(LedgerBlob.key).order_by(LedgerBlob.key).all()]
        except SQLAlchemyError as e:
            logger.error(f"Failed to list blob keys: {e}")
            raise PersistenceError("Failed to list ledger blobs", original_error=e) from e
        finally:
            session.close()

    def close(self) -> None:
        """Close the database engine connection."""
        if hasattr(self, 'engine'):
            self.engine.dispose()
            logger.info("Database connection closed")

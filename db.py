# db.py - SQLAlchemy engine and the per-call store connector
import logging
import re

from sqlalchemy import create_engine
from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError
from sqlalchemy.pool import NullPool

from errors import QueryError, StoreConnectionError, StoreIntegrityError
from models import table_for

logger = logging.getLogger("credit-api.db")

_PWD_RE = re.compile(r"PWD=.*?;", re.IGNORECASE)


def create_store_engine(settings):
    # NullPool: closing a Connection closes the DBAPI connection, nothing is reused
    return create_engine(settings.database_url, poolclass=NullPool, echo=False, future=True)


def redact(text: str, settings) -> str:
    text = _PWD_RE.sub("PWD=***;", text)
    password = settings.password
    if password:
        text = text.replace(password, "***")
    return text


def _driver_message(exc: SQLAlchemyError) -> str:
    orig = getattr(exc, "orig", None)
    return str(orig) if orig is not None else str(exc)


class StoreConnector:
    """Runs one parameterized statement per call on a fresh connection.

    The connection is released in all cases; rows are materialized before the
    release so nothing the caller does afterwards can keep it open.
    """

    def __init__(self, engine, settings):
        self.engine = engine
        self.settings = settings

    def execute(self, statement) -> list:
        """Run a query and return its rows as dicts."""
        return self._run(statement, fetch=True)

    def execute_write(self, statement) -> int:
        """Run a mutation, commit it and return the affected row count."""
        return self._run(statement, fetch=False)

    def _run(self, statement, fetch: bool):
        try:
            conn = self.engine.connect()
        except SQLAlchemyError as e:
            message = redact(_driver_message(e), self.settings)
            logger.error("DB connection error: %s", message)
            raise StoreConnectionError(f"Database connection failed: {message}") from e

        try:
            logger.info("Executing query: %s...", " ".join(statement.sql.split())[:100])
            result = conn.exec_driver_sql(statement.sql, tuple(statement.params))
            if fetch:
                outcome = [dict(row._mapping) for row in result]
                logger.info("Query successful. Rows returned: %d", len(outcome))
            else:
                outcome = result.rowcount
                logger.info("Statement successful. Rows affected: %d", outcome)
            conn.commit()
            return outcome
        except IntegrityError as e:
            message = redact(_driver_message(e), self.settings)
            logger.error("Constraint violation: %s", message)
            raise StoreIntegrityError(f"Constraint violation: {message}") from e
        except DBAPIError as e:
            message = redact(_driver_message(e), self.settings)
            if e.connection_invalidated:
                logger.error("DB connection lost: %s", message)
                raise StoreConnectionError(f"Database connection lost: {message}") from e
            logger.error("Query error: %s", message)
            raise QueryError(f"Query failed: {message}") from e
        except SQLAlchemyError as e:
            message = redact(str(e), self.settings)
            logger.error("Query error: %s", message)
            raise QueryError(f"Query failed: {message}") from e
        finally:
            try:
                conn.close()
            except SQLAlchemyError:
                logger.warning("Error closing DB connection", exc_info=True)


def init_db(engine, settings):
    """Create the applications table if it does not exist (local development)."""
    table = table_for(settings)
    table.metadata.create_all(bind=engine)
    logger.info("Ensured table %s exists", settings.qualified_table)


if __name__ == "__main__":
    from config import load_settings

    logging.basicConfig(level=logging.INFO)
    _settings = load_settings()
    init_db(create_store_engine(_settings), _settings)

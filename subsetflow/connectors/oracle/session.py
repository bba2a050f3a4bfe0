from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Tuple

from sqlalchemy import create_engine
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import DBAPIError
from sqlalchemy.pool import NullPool

from subsetflow.connectors.oracle.utils import split_error
from subsetflow.core.models import ConnectionProfile
from subsetflow.exceptions import StatementError
from subsetflow.logging import get_logger

logger = get_logger(__name__)


def build_engine(profile: ConnectionProfile) -> Engine:
    """Create an engine for the ``oracle+oracledb`` dialect.

    A run holds exactly one connection for its whole lifetime, so there is no
    pool to speak of; connections are closed when released.
    """
    dsn = profile.dsn or f"{profile.host}:{profile.port}/{profile.service_name}"
    engine = create_engine(
        "oracle+oracledb://",
        connect_args={"user": profile.user, "password": profile.password, "dsn": dsn},
        poolclass=NullPool,
        echo=False,
    )
    logger.debug(f"OracleSession: Created engine for {profile.user}@{dsn}")
    return engine


class OracleSession:
    """A single long-lived connection to the target database.

    Statements are handed to the driver verbatim, without bind parameter
    parsing, so SQL text produced from templates reaches the database exactly
    as resolved. Database failures are raised as ``StatementError``.
    """

    def __init__(self, connection: Connection, engine: Optional[Engine] = None):
        self._connection = connection
        self._engine = engine
        self._autocommit = False

    @classmethod
    @contextmanager
    def connect(cls, profile: ConnectionProfile) -> Iterator["OracleSession"]:
        engine = build_engine(profile)
        logger.info(f"Connecting to {profile.user}@{profile.display_dsn}")
        try:
            connection = engine.connect()
        except DBAPIError as e:
            code, message = split_error(e.orig)
            engine.dispose()
            raise StatementError("connect", code, message, e) from e

        session = cls(connection, engine)
        try:
            yield session
        finally:
            session.close()

    @property
    def autocommit(self) -> bool:
        return self._autocommit

    def enable_autocommit(self) -> None:
        """Commit every statement as soon as it completes."""
        self._connection.execution_options(isolation_level="AUTOCOMMIT")
        self._autocommit = True
        logger.debug("OracleSession: autocommit enabled")

    def execute(self, sql: str, params: Optional[Dict[str, Any]] = None) -> int:
        """Execute a statement and return the affected row count."""
        result = self._run(sql, params)
        rowcount = result.rowcount
        result.close()
        return rowcount if rowcount is not None and rowcount >= 0 else 0

    def query(self, sql: str, params: Optional[Dict[str, Any]] = None) -> List[Tuple]:
        """Execute a query and return all rows as tuples."""
        result = self._run(sql, params)
        return [tuple(row) for row in result.fetchall()]

    def scalar(self, sql: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Execute a query and return the first column of the first row."""
        rows = self.query(sql, params)
        if not rows:
            return None
        return rows[0][0]

    def cursor(self) -> Any:
        """Return a raw driver cursor, for calling PL/SQL packages."""
        return self._connection.connection.cursor()

    def commit(self) -> None:
        if not self._autocommit:
            self._connection.commit()

    def close(self) -> None:
        if self._connection is not None and not self._connection.closed:
            self._connection.close()
        if self._engine is not None:
            self._engine.dispose()
        logger.debug("OracleSession: closed")

    def _run(self, sql: str, params: Optional[Dict[str, Any]]):
        logger.debug(f"OracleSession: executing {sql.strip()[:200]}")
        try:
            if params:
                return self._connection.exec_driver_sql(sql, params)
            return self._connection.exec_driver_sql(sql)
        except DBAPIError as e:
            code, message = split_error(e.orig)
            raise StatementError(sql, code, message, e) from e

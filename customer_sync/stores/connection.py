"""
Per-request connection to one of the two databases.

The two databases never share a transaction. Each StoreConnection owns a
single psycopg2 connection, keeps a journal of the write statements issued
since the last commit/rollback, and uses that journal to retry a commit once
when the connection turns out to be dead right before committing.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import psycopg2
from psycopg2.extras import RealDictCursor

from customer_sync.errors import ConnectionLostError, StoreError

logger = logging.getLogger(__name__)

Statement = Tuple[Any, Sequence[Any]]


class StoreConnection:
    """
    Lazily opened connection with local transaction scoping.

    Args:
        name: Logical store name used in errors and logs
        connect_kwargs: Arguments for the connect callable
        connect: Connection factory (psycopg2.connect by default)
        on_commit_retry: Callback invoked with the store name when a commit
            has to be retried on a fresh connection
    """

    def __init__(
        self,
        name: str,
        connect_kwargs: Optional[Dict[str, Any]] = None,
        connect: Callable[..., Any] = psycopg2.connect,
        on_commit_retry: Optional[Callable[[str], None]] = None
    ):
        self.name = name
        self._connect_kwargs = connect_kwargs or {}
        self._connect = connect
        self._on_commit_retry = on_commit_retry
        self._conn = None
        self._journal: List[Statement] = []

    @property
    def connection(self):
        if self._conn is None:
            self._open()
        return self._conn

    def _open(self) -> None:
        logger.debug(f"Opening connection to {self.name}")
        try:
            self._conn = self._connect(**self._connect_kwargs)
        except psycopg2.Error as e:
            raise StoreError(self.name, f"Could not connect: {e}") from e

    def is_alive(self) -> bool:
        """True when the connection is open and answers a trivial query."""
        if self._conn is None or self._conn.closed:
            return False

        try:
            with self._conn.cursor() as cursor:
                cursor.execute("SELECT 1")
            return True
        except (psycopg2.OperationalError, psycopg2.InterfaceError):
            return False

    def query_one(self, statement, params: Sequence[Any] = ()) -> Optional[Dict[str, Any]]:
        rows = self._run(statement, params, fetch="one")
        return dict(rows) if rows is not None else None

    def query_all(self, statement, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        rows = self._run(statement, params, fetch="all")
        return [dict(row) for row in rows]

    def execute(self, statement, params: Sequence[Any] = ()) -> int:
        """
        Run a write statement inside the current transaction.

        Returns:
            Number of rows affected
        """
        rowcount = self._run(statement, params, fetch=None)
        self._journal.append((statement, tuple(params)))
        return rowcount

    def _run(self, statement, params: Sequence[Any], fetch: Optional[str]):
        try:
            with self.connection.cursor(cursor_factory=RealDictCursor) as cursor:
                cursor.execute(statement, params)
                if fetch == "one":
                    return cursor.fetchone()
                if fetch == "all":
                    return cursor.fetchall()
                return cursor.rowcount
        except psycopg2.Error as e:
            logger.error(f"Statement failed on {self.name}: {e}")
            raise StoreError(self.name, str(e).strip()) from e

    def begin(self) -> None:
        """
        Start a fresh unit of work.

        psycopg2 opens transactions implicitly; this only resets the journal
        so a retried commit never replays statements from an earlier unit.
        """
        self._journal.clear()

    def commit(self) -> None:
        """
        Commit the current transaction.

        When the connection is dead, reconnect once, replay the journaled
        writes and commit again.

        Raises:
            ConnectionLostError: If the retry also fails
            StoreError: If the commit itself is rejected
        """
        if self._conn is None and not self._journal:
            return

        if not self.is_alive():
            logger.warning(f"Connection to {self.name} lost before commit, retrying once")
            if self._on_commit_retry:
                self._on_commit_retry(self.name)
            self._replay_on_new_connection()

        try:
            self._conn.commit()
        except psycopg2.Error as e:
            raise StoreError(self.name, f"Commit failed: {e}") from e
        finally:
            self._journal.clear()

    def _replay_on_new_connection(self) -> None:
        pending = list(self._journal)
        self._discard()

        try:
            self._conn = self._connect(**self._connect_kwargs)
            with self._conn.cursor() as cursor:
                for statement, params in pending:
                    cursor.execute(statement, params)
        except psycopg2.Error as e:
            self._journal.clear()
            raise ConnectionLostError(self.name, f"Reconnect and commit retry failed: {e}") from e

        logger.info(f"Replayed {len(pending)} statement(s) on new {self.name} connection")

    def rollback(self) -> None:
        """Roll back, tolerating a connection that has already gone away."""
        self._journal.clear()

        if self._conn is None or self._conn.closed:
            return

        try:
            self._conn.rollback()
        except (psycopg2.OperationalError, psycopg2.InterfaceError) as e:
            logger.warning(f"Rollback on {self.name} skipped, connection unusable: {e}")

    def _discard(self) -> None:
        conn, self._conn = self._conn, None
        if conn is None:
            return
        try:
            conn.close()
        except psycopg2.Error as e:
            logger.debug(f"Ignoring close error on {self.name}: {e}")

    def close(self) -> None:
        """Release the connection. Never raises for an already-dead connection."""
        self._journal.clear()
        self._discard()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None:
            self.rollback()
        self.close()

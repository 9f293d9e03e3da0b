"""
PostgreSQL access for the scheduling store.

Connections come from a psycopg2 ThreadedConnectionPool, one per database
URL for the whole process. Each checkout writes the caller's user id into
app.current_user_id, which the profile, appointment and task policies in
db/schema.sql read. Writes that must land together (assigning a technician,
completing an appointment with its tasks) use transaction().
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Tuple
from uuid import UUID

import psycopg2
import psycopg2.extras
import psycopg2.pool

from utils.user_context import current_user_id

logger = logging.getLogger(__name__)

Params = Tuple | Dict | None

_SET_CALLER_SQL = "SELECT set_config('app.current_user_id', %s, false)"

_jsonb_registered = False


def _adapt(value: Any) -> Any:
    """UUIDs go over the wire as text; containers are walked."""
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (list, tuple)):
        return type(value)(_adapt(v) for v in value)
    if isinstance(value, dict):
        return {k: _adapt(v) for k, v in value.items()}
    return value


class PostgresClient:
    """
    Pooled PostgreSQL client that runs every statement as the current caller.

    Outside acting_as / an authenticated request the caller is '' and the
    row policies match nothing, so reads come back empty rather than leaking.

        db = PostgresClient(database_url)
        with acting_as(customer_id):
            db.execute("SELECT * FROM appointments")

        with db.transaction() as cur:
            cur.execute("UPDATE appointments SET status = 'completed' WHERE id = %s", (...,))
            cur.execute("UPDATE tasks SET status = 'completed' WHERE appointment_id = %s", (...,))
    """

    _connection_pools: Dict[str, psycopg2.pool.ThreadedConnectionPool] = {}
    _pools_lock = threading.RLock()

    def __init__(self, database_url: str, minconn: int = 2, maxconn: int = 20):
        self._database_url = database_url
        self._minconn = minconn
        self._maxconn = maxconn
        self._pool()

    def _pool(self) -> psycopg2.pool.ThreadedConnectionPool:
        global _jsonb_registered
        with self._pools_lock:
            pool = self._connection_pools.get(self._database_url)
            if pool is None:
                pool = psycopg2.pool.ThreadedConnectionPool(
                    minconn=self._minconn,
                    maxconn=self._maxconn,
                    dsn=self._database_url,
                    connect_timeout=30,
                )
                if not _jsonb_registered:
                    # audit_log.changes comes back as dicts
                    psycopg2.extras.register_default_jsonb(globally=True)
                    _jsonb_registered = True
                self._connection_pools[self._database_url] = pool
                logger.info("PostgreSQL pool opened (%d-%d connections)", self._minconn, self._maxconn)
            return pool

    @contextmanager
    def get_connection(self):
        """Borrow a connection bound to the current caller; always returned to the pool."""
        pool = self._pool()
        conn = pool.getconn()
        if conn is None:
            raise RuntimeError("PostgreSQL pool returned no connection")
        try:
            caller = current_user_id()
            # Session-level setting on a pooled connection: rewritten on every checkout
            with conn.cursor() as cur:
                cur.execute(_SET_CALLER_SQL, (str(caller) if caller is not None else "",))
            yield conn
        finally:
            pool.putconn(conn)

    @contextmanager
    def transaction(self) -> Iterator[psycopg2.extras.RealDictCursor]:
        """Cursor for a unit of work: commit on clean exit, rollback and re-raise otherwise."""
        with self.get_connection() as conn:
            try:
                with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                    yield cur
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    def _convert_params(self, params: Params) -> Params:
        return None if params is None else _adapt(params)

    def execute(self, query: str, params: Params = None) -> List[Dict[str, Any]]:
        """Run one statement and return its rows as dicts ([] for statements without a result)."""
        with self.transaction() as cur:
            cur.execute(query, self._convert_params(params))
            if not cur.description:
                return []
            return [dict(row) for row in cur.fetchall()]

    def execute_single(self, query: str, params: Params = None) -> Dict[str, Any] | None:
        rows = self.execute(query, params)
        return rows[0] if rows else None

    def execute_returning(self, query: str, params: Params = None) -> List[Dict[str, Any]]:
        """INSERT / UPDATE ... RETURNING; the returned rows."""
        with self.transaction() as cur:
            cur.execute(query, self._convert_params(params))
            return [dict(row) for row in cur.fetchall()]

    def close(self) -> None:
        with self._pools_lock:
            pool = self._connection_pools.pop(self._database_url, None)
            if pool is not None:
                pool.closeall()

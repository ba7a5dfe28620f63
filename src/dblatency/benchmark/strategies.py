"""Query strategies: one adapter per database connectivity method.

Every strategy runs the same bounded query against the employees table,
`repetitions` times in a row (a "waterfall"), and reports how long that took:
- tcp-pool: psycopg connection pool, kept open for the whole process
- http: one stateless SQL-over-HTTP request per query (httpx)
- websocket: a fresh WebSocket per invocation (websockets)
- http-orm: SQLAlchemy Core builds the query, HTTP transport runs it
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any
from urllib.parse import urlsplit

import httpx
import psycopg
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool
from sqlalchemy.dialects import postgresql
from websockets.exceptions import WebSocketException
from websockets.sync.client import ClientConnection, connect

from dblatency.benchmark.errors import ConfigurationError, StrategyError
from dblatency.schema import EMPLOYEES_SQL, employees_select

if TYPE_CHECKING:
    from dblatency.benchmark.runner import BenchmarkSettings

logger = logging.getLogger(__name__)

# Display names, in presentation order
STRATEGY_LABELS = {
    "tcp-pool": "Neon pg (TCP)",
    "http": "Neon HTTP",
    "websocket": "Neon WebSocket",
    "http-orm": "Neon SQLAlchemy HTTP",
}

MIN_REPETITIONS = 1
MAX_REPETITIONS = 5


@dataclass(frozen=True)
class QueryResult:
    """Outcome of one strategy invocation.

    Attributes:
        rows: Rows returned by the last repetition only.
        query_duration_ms: Time spent inside the strategy, in milliseconds.
        connection_is_new: Whether the underlying connection was created
            during this invocation.
    """

    rows: list[dict[str, Any]] = field(default_factory=list)
    query_duration_ms: float = 0.0
    connection_is_new: bool = False


def clamp_repetitions(
    value: Any, minimum: int = MIN_REPETITIONS, maximum: int = MAX_REPETITIONS
) -> int:
    """Convert a raw query-count parameter to an int within bounds.

    Non-numeric input defaults to 1, like a missing `count` parameter.
    """
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 1
    if number != number:  # NaN
        return 1
    return int(min(max(number, minimum), maximum))


class QueryStrategy:
    """Base class for connectivity strategies.

    Subclasses implement `_fetch` (one round trip) and may override
    `_connect` to set up a connection, or `_waterfall` when the whole
    series of queries has to run inside a per-call resource.
    Library errors listed in `errors` are turned into StrategyError.
    """

    strategy_id: str = ""
    errors: tuple[type[BaseException], ...] = (OSError,)

    @property
    def label(self) -> str:
        return STRATEGY_LABELS.get(self.strategy_id, self.strategy_id)

    def execute(self, repetitions: int) -> QueryResult:
        """Run the query `repetitions` times sequentially.

        Args:
            repetitions: Number of sequential round trips (clamped to 1..5).

        Returns:
            QueryResult with the rows of the final repetition.

        Raises:
            StrategyError: If connecting or querying failed.
        """
        repetitions = clamp_repetitions(repetitions)
        start = time.perf_counter()
        try:
            rows, connection_is_new = self._waterfall(repetitions)
        except StrategyError:
            raise
        except self.errors as e:
            raise StrategyError(self.strategy_id, str(e) or type(e).__name__) from e
        elapsed_ms = (time.perf_counter() - start) * 1000

        logger.debug(
            "%s: %d queries in %.2fms (new connection: %s)",
            self.strategy_id,
            repetitions,
            elapsed_ms,
            connection_is_new,
        )
        return QueryResult(
            rows=rows,
            query_duration_ms=elapsed_ms,
            connection_is_new=connection_is_new,
        )

    def _waterfall(self, repetitions: int) -> tuple[list[dict[str, Any]], bool]:
        """Run the sequential queries; return the last rows and whether a
        connection was created."""
        connection_is_new = self._connect()
        rows: list[dict[str, Any]] = []
        for _ in range(repetitions):
            rows = self._fetch()
        return rows, connection_is_new

    def _connect(self) -> bool:
        """Prepare a connection; return True if one was created."""
        return False

    def _fetch(self) -> list[dict[str, Any]]:
        raise NotImplementedError

    def close(self) -> None:
        """Release process-wide resources."""


class TcpPoolStrategy(QueryStrategy):
    """Postgres wire protocol over TCP through a process-wide pool."""

    strategy_id = "tcp-pool"
    errors = (psycopg.Error, OSError)

    def __init__(
        self,
        conninfo: str,
        min_size: int = 1,
        max_size: int = 4,
        timeout: float = 30.0,
    ) -> None:
        self.conninfo = conninfo
        self.min_size = min_size
        self.max_size = max_size
        self.timeout = timeout
        self._pool: ConnectionPool | None = None

    def _connect(self) -> bool:
        # The pool outlives the call so warm invocations reuse connections.
        if self._pool is not None:
            return False
        logger.info("Opening connection pool (%d-%d)", self.min_size, self.max_size)
        self._pool = ConnectionPool(
            self.conninfo,
            min_size=self.min_size,
            max_size=self.max_size,
            timeout=self.timeout,
            kwargs={"row_factory": dict_row},
            open=True,
        )
        return True

    def _fetch(self) -> list[dict[str, Any]]:
        assert self._pool is not None
        with self._pool.connection() as conn:
            return conn.execute(EMPLOYEES_SQL).fetchall()

    def close(self) -> None:
        if self._pool is not None:
            self._pool.close()
            self._pool = None


def http_endpoint_for(conninfo: str) -> str:
    """Derive the SQL-over-HTTP endpoint from a postgres URL."""
    host = urlsplit(conninfo).hostname
    if not host:
        raise ConfigurationError(f"Cannot derive HTTP endpoint from {conninfo!r}")
    return f"https://{host}/sql"


class HttpStrategy(QueryStrategy):
    """Stateless SQL-over-HTTP: every query is an independent POST."""

    strategy_id = "http"
    # ValueError covers malformed JSON bodies
    errors = (httpx.HTTPError, ValueError, OSError)

    def __init__(
        self,
        conninfo: str,
        endpoint: str | None = None,
        client: httpx.Client | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.conninfo = conninfo
        self.endpoint = endpoint or http_endpoint_for(conninfo)
        self.client = client or httpx.Client(timeout=timeout)

    def _fetch(self) -> list[dict[str, Any]]:
        return self._query(EMPLOYEES_SQL)

    def _query(self, sql: str) -> list[dict[str, Any]]:
        response = self.client.post(
            self.endpoint,
            json={"query": sql, "params": []},
            headers={
                "Neon-Connection-String": self.conninfo,
                "Neon-Raw-Text-Output": "true",
                "Neon-Array-Mode": "false",
            },
        )
        response.raise_for_status()
        body = response.json()
        if not isinstance(body, dict):
            raise StrategyError(self.strategy_id, "unexpected response body")
        return list(body.get("rows", []))

    def close(self) -> None:
        self.client.close()


class HttpOrmStrategy(HttpStrategy):
    """SQLAlchemy-built queries shipped over the HTTP transport."""

    strategy_id = "http-orm"

    def _fetch(self) -> list[dict[str, Any]]:
        # Build per call, so query construction is part of the measured cost.
        statement = employees_select().compile(
            dialect=postgresql.dialect(),
            compile_kwargs={"literal_binds": True},
        )
        return self._query(str(statement))


class WebSocketStrategy(QueryStrategy):
    """SQL over a WebSocket opened and closed on every invocation.

    Frames are JSON: `{"query": ..., "params": [...]}` is answered by
    `{"rows": [...]}` or `{"error": "..."}`.
    """

    strategy_id = "websocket"
    errors = (WebSocketException, ValueError, OSError)

    def __init__(self, conninfo: str, endpoint: str, timeout: float = 30.0) -> None:
        self.conninfo = conninfo
        self.endpoint = endpoint
        self.timeout = timeout

    def _waterfall(self, repetitions: int) -> tuple[list[dict[str, Any]], bool]:
        rows: list[dict[str, Any]] = []
        with connect(
            self.endpoint,
            additional_headers={"Neon-Connection-String": self.conninfo},
            open_timeout=self.timeout,
        ) as socket:
            for _ in range(repetitions):
                rows = self._query(socket)
        return rows, True

    def _query(self, socket: ClientConnection) -> list[dict[str, Any]]:
        socket.send(json.dumps({"query": EMPLOYEES_SQL, "params": []}))
        reply = json.loads(socket.recv(timeout=self.timeout))
        if not isinstance(reply, dict):
            raise StrategyError(self.strategy_id, "unexpected response frame")
        if "error" in reply:
            raise StrategyError(self.strategy_id, str(reply["error"]))
        return list(reply.get("rows", []))


def missing_setting(strategy_id: str, settings: BenchmarkSettings) -> str | None:
    """Return what a strategy still needs to be configured, or None."""
    if strategy_id not in STRATEGY_LABELS:
        return "unknown strategy"
    if not settings.database_url:
        return f"set {settings.database_url_env}"
    if strategy_id == "websocket" and not settings.websocket_endpoint:
        return "set websocket_endpoint"
    return None


def build_strategy(strategy_id: str, settings: BenchmarkSettings) -> QueryStrategy:
    """Create the adapter for one strategy id.

    Raises:
        ConfigurationError: If the strategy is unknown or not configured.
    """
    missing = missing_setting(strategy_id, settings)
    if missing:
        raise ConfigurationError(f"Strategy {strategy_id!r}: {missing}")
    assert settings.database_url is not None

    if strategy_id == "tcp-pool":
        return TcpPoolStrategy(
            settings.database_url,
            min_size=settings.pool_min_size,
            max_size=settings.pool_max_size,
            timeout=settings.timeout,
        )
    if strategy_id == "http":
        return HttpStrategy(
            settings.database_url,
            endpoint=settings.http_endpoint,
            timeout=settings.timeout,
        )
    if strategy_id == "http-orm":
        return HttpOrmStrategy(
            settings.database_url,
            endpoint=settings.http_endpoint,
            timeout=settings.timeout,
        )
    assert settings.websocket_endpoint is not None
    return WebSocketStrategy(
        settings.database_url,
        endpoint=settings.websocket_endpoint,
        timeout=settings.timeout,
    )


def build_strategies(
    settings: BenchmarkSettings, only: list[str] | None = None
) -> dict[str, QueryStrategy]:
    """Create the adapters for the enabled (or requested) strategies.

    Raises:
        ConfigurationError: If any strategy cannot be built; the adapters
            built before it are closed.
    """
    wanted = only if only is not None else settings.strategies
    strategies: dict[str, QueryStrategy] = {}
    try:
        for strategy_id in wanted:
            strategies[strategy_id] = build_strategy(strategy_id, settings)
    except ConfigurationError:
        for strategy in strategies.values():
            strategy.close()
        raise
    return strategies

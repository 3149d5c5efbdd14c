"""
Backend Client Abstract Base Class

Defines the interface contract for talking to the hosted backend.
Both InMemoryBackend and RestBackendClient implement these methods,
so services behave identically regardless of which client is active.

The hosted backend exposes two kinds of calls:
    - Generic table CRUD (select / insert / update with column filters)
    - Named remote procedures (RPC) returning JSON payloads

Design Pattern: Strategy Pattern
    - Runtime switching between the in-memory double and the REST client
    - Services depend only on this interface
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from pos_gateway.exceptions import NotFoundError


# =============================================================================
# QUERY VALUE OBJECTS
# =============================================================================

@dataclass(frozen=True)
class Filter:
    """
    A single column predicate.

    Attributes:
        column: Column name
        op: One of eq, neq, gt, gte, lt, lte, in, ilike, is
        value: Comparison value (a sequence for ``in``, None for ``is``)
    """
    column: str
    op: str
    value: Any = None


@dataclass(frozen=True)
class OrderBy:
    """Sort instruction for a select."""
    column: str
    descending: bool = False


def eq(column: str, value: Any) -> Filter:
    return Filter(column, "eq", value)


def neq(column: str, value: Any) -> Filter:
    return Filter(column, "neq", value)


def gt(column: str, value: Any) -> Filter:
    return Filter(column, "gt", value)


def gte(column: str, value: Any) -> Filter:
    return Filter(column, "gte", value)


def lt(column: str, value: Any) -> Filter:
    return Filter(column, "lt", value)


def lte(column: str, value: Any) -> Filter:
    return Filter(column, "lte", value)


def in_(column: str, values: Sequence[Any]) -> Filter:
    return Filter(column, "in", tuple(values))


def ilike(column: str, pattern: str) -> Filter:
    """Case-insensitive match; ``%`` is the wildcard."""
    return Filter(column, "ilike", pattern)


def is_null(column: str) -> Filter:
    return Filter(column, "is", None)


_EMBED_RE = re.compile(r"(\w+)\s*\(([^()]*)\)")


def parse_columns(columns: str) -> tuple[list[str], dict[str, list[str]]]:
    """
    Split a select string into plain columns and embedded relations.

    Example:
        >>> parse_columns("*, order_items(id, quantity)")
        (['*'], {'order_items': ['id', 'quantity']})
    """
    embeds: dict[str, list[str]] = {}
    for name, inner in _EMBED_RE.findall(columns):
        embeds[name] = [c.strip() for c in inner.split(",") if c.strip()]
    plain_part = _EMBED_RE.sub("", columns)
    plain = [c.strip() for c in plain_part.split(",") if c.strip()]
    return plain, embeds


# =============================================================================
# CLIENT INTERFACE
# =============================================================================

class BaseBackendClient(ABC):
    """
    Abstract base class for hosted backend clients.

    Errors reported by the backend (constraint violations, permission
    denials, unknown procedures, transport failures) are raised as
    ``BackendError``. Logical failures reported *inside* an RPC envelope
    (``{"success": false, "error": ...}``) are returned untouched; the
    service layer decides what they mean.

    Example:
        >>> backend = get_backend()
        >>> rows = await backend.select(
        ...     "orders",
        ...     "*, order_items(*)",
        ...     filters=[in_("status", ["pending", "preparing"])],
        ...     order=[OrderBy("created_at")],
        ... )
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the backend provider name (e.g. "memory", "rest")."""
        pass

    @abstractmethod
    async def select(
        self,
        table: str,
        columns: str = "*",
        filters: Optional[Sequence[Filter]] = None,
        order: Optional[Sequence[OrderBy]] = None,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        """
        Read rows from a table.

        Args:
            table: Table name
            columns: Column list, may embed relations ("*, order_items(*)")
            filters: Predicates combined with AND
            order: Sort instructions, applied in sequence
            limit: Maximum number of rows

        Returns:
            List of row dictionaries
        """
        pass

    @abstractmethod
    async def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        """Insert one row and return it as stored."""
        pass

    @abstractmethod
    async def update(
        self,
        table: str,
        values: dict[str, Any],
        filters: Sequence[Filter],
    ) -> list[dict[str, Any]]:
        """Update matching rows and return them as stored."""
        pass

    @abstractmethod
    async def rpc(self, name: str, params: Optional[dict[str, Any]] = None) -> Any:
        """
        Invoke a named remote procedure.

        Args:
            name: Procedure name (e.g. "update_order_status")
            params: Named parameters, conventionally prefixed with ``p_``

        Returns:
            Decoded JSON payload returned by the procedure
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Verify the backend is reachable."""
        pass

    async def select_one(
        self,
        table: str,
        columns: str = "*",
        filters: Optional[Sequence[Filter]] = None,
    ) -> dict[str, Any]:
        """
        Read exactly one row.

        Raises:
            NotFoundError: If no row matches
        """
        rows = await self.select(table, columns, filters=filters, limit=1)
        if not rows:
            raise NotFoundError(f"No row in {table} matches the request")
        return rows[0]

    async def update_one(
        self,
        table: str,
        values: dict[str, Any],
        filters: Sequence[Filter],
    ) -> dict[str, Any]:
        """
        Update and return a single row.

        Raises:
            NotFoundError: If no row matched the filters
        """
        rows = await self.update(table, values, filters)
        if not rows:
            raise NotFoundError(f"No row in {table} matches the request")
        return rows[0]

    async def close(self) -> None:
        """Release network resources. Default: nothing to release."""
        return None

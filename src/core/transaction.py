"""Compensating unit of work over the Supabase table API.

PostgREST has no client-side transactions, so every write made through a
:class:`SupabaseTransaction` records the inverse operation. On failure the
inverses run newest-first; on success the staged domain events are handed to
the event bus. Events are therefore never observable for rolled-back work.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from supabase import Client

from src.api.middleware.error_handler import APIError, InfrastructureError
from src.core.events import EventBus, get_event_bus
from src.schemas.events import DomainEvent

logger = logging.getLogger(__name__)


class SupabaseTransaction:
    """Async context manager scoping the writes of one service call.

    Example:
        async with SupabaseTransaction(client) as tx:
            rows = tx.insert("invitations", row)
            tx.stage(UserInvitationSentEvent(...))
    """

    def __init__(self, client: Client, event_bus: EventBus | None = None) -> None:
        self.client = client
        self.event_bus = event_bus or get_event_bus()
        self._compensations: list[tuple[str, Callable[[], Any]]] = []
        self._events: list[DomainEvent] = []
        self._closed = False

    async def __aenter__(self) -> SupabaseTransaction:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if exc is None:
            await self.commit()
            return False

        self.rollback()

        if isinstance(exc, APIError) or not isinstance(exc, Exception):
            return False

        logger.error("Transaction failed: %s", str(exc))
        raise InfrastructureError("The operation could not be completed") from exc

    @property
    def staged_events(self) -> list[DomainEvent]:
        return list(self._events)

    def stage(self, event: DomainEvent) -> None:
        """Queue an event for publication after commit."""
        self._events.append(event)

    def insert(self, table: str, rows: dict[str, Any] | list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Insert rows and record their deletion as the compensation.

        Args:
            table: Target table name.
            rows: One row or a list of rows.

        Returns:
            list[dict]: The inserted rows as returned by PostgREST.
        """
        response = self.client.table(table).insert(rows).execute()
        inserted = response.data or []
        ids = [row["id"] for row in inserted if row.get("id") is not None]

        if ids:
            self._compensations.append(
                (
                    f"delete {len(ids)} row(s) from {table}",
                    lambda: self.client.table(table).delete().in_("id", ids).execute(),
                )
            )
        return inserted

    def update(
        self,
        table: str,
        values: dict[str, Any],
        *,
        revert: dict[str, Any] | None = None,
        eq: dict[str, Any] | None = None,
        in_: dict[str, list[Any]] | None = None,
        lte: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Apply a filtered update and return the rows it matched.

        The filters make the update conditional, so a row whose state changed
        concurrently is simply not returned. ``revert`` holds the values to
        restore on the returned rows if the transaction rolls back.

        Args:
            table: Target table name.
            values: Column values to set.
            revert: Column values restoring the previous state.
            eq: Equality filters.
            in_: Membership filters.
            lte: Less-than-or-equal filters.

        Returns:
            list[dict]: Updated rows.
        """
        query = self.client.table(table).update(values)
        for column, value in (eq or {}).items():
            query = query.eq(column, value)
        for column, options in (in_ or {}).items():
            query = query.in_(column, options)
        for column, value in (lte or {}).items():
            query = query.lte(column, value)

        response = query.execute()
        updated = response.data or []
        ids = [row["id"] for row in updated if row.get("id") is not None]

        if revert and ids:
            self._compensations.append(
                (
                    f"revert {len(ids)} row(s) in {table}",
                    lambda: self.client.table(table).update(revert).in_("id", ids).execute(),
                )
            )
        return updated

    def delete(
        self,
        table: str,
        *,
        eq: dict[str, Any] | None = None,
        in_: dict[str, list[Any]] | None = None,
    ) -> list[dict[str, Any]]:
        """Delete the matching rows and record their re-insertion as the compensation."""
        query = self.client.table(table).delete()
        for column, value in (eq or {}).items():
            query = query.eq(column, value)
        for column, options in (in_ or {}).items():
            query = query.in_(column, options)

        deleted = query.execute().data or []
        if deleted:
            self._compensations.append(
                (
                    f"restore {len(deleted)} row(s) in {table}",
                    lambda: self.client.table(table).insert(deleted).execute(),
                )
            )
        return deleted

    def rollback(self) -> None:
        """Run recorded compensations newest-first."""
        if self._closed:
            return
        self._closed = True
        self._events.clear()

        while self._compensations:
            description, compensate = self._compensations.pop()
            try:
                compensate()
                logger.info("Rolled back: %s", description)
            except Exception as e:
                # Keep undoing the remaining writes
                logger.error("Compensation failed (%s): %s", description, str(e))

    async def commit(self) -> None:
        """Finalize the unit of work and publish staged events."""
        if self._closed:
            return
        self._closed = True
        self._compensations.clear()

        events, self._events = self._events, []
        await self.event_bus.publish_all(events)

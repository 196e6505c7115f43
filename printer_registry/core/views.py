"""Authoritative and working views over the printer store.

The authoritative view is a single session owned by the event loop that
opened the pair. Every read or write through it happens under the pair's
lock, so it has one user at a time. Background tasks get a working view: a
private session on the same engine whose committed changes are merged into
the authoritative view before ``save`` returns ("dual save").

Merging is last-writer-wins by field. A working view records which column
attributes it changed and which rows it deleted each time it flushes; those
field values are applied to the authoritative copies as committed state,
other fields keep the authoritative value.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import event, inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import Session, object_session
from sqlalchemy.orm.attributes import set_committed_value

from printer_registry.core.config import settings
from printer_registry.core.exceptions import PropagationError, StorageIOError, ViewOwnershipError

logger = logging.getLogger(__name__)


class WorkingView:
    """A task-private session whose changes propagate to the authoritative view."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self._task = asyncio.current_task()
        # identity key -> {attribute: value} for every field changed since the last propagate
        self.touched: dict[tuple, dict[str, Any]] = {}
        self.deleted: set[tuple] = set()
        self.cleared = False
        event.listen(session.sync_session, "after_flush", self._record_flush)

    def _record_flush(self, session: Session, flush_context):
        # Runs before the flushed states are reset, so history is still available
        for obj in session.dirty:
            state = inspect(obj)
            if state.key is None:
                continue
            changes = self.touched.setdefault(state.key, {})
            for prop in state.mapper.column_attrs:
                attr = state.attrs[prop.key]
                if attr.history.has_changes():
                    changes[prop.key] = attr.value
        for obj in session.deleted:
            state = inspect(obj)
            if state.key is not None:
                self.deleted.add(state.key)
                self.touched.pop(state.key, None)

    def mark_cleared(self):
        """Record that every row was removed by a bulk delete."""
        self.cleared = True
        self.touched.clear()
        self.deleted.clear()

    def reset_tracking(self):
        self.touched.clear()
        self.deleted.clear()
        self.cleared = False

    def check_owner(self):
        if asyncio.current_task() is not self._task:
            raise ViewOwnershipError("Working view used outside the task that created it")

    async def close(self):
        event.remove(self.session.sync_session, "after_flush", self._record_flush)
        await self.session.close()


View = AsyncSession | WorkingView


class ViewPair:
    """Owns the authoritative view and hands out working views."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        commit_timeout: float | None = None,
    ):
        self._session_factory = session_factory
        self._commit_timeout = commit_timeout if commit_timeout is not None else settings.commit_timeout_seconds
        self._lock = asyncio.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._authoritative: AsyncSession | None = None
        self._working_views: dict[Session, WorkingView] = {}

    async def open(self) -> "ViewPair":
        """Bind the authoritative view to the running event loop."""
        if self._authoritative is not None:
            return self
        self._loop = asyncio.get_running_loop()
        self._authoritative = self._session_factory()
        logger.debug("Authoritative view opened")
        return self

    async def close(self):
        for working in list(self._working_views.values()):
            await working.close()
        self._working_views.clear()
        if self._authoritative is not None:
            await self._authoritative.close()
            self._authoritative = None
            logger.debug("Authoritative view closed")

    async def __aenter__(self) -> "ViewPair":
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    @property
    def authoritative(self) -> AsyncSession:
        if self._authoritative is None:
            raise ViewOwnershipError("View pair is not open")
        return self._authoritative

    def _check_loop(self):
        if asyncio.get_running_loop() is not self._loop:
            raise ViewOwnershipError("Authoritative view used outside its owning event loop")

    @asynccontextmanager
    async def owner(self) -> AsyncIterator[AsyncSession]:
        """Exclusive access to the authoritative view."""
        session = self.authoritative
        self._check_loop()
        async with self._lock:
            yield session

    @asynccontextmanager
    async def working_view(self) -> AsyncIterator[WorkingView]:
        """A fresh working view private to the calling task."""
        if self._authoritative is None:
            raise ViewOwnershipError("View pair is not open")
        working = WorkingView(self._session_factory())
        self._working_views[working.session.sync_session] = working
        try:
            yield working
        finally:
            self._working_views.pop(working.session.sync_session, None)
            await working.close()

    def view_for(self, obj) -> View:
        """Resolve the view a loaded record belongs to."""
        state = inspect(obj)
        if state.deleted or state.was_deleted:
            raise ViewOwnershipError(f"Printer {state.identity} has been deleted")
        session = object_session(obj)
        if session is None:
            raise ViewOwnershipError(f"Printer {state.identity} is not attached to an open view")
        if self._authoritative is not None and session is self._authoritative.sync_session:
            return self._authoritative
        working = self._working_views.get(session)
        if working is None:
            raise ViewOwnershipError(f"Printer {state.identity} belongs to a session this view pair does not manage")
        return working

    @asynccontextmanager
    async def read(self, view: View | None = None) -> AsyncIterator[AsyncSession]:
        if isinstance(view, WorkingView):
            view.check_owner()
            yield view.session
            return
        async with self.owner() as session:
            yield session

    @asynccontextmanager
    async def write(self, view: View | None, operation: str) -> AsyncIterator[AsyncSession]:
        """Mutate through ``view`` and dual-save on exit.

        The pair lock is held for the whole block, so writers run one at a
        time whichever view they use. Any exception raised inside the block
        rolls the view back and is re-raised; nothing is committed.
        """
        if isinstance(view, WorkingView):
            view.check_owner()
            self._check_loop()
            async with self._lock:
                try:
                    yield view.session
                except BaseException:
                    await self._rollback(view.session, operation)
                    view.reset_tracking()
                    raise
                await self._propagate(view, operation)
            return

        async with self.owner() as session:
            try:
                yield session
            except BaseException:
                await self._rollback(session, operation)
                raise
            await self._commit(session, operation)

    async def save(self, view: WorkingView, operation: str):
        """Commit changes made directly on a working view and propagate them."""
        view.check_owner()
        self._check_loop()
        async with self._lock:
            await self._propagate(view, operation)

    async def _propagate(self, view: WorkingView, operation: str):
        # Caller holds the pair lock
        try:
            await self._commit(view.session, operation)
        except StorageIOError:
            view.reset_tracking()
            raise
        try:
            self._merge(view)
            await self._commit(self.authoritative, f"{operation} (propagate)")
        except StorageIOError as e:
            raise PropagationError(f"{operation} (propagate)", e.cause) from e.cause
        finally:
            view.reset_tracking()

    def _merge(self, view: WorkingView):
        authoritative = self.authoritative
        if view.cleared:
            authoritative.expunge_all()
            logger.debug("Propagated bulk delete: authoritative view reset")
            return

        identity_map = authoritative.sync_session.identity_map
        for key in view.deleted:
            obj = identity_map.get(key)
            if obj is not None:
                authoritative.expunge(obj)
        for key, changes in view.touched.items():
            obj = identity_map.get(key)
            if obj is None:
                continue
            for attr, value in changes.items():
                set_committed_value(obj, attr, value)
        logger.debug(f"Propagated {len(view.touched)} updated and {len(view.deleted)} deleted record(s)")

    async def _commit(self, session: AsyncSession, operation: str):
        try:
            await asyncio.wait_for(session.commit(), timeout=self._commit_timeout)
        except asyncio.TimeoutError as e:
            logger.error(f"{operation}: commit timed out after {self._commit_timeout}s")
            await self._rollback(session, operation)
            raise StorageIOError(f"{operation} (commit timed out)", e) from e
        except SQLAlchemyError as e:
            logger.error(f"{operation}: commit failed: {e}")
            await self._rollback(session, operation)
            raise StorageIOError(operation, e) from e

    async def _rollback(self, session: AsyncSession, operation: str):
        try:
            await session.rollback()
        except SQLAlchemyError as e:
            # The original failure is what the caller needs; this one is only recorded
            logger.error(f"{operation}: rollback failed: {e}")

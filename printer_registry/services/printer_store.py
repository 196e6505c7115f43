"""Record store for printers.

Queries and mutations over whichever session (view) the caller is bound to.
Listing order is ``position``, then ``name``, then ``id``. Names compare with
SQLite's default BINARY collation: case-sensitive, by code point.
"""

import logging

from sqlalchemy import delete as sql_delete
from sqlalchemy import func, inspect, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from printer_registry.core.exceptions import InvariantViolation, StorageIOError
from printer_registry.models.printer import Printer

logger = logging.getLogger(__name__)

LIST_ORDER = (Printer.position.asc(), Printer.name.asc(), Printer.id.asc())

# Queries whose results decide default flags overwrite loaded copies with stored values
FRESH = {"populate_existing": True}


async def _scalars(session: AsyncSession, stmt, operation: str) -> list[Printer]:
    try:
        result = await session.execute(stmt)
    except SQLAlchemyError as e:
        logger.error(f"{operation} failed: {e}")
        raise StorageIOError(operation, e) from e
    return list(result.scalars().all())


async def _first(session: AsyncSession, stmt, operation: str) -> Printer | None:
    rows = await _scalars(session, stmt.limit(1), operation)
    return rows[0] if rows else None


async def insert(session: AsyncSession, printer: Printer) -> Printer:
    """Add a printer and flush so it gets its id."""
    session.add(printer)
    try:
        await session.flush()
    except SQLAlchemyError as e:
        logger.error(f"Insert of printer {printer.hostname} failed: {e}")
        raise StorageIOError("insert printer", e) from e
    return printer


async def refresh(session: AsyncSession, printer: Printer, attribute_names: list[str] | None = None) -> Printer:
    """Reload ``attribute_names`` plus any expired attributes from storage.

    Unsaved changes to other attributes are kept.
    """
    names = set(attribute_names or ()) | set(inspect(printer).expired_attributes)
    if not names:
        return printer
    try:
        await session.refresh(printer, sorted(names))
    except SQLAlchemyError as e:
        logger.error(f"Reload of printer {inspect(printer).identity} failed: {e}")
        raise StorageIOError("reload printer", e) from e
    return printer


async def find_default(session: AsyncSession) -> Printer | None:
    # Two rows are fetched so a second default is noticed rather than hidden
    rows = await _scalars(
        session,
        select(Printer).where(Printer.is_default.is_(True)).order_by(Printer.id).limit(2).execution_options(**FRESH),
        "find default printer",
    )
    if len(rows) > 1:
        raise InvariantViolation(f"More than one default printer: {[p.id for p in rows]}")
    return rows[0] if rows else None


async def find_by_remote_id(session: AsyncSession, remote_id: str) -> Printer | None:
    return await _first(
        session,
        select(Printer).where(Printer.record_name == remote_id),
        "find printer by record name",
    )


async def find_by_name(session: AsyncSession, name: str) -> Printer | None:
    """First printer with this name, in store (id) order."""
    return await _first(
        session,
        select(Printer).where(Printer.name == name).order_by(Printer.id),
        "find printer by name",
    )


async def find_by_local_id(session: AsyncSession, local_id: int) -> Printer | None:
    try:
        return await session.get(Printer, local_id)
    except SQLAlchemyError as e:
        logger.error(f"find printer {local_id} failed: {e}")
        raise StorageIOError("find printer by id", e) from e


async def list_all(session: AsyncSession) -> list[Printer]:
    return await _scalars(session, select(Printer).order_by(*LIST_ORDER).execution_options(**FRESH), "list printers")


async def list_needing_remote_update(session: AsyncSession) -> list[Printer]:
    return await _scalars(
        session,
        select(Printer).where(Printer.needs_remote_update.is_(True)).order_by(*LIST_ORDER),
        "list printers needing remote update",
    )


async def count(session: AsyncSession, *, defaults_only: bool = False) -> int:
    stmt = select(func.count(Printer.id))
    if defaults_only:
        stmt = stmt.where(Printer.is_default.is_(True))
    try:
        result = await session.execute(stmt)
    except SQLAlchemyError as e:
        logger.error(f"count printers failed: {e}")
        raise StorageIOError("count printers", e) from e
    return result.scalar_one()


async def delete(session: AsyncSession, printer: Printer):
    try:
        await session.delete(printer)
        await session.flush()
    except SQLAlchemyError as e:
        logger.error(f"Delete of printer {printer.hostname} failed: {e}")
        raise StorageIOError("delete printer", e) from e


async def delete_all(session: AsyncSession) -> int:
    """Bulk delete every printer. Returns the number of rows removed."""
    try:
        result = await session.execute(sql_delete(Printer))
    except SQLAlchemyError as e:
        logger.error(f"Error deleting all printers: {e}")
        raise StorageIOError("delete all printers", e) from e
    return result.rowcount

"""Keeps exactly one default printer whenever any printer exists.

These helpers only change the session; the caller commits once so every
flag change of an operation lands in the same transaction.
"""

import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from printer_registry.core.exceptions import InvariantViolation, StorageIOError
from printer_registry.models.printer import Printer
from printer_registry.services import printer_store

logger = logging.getLogger(__name__)


async def assign_default_on_add(session: AsyncSession, printer: Printer):
    """A new printer is the default only if there is no default yet."""
    printer.is_default = await printer_store.find_default(session) is None


async def change_to_default(session: AsyncSession, target: Printer):
    """Move the default flag to ``target``, judging both flags by their stored values."""
    await printer_store.refresh(session, target, ["is_default"])
    current = await printer_store.find_default(session)
    if current is not None and current is not target:
        current.is_default = False
        # Clear the old flag before setting the new one; storage allows one default
        try:
            await session.flush()
        except SQLAlchemyError as e:
            logger.error(f"Clearing default flag on printer {current.id} failed: {e}")
            raise StorageIOError("change default printer", e) from e
        logger.info(f"Printer {current.id} ({current.name}) is no longer the default")
    target.is_default = True
    logger.info(f"Printer {target.id} ({target.name}) is now the default")


async def reassign_after_delete(session: AsyncSession, was_default: bool) -> Printer | None:
    """Promote the first remaining printer when the deleted one was the default."""
    if not was_default:
        return None
    for printer in await printer_store.list_all(session):
        await change_to_default(session, printer)
        return printer
    logger.info("Last printer deleted, no default printer left")
    return None


async def verify(session: AsyncSession):
    """Raise InvariantViolation unless a non-empty store has exactly one default."""
    try:
        await session.flush()
    except IntegrityError as e:
        if "is_default" in str(e.orig):
            logger.error(f"Second default printer rejected by storage: {e}")
            raise InvariantViolation("More than one default printer") from e
        logger.error(f"Flush before default check failed: {e}")
        raise StorageIOError("verify default printer", e) from e
    except SQLAlchemyError as e:
        logger.error(f"Flush before default check failed: {e}")
        raise StorageIOError("verify default printer", e) from e
    defaults = await printer_store.count(session, defaults_only=True)
    total = await printer_store.count(session)
    if total and defaults != 1:
        logger.error(f"Default printer invariant broken: {defaults} default(s) among {total} printer(s)")
        raise InvariantViolation(f"Expected exactly one default printer among {total}, found {defaults}")

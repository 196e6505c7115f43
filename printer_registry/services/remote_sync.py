"""Remote identity of printers.

When the remote account bound to this device changes, every printer loses
its remote identity and is flagged for upload, so the sync component links
it to new remote records instead of colliding with another account's.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from printer_registry.models.printer import Printer
from printer_registry.services import printer_store

logger = logging.getLogger(__name__)


async def reset_for_remote_account_change(session: AsyncSession) -> int:
    """Clear the remote identity of every printer and mark it for upload.

    Only changes the session; the caller commits the whole batch once.
    Running it again on the result changes nothing.
    """
    printers = await printer_store.list_all(session)
    for printer in printers:
        printer.record_name = None
        printer.record_data = None
        printer.needs_remote_update = True
    logger.info(f"Reset remote identity of {len(printers)} printer(s)")
    return len(printers)


def apply_remote_identity(printer: Printer, record_name: str, record_data: bytes | None):
    """Link a printer to the remote record the sync component fetched or created."""
    printer.record_name = record_name
    printer.record_data = record_data
    printer.needs_remote_update = False

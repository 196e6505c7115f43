import logging
from datetime import datetime

from printer_registry.core.views import View, ViewPair, WorkingView
from printer_registry.models.printer import CameraOrientation, Printer, utcnow
from printer_registry.schemas.printer import PrinterCreate, PrinterResponse, PrinterUpdate
from printer_registry.services import default_printer, printer_store, remote_sync

logger = logging.getLogger(__name__)

# Fields a PrinterUpdate may explicitly set to None
_NULLABLE_FIELDS = {"username", "password"}


class PrinterManager:
    """Manager of the printers stored on this device.

    Reads and writes go through the authoritative view unless a working view
    is passed as ``view=``. Writes on a loaded printer use the view that
    printer was loaded in, so background changes are propagated before the
    call returns. A write either returns with its change visible in the
    authoritative view or raises a ``PrinterRegistryError``.
    """

    def __init__(self, views: ViewPair):
        self._views = views

    def working_view(self):
        """Working view for a background task."""
        return self._views.working_view()

    # ========================================================================
    # Reading operations
    # ========================================================================

    async def get_default_printer(self, view: View | None = None) -> Printer | None:
        async with self._views.read(view) as session:
            return await printer_store.find_default(session)

    async def get_printer_by_remote_id(self, remote_id: str, view: View | None = None) -> Printer | None:
        """Printer linked to the given remote record name."""
        async with self._views.read(view) as session:
            return await printer_store.find_by_remote_id(session, remote_id)

    async def get_printer_by_name(self, name: str, view: View | None = None) -> Printer | None:
        async with self._views.read(view) as session:
            return await printer_store.find_by_name(session, name)

    async def get_printer_by_handle(self, handle: int | str, view: View | None = None) -> Printer | None:
        """Printer by id or by its ``object_url``."""
        if isinstance(handle, str):
            local_id = Printer.id_from_object_url(handle)
            if local_id is None:
                logger.debug(f"Not a printer URL: {handle}")
                return None
        else:
            local_id = handle
        async with self._views.read(view) as session:
            return await printer_store.find_by_local_id(session, local_id)

    async def list_printers(self, view: View | None = None) -> list[Printer]:
        async with self._views.read(view) as session:
            return await printer_store.list_all(session)

    async def get_printers_needing_remote_update(self, view: View | None = None) -> list[Printer]:
        async with self._views.read(view) as session:
            return await printer_store.list_needing_remote_update(session)

    async def snapshot(self, view: View | None = None) -> list[PrinterResponse]:
        """Detached copies of all printers, safe to hand to other tasks."""
        async with self._views.read(view) as session:
            printers = await printer_store.list_all(session)
            return [PrinterResponse.model_validate(printer) for printer in printers]

    # ========================================================================
    # Writing operations
    # ========================================================================

    async def add_printer(
        self,
        name: str,
        hostname: str,
        api_key: str,
        username: str | None = None,
        password: str | None = None,
        position: int = 0,
        needs_remote_update: bool = False,
        modified: datetime | None = None,
        view: View | None = None,
    ) -> Printer:
        """Store a new printer. The first printer becomes the default one."""
        fields = PrinterCreate(
            name=name,
            hostname=hostname,
            api_key=api_key,
            username=username,
            password=password,
            position=position,
            needs_remote_update=needs_remote_update,
            modified=modified,
        )
        async with self._views.write(view, "add printer") as session:
            printer = Printer(
                name=fields.name,
                hostname=fields.hostname,
                api_key=fields.api_key,
                username=fields.username,
                password=fields.password,
                position=fields.position,
                user_modified=fields.modified or utcnow(),
                needs_remote_update=fields.needs_remote_update,
                # Placeholders until the printer reports its real capabilities
                sd_support=True,
                camera_orientation=CameraOrientation.UP,
                invert_x=False,
                invert_y=False,
                invert_z=False,
            )
            await default_printer.assign_default_on_add(session, printer)
            await printer_store.insert(session, printer)
            await default_printer.verify(session)
        logger.info(f"Added printer {printer.id} ({printer.name}) at {printer.hostname}, default={printer.is_default}")
        return printer

    async def update_printer(self, printer: Printer, changes: PrinterUpdate | None = None, touch: bool = True):
        """Save changes to a printer.

        Fields explicitly set on ``changes`` are applied; changes already made
        on the object are saved too. ``touch`` marks this as a user edit:
        the modification time is stamped and the printer is queued for
        upload. Use ``change_default`` to move the default flag.
        """
        view = self._views.view_for(printer)
        async with self._views.write(view, "update printer") as session:
            await printer_store.refresh(session, printer)
            if changes is not None:
                for field, value in changes.model_dump(exclude_unset=True).items():
                    if value is None and field not in _NULLABLE_FIELDS:
                        continue
                    setattr(printer, field, value)
            if touch:
                printer.user_modified = utcnow()
                printer.needs_remote_update = True
            await default_printer.verify(session)
        logger.info(f"Updated printer {printer.id} ({printer.name})")

    async def change_default(self, printer: Printer):
        """Make ``printer`` the default one, in a single commit."""
        view = self._views.view_for(printer)
        async with self._views.write(view, "change default printer") as session:
            await default_printer.change_to_default(session, printer)
            await default_printer.verify(session)

    async def delete_printer(self, printer: Printer):
        """Delete a printer, handing the default flag on if it had it."""
        view = self._views.view_for(printer)
        async with self._views.write(view, "delete printer") as session:
            # The in-memory flag may predate a default change made through another view
            await printer_store.refresh(session, printer, ["is_default"])
            was_default = printer.is_default
            printer_id = printer.id
            await printer_store.delete(session, printer)
            promoted = await default_printer.reassign_after_delete(session, was_default)
            await default_printer.verify(session)
        logger.info(f"Deleted printer {printer_id}" + (f", new default is {promoted.id}" if promoted else ""))

    async def delete_all_printers(self, view: View | None = None) -> int:
        """Delete every printer and reset the authoritative view."""
        async with self._views.write(view, "delete all printers") as session:
            removed = await printer_store.delete_all(session)
            if isinstance(view, WorkingView):
                view.mark_cleared()
            else:
                session.expunge_all()
        logger.info(f"Deleted all printers ({removed})")
        return removed

    async def reset_for_remote_account_change(self, view: View | None = None) -> int:
        """Drop every remote identity and queue all printers for upload."""
        async with self._views.write(view, "reset printers for remote account") as session:
            count = await remote_sync.reset_for_remote_account_change(session)
        return count

    async def apply_remote_identity(self, printer: Printer, record_name: str, record_data: bytes | None):
        """Store the remote record a printer was synced to."""
        view = self._views.view_for(printer)
        async with self._views.write(view, "apply remote identity") as session:
            await printer_store.refresh(session, printer)
            remote_sync.apply_remote_identity(printer, record_name, record_data)
        logger.debug(f"Printer {printer.id} linked to remote record {record_name}")

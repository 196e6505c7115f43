from datetime import datetime, timezone
from enum import IntEnum

from sqlalchemy import Boolean, DateTime, Index, Integer, LargeBinary, String, text
from sqlalchemy.orm import Mapped, mapped_column

from printer_registry.core.database import Base

OBJECT_URL_PREFIX = "x-printer-registry://printers/"


class CameraOrientation(IntEnum):
    """Camera image orientation, mirrored values carry the flip."""

    UP = 0
    DOWN = 1
    LEFT = 2
    RIGHT = 3
    UP_MIRRORED = 4
    DOWN_MIRRORED = 5
    LEFT_MIRRORED = 6
    RIGHT_MIRRORED = 7


def utcnow() -> datetime:
    # Stored naive, in UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Printer(Base):
    """A stored connection to a printer server.

    ``record_name`` / ``record_data`` are the remote identity assigned by the
    sync partner. Capability fields start as placeholders and are overwritten
    once the printer has been probed.
    """

    __tablename__ = "printers"
    __table_args__ = (
        # At most one default printer, enforced by storage
        Index(
            "ix_printers_single_default",
            "is_default",
            unique=True,
            sqlite_where=text("is_default = 1"),
        ),
        # Ids are never reused, even after deleting the highest one
        {"sqlite_autoincrement": True},
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    record_name: Mapped[str | None] = mapped_column(String(255), unique=True)
    record_data: Mapped[bytes | None] = mapped_column(LargeBinary)

    name: Mapped[str] = mapped_column(String(100))
    hostname: Mapped[str] = mapped_column(String(255))
    api_key: Mapped[str] = mapped_column(String(255))
    username: Mapped[str | None] = mapped_column(String(100))
    password: Mapped[str | None] = mapped_column(String(255))
    position: Mapped[int] = mapped_column(Integer, default=0)

    is_default: Mapped[bool] = mapped_column(Boolean, default=False)
    needs_remote_update: Mapped[bool] = mapped_column(Boolean, default=False)
    user_modified: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    sd_support: Mapped[bool] = mapped_column(Boolean, default=True)
    camera_orientation: Mapped[int] = mapped_column(Integer, default=CameraOrientation.UP)
    invert_x: Mapped[bool] = mapped_column(Boolean, default=False)
    invert_y: Mapped[bool] = mapped_column(Boolean, default=False)
    invert_z: Mapped[bool] = mapped_column(Boolean, default=False)

    @property
    def object_url(self) -> str:
        """Handle of this record as a URI that can be stored elsewhere."""
        return f"{OBJECT_URL_PREFIX}{self.id}"

    @staticmethod
    def id_from_object_url(url: str) -> int | None:
        if not url.startswith(OBJECT_URL_PREFIX):
            return None
        try:
            return int(url[len(OBJECT_URL_PREFIX):])
        except ValueError:
            return None

    def __repr__(self) -> str:
        return f"<Printer id={self.id} name={self.name!r} default={self.is_default}>"

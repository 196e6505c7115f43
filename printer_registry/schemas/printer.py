from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from printer_registry.models.printer import CameraOrientation

# Positions are stored as a 16-bit ordering key
POSITION_MIN = -32768
POSITION_MAX = 32767


class PrinterBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    hostname: str = Field(..., min_length=1, max_length=255)
    api_key: str = Field(..., max_length=255)
    username: str | None = Field(None, max_length=100)
    password: str | None = Field(None, max_length=255)
    position: int = Field(0, ge=POSITION_MIN, le=POSITION_MAX)


class PrinterCreate(PrinterBase):
    needs_remote_update: bool = False
    modified: datetime | None = None  # Defaults to now; sync passes the remote timestamp


class PrinterUpdate(BaseModel):
    """Partial update; only fields that were explicitly set are applied."""

    name: str | None = Field(None, min_length=1, max_length=100)
    hostname: str | None = Field(None, min_length=1, max_length=255)
    api_key: str | None = Field(None, max_length=255)
    username: str | None = Field(None, max_length=100)
    password: str | None = Field(None, max_length=255)
    position: int | None = Field(None, ge=POSITION_MIN, le=POSITION_MAX)
    # Capabilities reported by the printer itself
    sd_support: bool | None = None
    camera_orientation: CameraOrientation | None = None
    invert_x: bool | None = None
    invert_y: bool | None = None
    invert_z: bool | None = None


class PrinterResponse(PrinterBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    object_url: str
    record_name: str | None = None
    is_default: bool
    needs_remote_update: bool
    user_modified: datetime
    sd_support: bool = True
    camera_orientation: CameraOrientation = CameraOrientation.UP
    invert_x: bool = False
    invert_y: bool = False
    invert_z: bool = False

"""Unit tests for the Printer model and its handle URLs."""

from datetime import datetime

import pytest
from pydantic import ValidationError

from printer_registry.models.printer import OBJECT_URL_PREFIX, CameraOrientation, Printer
from printer_registry.schemas.printer import PrinterCreate, PrinterResponse, PrinterUpdate


class TestObjectUrl:
    """Tests for Printer.object_url and Printer.id_from_object_url."""

    def test_object_url_contains_id(self):
        printer = Printer(id=42, name="Prusa", hostname="http://prusa.local", api_key="KEY")
        assert printer.object_url == f"{OBJECT_URL_PREFIX}42"

    def test_id_from_object_url(self):
        assert Printer.id_from_object_url(f"{OBJECT_URL_PREFIX}7") == 7

    @pytest.mark.parametrize(
        "url",
        [
            "",
            "x-printer-registry://printers/",
            "x-printer-registry://printers/abc",
            "x-coredata://printers/7",
            "7",
        ],
    )
    def test_malformed_urls_have_no_id(self, url):
        assert Printer.id_from_object_url(url) is None


class TestCameraOrientation:
    """Orientation values match the platform raw values."""

    def test_plain_orientations(self):
        assert CameraOrientation.UP == 0
        assert CameraOrientation.DOWN == 1
        assert CameraOrientation.LEFT == 2
        assert CameraOrientation.RIGHT == 3

    def test_mirrored_orientations(self):
        assert CameraOrientation.UP_MIRRORED == 4
        assert CameraOrientation.RIGHT_MIRRORED == 7


class TestPrinterCreate:
    """Validation of new printer input."""

    def test_minimal_fields(self):
        fields = PrinterCreate(name="Ender", hostname="http://ender.local", api_key="KEY")
        assert fields.position == 0
        assert fields.username is None
        assert fields.needs_remote_update is False
        assert fields.modified is None

    def test_empty_name_rejected(self):
        with pytest.raises(ValidationError):
            PrinterCreate(name="", hostname="http://ender.local", api_key="KEY")

    def test_empty_hostname_rejected(self):
        with pytest.raises(ValidationError):
            PrinterCreate(name="Ender", hostname="", api_key="KEY")

    @pytest.mark.parametrize("position", [-32769, 32768])
    def test_position_outside_16_bit_range_rejected(self, position):
        with pytest.raises(ValidationError):
            PrinterCreate(name="Ender", hostname="http://ender.local", api_key="KEY", position=position)

    @pytest.mark.parametrize("position", [-32768, 0, 32767])
    def test_position_inside_16_bit_range_accepted(self, position):
        fields = PrinterCreate(name="Ender", hostname="http://ender.local", api_key="KEY", position=position)
        assert fields.position == position


class TestPrinterUpdate:
    """Partial updates only carry explicitly set fields."""

    def test_unset_fields_are_excluded(self):
        changes = PrinterUpdate(name="Renamed")
        assert changes.model_dump(exclude_unset=True) == {"name": "Renamed"}

    def test_explicit_none_is_kept(self):
        changes = PrinterUpdate(password=None)
        assert changes.model_dump(exclude_unset=True) == {"password": None}

    def test_camera_orientation_coerced(self):
        changes = PrinterUpdate(camera_orientation=3)
        assert changes.camera_orientation is CameraOrientation.RIGHT

    def test_invalid_camera_orientation_rejected(self):
        with pytest.raises(ValidationError):
            PrinterUpdate(camera_orientation=9)


class TestPrinterResponse:
    """Detached read model built from a Printer."""

    def test_from_printer(self):
        printer = Printer(
            id=3,
            name="Voron",
            hostname="http://voron.local",
            api_key="KEY",
            position=2,
            is_default=True,
            needs_remote_update=False,
            user_modified=datetime(2024, 1, 15, 10, 30),
            sd_support=False,
            camera_orientation=CameraOrientation.DOWN_MIRRORED,
            invert_x=False,
            invert_y=True,
            invert_z=False,
        )
        response = PrinterResponse.model_validate(printer)
        assert response.id == 3
        assert response.object_url == f"{OBJECT_URL_PREFIX}3"
        assert response.is_default is True
        assert response.camera_orientation is CameraOrientation.DOWN_MIRRORED
        assert response.invert_y is True
        assert response.record_name is None

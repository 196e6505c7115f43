from printer_registry.models.printer import CameraOrientation, Printer

__all__ = [
    "CameraOrientation",
    "Printer",
]

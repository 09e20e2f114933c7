"""Service layer: single-record intake and batch import."""

from wine_terroir.services.import_service import WineImportService
from wine_terroir.services.intake_service import WineIntakeService

__all__ = ["WineImportService", "WineIntakeService"]

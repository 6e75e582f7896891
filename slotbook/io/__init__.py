"""I/O utilities for CSV import/export."""

from .export_csv import export_bookings_csv, export_offers_csv
from .import_csv import import_blocked_dates_csv, import_branches_csv

__all__ = [
    "import_branches_csv",
    "import_blocked_dates_csv",
    "export_bookings_csv",
    "export_offers_csv",
]

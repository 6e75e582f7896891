"""Availability and booking-slot engine for interview and trial scheduling.

Modules:
- config: load engine configuration from YAML
- timeplan: wall-clock / UTC conversions and weekday helpers
- errors: ConfigError and the booking error kinds
- domain: SQLAlchemy models, database helpers and repositories
- services: save-time validation, settings writes, trial capacity, booking links
- engine: slot generation, booking transactions and the BookingEngine facade
- io: CSV import/export
- cli: command-line interface entrypoints
"""

__all__ = [
    "config",
    "timeplan",
    "errors",
    "domain",
    "services",
    "engine",
    "io",
    "cli",
]

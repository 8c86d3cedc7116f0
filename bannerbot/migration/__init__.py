"""Storage migrations."""

from .legacy import LegacyKeyMigrator, MigrationReport, convert_legacy_fields

__all__ = ["LegacyKeyMigrator", "MigrationReport", "convert_legacy_fields"]

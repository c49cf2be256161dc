"""Exceptions raised by index migrations.

The domain errors are built on the common exception framework from
``dataknobs_common``: each one derives from one of its categories
(``ValidationError``, ``ConfigurationError``, ``OperationError``,
``ConcurrencyError``) and carries a ``context`` dictionary with the structured
details (plugin id, migration id, offending document, ...) needed to diagnose
a failed run without reading the logs.

Example:
    ```python
    from dataknobs_index_migrations.exceptions import IndexMigrationError

    try:
        await migrate(options)
    except IndexMigrationError as e:
        logger.error(f"Migration failed: {e}")
        if e.context:
            logger.error(f"Context: {e.context}")
    ```
"""

from __future__ import annotations

from typing import Any

from dataknobs_common import (
    ConcurrencyError,
    ConfigurationError,
    DataknobsError,
    OperationError,
    ValidationError,
)
from dataknobs_common.transitions import InvalidTransitionError

# Package-level name for the common base exception
IndexMigrationError = DataknobsError


class DocumentFormatError(ValidationError):
    """Raised when a document is neither raw nor standard."""

    def __init__(self, document: Any):
        self.document = document
        super().__init__(
            "Invalid document. Documents should either be raw or standardized.",
            context={"document": document},
        )


class MigrationOrderError(ConfigurationError):
    """Raised when applied migrations are no longer a prefix of a plugin's migrations."""

    def __init__(self, plugin_id: str, expected_id: str | None, actual_id: str):
        self.plugin_id = plugin_id
        self.expected_id = expected_id
        self.actual_id = actual_id
        super().__init__(
            f'Plugin "{plugin_id}" migration order has changed. '
            f'Expected migration "{expected_id}", but found "{actual_id}" in the migration state.',
            context={
                "plugin_id": plugin_id,
                "expected_id": expected_id,
                "actual_id": actual_id,
            },
        )


class DuplicateMigrationIdError(ConfigurationError):
    """Raised when a plugin declares the same migration id twice."""

    def __init__(self, plugin_id: str, migration_id: str):
        self.plugin_id = plugin_id
        self.migration_id = migration_id
        super().__init__(
            f'Plugin "{plugin_id}" has a duplicate migration "{migration_id}".',
            context={"plugin_id": plugin_id, "migration_id": migration_id},
        )


class MappingConflictError(ConfigurationError):
    """Raised when a mapping key is reserved or defined by more than one plugin."""

    def __init__(self, plugin_id: str, key: str):
        self.plugin_id = plugin_id
        self.key = key
        if key.startswith("_"):
            message = (
                f'Invalid mapping "{key}" in plugin "{plugin_id}". '
                f"Mappings cannot start with _."
            )
        else:
            message = f'Plugin "{plugin_id}" is attempting to redefine mapping "{key}".'
        super().__init__(message, context={"plugin_id": plugin_id, "key": key})


class BulkItemError(OperationError):
    """Raised when at least one item of a bulk request failed.

    ``item`` is the first failing item exactly as the store returned it.
    """

    def __init__(self, index: str, item: dict[str, Any]):
        self.index = index
        self.item = item
        error = next(iter(item.values()), {}).get("error", {})
        reason = error.get("reason") if isinstance(error, dict) else error
        super().__init__(
            f"Bulk insert into '{index}' failed: {reason}",
            context={"index": index, "item": item},
        )


class DestinationExistsError(OperationError):
    """Raised when the destination index already exists and force is off."""

    def __init__(self, dest_index: str):
        self.dest_index = dest_index
        super().__init__(
            f"Destination index {dest_index} already exists!",
            context={"dest_index": dest_index},
        )


class MigrationInProgressError(ConcurrencyError):
    """Raised when the stored state shows an unfinished migration."""

    def __init__(self, index: str):
        self.index = index
        super().__init__(
            f'Index "{index}" is marked as migrating. Another migration may be running, '
            f"or a previous one was interrupted. Re-run with force=True to rebuild the "
            f"destination, or reset the index.",
            context={"index": index},
        )


__all__ = [
    "IndexMigrationError",
    "ValidationError",
    "ConfigurationError",
    "OperationError",
    "ConcurrencyError",
    "DocumentFormatError",
    "MigrationOrderError",
    "DuplicateMigrationIdError",
    "MappingConflictError",
    "BulkItemError",
    "DestinationExistsError",
    "MigrationInProgressError",
    "InvalidTransitionError",
]

"""Migration state, checksums and unapplied-migration resolution.

The migration state is a single document stored in the migrated index. It
records a checksum of everything that shaped the index, the ids of the
migrations each plugin has applied, and whether a migration is underway.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, Any

from .exceptions import DuplicateMigrationIdError, MigrationOrderError
from .plugins import plugins_with_migrations

if TYPE_CHECKING:
    from .plugins import Migration, Plugin

MIGRATION_TYPE = "migration"
MIGRATION_STATE_ID = "migration-state"
MIGRATION_DOC_ID = f"{MIGRATION_TYPE}:{MIGRATION_STATE_ID}"

# Top-level mapping keys owned by the migration engine itself.
MIGRATION_STATE_MAPPINGS: dict[str, Any] = {
    "type": {"type": "keyword"},
    "updated_at": {"type": "date"},
    MIGRATION_TYPE: {
        "properties": {
            "checksum": {"type": "keyword"},
            "status": {"type": "keyword"},
            "destIndex": {"type": "keyword"},
            "plugins": {
                "type": "nested",
                "properties": {
                    "id": {"type": "keyword"},
                    "appliedMigrations": {"type": "keyword"},
                    "mappings": {"type": "text", "index": False},
                },
            },
        },
    },
}


class MigrationStatus(Enum):
    """Migration status of an index."""

    OUT_OF_DATE = "outOfDate"
    MIGRATING = "migrating"
    MIGRATED = "migrated"


@dataclass
class PluginState:
    """What a plugin had applied when the state was last saved."""

    id: str
    applied_migrations: list[str] = field(default_factory=list)
    mappings: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "appliedMigrations": list(self.applied_migrations),
            "mappings": self.mappings,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PluginState:
        return cls(
            id=data["id"],
            applied_migrations=list(data.get("appliedMigrations") or []),
            mappings=data.get("mappings"),
        )

    def parsed_mappings(self) -> dict[str, Any] | None:
        """The plugin's persisted mapping fragment, if any."""
        return json.loads(self.mappings) if self.mappings else None


@dataclass
class MigrationState:
    """Persisted migration state of an index."""

    checksum: str = ""
    plugins: list[PluginState] = field(default_factory=list)
    status: MigrationStatus | None = None
    # Destination being built while the status is ``migrating``
    dest_index: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the persisted document layout."""
        data: dict[str, Any] = {
            "checksum": self.checksum,
            "status": self.status.value if self.status else None,
            "plugins": [p.to_dict() for p in self.plugins],
        }
        if self.dest_index:
            data["destIndex"] = self.dest_index
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> MigrationState:
        """Deserialize from the persisted document layout."""
        if not data:
            return cls()
        status = data.get("status")
        return cls(
            checksum=data.get("checksum") or "",
            plugins=[PluginState.from_dict(p) for p in data.get("plugins") or []],
            status=MigrationStatus(status) if status else None,
            dest_index=data.get("destIndex"),
        )

    def plugin(self, plugin_id: str) -> PluginState | None:
        for plugin in self.plugins:
            if plugin.id == plugin_id:
                return plugin
        return None

    def with_status(self, status: MigrationStatus, dest_index: str | None = None) -> MigrationState:
        """Copy of this state with a new status and destination."""
        return replace(self, status=status, dest_index=dest_index)


def checksum(mappings: dict[str, Any] | None, migration_ids: list[str]) -> str:
    """Compute a stable checksum over mappings and migration ids.

    Migration ids are hashed in the order given; mapping key order does not
    matter. Returns an empty string when there is nothing to hash.

    Args:
        mappings: Merged plugin mapping properties
        migration_ids: Ids of all migrations, flattened plugin by plugin

    Returns:
        Hex digest, or ``""`` when there are no mappings and no migrations
    """
    if not mappings and not migration_ids:
        return ""
    payload = json.dumps(
        {"mappings": mappings or None, "migrationIds": list(migration_ids)},
        sort_keys=True,
        separators=(",", ":"),
        default=str,
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def flatten_migration_ids(plugins: list[Plugin]) -> list[str]:
    """All migration ids, plugin by plugin, in declaration order."""
    return [migration_id for plugin in plugins for migration_id in plugin.migration_ids]


def is_index_migrated(stored_checksum: str | None, current_checksum: str) -> bool:
    """Check whether the stored checksum matches the current one."""
    return (stored_checksum or "") == current_checksum


def migration_status(state: MigrationState, current_checksum: str) -> MigrationStatus:
    """Determine the status of an index given its stored state."""
    if state.status is MigrationStatus.MIGRATING:
        return MigrationStatus.MIGRATING
    if is_index_migrated(state.checksum, current_checksum):
        return MigrationStatus.MIGRATED
    return MigrationStatus.OUT_OF_DATE


def assert_unique_migration_ids(plugin: Plugin) -> None:
    """Raise if a plugin declares the same migration id more than once."""
    seen: set[str] = set()
    for migration_id in plugin.migration_ids:
        if migration_id in seen:
            raise DuplicateMigrationIdError(plugin.id, migration_id)
        seen.add(migration_id)


def assert_consistent_order(plugin: Plugin, applied_ids: list[str]) -> None:
    """Raise if applied ids are no longer a prefix of the plugin's migrations."""
    current_ids = plugin.migration_ids
    for i, applied_id in enumerate(applied_ids):
        expected_id = current_ids[i] if i < len(current_ids) else None
        if expected_id != applied_id:
            raise MigrationOrderError(plugin.id, expected_id, applied_id)


def plugins_with_unapplied(
    plugins: list[Plugin], state: MigrationState
) -> tuple[list[Plugin], dict[str, list[Migration]]]:
    """Resolve which migrations each plugin still has to apply.

    Plugins without migrations are dropped. The applied prefix is sliced off
    by count, then validated against the persisted ids.

    Args:
        plugins: Enabled plugins, in host order
        state: Previously persisted migration state

    Returns:
        Tuple of (plugins taking part, unapplied migrations by plugin id).
        Unapplied migrations are tagged with their plugin id.

    Raises:
        DuplicateMigrationIdError: If a plugin repeats a migration id
        MigrationOrderError: If applied migrations were reordered or removed
    """
    active = plugins_with_migrations(plugins)
    unapplied: dict[str, list[Migration]] = {}
    for plugin in active:
        previous = state.plugin(plugin.id)
        applied_ids = previous.applied_migrations if previous else []
        remaining = (plugin.migrations or [])[len(applied_ids):]
        assert_consistent_order(plugin, applied_ids)
        assert_unique_migration_ids(plugin)
        unapplied[plugin.id] = [replace(m, plugin_id=plugin.id) for m in remaining]
    return active, unapplied


def build_state(
    plugins: list[Plugin],
    previous: MigrationState,
    checksum_value: str,
    status: MigrationStatus = MigrationStatus.MIGRATED,
) -> MigrationState:
    """Build the state to persist once all of ``plugins``' migrations are applied.

    Entries of plugins missing from ``plugins`` are carried over unchanged so
    their mappings stay known and re-enabling them does not replay migrations.
    """
    enabled_ids = {p.id for p in plugins}
    entries = [
        PluginState(
            id=p.id,
            applied_migrations=p.migration_ids,
            mappings=json.dumps(p.mappings, sort_keys=True) if p.mappings else None,
        )
        for p in plugins
    ]
    entries.extend(p for p in previous.plugins if p.id not in enabled_ids)
    return MigrationState(checksum=checksum_value, plugins=entries, status=status)

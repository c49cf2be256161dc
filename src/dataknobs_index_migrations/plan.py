"""Migration plan: the mappings and migrations a run has to apply.

Given the enabled plugins and the previously persisted state, the plan holds
the merged index mappings and the ordered list of unapplied migrations.
Mappings of disabled plugins are carried over so their documents remain
valid against the new, strict mapping.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .exceptions import MappingConflictError
from .plugins import disabled_plugin_ids
from .state import (
    MIGRATION_STATE_MAPPINGS,
    MIGRATION_TYPE,
    MigrationState,
    checksum,
    flatten_migration_ids,
    plugins_with_unapplied,
)

if TYPE_CHECKING:
    from .plugins import Migration, Plugin

logger = logging.getLogger(__name__)


@dataclass
class MigrationPlan:
    """Work computed for a single migration run. Never persisted."""

    mappings: dict[str, Any]
    migrations: list[Migration] = field(default_factory=list)
    plugins: list[Plugin] = field(default_factory=list)
    unapplied: dict[str, list[Migration]] = field(default_factory=dict)
    plugin_mappings: dict[str, Any] = field(default_factory=dict)

    @property
    def checksum(self) -> str:
        """Checksum the index will carry once this plan is applied."""
        return checksum(self.plugin_mappings, flatten_migration_ids(self.plugins))

    @property
    def migration_ids(self) -> list[str]:
        return [m.id for m in self.migrations]


def describe_migrations(migrations: list[Migration]) -> str:
    """Comma-separated ``plugin:migration`` ids, for debug logging."""
    return ", ".join(f"{m.plugin_id}:{m.id}" for m in migrations)


def merge_mappings(fragments: list[tuple[str, dict[str, Any] | None]]) -> dict[str, Any]:
    """Shallow-merge mapping fragments, failing on any key collision.

    Args:
        fragments: (owner id, properties fragment) pairs in merge order

    Returns:
        Union of all fragments

    Raises:
        MappingConflictError: If a key starts with ``_`` or is defined twice
    """
    merged: dict[str, Any] = {}
    for owner_id, mappings in fragments:
        if not mappings:
            continue
        for key in mappings:
            if key.startswith("_") or key in merged:
                raise MappingConflictError(owner_id, key)
        merged.update(mappings)
    return merged


def _plugin_fragments(plugins: list[Plugin], state: MigrationState) -> list[tuple[str, dict[str, Any] | None]]:
    fragments = [(p.id, p.mappings) for p in plugins]
    for plugin_id in disabled_plugin_ids(plugins, [p.id for p in state.plugins]):
        previous = state.plugin(plugin_id)
        fragments.append((plugin_id, previous.parsed_mappings() if previous else None))
    return fragments


def _strict_mappings(fragments: list[tuple[str, dict[str, Any] | None]]) -> dict[str, Any]:
    return {
        "dynamic": "strict",
        "properties": merge_mappings([(MIGRATION_TYPE, MIGRATION_STATE_MAPPINGS), *fragments]),
    }


def build_mappings(plugins: list[Plugin], state: MigrationState | None = None) -> dict[str, Any]:
    """Build the strict index mapping for ``plugins``.

    The internal migration-state fragment comes first, then each plugin's
    fragment, then the last persisted fragments of plugins in ``state`` that
    are no longer enabled.

    Raises:
        MappingConflictError: If a key is reserved or defined twice
    """
    return _strict_mappings(_plugin_fragments(plugins, state or MigrationState()))


def build(plugins: list[Plugin], state: MigrationState) -> MigrationPlan:
    """Compute the plan for migrating an index.

    Args:
        plugins: Enabled plugins, in host order
        state: Previously persisted migration state

    Returns:
        The migration plan

    Raises:
        MappingConflictError: If plugin mappings collide
        DuplicateMigrationIdError: If a plugin repeats a migration id
        MigrationOrderError: If applied migrations were reordered or removed
    """
    active, unapplied = plugins_with_unapplied(plugins, state)
    fragments = _plugin_fragments(active, state)
    mappings = _strict_mappings(fragments)
    migrations = [m for plugin in active for m in unapplied[plugin.id]]

    if logger.isEnabledFor(logging.DEBUG):
        logger.debug("Planned %d migrations: %s", len(migrations), describe_migrations(migrations))

    return MigrationPlan(
        mappings=mappings,
        migrations=migrations,
        plugins=active,
        unapplied=unapplied,
        plugin_mappings=merge_mappings(fragments),
    )

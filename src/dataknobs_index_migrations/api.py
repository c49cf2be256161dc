"""Entry points used by the host application."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .context import MigrationContext
from .migrator import IndexMigrator, MigrationResult
from .persistence import IndexStore
from .plan import build
from .state import MigrationStatus, is_index_migrated as checksums_match

if TYPE_CHECKING:
    from .options import MigrationOptions
    from .state import MigrationState


@dataclass
class PluginMigrations:
    """Migrations a plugin would apply on the next run."""

    plugin_id: str
    migration_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"pluginId": self.plugin_id, "migrationIds": list(self.migration_ids)}


async def migrate(options: MigrationOptions) -> MigrationResult:
    """Migrate ``options.index`` if it is out of date.

    Raises:
        IndexMigrationError: On invalid plugins or a failed migration step
    """
    return await IndexMigrator(options).run()


async def dry_run(options: MigrationOptions) -> list[PluginMigrations]:
    """List the migrations each plugin would apply, without writing anything."""
    context = await MigrationContext.fetch(options)
    return [
        PluginMigrations(plugin.id, [m.id for m in context.plan.unapplied[plugin.id]])
        for plugin in context.plan.plugins
    ]


async def is_index_migrated(options: MigrationOptions) -> bool:
    """Check whether the stored checksum matches the current plugins."""
    store = IndexStore(options.client, options.log)
    state = await store.fetch_migration_state(options.index)
    return checksums_match(state.checksum, build(options.plugins, state).checksum)


async def fetch_status(options: MigrationOptions) -> MigrationStatus:
    """Return whether the index is out of date, migrating or migrated."""
    context = await MigrationContext.fetch(options)
    return context.status


async def reset_index(options: MigrationOptions) -> MigrationState:
    """Clear an interrupted migration so the index is usable again.

    Makes the index writable and marks its stored state as migrated. The
    stored checksum is kept, so an out-of-date index stays out of date. A
    destination the interrupted migration was building is deleted.

    Returns:
        The state now stored in the index
    """
    store = IndexStore(options.client, options.log)
    state = await store.fetch_migration_state(options.index)
    options.log.info('Resetting "%s" (status was %s)', options.index, state.status)
    await store.drop_stale_destination(options.index, state)
    await store.set_readonly(options.index, False)
    state = state.with_status(MigrationStatus.MIGRATED)
    await store.save_migration_state(options.index, state)
    return state

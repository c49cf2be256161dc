"""Migration orchestrator.

Decides whether an index needs migrating and, if so, runs the cutover:

1. ensure the index exists
2. mark it as migrating
3. make sure it is an alias
4. freeze it (read-only)
5. create the destination index
6. apply mapping migrations
7. apply seed migrations
8. transform every document into the destination
9. save the new migration state in the destination
10. point the alias at the destination

Any failure aborts the run. Nothing is rolled back: the source index may be
left read-only and marked as migrating, which a later run detects.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .context import MigrationContext
from .exceptions import DestinationExistsError, MigrationInProgressError
from .plan import describe_migrations
from .state import MigrationStatus
from .transitions import RunStatus, is_terminal, validate_transition

if TYPE_CHECKING:
    from .options import MigrationOptions


@dataclass
class MigrationResult:
    """Outcome of a migration run."""

    index: str
    is_skipped: bool
    status: MigrationStatus
    dest_index: str | None = None
    elapsed_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "index": self.index,
            "isSkipped": self.is_skipped,
            "status": self.status.value,
            "elapsedMs": self.elapsed_ms,
        }
        if self.dest_index is not None:
            result["destIndex"] = self.dest_index
        return result


class IndexMigrator:
    """Runs a single migration of one index.

    A migrator is single-use: it moves from ``checking`` to exactly one of
    ``skipped``, ``migrated`` or ``failed``.
    """

    def __init__(self, options: MigrationOptions):
        self.options = options
        self.status = RunStatus.CHECKING
        self.context: MigrationContext | None = None

    @property
    def log(self) -> logging.Logger:
        return self.options.log

    def _transition(self, target: RunStatus) -> None:
        validate_transition(self.status, target)
        self.log.debug("Migration of %s: %s -> %s", self.options.index, self.status.value, target.value)
        self.status = target

    async def run(self) -> MigrationResult:
        """Check the index and migrate it if it is out of date.

        Returns:
            Result with the wall-clock time of the whole run

        Raises:
            IndexMigrationError: On invalid plugins or a failed step
        """
        start = time.monotonic()
        try:
            result = await self._run()
        except Exception as e:
            if not is_terminal(self.status):
                self._transition(RunStatus.FAILED)
            self.log.error(f"Migration of {self.options.index} failed: {e}")
            raise
        result.elapsed_ms = int((time.monotonic() - start) * 1000)
        return result

    async def _run(self) -> MigrationResult:
        self.context = context = await MigrationContext.fetch(self.options)
        status = context.status

        if status is MigrationStatus.MIGRATED:
            return self._skip(context, status)

        if status is MigrationStatus.MIGRATING and not self.options.force:
            # The plugins match the state the source was in before the
            # interrupted run, so the source is still current.
            if context.state.checksum == context.checksum:
                await self._reactivate(context)
                return self._skip(context, MigrationStatus.MIGRATED)
            raise MigrationInProgressError(context.index)

        await self._check_destination(context)
        self._transition(RunStatus.MIGRATING)
        await self._migrate(context)
        self._transition(RunStatus.MIGRATED)
        return MigrationResult(
            index=context.index,
            dest_index=context.dest_index,
            is_skipped=False,
            status=MigrationStatus.MIGRATED,
        )

    def _skip(self, context: MigrationContext, status: MigrationStatus) -> MigrationResult:
        self.log.info('Skipping migration of "%s" because its status is: %s', context.index, status.value)
        self._transition(RunStatus.SKIPPED)
        return MigrationResult(index=context.index, is_skipped=True, status=status)

    async def _reactivate(self, context: MigrationContext) -> None:
        self.log.info('Re-activating "%s" after an interrupted migration', context.index)
        await context.store.drop_stale_destination(context.index, context.state)
        await context.store.set_readonly(context.index, False)
        await context.store.save_migration_state(
            context.index, context.state.with_status(MigrationStatus.MIGRATED)
        )

    async def _check_destination(self, context: MigrationContext) -> None:
        if not self.options.force and await context.store.index_exists(context.dest_index):
            raise DestinationExistsError(context.dest_index)

    async def _migrate(self, context: MigrationContext) -> None:
        store, log = context.store, context.log
        index, dest_index, plan = context.index, context.dest_index, context.plan

        log.info('Migrating from "%s" to "%s".', index, dest_index)
        if log.isEnabledFor(logging.DEBUG):
            log.debug("Migrations being applied: %s", describe_migrations(plan.migrations))

        log.info('Ensuring "%s" exists.', index)
        await store.ensure_index_exists(index, context.initial_index, plan.mappings)

        if self.options.force:
            await store.drop_stale_destination(index, context.state)

        log.info('Marking "%s" as migrating.', index)
        await store.set_readonly(index, False)
        await store.save_migration_state(
            index, context.state.with_status(MigrationStatus.MIGRATING, dest_index=dest_index)
        )

        log.info('Ensuring "%s" is an alias.', index)
        await store.convert_index_to_alias(index, context.initial_index)

        log.info('Setting "%s" to read-only.', index)
        await store.set_readonly(index, True)

        if self.options.force and await store.index_exists(dest_index):
            log.info('Deleting existing destination "%s".', dest_index)
            await store.delete_index(dest_index)

        log.info('Creating "%s".', dest_index)
        await store.clone_index_settings(index, dest_index, plan.mappings)

        log.info('Applying mappings to "%s".', dest_index)
        await store.apply_mappings(dest_index, plan.migrations)

        log.info('Applying seeds to "%s".', dest_index)
        seeded = await store.apply_seeds(dest_index, plan.migrations)
        log.debug("Seeded %d documents", seeded)

        log.info('Applying transforms from "%s" to "%s".', index, dest_index)
        transformed = await store.apply_transforms(
            index, dest_index, plan.migrations, self.options.scroll_size
        )
        log.debug("Transformed %d documents", transformed)

        log.info('Saving migration state to "%s".', dest_index)
        await store.save_migration_state(dest_index, context.next_state())

        log.info('Pointing alias "%s" to "%s".', index, dest_index)
        await store.set_alias(index, dest_index)

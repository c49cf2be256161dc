"""Everything known about an index before a migration run touches it."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .persistence import IndexStore
from .plan import build
from .state import MigrationStatus, build_state, migration_status

if TYPE_CHECKING:
    from .options import MigrationOptions
    from .plan import MigrationPlan
    from .state import MigrationState


@dataclass
class MigrationContext:
    """Stored state, computed plan and resolved index names for one run."""

    options: MigrationOptions
    store: IndexStore
    state: MigrationState
    plan: MigrationPlan
    dest_index: str
    initial_index: str

    @classmethod
    async def fetch(cls, options: MigrationOptions) -> MigrationContext:
        """Read the stored state and build the plan.

        Plugin validation happens here, before anything is written.
        """
        store = IndexStore(options.client, options.log)
        state = await store.fetch_migration_state(options.index)
        plan = build(options.plugins, state)
        return cls(
            options=options,
            store=store,
            state=state,
            plan=plan,
            dest_index=options.resolve_dest_index(),
            initial_index=options.resolve_initial_index(),
        )

    @property
    def index(self) -> str:
        return self.options.index

    @property
    def log(self) -> logging.Logger:
        return self.options.log

    @property
    def checksum(self) -> str:
        return self.plan.checksum

    @property
    def status(self) -> MigrationStatus:
        return migration_status(self.state, self.checksum)

    def next_state(self) -> MigrationState:
        """State to persist in the destination once the plan is applied."""
        return build_state(self.plan.plugins, self.state, self.checksum)

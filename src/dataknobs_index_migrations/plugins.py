"""Plugin and migration definitions.

Plugins are supplied by the host application as an explicit, ordered list.
Each plugin owns an ordered list of migrations; once a migration has been
applied to an index its id and position must never change.

Example:
    ```python
    plugin = Plugin(
        id="widgets",
        mappings={"widget": {"properties": {"n": {"type": "integer"}}}},
        migrations=[
            SeedMigration("seed-default", seed=lambda: StandardDocument(
                type="widget", id="default", attributes={"n": 1}
            )),
            TransformMigration(
                "double-n",
                filter=lambda doc: getattr(doc, "type", None) == "widget",
                transform=lambda doc: replace(doc, attributes={"n": doc.attributes["n"] * 2}),
            ),
        ],
    )
    ```
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Union

if TYPE_CHECKING:
    from collections.abc import Callable
    from .documents import Document


@dataclass
class SeedMigration:
    """Inserts a brand-new document when first applied."""

    id: str
    seed: Callable[[], Document]
    plugin_id: str | None = None


@dataclass
class TransformMigration:
    """Rewrites existing documents accepted by ``filter``."""

    id: str
    filter: Callable[[Document], bool]
    transform: Callable[[Document], Document]
    plugin_id: str | None = None


@dataclass
class MappingMigration:
    """Adds or modifies index schema.

    ``mapping`` returns a properties fragment, e.g. ``{"widget": {"type": "object"}}``.
    """

    id: str
    mapping: Callable[[], dict[str, Any]]
    plugin_id: str | None = None


Migration = Union[SeedMigration, TransformMigration, MappingMigration]


@dataclass
class Plugin:
    """A host plugin contributing migrations and mappings to a shared index.

    A plugin whose ``migrations`` is ``None`` takes no part in migrations.
    """

    id: str
    migrations: list[Migration] | None = None
    mappings: dict[str, Any] | None = None

    @property
    def migration_ids(self) -> list[str]:
        return [m.id for m in self.migrations or []]


def plugins_with_migrations(plugins: list[Plugin]) -> list[Plugin]:
    """Drop plugins that declare no migrations at all."""
    return [p for p in plugins if p.migrations is not None]


def disabled_plugin_ids(plugins: list[Plugin], previous_ids: list[str]) -> list[str]:
    """Ids present in a previous migration state but absent from ``plugins``."""
    enabled = {p.id for p in plugins}
    return [plugin_id for plugin_id in previous_ids if plugin_id not in enabled]

"""Store operations used by the migration cutover.

``IndexStore`` wraps an ``elasticsearch.AsyncElasticsearch`` client. Every
method is a single step of the cutover; store errors propagate to the
caller, except a 404 on lookups that have a natural default.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from elasticsearch import NotFoundError

from .documents import RawDocument, to_raw, to_standard
from .exceptions import BulkItemError
from .pipeline import build_transform, seeded_docs
from .plugins import MappingMigration
from .state import MIGRATION_DOC_ID, MIGRATION_TYPE, MigrationState, MigrationStatus

if TYPE_CHECKING:
    from collections.abc import Awaitable
    from .plugins import Migration

logger = logging.getLogger(__name__)

DEFAULT_SCROLL_SIZE = 100
SCROLL_KEEP_ALIVE = "1m"


def _body(response: Any) -> Any:
    """Unwrap a client response to its body."""
    return getattr(response, "body", response)


async def fetch_or_none(awaitable: Awaitable[Any]) -> Any:
    """Await a store call, mapping a 404 to ``None``."""
    try:
        return _body(await awaitable)
    except NotFoundError:
        return None


class IndexStore:
    """Migration operations against a single Elasticsearch cluster."""

    def __init__(self, client: Any, log: logging.Logger | None = None):
        """Initialize the store.

        Args:
            client: ``AsyncElasticsearch`` client (or a compatible object)
            log: Logger for step detail, defaults to this module's logger
        """
        self.client = client
        self.log = log or logger

    async def index_exists(self, index: str) -> bool:
        """Check whether an index or alias with this name exists."""
        return bool(await self.client.indices.exists(index=index))

    async def alias_exists(self, name: str) -> bool:
        return bool(await self.client.indices.exists_alias(name=name))

    async def delete_index(self, index: str) -> None:
        self.log.debug("Deleting index %s", index)
        await self.client.indices.delete(index=index)

    async def drop_stale_destination(self, alias: str, state: MigrationState) -> str | None:
        """Delete the destination an interrupted migration left half-built.

        Only a ``migrating`` state names such a destination. An index that
        ``alias`` still points at is never deleted.

        Args:
            alias: The migrated index
            state: Migration state stored in ``alias``

        Returns:
            Name of the deleted index, if one was deleted
        """
        dest = state.dest_index
        if state.status is not MigrationStatus.MIGRATING or not dest:
            return None
        if dest in await self.alias_targets(alias) or not await self.index_exists(dest):
            return None
        self.log.info("Deleting %s left behind by an interrupted migration of %s", dest, alias)
        await self.delete_index(dest)
        return dest

    async def ensure_index_exists(
        self,
        index: str,
        initial_index: str,
        mappings: dict[str, Any] | None = None,
    ) -> bool:
        """Create the index if neither an index nor an alias has its name.

        The new concrete index is named ``initial_index`` and aliased as
        ``index``, so no later alias conversion is needed.

        Returns:
            True if the index was created
        """
        if await self.index_exists(index):
            return False
        self.log.info("Creating index %s with alias %s", initial_index, index)
        kwargs: dict[str, Any] = {"index": initial_index, "aliases": {index: {}}}
        if mappings:
            kwargs["mappings"] = mappings
        await self.client.indices.create(**kwargs)
        return True

    async def convert_index_to_alias(self, name: str, new_target: str) -> bool:
        """Move a concrete index to ``new_target`` and alias it under its old name.

        No-op if ``name`` is already an alias.

        Returns:
            True if a conversion took place
        """
        if await self.alias_exists(name):
            return False
        self.log.info("Converting index %s to an alias of %s", name, new_target)
        await self.clone_index_settings(name, new_target)
        await self.client.reindex(
            source={"index": name},
            dest={"index": new_target},
            wait_for_completion=True,
            wait_for_active_shards="all",
            refresh=True,
        )
        await self.client.indices.delete(index=name)
        await self.client.indices.put_alias(index=new_target, name=name)
        return True

    async def set_readonly(self, index: str, readonly: bool = True) -> None:
        """Block or unblock writes to an index."""
        self.log.debug("Setting %s read-only=%s", index, readonly)
        await self.client.indices.put_settings(
            index=index,
            settings={"index": {"blocks.read_only": readonly}},
        )

    async def clone_index_settings(
        self,
        source: str,
        dest: str,
        mappings: dict[str, Any] | None = None,
    ) -> None:
        """Create ``dest`` with the shard and replica settings of ``source``.

        Args:
            source: Index (or alias) to copy settings from
            dest: Index to create
            mappings: Mappings for ``dest``, laid over the current mappings
                of ``source``; the source mappings are copied as-is when
                omitted
        """
        settings_by_index = _body(await self.client.indices.get_settings(index=source))
        # Keyed by concrete index name, which differs from ``source`` for an alias
        settings = next(iter(settings_by_index.values()))["settings"]["index"]

        mappings_by_index = _body(await self.client.indices.get_mapping(index=source))
        source_mappings = next(iter(mappings_by_index.values())).get("mappings") or {}
        if mappings is None:
            mappings = source_mappings or None
        else:
            # Fields added by earlier mapping migrations live only in the source
            mappings = {
                **mappings,
                "properties": {
                    **source_mappings.get("properties", {}),
                    **mappings.get("properties", {}),
                },
            }

        kwargs: dict[str, Any] = {
            "index": dest,
            "settings": {
                "index": {
                    "number_of_shards": settings["number_of_shards"],
                    "number_of_replicas": settings["number_of_replicas"],
                },
            },
        }
        if mappings:
            kwargs["mappings"] = mappings
        self.log.debug("Creating index %s from settings of %s", dest, source)
        await self.client.indices.create(**kwargs)

    async def apply_mappings(self, index: str, migrations: list[Migration]) -> list[MappingMigration]:
        """Apply mapping migrations to ``index`` in order.

        Returns:
            The mapping migrations that were applied
        """
        mapping_migrations = [m for m in migrations if isinstance(m, MappingMigration)]
        for migration in mapping_migrations:
            self.log.debug("Applying mapping %s:%s to %s", migration.plugin_id, migration.id, index)
            await self.client.indices.put_mapping(index=index, properties=migration.mapping())
        return mapping_migrations

    async def apply_seeds(self, index: str, migrations: list[Migration]) -> int:
        """Insert the documents produced by seed migrations.

        Returns:
            Number of seeded documents
        """
        docs = [to_raw(doc) for doc in seeded_docs(migrations)]
        if docs:
            await self.bulk_insert(index, docs)
        return len(docs)

    async def apply_transforms(
        self,
        source: str,
        dest: str,
        migrations: list[Migration],
        scroll_size: int = DEFAULT_SCROLL_SIZE,
    ) -> int:
        """Copy every document of ``source`` into ``dest`` through the transforms.

        Pages are processed one at a time: the next page is not requested
        until the previous one has been written. The migration state document
        is left out; the new state is written to ``dest`` separately.

        Returns:
            Number of documents written
        """
        transform = build_transform(migrations)
        response = _body(await self.client.search(
            index=source, scroll=SCROLL_KEEP_ALIVE, size=scroll_size,
        ))
        scroll_id = response.get("_scroll_id")
        count = 0

        try:
            hits = response["hits"]["hits"]
            while hits:
                docs = [
                    to_raw(transform(to_standard(RawDocument.from_hit(hit))))
                    for hit in hits
                    if hit.get("_id") != MIGRATION_DOC_ID
                ]
                await self.bulk_insert(dest, docs)
                count += len(docs)

                response = _body(await self.client.scroll(scroll_id=scroll_id, scroll=SCROLL_KEEP_ALIVE))
                scroll_id = response.get("_scroll_id", scroll_id)
                hits = response["hits"]["hits"]
        finally:
            if scroll_id:
                await self._clear_scroll(scroll_id)

        return count

    async def _clear_scroll(self, scroll_id: str) -> None:
        try:
            await self.client.clear_scroll(scroll_id=scroll_id)
        except Exception as e:
            self.log.warning(f"Failed to clear scroll: {e}")

    async def bulk_insert(self, index: str, docs: list[RawDocument]) -> dict[str, Any]:
        """Index ``docs`` with a single bulk request.

        Raises:
            BulkItemError: With the first failed item of the response
        """
        if not docs:
            return {"items": []}

        operations: list[dict[str, Any]] = []
        for doc in docs:
            action: dict[str, Any] = {"_index": index}
            if doc.id is not None:
                action["_id"] = doc.id
            operations.append({"index": action})
            operations.append(doc.source or {})

        self.log.debug("Bulk inserting %d documents into %s", len(docs), index)
        response = _body(await self.client.bulk(operations=operations))

        for item in response.get("items", []):
            result = next(iter(item.values()), {})
            if result.get("error"):
                raise BulkItemError(index, item)
        return response

    async def alias_targets(self, alias: str) -> list[str]:
        """Concrete indices ``alias`` points at, empty if there is no such alias."""
        current = await fetch_or_none(self.client.indices.get_alias(name=alias)) or {}
        return list(current.keys())

    async def set_alias(self, alias: str, target_index: str) -> None:
        """Point ``alias`` at ``target_index`` only, in one alias update."""
        current_indices = await self.alias_targets(alias)

        # A read-only index cannot be removed from an alias
        for index in current_indices:
            await self.set_readonly(index, False)

        actions: list[dict[str, Any]] = [
            {"remove": {"index": index, "alias": alias}} for index in current_indices
        ]
        actions.append({"add": {"index": target_index, "alias": alias}})
        self.log.debug("Pointing alias %s from %s to %s", alias, current_indices, target_index)
        await self.client.indices.update_aliases(actions=actions)

    async def fetch_migration_state(self, index: str) -> MigrationState:
        """Read the migration state, or a default state if there is none."""
        result = await fetch_or_none(self.client.get(index=index, id=MIGRATION_DOC_ID))
        if not result:
            return MigrationState()
        return MigrationState.from_dict(result.get("_source", {}).get(MIGRATION_TYPE))

    async def save_migration_state(self, index: str, state: MigrationState) -> None:
        """Write the migration state document, replacing it as a whole."""
        self.log.debug("Saving migration state to %s: %s", index, state.status)
        await self.client.index(
            index=index,
            id=MIGRATION_DOC_ID,
            document={"type": MIGRATION_TYPE, MIGRATION_TYPE: state.to_dict()},
            refresh=True,
        )

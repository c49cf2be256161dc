"""Pytest configuration and an in-memory Elasticsearch stand-in."""

import copy
import itertools
import uuid

import pytest
from elastic_transport import ApiResponseMeta, HttpHeaders, NodeConfig
from elasticsearch import NotFoundError

from dataknobs_index_migrations import (
    MigrationOptions,
    MappingMigration,
    Plugin,
    SeedMigration,
    StandardDocument,
    TransformMigration,
)


def not_found(message="not_found"):
    """Build the error the real client raises for a 404."""
    meta = ApiResponseMeta(
        status=404,
        http_version="1.1",
        headers=HttpHeaders(),
        duration=0.0,
        node=NodeConfig("http", "localhost", 9200),
    )
    return NotFoundError(message, meta, {"error": message, "status": 404})


class IndexBlockedError(Exception):
    """Raised by the fake store when writing to a read-only index."""


class FakeIndices:
    """The ``client.indices`` namespace of the fake store."""

    def __init__(self, es):
        self.es = es

    async def exists(self, index):
        return index in self.es.data or index in self.es.aliases

    async def create(self, index, settings=None, mappings=None, aliases=None):
        self.es.record("indices.create", index=index)
        if index in self.es.data or index in self.es.aliases:
            raise RuntimeError(f"resource_already_exists_exception: {index}")
        index_settings = {"number_of_shards": "1", "number_of_replicas": "1"}
        index_settings.update((settings or {}).get("index", {}))
        self.es.data[index] = {
            "settings": index_settings,
            "mappings": copy.deepcopy(mappings or {}),
            "docs": {},
            "read_only": False,
        }
        for alias in aliases or {}:
            self.es.aliases.setdefault(alias, []).append(index)

    async def delete(self, index):
        self.es.record("indices.delete", index=index)
        if index not in self.es.data:
            raise not_found(f"no such index [{index}]")
        del self.es.data[index]
        for alias, targets in list(self.es.aliases.items()):
            if index in targets:
                targets.remove(index)
            if not targets:
                del self.es.aliases[alias]

    async def get_settings(self, index):
        return {
            name: {"settings": {"index": dict(self.es.data[name]["settings"])}}
            for name in self.es.resolve(index)
        }

    async def get_mapping(self, index):
        return {
            name: {"mappings": copy.deepcopy(self.es.data[name]["mappings"])}
            for name in self.es.resolve(index)
        }

    async def put_mapping(self, index, properties=None, **kwargs):
        self.es.record("indices.put_mapping", index=index, properties=properties)
        for name in self.es.resolve(index):
            mappings = self.es.data[name]["mappings"]
            mappings.setdefault("properties", {}).update(copy.deepcopy(properties or {}))

    async def put_settings(self, index, settings):
        self.es.record("indices.put_settings", index=index, settings=settings)
        read_only = settings.get("index", {}).get("blocks.read_only")
        for name in self.es.resolve(index):
            if read_only is not None:
                self.es.data[name]["read_only"] = read_only

    async def exists_alias(self, name):
        return name in self.es.aliases

    async def get_alias(self, name):
        if name not in self.es.aliases:
            raise not_found(f"alias [{name}] missing")
        return {index: {"aliases": {name: {}}} for index in self.es.aliases[name]}

    async def put_alias(self, index, name):
        self.es.record("indices.put_alias", index=index, name=name)
        self.es.resolve(index)
        self.es.aliases.setdefault(name, []).append(index)

    async def update_aliases(self, actions):
        self.es.record("indices.update_aliases", actions=actions)
        for action in actions:
            if "remove" in action:
                index, alias = action["remove"]["index"], action["remove"]["alias"]
                if self.es.data[index]["read_only"]:
                    raise IndexBlockedError(f"index [{index}] blocked by: [FORBIDDEN/5/index read-only]")
                self.es.aliases[alias].remove(index)
                if not self.es.aliases[alias]:
                    del self.es.aliases[alias]
            elif "add" in action:
                index, alias = action["add"]["index"], action["add"]["alias"]
                self.es.aliases.setdefault(alias, []).append(index)


class FakeElasticsearch:
    """Minimal in-memory async Elasticsearch supporting the calls migrations use.

    ``writes`` records every mutating call in order.
    """

    def __init__(self):
        self.data = {}
        self.aliases = {}
        self.writes = []
        self.bulk_errors = {}
        self.indices = FakeIndices(self)
        self._scrolls = {}
        self._scroll_ids = itertools.count(1)

    def record(self, name, /, **kwargs):
        self.writes.append((name, kwargs))

    @property
    def write_names(self):
        return [name for name, _ in self.writes]

    def resolve(self, name):
        if name in self.aliases:
            return list(self.aliases[name])
        if name in self.data:
            return [name]
        raise not_found(f"no such index [{name}]")

    def _write_target(self, name):
        targets = self.resolve(name)
        assert len(targets) == 1, f"{name} resolves to {targets}"
        target = targets[0]
        if self.data[target]["read_only"]:
            raise IndexBlockedError(f"index [{target}] blocked by: [FORBIDDEN/5/index read-only]")
        return target

    def docs(self, index):
        """Documents of an index or alias, keyed by id."""
        return self.data[self.resolve(index)[0]]["docs"]

    async def get(self, index, id):
        target = self.resolve(index)[0]
        docs = self.data[target]["docs"]
        if id not in docs:
            raise not_found(f"document [{id}] missing")
        return {"_index": target, "_id": id, "found": True, "_source": copy.deepcopy(docs[id])}

    async def index(self, index, id, document, refresh=None):
        self.record("index", index=index, id=id, document=document)
        target = self._write_target(index)
        docs = self.data[target]["docs"]
        result = "updated" if id in docs else "created"
        docs[id] = copy.deepcopy(document)
        return {"_index": target, "_id": id, "result": result}

    async def bulk(self, operations, refresh=None):
        self.record("bulk", operations=operations)
        items = []
        for action, source in zip(operations[::2], operations[1::2]):
            meta = action["index"]
            doc_id = meta.get("_id") or uuid.uuid4().hex
            if doc_id in self.bulk_errors:
                items.append({"index": {
                    "_index": meta["_index"], "_id": doc_id, "status": 400,
                    "error": self.bulk_errors[doc_id],
                }})
                continue
            target = self._write_target(meta["_index"])
            self.data[target]["docs"][doc_id] = copy.deepcopy(source)
            items.append({"index": {"_index": target, "_id": doc_id, "status": 201}})
        return {"errors": any("error" in i["index"] for i in items), "items": items}

    def _page(self, scroll_id):
        hits, size = self._scrolls[scroll_id]
        page, self._scrolls[scroll_id] = hits[:size], (hits[size:], size)
        return {"_scroll_id": scroll_id, "hits": {"hits": page}}

    async def search(self, index, scroll=None, size=10, query=None):
        target = self.resolve(index)[0]
        hits = [
            {"_index": target, "_id": doc_id, "_source": copy.deepcopy(source)}
            for doc_id, source in self.data[target]["docs"].items()
        ]
        scroll_id = f"scroll-{next(self._scroll_ids)}"
        self._scrolls[scroll_id] = (hits, size)
        return self._page(scroll_id)

    async def scroll(self, scroll_id, scroll=None):
        return self._page(scroll_id)

    async def clear_scroll(self, scroll_id):
        self._scrolls.pop(scroll_id, None)

    async def reindex(self, source, dest, **kwargs):
        self.record("reindex", source=source, dest=dest)
        docs = self.data[self.resolve(source["index"])[0]]["docs"]
        target = self._write_target(dest["index"])
        self.data[target]["docs"].update(copy.deepcopy(docs))
        return {"total": len(docs), "created": len(docs)}


@pytest.fixture
def es():
    """A fresh, empty fake store."""
    return FakeElasticsearch()


@pytest.fixture
def widget_plugin():
    """Plugin with a mapping migration followed by a seed."""
    return Plugin(
        id="A",
        migrations=[
            MappingMigration("m1", mapping=lambda: {
                "widget": {"properties": {"n": {"type": "integer"}}},
            }),
            SeedMigration("m2", seed=lambda: StandardDocument(
                type="widget", id="w1", attributes={"n": 1},
            )),
        ],
    )


@pytest.fixture
def double_widgets():
    """Transform doubling ``n`` on every widget."""
    return TransformMigration(
        "double",
        filter=lambda doc: getattr(doc, "type", None) == "widget",
        transform=lambda doc: StandardDocument(
            id=doc.id, type=doc.type, attributes={"n": doc.attributes["n"] * 2},
        ),
    )


@pytest.fixture
def make_options(es):
    """Factory for options bound to the fake store."""

    def factory(plugins, **kwargs):
        kwargs.setdefault("index", "app")
        return MigrationOptions(client=es, plugins=plugins, **kwargs)

    return factory

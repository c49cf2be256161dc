"""Pure functions that compose migrations into document transforms."""

from __future__ import annotations

from functools import reduce
from typing import TYPE_CHECKING

from .documents import to_standard
from .plugins import SeedMigration, TransformMigration

if TYPE_CHECKING:
    from collections.abc import Callable
    from .documents import Document
    from .plugins import Migration


def build_transform(migrations: list[Migration]) -> Callable[[Document], Document]:
    """Create a function that brings a document up to date.

    Transforms run in the order given, across all plugins. Each filter sees
    the standardized result of the previous step.

    Args:
        migrations: Scheduled migrations; seeds and mappings are ignored

    Returns:
        Function taking a document and returning the transformed document

    Raises:
        DocumentFormatError: From the returned function, if the input or any
            transform result is neither raw nor standard
    """
    transforms = [m for m in migrations if isinstance(m, TransformMigration)]

    def apply_one(doc: Document, migration: TransformMigration) -> Document:
        if migration.filter(doc):
            return to_standard(migration.transform(doc))
        return doc

    def transform_doc(doc: Document) -> Document:
        return reduce(apply_one, transforms, to_standard(doc))

    return transform_doc


def seeded_docs(migrations: list[Migration]) -> list[Document]:
    """Produce every seeded document, run through the transforms after it.

    Seeds are assumed to be few, so all documents are built in memory.

    Args:
        migrations: Scheduled migrations

    Returns:
        Seeded documents in the order their seeds appear
    """
    docs = []
    for i, migration in enumerate(migrations):
        if isinstance(migration, SeedMigration):
            transform = build_transform(migrations[i + 1:])
            docs.append(transform(migration.seed()))
    return docs

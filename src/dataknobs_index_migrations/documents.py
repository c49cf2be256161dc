"""Conversion between raw store documents and standardized documents.

A raw document is what the store holds: an ``_id`` plus a ``_source`` body.
A standardized document is the shape migrations work with::

    raw:      RawDocument(id="widget:1", source={"type": "widget", "widget": {...}})
    standard: StandardDocument(id="1", type="widget", attributes={...})

Raw documents whose id is not prefixed with ``"{type}:"`` or whose source has
no attributes under its type are opaque to migrations and pass through
unchanged.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from .exceptions import DocumentFormatError


class DocumentKind(Enum):
    """Discriminator for the document union."""

    RAW = "raw"
    STANDARD = "standard"
    INVALID = "invalid"


@dataclass
class RawDocument:
    """A document as stored in the index."""

    id: str | None
    source: dict[str, Any] | None

    @classmethod
    def from_hit(cls, hit: dict[str, Any]) -> RawDocument:
        """Create from a search or get hit."""
        return cls(id=hit.get("_id"), source=hit.get("_source"))


@dataclass
class StandardDocument:
    """A document in the normalized shape migrations operate on."""

    type: str
    attributes: dict[str, Any] = field(default_factory=dict)
    id: str | None = None
    updated_at: str | None = None


Document = Union[RawDocument, StandardDocument]


def document_kind(doc: Any) -> DocumentKind:
    """Classify a value as raw, standard or invalid."""
    if isinstance(doc, StandardDocument) and doc.type and doc.attributes is not None:
        return DocumentKind.STANDARD
    if isinstance(doc, RawDocument) and doc.source is not None:
        return DocumentKind.RAW
    return DocumentKind.INVALID


def can_standardize(doc: RawDocument) -> bool:
    """Check whether a raw document carries a convertible typed body."""
    if doc.source is None or not doc.id:
        return False
    doc_type = doc.source.get("type")
    return (
        isinstance(doc_type, str)
        and bool(doc_type)
        and doc.source.get(doc_type) is not None
        and doc.id.startswith(f"{doc_type}:")
    )


def to_standard(doc: Any) -> Document:
    """Convert a raw document to its standard form.

    Standard documents and non-convertible raw documents are returned
    unchanged.

    Raises:
        DocumentFormatError: If the document is neither raw nor standard
    """
    kind = document_kind(doc)
    if kind is DocumentKind.STANDARD:
        return doc
    if kind is DocumentKind.RAW:
        return _raw_to_standard(doc) if can_standardize(doc) else doc
    raise DocumentFormatError(doc)


def to_raw(doc: Any) -> RawDocument:
    """Convert a standard document to its raw form.

    Raw documents are returned unchanged. A standard document without an id
    is given a generated one.

    Raises:
        DocumentFormatError: If the document is neither raw nor standard
    """
    kind = document_kind(doc)
    if kind is DocumentKind.STANDARD:
        return _standard_to_raw(doc)
    if kind is DocumentKind.RAW:
        return doc
    raise DocumentFormatError(doc)


def _raw_to_standard(doc: RawDocument) -> StandardDocument:
    source = doc.source or {}
    doc_type = source["type"]
    return StandardDocument(
        id=doc.id[len(doc_type) + 1:],  # type: ignore[index]
        type=doc_type,
        updated_at=source.get("updated_at"),
        attributes=source[doc_type],
    )


def _standard_to_raw(doc: StandardDocument) -> RawDocument:
    doc_id = doc.id if doc.id is not None else uuid.uuid4().hex
    source: dict[str, Any] = {"type": doc.type}
    if doc.updated_at is not None:
        source["updated_at"] = doc.updated_at
    source[doc.type] = doc.attributes
    return RawDocument(id=f"{doc.type}:{doc_id}", source=source)

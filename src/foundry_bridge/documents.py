"""Pure helpers for shaping world data and document operations."""

from __future__ import annotations

from typing import Any, Iterable, Mapping

from foundry_bridge.lib import oj

# World snapshot keys that hold document lists
DOCUMENT_COLLECTIONS: tuple[str, ...] = (
    "actors",
    "items",
    "folders",
    "users",
    "scenes",
    "journal",
)

ALWAYS_INCLUDED_FIELDS = ("_id", "name")


def filter_document_fields(
    doc: dict[str, Any],
    fields: Iterable[str] | None,
) -> dict[str, Any]:
    """
    Project a document onto the requested fields.

    ``_id`` and ``name`` are always kept when present. No fields (None or
    empty) means the whole document.
    """
    requested = list(fields or [])
    if not requested:
        return doc

    wanted = list(dict.fromkeys([*requested, *ALWAYS_INCLUDED_FIELDS]))
    return {field: doc[field] for field in wanted if field in doc}


def _strictly_equal(actual: Any, expected: Any) -> bool:
    # bool is an int subclass; 1 and True are distinct values here
    if isinstance(actual, bool) or isinstance(expected, bool):
        return type(actual) is type(expected) and actual == expected
    return actual == expected


def filter_documents_by_where(
    docs: list[dict[str, Any]],
    where: Mapping[str, Any] | None,
) -> list[dict[str, Any]]:
    """Keep documents whose fields equal every ``where`` value."""
    if not where:
        return docs

    return [
        doc
        for doc in docs
        if all(key in doc and _strictly_equal(doc[key], value) for key, value in where.items())
    ]


def truncate_documents(
    docs: list[dict[str, Any]],
    max_bytes: int | None,
) -> list[dict[str, Any]]:
    """
    Drop documents from the end until the compact JSON fits in ``max_bytes``.

    A missing or non-positive limit returns the list unchanged.
    """
    if not max_bytes or max_bytes <= 0:
        return docs

    result = list(docs)
    while result:
        if len(oj.dumpb(result)) <= max_bytes:
            return result
        result.pop()
    return result


def filter_world_data(
    world: dict[str, Any],
    exclude: Iterable[str],
) -> dict[str, Any]:
    """World snapshot without the excluded top-level keys."""
    excluded = set(exclude)
    return {key: value for key, value in world.items() if key not in excluded}


def find_document(
    docs: list[dict[str, Any]],
    id: str | None = None,
    _id: str | None = None,
    name: str | None = None,
) -> dict[str, Any] | None:
    """
    Find one document by ``id``, ``_id`` or ``name``, in that precedence.

    ``id`` and ``_id`` each match either key on the document.
    """
    if id:
        return next((d for d in docs if d.get("id") == id or d.get("_id") == id), None)
    if _id:
        return next((d for d in docs if d.get("_id") == _id or d.get("id") == _id), None)
    if name:
        return next((d for d in docs if d.get("name") == name), None)
    return None


def build_document_operation(
    base: dict[str, Any],
    parent_uuid: str | None = None,
    pack: str | None = None,
) -> dict[str, Any]:
    """Add the optional ``parentUuid`` and ``pack`` to an operation body."""
    operation = dict(base)
    if pack is not None:
        operation["pack"] = pack
    if parent_uuid:
        operation["parentUuid"] = parent_uuid
    return operation

"""
Response matchers for correlated requests.

The server does not echo the client's ack id in a way that can be relied on
for routing, so every pending request inspects every decoded ack payload and
decides for itself. A matcher returns one of three verdicts:

    IGNORE   not this request's response
    RESOLVE  this request's response; complete with the payload
    REJECT   this request's response, and it reports a failure
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Callable, Iterable, Protocol


class Verdict(Enum):
    IGNORE = auto()
    RESOLVE = auto()
    REJECT = auto()


@dataclass(frozen=True)
class Match:
    verdict: Verdict
    reason: str | None = None


IGNORE = Match(Verdict.IGNORE)
RESOLVE = Match(Verdict.RESOLVE)


def reject(reason: str) -> Match:
    return Match(Verdict.REJECT, reason)


class Matcher(Protocol):
    def __call__(self, response: dict[str, Any]) -> Match: ...


ResponsePredicate = Callable[[dict[str, Any]], bool]


def accept_any(response: dict[str, Any]) -> Match:
    """Matcher for channels that carry exactly one kind of reply."""
    return RESOLVE


@dataclass(frozen=True)
class DocumentMatcher:
    """
    Two-tier filter for modifyDocument replies.

    Replies for another document type are ignored. A reply of the right type
    carrying ``error`` is resolved as is so the caller can inspect the
    failure. Otherwise the predicate decides.
    """

    document_type: str
    predicate: ResponsePredicate
    description: str = ""

    def __call__(self, response: dict[str, Any]) -> Match:
        if response.get("type") != self.document_type:
            return IGNORE
        if response.get("error"):
            return RESOLVE
        return RESOLVE if self.predicate(response) else IGNORE


def _result_list(response: dict[str, Any]) -> list[Any]:
    result = response.get("result")
    return result if isinstance(result, list) else []


def updated_matcher(document_type: str, document_id: str) -> DocumentMatcher:
    """Matches an update reply whose result includes ``document_id``."""

    def predicate(response: dict[str, Any]) -> bool:
        return any(
            isinstance(record, dict) and record.get("_id") == document_id
            for record in _result_list(response)
        )

    return DocumentMatcher(document_type, predicate, f"update {document_id}")


def created_matcher(document_type: str) -> DocumentMatcher:
    """Matches any create reply for the type; new documents have no id yet."""

    def predicate(response: dict[str, Any]) -> bool:
        return response.get("action") == "create"

    return DocumentMatcher(document_type, predicate, "create")


def deleted_matcher(document_type: str, ids: Iterable[str]) -> DocumentMatcher:
    """Matches a delete reply whose result includes any of ``ids``."""
    wanted = frozenset(ids)

    def predicate(response: dict[str, Any]) -> bool:
        if response.get("action") != "delete":
            return False
        return any(deleted in wanted for deleted in _result_list(response) if isinstance(deleted, str))

    return DocumentMatcher(document_type, predicate, f"delete {sorted(wanted)}")


@dataclass(frozen=True)
class BrowseMatcher:
    """
    Structural matcher for browseFiles replies: only a listing has ``dirs``.

    An error without ``dirs`` means the target does not exist and fails the
    request straight away.
    """

    def __call__(self, response: dict[str, Any]) -> Match:
        error = response.get("error")
        if "dirs" not in response:
            if error:
                return reject(f"Browse files failed: {error}")
            return IGNORE
        if error:
            return reject(f"Browse files failed: {error}")
        return RESOLVE


@dataclass(frozen=True)
class CompendiumMatcher:
    """Matches manageCompendium replies by the echoed request action."""

    action: str
    failure_label: str

    def __call__(self, response: dict[str, Any]) -> Match:
        request = response.get("request")
        if not isinstance(request, dict) or request.get("action") != self.action:
            return IGNORE
        if response.get("error"):
            return reject(f"{self.failure_label} failed: {response['error']}")
        return RESOLVE

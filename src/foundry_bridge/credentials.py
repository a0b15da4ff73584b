"""Credential loading and active-instance bookkeeping."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from foundry_bridge.lib import oj

logger = logging.getLogger(__name__)


class CredentialError(Exception):
    """Credentials could not be loaded or an instance could not be resolved."""

    pass


@dataclass(frozen=True)
class Credential:
    """One configured Foundry instance."""

    id: str
    hostname: str
    userid: str
    password: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Credential":
        """Create from a credentials-file entry."""
        return cls(
            id=data.get("_id", ""),
            hostname=data.get("hostname", ""),
            userid=data.get("userid", ""),
            password=data.get("password", ""),
        )

    def __repr__(self) -> str:
        return f"Credential(id={self.id!r}, hostname={self.hostname!r}, userid={self.userid!r})"


@dataclass(frozen=True)
class CredentialInfo:
    """Credential summary safe to show to users (no password)."""

    id: str
    hostname: str
    userid: str
    item_order: int
    currently_active: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "_id": self.id,
            "hostname": self.hostname,
            "userid": self.userid,
            "item_order": self.item_order,
            "currently_active": self.currently_active,
        }


def parse_credentials(raw: str | bytes) -> list[Credential]:
    """
    Parse the credentials file contents.

    Raises:
        CredentialError: If the JSON is not an array.
    """
    parsed = oj.loads(raw)
    if not isinstance(parsed, list):
        raise CredentialError("Credentials JSON must be an array")
    return [Credential.from_dict(entry) for entry in parsed if isinstance(entry, dict)]


class CredentialStore:
    """
    Ordered list of configured instances plus the index of the active one.

    The index is -1 while nothing is connected.
    """

    def __init__(
        self,
        path: Path | None = None,
        credentials: list[Credential] | None = None,
    ):
        self.path = path
        self._credentials: list[Credential] = list(credentials or [])
        self.active_index: int = -1

    @property
    def credentials(self) -> list[Credential]:
        return list(self._credentials)

    def load(self) -> list[Credential]:
        """Read and parse the credentials file, replacing the current list."""
        if self.path is None:
            raise CredentialError("No credentials path configured")
        try:
            self._credentials = parse_credentials(self.path.read_bytes())
        except Exception as e:
            raise CredentialError(f"Failed to load credentials from {self.path}: {e}") from e
        logger.debug(f"Loaded {len(self._credentials)} credentials from {self.path}")
        return self.credentials

    def ensure_loaded(self) -> list[Credential]:
        """Load on first use; later calls return the cached list."""
        if not self._credentials and self.path is not None:
            self.load()
        return self.credentials

    def info(self) -> list[CredentialInfo]:
        """Summaries for every credential, in file order."""
        return [
            CredentialInfo(
                id=cred.id,
                hostname=cred.hostname,
                userid=cred.userid,
                item_order=index,
                currently_active=index == self.active_index,
            )
            for index, cred in enumerate(self._credentials)
        ]

    def resolve_index(
        self,
        item_order: int | None = None,
        id: str | None = None,
    ) -> int:
        """
        Resolve an instance identifier to a list index.

        item_order wins when both are given.

        Raises:
            CredentialError: Out-of-range order, unknown id, or neither given.
        """
        if item_order is not None:
            if item_order < 0 or item_order >= len(self._credentials):
                raise CredentialError(
                    f"Invalid item_order: {item_order}. "
                    f"Valid range is 0-{len(self._credentials) - 1}"
                )
            return item_order

        if id is not None:
            for index, cred in enumerate(self._credentials):
                if cred.id == id:
                    return index
            valid_ids = ", ".join(cred.id for cred in self._credentials)
            raise CredentialError(f'No credential found with _id: "{id}". Valid _ids are: {valid_ids}')

        raise CredentialError("Must provide either item_order or _id")

    def __len__(self) -> int:
        return len(self._credentials)

"""High-level Foundry client used by the MCP server."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any, Callable, Sequence

from foundry_bridge.credentials import CredentialError, CredentialInfo, CredentialStore
from foundry_bridge.documents import (
    build_document_operation,
    filter_document_fields,
    filter_documents_by_where,
    filter_world_data,
    find_document,
    truncate_documents,
)
from foundry_bridge.protocol.correlator import DEFAULT_IMAGE_EXTENSIONS, RequestCorrelator
from foundry_bridge.protocol.matchers import created_matcher, deleted_matcher, updated_matcher
from foundry_bridge.protocol.supervisor import ConnectionFactory, SessionSupervisor
from foundry_bridge.transport.base import AuthenticationError
from foundry_bridge.transport.session import SessionNegotiator, UploadResult
from foundry_bridge.transport.types import TransportConfig
from foundry_bridge.transport.wire_log import WireLogger

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class FoundryClient:
    """
    One client, one Foundry world.

    Wires the credential store to the session supervisor and the request
    correlator. Reads go through the world snapshot; writes are
    modifyDocument, manageFiles and manageCompendium events.
    """

    def __init__(
        self,
        credentials: CredentialStore | Path,
        config: TransportConfig | None = None,
        negotiator: SessionNegotiator | None = None,
        wire_log: WireLogger | None = None,
        connection_factory: ConnectionFactory | None = None,
        clock: Clock = time.time,
    ):
        """
        Initialize the client.

        Args:
            credentials: Credential store, or the path of the credentials file.
            config: Transport timeouts and schemes.
            negotiator: HTTP side; one is created from config when omitted.
            wire_log: Optional verbatim websocket traffic log.
            connection_factory: Builds websocket connections (tests inject fakes).
            clock: Seconds since the epoch, used for ``modifiedTime``.
        """
        self.store = credentials if isinstance(credentials, CredentialStore) else CredentialStore(credentials)
        self.config = config or TransportConfig()
        self.negotiator = negotiator or SessionNegotiator(self.config)
        self.wire_log = wire_log
        self.supervisor = SessionSupervisor(
            self.negotiator,
            self.config,
            wire_log=wire_log,
            connection_factory=connection_factory,
        )
        self.correlator = RequestCorrelator(self.supervisor, self.negotiator, self.config)
        self._clock = clock

    async def __aenter__(self) -> "FoundryClient":
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # Connection management

    async def connect(self) -> None:
        """
        Connect using the first credential that works, in file order.

        Raises:
            ConnectionError: No credentials, or none of them connected.
        """
        if self.store.path is not None:
            self.store.load()
        self.store.active_index = -1
        self.store.active_index = await self.supervisor.connect_first(self.store.credentials)

    async def choose_instance(
        self,
        item_order: int | None = None,
        id: str | None = None,
    ) -> CredentialInfo:
        """
        Switch to a specific configured instance.

        The current connection is dropped before the new one is attempted,
        so a failure leaves the client disconnected.

        Raises:
            CredentialError: Unknown instance or no credentials configured.
            AuthenticationError: The instance rejected the credential.
            TransportError: The instance could not be reached.
        """
        self.store.ensure_loaded()
        if not len(self.store):
            raise CredentialError("No credentials found in config file")

        index = self.store.resolve_index(item_order=item_order, id=id)
        credential = self.store.credentials[index]
        logger.info(f"Connecting to instance: {credential.id} ({credential.hostname})...")

        await self.supervisor.disconnect()
        self.store.active_index = -1
        try:
            await self.supervisor.establish(credential)
        except AuthenticationError:
            logger.error(f"Authentication failed for {credential.hostname}")
            raise

        self.store.active_index = index
        logger.info(f"Successfully connected to {credential.id} ({credential.hostname})")
        return self.store.info()[index]

    def credentials_info(self) -> list[CredentialInfo]:
        """Configured instances without passwords."""
        self.store.ensure_loaded()
        return self.store.info()

    def is_connected(self) -> bool:
        return self.supervisor.is_connected

    @property
    def hostname(self) -> str | None:
        session = self.supervisor.session
        return session.hostname if session else None

    @property
    def session_id(self) -> str | None:
        session = self.supervisor.session
        return session.session_id if session else None

    async def close(self) -> None:
        """Disconnect and release HTTP and log resources."""
        await self.supervisor.disconnect()
        self.store.active_index = -1
        await self.negotiator.aclose()
        if self.wire_log is not None:
            self.wire_log.close()

    # Reads

    async def get_world(self, exclude: Sequence[str] = ()) -> dict[str, Any]:
        """World snapshot with the ``exclude`` keys removed."""
        world = await self.correlator.request_world()
        return filter_world_data(world, exclude)

    async def _collection(self, collection: str) -> list[dict[str, Any]]:
        world = await self.correlator.request_world()
        docs = world.get(collection)
        if not isinstance(docs, list):
            raise ValueError(f"Response does not contain {collection} array")
        return docs

    async def get_documents(
        self,
        collection: str,
        max_length: int | None = None,
        requested_fields: Sequence[str] | None = None,
        where: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """
        List a collection from the world snapshot.

        ``where`` is applied first, then field projection, then truncation to
        ``max_length`` bytes of JSON.
        """
        docs = filter_documents_by_where(await self._collection(collection), where)
        docs = [filter_document_fields(doc, requested_fields) for doc in docs]
        return truncate_documents(docs, max_length)

    async def get_document(
        self,
        collection: str,
        id: str | None = None,
        _id: str | None = None,
        name: str | None = None,
        requested_fields: Sequence[str] | None = None,
    ) -> dict[str, Any] | None:
        """One document by id, _id or name; None when nothing matches."""
        doc = find_document(await self._collection(collection), id=id, _id=_id, name=name)
        if doc is None:
            return None
        return filter_document_fields(doc, requested_fields)

    # Writes

    def _modified_time(self) -> int:
        return int(self._clock() * 1000)

    def _timeout_suffix(self) -> str:
        return f"({self.config.request_timeout:g}s)"

    async def modify_document(
        self,
        document_type: str,
        _id: str,
        updates: Sequence[dict[str, Any]],
        parent_uuid: str | None = None,
        pack: str | None = None,
    ) -> dict[str, Any]:
        """
        Apply updates to one document.

        Every update gets ``_id`` set. Returns the server's reply, which
        carries ``error`` when validation failed.
        """
        operation = build_document_operation(
            {
                "diff": False,
                "pack": None,
                "updates": [{**update, "_id": _id} for update in updates],
                "action": "update",
                "modifiedTime": self._modified_time(),
                "recursive": True,
                "render": True,
            },
            parent_uuid=parent_uuid,
            pack=pack,
        )
        return await self.correlator.send_document_operation(
            document_type,
            "update",
            operation,
            updated_matcher(document_type, _id),
            f"Timeout waiting for modifyDocument response {self._timeout_suffix()} for {document_type} {_id}",
            "modifyDocument",
        )

    async def create_document(
        self,
        document_type: str,
        data: Sequence[dict[str, Any]],
        parent_uuid: str | None = None,
        pack: str | None = None,
    ) -> dict[str, Any]:
        """Create documents from ``data``; returns the server's reply."""
        operation = build_document_operation(
            {
                "pack": None,
                "data": list(data),
                "action": "create",
                "modifiedTime": self._modified_time(),
                "renderSheet": True,
                "render": True,
            },
            parent_uuid=parent_uuid,
            pack=pack,
        )
        return await self.correlator.send_document_operation(
            document_type,
            "create",
            operation,
            created_matcher(document_type),
            f"Timeout waiting for createDocument response {self._timeout_suffix()} for {document_type}",
            "createDocument",
        )

    async def delete_document(
        self,
        document_type: str,
        ids: Sequence[str],
        parent_uuid: str | None = None,
        pack: str | None = None,
    ) -> dict[str, Any]:
        """Delete documents by ``_id``; returns the server's reply."""
        ids = list(ids)
        operation = build_document_operation(
            {
                "pack": None,
                "ids": ids,
                "action": "delete",
                "modifiedTime": self._modified_time(),
                "deleteAll": False,
                "render": True,
            },
            parent_uuid=parent_uuid,
            pack=pack,
        )
        return await self.correlator.send_document_operation(
            document_type,
            "delete",
            operation,
            deleted_matcher(document_type, ids),
            f"Timeout waiting for deleteDocument response {self._timeout_suffix()} for {document_type}",
            "deleteDocument",
        )

    # Files and compendiums

    async def upload_file(
        self,
        target: str,
        filename: str,
        url: str | None = None,
        image_data: str | None = None,
    ) -> UploadResult:
        return await self.correlator.upload_file(target, filename, url=url, image_data=image_data)

    async def browse_files(
        self,
        target: str,
        file_type: str = "image",
        extensions: Sequence[str] | None = None,
    ) -> dict[str, Any]:
        return await self.correlator.browse_files(
            target,
            file_type=file_type,
            extensions=extensions if extensions is not None else DEFAULT_IMAGE_EXTENSIONS,
        )

    async def create_compendium(self, label: str, document_type: str) -> dict[str, Any]:
        return await self.correlator.create_compendium(label, document_type)

    async def delete_compendium(self, name: str) -> dict[str, Any]:
        return await self.correlator.delete_compendium(name)

"""Correlated request/response exchanges over the active session."""

from __future__ import annotations

import asyncio
import base64
import binascii
import itertools
import logging
import re
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any, Callable, Sequence

from foundry_bridge.protocol.errors import (
    ConnectionLostError,
    FrameDecodeError,
    NotConnectedError,
    OperationFailedError,
    RequestTimeoutError,
)
from foundry_bridge.protocol.frames import (
    WORLD_REQUEST_FRAME,
    FrameKind,
    build_event_frame,
    decode_frame,
)
from foundry_bridge.protocol.matchers import (
    BrowseMatcher,
    CompendiumMatcher,
    DocumentMatcher,
    Matcher,
    ResponsePredicate,
    Verdict,
    accept_any,
)
from foundry_bridge.protocol.supervisor import Session, SessionSupervisor
from foundry_bridge.transport.session import SessionNegotiator, UploadResult
from foundry_bridge.transport.types import TransportConfig
from foundry_bridge.transport.websocket import WebSocketConnection

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_EXTENSIONS: tuple[str, ...] = (
    ".apng",
    ".avif",
    ".bmp",
    ".gif",
    ".jpeg",
    ".jpg",
    ".png",
    ".svg",
    ".tiff",
    ".webp",
)

MIME_TYPES: dict[str, str] = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "webp": "image/webp",
    "svg": "image/svg+xml",
    "bmp": "image/bmp",
    "tiff": "image/tiff",
    "apng": "image/apng",
    "avif": "image/avif",
    "pdf": "application/pdf",
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "ogg": "audio/ogg",
    "mp4": "video/mp4",
    "webm": "video/webm",
}


_URLSAFE = str.maketrans("-_", "+/")


def content_type_for(filename: str) -> str:
    """Guess a MIME type from the file extension."""
    suffix = PurePosixPath(filename.lower()).suffix.lstrip(".")
    return MIME_TYPES.get(suffix, "application/octet-stream")


def decode_base64(data: str) -> bytes:
    """Decode base64 leniently. Missing padding is restored and non-alphabet characters are skipped."""
    cleaned = re.sub(r"[^A-Za-z0-9+/]", "", data.translate(_URLSAFE))
    return base64.b64decode(cleaned + "=" * (-len(cleaned) % 4))


@dataclass
class PendingRequest:
    """A sent request waiting for the frame that answers it."""

    ack_id: int
    label: str
    kind: FrameKind
    matcher: Matcher
    future: asyncio.Future

    def offer(self, kind: FrameKind, data: Any, error: str | None) -> None:
        """Test one decoded frame against this request and settle on a match."""
        if self.future.done() or kind is not self.kind:
            return

        if kind is FrameKind.WORLD:
            if error is not None:
                self.future.set_exception(FrameDecodeError(error, self.label))
                return
            response = data
        else:
            # A broken ack cannot be attributed to any one request
            if error is not None:
                logger.debug(f"Ignoring undecodable ack for {self.label}: {error}")
                return
            response = data[0]

        if not isinstance(response, dict):
            return

        match = self.matcher(response)
        if match.verdict is Verdict.RESOLVE:
            self.future.set_result(response)
        elif match.verdict is Verdict.REJECT:
            self.future.set_exception(OperationFailedError(match.reason or "Request failed", self.label))


class RequestCorrelator:
    """
    Issues websocket requests and pairs each with its response.

    Any number of requests may be in flight on the one socket. Each one sees
    every inbound frame in arrival order and settles exactly once: on its
    matching response, on a timeout, or when its socket closes.
    """

    def __init__(
        self,
        supervisor: SessionSupervisor,
        negotiator: SessionNegotiator | None = None,
        config: TransportConfig | None = None,
    ):
        self.supervisor = supervisor
        self.negotiator = negotiator or supervisor.negotiator
        self.config = config or supervisor.config
        self._ack_ids = itertools.count(1)
        self._pending: dict[int, PendingRequest] = {}

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def _next_ack_id(self) -> int:
        return next(self._ack_ids)

    def _live_connection(self) -> WebSocketConnection:
        session = self.supervisor.session
        if session is None or not session.connection.is_open:
            raise NotConnectedError()
        return session.connection

    def _active_session(self) -> Session:
        session = self.supervisor.session
        if session is None:
            raise NotConnectedError()
        return session

    async def _exchange(
        self,
        frame: str | Callable[[int], str],
        kind: FrameKind,
        matcher: Matcher,
        label: str,
        timeout_message: str,
    ) -> dict[str, Any]:
        """
        Send one frame and wait for the response the matcher accepts.

        ``frame`` may be a callable taking the allocated ack id.
        """
        connection = self._live_connection()
        ack_id = self._next_ack_id()
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        pending = PendingRequest(
            ack_id=ack_id,
            label=label,
            kind=kind,
            matcher=matcher,
            future=future,
        )

        def on_frame(text: str) -> None:
            decoded = decode_frame(text)
            if decoded is not None:
                frame_kind, result = decoded
                pending.offer(frame_kind, result.data, result.error)

        def on_close(_connection: WebSocketConnection, error: Exception | None) -> None:
            if not future.done():
                reason = f": {error}" if error else ""
                future.set_exception(
                    ConnectionLostError(f"Connection closed while waiting for {label} response{reason}", label)
                )

        connection.add_listener(on_frame)
        connection.add_close_listener(on_close)
        self._pending[ack_id] = pending

        try:
            text = frame(ack_id) if callable(frame) else frame
            logger.debug(f"Sending {label}: {text[:500]}")
            await connection.send(text)
            return await asyncio.wait_for(future, timeout=self.config.request_timeout)
        except asyncio.TimeoutError:
            raise RequestTimeoutError(timeout_message, label)
        finally:
            connection.remove_listener(on_frame)
            connection.remove_close_listener(on_close)
            self._pending.pop(ack_id, None)

    def _timeout_suffix(self) -> str:
        return f"({self.config.request_timeout:g}s)"

    async def request_world(self) -> dict[str, Any]:
        """
        Fetch the full world snapshot.

        This is the only read primitive the server offers; every list or
        lookup is a filter over its result.
        """
        logger.debug("Requesting world data...")
        return await self._exchange(
            WORLD_REQUEST_FRAME,
            FrameKind.WORLD,
            accept_any,
            "world",
            f"Timeout waiting for world data {self._timeout_suffix()}",
        )

    async def send_document_operation(
        self,
        document_type: str,
        action: str,
        operation: dict[str, Any],
        predicate: ResponsePredicate | DocumentMatcher,
        timeout_message: str | None = None,
        label: str = "modifyDocument",
    ) -> dict[str, Any]:
        """
        Send a modifyDocument event and wait for its ack.

        Server-side validation failures come back resolved with an ``error``
        field; the caller inspects the payload.
        """
        if action not in ("update", "create", "delete"):
            raise ValueError(f"Unsupported document action: {action}")

        matcher = (
            predicate
            if isinstance(predicate, DocumentMatcher)
            else DocumentMatcher(document_type, predicate)
        )
        payload = [
            "modifyDocument",
            {"type": document_type, "action": action, "operation": operation},
        ]
        return await self._exchange(
            lambda ack_id: build_event_frame(ack_id, payload),
            FrameKind.ACK,
            matcher,
            label,
            timeout_message
            or f"Timeout waiting for {label} response {self._timeout_suffix()} for {document_type}",
        )

    async def browse_files(
        self,
        target: str,
        file_type: str = "image",
        extensions: Sequence[str] | None = None,
    ) -> dict[str, Any]:
        """List directories and files under ``target``."""
        payload = [
            "manageFiles",
            {"action": "browseFiles", "storage": "data", "target": target},
            {
                "type": file_type,
                "extensions": list(extensions if extensions is not None else DEFAULT_IMAGE_EXTENSIONS),
                "wildcard": False,
                "render": True,
            },
        ]
        return await self._exchange(
            lambda ack_id: build_event_frame(ack_id, payload),
            FrameKind.ACK,
            BrowseMatcher(),
            "browseFiles",
            f"Timeout waiting for browseFiles response {self._timeout_suffix()} for {target}",
        )

    async def create_compendium(self, label: str, document_type: str) -> dict[str, Any]:
        """Create a world compendium pack holding ``document_type`` documents."""
        payload = [
            "manageCompendium",
            {"action": "create", "data": {"label": label, "type": document_type}, "options": {}},
        ]
        return await self._exchange(
            lambda ack_id: build_event_frame(ack_id, payload),
            FrameKind.ACK,
            CompendiumMatcher("create", "Create compendium"),
            "createCompendium",
            f"Timeout waiting for createCompendium response {self._timeout_suffix()} for {label}",
        )

    async def delete_compendium(self, name: str) -> dict[str, Any]:
        """Delete a world compendium pack by name."""
        payload = [
            "manageCompendium",
            {"action": "delete", "data": name, "options": {}},
        ]
        return await self._exchange(
            lambda ack_id: build_event_frame(ack_id, payload),
            FrameKind.ACK,
            CompendiumMatcher("delete", "Delete compendium"),
            "deleteCompendium",
            f"Timeout waiting for deleteCompendium response {self._timeout_suffix()} for {name}",
        )

    async def upload_file(
        self,
        target: str,
        filename: str,
        url: str | None = None,
        image_data: str | None = None,
    ) -> UploadResult:
        """
        Upload a file into the server's data directory.

        Exactly one of ``url`` or ``image_data`` (base64) must be given; this
        is checked before anything touches the network.

        Raises:
            ValueError: Both or neither source given, or bad base64.
            NotConnectedError: No active session.
            TransportError: Download or upload failed.
        """
        has_url = bool(url)
        has_data = bool(image_data)
        if has_url and has_data:
            raise ValueError("Cannot provide both 'url' and 'image_data'. Please provide exactly one.")
        if not has_url and not has_data:
            raise ValueError("Must provide either 'url' or 'image_data'. Please provide exactly one.")

        session = self._active_session()

        if has_url:
            downloaded = await self.negotiator.download(url)
            content, content_type = downloaded.content, downloaded.content_type
        else:
            try:
                content = decode_base64(image_data)
            except (binascii.Error, ValueError) as e:
                raise ValueError(f"Invalid base64 image_data: {e}") from e
            content_type = content_type_for(filename)

        logger.info(f"Uploading {filename} ({len(content)} bytes) to {target}")
        return await self.negotiator.upload(
            session.hostname,
            session.session_id,
            target,
            filename,
            content,
            content_type,
        )

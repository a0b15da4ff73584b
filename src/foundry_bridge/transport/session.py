"""HTTP side of a Foundry session: cookie, login, upload, download."""

from __future__ import annotations

import logging
import re
import secrets
from dataclasses import dataclass
from typing import Any, Callable, Iterable

import httpx

from foundry_bridge.credentials import Credential
from foundry_bridge.lib import oj
from foundry_bridge.transport.base import ConnectionError, TransportError
from foundry_bridge.transport.types import TransportConfig

logger = logging.getLogger(__name__)

JOIN_PATH = "/join"
UPLOAD_PATH = "/upload"
SESSION_ID_BYTES = 12

_SESSION_COOKIE = re.compile(r"session=([^;]+)")


@dataclass(frozen=True)
class JoinResult:
    """Outcome of POST /join."""

    success: bool
    message: str | None = None


@dataclass(frozen=True)
class DownloadedFile:
    content: bytes
    content_type: str


@dataclass(frozen=True)
class UploadResult:
    """Where an uploaded file landed."""

    path: str
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"path": self.path}
        if self.message is not None:
            result["message"] = self.message
        return result


def generate_session_id() -> str:
    """24 hex characters from a cryptographic source."""
    return secrets.token_hex(SESSION_ID_BYTES)


def extract_session_id(cookies: Iterable[str] | None) -> str | None:
    """Pull the session id out of a list of Set-Cookie values."""
    if not cookies:
        return None
    for cookie in cookies:
        match = _SESSION_COOKIE.search(cookie)
        if match:
            return match.group(1)
    return None


def build_join_payload(credential: Credential) -> dict[str, str]:
    return {
        "userid": credential.userid,
        "password": credential.password,
        "action": "join",
    }


def parse_join_response(status_code: int | None, body: str | bytes) -> JoinResult:
    """
    Interpret a POST /join response.

    Only status 200 with ``{"status": "success"}`` counts as success.
    Malformed bodies are a failure, never an exception.
    """
    if status_code != 200:
        return JoinResult(success=False)

    try:
        response = oj.loads(body)
    except oj.JSONDecodeError:
        return JoinResult(success=False)

    if isinstance(response, dict) and response.get("status") == "success":
        return JoinResult(success=True, message=response.get("message"))
    return JoinResult(success=False)


class SessionNegotiator:
    """
    Performs the two-step HTTP handshake and the file transfers that ride
    on an established session cookie.

    Rejected credentials come back as ``False``; only a request that could
    not complete raises.
    """

    def __init__(
        self,
        config: TransportConfig | None = None,
        client: httpx.AsyncClient | None = None,
        session_id_factory: Callable[[], str] = generate_session_id,
    ):
        self.config = config or TransportConfig()
        self._client = client
        self._owns_client = client is None
        self._session_id_factory = session_id_factory

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.config.http_timeout),
                headers=self.config.headers,
                verify=self.config.verify_ssl,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def get_session(self, hostname: str) -> str:
        """
        GET /join and return the session cookie, or a fresh id if the
        server did not set one.

        Raises:
            ConnectionError: The request could not complete.
        """
        try:
            response = await self.client.get(self.config.http_url(hostname, JOIN_PATH))
        except httpx.HTTPError as e:
            raise ConnectionError(f"GET /join failed for {hostname}: {e}", cause=e)

        session_id = extract_session_id(response.headers.get_list("set-cookie"))
        if session_id is None:
            session_id = self._session_id_factory()
            logger.debug(f"No session cookie from {hostname}, generated one")
        return session_id

    async def authenticate(
        self,
        hostname: str,
        session_id: str,
        credential: Credential,
    ) -> bool:
        """
        POST /join with the credential under the given session cookie.

        Raises:
            ConnectionError: The request could not complete.
        """
        try:
            response = await self.client.post(
                self.config.http_url(hostname, JOIN_PATH),
                content=oj.dumpb(build_join_payload(credential)),
                headers={
                    "Content-Type": "application/json",
                    "Cookie": f"session={session_id}",
                },
            )
        except httpx.HTTPError as e:
            raise ConnectionError(f"POST /join failed for {hostname}: {e}", cause=e)

        result = parse_join_response(response.status_code, response.content)
        if result.success:
            logger.info(f"Authentication successful: {result.message or ''}".strip())
            return True

        logger.warning(
            f"Authentication failed for {hostname}: {response.status_code} - {response.text[:200]}"
        )
        return False

    async def download(self, url: str) -> DownloadedFile:
        """
        Fetch a file, following redirects.

        Raises:
            TransportError: Non-2xx final status, or the request failed.
        """
        try:
            response = await self.client.get(url, follow_redirects=True)
        except httpx.HTTPError as e:
            raise TransportError(f"Failed to download file: {e}", cause=e)

        if not response.is_success:
            raise TransportError(f"Failed to download file: HTTP {response.status_code}")

        content_type = response.headers.get("content-type", "application/octet-stream")
        return DownloadedFile(content=response.content, content_type=content_type)

    async def upload(
        self,
        hostname: str,
        session_id: str,
        target: str,
        filename: str,
        content: bytes,
        content_type: str,
    ) -> UploadResult:
        """
        POST /upload as multipart form data under the session cookie.

        Raises:
            TransportError: Server reported an error, or the request failed.
        """
        try:
            response = await self.client.post(
                self.config.http_url(hostname, UPLOAD_PATH),
                data={"source": "data", "target": target, "bucket": "null"},
                files={"upload": (filename, content, content_type)},
                headers={"Cookie": f"session={session_id}"},
            )
        except httpx.HTTPError as e:
            raise TransportError(f"Upload request failed: {e}", cause=e)

        fallback_path = f"{target}/{filename}"
        try:
            body = oj.loads(response.content)
        except oj.JSONDecodeError:
            if response.is_success:
                return UploadResult(path=fallback_path, message="Upload completed")
            raise TransportError(
                f"Upload failed with status {response.status_code}: {response.text}"
            )

        if not isinstance(body, dict):
            return UploadResult(path=fallback_path)
        if body.get("error"):
            raise TransportError(f"Upload failed: {body['error']}")
        return UploadResult(
            path=body.get("path") or fallback_path,
            message=body.get("message"),
        )

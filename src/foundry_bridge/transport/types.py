"""Transport layer types and configuration."""

from dataclasses import dataclass, field


@dataclass
class TransportConfig:
    """Configuration for the HTTP and websocket transports."""

    connect_timeout: float = 10.0
    """Websocket upgrade timeout in seconds."""

    request_timeout: float = 30.0
    """Round-trip timeout for world, document, file and compendium requests."""

    http_timeout: float = 30.0
    """Timeout for individual HTTP requests (join, upload, download)."""

    http_scheme: str = "https"
    """Scheme for /join and /upload requests."""

    ws_scheme: str = "wss"
    """Scheme for the socket.io websocket."""

    verify_ssl: bool = True
    """Whether to verify TLS certificates."""

    headers: dict[str, str] = field(default_factory=dict)
    """Additional HTTP headers to include in requests."""

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.connect_timeout <= 0:
            raise ValueError("connect_timeout must be positive")
        if self.request_timeout <= 0:
            raise ValueError("request_timeout must be positive")
        if self.http_timeout <= 0:
            raise ValueError("http_timeout must be positive")
        if self.http_scheme not in ("http", "https"):
            raise ValueError("http_scheme must be http or https")
        if self.ws_scheme not in ("ws", "wss"):
            raise ValueError("ws_scheme must be ws or wss")

    def http_url(self, hostname: str, path: str) -> str:
        """Build an HTTP URL for a path on the given host."""
        return f"{self.http_scheme}://{hostname}{path}"

"""Entry point: connect to Foundry, then serve MCP on stdio."""

import asyncio
import logging
import sys

from foundry_bridge.client import FoundryClient
from foundry_bridge.config import BridgeConfig
from foundry_bridge.server.stdio import serve
from foundry_bridge.server.tools import ToolDispatcher
from foundry_bridge.transport.base import TransportError
from foundry_bridge.credentials import CredentialError
from foundry_bridge.transport.wire_log import WireLogger

logger = logging.getLogger("foundry_bridge")


def configure_logging(level: int) -> None:
    # stdout carries the MCP channel
    logging.basicConfig(
        stream=sys.stderr,
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def run(config: BridgeConfig) -> int:
    wire_log = WireLogger(config.wire_log_directory)
    client = FoundryClient(config.credentials_path, config.transport, wire_log=wire_log)

    async with client:
        logger.info("Connecting to FoundryVTT...")
        try:
            await client.connect()
        except (TransportError, CredentialError) as e:
            logger.error(f"Fatal error: {e}")
            return 1
        logger.info(f"Connected to FoundryVTT at {client.hostname}")

        await serve(ToolDispatcher(client))
    return 0


def main() -> int:
    try:
        config = BridgeConfig.from_env()
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 1

    configure_logging(config.log_level_number)
    try:
        return asyncio.run(run(config))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())

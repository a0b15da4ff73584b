"""
Bridge between MCP clients and a FoundryVTT server.

Submodules:
- transport: HTTP session negotiation and the socket.io websocket
- protocol: frame codec, response matchers, reconnect supervisor, request correlator
- client: FoundryClient facade over credentials, supervisor and correlator
- server: MCP stdio server exposing the client as tools
"""

__version__ = "0.1.0"

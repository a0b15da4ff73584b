"""
MCP tool definitions and the dispatcher that runs them against a client.

Every world collection gets a ``get_<plural>`` list tool and a
``get_<singular>`` lookup tool. The remaining tools are fixed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import mcp.types as types
from mcp.shared.exceptions import McpError

from foundry_bridge.client import FoundryClient
from foundry_bridge.lib import oj

logger = logging.getLogger(__name__)

ToolResult = types.CallToolResult
ToolArguments = dict[str, Any]


@dataclass(frozen=True)
class DocumentType:
    singular: str
    plural: str
    collection: str
    description: str

    @property
    def list_tool(self) -> str:
        return f"get_{self.plural}"

    @property
    def get_tool(self) -> str:
        return f"get_{self.singular}"


DOCUMENT_TYPES: tuple[DocumentType, ...] = (
    DocumentType("actor", "actors", "actors", "actor"),
    DocumentType("item", "items", "items", "item"),
    DocumentType("folder", "folders", "folders", "folder"),
    DocumentType("user", "users", "users", "user"),
    DocumentType("scene", "scenes", "scenes", "scene"),
    DocumentType("journal", "journals", "journal", "journal entry"),
    DocumentType("macro", "macros", "macros", "macro"),
    DocumentType("card", "cards", "cards", "card"),
    DocumentType("playlist", "playlists", "playlists", "playlist"),
    DocumentType("table", "tables", "tables", "table"),
    DocumentType("combat", "combats", "combats", "combats"),
    DocumentType("message", "messages", "messages", "messages"),
    DocumentType("setting", "settings", "settings", "settings"),
)

# Tools that work without a live connection
CONNECTIONLESS_TOOLS = frozenset({"show_credentials", "choose_foundry_instance"})

DOCUMENT_CLASS_HINT = (
    'Valid types include: "Actor", "Item", "Scene", "JournalEntry", "Folder", "User", '
    '"Playlist", "Macro", "RollTable", "Cards", "ChatMessage", "Combat", "Combatant", '
    '"ActiveEffect", "Drawing", "MeasuredTemplate", "Note", "Tile", "Token", "Wall", '
    '"AmbientLight", "AmbientSound". The type must match Foundry\'s internal document '
    "class name (case-sensitive)."
)

PARENT_UUID_HINT = (
    "Optional. The UUID of the parent document for embedded documents such as "
    "Drawings, Tokens, Tiles or Walls inside a Scene. "
    'Format: "{ParentType}.{parentId}" (e.g., "Scene.vrKkbtn8u66mv1Y9").'
)

PACK_HINT = (
    'Optional. The compendium pack ID (e.g., "world.my-compendium"). '
    "If not provided, world documents are used."
)


def _object_schema(properties: dict[str, Any], required: list[str] | None = None) -> dict[str, Any]:
    return {"type": "object", "properties": properties, "required": required or []}


def _string_list(description: str) -> dict[str, Any]:
    return {"type": "array", "items": {"type": "string"}, "description": description}


def _object_list(description: str) -> dict[str, Any]:
    return {
        "type": "array",
        "items": {"type": "object", "additionalProperties": True},
        "description": description,
    }


def list_tool_definition(doc_type: DocumentType) -> dict[str, Any]:
    plural = doc_type.plural
    return {
        "name": doc_type.list_tool,
        "description": f"Get all {plural} from FoundryVTT",
        "inputSchema": _object_schema(
            {
                "max_length": {
                    "type": "integer",
                    "description": (
                        f"Maximum number of bytes the JSON response can be. {plural.capitalize()} "
                        "are removed one by one until under this limit. If 0 or null, there is no limit."
                    ),
                },
                "requested_fields": _string_list(
                    f"Field names to include in each {doc_type.description} object. "
                    "Always includes _id and name. If empty or null, all fields are included."
                ),
                "where": {
                    "type": "object",
                    "additionalProperties": True,
                    "description": (
                        f"Filter {plural} by field values. All conditions must match (AND logic). "
                        f'Example: {{"folder": "abc123"}} returns only {plural} in that folder.'
                    ),
                },
            }
        ),
    }


def get_tool_definition(doc_type: DocumentType) -> dict[str, Any]:
    description = doc_type.description
    return {
        "name": doc_type.get_tool,
        "description": f"Get a specific {description} from FoundryVTT by id, _id, or name",
        "inputSchema": _object_schema(
            {
                "id": {"type": "string", "description": f"The id of the {description} to retrieve"},
                "_id": {"type": "string", "description": f"The _id of the {description} to retrieve"},
                "name": {"type": "string", "description": f"The name of the {description} to retrieve"},
                "requested_fields": _string_list(
                    f"Field names to include in the {description} object. "
                    "Always includes _id and name. If empty or null, all fields are included."
                ),
            }
        ),
    }


STATIC_TOOLS: list[dict[str, Any]] = [
    {
        "name": "get_world",
        "description": (
            "Get world metadata from FoundryVTT such as title, system and version. "
            "Document collections are excluded; use the get_* tools for those."
        ),
        "inputSchema": _object_schema({}),
    },
    {
        "name": "modify_document",
        "description": (
            "Modify a document in FoundryVTT. Retrieve the document with the matching get_* tool "
            "first; schemas vary by game system."
        ),
        "inputSchema": _object_schema(
            {
                "type": {"type": "string", "description": f"The document type to modify. {DOCUMENT_CLASS_HINT}"},
                "_id": {"type": "string", "description": "The _id of the document to modify."},
                "updates": _object_list(
                    "Update objects using nested objects for the document structure. "
                    "The _id is added to each update automatically. "
                    'Example: [{"system": {"description": "A shiny sword", "quantity": 2}}]'
                ),
                "parent_uuid": {"type": "string", "description": PARENT_UUID_HINT},
                "pack": {"type": "string", "description": PACK_HINT},
            },
            ["type", "_id", "updates"],
        ),
    },
    {
        "name": "create_document",
        "description": (
            "Create new documents in FoundryVTT. Inspect an existing document of the same type "
            "first to learn its schema."
        ),
        "inputSchema": _object_schema(
            {
                "type": {"type": "string", "description": f"The document type to create. {DOCUMENT_CLASS_HINT}"},
                "data": _object_list(
                    'Data objects for the new documents. Most types require "name". '
                    'Example: [{"name": "Healing Potion", "type": "consumable"}]'
                ),
                "parent_uuid": {"type": "string", "description": PARENT_UUID_HINT},
                "pack": {"type": "string", "description": PACK_HINT},
            },
            ["type", "data"],
        ),
    },
    {
        "name": "delete_document",
        "description": "Delete one or more documents in FoundryVTT. This is permanent.",
        "inputSchema": _object_schema(
            {
                "type": {"type": "string", "description": f"The document type to delete. {DOCUMENT_CLASS_HINT}"},
                "ids": _string_list('Document _ids to delete. Example: ["vlcf6AI5FaE9qjgJ"]'),
                "parent_uuid": {"type": "string", "description": PARENT_UUID_HINT},
                "pack": {"type": "string", "description": PACK_HINT},
            },
            ["type", "ids"],
        ),
    },
    {
        "name": "show_credentials",
        "description": (
            "Show configured Foundry credentials without passwords: _id, hostname, userid, "
            "item_order and currently_active for each entry."
        ),
        "inputSchema": _object_schema({}),
    },
    {
        "name": "choose_foundry_instance",
        "description": (
            "Switch to a different Foundry instance by item_order (zero-based index) or _id. "
            "Disconnects from the current instance first."
        ),
        "inputSchema": _object_schema(
            {
                "item_order": {
                    "type": "integer",
                    "description": "Zero-based index of the credential in the credentials file.",
                },
                "_id": {"type": "string", "description": "The _id of the credential entry."},
            }
        ),
    },
    {
        "name": "upload_file",
        "description": (
            "Upload a file to FoundryVTT. Provide exactly one of 'url' (download from a remote URL) "
            "or 'image_data' (base64-encoded content)."
        ),
        "inputSchema": _object_schema(
            {
                "target": {
                    "type": "string",
                    "description": 'Target directory, e.g. "worlds/myworld/assets/avatars".',
                },
                "filename": {
                    "type": "string",
                    "description": 'Filename including extension, e.g. "goblin-avatar.png".',
                },
                "url": {"type": "string", "description": "URL to download the file from."},
                "image_data": {"type": "string", "description": "Base64-encoded file content."},
            },
            ["target", "filename"],
        ),
    },
    {
        "name": "browse_files",
        "description": "List directories and files at a path in FoundryVTT's data storage.",
        "inputSchema": _object_schema(
            {
                "target": {"type": "string", "description": 'Directory to browse, e.g. "worlds/myworld/assets".'},
                "type": {
                    "type": "string",
                    "description": 'File type filter. Defaults to "image". Common values: image, audio, video, text.',
                },
                "extensions": _string_list(
                    "File extensions to include, with leading dot. Defaults to common image extensions."
                ),
            },
            ["target"],
        ),
    },
    {
        "name": "create_compendium",
        "description": "Create a new compendium pack in the current world.",
        "inputSchema": _object_schema(
            {
                "label": {"type": "string", "description": 'Display label, e.g. "My NPCs".'},
                "type": {
                    "type": "string",
                    "description": (
                        'Document type held by the compendium: "Actor", "Item", "Scene", "JournalEntry", '
                        '"Macro", "Playlist", "RollTable", "Cards" or "Adventure".'
                    ),
                },
            },
            ["label", "type"],
        ),
    },
    {
        "name": "delete_compendium",
        "description": "Delete a compendium pack and every document in it. This is permanent.",
        "inputSchema": _object_schema(
            {
                "name": {
                    "type": "string",
                    "description": 'Compendium name (not label), e.g. "my-npcs" for "world.my-npcs".',
                },
            },
            ["name"],
        ),
    },
]


def tool_definitions() -> list[types.Tool]:
    """Every tool the server advertises, list/get pairs first."""
    definitions: list[dict[str, Any]] = []
    for doc_type in DOCUMENT_TYPES:
        definitions.append(list_tool_definition(doc_type))
        definitions.append(get_tool_definition(doc_type))
    definitions.extend(STATIC_TOOLS)
    return [types.Tool(**definition) for definition in definitions]


def text_result(text: str, is_error: bool = False) -> ToolResult:
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        isError=is_error,
    )


def success_result(data: Any) -> ToolResult:
    return text_result(oj.dumps(data))


def error_result(message: str) -> ToolResult:
    return text_result(message, is_error=True)


def unknown_tool_error(name: str) -> McpError:
    return McpError(
        types.ErrorData(code=types.METHOD_NOT_FOUND, message=f"Unknown tool: {name}", data={"tool": name})
    )


class ToolArgumentError(ValueError):
    """A tool call was missing or had a malformed argument."""

    pass


def _require_str(args: ToolArguments, key: str) -> str:
    value = args.get(key)
    if not isinstance(value, str) or not value:
        raise ToolArgumentError(f"Error: '{key}' is required")
    return value


def _optional_str(args: ToolArguments, key: str) -> str | None:
    value = args.get(key)
    return value if isinstance(value, str) and value else None


def _optional_list(args: ToolArguments, key: str) -> list[Any] | None:
    value = args.get(key)
    return value if isinstance(value, list) and value else None


class ToolDispatcher:
    """
    Runs MCP tool calls against a FoundryClient.

    Client failures become ``isError`` tool results; only an unknown tool
    name is a protocol error.
    """

    def __init__(self, client: FoundryClient):
        self.client = client
        self._handlers: dict[str, tuple[str, Callable[[ToolArguments], Awaitable[ToolResult]]]] = {}

        for doc_type in DOCUMENT_TYPES:
            self._handlers[doc_type.list_tool] = (
                f"fetching {doc_type.plural}",
                self._make_list_handler(doc_type),
            )
            self._handlers[doc_type.get_tool] = (
                f"fetching {doc_type.description}",
                self._make_get_handler(doc_type),
            )

        self._handlers.update(
            {
                "get_world": ("fetching world", self._get_world),
                "modify_document": ("modifying document", self._modify_document),
                "create_document": ("creating document", self._create_document),
                "delete_document": ("deleting document", self._delete_document),
                "show_credentials": ("fetching credentials", self._show_credentials),
                "choose_foundry_instance": ("switching Foundry instance", self._choose_instance),
                "upload_file": ("uploading file", self._upload_file),
                "browse_files": ("browsing files", self._browse_files),
                "create_compendium": ("creating compendium", self._create_compendium),
                "delete_compendium": ("deleting compendium", self._delete_compendium),
            }
        )

    @property
    def tool_names(self) -> list[str]:
        return list(self._handlers)

    async def call(self, name: str, arguments: ToolArguments | None = None) -> ToolResult:
        """
        Run one tool.

        Raises:
            McpError: Unknown tool name.
        """
        if name not in self._handlers:
            raise unknown_tool_error(name)

        if name not in CONNECTIONLESS_TOOLS and not self.client.is_connected():
            return error_result("Error: Not connected to FoundryVTT server")

        activity, handler = self._handlers[name]
        args = arguments or {}
        try:
            return await handler(args)
        except ToolArgumentError as e:
            return error_result(str(e))
        except Exception as e:
            logger.error(f"Tool {name} failed: {e}")
            return error_result(f"Error {activity}: {e}")

    # Collections

    def _make_list_handler(self, doc_type: DocumentType) -> Callable[[ToolArguments], Awaitable[ToolResult]]:
        async def handler(args: ToolArguments) -> ToolResult:
            where = args.get("where")
            docs = await self.client.get_documents(
                doc_type.collection,
                max_length=args.get("max_length") or None,
                requested_fields=_optional_list(args, "requested_fields"),
                where=where if isinstance(where, dict) and where else None,
            )
            return success_result(docs)

        return handler

    def _make_get_handler(self, doc_type: DocumentType) -> Callable[[ToolArguments], Awaitable[ToolResult]]:
        async def handler(args: ToolArguments) -> ToolResult:
            id = _optional_str(args, "id")
            _id = _optional_str(args, "_id")
            name = _optional_str(args, "name")
            if not (id or _id or name):
                raise ToolArgumentError("Error: Must provide at least one of: id, _id, or name")

            doc = await self.client.get_document(
                doc_type.collection,
                id=id,
                _id=_id,
                name=name,
                requested_fields=_optional_list(args, "requested_fields"),
            )
            if doc is None:
                return text_result(f"{doc_type.description.capitalize()} not found")
            return success_result(doc)

        return handler

    async def _get_world(self, args: ToolArguments) -> ToolResult:
        exclude = [doc_type.collection for doc_type in DOCUMENT_TYPES]
        return success_result(await self.client.get_world(exclude))

    # Document writes

    async def _modify_document(self, args: ToolArguments) -> ToolResult:
        document_type = _require_str(args, "type")
        _id = _require_str(args, "_id")
        updates = args.get("updates")
        if not isinstance(updates, list):
            raise ToolArgumentError("Error: 'updates' must be an array of objects")

        result = await self.client.modify_document(
            document_type,
            _id,
            updates,
            parent_uuid=_optional_str(args, "parent_uuid"),
            pack=_optional_str(args, "pack"),
        )
        return success_result(result)

    async def _create_document(self, args: ToolArguments) -> ToolResult:
        document_type = _require_str(args, "type")
        data = args.get("data")
        if not isinstance(data, list):
            raise ToolArgumentError("Error: 'data' must be an array of objects")

        result = await self.client.create_document(
            document_type,
            data,
            parent_uuid=_optional_str(args, "parent_uuid"),
            pack=_optional_str(args, "pack"),
        )
        return success_result(result)

    async def _delete_document(self, args: ToolArguments) -> ToolResult:
        document_type = _require_str(args, "type")
        ids = args.get("ids")
        if not isinstance(ids, list) or not ids:
            raise ToolArgumentError("Error: 'ids' must be a non-empty array of strings")

        result = await self.client.delete_document(
            document_type,
            ids,
            parent_uuid=_optional_str(args, "parent_uuid"),
            pack=_optional_str(args, "pack"),
        )
        return success_result(result)

    # Instances

    async def _show_credentials(self, args: ToolArguments) -> ToolResult:
        return success_result([info.to_dict() for info in self.client.credentials_info()])

    async def _choose_instance(self, args: ToolArguments) -> ToolResult:
        item_order = args.get("item_order")
        _id = args.get("_id")
        if item_order is None and _id is None:
            raise ToolArgumentError("Error: Must provide either item_order or _id")

        await self.client.choose_instance(item_order=item_order, id=_id)
        hostname = self.client.hostname
        return success_result(
            {
                "success": True,
                "message": f"Successfully connected to {hostname}",
                "hostname": hostname,
            }
        )

    # Files and compendiums

    async def _upload_file(self, args: ToolArguments) -> ToolResult:
        target = _require_str(args, "target")
        filename = _require_str(args, "filename")
        result = await self.client.upload_file(
            target,
            filename,
            url=_optional_str(args, "url"),
            image_data=_optional_str(args, "image_data"),
        )
        return success_result(result.to_dict())

    async def _browse_files(self, args: ToolArguments) -> ToolResult:
        target = _require_str(args, "target")
        result = await self.client.browse_files(
            target,
            file_type=_optional_str(args, "type") or "image",
            extensions=_optional_list(args, "extensions"),
        )
        return success_result(result)

    async def _create_compendium(self, args: ToolArguments) -> ToolResult:
        label = _require_str(args, "label")
        document_type = _require_str(args, "type")
        return success_result(await self.client.create_compendium(label, document_type))

    async def _delete_compendium(self, args: ToolArguments) -> ToolResult:
        name = _require_str(args, "name")
        return success_result(await self.client.delete_compendium(name))

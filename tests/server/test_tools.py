"""Tests for MCP tool definitions and dispatch."""

import mcp.types as types
import pytest
from mcp.shared.exceptions import McpError

from foundry_bridge.credentials import CredentialInfo
from foundry_bridge.lib import oj
from foundry_bridge.server.tools import DOCUMENT_TYPES, ToolDispatcher, tool_definitions
from foundry_bridge.transport.session import UploadResult


@pytest.fixture
def client(foundry_client):
    return foundry_client


@pytest.fixture
def dispatcher(client):
    return ToolDispatcher(client)


def text_of(result):
    return result.content[0].text


class TestDefinitions:
    def test_every_collection_has_list_and_get(self):
        names = [tool.name for tool in tool_definitions()]
        for doc_type in DOCUMENT_TYPES:
            assert f"get_{doc_type.plural}" in names
            assert f"get_{doc_type.singular}" in names
        assert names[:2] == ["get_actors", "get_actor"]

    def test_static_tools_present(self):
        names = {tool.name for tool in tool_definitions()}
        assert {
            "get_world",
            "modify_document",
            "create_document",
            "delete_document",
            "show_credentials",
            "choose_foundry_instance",
            "upload_file",
            "browse_files",
            "create_compendium",
            "delete_compendium",
        } <= names

    def test_required_arguments(self):
        tools = {tool.name: tool for tool in tool_definitions()}
        assert tools["modify_document"].inputSchema["required"] == ["type", "_id", "updates"]
        assert tools["upload_file"].inputSchema["required"] == ["target", "filename"]

    def test_dispatcher_handles_every_definition(self, dispatcher):
        assert sorted(dispatcher.tool_names) == sorted(tool.name for tool in tool_definitions())


class TestDispatch:
    @pytest.mark.asyncio
    async def test_unknown_tool(self, dispatcher):
        with pytest.raises(McpError) as exc_info:
            await dispatcher.call("get_dragons", {})
        assert exc_info.value.error.code == types.METHOD_NOT_FOUND
        assert exc_info.value.error.message == "Unknown tool: get_dragons"

    @pytest.mark.asyncio
    async def test_requires_connection(self, dispatcher, client):
        client.is_connected.return_value = False
        result = await dispatcher.call("get_actors", {})
        assert result.isError
        assert text_of(result) == "Error: Not connected to FoundryVTT server"
        client.get_documents.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_show_credentials_works_offline(self, dispatcher, client):
        client.is_connected.return_value = False
        client.credentials_info.return_value = [
            CredentialInfo(id="main", hostname="h", userid="gm", item_order=0, currently_active=False)
        ]
        result = await dispatcher.call("show_credentials")
        assert oj.loads(text_of(result)) == [
            {"_id": "main", "hostname": "h", "userid": "gm", "item_order": 0, "currently_active": False}
        ]

    @pytest.mark.asyncio
    async def test_list_tool(self, dispatcher, client):
        client.get_documents.return_value = [{"_id": "j1"}]
        result = await dispatcher.call("get_journals", {"max_length": 0, "requested_fields": ["content"]})

        assert oj.loads(text_of(result)) == [{"_id": "j1"}]
        client.get_documents.assert_awaited_once_with(
            "journal", max_length=None, requested_fields=["content"], where=None
        )

    @pytest.mark.asyncio
    async def test_get_tool_requires_identifier(self, dispatcher, client):
        result = await dispatcher.call("get_actor", {})
        assert result.isError
        assert text_of(result) == "Error: Must provide at least one of: id, _id, or name"

    @pytest.mark.asyncio
    async def test_get_tool_not_found(self, dispatcher, client):
        client.get_document.return_value = None
        result = await dispatcher.call("get_journal", {"name": "Missing"})
        assert not result.isError
        assert text_of(result) == "Journal entry not found"

    @pytest.mark.asyncio
    async def test_get_world_excludes_every_collection(self, dispatcher, client):
        client.get_world.return_value = {"title": "W"}
        await dispatcher.call("get_world")
        exclude = client.get_world.await_args.args[0]
        assert "actors" in exclude and "journal" in exclude and "settings" in exclude

    @pytest.mark.asyncio
    async def test_modify_document(self, dispatcher, client):
        client.modify_document.return_value = {"type": "Actor", "result": []}
        result = await dispatcher.call(
            "modify_document",
            {"type": "Actor", "_id": "a1", "updates": [{"name": "X"}], "pack": "world.npcs"},
        )
        assert not result.isError
        client.modify_document.assert_awaited_once_with(
            "Actor", "a1", [{"name": "X"}], parent_uuid=None, pack="world.npcs"
        )

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "arguments, message",
        [
            ({"_id": "a1", "updates": []}, "Error: 'type' is required"),
            ({"type": "Actor", "updates": []}, "Error: '_id' is required"),
            ({"type": "Actor", "_id": "a1", "updates": {}}, "Error: 'updates' must be an array of objects"),
        ],
    )
    async def test_modify_document_validation(self, dispatcher, client, arguments, message):
        result = await dispatcher.call("modify_document", arguments)
        assert result.isError
        assert text_of(result) == message
        client.modify_document.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_delete_requires_ids(self, dispatcher):
        result = await dispatcher.call("delete_document", {"type": "Actor", "ids": []})
        assert text_of(result) == "Error: 'ids' must be a non-empty array of strings"

    @pytest.mark.asyncio
    async def test_client_failure_becomes_error_result(self, dispatcher, client):
        client.create_compendium.side_effect = RuntimeError("Create compendium failed: exists")
        result = await dispatcher.call("create_compendium", {"label": "NPCs", "type": "Actor"})
        assert result.isError
        assert text_of(result) == "Error creating compendium: Create compendium failed: exists"

    @pytest.mark.asyncio
    async def test_choose_instance(self, dispatcher, client):
        client.is_connected.return_value = False
        result = await dispatcher.call("choose_foundry_instance", {"item_order": 1})
        client.choose_instance.assert_awaited_once_with(item_order=1, id=None)
        assert oj.loads(text_of(result)) == {
            "success": True,
            "message": "Successfully connected to foundry.example.com",
            "hostname": "foundry.example.com",
        }

    @pytest.mark.asyncio
    async def test_choose_instance_requires_identifier(self, dispatcher):
        result = await dispatcher.call("choose_foundry_instance", {})
        assert text_of(result) == "Error: Must provide either item_order or _id"

    @pytest.mark.asyncio
    async def test_upload_file(self, dispatcher, client):
        client.upload_file.return_value = UploadResult(path="t/a.png", message="ok")
        result = await dispatcher.call("upload_file", {"target": "t", "filename": "a.png", "image_data": "aGk="})
        assert oj.loads(text_of(result)) == {"path": "t/a.png", "message": "ok"}
        client.upload_file.assert_awaited_once_with("t", "a.png", url=None, image_data="aGk=")

    @pytest.mark.asyncio
    async def test_browse_files_defaults(self, dispatcher, client):
        client.browse_files.return_value = {"dirs": []}
        await dispatcher.call("browse_files", {"target": "worlds/w"})
        client.browse_files.assert_awaited_once_with("worlds/w", file_type="image", extensions=None)

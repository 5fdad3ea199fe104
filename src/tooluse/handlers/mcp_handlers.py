"""use_mcp_tool and access_mcp_resource."""

import json

from ..errors import InvalidParameterError
from ..logger import get_logger
from ..models import ToolName
from .. import responses
from .base import ToolHandler

log = get_logger("handlers.mcp")


def format_tool_response(response) -> str:
    """Text items as-is, resources as JSON (without their blob)."""
    parts = []
    for item in response.content:
        kind = item.get("type")
        if kind == "text" and item.get("text"):
            parts.append(item["text"])
        elif kind == "resource":
            resource = {k: v for k, v in (item.get("resource") or {}).items() if k != "blob"}
            parts.append(f"[Resource: {json.dumps(resource, indent=2)}]")
    body = "\n\n".join(parts) or "(No response)"
    return ("Error:\n" if response.is_error else "") + body


class _McpHandler(ToolHandler):
    def hub(self):
        hub = self.task.services.mcp
        if hub is None:
            raise RuntimeError("MCP Hub is not available.")
        return hub


class UseMcpToolHandler(_McpHandler):
    tool = ToolName.USE_MCP_TOOL
    action = "executing MCP tool"

    async def handle_partial(self) -> None:
        server = self.params.get("server_name")
        tool_name = self.params.get("tool_name")
        if not server or not tool_name:
            return
        await self.task.prompt.ask("use_mcp_server", json.dumps({
            "type": "use_mcp_tool",
            "serverName": self.remove_closing_tag("server_name", server),
            "toolName": self.remove_closing_tag("tool_name", tool_name),
            "arguments": self.remove_closing_tag("arguments", self.params.get("arguments")),
        }), partial=True)

    async def handle_complete(self) -> None:
        server = self.require("server_name")
        tool_name = self.require("tool_name")
        raw_args = self.optional("arguments")
        arguments = None
        if raw_args:
            try:
                arguments = json.loads(raw_args)
            except json.JSONDecodeError:
                raise InvalidParameterError(
                    self.name, "arguments",
                    responses.invalid_mcp_tool_argument_error(server, tool_name),
                    user_text=f"Model tried to use {tool_name} with an invalid JSON argument. Retrying...",
                )

        payload = {"type": "use_mcp_tool", "serverName": server, "toolName": tool_name,
                   "arguments": raw_args}
        if not await self.ask_approval("use_mcp_server", payload):
            return

        await self.task.prompt.say("mcp_server_request_started")
        response = await self.hub().call_tool(server, tool_name, arguments)
        pretty = format_tool_response(response)
        await self.task.prompt.say("mcp_server_response", pretty)
        await self.complete_success(pretty)


class AccessMcpResourceHandler(_McpHandler):
    tool = ToolName.ACCESS_MCP_RESOURCE
    action = "accessing MCP resource"

    async def handle_partial(self) -> None:
        server = self.params.get("server_name")
        uri = self.params.get("uri")
        if not server or not uri:
            return
        await self.task.prompt.ask("use_mcp_server", json.dumps({
            "type": "access_mcp_resource",
            "serverName": self.remove_closing_tag("server_name", server),
            "uri": self.remove_closing_tag("uri", uri),
        }), partial=True)

    async def handle_complete(self) -> None:
        server = self.require("server_name")
        uri = self.require("uri")

        if not await self.ask_approval(
                "use_mcp_server", {"type": "access_mcp_resource", "serverName": server, "uri": uri}):
            return

        await self.task.prompt.say("mcp_server_request_started")
        response = await self.hub().read_resource(server, uri)
        text = "\n\n".join(c["text"] for c in response.contents if c.get("text")) or "(Empty response)"
        images = [c["blob"] for c in response.contents
                  if str(c.get("mimeType", "")).startswith("image") and c.get("blob")]
        await self.task.prompt.say("mcp_server_response", text, images or None)
        await self.complete_success(responses.tool_result(text, images or None))

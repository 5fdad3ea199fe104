"""Access to connected MCP servers."""

import itertools
from typing import Any, Dict, Optional, Protocol, runtime_checkable

import httpx

from .logger import get_logger, truncate
from .models import McpResourceResponse, McpToolCallResponse

log = get_logger("mcp")


class McpError(Exception):
    """Server unreachable, unknown, or returned a JSON-RPC error."""


@runtime_checkable
class McpHub(Protocol):
    async def call_tool(self, server_name: str, tool_name: str,
                        arguments: Optional[Dict[str, Any]] = None) -> McpToolCallResponse: ...

    async def read_resource(self, server_name: str, uri: str) -> McpResourceResponse: ...


class HttpMcpHub:
    """MCP servers reachable over HTTP (JSON-RPC 2.0 POST per request).

    ``servers`` maps server name to endpoint URL.
    """

    def __init__(self, servers: Dict[str, str], timeout: float = 60.0):
        self.servers = dict(servers)
        self.timeout = timeout
        self._ids = itertools.count(1)
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout, connect=10.0))
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _rpc(self, server_name: str, method: str, params: Dict[str, Any]) -> Dict[str, Any]:
        url = self.servers.get(server_name)
        if not url:
            raise McpError(f"No connection found for server: {server_name}")

        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout, connect=10.0))

        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        log.debug("mcp %s -> %s %s", server_name, method, truncate(str(params), 200))
        try:
            response = await self._client.post(url, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise McpError(f"{server_name} returned HTTP {e.response.status_code}") from e
        except httpx.RequestError as e:
            raise McpError(f"Could not reach {server_name}: {e}") from e

        body = response.json()
        if body.get("error"):
            err = body["error"]
            raise McpError(f"{server_name}: {err.get('message', err)}")
        return body.get("result") or {}

    async def call_tool(self, server_name: str, tool_name: str,
                        arguments: Optional[Dict[str, Any]] = None) -> McpToolCallResponse:
        result = await self._rpc(server_name, "tools/call",
                                 {"name": tool_name, "arguments": arguments or {}})
        return McpToolCallResponse.model_validate(result)

    async def read_resource(self, server_name: str, uri: str) -> McpResourceResponse:
        result = await self._rpc(server_name, "resources/read", {"uri": uri})
        return McpResourceResponse.model_validate(result)

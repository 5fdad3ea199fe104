"""Long-form instructions the model can pull on demand via fetch_instructions."""

from typing import Dict, Optional

from .modes import ModeManager, all_modes

CREATE_MCP_SERVER = """\
You can create an MCP server that exposes new tools and resources to yourself.

An MCP server for this agent is an HTTP endpoint that answers JSON-RPC 2.0
POST requests. It must implement at least:

- tools/list: returns {"tools": [{"name", "description", "inputSchema"}]}
- tools/call: params {"name", "arguments"}; returns {"content": [...], "isError": bool}
- resources/read (optional): params {"uri"}; returns {"contents": [{"uri", "mimeType", "text" | "blob"}]}

Steps:
1. Create the server project outside the workspace you are editing.
2. Implement the methods above. Keep tool input schemas small and explicit.
3. Start the server with execute_command and note its URL.
4. Register it under "mcp_servers" in .tooluse/config.json as {"<name>": "<url>"}.
5. Call its tools with use_mcp_tool using the registered server name.
"""

CREATE_MODE = """\
Custom modes are defined under "custom_modes" in .tooluse/config.json (or
~/.tooluse.json for every workspace). Each entry is an object with:

- slug: unique identifier, lowercase letters, digits and dashes (required)
- name: display name (required)
- role_definition: who the agent is in this mode
- groups: tool groups allowed, any of "read", "edit", "browser", "command", "mcp"
- custom_instructions: extra guidance appended for this mode

A custom mode with the same slug as a built-in one replaces it.
Currently available modes:
{modes}
"""

_TASKS: Dict[str, str] = {
    "create_mcp_server": CREATE_MCP_SERVER,
    "create_mode": CREATE_MODE,
}


def available_tasks():
    return sorted(_TASKS)


def get_instructions(task: str, modes: Optional[ModeManager] = None) -> Optional[str]:
    """Instruction text for ``task``, or None if there is no such task."""
    text = _TASKS.get(task)
    if text is None:
        return None
    if task == "create_mode":
        listing = ""
        if modes is not None:
            listing = "\n".join(f"- {m.slug}: {m.name}" for m in all_modes(modes.custom_modes))
        text = text.format(modes=listing or "- (none)")
    return text

"""Configuration management for the tool-execution core."""

import os
import json
from pathlib import Path
from dataclasses import dataclass, field
from typing import Dict, List, Optional
from dotenv import load_dotenv

from .logger import get_logger

log = get_logger("config")

# Approval categories that may be configured to skip the human prompt.
APPROVAL_CATEGORIES = ("read", "write", "execute", "browser", "mcp", "mode", "subtask")


def get_global_config_path() -> Path:
    """Get path to global config: ~/.tooluse.json"""
    return Path.home() / ".tooluse.json"


def get_workspace_config_path(workspace: Optional[Path] = None) -> Path:
    """Get path to workspace config: workspace/.tooluse/config.json"""
    ws = workspace or Path.cwd()
    return ws / ".tooluse" / "config.json"


def load_json_config(path: Path) -> dict:
    """Load config from JSON file if it exists."""
    if path.exists():
        try:
            return json.loads(path.read_text())
        except (json.JSONDecodeError, IOError) as e:
            log.warning("Ignoring unreadable config %s: %s", path, e)
    return {}


def _split_list(value: str) -> List[str]:
    return [v.strip() for v in value.split(",") if v.strip()]


@dataclass
class Config:
    """Configuration for a tool-execution task."""

    workspace_path: Path = field(default_factory=lambda: Path.cwd())
    model: str = "claude-3-7-sonnet"
    context_window: int = 200_000
    max_output_tokens: Optional[int] = None

    # read_file: -1 disables truncation, 0 returns definitions only
    max_read_file_line: int = 500

    # Hunk diff strategy
    fuzzy_match_threshold: float = 1.0
    diff_buffer_lines: int = 40

    consecutive_mistake_limit: int = 3
    auto_approve: List[str] = field(default_factory=list)

    list_files_limit: int = 200
    search_results_limit: int = 300
    show_ignored_files: bool = True
    ignore_file_name: str = ".tooluseignore"

    command_timeout: float = 600.0
    mcp_servers: Dict[str, str] = field(default_factory=dict)
    custom_modes: List[dict] = field(default_factory=list)
    default_mode: str = "code"

    @classmethod
    def from_dict(cls, data: dict, workspace: Optional[Path] = None) -> "Config":
        """Build a Config from a plain dict, ignoring unknown keys."""
        defaults = cls()
        return cls(
            workspace_path=Path(workspace or data.get("workspace_path") or Path.cwd()),
            model=data.get("model", defaults.model),
            context_window=int(data.get("context_window", defaults.context_window)),
            max_output_tokens=(int(data["max_output_tokens"])
                               if data.get("max_output_tokens") is not None else None),
            max_read_file_line=int(data.get("max_read_file_line", defaults.max_read_file_line)),
            fuzzy_match_threshold=float(data.get("fuzzy_match_threshold", defaults.fuzzy_match_threshold)),
            diff_buffer_lines=int(data.get("diff_buffer_lines", defaults.diff_buffer_lines)),
            consecutive_mistake_limit=int(data.get("consecutive_mistake_limit",
                                                   defaults.consecutive_mistake_limit)),
            auto_approve=list(data.get("auto_approve", [])),
            list_files_limit=int(data.get("list_files_limit", defaults.list_files_limit)),
            search_results_limit=int(data.get("search_results_limit", defaults.search_results_limit)),
            show_ignored_files=bool(data.get("show_ignored_files", defaults.show_ignored_files)),
            ignore_file_name=data.get("ignore_file_name", defaults.ignore_file_name),
            command_timeout=float(data.get("command_timeout", defaults.command_timeout)),
            mcp_servers=dict(data.get("mcp_servers", {})),
            custom_modes=list(data.get("custom_modes", [])),
            default_mode=data.get("default_mode", defaults.default_mode),
        )

    @classmethod
    def from_json(cls, workspace: Optional[Path] = None) -> "Config":
        """Load configuration from JSON files.

        Priority (later overrides earlier):
        1. ~/.tooluse.json (global)
        2. workspace/.tooluse/config.json (workspace-specific)
        """
        config_data = {}
        config_data.update(load_json_config(get_global_config_path()))
        config_data.update(load_json_config(get_workspace_config_path(workspace)))
        return cls.from_dict(config_data, workspace=workspace)

    @classmethod
    def from_env(cls, env_path: Optional[Path] = None) -> "Config":
        """Load configuration from TOOLUSE_* environment variables.

        Values not set in the environment come from the JSON config files.
        """
        if env_path and env_path.exists():
            load_dotenv(env_path)
        else:
            load_dotenv()

        workspace = os.getenv("TOOLUSE_WORKSPACE")
        config = cls.from_json(Path(workspace) if workspace else None)

        if os.getenv("TOOLUSE_MODEL"):
            config.model = os.environ["TOOLUSE_MODEL"]
        if os.getenv("TOOLUSE_CONTEXT_WINDOW"):
            config.context_window = int(os.environ["TOOLUSE_CONTEXT_WINDOW"])
        if os.getenv("TOOLUSE_MAX_OUTPUT_TOKENS"):
            config.max_output_tokens = int(os.environ["TOOLUSE_MAX_OUTPUT_TOKENS"])
        if os.getenv("TOOLUSE_MAX_READ_FILE_LINE"):
            config.max_read_file_line = int(os.environ["TOOLUSE_MAX_READ_FILE_LINE"])
        if os.getenv("TOOLUSE_FUZZY_THRESHOLD"):
            config.fuzzy_match_threshold = float(os.environ["TOOLUSE_FUZZY_THRESHOLD"])
        if os.getenv("TOOLUSE_MISTAKE_LIMIT"):
            config.consecutive_mistake_limit = int(os.environ["TOOLUSE_MISTAKE_LIMIT"])
        if os.getenv("TOOLUSE_AUTO_APPROVE"):
            config.auto_approve = _split_list(os.environ["TOOLUSE_AUTO_APPROVE"])
        if os.getenv("TOOLUSE_DEFAULT_MODE"):
            config.default_mode = os.environ["TOOLUSE_DEFAULT_MODE"]
        return config

    def validate(self) -> bool:
        """Validate the configuration."""
        if self.context_window <= 0:
            raise ValueError("context_window must be a positive number of tokens.")
        if self.max_output_tokens is not None and self.max_output_tokens <= 0:
            raise ValueError("max_output_tokens must be positive when set.")
        if not 0.0 <= self.fuzzy_match_threshold <= 1.0:
            raise ValueError("fuzzy_match_threshold must be between 0 and 1.")
        if self.consecutive_mistake_limit < 1:
            raise ValueError("consecutive_mistake_limit must be at least 1.")
        unknown = [c for c in self.auto_approve if c not in APPROVAL_CATEGORIES]
        if unknown:
            raise ValueError(
                f"Unknown auto_approve categories: {', '.join(unknown)}. "
                f"Valid: {', '.join(APPROVAL_CATEGORIES)}"
            )
        return True

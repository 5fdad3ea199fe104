"""Agent modes: a slug, a display name, and the tool categories allowed in it."""

from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from .logger import get_logger

log = get_logger("modes")

DEFAULT_MODE_SLUG = "code"


@dataclass
class ModeConfig:
    slug: str
    name: str
    role_definition: str = ""
    groups: List[str] = field(default_factory=list)
    custom_instructions: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "ModeConfig":
        if not data.get("slug") or not data.get("name"):
            raise ValueError(f"Custom mode needs 'slug' and 'name': {data!r}")
        return cls(
            slug=data["slug"],
            name=data["name"],
            role_definition=data.get("role_definition", data.get("roleDefinition", "")),
            groups=list(data.get("groups", [])),
            custom_instructions=data.get("custom_instructions", data.get("customInstructions", "")),
        )


BUILTIN_MODES: List[ModeConfig] = [
    ModeConfig(
        slug="code",
        name="Code",
        role_definition="A highly skilled software engineer with extensive knowledge in many "
                        "programming languages, frameworks, design patterns, and best practices.",
        groups=["read", "edit", "browser", "command", "mcp"],
    ),
    ModeConfig(
        slug="architect",
        name="Architect",
        role_definition="An experienced technical leader who plans before building.",
        groups=["read", "edit", "browser", "mcp"],
    ),
    ModeConfig(
        slug="ask",
        name="Ask",
        role_definition="A knowledgeable technical assistant focused on answering questions.",
        groups=["read", "browser", "mcp"],
    ),
    ModeConfig(
        slug="debug",
        name="Debug",
        role_definition="An expert software debugger specializing in systematic problem diagnosis.",
        groups=["read", "edit", "browser", "command", "mcp"],
    ),
]


def all_modes(custom_modes: Optional[Iterable[ModeConfig]] = None) -> List[ModeConfig]:
    """Built-ins plus custom modes; a custom mode overrides a built-in with the same slug."""
    modes = {m.slug: m for m in BUILTIN_MODES}
    for m in custom_modes or ():
        modes[m.slug] = m
    return list(modes.values())


def get_mode_by_slug(slug: str, custom_modes: Optional[Iterable[ModeConfig]] = None) -> Optional[ModeConfig]:
    for m in all_modes(custom_modes):
        if m.slug == slug:
            return m
    return None


class ModeManager:
    """Tracks the host's current mode."""

    def __init__(self, custom_modes: Optional[Iterable[dict]] = None,
                 default_slug: str = DEFAULT_MODE_SLUG):
        self.custom_modes = [ModeConfig.from_dict(d) for d in (custom_modes or [])]
        if get_mode_by_slug(default_slug, self.custom_modes) is None:
            raise ValueError(f"Unknown default mode: {default_slug}")
        self.current_slug = default_slug

    def get(self, slug: str) -> Optional[ModeConfig]:
        return get_mode_by_slug(slug, self.custom_modes)

    @property
    def current(self) -> ModeConfig:
        return self.get(self.current_slug)

    def display_name(self, slug: str) -> str:
        mode = self.get(slug)
        return mode.name if mode else slug

    async def switch(self, slug: str) -> ModeConfig:
        mode = self.get(slug)
        if mode is None:
            raise ValueError(f"Invalid mode: {slug}")
        log.info("mode switch: %s -> %s", self.current_slug, slug)
        self.current_slug = slug
        return mode

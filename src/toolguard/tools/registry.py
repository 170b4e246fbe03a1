"""
Toolset: a named collection of capabilities.

A Toolset maps capability names (unique within the set) to Capability
descriptors. It is a read-only Mapping for consumers, so any code that
accepts a plain dict of capabilities accepts a Toolset too, with
register()/unregister() for building one up.

Usage:
    tools = Toolset()
    tools.register("search_docs", Capability(execute=search_docs))
    guarded = guard_tools(tools, policy=create_simple_policy())
"""

from collections.abc import Iterator, Mapping

from toolguard.errors import ToolNotFoundError
from toolguard.tools.base import Capability


class Toolset(Mapping[str, Capability]):
    """
    Registry of capabilities keyed by name.

    Attributes:
        _tools: Internal mapping of tool names to capabilities
    """

    def __init__(self, tools: Mapping[str, Capability] | None = None) -> None:
        """Initialize, optionally copying an existing mapping."""
        self._tools: dict[str, Capability] = {}
        for name, capability in (tools or {}).items():
            self.register(name, capability)

    def register(self, name: str, capability: Capability) -> None:
        """
        Add a capability, replacing any existing one with the same name.

        Raises:
            ValueError: If name is empty or capability is None
        """
        if not name:
            msg = "Capability must have a non-empty name"
            raise ValueError(msg)
        if capability is None:
            msg = f"Cannot register None as capability {name!r}"
            raise ValueError(msg)
        self._tools[name] = capability

    def get_tool(self, name: str) -> Capability:
        """
        Look up a capability by name.

        Raises:
            ToolNotFoundError: If no capability with that name exists
        """
        capability = self._tools.get(name)
        if capability is None:
            raise ToolNotFoundError(tool=name)
        return capability

    def unregister(self, name: str) -> bool:
        """Remove a capability; returns False if it wasn't registered."""
        if name in self._tools:
            del self._tools[name]
            return True
        return False

    def list_tools(self) -> list[str]:
        """All capability names, sorted."""
        return sorted(self._tools)

    def __getitem__(self, name: str) -> Capability:
        return self._tools[name]

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self) -> Iterator[str]:
        return iter(self._tools)

    def __repr__(self) -> str:
        return f"<Toolset: [{', '.join(self.list_tools())}]>"

"""
Pytest configuration and fixtures for toolguard tests.

This module provides shared fixtures used across unit and integration
tests.
"""

import tempfile
from pathlib import Path
from typing import Any, Generator

import pytest

from toolguard.audit import InMemoryAuditSink
from toolguard.context import GuardContext, create_default_context
from toolguard.tools import Capability, Toolset


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sink() -> InMemoryAuditSink:
    """An in-memory audit sink to inspect emitted events."""
    return InMemoryAuditSink()


@pytest.fixture
def ctx() -> GuardContext:
    """A fresh request context with the default budgets."""
    return create_default_context(request_id="req-test")


@pytest.fixture
def host_tools() -> Toolset:
    """A small toolset resembling what an agent host would pass in."""

    def search_docs(tool_input: dict[str, Any]) -> list[str]:
        return [f"doc about {tool_input['query']}"]

    async def create_issue(tool_input: dict[str, Any]) -> dict[str, Any]:
        return {"id": 42, "title": tool_input["title"]}

    def delete_resource(tool_input: dict[str, Any]) -> str:
        return f"deleted {tool_input['id']}"

    return Toolset(
        {
            "search_docs": Capability(
                description="Search the documentation",
                input_schema={"type": "object", "properties": {"query": {"type": "string"}}},
                execute=search_docs,
            ),
            "create_issue": Capability(
                description="Open an issue",
                execute=create_issue,
            ),
            "delete_resource": Capability(
                description="Delete a resource",
                execute=delete_resource,
            ),
        }
    )


@pytest.fixture
def sample_config_yaml() -> str:
    """Return a typical guard configuration YAML."""
    return """
policy:
  denylist:
    - delete_resource
  require_approval_for_risk:
    - admin
  risk_overrides:
    archive_invoice: write
budget:
  max_tool_calls: 3
  max_duration_ms: 30000
timeout_ms: 5000
redaction:
  fields:
    - password
"""


@pytest.fixture
def sample_config_file(temp_dir: Path, sample_config_yaml: str) -> Path:
    """Write the sample configuration to disk."""
    path = temp_dir / "guard.yaml"
    path.write_text(sample_config_yaml)
    return path

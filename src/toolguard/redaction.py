"""
Redaction of secrets and PII before audit logging.

Redactors are pure value transformers. They walk arbitrarily nested
structures (mappings, lists, tuples) and return a new value with sensitive
content masked; the input is never modified.

Redaction only ever feeds the audit path. The value a tool returns to the
host is always the original, unredacted one.

Usage:
    redactor = compose_redactors(
        FieldRedactor(["password", "api_key"]),
        create_default_redactor(),
    )
    safe = redactor({"user": "bob@example.com", "password": "hunter2"})
"""

import re
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from typing import Any

from toolguard.schema import RedactionConfig

DEFAULT_REPLACEMENT = "[REDACTED]"

# Vendor key shapes first, so they match before the generic long-token rule
DEFAULT_SECRET_PATTERNS: tuple[str, ...] = (
    r"\b(sk-[a-zA-Z0-9]{48})\b",  # OpenAI API keys
    r"\b(sk_live_[a-zA-Z0-9]{24,})\b",  # Stripe live keys
    r"\b(sk_test_[a-zA-Z0-9]{24,})\b",  # Stripe test keys
    r"\b([a-zA-Z0-9_-]{40})\b",  # GitHub tokens (40 chars)
    r"\b(ghp_[a-zA-Z0-9]{36})\b",  # GitHub personal access tokens
    r"\b(gho_[a-zA-Z0-9]{36})\b",  # GitHub OAuth tokens
    r"\b(AKIA[0-9A-Z]{16})\b",  # AWS access keys
    r"-----BEGIN\s+(?:RSA\s+)?PRIVATE\s+KEY-----",  # Private keys
    r"\b([a-zA-Z0-9_-]{32,})\b",  # Generic long tokens
)

DEFAULT_PII_PATTERNS: tuple[str, ...] = (
    r"\b\d{3}-\d{2}-\d{4}\b",  # SSN
    r"\b\d{16}\b",  # Card numbers
    r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b",  # Email addresses
)


class Redactor(ABC):
    """
    Base class for redactors.

    Subclasses implement redact_string() and/or redact_mapping(); the
    structural walk over lists, tuples and mappings lives here.
    """

    @abstractmethod
    def redact(self, value: Any) -> Any:
        """Return a redacted copy of value."""
        ...

    def __call__(self, value: Any) -> Any:
        return self.redact(value)

    def _walk(self, value: Any) -> Any:
        if isinstance(value, str):
            return self.redact_string(value)
        if isinstance(value, Mapping):
            return self.redact_mapping(value)
        if isinstance(value, list):
            return [self._walk(item) for item in value]
        if isinstance(value, tuple):
            return tuple(self._walk(item) for item in value)
        return value

    def redact_string(self, value: str) -> str:
        return value

    def redact_mapping(self, value: Mapping[Any, Any]) -> dict[Any, Any]:
        return {key: self._walk(item) for key, item in value.items()}


class RegexRedactor(Redactor):
    """
    Replaces every match of an ordered list of patterns in string values.

    Patterns run in sequence over each string; later patterns see the
    output of earlier ones.

    Attributes:
        patterns: Compiled patterns, in application order
        replacement: Token substituted for each match
    """

    def __init__(
        self,
        patterns: Iterable[str | re.Pattern[str]],
        replacement: str = DEFAULT_REPLACEMENT,
    ) -> None:
        self.patterns: tuple[re.Pattern[str], ...] = tuple(
            p if isinstance(p, re.Pattern) else re.compile(p) for p in patterns
        )
        self.replacement = replacement

    def redact(self, value: Any) -> Any:
        return self._walk(value)

    def redact_string(self, value: str) -> str:
        for pattern in self.patterns:
            value = pattern.sub(self.replacement, value)
        return value

    def __repr__(self) -> str:
        return f"<RegexRedactor: {len(self.patterns)} patterns>"


class FieldRedactor(Redactor):
    """
    Masks the value of named fields, at any depth.

    Field names match case-insensitively. A matching field's value is
    replaced whole (even if it is itself a structure); every other value
    is walked normally.
    """

    def __init__(
        self,
        fields: Iterable[str],
        replacement: str = DEFAULT_REPLACEMENT,
    ) -> None:
        self.fields = frozenset(f.lower() for f in fields)
        self.replacement = replacement

    def redact(self, value: Any) -> Any:
        return self._walk(value)

    def redact_mapping(self, value: Mapping[Any, Any]) -> dict[Any, Any]:
        result: dict[Any, Any] = {}
        for key, item in value.items():
            if isinstance(key, str) and key.lower() in self.fields:
                result[key] = self.replacement
            else:
                result[key] = self._walk(item)
        return result

    def __repr__(self) -> str:
        return f"<FieldRedactor: {sorted(self.fields)}>"


class CompositeRedactor(Redactor):
    """Applies redactors in order, feeding each one the previous output."""

    def __init__(self, redactors: Iterable[Redactor]) -> None:
        self.redactors = tuple(redactors)

    def redact(self, value: Any) -> Any:
        for redactor in self.redactors:
            value = redactor.redact(value)
        return value

    def __repr__(self) -> str:
        return f"<CompositeRedactor: {list(self.redactors)!r}>"


def create_regex_redactor(
    patterns: Iterable[str | re.Pattern[str]],
    replacement: str = DEFAULT_REPLACEMENT,
) -> RegexRedactor:
    """Create a pattern-based redactor."""
    return RegexRedactor(patterns, replacement)


def create_default_redactor(replacement: str = DEFAULT_REPLACEMENT) -> RegexRedactor:
    """Create a redactor for common API keys, private keys and PII."""
    return RegexRedactor(
        [*DEFAULT_SECRET_PATTERNS, *DEFAULT_PII_PATTERNS],
        replacement,
    )


def create_field_redactor(
    fields: Iterable[str],
    replacement: str = DEFAULT_REPLACEMENT,
) -> FieldRedactor:
    """Create a field-based redactor."""
    return FieldRedactor(fields, replacement)


def compose_redactors(*redactors: Redactor) -> CompositeRedactor:
    """Chain redactors; order matters."""
    return CompositeRedactor(redactors)


def redactor_from_config(config: RedactionConfig) -> Redactor | None:
    """
    Build the redactor described by a configuration block.

    Field masking runs first, then pattern scrubbing. Returns None when the
    configuration asks for no redaction at all.
    """
    redactors: list[Redactor] = []
    if config.fields:
        redactors.append(FieldRedactor(config.fields, config.replacement))
    patterns: list[str] = []
    if config.use_default_patterns:
        patterns.extend(DEFAULT_SECRET_PATTERNS)
        patterns.extend(DEFAULT_PII_PATTERNS)
    patterns.extend(config.patterns)
    if patterns:
        redactors.append(RegexRedactor(patterns, config.replacement))
    if not redactors:
        return None
    if len(redactors) == 1:
        return redactors[0]
    return CompositeRedactor(redactors)

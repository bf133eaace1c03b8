"""
Error registry: the FBF-* code catalogue in registry.yaml.

Each entry fixes how a FeedbackFunnelError is surfaced: HTTP status,
log severity, whether the caller may retry, and the safe message that
replaces the internal detail in responses.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from app.core.errors import CODE_PATTERN

logger = logging.getLogger(__name__)

REGISTRY_PATH = Path(__file__).with_name("registry.yaml")

VALID_DOMAINS = {"API", "SEC", "DB", "QUE", "LLM", "SYS"}
VALID_SEVERITIES = {"DEBUG", "INFO", "WARN", "ERROR", "CRITICAL"}
REQUIRED_FIELDS = {
    "code", "domain", "title", "severity", "retryable",
    "user_action_required", "http_status", "safe_message", "remediation",
}


class RegistryValidationError(Exception):
    """registry.yaml is structurally invalid."""


@dataclass(frozen=True)
class ErrorEntry:
    code: str
    domain: str
    title: str
    severity: str
    retryable: bool
    user_action_required: bool
    http_status: int
    safe_message: str
    remediation: List[str] = field(default_factory=list)
    docs_url: Optional[str] = None

    @classmethod
    def from_mapping(cls, position: int, raw: Mapping[str, Any]) -> "ErrorEntry":
        """Validate one YAML entry. ``position`` is only used in messages."""
        missing = REQUIRED_FIELDS - set(raw)
        if missing:
            raise RegistryValidationError(
                f"Entry {position} ({raw.get('code', '?')}): missing fields {sorted(missing)}"
            )

        code = raw["code"]
        if not CODE_PATTERN.match(code):
            raise RegistryValidationError(f"Invalid code format: {code!r}")

        domain = raw["domain"]
        prefix = code.split("-")[1]
        if domain != prefix:
            raise RegistryValidationError(f"{code}: domain {domain!r} doesn't match code prefix {prefix!r}")
        if domain not in VALID_DOMAINS:
            raise RegistryValidationError(f"{code}: unknown domain {domain!r}")
        if raw["severity"] not in VALID_SEVERITIES:
            raise RegistryValidationError(f"{code}: unknown severity {raw['severity']!r}")

        status = int(raw["http_status"])
        if not 400 <= status <= 599:
            raise RegistryValidationError(f"{code}: http_status {status} is not an error status")

        return cls(
            code=code,
            domain=domain,
            title=raw["title"],
            severity=raw["severity"],
            retryable=bool(raw["retryable"]),
            user_action_required=bool(raw["user_action_required"]),
            http_status=status,
            safe_message=raw["safe_message"],
            remediation=list(raw.get("remediation") or []),
            docs_url=raw.get("docs_url"),
        )


class ErrorRegistry:
    """Code -> ErrorEntry lookup, populated by ``load()``."""

    def __init__(self) -> None:
        self._entries: Dict[str, ErrorEntry] = {}
        self.schema_version: int = 0

    def load(self, path: str | Path | None = None) -> None:
        source = Path(path) if path is not None else REGISTRY_PATH
        data = yaml.safe_load(source.read_text(encoding="utf-8")) or {}

        raw_entries = data.get("errors", [])
        if not isinstance(raw_entries, list):
            raise RegistryValidationError("'errors' must be a list")

        entries: Dict[str, ErrorEntry] = {}
        for position, raw in enumerate(raw_entries):
            entry = ErrorEntry.from_mapping(position, raw)
            if entry.code in entries:
                raise RegistryValidationError(f"Duplicate code: {entry.code}")
            entries[entry.code] = entry

        # Swap in only after the whole file validated
        self._entries = entries
        self.schema_version = data.get("schema_version", 0)
        logger.info("error_registry_loaded", extra={"count": len(entries), "schema_version": self.schema_version})

    def get(self, code: str) -> ErrorEntry | None:
        return self._entries.get(code)

    def __len__(self) -> int:
        return len(self._entries)


# Loaded at API/worker startup
error_registry = ErrorRegistry()

"""Exceptions for driftscan.

Only configuration-level problems and caller bugs raise. Extraction problems
are recovered locally and recorded in ExtractionQuality; resolution
ambiguity and missing learner evidence are represented as data.
"""


class DriftError(Exception):
    """Base class for every error raised by driftscan.

    Attributes:
        message: Human-readable error description
        details: Dict with structured context for debugging
    """

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class UnknownNodeError(DriftError, KeyError):
    """A graph query named a node id that was never registered.

    Distinct from "no path found": ids retired by an incremental update are
    still known and simply produce empty results.
    """

    def __init__(self, node_id: str):
        super().__init__(f"Unknown call graph node: {node_id!r}", {"node_id": node_id})
        self.node_id = node_id


class ConfigurationError(DriftError, ValueError):
    """Runtime configuration holds a value that cannot be used."""


class RuleConfigurationError(ConfigurationError):
    """A boundary rule is malformed and was rejected at registration."""

    def __init__(self, message: str, rule_id: str | None = None, details: dict | None = None):
        merged = {"rule_id": rule_id}
        merged.update(details or {})
        super().__init__(message, merged)
        self.rule_id = rule_id


class ScanCancelledError(DriftError):
    """The cancellation token fired while a scan was running.

    No partial result accompanies this error.
    """


class ProjectRootError(DriftError):
    """The project root does not exist or cannot be read."""

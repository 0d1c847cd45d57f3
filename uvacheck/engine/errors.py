"""
Exception taxonomy for the uvacheck engine.

Only OperationCancelled and ParserUnavailable ever leave the engine; the
other errors are raised and handled per binding, and degrade to "no
diagnostic for this binding".
"""

from typing import List, Optional


class AnalysisError(Exception):
    """Base class for engine errors."""


class MalformedNode(AnalysisError):
    """A declaration or lambda node is missing an expected child."""

    def __init__(self, node_type: str, detail: str, start_byte: Optional[int] = None):
        self.node_type = node_type
        self.detail = detail
        self.start_byte = start_byte
        where = f" at byte {start_byte}" if start_byte is not None else ""
        super().__init__(f"malformed {node_type}{where}: {detail}")


class UnresolvedSymbol(AnalysisError):
    """A declared or referenced symbol cannot be resolved."""

    def __init__(self, name: str, start_byte: int, reason: str = ""):
        self.name = name
        self.start_byte = start_byte
        self.reason = reason
        message = f"cannot resolve '{name}' at byte {start_byte}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class OperationCancelled(AnalysisError):
    """Analysis stopped early at the host's request.

    ``diagnostics`` holds everything reported before cancellation was
    observed; those diagnostics remain valid.
    """

    def __init__(self, diagnostics: Optional[List] = None):
        self.diagnostics = list(diagnostics or [])
        super().__init__(f"analysis cancelled after {len(self.diagnostics)} diagnostic(s)")


class ParserUnavailable(AnalysisError):
    """The tree-sitter grammar for a language could not be loaded."""

"""
Core types for the uvacheck engine.

This module provides shared dataclasses and types used across the engine,
the C# adapter, and rules.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Literal, Optional, Protocol, Tuple
from abc import ABC, abstractmethod


# Type aliases for clarity
Severity = Literal["info", "warning", "error"]
FileRange = Tuple[int, int, int, int]  # (start_line, start_col, end_line, end_col) 1-based
NodeRange = Tuple[int, int]  # (start_byte, end_byte) 0-based


class MatchMode(str, Enum):
    """How a reference is matched against a binding.

    SYMBOL compares resolved declaration sites and is sound under shadowing.
    SYNTACTIC compares identifier text only; an inner redeclaration with the
    same name makes the outer binding look used.
    """
    SYMBOL = "symbol"
    SYNTACTIC = "syntactic"


class BindingKind(str, Enum):
    LOCAL_VARIABLE = "local_variable"
    LAMBDA_PARAMETER = "lambda_parameter"


@dataclass(frozen=True)
class DiagnosticDescriptor:
    """Metadata about a rule, populated verbatim into every diagnostic.

    Attributes:
        id: Unique rule identifier (e.g., "UVA001")
        title: Short human-readable title
        message_format: Message template; "{0}" is replaced by the binding name
        category: Rule category for grouping
        default_severity: Severity of emitted diagnostics
        enabled_by_default: Whether hosts run the rule without opt-in
        langs: List of supported languages
    """
    id: str
    title: str
    message_format: str
    category: str
    default_severity: Severity = "warning"
    enabled_by_default: bool = True
    description: str = ""
    langs: Tuple[str, ...] = ()

    def format_message(self, *args: Any) -> str:
        return self.message_format.format(*args)


@dataclass(frozen=True)
class Diagnostic:
    """A diagnostic represents one unused binding detected by a rule."""
    rule: str
    message: str
    file: str
    start_byte: int
    end_byte: int
    line: int        # 1-based
    column: int      # 1-based
    end_line: int
    end_column: int
    severity: Severity
    category: str
    meta: Tuple[Tuple[str, str], ...] = ()

    @property
    def location(self) -> FileRange:
        return (self.line, self.column, self.end_line, self.end_column)

    @property
    def meta_dict(self) -> Dict[str, str]:
        return dict(self.meta)


@dataclass(frozen=True, eq=False)
class Binding:
    """A declared local variable or lambda parameter under analysis.

    ``identifier`` is the declaring identifier node; ``declaration`` is the
    node that introduces it (a ``variable_declaration`` for locals, the
    ``lambda_expression`` for parameters).
    """
    name: str
    kind: BindingKind
    identifier: Any
    declaration: Any
    resource_scoped: bool = False

    @property
    def span(self) -> NodeRange:
        return (self.identifier.start_byte, self.identifier.end_byte)


@dataclass(frozen=True, eq=False)
class Reference:
    """An identifier occurrence that may denote a binding."""
    name: str
    node: Any

    @property
    def span(self) -> NodeRange:
        return (self.node.start_byte, self.node.end_byte)


@dataclass(frozen=True)
class Requires:
    """Represents requirements that a rule needs to run."""
    syntax: bool = True
    symbols: bool = False


@dataclass
class RuleContext:
    """Context passed to rules during execution."""
    file_path: str
    text: str
    tree: Any
    adapter: 'LanguageAdapter'  # Forward reference
    config: Any = None
    symbols: Any = None
    match_mode: MatchMode = MatchMode.SYMBOL
    cancellation: Any = None
    report: Optional[Callable[[Diagnostic], None]] = None

    @property
    def language(self):
        return self.adapter.language_id if self.adapter else None

    @property
    def root_node(self):
        return getattr(self.tree, 'root_node', self.tree)


class Rule(Protocol):
    """Protocol for all rules in the engine.

    Rules analyze code and return diagnostics. They must be stateless and
    thread-safe: the runner invokes the same instance from several workers.
    """
    meta: DiagnosticDescriptor
    requires: Requires

    def visit(self, ctx: RuleContext) -> Iterable[Diagnostic]:
        """Visit a file and return diagnostics.

        Args:
            ctx: Rule context containing file path, text, tree, adapter and symbols

        Returns:
            Iterable of diagnostics for this file
        """
        ...


class LanguageAdapter(ABC):
    """Abstract base class for language adapters."""

    @property
    @abstractmethod
    def language_id(self) -> str:
        """Return the language identifier (e.g., 'csharp')."""
        pass

    @property
    @abstractmethod
    def file_extensions(self) -> Tuple[str, ...]:
        """Return supported file extensions (e.g., ('.cs',))."""
        pass

    @abstractmethod
    def parse(self, text: str) -> Any:
        """Parse text and return a Tree-sitter tree."""
        pass

    @abstractmethod
    def list_files(self, paths: List[str]) -> List[str]:
        """List all files matching this adapter's extensions in the given paths."""
        pass

    @abstractmethod
    def node_text(self, text: str, start_byte: int, end_byte: int) -> str:
        """Extract text between byte offsets."""
        pass

    @abstractmethod
    def byte_to_linecol(self, text: str, byte: int) -> Tuple[int, int]:
        """Convert byte offset to (line, column) 1-based."""
        pass

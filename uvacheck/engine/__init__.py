"""
uvacheck engine package.

This package provides the tree-sitter based C# analysis engine: the adapter,
the symbol table, the rule registry and the CLI runner.
"""

from .types import (
    Diagnostic, DiagnosticDescriptor, Rule, RuleContext, Requires,
    LanguageAdapter, Binding, BindingKind, Reference, MatchMode,
    Severity, FileRange, NodeRange
)

from .errors import (
    AnalysisError, MalformedNode, UnresolvedSymbol, OperationCancelled, ParserUnavailable
)

from .cancellation import CancellationToken

from .registry import (
    register_rule, register_adapter, get_adapter, get_rule,
    get_all_rules, get_rules_for_language, clear
)

from .config import (
    EngineConfig, load_config, get_default_config, save_config, find_config_file
)

__all__ = [
    # Types
    "Diagnostic", "DiagnosticDescriptor", "Rule", "RuleContext", "Requires",
    "LanguageAdapter", "Binding", "BindingKind", "Reference", "MatchMode",
    "Severity", "FileRange", "NodeRange",

    # Errors
    "AnalysisError", "MalformedNode", "UnresolvedSymbol", "OperationCancelled", "ParserUnavailable",
    "CancellationToken",

    # Registry
    "register_rule", "register_adapter", "get_adapter", "get_rule",
    "get_all_rules", "get_rules_for_language", "clear",

    # Config
    "EngineConfig", "load_config", "get_default_config", "save_config", "find_config_file"
]

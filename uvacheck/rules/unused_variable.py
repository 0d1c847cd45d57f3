"""
Rule: UVA001 unused variable

Detects local variables and lambda parameters that are never referenced.

A local is looked up in the nearest block enclosing its declaration; a lambda
parameter only in the body of its own lambda. References nested anywhere in
that scope count, including inside inner lambdas and unreachable code.
Declarations made with ``using`` are never reported: acquiring and disposing
the resource is what they are for.

Matching is either by symbol (the default; a reference counts only if it
resolves to the binding's own declaration) or syntactic (any identifier with
the same text counts, so an inner redeclaration hides an unused outer one).
Anything the rule cannot make sense of (a damaged declaration, a missing
lambda body, a name the symbol table cannot resolve) is treated as used.
"""

import logging
from types import MappingProxyType
from typing import Callable, Iterator, List, Optional, Union

from ..engine.csharp_adapter import character_column, text_of
from ..engine.driver import SyntaxDriver
from ..engine.errors import MalformedNode, UnresolvedSymbol
from ..engine.symbols import (
    LOCAL_DECLARATION_CONTEXTS, SymbolTable, build_symbol_table,
    iter_references, lambda_body, lambda_parameters, name_child,
)
from ..engine.types import (
    Binding, BindingKind, Diagnostic, DiagnosticDescriptor, MatchMode, Requires, RuleContext,
)

logger = logging.getLogger(__name__)


DESCRIPTOR = DiagnosticDescriptor(
    id="UVA001",
    title="Variable assigned but never used",
    message_format="Variable '{0}' is assigned but never used",
    category="Usage",
    default_severity="warning",
    enabled_by_default=True,
    description="Detect local variables and lambda parameters that are never referenced.",
    langs=("csharp",),
)

# Conventional throwaway names are never reported
_THROWAWAY_NAMES = frozenset({"_"})


# --- Walker ---------------------------------------------------------------

def _require_identifier(node, owner):
    if node is None or node.is_missing or not text_of(node):
        raise MalformedNode(owner.type, "missing identifier", owner.start_byte)
    return node


def _require_intact(node, owner, part: str):
    if node is None or node.is_missing or node.has_error:
        raise MalformedNode(owner.type, f"missing or damaged {part}", owner.start_byte)
    return node


def is_resource_scoped(declaration) -> bool:
    """True for ``using var x = ...;`` and ``using (var x = ...)`` declarations."""
    statement = declaration.parent
    if statement is None:
        return False
    if statement.type == 'using_statement':
        return True
    if statement.type == 'local_declaration_statement':
        return any(child.type == 'using' for child in statement.children)
    return False


def _declaration_bindings(declaration) -> Iterator[Binding]:
    statement = declaration.parent
    if statement is None or statement.type not in LOCAL_DECLARATION_CONTEXTS:
        return  # field, event or constant member
    try:
        _require_intact(statement, declaration, "statement")
    except MalformedNode as e:
        logger.debug("Skipping declaration: %s", e)
        return
    resource_scoped = is_resource_scoped(declaration)
    for declarator in declaration.named_children:
        if declarator.type != 'variable_declarator':
            continue
        try:
            identifier = _require_identifier(name_child(declarator), declarator)
        except MalformedNode as e:
            logger.debug("Skipping declarator: %s", e)
            continue
        name = text_of(identifier)
        if name in _THROWAWAY_NAMES:
            continue
        yield Binding(name, BindingKind.LOCAL_VARIABLE, identifier, declaration, resource_scoped)


def _lambda_bindings(lambda_node) -> Iterator[Binding]:
    try:
        params = _require_intact(lambda_parameters(lambda_node), lambda_node, "parameters")
        _require_intact(lambda_body(lambda_node), lambda_node, "body")
        _require_intact(lambda_node, lambda_node, "lambda")
    except MalformedNode as e:
        logger.debug("Skipping lambda: %s", e)
        return
    if params.type == 'parameter_list':
        candidates = [p for p in params.named_children if p.type == 'parameter']
    else:
        candidates = [params]  # single implicit parameter: `x => ...`

    for candidate in candidates:
        node = candidate if candidate is params else name_child(candidate)
        try:
            identifier = _require_identifier(node, candidate)
        except MalformedNode as e:
            logger.debug("Skipping lambda parameter: %s", e)
            continue
        name = text_of(identifier)
        if name in _THROWAWAY_NAMES:
            continue
        yield Binding(name, BindingKind.LAMBDA_PARAMETER, identifier, lambda_node)


# Node kind -> candidate extractor. Parenthesized and single-parameter
# lambdas share one node kind in the C# grammar.
BINDING_SOURCES = MappingProxyType({
    'variable_declaration': _declaration_bindings,
    'lambda_expression': _lambda_bindings,
})

_DRIVER = SyntaxDriver(BINDING_SOURCES)


def iter_bindings(root) -> Iterator[Binding]:
    """Lazily yield every candidate binding under ``root`` in document order."""
    return _DRIVER.dispatch(root)


# --- Scope resolution -------------------------------------------------------

def resolve_scope(binding: Binding):
    """Return the node a binding's references are searched in, or None."""
    if binding.kind is BindingKind.LAMBDA_PARAMETER:
        return lambda_body(binding.declaration)
    node = binding.declaration.parent
    while node is not None:
        if node.type == 'block':
            return node
        node = node.parent
    return None


# --- Usage resolution -------------------------------------------------------

class SyntacticUsageResolver:
    """A binding is used if any identifier in its scope has the same text."""

    mode = MatchMode.SYNTACTIC

    def is_used(self, binding: Binding, scope) -> bool:
        return any(ref.name == binding.name for ref in iter_references(scope))


class SymbolUsageResolver:
    """A binding is used if any reference in its scope resolves to its own symbol."""

    mode = MatchMode.SYMBOL

    def __init__(self, symbols: SymbolTable):
        self._symbols = symbols

    def is_used(self, binding: Binding, scope) -> bool:
        try:
            declared = self._symbols.declared_symbol(binding.identifier)
        except UnresolvedSymbol as e:
            logger.debug("Treating '%s' as used: %s", binding.name, e)
            return True

        for ref in iter_references(scope):
            if ref.name != binding.name:
                continue
            try:
                if self._symbols.referenced_symbol(ref.node) == declared:
                    return True
            except UnresolvedSymbol as e:
                logger.debug("Treating '%s' as used: %s", binding.name, e)
                return True
        return False


UsageResolver = Union[SyntacticUsageResolver, SymbolUsageResolver]


def make_usage_resolver(mode: Union[MatchMode, str], symbols: Optional[SymbolTable] = None,
                        tree=None) -> UsageResolver:
    """Build the resolver for ``mode``; symbol mode builds a table from ``tree`` when none is given."""
    mode = MatchMode(mode)
    if mode is MatchMode.SYNTACTIC:
        return SyntacticUsageResolver()
    if symbols is None:
        if tree is None:
            raise ValueError("symbol matching needs a symbol table or the tree to build one from")
        symbols = build_symbol_table(tree)
    return SymbolUsageResolver(symbols)


def is_unused(binding: Binding, resolver: UsageResolver) -> bool:
    if binding.resource_scoped:
        return False
    scope = resolve_scope(binding)
    if scope is None:
        logger.debug("No scope for '%s' at byte %d; treating as used", binding.name, binding.span[0])
        return False
    return not resolver.is_used(binding, scope)


# --- Reporting --------------------------------------------------------------

def create_diagnostic(binding: Binding, file_path: str, mode: MatchMode,
                      source: Optional[bytes] = None, base: int = 0) -> Diagnostic:
    """Build the diagnostic for ``binding``; columns count characters when ``source`` is given."""
    identifier = binding.identifier
    start_row, start_col = identifier.start_point
    end_row, end_col = identifier.end_point
    if source is not None:
        start_col = character_column(source, identifier.start_byte, start_col, base) - 1
        end_col = character_column(source, identifier.end_byte, end_col, base) - 1
    return Diagnostic(
        rule=DESCRIPTOR.id,
        message=DESCRIPTOR.format_message(binding.name),
        file=file_path,
        start_byte=identifier.start_byte,
        end_byte=identifier.end_byte,
        line=start_row + 1,
        column=start_col + 1,
        end_line=end_row + 1,
        end_column=end_col + 1,
        severity=DESCRIPTOR.default_severity,
        category=DESCRIPTOR.category,
        meta=(
            ("binding_kind", binding.kind.value),
            ("binding_name", binding.name),
            ("match_mode", mode.value),
        ),
    )


def _document_source(root, text: Optional[str]):
    if text is not None:
        return text.encode('utf-8'), 0
    top = root
    while top.parent is not None:
        top = top.parent
    return top.text, top.start_byte


def analyze(tree, symbols: Optional[SymbolTable] = None, *,
            mode: Union[MatchMode, str] = MatchMode.SYMBOL,
            file_path: str = "<memory>",
            cancellation=None,
            report: Optional[Callable[[Diagnostic], None]] = None,
            text: Optional[str] = None) -> List[Diagnostic]:
    """
    Report every unused local variable and lambda parameter in ``tree``.

    Args:
        tree: tree-sitter Tree, or any node to restrict analysis to its subtree
        symbols: symbol table for the same tree; built on demand in symbol mode
        mode: MatchMode.SYMBOL or MatchMode.SYNTACTIC
        file_path: path recorded in each diagnostic
        cancellation: optional CancellationToken, checked between bindings
        report: optional callback invoked with each diagnostic as it is produced
        text: source the tree was parsed from; defaults to the text held by the tree

    Returns:
        Diagnostics in document order, at most one per declaration site

    Raises:
        OperationCancelled: carrying the diagnostics produced before cancellation
    """
    root = getattr(tree, 'root_node', tree)
    mode = MatchMode(mode)
    resolver = make_usage_resolver(mode, symbols, root)
    source, base = _document_source(root, text)

    diagnostics: List[Diagnostic] = []
    reported = set()
    for binding in iter_bindings(root):
        if cancellation is not None:
            cancellation.raise_if_cancelled(diagnostics)
        if binding.span in reported or not is_unused(binding, resolver):
            continue
        reported.add(binding.span)
        diagnostic = create_diagnostic(binding, file_path, mode, source, base)
        diagnostics.append(diagnostic)
        if report is not None:
            report(diagnostic)
    return diagnostics


class UnusedVariableRule:
    """Detect local variables and lambda parameters that are never referenced."""

    meta = DESCRIPTOR

    requires = Requires(
        syntax=True,
        symbols=True,  # only consulted in symbol mode
    )

    def visit(self, ctx: RuleContext) -> List[Diagnostic]:
        if ctx.tree is None:
            return []
        return analyze(
            ctx.tree,
            ctx.symbols,
            mode=ctx.match_mode,
            file_path=ctx.file_path,
            cancellation=ctx.cancellation,
            report=ctx.report,
            text=ctx.text,
        )


# Register this rule when the module is imported
from . import register  # noqa: E402
register(UnusedVariableRule())

"""
Scopes and symbol resolution for C# syntax trees.

This module is the symbol-resolution service consumed by rules that need to
know which declaration an identifier denotes. It builds a graph of lexical
scopes over a tree-sitter C# tree, records every local declaration (locals,
parameters, lambda parameters, loop and catch variables, pattern and out
variables, local functions) and resolves each identifier reference by walking
outward through the scope chain.

Names that do not resolve to a local declaration (fields, methods, types,
members reached through ``a.b``) resolve to an ``external`` symbol for that
name. Such a symbol never equals a local symbol. Identifiers inside ERROR
subtrees are left unresolved.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional

from .csharp_adapter import has_error_ancestor, iter_descendants, text_of
from .errors import UnresolvedSymbol
from .types import Reference

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Symbol:
    """A symbol represents a name binding; equality is equality of declaration site."""
    name: str
    kind: str            # "local"|"param"|"lambda_param"|"foreach"|"catch"|"pattern"|"function"|"external"
    scope_id: int
    start_byte: int
    end_byte: int

    @property
    def is_local(self) -> bool:
        return self.kind != "external"


@dataclass(frozen=True)
class Scope:
    """A scope represents a namespace boundary."""
    id: int
    kind: str           # "module"|"method"|"function"|"lambda"|"block"|"for"|"foreach"|"using"|"catch"|"switch"
    parent_id: Optional[int]
    start_byte: int
    end_byte: int


SCOPE_KINDS = {
    'compilation_unit': 'module',
    'method_declaration': 'method',
    'constructor_declaration': 'method',
    'destructor_declaration': 'method',
    'operator_declaration': 'method',
    'conversion_operator_declaration': 'method',
    'accessor_declaration': 'method',
    'local_function_statement': 'function',
    'lambda_expression': 'lambda',
    'anonymous_method_expression': 'lambda',
    'block': 'block',
    'switch_body': 'switch',
    'for_statement': 'for',
    'foreach_statement': 'foreach',
    'using_statement': 'using',
    'fixed_statement': 'using',
    'catch_clause': 'catch',
}

# Statements whose variable_declaration introduces locals (not fields)
LOCAL_DECLARATION_CONTEXTS = frozenset({
    'local_declaration_statement',
    'using_statement',
    'for_statement',
    'fixed_statement',
})

# Nodes whose `name` child is a declaration, never a reference
DECLARING_PARENTS = frozenset({
    'variable_declarator', 'parameter', 'catch_declaration', 'declaration_expression',
    'local_function_statement', 'method_declaration', 'constructor_declaration',
    'destructor_declaration', 'class_declaration', 'struct_declaration',
    'interface_declaration', 'enum_declaration', 'record_declaration',
    'enum_member_declaration', 'property_declaration', 'delegate_declaration',
    'event_declaration', 'type_parameter', 'labeled_statement', 'tuple_element',
})

_EXTERNAL_SCOPE = -1


def _same(a, b) -> bool:
    return a is not None and b is not None and a.id == b.id


def name_child(parent):
    """Return the declaring name node of ``parent``, or None."""
    name = parent.child_by_field_name('name')
    if name is not None:
        return name
    # Older grammars omit the field; a declarator starts with its name,
    # while a parameter's optional type precedes it.
    if parent.type == 'variable_declarator':
        first = parent.children[0] if parent.children else None
        return first if first is not None and first.type == 'identifier' else None
    identifiers = [c for c in parent.children if c.type == 'identifier']
    return identifiers[-1] if identifiers else None


def lambda_parameters(lambda_node):
    """Return the parameter node of a lambda: a parameter_list or a single implicit parameter."""
    params = lambda_node.child_by_field_name('parameters')
    if params is not None:
        return params
    for child in lambda_node.children:
        if child.type in ('parameter_list', 'identifier', 'implicit_parameter'):
            return child
        if child.type == '=>':
            break
    return None


def lambda_body(lambda_node):
    """Return the block or expression body of a lambda, or None when absent."""
    body = lambda_node.child_by_field_name('body')
    if body is not None:
        return body
    seen_arrow = False
    for child in lambda_node.children:
        if seen_arrow and child.is_named:
            return child
        if child.type == '=>':
            seen_arrow = True
    return None


def is_declaration_name(node) -> bool:
    """True if the identifier ``node`` declares a name rather than referencing one."""
    parent = node.parent
    if parent is None:
        return False
    if parent.type in DECLARING_PARENTS:
        return _same(node, name_child(parent))
    if parent.type == 'lambda_expression':
        return _same(node, lambda_parameters(parent))
    if parent.type == 'foreach_statement':
        return _same(node, parent.child_by_field_name('left'))
    if parent.type == 'declaration_pattern':
        return not _same(node, parent.child_by_field_name('type'))
    return False


def is_label_name(node) -> bool:
    """True for the target of ``goto label;``; ``goto case`` and ``goto default`` name no label."""
    parent = node.parent
    if parent is None or parent.type != 'goto_statement':
        return False
    return not any(child.type in ('case', 'default') for child in parent.children)


def iter_references(scope_node) -> Iterator[Reference]:
    """Yield every identifier in ``scope_node`` that references a name, nested lambdas included."""
    for node in iter_descendants(scope_node):
        if node.type == 'identifier' and not is_declaration_name(node) and not is_label_name(node):
            yield Reference(text_of(node), node)


def _non_local_kind(node) -> Optional[str]:
    """Classify identifiers that can only denote members or types."""
    parent = node.parent
    if parent is None:
        return None
    ptype = parent.type
    if ptype in ('member_access_expression', 'member_binding_expression'):
        if _same(node, parent.child_by_field_name('name')):
            return 'member'
        # `a.b` without fields: the name follows the dot
        if parent.child_by_field_name('name') is None and parent.children and _same(node, parent.children[-1]):
            return 'member'
    if ptype in ('generic_name', 'qualified_name', 'alias_qualified_name', 'attribute', 'name_colon', 'name_equals'):
        return 'type' if ptype != 'name_colon' else 'member'
    if ptype == 'argument' and _same(node, parent.child_by_field_name('name')):
        return 'member'
    if _same(node, parent.child_by_field_name('type')):
        return 'type'
    if ptype == 'assignment_expression' and _same(node, parent.child_by_field_name('left')):
        grandparent = parent.parent
        if grandparent is not None and grandparent.type == 'initializer_expression':
            owner = grandparent.parent
            if owner is not None and owner.type in ('object_creation_expression', 'implicit_object_creation_expression', 'with_expression'):
                return 'member'
    return None


class SymbolTable:
    """Graph of scopes and local symbols for one tree, with every reference pre-resolved.

    The table is built once and read-only afterwards, so one instance may be
    queried from several threads.
    """

    def __init__(self, scopes: List[Scope], symbols: List[Symbol],
                 declared: Dict[int, Symbol], resolved: Dict[int, Optional[Symbol]]):
        self._scopes = {s.id: s for s in scopes}
        self._symbols = symbols
        self._declared = declared
        self._resolved = resolved

        self._symbols_by_scope: Dict[int, List[Symbol]] = {}
        for symbol in symbols:
            self._symbols_by_scope.setdefault(symbol.scope_id, []).append(symbol)

    def get_scope(self, scope_id: int) -> Optional[Scope]:
        """Get scope by ID."""
        return self._scopes.get(scope_id)

    def iter_symbols(self, kind: str = None) -> Iterable[Symbol]:
        """Iterate over all local symbols, optionally filtered by kind."""
        for symbol in self._symbols:
            if kind is None or symbol.kind == kind:
                yield symbol

    def symbols_in_scope(self, scope_id: int) -> List[Symbol]:
        """Get all symbols defined in a specific scope."""
        return self._symbols_by_scope.get(scope_id, [])

    def resolve_visible(self, scope_id: Optional[int], name: str) -> Optional[Symbol]:
        """
        Resolve a name to the visible symbol in scope hierarchy.

        Searches from the given scope upward through parent scopes to find
        the first matching symbol definition.
        """
        current_scope_id = scope_id
        while current_scope_id is not None:
            for symbol in self.symbols_in_scope(current_scope_id):
                if symbol.name == name:
                    return symbol
            scope = self.get_scope(current_scope_id)
            current_scope_id = scope.parent_id if scope else None
        return None

    def declared_symbol(self, node) -> Symbol:
        """Symbol declared by the identifier (or implicit parameter) ``node``."""
        symbol = self._declared.get(node.id)
        if symbol is None:
            raise UnresolvedSymbol(text_of(node), node.start_byte, "no declaration recorded")
        return symbol

    def referenced_symbol(self, node) -> Symbol:
        """Symbol the identifier reference ``node`` denotes."""
        if node.id not in self._resolved:
            raise UnresolvedSymbol(text_of(node), node.start_byte, "not a reference in this tree")
        symbol = self._resolved[node.id]
        if symbol is None:
            raise UnresolvedSymbol(text_of(node), node.start_byte, "inside a syntax error")
        return symbol

    def get_stats(self) -> Dict[str, int]:
        """Get statistics about the symbol table."""
        return {
            "scopes": len(self._scopes),
            "symbols": len(self._symbols),
            "refs": len(self._resolved),
        }


class _Builder:
    """Collects scopes and declarations in one pass, then resolves references."""

    def __init__(self):
        self.scopes: List[Scope] = []
        self.symbols: List[Symbol] = []
        self.scope_by_node: Dict[int, int] = {}
        self.declared: Dict[int, Symbol] = {}
        self.names: Dict[int, Dict[str, Symbol]] = {}

    def enclosing_scope(self, node) -> Optional[int]:
        current = node
        while current is not None:
            scope_id = self.scope_by_node.get(current.id)
            if scope_id is not None:
                return scope_id
            current = current.parent
        return None

    def add_scope(self, node, kind: str) -> None:
        scope_id = len(self.scopes)
        parent_id = self.enclosing_scope(node.parent) if node.parent is not None else None
        self.scopes.append(Scope(scope_id, kind, parent_id, node.start_byte, node.end_byte))
        self.scope_by_node[node.id] = scope_id

    def declare(self, ident, kind: str, scope_id: Optional[int]) -> None:
        name = text_of(ident)
        if not name or ident.is_missing or scope_id is None:
            return
        symbol = Symbol(name, kind, scope_id, ident.start_byte, ident.end_byte)
        self.declared[ident.id] = symbol
        # first declaration of a name in a scope wins, as the compiler reports the rest
        scope_names = self.names.setdefault(scope_id, {})
        if name not in scope_names:
            scope_names[name] = symbol
            self.symbols.append(symbol)

    def visit_declarations(self, node) -> None:
        ntype = node.type
        if ntype == 'variable_declaration':
            parent = node.parent
            if parent is not None and parent.type in LOCAL_DECLARATION_CONTEXTS:
                scope_id = self.enclosing_scope(node)
                for declarator in node.named_children:
                    if declarator.type == 'variable_declarator':
                        ident = name_child(declarator)
                        if ident is not None and ident.type == 'identifier':
                            self.declare(ident, 'local', scope_id)
        elif ntype == 'parameter':
            owner = node.parent.parent if node.parent is not None else None
            scope_id = self.scope_by_node.get(owner.id) if owner is not None else None
            ident = name_child(node)
            if ident is not None and scope_id is not None:
                kind = 'lambda_param' if SCOPE_KINDS[owner.type] == 'lambda' else 'param'
                self.declare(ident, kind, scope_id)
        elif ntype == 'lambda_expression':
            params = lambda_parameters(node)
            if params is not None and params.type in ('identifier', 'implicit_parameter'):
                self.declare(params, 'lambda_param', self.scope_by_node.get(node.id))
        elif ntype == 'foreach_statement':
            left = node.child_by_field_name('left')
            if left is not None and left.type == 'identifier':
                self.declare(left, 'foreach', self.scope_by_node.get(node.id))
        elif ntype == 'catch_declaration':
            ident = node.child_by_field_name('name')
            if ident is not None:
                self.declare(ident, 'catch', self.enclosing_scope(node))
        elif ntype == 'declaration_expression':
            ident = name_child(node)
            if ident is not None and ident.type == 'identifier':
                self.declare(ident, 'local', self.enclosing_scope(node))
        elif ntype == 'declaration_pattern':
            type_node = node.child_by_field_name('type')
            for child in node.children:
                if child.type == 'identifier' and not _same(child, type_node):
                    self.declare(child, 'pattern', self.enclosing_scope(node))
        elif ntype == 'local_function_statement':
            ident = node.child_by_field_name('name')
            if ident is not None and node.parent is not None:
                self.declare(ident, 'function', self.enclosing_scope(node.parent))

    def build(self, root) -> SymbolTable:
        stack = [root]
        while stack:
            node = stack.pop()
            if node.type == 'ERROR':
                continue
            kind = SCOPE_KINDS.get(node.type)
            if kind is not None:
                self.add_scope(node, kind)
            self.visit_declarations(node)
            stack.extend(reversed(node.children))

        resolved: Dict[int, Optional[Symbol]] = {}
        table = SymbolTable(self.scopes, self.symbols, self.declared, resolved)
        for ref in iter_references(root):
            resolved[ref.node.id] = self.resolve(table, ref)

        logger.debug("Symbol table built: %d scopes, %d symbols, %d refs",
                     len(self.scopes), len(self.symbols), len(resolved))
        return table

    def resolve(self, table: SymbolTable, ref: Reference) -> Optional[Symbol]:
        if has_error_ancestor(ref.node):
            return None
        if _non_local_kind(ref.node) is None:
            symbol = table.resolve_visible(self.enclosing_scope(ref.node), ref.name)
            if symbol is not None:
                return symbol
        return Symbol(ref.name, 'external', _EXTERNAL_SCOPE, -1, -1)


def build_symbol_table(tree) -> SymbolTable:
    """
    Build the symbol table for a parsed C# tree.

    Args:
        tree: tree-sitter Tree (or a root node)

    Returns:
        SymbolTable with every local declaration and reference resolved
    """
    root = getattr(tree, 'root_node', tree)
    return _Builder().build(root)

"""
Tests for the UVA001 unused variable rule.

This module tests detection of unused local variables and lambda parameters
in both matching modes, the resource exemption, fail-open behaviour and
cooperative cancellation.
"""

from collections import Counter
from typing import List

import pytest

from uvacheck.engine.cancellation import CancellationToken
from uvacheck.engine.csharp_adapter import CSharpAdapter, iter_descendants, text_of
from uvacheck.engine.errors import OperationCancelled, UnresolvedSymbol
from uvacheck.engine.registry import get_rule
from uvacheck.engine.symbols import Symbol, build_symbol_table
from uvacheck.engine.types import BindingKind, Diagnostic, MatchMode, RuleContext
from uvacheck.rules.unused_variable import (
    DESCRIPTOR, UnusedVariableRule, analyze, iter_bindings, make_usage_resolver,
)

ADAPTER = CSharpAdapter()


def wrap(body: str) -> str:
    """Place statements inside a method body."""
    return "class C\n{\n    void M()\n    {\n" + body + "\n    }\n}\n"


def run(body: str, mode: MatchMode = MatchMode.SYMBOL, **kwargs) -> List[Diagnostic]:
    tree = ADAPTER.parse(wrap(body))
    return analyze(tree, mode=mode, **kwargs)


def names(diagnostics: List[Diagnostic]) -> List[str]:
    return sorted(d.meta_dict["binding_name"] for d in diagnostics)


class _ExternalReferences:
    """Symbol service whose references never resolve to a local."""

    def __init__(self, table):
        self._table = table

    def declared_symbol(self, node):
        return self._table.declared_symbol(node)

    def referenced_symbol(self, node):
        return Symbol(text_of(node), "external", -1, -1, -1)


class _UnresolvedReferences(_ExternalReferences):
    """Symbol service that cannot resolve any reference."""

    def referenced_symbol(self, node):
        raise UnresolvedSymbol(text_of(node), node.start_byte)


class _UnresolvedDeclarations(_ExternalReferences):
    """Symbol service that cannot resolve any declaration."""

    def declared_symbol(self, node):
        raise UnresolvedSymbol(text_of(node), node.start_byte)


class TestScenarios:
    """Reference behaviour of the rule."""

    def test_unused_local_reported(self):
        diagnostics = run("        int x = 5;")

        assert len(diagnostics) == 1
        diagnostic = diagnostics[0]
        assert diagnostic.rule == "UVA001"
        assert diagnostic.message == "Variable 'x' is assigned but never used"
        assert diagnostic.severity == "warning"
        assert diagnostic.category == "Usage"
        assert diagnostic.meta_dict["binding_kind"] == BindingKind.LOCAL_VARIABLE.value

    def test_diagnostic_at_declarator_identifier(self):
        source = wrap("        int x = 5;")
        offset = source.index("x = 5")
        line_start = source.rfind("\n", 0, offset) + 1

        diagnostics = analyze(ADAPTER.parse(source), file_path="Test.cs")

        diagnostic = diagnostics[0]
        assert diagnostic.file == "Test.cs"
        assert (diagnostic.start_byte, diagnostic.end_byte) == (offset, offset + 1)
        assert diagnostic.line == 5
        assert diagnostic.column == offset - line_start + 1
        assert diagnostic.location == (5, diagnostic.column, 5, diagnostic.column + 1)

    def test_columns_count_characters(self):
        source = wrap('        Use("\u00e9\u00e9"); var x = 1;')
        offset = source.index("x = 1")
        line_start = source.rfind("\n", 0, offset) + 1
        column = offset - line_start + 1
        tree = ADAPTER.parse(source)
        block = next(n for n in iter_descendants(tree.root_node) if n.type == "block")

        for diagnostics in (analyze(tree), analyze(tree, text=source), analyze(block)):
            (diagnostic,) = diagnostics
            assert diagnostic.start_byte == len(source[:offset].encode("utf-8"))
            assert (diagnostic.column, diagnostic.end_column) == (column, column + 1)

    def test_using_declaration_exempt(self):
        assert run("        using var conn = OpenConnection();") == []

    def test_await_using_declaration_exempt(self):
        assert run("        await using var conn = OpenAsync();") == []

    def test_used_lambda_parameter(self):
        assert run("        Use(items.Select(x => x.Length));") == []

    def test_unused_lambda_parameter_reported(self):
        diagnostics = run("        Use(items.Select(x => 42));")

        assert names(diagnostics) == ["x"]
        assert diagnostics[0].meta_dict["binding_kind"] == BindingKind.LAMBDA_PARAMETER.value

    def test_shadowed_outer_symbol_mode(self):
        body = "        var y = 1;\n        {\n            var y = 2;\n            Print(y);\n        }"
        source = wrap(body)

        diagnostics = analyze(ADAPTER.parse(source), mode=MatchMode.SYMBOL)

        assert names(diagnostics) == ["y"]
        assert diagnostics[0].start_byte == source.index("y = 1")

    def test_shadowed_outer_syntactic_mode(self):
        body = "        var y = 1;\n        {\n            var y = 2;\n            Print(y);\n        }"
        assert run(body, mode=MatchMode.SYNTACTIC) == []


class TestLocals:
    """Local variable bindings."""

    def test_used_local_not_reported(self):
        assert run("        int x = 5;\n        Console.WriteLine(x);") == []

    def test_multiple_declarators(self):
        diagnostics = run("        int a = 1, b = 2, c = 3;\n        Use(a, c);")
        assert names(diagnostics) == ["b"]

    def test_several_unused_in_document_order(self):
        diagnostics = run("        int a = 1;\n        int b = 2;\n        int c = 3;")
        assert [d.meta_dict["binding_name"] for d in diagnostics] == ["a", "b", "c"]
        assert [d.start_byte for d in diagnostics] == sorted(d.start_byte for d in diagnostics)

    def test_reference_in_unreachable_code_counts(self):
        assert run("        int x = 5;\n        return;\n        Use(x);") == []

    def test_reference_inside_nested_lambda_counts(self):
        assert run("        int x = 5;\n        Run(() => Use(x));") == []

    def test_using_statement_exempt(self):
        assert run("        using (var stream = Open())\n        {\n        }") == []

    def test_unused_in_inner_block(self):
        diagnostics = run("        if (ready)\n        {\n            var temp = Compute();\n        }")
        assert names(diagnostics) == ["temp"]

    def test_unused_for_loop_variable(self):
        diagnostics = run("        for (int i = 0; ; )\n        {\n            Tick();\n        }")
        assert names(diagnostics) == ["i"]

    def test_used_for_loop_variable(self):
        assert run("        for (int i = 0; i < 10; i++)\n        {\n        }") == []

    def test_discard_name_skipped(self):
        assert run("        var _ = Compute();") == []

    def test_fields_not_reported(self):
        tree = ADAPTER.parse("class C\n{\n    private int count = 0;\n    void M() { }\n}\n")
        assert analyze(tree) == []

    def test_method_parameters_not_reported(self):
        tree = ADAPTER.parse("class C\n{\n    void M(int unused) { }\n}\n")
        assert analyze(tree) == []

    @pytest.mark.parametrize("mode", list(MatchMode))
    def test_goto_label_does_not_use_local(self, mode):
        diagnostics = run("        int x = 1;\n        goto x;\n        x:\n        return;", mode)
        assert names(diagnostics) == ["x"]

    def test_foreach_variable_not_reported(self):
        assert run("        foreach (var item in items)\n        {\n        }") == []

    def test_member_with_same_name(self):
        # `s.Length` names a member, not the local
        body = "        int Length = 0;\n        Use(s.Length);"

        assert names(run(body, mode=MatchMode.SYMBOL)) == ["Length"]
        assert run(body, mode=MatchMode.SYNTACTIC) == []


class TestLambdas:
    """Lambda parameter bindings."""

    def test_parenthesized_lambda(self):
        diagnostics = run("        Run((a, b) => a);")
        assert names(diagnostics) == ["b"]

    def test_typed_lambda_parameters(self):
        assert run("        Run((int a, int b) => a + b);") == []

    def test_block_bodied_lambda(self):
        diagnostics = run("        Run(x =>\n        {\n            return 1;\n        });")
        assert names(diagnostics) == ["x"]

    def test_parameter_used_in_inner_lambda(self):
        body = "        Run(x =>\n        {\n            Func<int> g = () => x;\n            return g();\n        });"
        assert run(body) == []

    def test_parameter_scope_is_own_body(self):
        # `x` in the outer method does not use the lambda's `x`
        diagnostics = run("        var x = 1;\n        Use(x);\n        Run(x => 0);")
        assert names(diagnostics) == ["x"]
        assert diagnostics[0].meta_dict["binding_kind"] == BindingKind.LAMBDA_PARAMETER.value

    def test_inner_parameter_hides_outer(self):
        body = "        Run(x => Run(x => x));"

        diagnostics = run(body, mode=MatchMode.SYMBOL)
        assert names(diagnostics) == ["x"]
        source = wrap(body)
        assert diagnostics[0].start_byte == source.index("x =>")

        assert run(body, mode=MatchMode.SYNTACTIC) == []

    def test_discard_parameter_skipped(self):
        assert run("        Run(_ => 1);") == []

    def test_unused_local_inside_lambda(self):
        diagnostics = run("        Run(() =>\n        {\n            var inner = 1;\n        });")
        assert names(diagnostics) == ["inner"]


class TestFailOpen:
    """Incomplete information never produces a diagnostic."""

    def setup_method(self):
        self.tree = ADAPTER.parse(wrap("        int x = 5;\n        Use(x);"))
        self.table = build_symbol_table(self.tree)

    def test_external_reference_does_not_use_local(self):
        diagnostics = analyze(self.tree, _ExternalReferences(self.table))
        assert names(diagnostics) == ["x"]

    def test_unresolved_reference_counts_as_use(self):
        assert analyze(self.tree, _UnresolvedReferences(self.table)) == []

    def test_unresolved_declaration_counts_as_used(self):
        tree = ADAPTER.parse(wrap("        int x = 5;"))
        assert analyze(tree, _UnresolvedDeclarations(build_symbol_table(tree))) == []

    def test_malformed_input_does_not_crash(self):
        source = "class C\n{\n    void M()\n    {\n        int = 5;\n        var y = ;\n        Run(( => 1);\n"
        for mode in MatchMode:
            diagnostics = analyze(ADAPTER.parse(source), mode=mode)
            assert isinstance(diagnostics, list)
            assert all(d.meta_dict["binding_name"] for d in diagnostics)

    @pytest.mark.parametrize("mode", list(MatchMode))
    def test_missing_lambda_body_counts_as_used(self, mode):
        assert run("        Use(x => );", mode) == []

    @pytest.mark.parametrize("mode", list(MatchMode))
    def test_missing_initializer_counts_as_used(self, mode):
        assert run("        var x = ;", mode) == []

    def test_symbol_mode_needs_table_or_tree(self):
        with pytest.raises(ValueError):
            make_usage_resolver(MatchMode.SYMBOL)


class TestReporting:
    """Idempotence, the report callback and cancellation."""

    BODY = "        int a = 1;\n        int b = 2;\n        Run(x => 0);\n        int c = 3;\n        Use(c);"

    def setup_method(self):
        self.tree = ADAPTER.parse(wrap(self.BODY))

    def test_idempotent(self):
        first = analyze(self.tree)
        second = analyze(self.tree)

        assert Counter(first) == Counter(second)
        assert names(first) == ["a", "b", "x"]

    def test_one_diagnostic_per_declaration_site(self):
        diagnostics = analyze(self.tree)
        spans = [(d.start_byte, d.end_byte) for d in diagnostics]
        assert len(spans) == len(set(spans))

    def test_modes_agree_without_shadowing(self):
        symbol = analyze(self.tree, mode=MatchMode.SYMBOL)
        syntactic = analyze(self.tree, mode="syntactic")
        assert names(symbol) == names(syntactic)
        assert {d.meta_dict["match_mode"] for d in syntactic} == {"syntactic"}

    def test_report_callback_sees_every_diagnostic(self):
        reported = []
        diagnostics = analyze(self.tree, report=reported.append)
        assert reported == diagnostics

    def test_cancelled_before_start(self):
        token = CancellationToken()
        token.cancel()

        with pytest.raises(OperationCancelled) as excinfo:
            analyze(self.tree, cancellation=token)
        assert excinfo.value.diagnostics == []

    def test_cancelled_midway_keeps_partial_results(self):
        token = CancellationToken()

        def cancel_after_first(diagnostic):
            token.cancel()

        with pytest.raises(OperationCancelled) as excinfo:
            analyze(self.tree, cancellation=token, report=cancel_after_first)

        partial = excinfo.value.diagnostics
        assert names(partial) == ["a"]
        full = analyze(self.tree)
        assert all(d in full for d in partial)

    def test_iter_bindings_is_lazy_and_ordered(self):
        bindings = iter_bindings(self.tree.root_node)
        first = next(bindings)
        assert first.name == "a"
        assert [b.name for b in bindings] == ["b", "x", "c"]


class TestUnusedVariableRule:
    """The rule object as the runner drives it."""

    def setup_method(self):
        self.rule = UnusedVariableRule()

    def make_context(self, body: str, mode: MatchMode = MatchMode.SYMBOL) -> RuleContext:
        source = wrap(body)
        tree = ADAPTER.parse(source)
        return RuleContext(
            file_path="Test.cs",
            text=source,
            tree=tree,
            adapter=ADAPTER,
            symbols=build_symbol_table(tree) if mode is MatchMode.SYMBOL else None,
            match_mode=mode,
        )

    def test_meta(self):
        assert self.rule.meta is DESCRIPTOR
        assert DESCRIPTOR.title == "Variable assigned but never used"
        assert DESCRIPTOR.enabled_by_default
        assert "csharp" in DESCRIPTOR.langs
        assert self.rule.requires.symbols

    def test_visit(self):
        diagnostics = list(self.rule.visit(self.make_context("        int x = 5;")))
        assert names(diagnostics) == ["x"]
        assert diagnostics[0].file == "Test.cs"

    def test_visit_syntactic(self):
        body = "        var y = 1;\n        {\n            var y = 2;\n            Print(y);\n        }"
        assert list(self.rule.visit(self.make_context(body, MatchMode.SYNTACTIC))) == []

    def test_visit_without_tree(self):
        ctx = RuleContext(file_path="Empty.cs", text="", tree=None, adapter=ADAPTER)
        assert list(self.rule.visit(ctx)) == []

    def test_registered_on_import(self):
        assert get_rule("UVA001") is not None

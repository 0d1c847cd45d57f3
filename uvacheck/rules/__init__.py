"""
uvacheck rules package.

Rules register themselves when their module is imported; the runner imports
every module in this package through ``engine.registry.discover_rules``.

A rule is any object with ``meta`` (a DiagnosticDescriptor), ``requires``
and ``visit(ctx)`` returning diagnostics. End the module with::

    from . import register
    register(MyRule())
"""

from typing import List

from ..engine.registry import register_rule
from ..engine.types import Rule

# Rules registered from this package, in import order
RULES: List[Rule] = []


def register(rule: Rule) -> None:
    """
    Register a rule in the global registry.

    Args:
        rule: Rule instance to register
    """
    register_rule(rule)
    if all(existing.meta.id != rule.meta.id for existing in RULES):
        RULES.append(rule)


__all__ = ["RULES", "register"]

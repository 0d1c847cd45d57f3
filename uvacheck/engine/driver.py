"""
Syntax node dispatch for rules.

The driver owns the top-level walk over a tree and calls the handler
registered for each node kind of interest, the way an analyzer host calls
back per syntax node. The handler table is fixed when the driver is built.
"""

from types import MappingProxyType
from typing import Any, Callable, Iterable, Iterator, Mapping, Optional, TypeVar

from .csharp_adapter import iter_descendants

T = TypeVar("T")
Handler = Callable[[Any], Iterable[T]]


class SyntaxDriver:
    """Walks a tree once and yields whatever the matching handlers yield."""

    def __init__(self, handlers: Mapping[str, Handler]):
        self._handlers = MappingProxyType(dict(handlers))

    @property
    def node_kinds(self) -> frozenset:
        return frozenset(self._handlers)

    def handler_for(self, node_type: str) -> Optional[Handler]:
        return self._handlers.get(node_type)

    def dispatch(self, root) -> Iterator[T]:
        """Yield results of every handler call, lazily and in document order.

        ERROR subtrees are still visited; handlers decide how much of a
        damaged node they can use.
        """
        for node in iter_descendants(root):
            handler = self._handlers.get(node.type)
            if handler is not None:
                yield from handler(node)

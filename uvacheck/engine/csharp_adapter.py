"""
C# language adapter for tree-sitter.
"""
import logging
import os
import threading
from typing import Any, Iterator, List, Optional, Tuple

import tree_sitter

from .errors import ParserUnavailable
from .types import LanguageAdapter

logger = logging.getLogger(__name__)


def text_of(node) -> str:
    """Decode a tree-sitter node's text; empty for missing nodes."""
    if node is None or node.text is None:
        return ""
    return node.text.decode('utf-8', errors='ignore')


def iter_descendants(node) -> Iterator[Any]:
    """Yield ``node`` and all its descendants in document order."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        children = current.children
        if children:
            stack.extend(reversed(children))


def character_column(source: Optional[bytes], start_byte: int, byte_column: int, base: int = 0) -> int:
    """1-based character column of ``start_byte`` given tree-sitter's byte column.

    ``source`` holds the document from byte ``base`` on. Bytes of the line
    that precede ``base`` are leading whitespace, one character each.
    """
    if source is None:
        return byte_column + 1
    line_start = start_byte - byte_column
    skipped = max(base - line_start, 0)
    prefix = source[max(line_start - base, 0):start_byte - base]
    return skipped + len(prefix.decode('utf-8', errors='replace')) + 1


def has_error_ancestor(node) -> bool:
    """True if ``node`` sits inside an ERROR subtree produced by error recovery."""
    current = node
    while current is not None:
        if current.type == 'ERROR':
            return True
        current = current.parent
    return False


class CSharpAdapter(LanguageAdapter):
    """Tree-sitter adapter for C# language."""

    def __init__(self):
        # tree-sitter parsers are not safe to share between threads
        self._local = threading.local()
        self._language = None
        self._language_lock = threading.Lock()

    @property
    def language_id(self) -> str:
        """Return the language identifier."""
        return "csharp"

    @property
    def file_extensions(self) -> Tuple[str, ...]:
        """Return supported file extensions."""
        return (".cs",)

    def _get_language(self):
        with self._language_lock:
            if self._language is None:
                try:
                    from tree_sitter_c_sharp import language
                    self._language = tree_sitter.Language(language())
                except ImportError as e:
                    raise ParserUnavailable(f"tree-sitter-c-sharp not available: {e}") from e
                logger.debug("C# grammar loaded")
            return self._language

    def _get_parser(self):
        """Get or create the tree-sitter parser for the calling thread."""
        parser = getattr(self._local, 'parser', None)
        if parser is None:
            parser = tree_sitter.Parser()
            parser.language = self._get_language()
            self._local.parser = parser
        return parser

    def parse(self, text: str) -> Any:
        """Parse text and return a Tree-sitter tree."""
        return self._get_parser().parse(text.encode('utf-8'))

    def list_files(self, paths: List[str]) -> List[str]:
        """List all C# files in the given paths."""
        cs_files = []

        for path in paths:
            if os.path.isfile(path):
                if any(path.endswith(ext) for ext in self.file_extensions):
                    cs_files.append(path)
            elif os.path.isdir(path):
                for root, dirs, files in os.walk(path):
                    # Skip hidden and build output directories
                    dirs[:] = [d for d in dirs if not d.startswith('.') and d not in ['bin', 'obj']]
                    dirs.sort()

                    for file in sorted(files):
                        if any(file.endswith(ext) for ext in self.file_extensions):
                            cs_files.append(os.path.join(root, file))
            else:
                logger.warning("Path '%s' does not exist", path)

        return cs_files

    def node_text(self, text: str, start_byte: int, end_byte: int) -> str:
        """Extract text between byte offsets."""
        try:
            return text.encode('utf-8')[start_byte:end_byte].decode('utf-8')
        except UnicodeDecodeError:
            return ""

    def byte_to_linecol(self, text: str, byte: int) -> Tuple[int, int]:
        """Convert byte offset to (line, column) 1-based."""
        text_bytes = text.encode('utf-8')
        if byte > len(text_bytes):
            byte = len(text_bytes)

        lines = text_bytes[:byte].decode('utf-8', errors='ignore').split('\n')
        line = len(lines)
        col = len(lines[-1]) + 1
        return (line, col)


# Create default instance
default_csharp_adapter = CSharpAdapter()

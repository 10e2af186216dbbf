"""Python chunker — one chunk per top-level symbol, parsed with ``ast``.

Each function or class becomes a chunk carrying its name, signature,
docstring, the module's imports, and the names it calls. The ``calls``
list is what the dependency graph is built from. Module-level code
between symbols is chunked with line windows.
"""

from __future__ import annotations

import ast

from strata.db.models import Chunk
from strata.errors import ChunkingError
from strata.ingest.base import BaseChunker, Span, trimmed_span

_SymbolNode = (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)


class PythonChunker(BaseChunker):
    """Split Python source on function and class boundaries.

    Classes that exceed ``chunk_size`` are split into a header chunk and one
    chunk per method (``symbol_type="method"``, ``parent=<class>``). A
    function that alone exceeds ``chunk_size`` is split into line windows;
    only the first piece carries the symbol name.

    Default: 800 tokens / no overlap.
    """

    def __init__(self, chunk_size: int = 800, overlap: float = 0.0) -> None:
        super().__init__(chunk_size=chunk_size, overlap=overlap)

    def chunk(self, path: str, content: str) -> list[Chunk]:
        if not content.strip():
            return []
        try:
            tree = ast.parse(content, filename=path or "<unknown>")
        except (SyntaxError, ValueError) as exc:
            raise ChunkingError(f"Cannot parse {path or 'python source'}: {exc}") from exc

        lines = content.splitlines()
        imports = _module_imports(tree)
        spans: list[Span] = []
        metadata: list[dict] = []

        def emit(pieces: list[Span], meta: dict) -> None:
            for span in pieces:
                spans.append(span)
                metadata.append(meta)

        covered = 0  # lines[0:covered] are already chunked
        for node in tree.body:
            if not isinstance(node, _SymbolNode):
                continue
            start = _first_line(node) - 1
            end = node.end_lineno or node.lineno
            if start > covered:
                emit(
                    self._split_line_window(lines[covered:start], first_line=covered + 1),
                    {"symbol_type": "module", "imports": imports},
                )
            if isinstance(node, ast.ClassDef):
                self._emit_class(node, lines, start, end, imports, spans, metadata)
            else:
                self._emit_symbol(node, lines, start, end, imports, "function", None, spans, metadata)
            covered = max(covered, end)

        if covered < len(lines):
            emit(
                self._split_line_window(lines[covered:], first_line=covered + 1),
                {"symbol_type": "module", "imports": imports},
            )

        # Module chunks carry the calls made on their own lines.
        call_sites = _call_sites(tree)
        for i, (s, e, _) in enumerate(spans):
            if metadata[i]["symbol_type"] == "module":
                metadata[i] = dict(metadata[i], calls=_calls_between(call_sites, s, e))

        return self._make_chunks(spans, metadata)

    # ------------------------------------------------------------------
    # Symbol emission
    # ------------------------------------------------------------------

    def _emit_class(
        self,
        node: ast.ClassDef,
        lines: list[str],
        start: int,
        end: int,
        imports: list[str],
        spans: list[Span],
        metadata: list[dict],
    ) -> None:
        text = "\n".join(lines[start:end])
        methods = [n for n in node.body if isinstance(n, (ast.FunctionDef, ast.AsyncFunctionDef))]
        if self.count_tokens(text) <= self.chunk_size or not methods:
            self._emit_symbol(node, lines, start, end, imports, "class", None, spans, metadata)
            return

        # Header: class line through the line before the first method.
        header_end = _first_line(methods[0]) - 1
        header = trimmed_span(lines, start, header_end, 1)
        if header is not None:
            spans.append(header)
            metadata.append(_symbol_meta(node, "class", None, imports, _own_calls(node, header)))

        cursor = header_end
        for method in methods:
            m_start = _first_line(method) - 1
            m_end = method.end_lineno or method.lineno
            if m_start > cursor:
                gap = trimmed_span(lines, cursor, m_start, 1)
                if gap is not None:
                    spans.append(gap)
                    metadata.append({"symbol_type": "class_body", "parent": node.name})
            self._emit_symbol(method, lines, m_start, m_end, imports, "method", node.name, spans, metadata)
            cursor = m_end
        if cursor < end:
            tail = trimmed_span(lines, cursor, end, 1)
            if tail is not None:
                spans.append(tail)
                metadata.append({"symbol_type": "class_body", "parent": node.name})

    def _emit_symbol(
        self,
        node: ast.AST,
        lines: list[str],
        start: int,
        end: int,
        imports: list[str],
        symbol_type: str,
        parent: str | None,
        spans: list[Span],
        metadata: list[dict],
    ) -> None:
        text = "\n".join(lines[start:end])
        if self.count_tokens(text) <= self.chunk_size:
            span = trimmed_span(lines, start, end, 1)
            if span is not None:
                spans.append(span)
                metadata.append(_symbol_meta(node, symbol_type, parent, imports, _own_calls(node, span)))
            return

        pieces = self._split_line_window(lines[start:end], first_line=start + 1)
        name = getattr(node, "name", "")
        for i, piece in enumerate(pieces):
            if i == 0:
                meta = _symbol_meta(node, symbol_type, parent, imports, _own_calls(node, piece))
            else:
                meta = {
                    "symbol_type": "continuation",
                    "parent": name,
                    "calls": _own_calls(node, piece),
                }
            spans.append(piece)
            metadata.append(meta)


# ----------------------------------------------------------------------
# AST helpers
# ----------------------------------------------------------------------


def _first_line(node: ast.AST) -> int:
    """First line of *node* including its decorators (1-based)."""
    decorators = getattr(node, "decorator_list", [])
    return min([node.lineno] + [d.lineno for d in decorators])


def _module_imports(tree: ast.Module) -> list[str]:
    names: list[str] = []
    for node in tree.body:
        if isinstance(node, ast.Import):
            names.extend(alias.name for alias in node.names)
        elif isinstance(node, ast.ImportFrom):
            module = "." * node.level + (node.module or "")
            names.extend(f"{module}.{alias.name}" if module else alias.name for alias in node.names)
    return sorted(set(names))


def _called_name(call: ast.Call) -> str | None:
    func = call.func
    if isinstance(func, ast.Name):
        return func.id
    if isinstance(func, ast.Attribute):
        return func.attr
    return None


def _call_sites(node: ast.AST) -> list[tuple[int, str]]:
    sites: list[tuple[int, str]] = []
    for sub in ast.walk(node):
        if isinstance(sub, ast.Call):
            name = _called_name(sub)
            if name:
                sites.append((sub.lineno, name))
    return sites


def _calls_between(sites: list[tuple[int, str]], start: int, end: int) -> list[str]:
    return sorted({name for line, name in sites if start <= line <= end})


def _own_calls(node: ast.AST, span: Span) -> list[str]:
    return _calls_between(_call_sites(node), span[0], span[1])


def _signature(node: ast.AST) -> str:
    if isinstance(node, ast.ClassDef):
        bases = ", ".join(ast.unparse(b) for b in node.bases + node.keywords)
        return f"class {node.name}({bases})" if bases else f"class {node.name}"
    prefix = "async def" if isinstance(node, ast.AsyncFunctionDef) else "def"
    sig = f"{prefix} {node.name}({ast.unparse(node.args)})"
    if node.returns is not None:
        sig += f" -> {ast.unparse(node.returns)}"
    return sig


def _symbol_meta(
    node: ast.AST,
    symbol_type: str,
    parent: str | None,
    imports: list[str],
    calls: list[str],
) -> dict:
    meta: dict = {
        "symbol_type": symbol_type,
        "name": node.name,
        "signature": _signature(node),
        "imports": imports,
        "calls": calls,
    }
    if parent:
        meta["parent"] = parent
    doc = ast.get_docstring(node)
    if doc:
        meta["doc_comment"] = doc
    return meta

#!/usr/bin/env -S uv run --script
# /// script
# requires-python = ">=3.11"
# dependencies = [
#   "beartype",
# ]
# ///
"""
Export Lean declaration metadata for the documentation website.

Reads the symbol-table dump (symbol_table.json) from the current directory
and writes json_export.txt next to it:

{ "decls":[
{"name":...,"args":[...],"type":...,...},
...
],
"mod_docs": {"file.lean":[{"line":1,"doc":"..."}]}}

Records are streamed to the file as they are extracted. Only double quotes
are escaped inside strings; the site parses the export with
json.loads(..., strict=False), which accepts raw newlines. Backslashes are
written as-is, so a doc string containing one does not survive the trip.

Usage:
    python scripts/export_json.py
"""

import logging
from io import TextIOBase
from pathlib import Path
from typing import Callable, Iterable, Iterator, List, Optional, Sequence

from beartype import beartype

from extract_decls import DeclExtractor, DeclInfo, ModuleDocInfo, group_module_docs
from lean_exprs import Expr, render_expr
from symbol_store import JsonSymbolStore, SymbolStore

logger = logging.getLogger(__name__)

OUTPUT_FILE = "json_export.txt"
SYMBOL_TABLE_FILE = "symbol_table.json"

# Number of halvings applied to the name list: 2**3 = 8 batches
DEFAULT_SPLIT_DEPTH = 3


# ── Batching ──────────────────────────────────────────────────────────


@beartype
def split_names(names: Sequence[str], depth: int = DEFAULT_SPLIT_DEPTH) -> List[List[str]]:
    """Split ``names`` into ``2 ** depth`` batches by repeated halving.

    Batches keep the original order; joining them gives back ``names``.
    When there are fewer names than batches, some batches are empty.
    """
    if depth < 0:
        raise ValueError(f"split depth must be non-negative, got {depth}")
    batches = [list(names)]
    for _ in range(depth):
        halves = []
        for batch in batches:
            mid = (len(batch) + 1) // 2
            halves.append(batch[:mid])
            halves.append(batch[mid:])
        batches = halves
    return batches


@beartype
def iter_decl_infos(
    store: SymbolStore, extractor: DeclExtractor, depth: int = DEFAULT_SPLIT_DEPTH
) -> Iterator[DeclInfo]:
    """Yield a record for every exportable declaration, batch by batch."""
    batches = split_names(store.all_names(), depth)
    for i, batch in enumerate(batches, 1):
        logger.info(f"Batch {i}/{len(batches)}: {len(batch)} declarations")
        for name in batch:
            info = extractor.extract(name)
            if info is not None:
                yield info


# ── JSON output ───────────────────────────────────────────────────────


@beartype
def escape_json_string(text: str) -> str:
    """Quote ``text`` for the export, escaping double quotes only."""
    return '"' + text.replace('"', '\\"') + '"'


def _format_strings(items: Sequence[str]) -> str:
    return "[" + ",".join(escape_json_string(s) for s in items) + "]"


def _format_pairs(pairs: Sequence[tuple]) -> str:
    return "[" + ",".join(_format_strings(pair) for pair in pairs) + "]"


@beartype
def format_decl(info: DeclInfo) -> str:
    """Serialize one record; key order is fixed."""
    fields = [
        ("name", escape_json_string(info.name)),
        ("args", _format_strings(info.args)),
        ("type", escape_json_string(info.type)),
        ("doc_string", escape_json_string(info.doc_string or "")),
        ("filename", escape_json_string(info.filename)),
        ("line", str(info.line)),
        ("attributes", _format_strings(info.attributes)),
        ("kind", escape_json_string(info.kind)),
        ("structure_fields", _format_pairs(info.structure_fields)),
        ("constructors", _format_pairs(info.constructors)),
    ]
    return "{" + ",".join(f'"{key}":{value}' for key, value in fields) + "}"


class DeclArrayWriter:
    """Streams records into an already opened JSON array."""

    def __init__(self, out: TextIOBase):
        self.out = out
        self.first = True
        self.count = 0

    @beartype
    def write(self, info: DeclInfo):
        if not self.first:
            self.out.write(",\n")
        self.first = False
        self.out.write(format_decl(info))
        self.count += 1


@beartype
def write_mod_docs(out: TextIOBase, mod_docs: List[ModuleDocInfo]):
    """Write the mod_docs object: filename -> [{"line": N, "doc": "..."}]."""
    entries = []
    for mod in mod_docs:
        docs = ",".join(
            f'{{"line":{line},"doc":{escape_json_string(content)}}}'
            for line, content in mod.docs
        )
        entries.append(f"{escape_json_string(mod.filename)}:[{docs}]")
    out.write("{" + ",".join(entries) + "}")


@beartype
def write_export(
    out: TextIOBase,
    infos: Iterable[DeclInfo],
    mod_docs: List[ModuleDocInfo],
) -> int:
    """Write the whole export document; return the number of records."""
    out.write('{ "decls":[\n')
    writer = DeclArrayWriter(out)
    for info in infos:
        writer.write(info)
    out.write('\n],\n"mod_docs": ')
    write_mod_docs(out, mod_docs)
    out.write("}\n")
    return writer.count


# ── Orchestration ─────────────────────────────────────────────────────


@beartype
def export(
    store: SymbolStore,
    output_path: Path = Path(OUTPUT_FILE),
    split_depth: int = DEFAULT_SPLIT_DEPTH,
    current_file: Optional[str] = None,
    render_type: Callable[[Expr], str] = render_expr,
) -> int:
    """Export every declaration of ``store`` to ``output_path``."""
    extractor = DeclExtractor(store, current_file, render_type)
    mod_docs = group_module_docs(store.module_docs())
    with open(output_path, "w", encoding="utf-8") as out:
        count = write_export(out, iter_decl_infos(store, extractor, split_depth), mod_docs)
    logger.info(f"Wrote {count} declarations and {len(mod_docs)} module docs to {output_path}")
    return count


@beartype
def main():
    logging.basicConfig(level=logging.INFO, format="%(message)s")

    store = JsonSymbolStore.load(Path(SYMBOL_TABLE_FILE))
    export(store, Path(OUTPUT_FILE))


if __name__ == "__main__":
    main()

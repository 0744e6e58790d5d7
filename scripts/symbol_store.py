#!/usr/bin/env python3
# /// script
# requires-python = ">=3.11"
# dependencies = [
#   "beartype",
# ]
# ///
"""
Read-only access to the declarations of a compiled Lean library.

The exporter only ever talks to a SymbolStore. JsonSymbolStore is the
concrete store used by the command-line entry point: it loads a symbol-table
dump written by the Lean side of the pipeline.

Dump format:
{
  "decls": [
    {
      "name": "point",
      "category": "definition" | "theorem" | "constant" | "axiom",
      "type": <term, see lean_exprs.expr_from_json>,
      "filename": "/path/to/src/geometry/point.lean",
      "line": 12,
      "doc_string": "A point in the plane." | null,
      "attributes": ["ext"],
      "auto_generated": false,
      "inductive": {
        "num_params": 0,
        "constructors": ["point.mk"],
        "structure_fields": ["point.x", "point.y"]
      }
    }
  ],
  "mod_docs": {"/path/to/src/geometry/point.lean": [{"line": 1, "doc": "..."}]}
}

"inductive" is present only for inductive types, and "structure_fields"
only for structures.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from beartype import beartype

from lean_exprs import Expr, ExprError, expr_from_json

logger = logging.getLogger(__name__)

DECL_CATEGORIES = ("definition", "theorem", "constant", "axiom")

# Helpers the kernel generates for every inductive type
INDUCTIVE_AUX_SUFFIXES = {
    "below",
    "binduction_on",
    "brec_on",
    "cases_on",
    "dcases_on",
    "drec_on",
    "drec",
    "rec",
    "rec_on",
    "no_confusion",
    "no_confusion_type",
    "sizeof",
    "ibelow",
    "has_sizeof_inst",
}

# Lemmas generated for every constructor
CONSTRUCTOR_AUX_SUFFIXES = {"inj", "inj_eq", "sizeof_spec", "inj_arrow"}


class SymbolStoreError(Exception):
    """Raised when the store cannot answer a query."""


class UnknownDeclarationError(SymbolStoreError, KeyError):
    """Raised when a name is not in the store."""


@dataclass(frozen=True)
class Declaration:
    name: str
    category: str
    type: Expr
    filename: Optional[str] = None
    line: Optional[int] = None
    doc_string: Optional[str] = None
    attributes: Tuple[str, ...] = ()
    auto_generated: bool = False


@dataclass(frozen=True)
class InductiveInfo:
    num_params: int
    constructors: Tuple[str, ...]
    structure_fields: Optional[Tuple[str, ...]] = None


@dataclass
class ModuleDoc:
    filename: str
    line: int
    content: str


# ── Name helpers ──────────────────────────────────────────────────────


@beartype
def name_prefix(name: str) -> str:
    """``nat.succ_le`` -> ``nat``; top-level names have an empty prefix."""
    return name.rpartition(".")[0]


@beartype
def name_last(name: str) -> str:
    """``nat.succ_le`` -> ``succ_le``."""
    return name.rpartition(".")[2]


@beartype
def is_internal_name(name: str) -> bool:
    """Names with a component starting with ``_`` are compiler-synthesized."""
    return any(part.startswith("_") for part in name.split("."))


# ── Store interface ───────────────────────────────────────────────────


class SymbolStore:
    """Queries the exporter needs; all lookups are by fully qualified name."""

    def get(self, name: str) -> Declaration:
        raise NotImplementedError

    def all_names(self) -> List[str]:
        raise NotImplementedError

    def is_inductive(self, name: str) -> bool:
        raise NotImplementedError

    def is_structure(self, name: str) -> bool:
        raise NotImplementedError

    def num_params(self, name: str) -> int:
        raise NotImplementedError

    def constructors_of(self, name: str) -> List[str]:
        raise NotImplementedError

    def projections(self, name: str) -> List[str]:
        raise NotImplementedError

    def is_constructor(self, name: str) -> bool:
        raise NotImplementedError

    def is_projection(self, name: str) -> bool:
        raise NotImplementedError

    def module_docs(self) -> List[ModuleDoc]:
        raise NotImplementedError

    def location(self, name: str) -> Optional[Tuple[str, int]]:
        decl = self.get(name)
        if decl.filename is None or decl.line is None:
            return None
        return decl.filename, decl.line

    def doc_string(self, name: str) -> Optional[str]:
        return self.get(name).doc_string

    def has_attribute(self, name: str, attribute: str) -> bool:
        return attribute in self.get(name).attributes


@beartype
def is_auto_generated(store: SymbolStore, decl: Declaration) -> bool:
    """Whether the environment generated ``decl`` rather than the user."""
    if decl.auto_generated:
        return True
    name = decl.name
    if store.is_constructor(name) or store.is_projection(name):
        return True
    prefix = name_prefix(name)
    if not prefix:
        return False
    last = name_last(name)
    if last in CONSTRUCTOR_AUX_SUFFIXES and store.is_constructor(prefix):
        return True
    return last in INDUCTIVE_AUX_SUFFIXES and store.is_inductive(prefix)


# ── In-memory store loaded from a dump ────────────────────────────────


def _expect(value, expected: type, what: str, optional: bool = False):
    """Return ``value`` if it has the ``expected`` JSON type, else raise."""
    if value is None and optional:
        return value
    # bool is an int subclass but never a valid count or line number
    if not isinstance(value, expected) or (expected is int and isinstance(value, bool)):
        raise SymbolStoreError(
            f"malformed symbol table: {what} should be {expected.__name__}, got {value!r}"
        )
    return value


def _expect_strings(value, what: str, optional: bool = False):
    if value is None and optional:
        return None
    for item in _expect(value, list, what):
        _expect(item, str, f"entry of {what}")
    return tuple(value)


class JsonSymbolStore(SymbolStore):
    """Symbol store backed by a loaded symbol-table dump."""

    @beartype
    def __init__(
        self,
        decls: List[Declaration],
        inductives: Optional[Dict[str, InductiveInfo]] = None,
        mod_docs: Optional[List[ModuleDoc]] = None,
    ):
        self.decls: Dict[str, Declaration] = {}
        for decl in decls:
            if decl.name in self.decls:
                raise SymbolStoreError(f"duplicate declaration: {decl.name}")
            self.decls[decl.name] = decl
        self.inductives = inductives or {}
        self.mod_docs = mod_docs or []
        self.constructor_names = {
            c for info in self.inductives.values() for c in info.constructors
        }
        self.projection_names = {
            p
            for info in self.inductives.values()
            for p in (info.structure_fields or ())
        }

    @classmethod
    def from_dict(cls, data: dict) -> "JsonSymbolStore":
        """Build a store from an already parsed dump."""
        decls = []
        inductives = {}
        try:
            for entry in _expect(data["decls"], list, "decls"):
                name = _expect(entry["name"], str, "name")
                category = entry["category"]
                if category not in DECL_CATEGORIES:
                    raise SymbolStoreError(f"{name}: unknown category {category!r}")
                decls.append(
                    Declaration(
                        name=name,
                        category=category,
                        type=expr_from_json(entry["type"]),
                        filename=_expect(entry.get("filename"), str, f"{name}.filename", True),
                        line=_expect(entry.get("line"), int, f"{name}.line", True),
                        doc_string=_expect(
                            entry.get("doc_string"), str, f"{name}.doc_string", True
                        ),
                        attributes=_expect_strings(
                            entry.get("attributes", []), f"{name}.attributes"
                        ),
                        auto_generated=bool(entry.get("auto_generated", False)),
                    )
                )
                ind = entry.get("inductive")
                if ind is not None:
                    _expect(ind, dict, f"{name}.inductive")
                    inductives[name] = InductiveInfo(
                        num_params=_expect(
                            ind.get("num_params", 0), int, f"{name}.num_params"
                        ),
                        constructors=_expect_strings(
                            ind.get("constructors", []), f"{name}.constructors"
                        ),
                        structure_fields=_expect_strings(
                            ind.get("structure_fields"), f"{name}.structure_fields", True
                        ),
                    )
            mod_docs = [
                ModuleDoc(
                    filename,
                    _expect(doc["line"], int, f"mod_docs line in {filename}"),
                    _expect(doc["doc"], str, f"mod_docs doc in {filename}"),
                )
                for filename, docs in _expect(data.get("mod_docs", {}), dict, "mod_docs").items()
                for doc in _expect(docs, list, f"mod_docs of {filename}")
            ]
        except (KeyError, TypeError, AttributeError) as e:
            raise SymbolStoreError(f"malformed symbol table: {e!r}") from e
        except ExprError as e:
            raise SymbolStoreError(f"malformed term in symbol table: {e}") from e
        return cls(decls, inductives, mod_docs)

    @classmethod
    def load(cls, path: Path) -> "JsonSymbolStore":
        """Load a symbol-table dump from disk."""
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        store = cls.from_dict(data)
        logger.info(f"Loaded {len(store.decls)} declarations from {path}")
        return store

    def get(self, name: str) -> Declaration:
        try:
            return self.decls[name]
        except KeyError:
            raise UnknownDeclarationError(name) from None

    def all_names(self) -> List[str]:
        return list(self.decls)

    def is_inductive(self, name: str) -> bool:
        return name in self.inductives

    def is_structure(self, name: str) -> bool:
        info = self.inductives.get(name)
        return info is not None and info.structure_fields is not None

    def _inductive(self, name: str) -> InductiveInfo:
        try:
            return self.inductives[name]
        except KeyError:
            raise SymbolStoreError(f"{name} is not an inductive type") from None

    def num_params(self, name: str) -> int:
        return self._inductive(name).num_params

    def constructors_of(self, name: str) -> List[str]:
        return list(self._inductive(name).constructors)

    def projections(self, name: str) -> List[str]:
        fields = self._inductive(name).structure_fields
        if fields is None:
            raise SymbolStoreError(f"{name} is not a structure")
        return list(fields)

    def is_constructor(self, name: str) -> bool:
        return name in self.constructor_names

    def is_projection(self, name: str) -> bool:
        return name in self.projection_names

    def module_docs(self) -> List[ModuleDoc]:
        return list(self.mod_docs)

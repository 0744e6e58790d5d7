#!/usr/bin/env python3
# /// script
# requires-python = ">=3.11"
# dependencies = [
#   "beartype",
# ]
# ///
"""
Extract documentation metadata for Lean declarations.

For every user-facing declaration this builds a DeclInfo record: rendered
binder groups, rendered result type, doc string, source location, the
attributes the docs site cares about, the declaration kind, and the fields
or constructors of structures and inductive types.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from beartype import beartype

from lean_exprs import (
    AUX_DECL,
    BINDER_BRACKETS,
    INST_IMPLICIT,
    Expr,
    ExprError,
    Local,
    instantiate_pis,
    intro_locals,
    intro_n,
    render_expr,
)
from symbol_store import (
    ModuleDoc,
    SymbolStore,
    SymbolStoreError,
    is_auto_generated,
    is_internal_name,
)

logger = logging.getLogger(__name__)

# Attributes shown on the docs site, in display order
ATTRIBUTE_ALLOW_LIST = (
    "simp",
    "squash_cast",
    "move_cast",
    "elim_cast",
    "nolint",
    "ext",
    "instance",
)

DECL_KINDS = {
    "definition": "def",
    "theorem": "thm",
    "constant": "cnst",
    "axiom": "ax",
}


@dataclass(frozen=True)
class DeclInfo:
    name: str
    args: Tuple[str, ...]
    type: str
    doc_string: Optional[str]
    filename: str
    line: int
    attributes: Tuple[str, ...]
    kind: str
    structure_fields: Tuple[Tuple[str, str], ...] = ()
    constructors: Tuple[Tuple[str, str], ...] = ()


@dataclass(frozen=True)
class ModuleDocInfo:
    filename: str
    docs: Tuple[Tuple[int, str], ...]


@dataclass(frozen=True)
class BinderGroup:
    names: Tuple[str, ...]
    binder: str
    type: Expr


# ── Binders ───────────────────────────────────────────────────────────


@beartype
def is_placeholder_name(name: str) -> bool:
    """Instance arguments the user did not name are called ``_inst_1`` etc."""
    return name.startswith("_")


def _can_merge(group: BinderGroup, local: Local) -> bool:
    if group.binder != local.binder or group.type != local.type:
        return False
    if local.binder == INST_IMPLICIT:
        return not (is_placeholder_name(local.name) or is_placeholder_name(group.names[-1]))
    return True


@beartype
def compact_binders(locals_: List[Local]) -> List[BinderGroup]:
    """Merge consecutive binders that share binder kind and type.

    ``(a : α) (b : α) {n : ℕ}`` becomes the groups ``a b : α`` and ``n : ℕ``.
    Unnamed instance arguments are never merged; each prints as ``[T]``.
    """
    groups: List[BinderGroup] = []
    for local in locals_:
        if groups and _can_merge(groups[-1], local):
            last = groups.pop()
            groups.append(BinderGroup(last.names + (local.name,), last.binder, last.type))
        else:
            groups.append(BinderGroup((local.name,), local.binder, local.type))
    return groups


@beartype
def format_binder_group(group: BinderGroup, render_type: Callable[[Expr], str]) -> str:
    """Render one binder group with the bracket convention of its kind."""
    opening, closing = BINDER_BRACKETS.get(group.binder, BINDER_BRACKETS[AUX_DECL])
    type_text = render_type(group.type)
    if (
        group.binder == INST_IMPLICIT
        and len(group.names) == 1
        and is_placeholder_name(group.names[0])
    ):
        return f"{opening}{type_text}{closing}"
    return f"{opening}{' '.join(group.names)} : {type_text}{closing}"


@beartype
def render_signature(
    type_: Expr, render_type: Callable[[Expr], str] = render_expr
) -> Tuple[List[str], str]:
    """Split a declaration type into rendered binder groups and result type."""
    locals_, body = intro_locals(type_)
    args = [format_binder_group(g, render_type) for g in compact_binders(locals_)]
    return args, render_type(body)


# ── Extraction ────────────────────────────────────────────────────────


class DeclExtractor:
    """Turns declarations of a SymbolStore into DeclInfo records.

    Args:
        store: Where declarations are looked up
        current_file: Only keep declarations defined in this file; when None,
            every file of the loaded library is being exported
        render_type: Pretty-printer for types
    """

    @beartype
    def __init__(
        self,
        store: SymbolStore,
        current_file: Optional[str] = None,
        render_type: Callable[[Expr], str] = render_expr,
    ):
        self.store = store
        self.current_file = current_file
        self.render_type = render_type

    @beartype
    def extract(self, name: str) -> Optional[DeclInfo]:
        """Build the record for ``name``, or None if it is skipped or fails."""
        try:
            return self._extract(name)
        except (ExprError, SymbolStoreError) as e:
            logger.warning(f"  Could not export {name}: {e}")
            return None
        except Exception as e:
            # render_type is caller-supplied and may raise anything
            logger.warning(f"  Could not export {name}: {type(e).__name__}: {e}")
            return None

    def _extract(self, name: str) -> Optional[DeclInfo]:
        store = self.store
        decl = store.get(name)

        if is_internal_name(name) or is_auto_generated(store, decl):
            logger.debug(f"  Skipping generated declaration {name}")
            return None

        location = store.location(name)
        if location is None:
            logger.debug(f"  Skipping {name}: no source location")
            return None
        filename, line = location
        if self.current_file is not None and filename != self.current_file:
            return None

        args, type_text = render_signature(decl.type, self.render_type)
        attributes = tuple(
            attr for attr in ATTRIBUTE_ALLOW_LIST if store.has_attribute(name, attr)
        )
        try:
            kind = DECL_KINDS[decl.category]
        except KeyError:
            raise SymbolStoreError(f"unknown declaration category {decl.category!r}") from None

        structure_fields: List[Tuple[str, str]] = []
        constructors: List[Tuple[str, str]] = []
        if store.is_structure(name):
            structure_fields = self.structure_fields(name)
        elif store.is_inductive(name):
            constructors = self.constructors(name)

        return DeclInfo(
            name=name,
            args=tuple(args),
            type=type_text,
            doc_string=store.doc_string(name),
            filename=filename,
            line=line,
            attributes=attributes,
            kind=kind,
            structure_fields=tuple(structure_fields),
            constructors=tuple(constructors),
        )

    def _param_locals(self, name: str) -> List[Local]:
        params, _ = intro_n(self.store.get(name).type, self.store.num_params(name))
        return params

    @beartype
    def structure_fields(self, name: str) -> List[Tuple[str, str]]:
        """Field names and types of structure ``name``.

        The projection's leading binders are the structure parameters followed
        by the structure value itself; both are stripped before rendering.
        """
        params = self._param_locals(name)
        fields = []
        for proj in self.store.projections(name):
            proj_type = instantiate_pis(self.store.get(proj).type, params)
            _, field_type = intro_n(proj_type, 1)
            field_name = proj[len(name) + 1 :] if proj.startswith(name + ".") else proj
            fields.append((field_name, self.render_type(field_type)))
        return fields

    @beartype
    def constructors(self, name: str) -> List[Tuple[str, str]]:
        """Constructor names and types of inductive type ``name``."""
        params = self._param_locals(name)
        result = []
        for ctor in self.store.constructors_of(name):
            ctor_type = instantiate_pis(self.store.get(ctor).type, params)
            result.append((ctor, self.render_type(ctor_type)))
        return result


@beartype
def group_module_docs(docs: List[ModuleDoc]) -> List[ModuleDocInfo]:
    """Group module docs by file, keeping first-seen file order."""
    grouped: Dict[str, List[Tuple[int, str]]] = {}
    for doc in docs:
        grouped.setdefault(doc.filename, []).append((doc.line, doc.content))
    return [ModuleDocInfo(f, tuple(entries)) for f, entries in grouped.items()]

#!/usr/bin/env python3
# /// script
# requires-python = ">=3.11"
# dependencies = [
#   "beartype",
# ]
# ///
"""
Expression model for Lean declaration types.

Types are pi telescopes over a small term language. Bound variables use
de Bruijn indices; walking a telescope replaces them with Local temporaries
so that binder types and the result type can be rendered on their own.
"""

from dataclasses import dataclass
from typing import List, Tuple, Union

from beartype import beartype

# Binder kinds
DEFAULT = "default"
IMPLICIT = "implicit"
STRICT_IMPLICIT = "strict_implicit"
INST_IMPLICIT = "inst_implicit"
AUX_DECL = "aux_decl"

BINDER_KINDS = (DEFAULT, IMPLICIT, STRICT_IMPLICIT, INST_IMPLICIT, AUX_DECL)

# Opening/closing brackets per binder kind
BINDER_BRACKETS = {
    DEFAULT: ("(", ")"),
    IMPLICIT: ("{", "}"),
    STRICT_IMPLICIT: ("⦃", "⦄"),
    INST_IMPLICIT: ("[", "]"),
    AUX_DECL: ("(", ")"),
}


class ExprError(Exception):
    """Raised when a term cannot be decoded, walked or rendered."""


@dataclass(frozen=True)
class Const:
    name: str


@dataclass(frozen=True)
class Sort:
    level: str


@dataclass(frozen=True)
class Var:
    index: int


@dataclass(frozen=True)
class Local:
    name: str
    binder: str
    type: "Expr"


@dataclass(frozen=True)
class App:
    fn: "Expr"
    arg: "Expr"


@dataclass(frozen=True)
class Pi:
    name: str
    binder: str
    domain: "Expr"
    body: "Expr"


Expr = Union[Const, Sort, Var, Local, App, Pi]


@beartype
def instantiate(body: Expr, value: Expr, depth: int = 0) -> Expr:
    """Substitute ``value`` for bound variable ``depth`` in ``body``.

    Loose variables above ``depth`` are lowered by one, since the binder
    they skipped over is gone.
    """
    if isinstance(body, Var):
        if body.index == depth:
            return value
        if body.index > depth:
            return Var(body.index - 1)
        return body
    if isinstance(body, App):
        return App(instantiate(body.fn, value, depth), instantiate(body.arg, value, depth))
    if isinstance(body, Pi):
        return Pi(
            body.name,
            body.binder,
            instantiate(body.domain, value, depth),
            instantiate(body.body, value, depth + 1),
        )
    return body


@beartype
def has_loose_var(expr: Expr, depth: int = 0) -> bool:
    """Check whether ``expr`` refers to bound variable ``depth`` or above."""
    if isinstance(expr, Var):
        return expr.index >= depth
    if isinstance(expr, App):
        return has_loose_var(expr.fn, depth) or has_loose_var(expr.arg, depth)
    if isinstance(expr, Pi):
        return has_loose_var(expr.domain, depth) or has_loose_var(expr.body, depth + 1)
    return False


@beartype
def intro_locals(expr: Expr) -> Tuple[List[Local], Expr]:
    """Introduce every leading pi binder as a local; return locals and body."""
    locals_ = []
    while isinstance(expr, Pi):
        local = Local(expr.name, expr.binder, expr.domain)
        locals_.append(local)
        expr = instantiate(expr.body, local)
    return locals_, expr


@beartype
def intro_n(expr: Expr, n: int) -> Tuple[List[Local], Expr]:
    """Introduce exactly ``n`` leading pi binders."""
    locals_ = []
    for _ in range(n):
        if not isinstance(expr, Pi):
            raise ExprError(f"expected {n} binders, found {len(locals_)}")
        local = Local(expr.name, expr.binder, expr.domain)
        locals_.append(local)
        expr = instantiate(expr.body, local)
    return locals_, expr


@beartype
def instantiate_pis(expr: Expr, values: List[Local]) -> Expr:
    """Substitute ``values`` for the leading pi binders of ``expr``."""
    for value in values:
        if not isinstance(expr, Pi):
            raise ExprError(
                f"cannot instantiate {len(values)} parameters: telescope too short"
            )
        expr = instantiate(expr.body, value)
    return expr


def _split_level(level: str) -> Tuple[str, int]:
    """``u+1+1`` -> (``u``, 2); ``3`` -> (``""``, 3)."""
    base, offset = level.strip(), 0
    while True:
        head, plus, tail = base.rpartition("+")
        if not plus or not tail.strip().isdigit():
            break
        base, offset = head.strip(), offset + int(tail)
    if base.isdigit():
        return "", int(base) + offset
    return base, offset


def _render_sort(level: str) -> str:
    base, offset = _split_level(level)
    if not base:
        if offset == 0:
            return "Prop"
        if offset == 1:
            return "Type"
        return f"Type {offset - 1}"
    if " " in base:
        base = f"({base})"
    if offset == 0:
        return f"Sort {base}"
    if offset == 1:
        return f"Type {base}"
    return f"Type ({base}+{offset - 1})"


def _is_atomic(expr: Expr) -> bool:
    if isinstance(expr, Sort):
        return " " not in _render_sort(expr.level)
    return isinstance(expr, (Const, Local))


def _render_arg(expr: Expr) -> str:
    text = render_expr(expr)
    return text if _is_atomic(expr) else f"({text})"


@beartype
def render_expr(expr: Expr) -> str:
    """Default pretty-printer for types."""
    if isinstance(expr, Const):
        return expr.name
    if isinstance(expr, Local):
        return expr.name
    if isinstance(expr, Sort):
        return _render_sort(expr.level)
    if isinstance(expr, Var):
        raise ExprError(f"loose bound variable #{expr.index}")
    if isinstance(expr, App):
        head = expr
        args = []
        while isinstance(head, App):
            args.append(head.arg)
            head = head.fn
        parts = [_render_arg(head)] + [_render_arg(a) for a in reversed(args)]
        return " ".join(parts)
    # Pi
    if expr.binder == DEFAULT and not has_loose_var(expr.body):
        domain = render_expr(expr.domain)
        if isinstance(expr.domain, Pi):
            domain = f"({domain})"
        return f"{domain} → {render_expr(instantiate(expr.body, Const('_')))}"
    local = Local(expr.name, expr.binder, expr.domain)
    opening, closing = BINDER_BRACKETS[expr.binder]
    binder = f"{opening}{expr.name} : {render_expr(expr.domain)}{closing}"
    return f"∀ {binder}, {render_expr(instantiate(expr.body, local))}"


@beartype
def expr_from_json(obj: object) -> Expr:
    """Decode the symbol-table encoding of a term.

    Encodings:
        {"const": "nat"}
        {"sort": "1"}
        {"var": 0}
        {"app": [fn, arg]}
        {"pi": {"name": "x", "binder": "default", "type": ..., "body": ...}}
    """
    if not isinstance(obj, dict) or len(obj) != 1:
        raise ExprError(f"malformed term: {obj!r}")
    ((tag, payload),) = obj.items()
    if tag == "const":
        return Const(str(payload))
    if tag == "sort":
        return Sort(str(payload))
    if tag == "var":
        if not isinstance(payload, int) or payload < 0:
            raise ExprError(f"bad de Bruijn index: {payload!r}")
        return Var(payload)
    if tag == "app":
        if not isinstance(payload, list) or len(payload) != 2:
            raise ExprError(f"application needs [fn, arg]: {payload!r}")
        return App(expr_from_json(payload[0]), expr_from_json(payload[1]))
    if tag == "pi":
        if not isinstance(payload, dict):
            raise ExprError(f"pi binder must be an object: {payload!r}")
        binder = payload.get("binder", DEFAULT)
        if binder not in BINDER_KINDS:
            raise ExprError(f"unknown binder kind: {binder!r}")
        try:
            return Pi(
                payload["name"],
                binder,
                expr_from_json(payload["type"]),
                expr_from_json(payload["body"]),
            )
        except KeyError as e:
            raise ExprError(f"pi binder missing {e}") from e
    raise ExprError(f"unknown term tag: {tag!r}")

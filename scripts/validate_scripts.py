#!/usr/bin/env python3
"""
Validation tests for the declaration export scripts.
Runs directly (python scripts/validate_scripts.py) or under pytest.
"""

import io
import json
import os
import sys
import tempfile
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

from add_commit import (
    COMMIT_MAP,
    PINNED_COMMIT,
    head_commit,
    pinned_mapping,
    redirect_target,
    render_redirect_script,
    write_redirect_script,
)
from export_json import (
    DeclArrayWriter,
    escape_json_string,
    export,
    format_decl,
    split_names,
    write_export,
)
from extract_decls import (
    BinderGroup,
    DeclExtractor,
    DeclInfo,
    compact_binders,
    format_binder_group,
    group_module_docs,
    render_signature,
)
from lean_exprs import (
    App,
    Const,
    ExprError,
    Local,
    Pi,
    Sort,
    Var,
    expr_from_json,
    instantiate,
    intro_n,
    render_expr,
)
from symbol_store import (
    JsonSymbolStore,
    ModuleDoc,
    SymbolStoreError,
    UnknownDeclarationError,
    is_auto_generated,
    is_internal_name,
)

SRC = "/lib/src/geometry.lean"


# Symbol-table term encoders
def c(name):
    return {"const": name}


def v(index):
    return {"var": index}


def app(fn, *args):
    for arg in args:
        fn = {"app": [fn, arg]}
    return fn


def pi(name, type_, body, binder="default"):
    return {"pi": {"name": name, "binder": binder, "type": type_, "body": body}}


TYPE = {"sort": "1"}
NAT = c("ℕ")


def decl(name, type_, category="definition", line=1, **extra):
    entry = {
        "name": name,
        "category": category,
        "type": type_,
        "filename": SRC,
        "line": line,
    }
    entry.update(extra)
    return entry


def sample_table():
    """A small library: a structure, a parameterised inductive and a theorem."""
    return {
        "decls": [
            decl(
                "point",
                TYPE,
                category="constant",
                line=3,
                inductive={
                    "num_params": 0,
                    "constructors": ["point.mk"],
                    "structure_fields": ["point.x", "point.y"],
                },
                attributes=["ext"],
            ),
            decl("point.mk", pi("x", NAT, pi("y", NAT, c("point"))), category="constant", line=3),
            decl("point.x", pi("self", c("point"), NAT), line=4),
            decl("point.y", pi("self", c("point"), NAT), line=5),
            decl(
                "my_list",
                pi("α", {"sort": "u+1"}, {"sort": "u+1"}),
                category="constant",
                line=8,
                doc_string="Lists, \"again\".",
                inductive={"num_params": 1, "constructors": ["my_list.nil", "my_list.cons"]},
            ),
            decl(
                "my_list.nil",
                pi("α", {"sort": "u+1"}, app(c("my_list"), v(0)), "implicit"),
                category="constant",
                line=9,
            ),
            decl(
                "my_list.cons",
                pi(
                    "α",
                    {"sort": "u+1"},
                    pi("hd", v(0), pi("tl", app(c("my_list"), v(1)), app(c("my_list"), v(2)))),
                    "implicit",
                ),
                category="constant",
                line=10,
            ),
            decl("my_list.rec", pi("α", {"sort": "u+1"}, NAT), line=8),
            decl(
                "add_comm'",
                pi(
                    "α",
                    TYPE,
                    pi(
                        "a",
                        v(0),
                        pi(
                            "b",
                            v(1),
                            pi(
                                "_inst_1",
                                app(c("has_add"), v(2)),
                                pi(
                                    "h",
                                    app(c("decidable_eq"), v(3)),
                                    pi("s", NAT, app(c("eq"), v(4), v(3)), "strict_implicit"),
                                    "inst_implicit",
                                ),
                                "inst_implicit",
                            ),
                        ),
                    ),
                    "implicit",
                ),
                category="theorem",
                line=14,
                attributes=["instance", "irreducible", "simp"],
            ),
            decl("_private.helper", NAT, line=20),
            decl("generated_lemma", NAT, line=21, auto_generated=True),
            decl("broken", v(0), line=22),
            decl("elsewhere", NAT, line=1, filename="/lib/src/other.lean"),
            decl("nowhere", NAT, line=None),
            decl("choice_ax", NAT, category="axiom", line=30),
        ],
        "mod_docs": {
            SRC: [{"line": 1, "doc": "# Geometry"}, {"line": 12, "doc": "Lemmas"}],
            "/lib/src/other.lean": [{"line": 1, "doc": "Other"}],
        },
    }


def sample_store():
    return JsonSymbolStore.from_dict(sample_table())


def export_text(store, **kwargs):
    with tempfile.TemporaryDirectory() as temp_dir:
        out = Path(temp_dir) / "json_export.txt"
        export(store, out, **kwargs)
        return out.read_text(encoding="utf-8")


def records_by_name(text):
    return {d["name"]: d for d in json.loads(text, strict=False)["decls"]}


# ── Expressions ───────────────────────────────────────────────────────


def test_instantiate_lowers_outer_variables():
    x = Local("x", "default", Const("ℕ"))
    body = App(App(Const("f"), Var(0)), Var(1))
    assert instantiate(body, x) == App(App(Const("f"), x), Var(0))


def test_render_expr():
    nat = Const("ℕ")
    assert render_expr(Sort("0")) == "Prop"
    assert render_expr(Sort("1")) == "Type"
    assert render_expr(Sort("u+1")) == "Type u"
    assert render_expr(Sort("2")) == "Type 1"
    assert render_expr(Sort("u+2")) == "Type (u+1)"
    assert render_expr(Sort("u+1+1")) == "Type (u+1)"
    assert render_expr(Sort("u")) == "Sort u"
    assert render_expr(App(Const("list"), Sort("2"))) == "list (Type 1)"
    assert render_expr(App(Const("list"), App(Const("list"), nat))) == "list (list ℕ)"
    assert render_expr(Pi("n", "default", nat, nat)) == "ℕ → ℕ"
    assert render_expr(Pi("f", "default", Pi("n", "default", nat, nat), nat)) == "(ℕ → ℕ) → ℕ"
    dependent = Pi("x", "default", nat, App(App(Const("eq"), Var(0)), Var(0)))
    assert render_expr(dependent) == "∀ (x : ℕ), eq x x"
    assert render_expr(Pi("x", "implicit", nat, nat)) == "∀ {x : ℕ}, ℕ"


def test_render_loose_variable_fails():
    try:
        render_expr(App(Const("f"), Var(0)))
    except ExprError:
        pass
    else:
        raise AssertionError("rendering a loose variable should fail")


def test_intro_n_requires_enough_binders():
    try:
        intro_n(Const("ℕ"), 1)
    except ExprError:
        pass
    else:
        raise AssertionError("intro_n past the telescope should fail")


def test_expr_from_json_rejects_unknown_tags():
    for bad in ({"lam": {}}, {"var": -1}, {"app": [c("f")]}, [], pi("x", NAT, NAT, "weird")):
        try:
            expr_from_json(bad)
        except ExprError:
            continue
        raise AssertionError(f"{bad!r} should not decode")


# ── Symbol store ──────────────────────────────────────────────────────


def test_store_queries():
    store = sample_store()
    assert store.all_names()[:3] == ["point", "point.mk", "point.x"]
    assert store.is_structure("point") and store.is_inductive("point")
    assert store.is_inductive("my_list") and not store.is_structure("my_list")
    assert store.projections("point") == ["point.x", "point.y"]
    assert store.constructors_of("my_list") == ["my_list.nil", "my_list.cons"]
    assert store.num_params("my_list") == 1
    assert store.location("point") == (SRC, 3)
    assert store.location("nowhere") is None
    assert store.doc_string("point") is None
    assert store.has_attribute("point", "ext")
    try:
        store.get("missing")
    except UnknownDeclarationError:
        pass
    else:
        raise AssertionError("unknown names should raise")


def test_malformed_symbol_table():
    for table in ({}, {"decls": [{"name": "x"}]}, {"decls": [decl("x", NAT, category="lemma")]}):
        try:
            JsonSymbolStore.from_dict(table)
        except SymbolStoreError:
            continue
        raise AssertionError(f"{table!r} should be rejected")


def test_malformed_field_types():
    def with_point(**changes):
        table = sample_table()
        point = table["decls"][0]
        for key, value in changes.items():
            if key in ("num_params", "constructors", "structure_fields"):
                point["inductive"][key] = value
            else:
                point[key] = value
        return table

    tables = [
        with_point(num_params="1"),
        with_point(num_params=True),
        with_point(line="3"),
        with_point(attributes="simp"),
        with_point(constructors=[1]),
        with_point(structure_fields="point.x"),
        with_point(inductive=["point.mk"]),
        with_point(doc_string=7),
        dict(sample_table(), mod_docs=None),
        dict(sample_table(), mod_docs={SRC: {"line": 1, "doc": "x"}}),
        dict(sample_table(), mod_docs={SRC: [{"line": "1", "doc": "x"}]}),
        {"decls": None},
        {"decls": ["point"]},
    ]
    for table in tables:
        try:
            JsonSymbolStore.from_dict(table)
        except SymbolStoreError:
            continue
        raise AssertionError(f"{table!r} should be rejected")


def test_internal_and_generated_names():
    store = sample_store()
    assert is_internal_name("_private.helper")
    assert is_internal_name("foo._match_1")
    assert not is_internal_name("nat.succ")
    for name in ("point.mk", "point.x", "my_list.rec", "generated_lemma"):
        assert is_auto_generated(store, store.get(name)), name
    for name in ("point", "my_list", "add_comm'"):
        assert not is_auto_generated(store, store.get(name)), name


# ── Extraction ────────────────────────────────────────────────────────


def test_binder_groups():
    alpha = Local("α", "implicit", Sort("1"))
    locals_ = [
        Local("a", "default", alpha),
        Local("b", "default", alpha),
        Local("c", "implicit", alpha),
        Local("d", "default", alpha),
    ]
    groups = compact_binders(locals_)
    assert [g.names for g in groups] == [("a", "b"), ("c",), ("d",)]

    nat = Const("ℕ")
    assert format_binder_group(BinderGroup(("a", "b"), "default", nat), render_expr) == "(a b : ℕ)"
    assert format_binder_group(BinderGroup(("n",), "implicit", nat), render_expr) == "{n : ℕ}"
    assert format_binder_group(BinderGroup(("n",), "strict_implicit", nat), render_expr) == "⦃n : ℕ⦄"
    assert format_binder_group(BinderGroup(("_inst_1",), "inst_implicit", nat), render_expr) == "[ℕ]"
    assert format_binder_group(BinderGroup(("i",), "inst_implicit", nat), render_expr) == "[i : ℕ]"
    assert format_binder_group(BinderGroup(("n",), "aux_decl", nat), render_expr) == "(n : ℕ)"


def test_unnamed_instances_are_not_merged():
    alpha = Local("α", "implicit", Sort("1"))
    has_add = App(Const("has_add"), alpha)
    locals_ = [
        Local("_inst_1", "inst_implicit", has_add),
        Local("_inst_2", "inst_implicit", has_add),
        Local("i", "inst_implicit", has_add),
        Local("j", "inst_implicit", has_add),
    ]
    groups = compact_binders(locals_)
    assert [g.names for g in groups] == [("_inst_1",), ("_inst_2",), ("i", "j")]
    rendered = [format_binder_group(g, render_expr) for g in groups]
    assert rendered == ["[has_add α]", "[has_add α]", "[i j : has_add α]"]


def test_theorem_signature():
    info = DeclExtractor(sample_store()).extract("add_comm'")
    assert info.name == "add_comm'"
    assert info.args == (
        "{α : Type}",
        "(a b : α)",
        "[has_add α]",
        "[h : decidable_eq α]",
        "⦃s : ℕ⦄",
    )
    assert info.type == "eq a b"
    assert info.kind == "thm"
    assert info.attributes == ("simp", "instance")
    assert info.doc_string is None
    assert (info.filename, info.line) == (SRC, 14)


def test_structure_fields():
    info = DeclExtractor(sample_store()).extract("point")
    assert info.structure_fields == (("x", "ℕ"), ("y", "ℕ"))
    assert info.constructors == ()
    assert info.kind == "cnst"
    assert info.attributes == ("ext",)


def test_inductive_constructors():
    info = DeclExtractor(sample_store()).extract("my_list")
    assert info.args == ("(α : Type u)",)
    assert info.type == "Type u"
    assert info.constructors == (
        ("my_list.nil", "my_list α"),
        ("my_list.cons", "α → my_list α → my_list α"),
    )
    assert info.structure_fields == ()


def test_skipped_declarations():
    extractor = DeclExtractor(sample_store())
    for name in ("point.mk", "point.x", "my_list.rec", "_private.helper", "generated_lemma", "nowhere"):
        assert extractor.extract(name) is None, name
    assert extractor.extract("elsewhere") is not None


def test_current_file_filter():
    extractor = DeclExtractor(sample_store(), current_file="/lib/src/other.lean")
    assert extractor.extract("point") is None
    assert extractor.extract("elsewhere").filename == "/lib/src/other.lean"


def test_render_failure_drops_only_that_declaration():
    store = sample_store()
    assert DeclExtractor(store).extract("broken") is None
    names = set(records_by_name(export_text(store)))
    assert "broken" not in names
    assert {"point", "my_list", "add_comm'", "choice_ax"} <= names


def test_custom_renderer():
    info = DeclExtractor(sample_store(), render_type=lambda e: "?").extract("point")
    assert info.type == "?"
    assert info.structure_fields == (("x", "?"), ("y", "?"))


def test_failing_renderer_drops_only_that_declaration():
    def no_equations(expr):
        text = render_expr(expr)
        if text.startswith("eq "):
            raise ValueError("cannot print equations")
        return text

    store = sample_store()
    assert DeclExtractor(store, render_type=no_equations).extract("add_comm'") is None
    records = records_by_name(export_text(store, render_type=no_equations))
    assert "add_comm'" not in records
    assert {"point", "my_list", "choice_ax", "elsewhere"} <= set(records)
    assert records["my_list"]["constructors"][1] == ["my_list.cons", "α → my_list α → my_list α"]


def test_render_signature_without_binders():
    assert render_signature(Const("ℕ")) == ([], "ℕ")


# ── Batching ──────────────────────────────────────────────────────────


def test_split_names_is_lossless_and_ordered():
    for n in range(0, 21):
        names = [f"d{i}" for i in range(n)]
        for depth in range(0, 5):
            batches = split_names(names, depth)
            assert len(batches) == 2**depth
            assert [x for batch in batches for x in batch] == names
            sizes = [len(b) for b in batches]
            assert max(sizes) - min(sizes) <= 1


def test_output_order_does_not_depend_on_split_depth():
    store = sample_store()
    texts = [export_text(store, split_depth=depth) for depth in (0, 1, 3, 6)]
    assert all(text == texts[0] for text in texts)
    assert list(records_by_name(texts[0])) == [
        "point",
        "my_list",
        "add_comm'",
        "elsewhere",
        "choice_ax",
    ]


# ── JSON output ───────────────────────────────────────────────────────


def make_info(name, doc_string=None):
    return DeclInfo(
        name=name,
        args=("(n : ℕ)",),
        type="ℕ",
        doc_string=doc_string,
        filename=SRC,
        line=7,
        attributes=(),
        kind="def",
    )


def test_decl_key_order():
    text = format_decl(make_info("f"))
    assert list(json.loads(text)) == [
        "name",
        "args",
        "type",
        "doc_string",
        "filename",
        "line",
        "attributes",
        "kind",
        "structure_fields",
        "constructors",
    ]
    assert '"line":7' in text
    assert '"doc_string":""' in text


def test_comma_placement():
    for n in range(0, 5):
        out = io.StringIO()
        write_export(out, (make_info(f"f{i}") for i in range(n)), [])
        text = out.getvalue()
        assert text.count(',\n{"name"') == max(n - 1, 0)
        assert '[\n,' not in text
        parsed = json.loads(text)
        assert [d["name"] for d in parsed["decls"]] == [f"f{i}" for i in range(n)]
        assert list(parsed) == ["decls", "mod_docs"]


def test_array_writer_counts():
    out = io.StringIO()
    writer = DeclArrayWriter(out)
    writer.write(make_info("a"))
    writer.write(make_info("b"))
    assert writer.count == 2
    assert out.getvalue().count(",\n") == 1


def test_quote_escaping_round_trips():
    doc = 'He said "hi"'
    assert escape_json_string(doc) == '"He said \\"hi\\""'
    text = format_decl(make_info("f", doc))
    assert 'He said \\"hi\\"' in text
    assert json.loads(text)["doc_string"] == doc


def test_backslash_and_newline_are_not_escaped():
    # Known gap: only double quotes are escaped.
    text = format_decl(make_info("f", "line one\nline two"))
    assert "line one\nline two" in text
    assert json.loads(text, strict=False)["doc_string"] == "line one\nline two"

    text = format_decl(make_info("f", "a\\b"))
    assert '"doc_string":"a\\b"' in text
    assert json.loads(text)["doc_string"] != "a\\b"


def test_mod_docs_grouping():
    docs = [
        ModuleDoc("b.lean", 1, "B"),
        ModuleDoc("a.lean", 2, "A2"),
        ModuleDoc("b.lean", 9, "B9"),
    ]
    grouped = group_module_docs(docs)
    assert [m.filename for m in grouped] == ["b.lean", "a.lean"]
    assert grouped[0].docs == ((1, "B"), (9, "B9"))

    out = io.StringIO()
    write_export(out, [], grouped)
    parsed = json.loads(out.getvalue())
    assert parsed["mod_docs"] == {
        "b.lean": [{"line": 1, "doc": "B"}, {"line": 9, "doc": "B9"}],
        "a.lean": [{"line": 2, "doc": "A2"}],
    }


def test_export_document():
    store = sample_store()
    text = export_text(store)
    assert text.startswith('{ "decls":[\n')
    parsed = json.loads(text, strict=False)
    assert list(parsed) == ["decls", "mod_docs"]
    assert parsed["mod_docs"][SRC] == [
        {"line": 1, "doc": "# Geometry"},
        {"line": 12, "doc": "Lemmas"},
    ]

    records = records_by_name(text)
    assert len(records) == len(parsed["decls"])
    for record in records.values():
        assert not (record["structure_fields"] and record["constructors"])
    assert records["my_list"]["doc_string"] == 'Lists, "again".'
    assert records["choice_ax"]["kind"] == "ax"


def test_point_structure_end_to_end():
    table = {
        "decls": [
            decl(
                "Point",
                TYPE,
                category="constant",
                inductive={
                    "num_params": 0,
                    "constructors": ["Point.mk"],
                    "structure_fields": ["Point.x", "Point.y"],
                },
            ),
            decl("Point.mk", pi("x", NAT, pi("y", NAT, c("Point"))), category="constant"),
            decl("Point.x", pi("self", c("Point"), NAT)),
            decl("Point.y", pi("self", c("Point"), NAT)),
        ]
    }
    with tempfile.TemporaryDirectory() as temp_dir:
        Path(temp_dir, "symbol_table.json").write_text(
            json.dumps(table, ensure_ascii=False), encoding="utf-8"
        )
        cwd = os.getcwd()
        os.chdir(temp_dir)
        try:
            from export_json import main as export_main

            export_main()
        finally:
            os.chdir(cwd)
        parsed = json.loads(Path(temp_dir, "json_export.txt").read_text(encoding="utf-8"))

    assert [d["name"] for d in parsed["decls"]] == ["Point"]
    point = parsed["decls"][0]
    assert point["structure_fields"] == [["x", "ℕ"], ["y", "ℕ"]]
    assert point["constructors"] == []
    assert point["doc_string"] == ""
    assert parsed["mod_docs"] == {}


def test_unwritable_output_propagates():
    with tempfile.TemporaryDirectory() as temp_dir:
        target = Path(temp_dir) / "missing_dir" / "json_export.txt"
        try:
            export(sample_store(), target)
        except OSError:
            pass
        else:
            raise AssertionError("opening the output file should fail")


# ── Link pinning ──────────────────────────────────────────────────────


def test_redirect_target():
    master = "https://github.com/leanprover-community/mathlib/blob/master/src/foo.lean"
    assert redirect_target(master) == (
        f"https://github.com/leanprover-community/mathlib/blob/{PINNED_COMMIT}/src/foo.lean"
    )
    other = "https://github.com/leanprover-community/lean/blob/master/library/init/core.lean"
    assert redirect_target(other) == other
    assert redirect_target("") == ""


def test_redirect_script():
    script = render_redirect_script(COMMIT_MAP)
    assert script.startswith("const commit = [[")
    assert f"/blob/{PINNED_COMMIT}/src/" in script
    assert "window.location.replace(loc);" in script

    with tempfile.TemporaryDirectory() as temp_dir:
        output = Path(temp_dir) / "html" / "add_commit.js"
        write_redirect_script(output, [pinned_mapping("abc123")])
        assert "/blob/abc123/src/" in output.read_text(encoding="utf-8")


def test_head_commit():
    from git import Repo

    with tempfile.TemporaryDirectory() as temp_dir:
        repo = Repo.init(temp_dir)
        readme = Path(repo.working_tree_dir) / "README"
        readme.write_text("docs\n")
        repo.index.add([str(readme)])
        commit = repo.index.commit("initial")
        assert head_commit(Path(temp_dir)) == commit.hexsha


def main():
    """Run all validation tests."""
    print("Running validation tests for the export scripts...\n")

    tests = [
        (name, fn)
        for name, fn in globals().items()
        if name.startswith("test_") and callable(fn)
    ]
    try:
        for name, fn in tests:
            fn()
            print(f"✓ {name}")

        print(f"\n🎉 All {len(tests)} tests passed!")
        return 0

    except Exception as e:
        print(f"\n❌ Test failed: {e}")
        import traceback

        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())

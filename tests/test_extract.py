"""
test_extract.py

Tests for per-file extraction:
  masking, bracket matching, items, ids, visibility, imports, call sites
"""

from __future__ import annotations

import textwrap

import pytest

from rust_kg.errors import ExtractionError
from rust_kg.extract import (
    expand_use,
    extract_file,
    extract_source,
    mask_source,
    match_brackets,
    parse_impl_header,
    parse_supertraits,
    type_path,
)

SAMPLE = textwrap.dedent("""\
    use std::fmt;

    pub struct Point {
        x: i32,
        y: i32,
    }

    impl Point {
        pub fn new(x: i32, y: i32) -> Self {
            Point { x, y }
        }
    }

    impl fmt::Display for Point {
        fn fmt(&self, f: &mut fmt::Formatter) -> fmt::Result {
            write!(f, "({}, {})", self.x, self.y)
        }
    }

    pub(crate) enum Shape {
        Dot(Point),
        Empty,
    }

    const MAX: usize = 10;
    static mut COUNTER: u32 = 0;
    type Pair = (i32, i32);

    macro_rules! square {
        ($x:expr) => { $x * $x };
    }

    pub trait Area: fmt::Debug {
        fn area(&self) -> f64;
    }
""")


def _by_id(ex):
    return {i.id: i for i in ex.items}


def _contains(ex):
    return {(r.src, r.dst) for r in ex.relationships if r.rel == "contains"}


# ---------------------------------------------------------------------------
# Masking
# ---------------------------------------------------------------------------


def test_mask_keeps_offsets_and_newlines():
    text = 'let s = "a\\"b"; // tail {\n/* x\n y */ let c = \'{\';\n'
    masked = mask_source(text)
    assert len(masked) == len(text)
    assert masked.count("\n") == text.count("\n")
    assert "{" not in masked
    assert "let s =" in masked
    assert "let c =" in masked


def test_mask_nested_block_comment():
    masked = mask_source("/* a /* b */ c */ fn x() {}")
    assert "fn x() {}" in masked
    assert "c" not in masked[:18]


def test_mask_raw_string_with_hashes():
    masked = mask_source('let r = r#"has "quotes" and { "#; let z = 1;')
    assert "{" not in masked
    assert "let z = 1;" in masked


def test_mask_leaves_lifetimes_alone():
    text = "fn f<'a>(x: &'a str) -> &'a str { x }"
    assert mask_source(text) == text


def test_mask_unterminated_string_raises():
    with pytest.raises(ExtractionError):
        mask_source('let s = "oops;\n', "src/bad.rs")


def test_mask_unterminated_comment_raises():
    with pytest.raises(ExtractionError, match="block comment"):
        mask_source("fn a() {} /* never closed")


def test_match_brackets_pairs():
    pairs = match_brackets("fn a() { [1] }")
    assert pairs[4] == 5
    assert pairs[9] == 11
    assert pairs[7] == 13


def test_match_brackets_unbalanced_raises():
    with pytest.raises(ExtractionError):
        match_brackets("fn a() { )")
    with pytest.raises(ExtractionError, match="unclosed"):
        match_brackets("fn a( {")


# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------


def test_extract_items_and_ids():
    ex = extract_file("src/lib.rs", SAMPLE)
    ids = set(_by_id(ex))
    assert ids == {
        "mod:src/lib.rs",
        "struct:src/lib.rs:Point:3",
        "impl:src/lib.rs:Point:8",
        "fn:src/lib.rs:new:9",
        "impl:src/lib.rs:Point:14",
        "fn:src/lib.rs:fmt:15",
        "enum:src/lib.rs:Shape:20",
        "const:src/lib.rs:MAX:25",
        "static:src/lib.rs:COUNTER:26",
        "type:src/lib.rs:Pair:27",
        "macro:src/lib.rs:square:29",
        "trait:src/lib.rs:Area:33",
        "fn:src/lib.rs:area:34",
    }


def test_extract_file_module_item():
    ex = extract_file("src/shapes/mod.rs", "fn a() {}\n")
    mod = _by_id(ex)["mod:src/shapes/mod.rs"]
    assert mod.kind == "module"
    assert mod.name == "shapes"
    assert ex.module_id == "mod:src/shapes/mod.rs"


def test_extract_line_spans():
    items = _by_id(extract_file("src/lib.rs", SAMPLE))
    point = items["struct:src/lib.rs:Point:3"]
    assert (point.line_start, point.line_end) == (3, 6)
    new = items["fn:src/lib.rs:new:9"]
    assert (new.line_start, new.line_end) == (9, 11)
    assert new.snippet.startswith("    pub fn new")


def test_extract_impl_names_and_attrs():
    items = _by_id(extract_file("src/lib.rs", SAMPLE))
    inherent = items["impl:src/lib.rs:Point:8"]
    display = items["impl:src/lib.rs:Point:14"]
    assert inherent.name == "impl Point"
    assert inherent.attr("trait_name") is None
    assert display.name == "impl Display for Point"
    assert display.attr("trait_path") == "fmt::Display"
    assert display.attr("type_name") == "Point"
    assert display.attr("is_unsafe") is False


def test_extract_kind_attrs():
    items = _by_id(extract_file("src/lib.rs", SAMPLE))
    assert items["enum:src/lib.rs:Shape:20"].attr("variant_count") == 2
    assert items["static:src/lib.rs:COUNTER:26"].attr("is_mut") is True
    assert items["struct:src/lib.rs:Point:3"].attr("is_tuple") is False


def test_extract_function_qualifiers():
    src = textwrap.dedent("""\
        pub async fn fetch() {}
        const fn limit() -> u8 { 3 }
        unsafe fn poke() {}
    """)
    items = {i.name: i for i in extract_file("src/io.rs", src).items}
    assert items["fetch"].attr("is_async") is True
    assert items["limit"].attr("is_const") is True
    assert items["poke"].attr("is_unsafe") is True
    assert items["poke"].attr("is_async") is False


def test_extract_visibility():
    items = _by_id(extract_file("src/lib.rs", SAMPLE))
    assert items["struct:src/lib.rs:Point:3"].visibility == "pub"
    assert items["enum:src/lib.rs:Shape:20"].visibility == "pub(crate)"
    assert items["const:src/lib.rs:MAX:25"].visibility == "private"
    # trait members follow the trait, trait impl members are public
    assert items["fn:src/lib.rs:area:34"].visibility == "pub"
    assert items["fn:src/lib.rs:fmt:15"].visibility == "pub"


def test_extract_restricted_visibility_forms():
    src = "pub(super) fn a() {}\npub(in crate::x) fn b() {}\n"
    items = {i.name: i for i in extract_file("src/v.rs", src).items}
    assert items["a"].visibility == "pub(super)"
    assert items["b"].visibility == "pub(in crate::x)"
    assert not items["a"].is_public


def test_extract_contains_edges():
    edges = _contains(extract_file("src/lib.rs", SAMPLE))
    assert ("mod:src/lib.rs", "struct:src/lib.rs:Point:3") in edges
    assert ("impl:src/lib.rs:Point:8", "fn:src/lib.rs:new:9") in edges
    assert ("impl:src/lib.rs:Point:14", "fn:src/lib.rs:fmt:15") in edges
    assert ("trait:src/lib.rs:Area:33", "fn:src/lib.rs:area:34") in edges
    assert ("mod:src/lib.rs", "fn:src/lib.rs:new:9") not in edges


def test_extract_ignores_commented_and_quoted_items():
    src = textwrap.dedent("""\
        fn real() {
            let s = "fn fake() { ";
            // struct Ghost {
            /* impl Nope { /* nested */ } */
            let r = r#"trait Hidden { "#;
            let c = '{';
        }
    """)
    ex = extract_file("src/m.rs", src)
    assert {i.name for i in ex.items} == {"m", "real"}
    assert ex.refs == []


def test_extract_macro_bodies_and_file_module_declarations():
    src = textwrap.dedent("""\
        macro_rules! make {
            () => {
                fn generated() {}
            };
        }

        mod inner {
            pub fn helper() {}
        }

        mod other;
    """)
    ex = extract_file("src/lib.rs", src)
    names = {i.name: i for i in ex.items}
    assert "generated" not in names
    assert "other" not in names
    assert names["inner"].attr("is_inline") is True
    assert (names["inner"].id, names["helper"].id) in _contains(ex)


def test_extract_enum_variant_count_mixed():
    ex = extract_file("src/e.rs", "enum E { A, B(u8), C { x: i32 } }\n")
    (enum,) = [i for i in ex.items if i.kind == "enum"]
    assert enum.attr("variant_count") == 3


def test_extract_without_snippets():
    ex = extract_file("src/lib.rs", SAMPLE, snippets=False)
    assert all(i.snippet is None for i in ex.items)


# ---------------------------------------------------------------------------
# Pending references
# ---------------------------------------------------------------------------


def test_extract_impl_and_trait_refs():
    refs = {(r.src, r.rel, r.target, r.detail) for r in extract_file("src/lib.rs", SAMPLE).refs}
    assert ("impl:src/lib.rs:Point:14", "implements", "fmt::Display", None) in refs
    assert ("impl:src/lib.rs:Point:14", "extends", "Point", "impl") in refs
    assert ("impl:src/lib.rs:Point:8", "extends", "Point", "impl") in refs
    assert ("trait:src/lib.rs:Area:33", "extends", "fmt::Debug", "supertrait") in refs
    assert ("mod:src/lib.rs", "uses", "std::fmt", None) in refs


def test_extract_call_sites():
    src = textwrap.dedent("""\
        fn helper() -> u32 { 1 }

        struct Counter;

        impl Counter {
            fn tick(&self) {
                self.reset();
                let v = helper();
                let p = Point::new(1, 2);
                p.area();
                println!("{}", v);
                if (v > 0) {}
                let w = parse::<u32>(x);
            }
            fn reset(&self) {}
        }
    """)
    ex = extract_file("src/c.rs", src)
    tick = next(i.id for i in ex.items if i.name == "tick")
    calls = {(r.target, r.detail) for r in ex.refs if r.rel == "calls" and r.src == tick}
    assert calls == {
        ("Self::reset", "self"),
        ("helper", "simple"),
        ("Point::new", "path"),
        ("area", "method"),
        ("parse", "simple"),
    }


def test_attribute_arguments_are_not_call_sites():
    src = textwrap.dedent("""\
        #![allow(dead_code)]

        #[derive(Debug, Clone)]
        #[cfg_attr(test, derive(PartialEq))]
        pub struct P;

        #[cfg(feature = "x")]
        fn run() { go(); }
    """)
    ex = extract_file("src/lib.rs", src)
    calls = [(r.src, r.target) for r in ex.refs if r.rel == "calls"]
    assert calls == [("fn:src/lib.rs:run:8", "go")]


def test_return_position_impl_trait_is_not_an_item():
    src = textwrap.dedent("""\
        pub fn evens(v: Vec<u32>) ->
            impl Iterator<Item = u32> {
            v.into_iter().filter(|x| is_even(*x))
        }

        fn is_even(x: u32) -> bool { x % 2 == 0 }
    """)
    ex = extract_file("src/lib.rs", src)
    assert [(i.kind, i.name) for i in ex.items] == [
        ("module", "lib"),
        ("function", "evens"),
        ("function", "is_even"),
    ]
    evens = next(i for i in ex.items if i.name == "evens")
    assert evens.line_end == 4
    calls = {(r.src, r.target) for r in ex.refs if r.rel == "calls"}
    assert ("fn:src/lib.rs:evens:1", "is_even") in calls


def test_extract_imports_and_glob():
    src = "use crate::a::{b, c as d};\nuse super::*;\n"
    ex = extract_file("src/x.rs", src)
    assert ex.imports == [("crate::a::b", None), ("crate::a::c", "d"), ("super::*", None)]
    globs = [r for r in ex.refs if r.detail == "glob"]
    assert [(g.target, g.line) for g in globs] == [("super", 2)]


# ---------------------------------------------------------------------------
# Small parsers
# ---------------------------------------------------------------------------


def test_expand_use_nested_tree():
    assert expand_use("crate::a::{b, c::{d as e, self}, f::*}") == [
        ("crate::a::b", None),
        ("crate::a::c::d", "e"),
        ("crate::a::c", None),
        ("crate::a::f::*", None),
    ]


def test_parse_impl_header_forms():
    assert parse_impl_header(" Point ") == (None, "Point", "Point")
    assert parse_impl_header(" fmt::Display for &'a Point ") == ("fmt::Display", "Point", "Point")
    assert parse_impl_header("<T: Clone> Iterator for Wrapper<T> where T: Send ") == (
        "Iterator",
        "Wrapper",
        "Wrapper",
    )


def test_type_path():
    assert type_path("&'a mut crate::Foo<T>") == "crate::Foo"
    assert type_path("(i32, i32)") is None


def test_parse_supertraits():
    assert parse_supertraits(": fmt::Debug + Clone + 'static ") == ["fmt::Debug", "Clone"]
    assert parse_supertraits(" ") == []


# ---------------------------------------------------------------------------
# extract_source: never raises
# ---------------------------------------------------------------------------


def test_extract_source_malformed_gives_warning():
    ex = extract_source("src/broken.rs", b"fn broken( {\n")
    assert ex.items == []
    assert ex.failed
    assert "src/broken.rs" in ex.warnings[0]


def test_extract_source_invalid_utf8():
    ex = extract_source("src/bin.rs", b"\xff\xfe fn x() {}")
    assert ex.failed
    assert "UTF-8" in ex.warnings[0]


def test_extract_source_strips_bom():
    ex = extract_source("src/bom.rs", b"\xef\xbb\xbffn a() {}\n")
    assert [i.id for i in ex.items] == ["mod:src/bom.rs", "fn:src/bom.rs:a:1"]


def test_extract_file_raises_on_malformed():
    with pytest.raises(ExtractionError):
        extract_file("src/broken.rs", "fn x() { ) }")


def test_extraction_dict_round_trip():
    from rust_kg.extract import FileExtraction

    ex = extract_file("src/lib.rs", SAMPLE)
    assert FileExtraction.from_dict(ex.to_dict()) == ex

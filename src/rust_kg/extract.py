#!/usr/bin/env python3
"""
extract.py

Per-file item extraction for Rust sources.

Pure, syntactic pass:
    (path, text) -> items, local edges, unresolved references

NO cross-file knowledge
NO type checking
NO macro expansion

Comments and literals are blanked out first so that braces and keywords
inside them never count.  Items are found with conservative line-anchored
patterns; their extent comes from bracket matching.  Call sites are plain
name matches on call-like syntax and stay unresolved until the assembler
sees the whole program.
"""

from __future__ import annotations

import bisect
import re
from dataclasses import asdict, dataclass, field
from pathlib import PurePosixPath

from rust_kg.errors import ExtractionError

# ============================================================================
# Graph primitives
# ============================================================================

ITEM_KINDS = (
    "module",
    "function",
    "struct",
    "enum",
    "trait",
    "impl",
    "const",
    "static",
    "type_alias",
    "macro",
)
REL_KINDS = ("contains", "uses", "calls", "implements", "extends")

_ID_TAG = {
    "module": "mod",
    "function": "fn",
    "struct": "struct",
    "enum": "enum",
    "trait": "trait",
    "impl": "impl",
    "const": "const",
    "static": "static",
    "type_alias": "type",
    "macro": "macro",
}


@dataclass(frozen=True)
class Item:
    """
    A declared program item.

    :param id: Globally unique id, e.g. ``fn:src/lib.rs:parse:12``.
    :param kind: One of :data:`ITEM_KINDS`.
    :param name: Short name (``impl Display for Point`` for impls).
    :param path: Defining file, relative to the project root.
    :param line_start: First line (1-based).
    :param line_end: Last line (1-based, inclusive).
    :param visibility: ``pub``, ``pub(crate)``, ``pub(super)``,
                       ``pub(in path)``, ``pub(self)`` or ``private``.
    :param snippet: Source lines of the item (may be None).
    :param attrs: Kind-specific flags (``is_async``, ``trait_name``, ...).
    """

    id: str
    kind: str
    name: str
    path: str
    line_start: int
    line_end: int
    visibility: str = "private"
    snippet: str | None = None
    attrs: dict | None = None

    @property
    def is_public(self) -> bool:
        return self.visibility == "pub"

    def attr(self, key: str, default=None):
        return (self.attrs or {}).get(key, default)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> Item:
        return cls(**d)


@dataclass(frozen=True)
class Relationship:
    """
    Directed, typed edge between two item ids.

    :param src: Source item id.
    :param rel: One of :data:`REL_KINDS`.
    :param dst: Destination item id.
    :param evidence: Optional evidence dict (line, expr, via).
    """

    src: str
    rel: str
    dst: str
    evidence: dict | None = None

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.src, self.dst, self.rel)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> Relationship:
        return cls(**d)


@dataclass(frozen=True)
class PendingRef:
    """
    A relationship whose target is still a name.

    :param src: Source item id (already final).
    :param rel: Relationship kind.
    :param target: Rust path text, e.g. ``crate::util::parse`` or ``parse``.
    :param line: Line of the reference.
    :param detail: Sub-kind: ``simple``/``path``/``method``/``self`` for
                   calls, ``glob`` for glob imports, ``impl``/``supertrait``
                   for extends.
    """

    src: str
    rel: str
    target: str
    line: int
    detail: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> PendingRef:
        return cls(**d)


@dataclass
class FileExtraction:
    """Everything one file contributes before cross-file resolution."""

    path: str
    items: list[Item] = field(default_factory=list)
    relationships: list[Relationship] = field(default_factory=list)
    refs: list[PendingRef] = field(default_factory=list)
    imports: list[tuple[str, str | None]] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def module_id(self) -> str:
        return module_id_for(self.path)

    @property
    def failed(self) -> bool:
        return not self.items and bool(self.warnings)

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "items": [i.to_dict() for i in self.items],
            "relationships": [r.to_dict() for r in self.relationships],
            "refs": [r.to_dict() for r in self.refs],
            "imports": [list(i) for i in self.imports],
            "warnings": list(self.warnings),
        }

    @classmethod
    def from_dict(cls, d: dict) -> FileExtraction:
        return cls(
            path=d["path"],
            items=[Item.from_dict(i) for i in d["items"]],
            relationships=[Relationship.from_dict(r) for r in d["relationships"]],
            refs=[PendingRef.from_dict(r) for r in d["refs"]],
            imports=[(p, a) for p, a in d["imports"]],
            warnings=list(d["warnings"]),
        )


# ============================================================================
# Identity helpers
# ============================================================================


def module_id_for(path: str) -> str:
    """Id of the synthetic file-level module item."""
    return f"mod:{path}"


def module_name_for(path: str) -> str:
    p = PurePosixPath(path)
    if p.name == "mod.rs" and p.parent.name:
        return p.parent.name
    return p.stem


def item_id(kind: str, path: str, name: str, line: int) -> str:
    return f"{_ID_TAG[kind]}:{path}:{name}:{line}"


# ============================================================================
# Lexical masking
# ============================================================================

_LITERAL_START_RE = re.compile(r"""//|/\*|(?<!\w)[bc]?r\#*"|"|'""")
_CHAR_LIT_RE = re.compile(
    r"'(?:\\(?:x[0-9A-Fa-f]{2}|u\{[0-9A-Fa-f]{1,6}\}|[^\n])|[^\\'\n])'"
)
_STR_BODY_RE = re.compile(r'(?:[^"\\]|\\.)*"', re.DOTALL)
_BLOCK_TOKEN_RE = re.compile(r"/\*|\*/")


def _line_of(text: str, offset: int) -> int:
    return text.count("\n", 0, offset) + 1


def _blank(buf: list[str], start: int, end: int) -> None:
    for k in range(start, end):
        if buf[k] != "\n":
            buf[k] = " "


def mask_source(text: str, path: str = "<memory>") -> str:
    """
    Blank out comments and string/char literals, keeping offsets and newlines.

    :raises ExtractionError: On an unterminated comment or string.
    """
    buf = list(text)
    pos = 0
    while True:
        m = _LITERAL_START_RE.search(text, pos)
        if m is None:
            break
        start, tok = m.start(), m.group()

        if tok == "//":
            end = text.find("\n", start)
            end = len(text) if end == -1 else end
        elif tok == "/*":
            depth = 0
            end = -1
            for bm in _BLOCK_TOKEN_RE.finditer(text, start):
                depth += 1 if bm.group() == "/*" else -1
                if depth == 0:
                    end = bm.end()
                    break
            if end == -1:
                raise ExtractionError(
                    path, f"unterminated block comment at line {_line_of(text, start)}"
                )
        elif tok == "'":
            cm = _CHAR_LIT_RE.match(text, start)
            if cm is None:
                # lifetime or label
                pos = start + 1
                continue
            end = cm.end()
        elif tok == '"':
            sm = _STR_BODY_RE.match(text, m.end())
            if sm is None:
                raise ExtractionError(
                    path, f"unterminated string at line {_line_of(text, start)}"
                )
            end = sm.end()
        else:
            close = '"' + "#" * tok.count("#")
            idx = text.find(close, m.end())
            if idx == -1:
                raise ExtractionError(
                    path, f"unterminated raw string at line {_line_of(text, start)}"
                )
            end = idx + len(close)

        _blank(buf, start, end)
        pos = end
    return "".join(buf)


_BRACKET_RE = re.compile(r"[{}()\[\]]")
_OPENERS = {"{": "}", "(": ")", "[": "]"}


def match_brackets(masked: str, path: str = "<memory>") -> dict[int, int]:
    """
    Map each opening bracket offset to its closing offset.

    :raises ExtractionError: If brackets are unbalanced.
    """
    pairs: dict[int, int] = {}
    stack: list[tuple[str, int]] = []
    for m in _BRACKET_RE.finditer(masked):
        ch, p = m.group(), m.start()
        if ch in _OPENERS:
            stack.append((ch, p))
            continue
        if not stack or _OPENERS[stack[-1][0]] != ch:
            raise ExtractionError(path, f"unbalanced '{ch}' at line {_line_of(masked, p)}")
        pairs[stack.pop()[1]] = p
    if stack:
        ch, p = stack[-1]
        raise ExtractionError(path, f"unclosed '{ch}' at line {_line_of(masked, p)}")
    return pairs


# ============================================================================
# Patterns
# ============================================================================

_IDENT = r"(?:r\#)?[A-Za-z_][A-Za-z0-9_]*"

_ITEM_RE = re.compile(
    r"^[ \t]*(?:\#\[[^\]\n]*\][ \t]*)*"
    r"(?P<vis>pub(?:[ \t]*\([^)\n]*\))?[ \t]+)?"
    r"(?P<quals>(?:(?:default|const|async|unsafe|auto|extern)[ \t]+)*)"
    r"(?P<kw>fn|struct|union|enum|trait|impl|mod|const|static|type|macro_rules[ \t]*!)"
    r"(?!\w)",
    re.MULTILINE,
)
_NAME_RE = re.compile(r"\s+(?P<name>" + _IDENT + ")")
_CONST_NAME_RE = re.compile(r"\s+(?P<name>" + _IDENT + r")\s*:")
_STATIC_NAME_RE = re.compile(r"\s+(?P<mut>mut\s+)?(?P<name>" + _IDENT + r")\s*:")
_MACRO_NAME_RE = re.compile(r"\s*(?P<name>" + _IDENT + ")")

_USE_RE = re.compile(
    r"^[ \t]*(?:\#\[[^\]\n]*\][ \t]*)*"
    r"(?:pub(?:[ \t]*\([^)\n]*\))?[ \t]+)?"
    r"use\s+(?P<body>[^;{}]*(?:\{[^;]*\})?[^;{}]*);",
    re.MULTILINE,
)

_CALL_RE = re.compile(
    r"(?<![\w$])(?P<path>(?:" + _IDENT + r"\s*::\s*)*" + _IDENT + r")"
    r"\s*(?:::\s*<[^;{}()]*?>\s*)?\("
)
_ATTR_OPEN_RE = re.compile(r"#\s*!?\s*\[")
_DEF_BEFORE_RE = re.compile(r"(?:\b(?:fn|struct|enum|union|trait)|macro_rules\s*!)\s*$")
_SELF_RECV_RE = re.compile(r"(?<![\w.])self\s*\.\s*$")

_PATH_RE = re.compile(r"(?:::)?" + _IDENT + r"(?:\s*::\s*" + _IDENT + r")*")
_TYPE_PREFIX_RE = re.compile(r"^(?:&\s*)?(?:'\w+\s+)?(?:(?:mut|dyn|impl)\s+)*")

RUST_KEYWORDS = frozenset(
    """as async await break const continue crate dyn else enum extern false fn for
    if impl in let loop match mod move mut pub ref return self Self static struct
    super trait true type union unsafe use where while""".split()
)

_CONTAINER_INHERITS_VIS = ("trait",)
# characters an item may directly follow (besides start of file)
_ITEM_PRECEDERS = frozenset("{};]")


# ============================================================================
# Small parsers
# ============================================================================


def _at_item_position(masked: str, pos: int) -> bool:
    i = pos - 1
    while i >= 0 and masked[i].isspace():
        i -= 1
    return i < 0 or masked[i] in _ITEM_PRECEDERS


def _visibility(raw: str | None) -> str:
    if not raw:
        return "private"
    v = re.sub(r"\s+", " ", raw.strip())
    if v == "pub":
        return "pub"
    inner = v[v.index("(") + 1 : v.rindex(")")].strip()
    if inner.startswith("in "):
        return f"pub(in {inner[3:].strip()})"
    return f"pub({inner})"


def _clean_ident(name: str) -> str:
    return name[2:] if name.startswith("r#") else name


def _skip_angles(s: str, i: int) -> int:
    """Index just past the ``>`` matching the ``<`` at *i*."""
    depth = 0
    j = i
    while j < len(s):
        c = s[j]
        if c == "<":
            depth += 1
        elif c == ">" and s[j - 1] != "-":
            depth -= 1
            if depth == 0:
                return j + 1
        j += 1
    return len(s)


def _split_top(s: str, sep: str) -> list[str]:
    """Split on *sep* outside ``<>``, ``()``, ``[]`` and ``{}``."""
    parts: list[str] = []
    depth = 0
    cur: list[str] = []
    for i, c in enumerate(s):
        if c in "<([{":
            depth += 1
        elif c in ")]}" or (c == ">" and (i == 0 or s[i - 1] != "-")):
            depth -= 1
        if c == sep and depth == 0:
            parts.append("".join(cur))
            cur = []
            continue
        cur.append(c)
    parts.append("".join(cur))
    return parts


def type_path(text: str) -> str | None:
    """
    Best-effort path of a type expression.

    ``&'a mut crate::Foo<T>`` -> ``crate::Foo``; tuples, slices and
    function pointers give ``None``.
    """
    t = text.strip()
    t = _split_top(t, "+")[0].strip()
    t = _TYPE_PREFIX_RE.sub("", t)
    t = t.split("<", 1)[0].strip()
    if not t or not _PATH_RE.fullmatch(t):
        return None
    t = re.sub(r"\s+", "", t)
    return t[2:] if t.startswith("::") else t


def last_segment(path: str) -> str:
    return _clean_ident(path.rsplit("::", 1)[-1])


def parse_impl_header(header: str) -> tuple[str | None, str | None, str]:
    """
    Parse the text between ``impl`` and the opening brace.

    :return: ``(trait_path, type_path, type_name)``; ``trait_path`` is None
             for inherent impls.
    """
    h = header.strip()
    if h.startswith("<"):
        h = h[_skip_angles(h, 0) :].strip()
    h = re.split(r"\bwhere\b", h, maxsplit=1)[0].strip()

    trait_text: str | None = None
    type_text = h
    depth = 0
    for m in re.finditer(r"->|<|>|\bfor\b", h):
        tok = m.group()
        if tok == "<":
            depth += 1
        elif tok == ">":
            depth -= 1
        elif tok == "for" and depth == 0:
            trait_text, type_text = h[: m.start()].strip(), h[m.end() :].strip()
            break

    trait_p = type_path(trait_text.lstrip("!?")) if trait_text else None
    type_p = type_path(type_text)
    type_name = last_segment(type_p) if type_p else re.sub(r"\s+", "", type_text) or "?"
    return trait_p, type_p, type_name


def parse_supertraits(header: str) -> list[str]:
    """Supertrait paths from the text following a trait's name."""
    h = header.strip()
    if h.startswith("<"):
        h = h[_skip_angles(h, 0) :].strip()
    if not h.startswith(":"):
        return []
    h = re.split(r"\bwhere\b", h[1:], maxsplit=1)[0]
    out: list[str] = []
    for bound in _split_top(h, "+"):
        b = bound.strip().lstrip("?").strip()
        if not b or b.startswith("'") or b.startswith("("):
            continue
        p = type_path(b)
        if p:
            out.append(p)
    return out


def expand_use(body: str, prefix: str = "") -> list[tuple[str, str | None]]:
    """
    Flatten a ``use`` tree into ``(path, alias)`` pairs.

    ``a::{b, c::{d as e, self}, f::*}`` ->
    ``[("a::b", None), ("a::c::d", "e"), ("a::c", None), ("a::f::*", None)]``
    """
    text = re.sub(r"\s*::\s*", "::", " ".join(body.split()))
    out: list[tuple[str, str | None]] = []
    for part in _split_top(text, ","):
        part = part.strip()
        if not part:
            continue
        brace = part.find("{")
        if brace != -1 and part.endswith("}"):
            head = part[:brace].strip()
            out.extend(expand_use(part[brace + 1 : -1], _join_path(prefix, head)))
            continue
        alias = None
        m = re.match(r"^(.*?)\s+as\s+(" + _IDENT + r")$", part)
        if m:
            part, alias = m.group(1).strip(), _clean_ident(m.group(2))
        path = prefix if part == "self" else _join_path(prefix, part)
        if path:
            out.append((path, alias))
    return out


def _join_path(a: str, b: str) -> str:
    segs = [s for s in (a.strip(":"), b.strip(":")) if s]
    return "::".join(segs)


def _count_variants(masked: str, open_: int, close: int, pairs: dict[int, int]) -> int:
    count = 0
    seen = False
    i = open_ + 1
    while i < close:
        c = masked[i]
        if c in "{([":
            i = pairs[i] + 1
            seen = True
            continue
        if c == ",":
            count += seen
            seen = False
        elif not c.isspace():
            seen = True
        i += 1
    return count + seen


# ============================================================================
# Declarations
# ============================================================================


@dataclass
class _Decl:
    kind: str
    name: str
    start: int
    end: int
    line: int
    vis: str
    attrs: dict
    header: str = ""
    parent: int | None = None
    dropped: bool = False
    id: str = ""


def _scan_end(masked: str, pos: int, pairs: dict[int, int], mode: str) -> tuple[int | None, int]:
    """
    Find where a declaration ends.

    :return: ``(body_open, end)``; ``body_open`` is the offset of the
             item's ``{`` (or macro delimiter), or None.
    """
    n = len(masked)
    i = pos
    while i < n:
        c = masked[i]
        if c in "([":
            if mode == "macro":
                close = pairs[i]
                j = close + 1
                while j < n and masked[j] in " \t\r\n":
                    j += 1
                return i, (j if j < n and masked[j] == ";" else close)
            i = pairs[i] + 1
            continue
        if c == "{":
            if mode == "stmt":
                i = pairs[i] + 1
                continue
            return i, pairs[i]
        if c == ";" and mode != "macro":
            return None, i
        if c in ")]}":
            # ran out of the enclosing scope without a terminator
            return None, i - 1
        i += 1
    return None, n - 1


def _declarations(masked: str, pairs: dict[int, int], line_of) -> list[_Decl]:
    decls: list[_Decl] = []
    for m in _ITEM_RE.finditer(masked):
        kw = m.group("kw")
        quals = m.group("quals").split()
        vis = _visibility(m.group("vis"))
        kw_end = m.end("kw")
        attrs: dict = {}

        if kw.startswith("macro_rules"):
            nm = _MACRO_NAME_RE.match(masked, kw_end)
            if not nm:
                continue
            kind, name, mode = "macro", nm.group("name"), "macro"
        elif kw == "impl":
            # `-> impl Trait` or `x: impl Trait` continuing a signature
            if not _at_item_position(masked, m.start()):
                continue
            nm = None
            kind, name, mode = "impl", "", "block"
            attrs["is_unsafe"] = "unsafe" in quals
        elif kw == "const":
            nm = _CONST_NAME_RE.match(masked, kw_end)
            if not nm:
                continue
            kind, name, mode = "const", nm.group("name"), "stmt"
        elif kw == "static":
            nm = _STATIC_NAME_RE.match(masked, kw_end)
            if not nm:
                continue
            kind, name, mode = "static", nm.group("name"), "stmt"
            attrs["is_mut"] = bool(nm.group("mut"))
        else:
            nm = _NAME_RE.match(masked, kw_end)
            if not nm:
                continue
            name = nm.group("name")
            mode = "block"
            if kw == "fn":
                kind = "function"
                attrs.update(
                    is_async="async" in quals,
                    is_const="const" in quals,
                    is_unsafe="unsafe" in quals,
                )
            elif kw in ("struct", "union"):
                kind = "struct"
            elif kw == "type":
                kind, mode = "type_alias", "stmt"
            elif kw == "mod":
                kind = "module"
            else:
                kind = kw

        head_from = nm.end() if nm else kw_end
        body_open, end = _scan_end(masked, head_from, pairs, mode)
        header = masked[head_from : body_open if body_open is not None else end]

        if kind == "impl":
            trait_p, type_p, type_name = parse_impl_header(header)
            attrs.update(
                trait_name=last_segment(trait_p) if trait_p else None,
                trait_path=trait_p,
                type_name=type_name,
                type_path=type_p,
            )
            name = (
                f"impl {attrs['trait_name']} for {type_name}" if trait_p else f"impl {type_name}"
            )
        elif kind == "struct":
            attrs["is_tuple"] = body_open is None and "(" in header
            if kw == "union":
                attrs["is_union"] = True
        elif kind == "enum" and body_open is not None:
            attrs["variant_count"] = _count_variants(masked, body_open, end, pairs)
        elif kind == "module":
            attrs["is_inline"] = body_open is not None
            if body_open is None:
                # `mod foo;` declares a file module; the file layout supplies it
                continue

        decls.append(
            _Decl(
                kind=kind,
                name=_clean_ident(name) if kind != "impl" else name,
                start=m.start("kw") if not m.group("vis") else m.start("vis"),
                end=end,
                line=line_of(m.start("kw")),
                vis=vis,
                attrs=attrs,
                header=header,
            )
        )
    decls.sort(key=lambda d: d.start)
    return decls


def _innermost(decls: list[_Decl], positions: list[int]) -> list[int | None]:
    """For each sorted position, index of the innermost declaration spanning it."""
    out: list[int | None] = []
    stack: list[int] = []
    j = 0
    for pos in positions:
        while j < len(decls) and decls[j].start <= pos:
            while stack and decls[stack[-1]].end < decls[j].start:
                stack.pop()
            stack.append(j)
            j += 1
        while stack and decls[stack[-1]].end < pos:
            stack.pop()
        out.append(stack[-1] if stack else None)
    return out


# ============================================================================
# Core extraction
# ============================================================================


def extract_file(path: str, text: str, *, snippets: bool = True) -> FileExtraction:
    """
    Extract items and references from one Rust file.

    This function is pure and deterministic; it touches no shared state.

    :param path: Repo-relative posix path (becomes part of every item id).
    :param text: Full file text.
    :param snippets: Attach each item's source lines.
    :raises ExtractionError: If the text is syntactically malformed.
    """
    masked = mask_source(text, path)
    pairs = match_brackets(masked, path)

    line_starts = [0] + [m.end() for m in re.finditer("\n", text)]

    def line_of(offset: int) -> int:
        return bisect.bisect_right(line_starts, offset)

    src_lines = text.split("\n")
    mod_id = module_id_for(path)
    result = FileExtraction(path=path)
    result.items.append(
        Item(
            id=mod_id,
            kind="module",
            name=module_name_for(path),
            path=path,
            line_start=1,
            line_end=len(src_lines),
            visibility="pub(crate)",
            attrs={"is_inline": False},
        )
    )

    decls = _declarations(masked, pairs, line_of)

    # containment: innermost enclosing declaration, macro bodies excluded
    stack: list[int] = []
    seen_ids: dict[str, int] = {}
    for idx, d in enumerate(decls):
        while stack and decls[stack[-1]].end < d.start:
            stack.pop()
        d.parent = stack[-1] if stack else None
        if d.parent is not None:
            parent = decls[d.parent]
            d.dropped = parent.dropped or parent.kind == "macro"
        stack.append(idx)
        if d.dropped:
            continue

        base = item_id(d.kind, path, _id_segment(d), d.line)
        n = seen_ids.get(base, 0) + 1
        seen_ids[base] = n
        d.id = base if n == 1 else f"{base}#{n}"

        vis = d.vis
        if d.parent is not None:
            parent = decls[d.parent]
            if parent.kind in _CONTAINER_INHERITS_VIS:
                vis = parent.vis
            elif parent.kind == "impl" and parent.attrs.get("trait_path"):
                vis = "pub"

        line_end = line_of(d.end)
        result.items.append(
            Item(
                id=d.id,
                kind=d.kind,
                name=d.name,
                path=path,
                line_start=d.line,
                line_end=line_end,
                visibility=vis,
                snippet="\n".join(src_lines[d.line - 1 : line_end]) if snippets else None,
                attrs={k: v for k, v in d.attrs.items() if v is not None} or None,
            )
        )
        container = decls[d.parent].id if d.parent is not None else mod_id
        result.relationships.append(Relationship(src=container, rel="contains", dst=d.id))

        if d.kind == "impl":
            if d.attrs.get("trait_path"):
                result.refs.append(
                    PendingRef(d.id, "implements", d.attrs["trait_path"], d.line)
                )
            if d.attrs.get("type_path"):
                result.refs.append(
                    PendingRef(d.id, "extends", d.attrs["type_path"], d.line, "impl")
                )
        elif d.kind == "trait":
            for sup in parse_supertraits(d.header):
                result.refs.append(PendingRef(d.id, "extends", sup, d.line, "supertrait"))

    def owner(idx: int | None) -> str | None:
        if idx is None:
            return mod_id
        d = decls[idx]
        if d.dropped or d.kind == "macro":
            return None
        return d.id

    # imports
    use_matches = list(_USE_RE.finditer(masked))
    for m, idx in zip(use_matches, _innermost(decls, [m.start() for m in use_matches])):
        src = owner(idx)
        if src is None:
            continue
        line = line_of(m.start())
        for upath, alias in expand_use(m.group("body")):
            result.imports.append((upath, alias))
            if upath.endswith("::*"):
                result.refs.append(PendingRef(src, "uses", upath[:-3], line, "glob"))
            else:
                result.refs.append(PendingRef(src, "uses", upath, line))

    # attribute arguments (`#[derive(Debug)]`) are not call sites
    attr_spans = [(m.end() - 1, pairs[m.end() - 1]) for m in _ATTR_OPEN_RE.finditer(masked)]
    attr_starts = [s for s, _ in attr_spans]

    # call sites
    call_matches = list(_CALL_RE.finditer(masked))
    for m, idx in zip(call_matches, _innermost(decls, [m.start() for m in call_matches])):
        src = owner(idx)
        if src is None:
            continue
        start = m.start()
        a = bisect.bisect_right(attr_starts, start) - 1
        if a >= 0 and start < attr_spans[a][1]:
            continue
        before = masked[max(0, start - 24) : start]
        if _DEF_BEFORE_RE.search(before):
            continue
        target = re.sub(r"\s+", "", m.group("path"))
        if "::" not in target and _clean_ident(target) in RUST_KEYWORDS:
            continue

        if "::" in target:
            detail = "path"
        elif _SELF_RECV_RE.search(before):
            target, detail = f"Self::{target}", "self"
        elif before.rstrip().endswith("."):
            detail = "method"
        else:
            detail = "simple"
        result.refs.append(PendingRef(src, "calls", target, line_of(start), detail))

    return result


def _id_segment(d: _Decl) -> str:
    if d.kind == "impl":
        return re.sub(r"[^\w]+", "_", d.attrs.get("type_name") or "impl").strip("_") or "impl"
    return d.name


def extract_source(path: str, data: bytes | str, *, snippets: bool = True) -> FileExtraction:
    """
    Decode and extract one file, never raising for bad input.

    Undecodable or malformed files give an empty item list and a warning.
    """
    try:
        text = data.decode("utf-8") if isinstance(data, bytes) else data
    except UnicodeDecodeError as exc:
        return FileExtraction(path=path, warnings=[f"{path}: not valid UTF-8 ({exc.reason})"])
    if text.startswith("\ufeff"):
        text = text[1:]
    try:
        return extract_file(path, text, snippets=snippets)
    except ExtractionError as exc:
        return FileExtraction(path=path, warnings=[str(exc)])

"""
JavaScript syntax layer built on tree-sitter.

Provides:
- Parse profiles tried in order against one parse of the source
- Classification of the node types the scope extractor reads
- Literal values (cooked strings, numbers, booleans, plain templates)

tree-sitter recovers from every syntax error, so "does not parse" means
the tree carries error nodes. Profiles narrow that further by forbidding
constructs their source type or language tier does not allow, mirroring
how a strict parser configured for that mode would reject the file.
"""
import math
import re
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from functools import lru_cache
from typing import Dict, List, Optional, Tuple
import logging

import tree_sitter_javascript
from tree_sitter import Language, Node, Parser, Query, QueryCursor, QueryError, Tree

logger = logging.getLogger(__name__)

JAVASCRIPT = Language(tree_sitter_javascript.language())


# ============ Parse profiles ============

# Feature name -> query matching the construct
FEATURE_QUERIES: Dict[str, str] = {
    "with_statement": "(with_statement) @forbidden",
    "import_statement": "(import_statement) @forbidden",
    "export_statement": "(export_statement) @forbidden",
    "jsx": "[(jsx_element) (jsx_self_closing_element)] @forbidden",
    "decorator": "(decorator) @forbidden",
    "class_field": "(field_definition) @forbidden",
    "private_name": "(private_property_identifier) @forbidden",
    "static_block": "(class_static_block) @forbidden",
    "logical_assignment": '(augmented_assignment_expression operator: ["&&=" "||=" "??="]) @forbidden',
}

# Module code is strict; scripts cannot hold static imports or exports
SOURCE_TYPE_FORBIDDEN: Dict[str, Tuple[str, ...]] = {
    "module": ("with_statement",),
    "script": ("import_statement", "export_statement"),
}

# Constructs outside the standard language, and those newer than each tier
ECMA_FORBIDDEN: Dict[int, Tuple[str, ...]] = {
    2022: ("jsx", "decorator"),
    2020: ("jsx", "decorator", "class_field", "private_name", "static_block", "logical_assignment"),
}


@dataclass(frozen=True)
class ParseProfile:
    """One grammar configuration a source may be accepted under"""
    name: str
    source_type: str  # "module" or "script"
    ecma_version: Optional[int] = None  # None = latest
    permissive: bool = False

    @property
    def forbidden_features(self) -> Tuple[str, ...]:
        if self.permissive:
            return ()
        features = list(SOURCE_TYPE_FORBIDDEN.get(self.source_type, ()))
        if self.ecma_version is not None:
            features.extend(ECMA_FORBIDDEN.get(self.ecma_version, ()))
        return tuple(features)


PARSE_PROFILES: Tuple[ParseProfile, ...] = (
    ParseProfile("module-es2022", "module", 2022),
    ParseProfile("script-es2022", "script", 2022),
    ParseProfile("module-es2020", "module", 2020),
    ParseProfile("script-es2020", "script", 2020),
    ParseProfile("latest-permissive", "module", None, permissive=True),
)


@dataclass
class ParsedSource:
    """A syntax tree together with the exact bytes it was parsed from"""
    tree: Tree
    source: bytes
    profile: ParseProfile

    @property
    def root(self) -> Node:
        return self.tree.root_node

    def text(self, node: Node) -> str:
        return node_text(node, self.source)


@lru_cache(maxsize=None)
def _feature_query(feature: str) -> Optional[Query]:
    """Compile a feature query; None if the grammar has no such node type."""
    try:
        return Query(JAVASCRIPT, FEATURE_QUERIES[feature])
    except QueryError as e:
        # A node type the installed grammar lacks can never occur in its trees
        logger.debug(f"Feature query {feature!r} unavailable: {e}")
        return None


def _has_feature(root: Node, feature: str, seen: Dict[str, bool]) -> bool:
    if feature not in seen:
        query = _feature_query(feature)
        seen[feature] = bool(query is not None and QueryCursor(query).captures(root))
    return seen[feature]


def parse_source(text: str, profiles: Tuple[ParseProfile, ...] = PARSE_PROFILES) -> Optional[ParsedSource]:
    """
    Parse JavaScript and accept it under the first matching profile.

    Args:
        text: Preprocessed source (no shebang, no BOM)
        profiles: Profiles in the order they are tried

    Returns:
        ParsedSource for the first profile that accepts the tree, or None
        when every profile rejects it
    """
    source = text.encode("utf-8")
    tree = Parser(JAVASCRIPT).parse(source)
    root = tree.root_node

    if root.has_error:
        logger.debug("Source has syntax errors; no profile can accept it")
        return None

    # Feature probes are shared between profiles
    seen: Dict[str, bool] = {}
    for profile in profiles:
        rejected_by = [f for f in profile.forbidden_features if _has_feature(root, f, seen)]
        if not rejected_by:
            return ParsedSource(tree=tree, source=source, profile=profile)
        logger.debug(f"Profile {profile.name} rejected source: {', '.join(rejected_by)}")

    return None


# ============ Node classification ============

class NodeKind(str, Enum):
    """Node categories the scope extractor distinguishes"""
    TEMPLATE = "template"
    DECLARATION = "declaration"
    DECLARATOR = "declarator"
    FUNCTION = "function"
    BLOCK = "block"
    LOOP = "loop"
    OTHER = "other"


NODE_KINDS: Dict[str, NodeKind] = {
    "template_string": NodeKind.TEMPLATE,
    "lexical_declaration": NodeKind.DECLARATION,
    "variable_declaration": NodeKind.DECLARATION,
    "variable_declarator": NodeKind.DECLARATOR,
    "function_declaration": NodeKind.FUNCTION,
    "function_expression": NodeKind.FUNCTION,
    "function": NodeKind.FUNCTION,  # older grammar name for function expressions
    "generator_function_declaration": NodeKind.FUNCTION,
    "generator_function": NodeKind.FUNCTION,
    "arrow_function": NodeKind.FUNCTION,
    "method_definition": NodeKind.FUNCTION,
    "statement_block": NodeKind.BLOCK,
    "for_statement": NodeKind.LOOP,
    "for_in_statement": NodeKind.LOOP,  # also covers for-of
    "while_statement": NodeKind.LOOP,
    "do_statement": NodeKind.LOOP,
}

SCOPE_KINDS = frozenset({NodeKind.FUNCTION, NodeKind.BLOCK, NodeKind.LOOP})


def node_kind(node: Node) -> NodeKind:
    return NODE_KINDS.get(node.type, NodeKind.OTHER)


def creates_scope(node: Node) -> bool:
    return node_kind(node) in SCOPE_KINDS


def node_text(node: Node, source: bytes) -> str:
    return source[node.start_byte:node.end_byte].decode("utf-8", errors="replace")


def template_substitutions(node: Node) -> List[Node]:
    """`${...}` children of a template literal, in source order"""
    return [child for child in node.named_children if child.type == "template_substitution"]


def parameter_names(node: Node, source: bytes) -> List[str]:
    """Plain identifier parameters of a function-like node"""
    names: List[str] = []

    single = node.child_by_field_name("parameter")
    if single is not None and single.type == "identifier":
        names.append(node_text(single, source))

    params = node.child_by_field_name("parameters")
    if params is None:
        return names

    for param in params.named_children:
        if param.type == "assignment_pattern":
            param = param.child_by_field_name("left")
        elif param.type == "rest_pattern":
            param = param.named_children[0] if param.named_children else None
        if param is not None and param.type == "identifier":
            names.append(node_text(param, source))

    return names


# ============ Literal values ============

_ESCAPE_RE = re.compile(
    r"\\(u\{[0-9a-fA-F]+\}|u[0-9a-fA-F]{4}|x[0-9a-fA-F]{2}|[0-7]{1,3}|\r\n|[\s\S])"
)
_SURROGATE_PAIR_RE = re.compile("[\ud800-\udbff][\udc00-\udfff]")
_LONE_SURROGATE_RE = re.compile("[\ud800-\udfff]")

SIMPLE_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "b": "\b",
    "f": "\f",
    "v": "\v",
}
LINE_CONTINUATIONS = {"\n", "\r", "\r\n", "\u2028", "\u2029"}


def _cook_escape(match: "re.Match[str]") -> str:
    body = match.group(1)
    if body in SIMPLE_ESCAPES:
        return SIMPLE_ESCAPES[body]
    if body in LINE_CONTINUATIONS:
        return ""
    if body.startswith("u{"):
        code = int(body[2:-1], 16)
        return chr(code) if code <= 0x10FFFF else "\ufffd"
    if body[0] in "ux" and len(body) > 1:
        return chr(int(body[1:], 16))
    if body[0] in "01234567":
        return chr(int(body, 8))
    return body


def _join_surrogates(text: str) -> str:
    def join(match: "re.Match[str]") -> str:
        high, low = (ord(c) for c in match.group(0))
        return chr(0x10000 + ((high - 0xD800) << 10) + (low - 0xDC00))

    text = _SURROGATE_PAIR_RE.sub(join, text)
    return _LONE_SURROGATE_RE.sub("\ufffd", text)


def cook_escapes(raw: str) -> str:
    """Resolve JavaScript string escapes the way the engine would"""
    if "\\" not in raw:
        return raw
    return _join_surrogates(_ESCAPE_RE.sub(_cook_escape, raw))


def js_number_text(raw: str) -> Optional[str]:
    """Render a numeric literal the way String(value) would"""
    text = raw.replace("_", "")
    lowered = text.lower()
    try:
        if lowered.endswith("n"):
            # BigInt keeps every digit
            return str(int(lowered[:-1], 0))
        if lowered.startswith(("0x", "0o", "0b")):
            return format_js_number(_int_to_float(int(lowered, 0)))
        if len(text) > 1 and text[0] == "0" and text.isdigit():
            # Legacy octal unless a digit rules it out
            base = 8 if set(text) <= set("01234567") else 10
            return format_js_number(_int_to_float(int(text, base)))
        value = float(text)
    except ValueError:
        return None
    return format_js_number(value)


def _int_to_float(value: int) -> float:
    try:
        return float(value)
    except OverflowError:
        return math.inf


def format_js_number(value: float) -> str:
    """
    Number::toString for a double.

    Uses the shortest round-tripping digits (Python's repr agrees with
    JavaScript there) and JavaScript's layout: plain decimals for
    1e-7 < |value| < 1e21, otherwise `d.ddde+N` with an unpadded exponent.
    """
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value == 0:
        return "0"

    sign = "-" if value < 0 else ""
    _, digit_tuple, exponent = Decimal(repr(abs(value))).as_tuple()
    digits = "".join(str(d) for d in digit_tuple).rstrip("0")
    exponent += len(digit_tuple) - len(digits)

    k = len(digits)
    n = exponent + k  # value = 0.digits * 10**n

    if k <= n <= 21:
        return sign + digits + "0" * (n - k)
    if 0 < n <= 21:
        return sign + digits[:n] + "." + digits[n:]
    if -6 < n <= 0:
        return sign + "0." + "0" * -n + digits

    e = n - 1
    mantissa = digits if k == 1 else digits[0] + "." + digits[1:]
    return f"{sign}{mantissa}e{'+' if e >= 0 else '-'}{abs(e)}"


def literal_value(node: Optional[Node], source: bytes) -> Optional[str]:
    """
    Statically known text of a literal node, or None.

    Strings, numbers, booleans and templates without substitutions have a
    value; everything else is unknown.
    """
    if node is None:
        return None

    if node.type == "string":
        return cook_escapes(node_text(node, source)[1:-1])
    if node.type == "number":
        return js_number_text(node_text(node, source))
    if node.type in ("true", "false"):
        return node.type
    if node.type == "template_string":
        if template_substitutions(node):
            return None
        raw = node_text(node, source)[1:-1].replace("\r\n", "\n").replace("\r", "\n")
        return cook_escapes(raw)

    return None

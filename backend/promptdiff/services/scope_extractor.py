"""
Scope-resolving prompt extractor.

Parses the source, finds the template literal holding the target text and
replaces `${name}` interpolations with the literal values of the local
declarations visible at that point.

Scope reconstruction is deliberately shallow: one scope layer per node on
the path from the program root to the template, each layer holding the
declarations reachable from its node without entering a nested function,
block or loop. Lookups walk the layers innermost first, so an inner
declaration shadows an outer one and siblings never see each other's
locals. Nothing is executed; calls, destructuring, imports and
reassignment are never followed.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional
import logging

from tree_sitter import Node

from promptdiff.services.js_syntax import (
    NodeKind,
    ParsedSource,
    creates_scope,
    literal_value,
    node_kind,
    node_text,
    parameter_names,
    parse_source,
    template_substitutions,
)
from promptdiff.services.literal_locator import locate_literal

logger = logging.getLogger(__name__)

BOM = "\ufeff"


@dataclass
class Scope:
    """Bindings introduced by one node on the root-to-template path.

    A value of None marks a name that is bound but not statically known
    (a parameter, or a declaration with a non-literal initialiser).
    """
    node: Node
    bindings: Dict[str, Optional[str]] = field(default_factory=dict)


class ScopeChain:
    """Scope layers indexed by depth, outermost first"""

    def __init__(self, layers: List[Scope]):
        self.layers = layers

    def __len__(self) -> int:
        return len(self.layers)

    def lookup(self, name: str) -> Optional[str]:
        """
        Value of `name` in the innermost layer that binds it.

        Returns None when the innermost binding is unknown or when no layer
        binds the name at all.
        """
        for scope in reversed(self.layers):
            if name in scope.bindings:
                return scope.bindings[name]
        return None


def preprocess_source(source: str) -> str:
    """Drop a leading shebang line, then a leading byte-order mark"""
    if source.startswith("#!"):
        newline = source.find("\n")
        if newline != -1:
            source = source[newline + 1:]
    if source.startswith(BOM):
        source = source[1:]
    return source


def find_template_node(parsed: ParsedSource, target: str) -> Optional[Node]:
    """
    First template literal, in pre-order, whose text contains `target`.

    Rather than visiting every node, each occurrence of `target` is
    resolved to its smallest covering node and the outermost template
    among that node's ancestors is taken. Templates never partially
    overlap, so the outermost template around the earliest occurrence that
    sits inside any template is exactly the node a pre-order walk would
    reach first.
    """
    needle = target.encode("utf-8")
    if not needle:
        return None

    source = parsed.source
    root = parsed.root
    start = source.find(needle)

    while start != -1:
        end = start + len(needle)
        node = root.descendant_for_byte_range(start, end)
        outermost = None
        while node is not None:
            if (node_kind(node) is NodeKind.TEMPLATE
                    and node.start_byte <= start and node.end_byte >= end):
                outermost = node
            node = node.parent
        if outermost is not None:
            return outermost
        start = source.find(needle, start + 1)

    return None


def path_to(node: Node) -> List[Node]:
    """Nodes from the root down to and including `node`"""
    path = []
    current: Optional[Node] = node
    while current is not None:
        path.append(current)
        current = current.parent
    path.reverse()
    return path


def collect_bindings(node: Node, source: bytes) -> Dict[str, Optional[str]]:
    """
    Declarations visible in the scope layer of `node`.

    Walks the subtree of `node` in source order but does not enter nested
    functions, blocks or loops; those get their own layer when they lie on
    the path. Parameters of a function-like `node` are bound as unknown.
    """
    bindings: Dict[str, Optional[str]] = {}

    if node_kind(node) is NodeKind.FUNCTION:
        for name in parameter_names(node, source):
            bindings[name] = None

    stack = [node]
    while stack:
        current = stack.pop()

        if node_kind(current) is NodeKind.DECLARATION:
            for declarator in current.named_children:
                if node_kind(declarator) is not NodeKind.DECLARATOR:
                    continue
                name = declarator.child_by_field_name("name")
                if name is None or name.type != "identifier":
                    continue
                value = declarator.child_by_field_name("value")
                bindings[node_text(name, source)] = literal_value(value, source)

        # Reversed so children pop in source order
        for child in reversed(current.named_children):
            if not creates_scope(child):
                stack.append(child)

    return bindings


def build_scope_chain(
    target: Node,
    source: bytes,
    bindings_cache: Optional[Dict[int, Dict[str, Optional[str]]]] = None,
) -> ScopeChain:
    """
    One Scope per node on the root-to-target path.

    `bindings_cache` maps node ids to already collected bindings; templates
    sharing ancestors (always the program root) then walk each layer once.
    """
    layers: List[Scope] = []
    for node in path_to(target):
        if bindings_cache is None:
            bindings = collect_bindings(node, source)
        else:
            bindings = bindings_cache.get(node.id)
            if bindings is None:
                bindings = collect_bindings(node, source)
                bindings_cache[node.id] = bindings
        layers.append(Scope(node=node, bindings=bindings))
    return ScopeChain(layers)


def escape_template_text(value: str) -> str:
    """Encode a cooked value so it reads the same inside template source"""
    return value.replace("\\", "\\\\").replace("`", "\\`").replace("${", "\\${")


def substitute_template(template: Node, source: bytes, chain: ScopeChain) -> str:
    """
    Raw text of `template` with resolvable interpolations replaced.

    A `${expr}` is replaced only when the trimmed `expr` is a name whose
    innermost binding has a known value; otherwise it stays verbatim.
    """
    pieces: List[str] = []
    cursor = template.start_byte

    for substitution in template_substitutions(template):
        # Strip the "${" and "}" delimiters
        expression = source[substitution.start_byte + 2:substitution.end_byte - 1]
        value = chain.lookup(expression.decode("utf-8", errors="replace").strip())
        if value is None:
            continue
        pieces.append(source[cursor:substitution.start_byte].decode("utf-8", errors="replace"))
        pieces.append(escape_template_text(value))
        cursor = substitution.end_byte

    pieces.append(source[cursor:template.end_byte].decode("utf-8", errors="replace"))
    return "".join(pieces)


class TemplateResolver:
    """
    Resolves templates in one source, parsing it at most once.

    The prompt set extractor looks up several markers in the same bundle;
    sharing the parse keeps that to a single tree, and scope layers collected
    for one marker are reused by the next.
    """

    def __init__(self, source: str):
        self.source = source
        self._parsed: Optional[ParsedSource] = None
        self._parse_attempted = False
        self._bindings: Dict[int, Dict[str, Optional[str]]] = {}

    @property
    def parsed(self) -> Optional[ParsedSource]:
        """The accepted parse, or None when every profile rejected the source"""
        if not self._parse_attempted:
            self._parse_attempted = True
            self._parsed = parse_source(preprocess_source(self.source))
            if self._parsed is None:
                logger.debug("Parse profiles exhausted; scope resolution unavailable")
            else:
                logger.debug(f"Source accepted under profile {self._parsed.profile.name}")
        return self._parsed

    def resolve(self, target: str) -> Optional[str]:
        """
        The template literal containing `target` with its local variables
        resolved.

        Returns None when no parse profile accepts the source or no
        template literal contains `target`.
        """
        parsed = self.parsed
        if parsed is None:
            return None

        template = find_template_node(parsed, target)
        if template is None:
            return None

        chain = build_scope_chain(template, parsed.source, self._bindings)
        return substitute_template(template, parsed.source, chain)

    def extract(self, target: str) -> Optional[str]:
        """
        Scope-resolving extraction with the lexical locator as fallback.

        Never raises: any failure in parsing or resolution yields the
        locator's answer instead.
        """
        try:
            result = self.resolve(target)
        except Exception as e:
            logger.debug(f"Scope resolution failed for {target[:40]!r}: {e}", exc_info=True)
            result = None

        if result is not None:
            return result
        return locate_literal(self.source, target)


def resolve_template(source: str, target: str) -> Optional[str]:
    """Scope-resolved template containing `target`, or None (no fallback)"""
    return TemplateResolver(source).resolve(target)


def extract_with_scope(source: str, target: str) -> Optional[str]:
    """Scope-resolved template containing `target`, else the lexical literal"""
    return TemplateResolver(source).extract(target)

"""
Lexical literal locator.

Finds the string or template literal that encloses a substring using only
character scanning, so it works on sources no parser accepts. It knows
nothing about braces or parentheses outside `${...}`.
"""
from typing import Optional

QUOTE_CHARS = ("`", '"', "'")


def _close_template(source: str, end: int) -> Optional[int]:
    """Index of the backtick closing the template, scanning from `end`."""
    depth = 0
    length = len(source)
    while end < length:
        char = source[end]
        if char == "`" and depth == 0:
            return end
        if char == "$" and source[end + 1:end + 2] == "{":
            depth += 1
            end += 2
        elif char == "}" and depth > 0:
            depth -= 1
            end += 1
        elif char == "\\":
            end += 2
        else:
            end += 1
    return None


def _close_quote(source: str, end: int, quote: str) -> Optional[int]:
    """Index of the next unescaped `quote`, scanning from `end`."""
    length = len(source)
    while end < length:
        char = source[end]
        if char == quote:
            return end
        if char == "\\":
            end += 2
        else:
            end += 1
    return None


def locate_literal(source: str, target: str) -> Optional[str]:
    """
    Return the literal around the first occurrence of `target`.

    A template literal is tried first: the nearest backtick before the match
    opens it and the first backtick outside `${...}` after the match closes
    it. If there is no opening backtick, or it never closes, the nearest of
    any quote character before the match is taken as the opener and its
    next unescaped twin as the closer.

    Args:
        source: JavaScript source, minified or not
        target: Substring to look for

    Returns:
        The literal including both delimiters, or None when `target` is
        absent or no enclosing literal can be closed
    """
    if not target:
        return None

    index = source.find(target)
    if index == -1:
        return None

    after = index + len(target)

    start = index
    while start > 0 and source[start] != "`":
        start -= 1

    if source[start] == "`":
        end = _close_template(source, after)
        if end is not None:
            return source[start:end + 1]

    start = index
    while start > 0 and source[start] not in QUOTE_CHARS:
        start -= 1

    if source[start] not in QUOTE_CHARS:
        return None

    end = _close_quote(source, after, source[start])
    if end is None:
        return None

    return source[start:end + 1]

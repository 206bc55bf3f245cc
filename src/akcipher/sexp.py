"""Structured expressions, the request/response form spoken by the public-key engine.

An expression is a list whose head is a token, followed by tokens, byte strings, integers or nested lists. They are
built from gcrypt-style templates in which `%m` takes an integer, `%b` a byte string and `%s` a token. Expressions
created by an engine are registered with it until released, and every expression is a context manager releasing itself
on exit, so a caller can guarantee release on every return path.

Typical usage example:

    with Sexp.build("(data (flags %s) (value %b))", "raw", b"Hi there!") as data:
        value = data.find_token("value")
"""
# Copyright (c) 2025-present Tech. TTGames
# SPDX-License-Identifier: EPL-2.0
import re
import typing

from akcipher import errors

Item = str | bytes | int | list

_LEXER = re.compile(r"\s*(?:(?P<open>\()|(?P<close>\))|(?P<spec>%[mbs])|(?P<atom>[A-Za-z0-9_.:*+/-]+))")
_ATOM = re.compile(r"[A-Za-z0-9_.:*+/-]+")


def _parse(template: str, args: tuple) -> list:
    """Parses a template into nested lists, substituting placeholders in order.

    Args:
        template: The template to parse.
        args: The values for the placeholders.

    Returns:
        The top-level list of the expression.

    Raises:
        EngineError: If the template is malformed or does not match the arguments.
    """
    stack: list[list] = []
    result = None
    args_left = list(args)
    pos = 0
    while pos < len(template):
        match = _LEXER.match(template, pos)
        if match is None:
            if template[pos:].isspace():
                break
            raise errors.EngineError(f"Invalid expression template at offset {pos}: {template!r}")
        pos = match.end()
        if result is not None:
            raise errors.EngineError(f"Trailing content after expression: {template!r}")
        if match["open"]:
            stack.append([])
            continue
        if not stack:
            raise errors.EngineError(f"Expression must start with a list: {template!r}")
        if match["close"]:
            done = stack.pop()
            if not done or not isinstance(done[0], str):
                raise errors.EngineError("Expression lists must start with a token")
            if stack:
                stack[-1].append(done)
            else:
                result = done
            continue
        if match["atom"]:
            stack[-1].append(match["atom"])
            continue
        if not args_left:
            raise errors.EngineError(f"Missing argument for {match['spec']}")
        stack[-1].append(_convert(match["spec"], args_left.pop(0)))
    if stack or result is None:
        raise errors.EngineError(f"Unbalanced expression template: {template!r}")
    if args_left:
        raise errors.EngineError(f"{len(args_left)} unused argument(s) for expression template")
    return result


def _convert(spec: str, arg: typing.Any) -> Item:
    if spec == "%m":
        if not isinstance(arg, int) or isinstance(arg, bool):
            raise errors.EngineError(f"%m expects an integer, got {type(arg).__name__}")
        return arg
    if spec == "%b":
        if not isinstance(arg, (bytes, bytearray, memoryview)):
            raise errors.EngineError(f"%b expects bytes, got {type(arg).__name__}")
        return bytes(arg)
    if not isinstance(arg, str) or not _ATOM.fullmatch(arg):
        raise errors.EngineError(f"%s expects a token, got {arg!r}")
    return arg


def _find(items: list, token: str) -> list | None:
    """Depth-first search for the first list headed by `token`."""
    if items[0] == token:
        return items
    for item in items[1:]:
        if isinstance(item, list):
            found = _find(item, token)
            if found is not None:
                return found
    return None


def _render(item: Item) -> str:
    if isinstance(item, list):
        return "(" + " ".join(_render(sub) for sub in item) + ")"
    if isinstance(item, str):
        return item
    if isinstance(item, int):
        return f"#{item:X}#" if item >= 0 else f"-#{-item:X}#"
    return f"#{item.hex().upper()}#"


class Sexp:
    """An engine-native structured expression.

    Attributes:
        released: Whether the expression has been released.
    """

    def __init__(self, items: list, registry: set | None = None) -> None:
        self._items = items
        self._registry = registry
        self.released = False
        if registry is not None:
            registry.add(self)

    @classmethod
    def build(cls, template: str, *args: typing.Any, registry: set | None = None) -> "Sexp":
        """Builds an expression from a template.

        Args:
            template: gcrypt-style template, e.g. `"(data (flags %s) (value %b))"`.
            *args: Values for the `%m`, `%b` and `%s` placeholders, in order.
            registry: Optional set tracking live expressions.

        Returns:
            The new expression.

        Raises:
            EngineError: If the template is malformed or the arguments do not match it.
        """
        return cls(_parse(template, args), registry)

    def __enter__(self) -> "Sexp":
        return self

    def __exit__(self, *exc_info) -> None:
        self.release()

    def release(self) -> None:
        """Releases the expression. Releasing twice is a no-op."""
        if self.released:
            return
        self.released = True
        self._items = []
        if self._registry is not None:
            self._registry.discard(self)

    def _live_items(self) -> list:
        if self.released:
            raise errors.EngineError("Use of a released expression")
        return self._items

    def __len__(self) -> int:
        return len(self._live_items())

    def __str__(self) -> str:
        if self.released:
            return "<released>"
        return _render(self._items)

    def head(self) -> str:
        """The token heading the expression."""
        return self._live_items()[0]

    def find_token(self, token: str) -> "Sexp | None":
        """Finds the first sub-list headed by `token`, searching depth-first.

        The result is a new expression registered with the same registry; it must be released as well.

        Args:
            token: The token to look for.

        Returns:
            The sub-list as its own expression, or None if not found.
        """
        found = _find(self._live_items(), token)
        if found is None:
            return None
        return Sexp(found, self._registry)

    def _nth(self, index: int) -> Item | None:
        items = self._live_items()
        if not 0 <= index < len(items):
            return None
        return items[index]

    def nth_data(self, index: int) -> bytes | None:
        """Returns element `index` as a byte string.

        Integers are rendered unsigned big-endian with no leading zero bytes, tokens are ASCII encoded.

        Args:
            index: Position within the list. The head is element 0.

        Returns:
            The data, or None if the element is missing, a list, or a negative integer.
        """
        item = self._nth(index)
        if isinstance(item, bytes):
            return item
        if isinstance(item, str):
            return item.encode("ascii")
        if isinstance(item, int) and item >= 0:
            return item.to_bytes((item.bit_length() + 7) // 8, byteorder="big", signed=False)
        return None

    def nth_mpi(self, index: int) -> int | None:
        """Returns element `index` as an integer, reading byte strings as unsigned big-endian."""
        item = self._nth(index)
        if isinstance(item, int):
            return item
        if isinstance(item, bytes):
            return int.from_bytes(item, byteorder="big", signed=False)
        return None

    def nth_string(self, index: int) -> str | None:
        item = self._nth(index)
        return item if isinstance(item, str) else None

"""Path scoping for handler entries.

A scope restricts the requests a handler applies to:

- ``None`` matches every request and rewrites nothing.
- A string is a path prefix: ``"/scope"`` matches ``/scope`` and
  ``/scope/...`` but not ``/scoped``.  The prefix is stripped from the
  request's ``sub_path`` and appended to its ``base_path``.
- A compiled regular expression must match at the start of the path, on
  a segment boundary; the matched text is consumed like a prefix.
- A list/tuple of the above matches when any element does, first match
  in list order wins.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Pattern, Sequence, Tuple, Union

ScopeItem = Union[str, Pattern]
Scope = Union[None, ScopeItem, Sequence[ScopeItem]]


@dataclass(frozen=True)
class ScopeMatch:
    """Outcome of a successful scope match.

    Attributes:
        consumed: Portion of the path the scope matched (``""`` when the
            scope rewrites nothing).
        sub_path: Path the handler should see.
        params: Named groups captured by a regex scope.
    """

    consumed: str
    sub_path: str
    params: Dict[str, Any] = field(default_factory=dict)


def is_scope(value: Any) -> bool:
    """Whether ``value`` looks like a scope rather than a handler."""
    if isinstance(value, (str, re.Pattern)):
        return True
    if isinstance(value, (list, tuple)) and value:
        return all(isinstance(item, (str, re.Pattern)) for item in value)
    return False


def _normalize_prefix(prefix: str) -> str:
    prefix = prefix.strip()
    if prefix and not prefix.startswith("/"):
        prefix = "/" + prefix
    return prefix.rstrip("/")


class ScopeMatcher:
    """Compiled form of a scope, evaluated once per request per entry."""

    def __init__(self, scope: Scope = None, case_sensitive: bool = False):
        self.scope = scope
        self.case_sensitive = case_sensitive
        self._items: List[ScopeItem] = []

        if scope is None:
            return
        items = list(scope) if isinstance(scope, (list, tuple)) else [scope]
        if not items:
            raise ValueError("Scope list cannot be empty")
        for item in items:
            if isinstance(item, str):
                self._items.append(_normalize_prefix(item))
            elif isinstance(item, re.Pattern):
                self._items.append(item)
            else:
                raise TypeError(
                    f"Scope items must be path strings or compiled patterns "
                    f"(type={type(item).__name__})"
                )

    def __repr__(self) -> str:
        return f"ScopeMatcher({self.scope!r})"

    @property
    def is_global(self) -> bool:
        return not self._items

    def match(self, path: str) -> Optional[ScopeMatch]:
        """Match ``path`` against the scope.

        Returns:
            A :class:`ScopeMatch`, or ``None`` when no scope item applies.
        """
        if not self._items:
            return ScopeMatch(consumed="", sub_path=path)

        for item in self._items:
            if isinstance(item, str):
                result = self._match_prefix(item, path)
            else:
                result = self._match_pattern(item, path)
            if result is not None:
                return result
        return None

    def matches(self, path: str) -> Tuple[bool, str]:
        """``(matched, rewritten_sub_path)`` for ``path``."""
        result = self.match(path)
        if result is None:
            return False, path
        sub_path = result.sub_path
        if not sub_path.startswith("/"):
            sub_path = "/" + sub_path
        return True, sub_path

    def _match_prefix(self, prefix: str, path: str) -> Optional[ScopeMatch]:
        if not prefix:
            return ScopeMatch(consumed="", sub_path=path)

        head = path[: len(prefix)]
        same = head == prefix if self.case_sensitive else head.lower() == prefix.lower()
        if not same:
            return None
        rest = path[len(prefix):]
        if rest and not rest.startswith("/"):
            return None
        return ScopeMatch(consumed=head, sub_path=rest)

    def _match_pattern(self, pattern: Pattern, path: str) -> Optional[ScopeMatch]:
        m = pattern.match(path)
        if m is None:
            return None
        consumed = m.group(0)
        rest = path[len(consumed):]
        # Only accept matches that end on a segment (or extension) boundary.
        if rest and not consumed.endswith("/") and rest[0] not in "/.":
            return None
        params = {k: v for k, v in m.groupdict().items() if v is not None}
        return ScopeMatch(consumed=consumed, sub_path=rest, params=params)

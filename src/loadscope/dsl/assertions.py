"""Named response predicates used as step assertions."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable

    from loadscope.dsl.http_client import HttpResponse


@dataclass(frozen=True)
class Assertion:
    """A named predicate over an HTTP response.

    Attributes:
        name: Label shown in failure reasons, e.g. ``"body contains Hello"``.
        predicate: Returns True when the response satisfies the check.
    """

    name: str
    predicate: Callable[[HttpResponse], bool]

    def check(self, response: HttpResponse) -> bool:
        """Evaluate the predicate. A predicate that raises counts as failed."""
        try:
            return bool(self.predicate(response))
        except Exception:  # noqa: BLE001
            return False


def check(name: str, predicate: Callable[[HttpResponse], bool]) -> Assertion:
    """Build an assertion from any callable."""
    return Assertion(name=name, predicate=predicate)


def status_in(*codes: int) -> Assertion:
    """Response status is one of *codes*."""
    allowed = frozenset(codes)
    return Assertion(
        name=f"status in {sorted(allowed)}",
        predicate=lambda r: r.status in allowed,
    )


def body_contains(text: str) -> Assertion:
    """Response body contains *text*."""
    return Assertion(name=f"body contains {text!r}", predicate=lambda r: text in r.text)


def json_has(key: str) -> Assertion:
    """Response body is a JSON object with *key*."""

    def _predicate(response: HttpResponse) -> bool:
        data = json.loads(response.text)
        return isinstance(data, dict) and key in data

    return Assertion(name=f"json has {key!r}", predicate=_predicate)


def max_latency(limit_ms: float) -> Assertion:
    """Response arrived within *limit_ms* milliseconds."""
    return Assertion(
        name=f"latency < {limit_ms:g}ms",
        predicate=lambda r: r.elapsed_ms < limit_ms,
    )

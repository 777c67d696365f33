"""Endpoint keys and the closed catalog of declared endpoints.

An endpoint key is ``METHOD /path/template`` where parameter segments are
written ``:name`` or ``{name}``. Concrete requests such as
``GET /user/users/42`` collapse onto ``GET /user/users/:id``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from loadscope._internal.errors import ConfigError

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

_METHODS = frozenset({"GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"})


def _split_path(path: str) -> tuple[str, ...]:
    path = path.split("?", 1)[0].split("#", 1)[0]
    return tuple(segment for segment in path.split("/") if segment)


def _is_param(segment: str) -> bool:
    return segment.startswith(":") or (segment.startswith("{") and segment.endswith("}"))


@dataclass(frozen=True, order=True)
class EndpointKey:
    """Normalized method + path template identifying a logical operation.

    Attributes:
        method: Upper-case HTTP method.
        template: Path template starting with ``/``.
    """

    method: str
    template: str

    def __post_init__(self) -> None:
        method = self.method.upper()
        if method not in _METHODS:
            msg = f"Unsupported HTTP method in endpoint key: {self.method!r}"
            raise ConfigError(msg)
        if not self.template.startswith("/"):
            msg = f"Endpoint path must start with '/', got: {self.template!r}"
            raise ConfigError(msg)
        object.__setattr__(self, "method", method)
        object.__setattr__(self, "template", "/" + "/".join(_split_path(self.template)))

    @classmethod
    def parse(cls, text: str) -> EndpointKey:
        """Parse ``"GET /user/users/:id"`` into a key.

        Raises:
            ConfigError: If the text is not ``METHOD /path``.
        """
        parts = text.strip().split(None, 1)
        if len(parts) != 2:
            msg = f"Endpoint key must look like 'GET /path', got: {text!r}"
            raise ConfigError(msg)
        return cls(method=parts[0], template=parts[1].strip())

    @classmethod
    def coerce(cls, value: EndpointKey | str) -> EndpointKey:
        """Return *value* as a key, parsing it when given as text."""
        if isinstance(value, EndpointKey):
            return value
        return cls.parse(value)

    @property
    def segments(self) -> tuple[str, ...]:
        """Path template split into segments."""
        return _split_path(self.template)

    @property
    def has_params(self) -> bool:
        """True if any template segment is a parameter."""
        return any(_is_param(s) for s in self.segments)

    def matches(self, method: str, path: str) -> bool:
        """Return True if a concrete request falls under this key.

        Query strings and trailing slashes are ignored.
        """
        if method.upper() != self.method:
            return False
        concrete = _split_path(path)
        template = self.segments
        if len(concrete) != len(template):
            return False
        return all(_is_param(t) or t == c for t, c in zip(template, concrete, strict=True))

    def __str__(self) -> str:
        return f"{self.method} {self.template}"


class EndpointCatalog:
    """Closed, ordered set of declared endpoint keys.

    Declaration order is preserved and is the order reports list endpoints
    in. Keys are fixed once the catalog is built.
    """

    def __init__(self, keys: Iterable[EndpointKey | str] = ()) -> None:
        """Build a catalog.

        Args:
            keys: Endpoint keys or their textual forms.

        Raises:
            ConfigError: If a key is declared twice.
        """
        self._keys: dict[EndpointKey, None] = {}
        for raw in keys:
            key = EndpointKey.coerce(raw)
            if key in self._keys:
                msg = f"Duplicate endpoint key: {key}"
                raise ConfigError(msg)
            self._keys[key] = None

    def resolve(self, method: str, path: str) -> EndpointKey | None:
        """Map a concrete request onto its declared key.

        Literal templates win over parameterised ones, so ``GET /users/me``
        resolves to ``GET /users/me`` even when ``GET /users/:id`` exists.

        Returns:
            The matching key, or None if the request is not declared.
        """
        fallback: EndpointKey | None = None
        for key in self._keys:
            if key.matches(method, path):
                if not key.has_params:
                    return key
                if fallback is None:
                    fallback = key
        return fallback

    def __contains__(self, key: object) -> bool:
        return key in self._keys

    def __iter__(self) -> Iterator[EndpointKey]:
        return iter(self._keys)

    def __len__(self) -> int:
        return len(self._keys)

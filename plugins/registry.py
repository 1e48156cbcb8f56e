from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Literal


class PluginConfigError(RuntimeError):
    pass


class LookupFailed(RuntimeError):
    pass


class LookupTimeout(LookupFailed):
    pass


class LookupUnavailable(LookupFailed):
    pass


LookupKind = Literal["dictionary", "thesaurus", "encyclopedia"]


@dataclass(frozen=True)
class LookupResult:
    found: bool
    source: str
    payload: dict[str, Any] = field(default_factory=dict)


AsyncLookupFn = Callable[[str], Awaitable[LookupResult]]


@dataclass(frozen=True)
class LookupSpec:
    kind: str
    source: str
    description: str
    fn: AsyncLookupFn


class LookupRegistry:
    def __init__(self) -> None:
        self._lookups: dict[str, LookupSpec] = {}

    def register_sync(self, spec: LookupSpec) -> None:
        if spec.kind in self._lookups:
            raise RuntimeError(f"Lookup already registered: {spec.kind}")
        self._lookups[spec.kind] = spec

    def get_lookups(self) -> dict[str, LookupSpec]:
        return dict(self._lookups)


REGISTRY = LookupRegistry()


def lookup(kind: LookupKind, source: str, description: str):
    def deco(fn: AsyncLookupFn) -> AsyncLookupFn:
        REGISTRY.register_sync(LookupSpec(kind=kind, source=source, description=description, fn=fn))
        return fn

    return deco

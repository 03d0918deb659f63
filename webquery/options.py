"""Per-stage setup: config transform, acceptance predicate and error tolerance."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Callable

from .config import HttpConfig
from .types import ErrorTolerance, FetchInfo

Configurer = Callable[[HttpConfig], HttpConfig]
Predicate = Callable[[FetchInfo], bool]


def _identity(config: HttpConfig) -> HttpConfig:
    return config


def _accept_all(info: FetchInfo) -> bool:
    return True


@dataclass(frozen=True, slots=True)
class QuerySetup:
    """What a stage does to the session config and to the responses it gets.

    `with_configurer` and `with_predicate` compose with what is already
    there, in declaration order; predicates only ever narrow. Tolerance is a
    single flag and is replaced outright.
    """

    configurer: Configurer = _identity
    predicate: Predicate = _accept_all
    tolerance: ErrorTolerance = ErrorTolerance.STRICT

    def with_configurer(self, configurer: Configurer) -> "QuerySetup":
        previous = self.configurer
        if previous is _identity:
            return replace(self, configurer=configurer)
        return replace(self, configurer=lambda config: configurer(previous(config)))

    def with_predicate(self, predicate: Predicate) -> "QuerySetup":
        previous = self.predicate
        if previous is _accept_all:
            return replace(self, predicate=predicate)
        return replace(self, predicate=lambda info: previous(info) and predicate(info))

    def with_tolerance(self, tolerance: ErrorTolerance) -> "QuerySetup":
        return self if tolerance == self.tolerance else replace(self, tolerance=tolerance)

    def configure(self, config: HttpConfig) -> HttpConfig:
        return self.configurer(config)

    def accepts(self, info: FetchInfo) -> bool:
        return bool(self.predicate(info))


__all__ = ["Configurer", "Predicate", "QuerySetup"]

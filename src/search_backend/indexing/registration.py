"""Collator registrations: which collator refreshes which type, and how often."""

from __future__ import annotations

from dataclasses import dataclass

from search_backend.collators.base import CollatorFactory


DEFAULT_REFRESH_INTERVAL_SECONDS = 600


@dataclass(frozen=True)
class CollatorRegistration:
    """Immutable binding of a collator factory to its refresh interval.

    ``type`` defaults to the factory's declared type; passing a different one
    is rejected.
    """

    factory: CollatorFactory
    refresh_interval_seconds: float = DEFAULT_REFRESH_INTERVAL_SECONDS
    type: str = ""

    def __post_init__(self) -> None:
        factory_type = getattr(self.factory, "type", None)
        if not isinstance(factory_type, str) or not factory_type:
            raise ValueError("Collator factory must declare a non-empty 'type'")
        if self.type and self.type != factory_type:
            raise ValueError(f"Registration type '{self.type}' does not match factory type '{factory_type}'")
        object.__setattr__(self, "type", factory_type)

        interval = self.refresh_interval_seconds
        if isinstance(interval, bool) or not isinstance(interval, (int, float)) or interval <= 0:
            raise ValueError(f"refresh_interval_seconds must be a positive number, got {interval!r}")

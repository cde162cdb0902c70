"""Index builder: collects collator registrations and builds a scheduler."""

from __future__ import annotations

import logging

from search_backend.collators.base import CollatorFactory
from search_backend.errors import DuplicateTypeError
from search_backend.indexing.registration import DEFAULT_REFRESH_INTERVAL_SECONDS, CollatorRegistration
from search_backend.indexing.scheduler import Scheduler, ScheduledCollator
from search_backend.search.engine import SearchEngine


logger = logging.getLogger(__name__)


class IndexBuilder:
    """Registers one collator per document type against a single search engine.

    Registrations are fixed once ``build`` is called; each build instantiates
    fresh collators, so two schedulers built from the same builder never share
    collator state.
    """

    def __init__(
        self,
        search_engine: SearchEngine,
        *,
        start_delay_seconds: float = 0.0,
        cycle_timeout_seconds: float | None = None,
    ) -> None:
        self._search_engine = search_engine
        self._registrations: dict[str, CollatorRegistration] = {}
        self.start_delay_seconds = start_delay_seconds
        self.cycle_timeout_seconds = cycle_timeout_seconds

    def add_collator(
        self,
        registration: CollatorRegistration | None = None,
        *,
        factory: CollatorFactory | None = None,
        refresh_interval_seconds: float = DEFAULT_REFRESH_INTERVAL_SECONDS,
    ) -> CollatorRegistration:
        """Register a collator.

        Accepts either a ready ``CollatorRegistration`` or the ``factory`` and
        ``refresh_interval_seconds`` keywords.

        Raises:
            DuplicateTypeError: a collator for the same type is already registered
        """
        if registration is None:
            if factory is None:
                raise TypeError("add_collator() requires a registration or a factory")
            registration = CollatorRegistration(factory=factory, refresh_interval_seconds=refresh_interval_seconds)
        elif factory is not None:
            raise TypeError("add_collator() takes a registration or a factory, not both")

        if registration.type in self._registrations:
            raise DuplicateTypeError(registration.type)
        self._registrations[registration.type] = registration
        logger.info(
            "Registered collator for type '%s' (refresh every %ss)",
            registration.type,
            registration.refresh_interval_seconds,
        )
        return registration

    def get_search_engine(self) -> SearchEngine:
        return self._search_engine

    def get_document_types(self) -> dict[str, CollatorRegistration]:
        return dict(self._registrations)

    def build(self) -> Scheduler:
        collators = [
            ScheduledCollator(
                type=registration.type,
                collator=registration.factory.get_collator(),
                interval_seconds=registration.refresh_interval_seconds,
            )
            for registration in self._registrations.values()
        ]
        if not collators:
            logger.warning("Building scheduler with no registered collators")
        return Scheduler(
            self._search_engine,
            collators,
            start_delay_seconds=self.start_delay_seconds,
            cycle_timeout_seconds=self.cycle_timeout_seconds,
        )

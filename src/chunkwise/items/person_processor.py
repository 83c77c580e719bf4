"""Placeholder business rule: upper-case the name and stamp the processing time."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from chunkwise.models.execution import utcnow
from chunkwise.models.person import Person

logger = logging.getLogger(__name__)


class PersonProcessor:
    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock

    def process(self, item: Person) -> Person:
        transformed = item.model_copy(
            update={"name": item.name.upper(), "processed_at": self._clock()}
        )
        logger.debug("Transforming person: %s -> %s", item.name, transformed.name)
        return transformed

"""
Per-variant lazily populated state.

Each ClientVariant owns one VariantState slot. Fields are filled with
check-then-fill memoisation: concurrent first use may compute a value twice,
the first stored value wins and every caller converges on it. None means
"unset" and is never stored, so a failed computation is retried next time.
"""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, fields
from typing import Any

from ..models.enums import ClientVariant

logger = logging.getLogger(__name__)


@dataclass
class VariantState:
    script_url: str | None = None
    script_content: str | None = None
    extractor: Any = None
    signature_timestamp: int | None = None
    service_worker: list | None = None
    client_version: str | None = None
    visitor_id: str | None = None

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))


class VariantStateStore:
    """Two independent VariantState slots, one per client variant."""

    def __init__(self):
        self._lock = threading.Lock()
        self._slots: dict[ClientVariant, VariantState] = {
            variant: VariantState() for variant in ClientVariant
        }
        self._generation = 0
        self._variant_generations: dict[ClientVariant, int] = {variant: 0 for variant in ClientVariant}

    @property
    def generation(self) -> int:
        """Number of resets so far."""
        return self._generation

    def get(self, variant: ClientVariant) -> VariantState:
        return self._slots[variant]

    def compute_once(
        self,
        variant: ClientVariant,
        field: str,
        compute: Callable[[], Any],
    ) -> Any:
        """
        Return the memoised *field* of *variant*, computing it if unset.

        A value computed across a reset of *variant* is returned to the caller
        but not stored.
        """
        value = getattr(self._slots[variant], field)
        if value is not None:
            return value

        started = self._variant_generations[variant]
        value = compute()
        if value is None:
            return None

        with self._lock:
            if self._variant_generations[variant] != started:
                logger.debug("Dropped %s computed before a reset (%s)", field, variant.value)
                return value
            slot = self._slots[variant]
            current = getattr(slot, field)
            if current is not None:
                return current
            setattr(slot, field, value)
        return value

    def set(self, variant: ClientVariant, field: str, value: Any):
        with self._lock:
            setattr(self._slots[variant], field, value)

    def reset(self, variant: ClientVariant | None = None):
        """Drop every memoised field of *variant*, or of all variants."""
        targets = [variant] if variant is not None else list(ClientVariant)
        with self._lock:
            for target in targets:
                self._slots[target] = VariantState()
                self._variant_generations[target] += 1
            self._generation += 1
        logger.debug("Reset state for %s", ", ".join(t.value for t in targets))

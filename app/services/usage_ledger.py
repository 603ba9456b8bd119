"""Capped, persisted log of estimated model token usage."""

from __future__ import annotations

import logging
import math
import threading
import time
import uuid
from typing import Optional

from pydantic import ValidationError

from app.clients.sqlite_store import SQLiteStore
from app.core.constants import CHARS_PER_TOKEN_ESTIMATE, MAX_TOKEN_LOG_ENTRIES
from app.schemas.analysis import TokenBudgetConfig, UsageLogEntry

CONFIG_KEY = "token_budget_config"
LOG_KEY = "token_usage_log"

logger = logging.getLogger(__name__)


class UsageLedger:
    """
    Record per-operation character counts and derived token estimates.

    Appends arrive from concurrent gateway calls, so every read-modify-write of
    the log happens under one lock. Newest entries come first.
    """

    def __init__(
        self,
        store: SQLiteStore,
        *,
        default_enabled: bool = False,
        max_entries: int = MAX_TOKEN_LOG_ENTRIES,
        chars_per_token: int = CHARS_PER_TOKEN_ESTIMATE,
    ) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        if chars_per_token <= 0:
            raise ValueError("chars_per_token must be positive")
        self._store = store
        self._max_entries = max_entries
        self._chars_per_token = chars_per_token
        self._lock = threading.Lock()
        self._config = self._load_config(default_enabled)
        self._entries = self._load_entries()

    def _load_config(self, default_enabled: bool) -> TokenBudgetConfig:
        payload = self._store.get_json(CONFIG_KEY)
        if payload is not None:
            try:
                return TokenBudgetConfig.model_validate(payload)
            except ValidationError:
                logger.warning("Discarding invalid stored token budget config.")
                self._store.delete(CONFIG_KEY)
        return TokenBudgetConfig(is_enabled=default_enabled)

    def _load_entries(self) -> list[UsageLogEntry]:
        payload = self._store.get_json(LOG_KEY)
        if payload is None:
            return []
        try:
            if not isinstance(payload, list):
                raise TypeError("usage log must be a list")
            entries = [UsageLogEntry.model_validate(item) for item in payload]
        except (TypeError, ValidationError):
            logger.warning("Discarding invalid stored usage log.")
            self._store.delete(LOG_KEY)
            return []
        return entries[: self._max_entries]

    def _persist_entries(self) -> None:
        self._store.set_json(LOG_KEY, [entry.model_dump() for entry in self._entries])

    @property
    def config(self) -> TokenBudgetConfig:
        with self._lock:
            return self._config.model_copy()

    @property
    def entries(self) -> list[UsageLogEntry]:
        with self._lock:
            return [entry.model_copy() for entry in self._entries]

    def estimate_tokens(self, input_chars: int, output_chars: int) -> int:
        return math.ceil((input_chars + output_chars) / self._chars_per_token)

    def record(
        self, operation: str, input_chars: int, output_chars: int
    ) -> Optional[UsageLogEntry]:
        """Prepend an entry and persist; a no-op while tracking is disabled."""
        with self._lock:
            if not self._config.is_enabled:
                return None
            entry = UsageLogEntry(
                id=uuid.uuid4().hex,
                timestamp=time.time(),
                operation=operation,
                est_input_chars=input_chars,
                est_output_chars=output_chars,
                est_tokens=self.estimate_tokens(input_chars, output_chars),
            )
            self._entries = [entry, *self._entries][: self._max_entries]
            self._persist_entries()
        logger.debug("Recorded %d estimated tokens for %s.", entry.est_tokens, operation)
        return entry

    def clear(self) -> None:
        with self._lock:
            self._entries = []
            self._store.delete(LOG_KEY)

    def update_config(self, config: TokenBudgetConfig) -> TokenBudgetConfig:
        with self._lock:
            self._config = config.model_copy()
            self._store.set_json(CONFIG_KEY, self._config.model_dump())
            return self._config.model_copy()


__all__ = ["CONFIG_KEY", "LOG_KEY", "UsageLedger"]

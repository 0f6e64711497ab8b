"""Partial-hit batching between the translation cache and the backend.

A batch is split into cache hits and misses, the misses go to the backend in
a single call, and the fresh translations are overlaid back at their
original positions. Output index ``i`` always belongs to input index ``i``.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from app.services.cache_store import CacheStore
from app.services.fingerprint import fingerprint
from app.services.translation import TranslationContext
from app.utils.errors import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_LOOKUP_WORKERS = 8


@dataclass
class RequestBatch:
    texts: list[str]
    context: TranslationContext


@dataclass
class ReconciliationPlan:
    keys: list[str]
    resolved: list[str | None]
    pending_indices: list[int] = field(default_factory=list)
    pending_texts: list[str] = field(default_factory=list)

    @property
    def hits(self) -> int:
        return len(self.keys) - len(self.pending_indices)


@dataclass
class ReconciliationResult:
    translations: list[str]
    cache_hits: int
    cache_misses: int
    backend_called: bool = False
    fallback_count: int = 0


class CacheCounters:
    """Cumulative hit/miss totals since process start."""

    def __init__(self):
        self.hits = 0
        self.misses = 0
        self._lock = threading.Lock()

    def record(self, hits: int, misses: int):
        with self._lock:
            self.hits += hits
            self.misses += misses

    def snapshot(self) -> dict:
        with self._lock:
            total = self.hits + self.misses
            return {
                'sessionHits': self.hits,
                'sessionMisses': self.misses,
                'hitRate': round(self.hits / total, 4) if total else 0.0,
            }


def force_align(lines: list[str], sources: list[str]) -> tuple[list[str], int]:
    """Fit backend output to the requested length.

    Extra lines are dropped; missing ones are filled with the matching
    source text. Returns (aligned lines, number of filled slots).
    """
    aligned = list(lines[:len(sources)])
    filled = len(sources) - len(aligned)
    aligned.extend(sources[len(aligned):])
    return aligned, filled


class BatchReconciler:
    def __init__(self, store: CacheStore, default_ttl: int | None = None,
                 max_workers: int = DEFAULT_LOOKUP_WORKERS, counters: CacheCounters | None = None):
        self.store = store
        self.default_ttl = default_ttl
        self.max_workers = max(1, max_workers)
        self.counters = counters or CacheCounters()

    def _fan_out(self, func, items):
        if len(items) <= 1 or self.max_workers == 1:
            return [func(item) for item in items]
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(items))) as executor:
            return list(executor.map(func, items))

    def _lookup(self, key: str) -> str | None:
        try:
            return self.store.get(key)
        except Exception as e:
            logger.warning(f"Cache lookup failed for {key[:8]}...: {e}")
            return None

    def plan(self, batch: RequestBatch, use_cache: bool = True) -> ReconciliationPlan:
        context = batch.context
        signature = context.context_signature()
        keys = [
            fingerprint(text, context.from_lang, context.to_lang, signature, context.custom_prompt)
            for text in batch.texts
        ]
        if use_cache:
            resolved = self._fan_out(self._lookup, keys)
        else:
            resolved = [None] * len(keys)

        plan = ReconciliationPlan(keys=keys, resolved=resolved)
        for index, cached in enumerate(resolved):
            if cached is None:
                plan.pending_indices.append(index)
                plan.pending_texts.append(batch.texts[index])
        return plan

    def _write_back(self, writes: list[tuple[str, str]]):
        def write(item):
            key, value = item
            try:
                ok = self.store.set(key, value, self.default_ttl)
            except Exception as e:
                logger.warning(f"Cache write failed for {key[:8]}...: {e}")
                return False
            return ok

        results = self._fan_out(write, writes)
        failed = results.count(False)
        if failed:
            logger.warning(f"{failed} of {len(writes)} cache writes failed")

    def reconcile(self, batch: RequestBatch, translator, use_cache: bool = True) -> ReconciliationResult:
        """Translate a batch, calling the backend at most once for all misses.

        Backend errors propagate unchanged; nothing is written to the cache
        for a failed call.
        """
        if not batch.texts:
            raise ValidationError('No texts to translate')

        plan = self.plan(batch, use_cache)
        misses = len(plan.pending_indices)
        result = ReconciliationResult(
            translations=list(plan.resolved),
            cache_hits=plan.hits,
            cache_misses=misses,
        )

        if misses:
            lines = translator.translate(plan.pending_texts, batch.context)
            result.backend_called = True
            aligned, filled = force_align(lines, plan.pending_texts)
            result.fallback_count = filled
            # A line-count mismatch means lines may be paired with the wrong texts
            cacheable = use_cache and len(lines) == misses
            if len(lines) != misses:
                logger.warning(
                    f"Backend returned {len(lines)} lines for {misses} texts; "
                    f"kept {filled} source texts, skipping cache write-back"
                )

            writes = []
            for index, translation in zip(plan.pending_indices, aligned):
                result.translations[index] = translation
                if cacheable and translation:
                    writes.append((plan.keys[index], translation))
            if writes:
                self._write_back(writes)

        if use_cache:
            self.counters.record(result.cache_hits, result.cache_misses)
        logger.info(
            f"Reconciled {len(batch.texts)} texts: {result.cache_hits} cached, {misses} translated"
        )
        return result

"""Cache administration: stats, clear, export and import."""

import logging
from datetime import datetime, timezone

from app.services.cache_store import CacheStore, RemoteHttpStore
from app.services.reconciler import CacheCounters
from app.utils.errors import StoreError, ValidationError

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = '1.1'
SUPPORTED_MAJOR_VERSION = '1'
DEFAULT_SAMPLE_SIZE = 5
DEFAULT_EXPORT_LIMIT = 1000
DEFAULT_IMPORT_LIMIT = 1000
# Rejected keys echoed back in an import report
MAX_REPORTED_REJECTIONS = 50


class CacheAdmin:
    """Admin operations on top of a CacheStore.

    Stats never raise: store failures are reported in the payload. Clear,
    export and import let StoreError propagate to the endpoint.
    """

    def __init__(self, store: CacheStore, counters: CacheCounters | None = None,
                 sample_size: int = DEFAULT_SAMPLE_SIZE, export_limit: int = DEFAULT_EXPORT_LIMIT,
                 import_ttl: int | None = None, import_limit: int = DEFAULT_IMPORT_LIMIT):
        self.store = store
        self.counters = counters or CacheCounters()
        self.sample_size = sample_size
        self.export_limit = export_limit
        self.import_ttl = import_ttl
        self.import_limit = max(0, import_limit)

    def _status(self) -> str:
        if not self.store.enabled:
            return 'env_missing'
        if isinstance(self.store, RemoteHttpStore):
            return 'connected'
        return 'memory'

    def _sample(self) -> list[dict]:
        sample = []
        for key in self.store.list_keys(self.sample_size):
            entry = self.store.get_entry(key)
            if entry is None:
                continue
            sample.append({
                'original': key[:8] + '...',
                'translation': entry.translation[:50],
                'createdAt': entry.to_dict()['timestamp'],
            })
        return sample

    def stats(self) -> dict:
        base = {
            'cacheType': self.store.cache_type,
            **self.counters.snapshot(),
        }

        if not self.store.enabled:
            return {
                **base,
                'error': getattr(self.store, 'config_error', None) or 'Cache is disabled',
                'hasUrl': getattr(self.store, 'has_url', False),
                'hasToken': getattr(self.store, 'has_token', False),
                'totalEntries': 0,
                'memoryUsage': 0,
                'topTranslations': [],
                'status': 'env_missing',
            }

        try:
            total = self.store.size()
            usage = self.store.usage_estimate()
            sample = self._sample()
        except StoreError as e:
            logger.error(f"Cache stats failed: {e.message}")
            return {
                **base,
                'error': e.message,
                'totalEntries': 0,
                'memoryUsage': 0,
                'topTranslations': [],
                'status': 'store_error',
            }

        return {
            **base,
            'totalEntries': total,
            'memoryUsage': usage,
            'topTranslations': sample,
            'status': self._status(),
        }

    def clear(self) -> dict:
        if not self.store.enabled:
            return {
                'success': False,
                'deletedEntries': 0,
                'message': 'Cache is disabled - nothing to clear',
            }
        deleted = self.store.clear()
        logger.info(f"Cache cleared via admin endpoint ({deleted} entries)")
        return {
            'success': True,
            'deletedEntries': deleted,
            'message': f'Successfully cleared {deleted} cache entries',
        }

    def export(self) -> dict:
        entries = self.store.export(self.export_limit)
        total = self.store.size() if self.store.enabled else 0
        snapshot = {
            'version': SNAPSHOT_VERSION,
            'exported': datetime.now(timezone.utc).isoformat(),
            'cacheType': self.store.cache_type,
            'totalKeys': max(total, len(entries)),
            'exportedKeys': len(entries),
            'entries': {key: entry.to_dict() for key, entry in entries.items()},
        }
        if not self.store.enabled:
            snapshot['error'] = 'Cache is disabled'
        return snapshot

    def import_snapshot(self, payload) -> dict:
        """Load a snapshot produced by ``export`` (or a bare key -> entry mapping)."""
        if not isinstance(payload, dict):
            raise ValidationError('Import payload must be a JSON object')

        if 'entries' in payload:
            version = payload.get('version')
            if version is not None and str(version).split('.')[0] != SUPPORTED_MAJOR_VERSION:
                raise ValidationError(f'Unsupported snapshot version: {version}')
            entries = payload['entries']
        else:
            entries = payload

        if not isinstance(entries, dict):
            raise ValidationError('Snapshot entries must be a JSON object')

        if not self.store.enabled:
            return {
                'success': False,
                'importedEntries': 0,
                'errors': len(entries),
                'rejected': list(entries)[:MAX_REPORTED_REJECTIONS],
                'message': 'Cache is disabled - nothing imported',
            }

        overflow = []
        if len(entries) > self.import_limit:
            keys = list(entries)
            overflow = keys[self.import_limit:]
            entries = {key: entries[key] for key in keys[:self.import_limit]}
            logger.warning(
                f"Cache import capped at {self.import_limit} entries, "
                f"skipping {len(overflow)}"
            )

        evictions_before = getattr(self.store, 'evictions', 0)
        accepted, rejected = self.store.import_entries(entries, self.import_ttl)
        # Entries pushed out by the store's size bound while importing
        evicted = getattr(self.store, 'evictions', 0) - evictions_before
        rejected = list(rejected) + overflow
        logger.info(f"Cache import: {accepted} accepted, {len(rejected)} rejected, {evicted} evicted")
        return {
            'success': True,
            'importedEntries': accepted,
            'errors': len(rejected),
            'rejected': [str(key) for key in rejected[:MAX_REPORTED_REJECTIONS]],
            'evicted': evicted,
        }

"""Translation cache stores.

Two interchangeable backends sit behind ``CacheStore``:

- ``InMemoryStore``: process-local, FIFO-bounded, lazily expiring map.
- ``RemoteHttpStore``: Redis reached through an Upstash-style REST endpoint
  with bearer-token auth.

The variant is picked once at startup by ``build_cache_store`` from config.
All TTLs are in seconds. A missing key is ``None``, never an error.
"""

import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass

import requests

from app.utils.errors import ConfigurationError, StoreError

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 10000
DEFAULT_HTTP_TIMEOUT = 2.0
SCAN_BATCH = 100
MGET_BATCH = 100
# Rough per-entry footprint used when the remote store cannot tell us
APPROX_ENTRY_BYTES = 100


@dataclass(frozen=True)
class CacheEntry:
    translation: str
    created_at: float
    ttl: int | None = None

    @property
    def expires_at(self) -> float | None:
        if not self.ttl or self.ttl <= 0:
            return None
        return self.created_at + self.ttl

    def is_expired(self, now: float) -> bool:
        expires_at = self.expires_at
        return expires_at is not None and now >= expires_at

    def to_dict(self) -> dict:
        return {
            'translation': self.translation,
            'timestamp': int(self.created_at * 1000),
            'ttl': self.ttl,
        }


def extract_translation(raw) -> str | None:
    """Shape check for imported entries.

    Accepts ``{"translation": str, "timestamp"?: number, "ttl"?: int}``.
    Returns the translation, or None when the entry must be rejected.
    """
    if not isinstance(raw, dict):
        return None
    translation = raw.get('translation')
    if not isinstance(translation, str):
        return None
    timestamp = raw.get('timestamp')
    if timestamp is not None and (isinstance(timestamp, bool) or not isinstance(timestamp, (int, float))):
        return None
    ttl = raw.get('ttl')
    if ttl is not None and (isinstance(ttl, bool) or not isinstance(ttl, int)):
        return None
    return translation


class CacheStore(ABC):
    """Fingerprint -> translation storage contract."""

    cache_type = 'unknown'
    enabled = True

    @abstractmethod
    def get_entry(self, key: str) -> CacheEntry | None:
        """Return the live entry for key, or None (absent, expired or unreachable)."""

    def get(self, key: str) -> str | None:
        entry = self.get_entry(key)
        return entry.translation if entry is not None else None

    @abstractmethod
    def set(self, key: str, value: str, ttl: int | None = None) -> bool:
        """Store a translation. Returns False on failure, never raises."""

    @abstractmethod
    def clear(self) -> int:
        """Remove everything and return how many entries were there."""

    @abstractmethod
    def list_keys(self, limit: int | None = None) -> list[str]:
        pass

    @abstractmethod
    def size(self) -> int:
        pass

    @abstractmethod
    def usage_estimate(self) -> int:
        """Approximate storage footprint in bytes."""

    def export(self, limit: int | None = None) -> dict[str, CacheEntry]:
        entries = {}
        for key in self.list_keys(limit):
            entry = self.get_entry(key)
            if entry is not None:
                entries[key] = entry
        return entries

    def import_entries(self, entries: dict, ttl: int | None = None) -> tuple[int, list]:
        """Write every well-formed entry. Returns (accepted count, rejected keys).

        Imported entries are written as fresh entries with the given TTL.
        """
        accepted = 0
        rejected = []
        for key, raw in entries.items():
            translation = extract_translation(raw)
            if not isinstance(key, str) or not key or translation is None:
                rejected.append(key)
                continue
            if self.set(key, translation, ttl):
                accepted += 1
            else:
                rejected.append(key)
        if rejected:
            logger.info(f"Cache import skipped {len(rejected)} malformed or unwritable entries")
        return accepted, rejected

    def close(self):
        pass


class InMemoryStore(CacheStore):
    """Process-local cache bounded by entry count.

    Eviction is FIFO on insertion order (overwriting a key re-inserts it at
    the tail), not LRU: reads never reorder entries. Expired entries are
    dropped lazily on lookup and swept before any size/listing operation.
    """

    cache_type = 'Memory (process-local)'

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES, default_ttl: int | None = None,
                 clock=time.time):
        if max_entries < 1:
            raise ValueError('max_entries must be at least 1')
        self.max_entries = max_entries
        self.default_ttl = default_ttl
        self.evictions = 0
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()

    def _sweep(self) -> int:
        # Caller holds the lock
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def get_entry(self, key):
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(self._clock()):
                del self._entries[key]
                return None
            return entry

    def set(self, key, value, ttl=None):
        if not isinstance(value, str):
            logger.warning(f"Refusing to cache non-string value for {key[:8]}...")
            return False
        ttl = self.default_ttl if ttl is None else ttl
        with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = CacheEntry(value, self._clock(), ttl)
            if len(self._entries) > self.max_entries:
                self._sweep()
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
                self.evictions += 1
        return True

    def clear(self):
        with self._lock:
            self._sweep()
            count = len(self._entries)
            self._entries.clear()
        logger.info(f"In-memory cache cleared ({count} entries)")
        return count

    def list_keys(self, limit=None):
        with self._lock:
            self._sweep()
            keys = list(self._entries)
        return keys if limit is None else keys[:max(limit, 0)]

    def size(self):
        with self._lock:
            self._sweep()
            return len(self._entries)

    def usage_estimate(self):
        with self._lock:
            self._sweep()
            return sum(
                len(key) + len(entry.translation.encode('utf-8'))
                for key, entry in self._entries.items()
            )


def check_remote_credentials(url: str | None, token: str | None):
    """Raise ConfigurationError naming whichever remote store setting is missing."""
    missing = []
    if not url:
        missing.append('UPSTASH_REDIS_REST_URL')
    if not token:
        missing.append('UPSTASH_REDIS_REST_TOKEN')
    if missing:
        raise ConfigurationError(f"Remote cache not configured: missing {', '.join(missing)}")


class RemoteHttpStore(CacheStore):
    """Redis over the Upstash REST protocol.

    Every command is ``POST <url>`` with a JSON array body such as
    ``["SET", key, value, "EX", 3600]`` and answers ``{"result": ...}`` or
    ``{"error": "..."}``.

    Without credentials the store is disabled: reads are empty, writes
    return False, no request is ever made.

    Lookup-path calls (``get``/``get_entry``/``set``) fold every failure
    into a miss or False. Admin-path calls (``clear``, ``size``,
    ``list_keys``, ``export``) raise StoreError so the admin endpoints can
    report it.
    """

    cache_type = 'Redis (Upstash REST)'

    def __init__(self, url: str | None, token: str | None, timeout: float = DEFAULT_HTTP_TIMEOUT,
                 default_ttl: int | None = None, session: requests.Session | None = None):
        self.url = (url or '').strip().rstrip('/')
        self.token = (token or '').strip()
        self.timeout = timeout
        self.default_ttl = default_ttl
        self.config_error = None
        self._session = None

        try:
            check_remote_credentials(self.url, self.token)
        except ConfigurationError as e:
            self.enabled = False
            self.config_error = e.message
            logger.warning(f"{e.message} - cache operations are disabled")
            return

        self.enabled = True
        self._session = session or requests.Session()
        logger.info(f"Remote cache configured: {self.url[:30]}... (token length {len(self.token)})")

    @property
    def has_url(self) -> bool:
        return bool(self.url)

    @property
    def has_token(self) -> bool:
        return bool(self.token)

    def _command(self, *args):
        """Run one Redis command and return its ``result``. Raises StoreError."""
        if not self.enabled:
            raise StoreError(self.config_error or 'Remote cache is disabled')

        name = args[0]
        try:
            response = self._session.post(
                self.url,
                json=list(args),
                headers={'Authorization': f'Bearer {self.token}'},
                timeout=self.timeout,
            )
        except requests.Timeout:
            logger.warning(f"Remote cache {name} timed out after {self.timeout}s")
            raise StoreError(f'Remote cache timed out during {name}')
        except requests.RequestException as e:
            logger.warning(f"Remote cache {name} failed: {e}")
            raise StoreError(f'Remote cache unreachable during {name}')

        if response.status_code in (401, 403):
            logger.error(
                f"Remote cache rejected credentials on {name} (HTTP {response.status_code}) - "
                f"check UPSTASH_REDIS_REST_TOKEN"
            )
            raise StoreError('Remote cache rejected credentials')

        try:
            data = response.json()
        except ValueError:
            logger.warning(f"Remote cache {name} returned malformed JSON (HTTP {response.status_code})")
            raise StoreError(f'Remote cache returned malformed response during {name}')

        if not isinstance(data, dict):
            logger.warning(f"Remote cache {name} returned unexpected payload type {type(data).__name__}")
            raise StoreError(f'Remote cache returned malformed response during {name}')

        if not response.ok or 'error' in data:
            message = data.get('error') or f'HTTP {response.status_code}'
            logger.warning(f"Remote cache {name} error: {message}")
            raise StoreError(f'Remote cache error during {name}: {message}')

        if 'result' not in data:
            logger.warning(f"Remote cache {name} reply has no result field")
            raise StoreError(f'Remote cache returned malformed response during {name}')

        return data['result']

    @staticmethod
    def _encode(value: str) -> str:
        return json.dumps(
            {'translation': value, 'createdAt': int(time.time() * 1000)},
            ensure_ascii=False,
        )

    @staticmethod
    def _decode(raw) -> CacheEntry | None:
        if raw is None:
            return None
        if not isinstance(raw, str):
            logger.warning(f"Ignoring non-string cache value of type {type(raw).__name__}")
            return None
        try:
            parsed = json.loads(raw)
        except ValueError:
            # Plain string written by an older client
            return CacheEntry(raw, time.time())
        if isinstance(parsed, dict):
            translation = parsed.get('translation')
            if not isinstance(translation, str):
                logger.warning("Ignoring cache value without a translation field")
                return None
            created_at = parsed.get('createdAt')
            if isinstance(created_at, (int, float)) and not isinstance(created_at, bool):
                return CacheEntry(translation, created_at / 1000)
            return CacheEntry(translation, time.time())
        if isinstance(parsed, str):
            return CacheEntry(parsed, time.time())
        return CacheEntry(raw, time.time())

    def get_entry(self, key):
        if not self.enabled:
            return None
        try:
            raw = self._command('GET', key)
        except StoreError:
            return None
        return self._decode(raw)

    def set(self, key, value, ttl=None):
        if not self.enabled:
            return False
        ttl = self.default_ttl if ttl is None else ttl
        command = ['SET', key, self._encode(value)]
        if ttl and ttl > 0:
            command += ['EX', int(ttl)]
        try:
            result = self._command(*command)
        except StoreError:
            logger.warning(f"Cache write skipped for {key[:8]}...")
            return False
        return result == 'OK'

    def size(self):
        if not self.enabled:
            return 0
        result = self._command('DBSIZE')
        try:
            return int(result)
        except (TypeError, ValueError):
            raise StoreError(f'Remote cache returned invalid DBSIZE: {result!r}')

    def clear(self):
        if not self.enabled:
            return 0
        try:
            count = self.size()
        except StoreError:
            count = 0
        result = self._command('FLUSHDB')
        if result != 'OK':
            raise StoreError(f'Remote cache FLUSHDB answered {result!r}')
        logger.info(f"Remote cache cleared ({count} entries)")
        return count

    def list_keys(self, limit=None):
        if not self.enabled or (limit is not None and limit <= 0):
            return []
        keys = []
        seen = set()
        cursor = '0'
        while True:
            result = self._command('SCAN', cursor, 'COUNT', SCAN_BATCH)
            if not isinstance(result, list) or len(result) != 2 or not isinstance(result[1], list):
                raise StoreError('Remote cache returned malformed SCAN reply')
            cursor = str(result[0])
            for key in result[1]:
                if key not in seen:
                    seen.add(key)
                    keys.append(key)
                    if limit is not None and len(keys) >= limit:
                        return keys
            if cursor == '0':
                return keys

    def usage_estimate(self):
        return self.size() * APPROX_ENTRY_BYTES

    def export(self, limit=None):
        if not self.enabled:
            return {}
        keys = self.list_keys(limit)
        entries = {}
        for start in range(0, len(keys), MGET_BATCH):
            chunk = keys[start:start + MGET_BATCH]
            values = self._command('MGET', *chunk)
            if not isinstance(values, list) or len(values) != len(chunk):
                raise StoreError('Remote cache returned malformed MGET reply')
            for key, raw in zip(chunk, values):
                entry = self._decode(raw)
                if entry is not None:
                    entries[key] = entry
        return entries

    def close(self):
        if self._session is not None:
            self._session.close()


def build_cache_store(config) -> CacheStore:
    """Pick and construct the cache backend from configuration.

    ``CACHE_BACKEND``: ``auto`` (remote when both credentials are present,
    memory otherwise), ``memory`` or ``remote``. ``remote`` without
    credentials yields a disabled store rather than an error.
    """
    backend = (config.get('CACHE_BACKEND') or 'auto').strip().lower()
    url = config.get('UPSTASH_REDIS_REST_URL')
    token = config.get('UPSTASH_REDIS_REST_TOKEN')
    ttl = config.get('CACHE_TTL_SECONDS')

    if backend not in ('auto', 'memory', 'remote'):
        logger.error(f"Unknown CACHE_BACKEND {backend!r} - falling back to auto selection")
        backend = 'auto'
    if backend == 'auto':
        backend = 'remote' if url and token else 'memory'

    if backend == 'memory':
        store = InMemoryStore(
            max_entries=config.get('CACHE_MAX_ENTRIES', DEFAULT_MAX_ENTRIES),
            default_ttl=ttl,
        )
    else:
        store = RemoteHttpStore(
            url,
            token,
            timeout=config.get('CACHE_HTTP_TIMEOUT', DEFAULT_HTTP_TIMEOUT),
            default_ttl=ttl,
        )
    logger.info(f"Translation cache backend: {store.cache_type} (enabled={store.enabled})")
    return store

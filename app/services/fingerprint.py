"""Cache key generation for translation requests.

A key identifies the 5-tuple (text, source language, target language,
glossary/context signature, custom prompt). The fields are serialized as a
JSON array before hashing: every field is quoted and escaped, so no field
boundary can be shifted ("ab" + "c" never encodes like "a" + "bc").

The SHA-256 digest is truncated to 32 hex chars (128 bits). That is a
deliberate trade-off for shorter keys in the remote store. A collision would
serve one text's translation for another; at 128 bits the birthday bound is
around 2**64 entries, far beyond any cache this service will hold.
"""

import hashlib
import json

KEY_LENGTH = 32


def _normalize(value) -> str:
    if value is None:
        return ''
    return str(value)


def fingerprint(text: str, from_lang: str, to_lang: str,
                context: str | None = None, custom_prompt: str | None = None) -> str:
    """Return the cache key for one text under the given translation parameters."""
    payload = json.dumps(
        [
            _normalize(text),
            _normalize(from_lang).strip(),
            _normalize(to_lang).strip(),
            _normalize(context),
            _normalize(custom_prompt),
        ],
        ensure_ascii=False,
        separators=(',', ':'),
    )
    return hashlib.sha256(payload.encode('utf-8')).hexdigest()[:KEY_LENGTH]

"""Translation backend: batch UI-text translation through the Anthropic Messages API."""
import json
import logging
from dataclasses import dataclass

import requests

from app.utils.errors import AuthError, BackendError, RateLimitError, UpstreamUnavailable

logger = logging.getLogger(__name__)

ANTHROPIC_API_URL = 'https://api.anthropic.com/v1/messages'
ANTHROPIC_VERSION = '2023-06-01'
DEFAULT_MODEL = 'claude-3-haiku-20240307'
DEFAULT_MAX_TOKENS = 4000
DEFAULT_TIMEOUT = 60


@dataclass
class TranslationContext:
    """Parameters shared by every text of one request."""
    from_lang: str
    to_lang: str
    glossary: dict | str | None = None
    custom_prompt: str = ''
    informal_tone: bool = False
    prefer_short_forms: bool = False

    def glossary_items(self) -> list[tuple[str, str]]:
        if isinstance(self.glossary, dict):
            return sorted((str(k), str(v)) for k, v in self.glossary.items())
        return []

    def editorial_rules(self) -> list[str]:
        rules = []
        if self.informal_tone:
            rules.append('Use the informal form of address.')
        if self.prefer_short_forms:
            rules.append('Prefer short, concise wording.')
        return rules

    def context_signature(self) -> str:
        """Canonical string for everything except languages and custom prompt.

        Dict glossaries are sorted so key order in the request does not
        change the cache key.
        """
        if isinstance(self.glossary, dict):
            glossary = self.glossary_items()
        else:
            glossary = (self.glossary or '').strip()
        return json.dumps(
            {
                'glossary': glossary,
                'informal': bool(self.informal_tone),
                'short': bool(self.prefer_short_forms),
            },
            ensure_ascii=False,
            sort_keys=True,
        )


def build_prompt(texts: list[str], context: TranslationContext) -> str:
    """Numbered-list prompt asking for one translation per line."""
    sections = [
        f'You are a professional user-interface translator. '
        f'Translate the following texts from "{context.from_lang}" to "{context.to_lang}".',
        'Context: these are user-interface strings (buttons, headings, messages). '
        'Keep formatting, use established UI terminology, and leave text that is '
        'already in the target language unchanged.',
    ]

    items = context.glossary_items()
    if items:
        sections.append('Glossary:\n' + '\n'.join(f'- "{src}" -> "{dst}"' for src, dst in items))
    elif isinstance(context.glossary, str) and context.glossary.strip():
        sections.append('Glossary and context:\n' + context.glossary.strip())

    rules = context.editorial_rules()
    if rules:
        sections.append('Editorial rules:\n' + '\n'.join(f'- {rule}' for rule in rules))

    if context.custom_prompt and context.custom_prompt.strip():
        sections.append('Additional instructions:\n' + context.custom_prompt.strip())

    numbered = '\n'.join(f'{i + 1}. {text}' for i, text in enumerate(texts))
    sections.append(f'Texts to translate:\n{numbered}')
    sections.append(
        'Return ONLY the translations in the same order, one per line, '
        'without numbering or comments.'
    )
    return '\n\n'.join(sections)


def parse_lines(text: str) -> list[str]:
    """Split a model reply into non-empty stripped lines."""
    return [line.strip() for line in text.strip().split('\n') if line.strip()]


def _error_message(response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return f'HTTP {response.status_code}'
    if isinstance(payload, dict):
        error = payload.get('error')
        if isinstance(error, dict) and error.get('message'):
            return error['message']
        if isinstance(error, str):
            return error
    return f'HTTP {response.status_code}'


class ClaudeTranslator:
    """Opaque translate(texts, context) -> lines call against the Messages API.

    Output is returned as the model produced it (possibly too short or too
    long); alignment with the request is the caller's job.
    """

    def __init__(self, api_key: str, model: str = DEFAULT_MODEL,
                 max_tokens: int = DEFAULT_MAX_TOKENS, timeout: float = DEFAULT_TIMEOUT,
                 api_url: str = ANTHROPIC_API_URL, session=None):
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.api_url = api_url
        self._session = session or requests

    def translate(self, texts: list[str], context: TranslationContext) -> list[str]:
        body = {
            'model': self.model,
            'max_tokens': self.max_tokens,
            'messages': [{'role': 'user', 'content': build_prompt(texts, context)}],
        }
        headers = {
            'Content-Type': 'application/json',
            'x-api-key': self.api_key,
            'anthropic-version': ANTHROPIC_VERSION,
        }

        try:
            response = self._session.post(self.api_url, json=body, headers=headers, timeout=self.timeout)
        except requests.Timeout:
            logger.warning(f"Translation API timeout after {self.timeout}s")
            raise UpstreamUnavailable('Translation service timed out')
        except requests.RequestException as e:
            logger.warning(f"Translation API unreachable: {e}")
            raise UpstreamUnavailable('Translation service is unreachable')

        if not response.ok:
            message = _error_message(response)
            status = response.status_code
            logger.warning(f"Translation API error {status}: {message}")
            if status in (401, 403):
                raise AuthError(f'Translation API rejected the API key: {message}')
            if status == 429:
                raise RateLimitError(f'Translation API rate limit exceeded: {message}')
            if status >= 500:
                raise UpstreamUnavailable(f'Translation service unavailable: {message}')
            raise BackendError(f'Translation API error: {message}')

        try:
            data = response.json()
            blocks = data['content']
            reply = next(block['text'] for block in blocks if block.get('type', 'text') == 'text')
            lines = parse_lines(reply)
        except (ValueError, KeyError, TypeError, AttributeError, StopIteration):
            logger.warning("Translation API returned an unexpected response format")
            raise BackendError('Translation API returned an unexpected response format')

        logger.info(f"Translated batch of {len(texts)} texts ({len(lines)} lines returned, model {self.model})")
        return lines

"""Translation route: cached batch translation of UI texts."""

from flask import Blueprint, request, jsonify, current_app
from app import limiter
from app.services.reconciler import RequestBatch
from app.services.translation import TranslationContext
from app.utils.errors import ValidationError

translate_bp = Blueprint('translate', __name__)


def _as_bool(value, default):
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in ('true', '1', 'yes')
    return bool(value)


def parse_translate_request(data) -> tuple[RequestBatch, str, bool]:
    """Validate the request body. Returns (batch, api key, use_cache)."""
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')

    api_key = data.get('apiKey')
    if not api_key or not isinstance(api_key, str):
        raise ValidationError('API key is required')

    texts = data.get('texts')
    if not texts or not isinstance(texts, list):
        raise ValidationError('No texts to translate')
    if not all(isinstance(text, str) for text in texts):
        raise ValidationError('Every entry in texts must be a string')

    from_lang = data.get('fromLang')
    to_lang = data.get('toLang')
    if not from_lang or not to_lang or not isinstance(from_lang, str) or not isinstance(to_lang, str):
        raise ValidationError('fromLang and toLang are required')

    glossary = data.get('glossary', data.get('glossaryContext'))
    if glossary is not None and not isinstance(glossary, (dict, str)):
        raise ValidationError('glossary must be an object or a string')

    custom_prompt = data.get('customPrompt') or ''
    if not isinstance(custom_prompt, str):
        raise ValidationError('customPrompt must be a string')

    context = TranslationContext(
        from_lang=from_lang,
        to_lang=to_lang,
        glossary=glossary,
        custom_prompt=custom_prompt,
        informal_tone=_as_bool(data.get('useInformalTone'), False),
        prefer_short_forms=_as_bool(data.get('preferShortForms'), False),
    )
    return RequestBatch(texts=texts, context=context), api_key, _as_bool(data.get('useCache'), True)


@translate_bp.route('', methods=['POST'])
@limiter.limit(lambda: current_app.config['TRANSLATE_RATE_LIMIT'])
def translate():
    """Translate a batch of UI texts, serving what we can from the cache.

    Body:
    - texts: list of source strings (order is preserved in the response)
    - fromLang, toLang: language codes
    - glossary / glossaryContext: term mapping or free-text context (optional)
    - customPrompt: extra instructions (optional)
    - useInformalTone, preferShortForms: editorial flags (optional)
    - apiKey: translation provider key
    - useCache: default true
    """
    batch, api_key, use_cache = parse_translate_request(request.get_json(silent=True))

    reconciler = current_app.extensions['cache_reconciler']
    translator = current_app.extensions['translator_factory'](api_key)
    result = reconciler.reconcile(batch, translator, use_cache=use_cache)

    return jsonify({
        'translations': result.translations,
        'info': {
            'originalCount': len(batch.texts),
            'translatedCount': len(result.translations),
            'cacheHits': result.cache_hits,
            'cacheMisses': result.cache_misses,
            'fallbackCount': result.fallback_count,
            'model': current_app.config['TRANSLATION_MODEL'],
            'cacheType': reconciler.store.cache_type if use_cache else 'disabled',
        }
    }), 200

"""
Pytest configuration and fixtures for testing the translation proxy.
"""

import os
import sys
import pytest
import requests
from faker import Faker

# Add the parent directory to path for imports
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from app import create_app
from app.services.cache_store import InMemoryStore, RemoteHttpStore

fake = Faker()

UPSTASH_URL = 'https://test-cache.upstash.io'
UPSTASH_TOKEN = 'test-token-123'


class FakeTranslator:
    """Stands in for ClaudeTranslator; records every call."""

    def __init__(self):
        self.calls = []
        self.error = None
        self.extra_lines = 0
        self.drop_lines = 0

    def translate(self, texts, context):
        self.calls.append((list(texts), context))
        if self.error is not None:
            raise self.error
        lines = [f'{text} [{context.to_lang}]' for text in texts]
        if self.drop_lines:
            lines = lines[:-self.drop_lines]
        lines += [f'extra {i}' for i in range(self.extra_lines)]
        return lines


class FakeResponse:
    def __init__(self, status_code, payload=None, malformed=False):
        self.status_code = status_code
        self._payload = payload
        self._malformed = malformed

    @property
    def ok(self):
        return 200 <= self.status_code < 300

    def json(self):
        if self._malformed:
            raise ValueError('No JSON object could be decoded')
        return self._payload


class FakeUpstash:
    """In-memory imitation of the Upstash REST command endpoint."""

    def __init__(self, token=UPSTASH_TOKEN):
        self.token = token
        self.data = {}
        self.ttls = {}
        self.commands = []
        self.error = None
        self.status_override = None
        self.malformed = False
        self.fail_commands = set()

    def post(self, url, json=None, headers=None, timeout=None):
        self.commands.append(list(json))
        if self.error is not None:
            raise self.error
        if (headers or {}).get('Authorization') != f'Bearer {self.token}':
            return FakeResponse(401, {'error': 'Unauthorized'})
        if self.status_override:
            return FakeResponse(self.status_override, {'error': 'Service unavailable'})
        if self.malformed:
            return FakeResponse(200, malformed=True)

        name, args = json[0].upper(), json[1:]
        if name in self.fail_commands:
            return FakeResponse(200, {'error': f'ERR {name} failed'})
        if name == 'GET':
            return FakeResponse(200, {'result': self.data.get(args[0])})
        if name == 'SET':
            self.data[args[0]] = args[1]
            if len(args) >= 4 and args[2] == 'EX':
                self.ttls[args[0]] = args[3]
            return FakeResponse(200, {'result': 'OK'})
        if name == 'MGET':
            return FakeResponse(200, {'result': [self.data.get(key) for key in args]})
        if name == 'DBSIZE':
            return FakeResponse(200, {'result': len(self.data)})
        if name == 'FLUSHDB':
            self.data.clear()
            self.ttls.clear()
            return FakeResponse(200, {'result': 'OK'})
        if name == 'SCAN':
            cursor, count = int(args[0]), int(args[2])
            keys = list(self.data)
            page = keys[cursor:cursor + count]
            next_cursor = cursor + count if cursor + count < len(keys) else 0
            return FakeResponse(200, {'result': [str(next_cursor), page]})
        return FakeResponse(400, {'error': f'ERR unknown command {name}'})

    def close(self):
        pass


class FakeClock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_store(clock):
    return InMemoryStore(max_entries=100, default_ttl=3600, clock=clock)


@pytest.fixture
def upstash():
    return FakeUpstash()


@pytest.fixture
def remote_store(upstash):
    return RemoteHttpStore(UPSTASH_URL, UPSTASH_TOKEN, default_ttl=3600, session=upstash)


@pytest.fixture
def fake_translator():
    return FakeTranslator()


@pytest.fixture
def ui_texts():
    """A handful of realistic, distinct UI strings."""
    return [fake.unique.sentence(nb_words=3) for _ in range(6)]


@pytest.fixture
def app(fake_translator):
    """Create application for testing with an in-memory cache."""
    app = create_app('testing', overrides={
        'CACHE_BACKEND': 'memory',
        'CACHE_ADMIN_SECRET': '',
    })
    app.extensions['translator_factory'] = lambda api_key: fake_translator
    yield app
    app.extensions['translation_cache'].close()


@pytest.fixture
def client(app):
    """Create test client for each test function."""
    return app.test_client()


@pytest.fixture
def translate_body():
    def build(texts, **overrides):
        body = {
            'texts': texts,
            'fromLang': 'en',
            'toLang': 'ru',
            'apiKey': 'sk-test-' + fake.pystr(min_chars=8, max_chars=8),
        }
        body.update(overrides)
        return body
    return build


@pytest.fixture
def network_down():
    return requests.ConnectionError('Connection refused')

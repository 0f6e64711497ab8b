"""Remote (Upstash REST) cache store: protocol and failure folding."""

import json

import pytest
import requests

from app.services.cache_store import RemoteHttpStore
from app.utils.errors import StoreError

from conftest import UPSTASH_TOKEN, UPSTASH_URL


class TestRemoteProtocol:

    def test_set_sends_expiry_and_bearer_token(self, remote_store, upstash):
        assert remote_store.set('k1', 'Сохранить', ttl=120) is True
        assert upstash.commands[-1][:2] == ['SET', 'k1']
        assert upstash.commands[-1][3:] == ['EX', 120]
        stored = json.loads(upstash.data['k1'])
        assert stored['translation'] == 'Сохранить'
        assert isinstance(stored['createdAt'], int)

    def test_set_uses_default_ttl(self, remote_store, upstash):
        remote_store.set('k1', 'X')
        assert upstash.ttls['k1'] == 3600

    def test_get_round_trip(self, remote_store):
        remote_store.set('k1', 'X')
        assert remote_store.get('k1') == 'X'

    def test_missing_key_is_none_not_error(self, remote_store, upstash):
        assert remote_store.get('absent') is None
        assert upstash.commands == [['GET', 'absent']]

    def test_plain_string_values_are_read(self, remote_store, upstash):
        upstash.data['legacy'] = 'Отмена'
        assert remote_store.get('legacy') == 'Отмена'

    def test_numeric_looking_plain_value(self, remote_store, upstash):
        upstash.data['n'] = '404'
        assert remote_store.get('n') == '404'

    def test_json_without_translation_is_a_miss(self, remote_store, upstash):
        upstash.data['odd'] = json.dumps({'foo': 'bar'})
        assert remote_store.get('odd') is None

    def test_size_clear(self, remote_store, upstash):
        for i in range(3):
            remote_store.set(f'k{i}', 'v')
        assert remote_store.size() == 3
        assert remote_store.clear() == 3
        assert upstash.data == {}

    def test_list_keys_follows_scan_cursor(self, remote_store):
        for i in range(250):
            remote_store.set(f'k{i}', 'v')
        keys = remote_store.list_keys()
        assert len(keys) == 250
        assert keys[0] == 'k0'

    def test_list_keys_limit(self, remote_store):
        for i in range(250):
            remote_store.set(f'k{i}', 'v')
        assert len(remote_store.list_keys(limit=120)) == 120

    def test_list_keys_zero_limit(self, remote_store, upstash):
        remote_store.set('k0', 'v')
        sent = len(upstash.commands)
        assert remote_store.list_keys(limit=0) == []
        assert remote_store.export(limit=0) == {}
        assert len(upstash.commands) == sent

    def test_export_uses_mget(self, remote_store, upstash):
        for i in range(5):
            remote_store.set(f'k{i}', f'v{i}')
        exported = remote_store.export(limit=3)
        assert {key: entry.translation for key, entry in exported.items()} == {
            'k0': 'v0', 'k1': 'v1', 'k2': 'v2',
        }
        assert any(command[0] == 'MGET' for command in upstash.commands)

    def test_usage_estimate(self, remote_store):
        remote_store.set('a', 'x')
        remote_store.set('b', 'y')
        assert remote_store.usage_estimate() == 200


class TestFailureFolding:

    @pytest.mark.parametrize('error', [
        requests.ConnectionError('refused'),
        requests.Timeout('slow'),
    ])
    def test_network_failure_is_a_miss(self, remote_store, upstash, error):
        upstash.data['k1'] = 'X'
        upstash.error = error
        assert remote_store.get('k1') is None
        assert remote_store.set('k2', 'Y') is False

    def test_non_2xx_is_a_miss(self, remote_store, upstash):
        upstash.data['k1'] = 'X'
        upstash.status_override = 503
        assert remote_store.get('k1') is None
        assert remote_store.set('k1', 'Y') is False

    def test_malformed_json_is_a_miss(self, remote_store, upstash):
        upstash.data['k1'] = 'X'
        upstash.malformed = True
        assert remote_store.get('k1') is None

    def test_error_reply_is_a_miss(self, remote_store, upstash):
        upstash.data['k1'] = 'X'
        upstash.fail_commands.add('GET')
        assert remote_store.get('k1') is None

    def test_bad_token(self, upstash):
        store = RemoteHttpStore(UPSTASH_URL, 'wrong-token', session=upstash)
        assert store.get('k1') is None
        with pytest.raises(StoreError, match='rejected credentials'):
            store.size()

    def test_admin_calls_raise_store_error(self, remote_store, upstash):
        upstash.error = requests.ConnectionError('refused')
        with pytest.raises(StoreError):
            remote_store.size()
        with pytest.raises(StoreError):
            remote_store.list_keys()
        with pytest.raises(StoreError):
            remote_store.export()

    def test_clear_tolerates_dbsize_failure(self, remote_store, upstash):
        remote_store.set('k1', 'X')
        upstash.fail_commands.add('DBSIZE')
        assert remote_store.clear() == 0
        assert upstash.data == {}

    def test_clear_raises_when_flush_fails(self, remote_store, upstash):
        upstash.fail_commands.add('FLUSHDB')
        with pytest.raises(StoreError):
            remote_store.clear()


class TestDisabledStore:

    @pytest.mark.parametrize('url, token', [
        (None, None),
        (UPSTASH_URL, ''),
        ('', UPSTASH_TOKEN),
    ])
    def test_missing_credentials_disable_every_operation(self, url, token, upstash):
        store = RemoteHttpStore(url, token, session=upstash)
        assert store.enabled is False
        assert store.get('k') is None
        assert store.set('k', 'v') is False
        assert store.size() == 0
        assert store.clear() == 0
        assert store.list_keys() == []
        assert store.export() == {}
        assert store.import_entries({'k': {'translation': 'v'}}) == (0, ['k'])
        assert upstash.commands == []

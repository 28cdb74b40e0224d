"""
Tests for mailbox token storage and configuration paths.
"""

import json
import os
import tempfile
from pathlib import Path
from unittest.mock import patch

import inbox_agent.config.credentials as credentials_module
from inbox_agent.config import Config
from inbox_agent.config.credentials import TokenStore, get_token_store


class TestTokenStore:
    """Test suite for TokenStore class."""

    def setup_method(self):
        self.temp_file = tempfile.NamedTemporaryFile(mode='w', delete=False, suffix='.json')
        self.temp_file.close()
        self.store_path = Path(self.temp_file.name)
        self.store = TokenStore(self.store_path)

    def teardown_method(self):
        if self.store_path.exists():
            self.store_path.unlink()

    def test_init_creates_empty_store(self):
        assert self.store.list_stored_emails() == []

    def test_set_and_get_access_token(self):
        self.store.set_token("user@example.com", "ya29.token")

        assert self.store.get_access_token("user@example.com") == "ya29.token"

    def test_optional_fields_are_kept(self):
        self.store.set_token("user@example.com", "ya29.token",
                             refresh_token="1//refresh", expires_at="2026-01-01T00:00:00Z")

        record = self.store.get_token("user@example.com")
        assert record == {
            'access_token': "ya29.token",
            'refresh_token': "1//refresh",
            'expires_at': "2026-01-01T00:00:00Z",
        }

    def test_get_missing_token(self):
        assert self.store.get_token("nobody@example.com") is None
        assert self.store.get_access_token("nobody@example.com") is None

    def test_case_insensitive_lookup(self):
        self.store.set_token("User@Example.COM", "abc")

        assert self.store.get_access_token("user@example.com") == "abc"
        assert self.store.has_token("USER@EXAMPLE.COM")

    def test_remove_token(self):
        self.store.set_token("user@example.com", "abc")

        assert self.store.remove_token("user@example.com") is True
        assert not self.store.has_token("user@example.com")
        assert self.store.remove_token("user@example.com") is False

    def test_persistence_across_instances(self):
        self.store.set_token("a@example.com", "one")
        self.store.set_token("b@example.com", "two")

        reloaded = TokenStore(self.store_path)
        assert reloaded.list_stored_emails() == ["a@example.com", "b@example.com"]
        assert reloaded.get_access_token("b@example.com") == "two"

    def test_file_permissions(self):
        self.store.set_token("user@example.com", "abc")

        mode = os.stat(self.store_path).st_mode & 0o777
        assert mode == 0o600

    def test_corrupted_file_starts_fresh(self):
        with open(self.store_path, 'w') as f:
            f.write("{ not json")

        store = TokenStore(self.store_path)
        assert store.list_stored_emails() == []

    def test_non_dict_file_starts_fresh(self):
        with open(self.store_path, 'w') as f:
            json.dump(["a", "b"], f)

        assert TokenStore(self.store_path).list_stored_emails() == []

    def test_in_memory_store_writes_nothing(self, tmp_path):
        store = TokenStore(None)
        store.set_token("user@example.com", "abc")

        assert store.get_access_token("user@example.com") == "abc"
        assert list(tmp_path.iterdir()) == []


class TestGlobalTokenStore:

    def setup_method(self):
        credentials_module._token_store = None

    def teardown_method(self):
        credentials_module._token_store = None

    def test_singleton_uses_given_path(self, tmp_path):
        path = tmp_path / "tokens.json"
        store = get_token_store(path)

        assert store.store_path == path
        assert get_token_store() is store

    def test_default_path_comes_from_config(self, tmp_path):
        with patch.object(Config, 'get_token_store_path', return_value=tmp_path / "t.json"):
            store = get_token_store()

        assert store.store_path == tmp_path / "t.json"


class TestConfigPaths:

    def test_memory_database_has_no_path(self):
        with patch.object(Config, 'DATABASE_URL', 'sqlite:///:memory:'):
            assert Config.get_database_path() == 'sqlite:///:memory:'

    def test_token_store_path_expands_data_dir(self, tmp_path):
        with patch.dict(os.environ, {'TOKEN_STORE_PATH': '{$DATA_DIR}/tokens.json'}), \
                patch.object(Config, 'get_data_dir', return_value=tmp_path):
            assert Config.get_token_store_path() == tmp_path / 'tokens.json'

"""Test settings and credential storage"""

import pytest
import yaml

from qobuz_sync.config.credentials import CredentialStore
from qobuz_sync.config.settings import Settings


class TestSettings:
    """Test Settings loading"""

    def test_yaml_overrides_defaults(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(yaml.dump({
            'search': {'debounce_ms': 250, 'unknown_key': 1},
            'network': {'rate_limit': 3},
            'unknown_section': {'x': 1},
        }))

        settings = Settings(str(config_file))

        assert settings.search.debounce_ms == 250
        assert settings.search.search_limit == 100
        assert settings.network.rate_limit == 3
        assert not hasattr(settings.search, 'unknown_key')

    def test_environment_overrides_file(self, tmp_path, monkeypatch):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(yaml.dump({'qobuz': {'app_id': 'from-file'}}))
        monkeypatch.setenv('QOBUZ_APP_ID', 'from-env')

        settings = Settings(str(config_file))

        assert settings.qobuz.app_id == 'from-env'

    def test_save_config_strips_secret(self, tmp_path, settings):
        path = tmp_path / "saved.yaml"
        settings.save_config(str(path))

        saved = yaml.safe_load(path.read_text())
        assert saved['qobuz']['app_secret'] == ""
        assert saved['qobuz']['app_id'] == settings.qobuz.app_id
        assert settings.qobuz.app_secret == "secret"

    def test_validate(self, settings):
        assert settings.validate()
        settings.search.debounce_ms = -1
        assert not settings.validate()


class TestCredentialStore:
    """Test CredentialStore"""

    def test_save_and_load(self, tmp_path):
        store = CredentialStore(tmp_path / "nested" / "session.json")
        store.save({'token': 't', 'user_id': '1', 'quality': 5})

        loaded = store.load()
        assert loaded['token'] == 't'
        assert loaded['quality'] == 5
        assert 'saved_at' in loaded

    def test_missing_fields_rejected(self, tmp_path):
        with pytest.raises(ValueError):
            CredentialStore(tmp_path / "session.json").save({'token': 't'})

    def test_update_and_clear(self, tmp_path):
        store = CredentialStore(tmp_path / "session.json")
        store.update(quality=6)
        assert store.load() is None

        store.save({'token': 't', 'user_id': '1', 'quality': 0})
        store.update(quality=6)
        assert store.load()['quality'] == 6

        store.clear()
        store.clear()
        assert store.load() is None

    def test_corrupt_file_ignored(self, tmp_path):
        path = tmp_path / "session.json"
        path.write_text("{not json")
        assert CredentialStore(path).load() is None

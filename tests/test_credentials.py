"""Tests for repohost.credentials and token resolution."""

import base64
import os
import stat

import pytest

from repohost import CredentialStore, get_token


@pytest.fixture
def store(tmp_path):
    return CredentialStore(tmp_path / "blogcms" / "credentials")


class TestCredentialStore:
    def test_round_trip(self, store):
        store.save("ghp_secret")

        assert store.load() == "ghp_secret"
        assert "ghp_secret" not in store.path.read_text()

    @pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
    def test_files_are_owner_only(self, store):
        store.save("ghp_secret")

        for path in (store.path, store.key_path):
            assert stat.S_IMODE(path.stat().st_mode) == 0o600

    def test_load_without_file(self, store):
        assert store.load() is None
        assert not store.exists()

    def test_clear_is_idempotent(self, store):
        store.save("ghp_secret")
        store.clear()
        store.clear()

        assert store.load() is None

    def test_other_host_cannot_decrypt(self, tmp_path):
        path = tmp_path / "credentials"
        CredentialStore(path).save("ghp_secret")

        assert CredentialStore(path, context="github.example.com").load() is None

    def test_tampered_ciphertext(self, store):
        store.save("ghp_secret")
        raw = bytearray(base64.b64decode(store.path.read_text()))
        raw[-1] ^= 0x01
        store.path.write_text(base64.b64encode(bytes(raw)).decode())

        assert store.load() is None

    def test_missing_key_file(self, store):
        store.save("ghp_secret")
        store.key_path.unlink()

        assert store.load() is None

    def test_supplied_key(self, tmp_path):
        key = base64.urlsafe_b64encode(os.urandom(32)).decode()
        store = CredentialStore(tmp_path / "credentials", key=key)

        store.save("ghp_secret")

        assert not store.key_path.exists()
        assert CredentialStore(tmp_path / "credentials", key=key).load() == "ghp_secret"

    def test_rejects_short_key(self, tmp_path):
        with pytest.raises(ValueError):
            CredentialStore(tmp_path / "credentials", key=base64.urlsafe_b64encode(b"short").decode())

    def test_empty_token_rejected(self, store):
        with pytest.raises(ValueError):
            store.save("")


class TestGetToken:
    def test_explicit_wins(self, store, monkeypatch):
        monkeypatch.setenv("GH_TOKEN", "from-env")
        store.save("from-store")

        assert get_token("explicit", store) == "explicit"

    def test_environment_before_store(self, store, monkeypatch):
        monkeypatch.setenv("GITHUB_TOKEN", "from-env")
        store.save("from-store")

        assert get_token(None, store) == "from-env"

    def test_store_last(self, store):
        store.save("from-store")

        assert get_token(None, store) == "from-store"

    def test_nothing_configured(self, store):
        assert get_token(None, store) is None

import importlib

import pytest
from cryptography.fernet import Fernet

import encryption_utils
from exceptions import DecryptionError, EncryptionKeyError


@pytest.fixture(autouse=True)
def _reset_manager(monkeypatch):
    """
    Reset the encryption manager singleton with a predictable test key.
    """
    key = Fernet.generate_key().decode("utf-8")
    monkeypatch.setenv("BUDGET_APP_ENCRYPTION_KEY", key)
    importlib.reload(encryption_utils)
    yield
    importlib.reload(encryption_utils)


def test_encrypt_decrypt_round_trip_text():
    manager = encryption_utils.get_encryption_manager()
    token = manager.encrypt_text('{"items": []}')
    assert token != '{"items": []}'
    assert encryption_utils.is_ciphertext(token)
    assert manager.decrypt_text(token) == '{"items": []}'


def test_empty_values_pass_through():
    manager = encryption_utils.get_encryption_manager()
    assert manager.encrypt_text(None) is None
    assert manager.encrypt_text("") == ""
    assert manager.decrypt_text("") == ""


def test_decrypt_with_other_key_fails():
    token = Fernet(Fernet.generate_key()).encrypt(b"secret").decode("utf-8")
    with pytest.raises(DecryptionError):
        encryption_utils.get_encryption_manager().decrypt_text(token)


def test_is_ciphertext_rejects_plain_json():
    assert not encryption_utils.is_ciphertext('{"schema_version": 1}')
    assert not encryption_utils.is_ciphertext(None)
    assert not encryption_utils.is_ciphertext(42)


def test_invalid_env_key_raises(monkeypatch):
    monkeypatch.setenv("BUDGET_APP_ENCRYPTION_KEY", "not-a-key")
    manager = encryption_utils.EncryptionManager()
    with pytest.raises(EncryptionKeyError):
        manager.get_key()


def test_key_loaded_from_config(monkeypatch, tmp_path):
    monkeypatch.delenv("BUDGET_APP_ENCRYPTION_KEY", raising=False)
    key = Fernet.generate_key().decode("utf-8")
    config_file = tmp_path / "config.yaml"
    config_file.write_text(f"security:\n  encryption_key: {key}\n", encoding="utf-8")

    manager = encryption_utils.EncryptionManager(config_file=config_file, auto_generate=False)
    assert manager.get_key() == key.encode("utf-8")


def test_missing_key_without_auto_generate(monkeypatch, tmp_path):
    monkeypatch.delenv("BUDGET_APP_ENCRYPTION_KEY", raising=False)
    manager = encryption_utils.EncryptionManager(config_file=tmp_path / "missing.yaml", auto_generate=False)
    with pytest.raises(EncryptionKeyError):
        manager.get_key()


def test_generated_key_is_persisted(monkeypatch, tmp_path):
    monkeypatch.delenv("BUDGET_APP_ENCRYPTION_KEY", raising=False)
    config_file = tmp_path / "config.yaml"
    manager = encryption_utils.EncryptionManager(config_file=config_file)
    key = manager.get_key()

    assert "encryption_key" in config_file.read_text(encoding="utf-8")
    reloaded = encryption_utils.EncryptionManager(config_file=config_file, auto_generate=False)
    assert reloaded.get_key() == key

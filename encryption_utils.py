"""
Fernet encryption for the persisted ledger document.

The ledger is serialized to JSON first and the whole document is then
encrypted as one token, so both blob stores only ever see opaque text.
The key comes from the environment, from ``security.encryption_key`` in
config.yaml, or is generated once and written back to config.yaml.
"""

import base64
import binascii
import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional, Union

from cryptography.fernet import Fernet, InvalidToken

from config_manager import CONFIG_FILE, get_config_value, load_config, save_config
from exceptions import ConfigError, DecryptionError, EncryptionKeyError

logger = logging.getLogger(__name__)

ENV_KEY_NAME = "BUDGET_APP_ENCRYPTION_KEY"
CONFIG_KEY = "security.encryption_key"

# Version byte 0x80 base64-encodes to "gAAAAA"
TOKEN_PREFIX = "gAAAAA"


def load_fernet_key(raw_key: Union[str, bytes], source: str) -> bytes:
    """
    Check that a key is usable by Fernet.

    Args:
        raw_key: Url-safe base64 key as text or bytes
        source: Where the key came from, used in the error message

    Raises:
        EncryptionKeyError: If Fernet rejects the key
    """
    key = raw_key.strip().encode("utf-8") if isinstance(raw_key, str) else raw_key
    try:
        Fernet(key)
    except (ValueError, TypeError) as exc:
        raise EncryptionKeyError(
            f"Invalid encryption key in {source}",
            details={"source": source},
            original_error=exc
        ) from exc
    return key


class EncryptionManager:
    """
    Encrypts and decrypts ledger documents with a lazily resolved key.

    Key resolution order:
        1. Environment variable BUDGET_APP_ENCRYPTION_KEY
        2. config.yaml -> security.encryption_key
        3. A new key saved to config.yaml (only when auto_generate is set)
    """

    def __init__(
        self,
        *,
        config_file: Union[str, Path] = CONFIG_FILE,
        env_var: str = ENV_KEY_NAME,
        auto_generate: bool = True,
    ) -> None:
        self.config_file = Path(config_file)
        self.env_var = env_var
        self.auto_generate = auto_generate
        self._fernet: Optional[Fernet] = None
        self._key: Optional[bytes] = None

    def _key_from_env(self) -> Optional[bytes]:
        raw_key = os.environ.get(self.env_var)
        return load_fernet_key(raw_key, self.env_var) if raw_key else None

    def _key_from_config(self) -> Optional[bytes]:
        try:
            raw_key = get_config_value(load_config(self.config_file), CONFIG_KEY)
        except ConfigError as e:
            logger.error(f"Cannot read encryption key from {self.config_file}: {e}")
            return None
        if not raw_key:
            return None
        try:
            return load_fernet_key(str(raw_key), str(self.config_file))
        except EncryptionKeyError:
            logger.warning("Ignoring invalid encryption key in %s", self.config_file)
            return None

    def _new_key(self) -> bytes:
        key = Fernet.generate_key()
        section, name = CONFIG_KEY.split(".")
        if not save_config({section: {name: key.decode("utf-8")}}, self.config_file):
            raise EncryptionKeyError(
                "Generated an encryption key but could not save it",
                details={"config_file": str(self.config_file)}
            )
        logger.info("Generated a new encryption key in %s", self.config_file)
        return key

    def get_key(self) -> bytes:
        """
        Resolve the key once and cache it.

        Raises:
            EncryptionKeyError: If no usable key is found and generation is off
        """
        if self._key is None:
            key = self._key_from_env() or self._key_from_config()
            if key is None:
                if not self.auto_generate:
                    raise EncryptionKeyError(
                        f"No encryption key: set {self.env_var} or {CONFIG_KEY} in {self.config_file}"
                    )
                key = self._new_key()
            self._key = key
            self._fernet = Fernet(key)
        return self._key

    @property
    def fernet(self) -> Fernet:
        if self._fernet is None:
            self.get_key()
        return self._fernet

    def encrypt_text(self, value: Optional[str]) -> Optional[str]:
        """Encrypt a document; None and "" pass through unchanged."""
        if not value:
            return value
        return self.fernet.encrypt(value.encode("utf-8")).decode("utf-8")

    def decrypt_text(self, token: Optional[str]) -> Optional[str]:
        """
        Decrypt a document token.

        Raises:
            DecryptionError: If the token was not made with the current key
        """
        if not token:
            return token
        try:
            return self.fernet.decrypt(token.encode("utf-8")).decode("utf-8")
        except InvalidToken as exc:
            logger.error("Stored ledger could not be decrypted with the current key")
            raise DecryptionError("Unable to decrypt stored ledger", original_error=exc) from exc


@lru_cache(maxsize=1)
def get_encryption_manager() -> EncryptionManager:
    """Process-wide manager bound to config.yaml in the working directory."""
    return EncryptionManager()


def is_ciphertext(value: Any) -> bool:
    """True when value looks like a Fernet token rather than plain JSON."""
    if not isinstance(value, str) or not value.startswith(TOKEN_PREFIX):
        return False
    try:
        base64.urlsafe_b64decode(value.encode("utf-8"))
    except (binascii.Error, ValueError):
        return False
    return True

"""Encrypted at-rest storage for the single active access token."""

import base64
import binascii
import logging
import os
import stat
from pathlib import Path

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

logger = logging.getLogger(__name__)

AES_KEY_LENGTH = 32  # 256 bits
AES_NONCE_LENGTH = 12  # 96 bits for GCM
DEFAULT_CONTEXT = "api.github.com"


def _restrict(path: Path) -> None:
    # owner read/write only (skip on Windows)
    if os.name != "nt":
        path.chmod(stat.S_IRUSR | stat.S_IWUSR)


def decode_key(value: str | bytes) -> bytes:
    """Accept a raw 32-byte key or its urlsafe-base64 form."""
    if isinstance(value, bytes) and len(value) == AES_KEY_LENGTH:
        return value
    try:
        key = base64.urlsafe_b64decode(value)
    except (binascii.Error, ValueError) as e:
        raise ValueError("Credential key must be urlsafe base64") from e
    if len(key) != AES_KEY_LENGTH:
        raise ValueError(f"Credential key must be {AES_KEY_LENGTH} bytes")
    return key


class CredentialStore:
    """
    AES-256-GCM encrypted token file.

    The key comes from ``key`` when given, otherwise from a random key file
    next to the token file (created on first save, mode 0600). ``context``
    is bound as associated data, so a ciphertext written for another API
    host does not decrypt.
    """

    def __init__(
        self,
        path: Path | str,
        key: str | bytes | None = None,
        context: str = DEFAULT_CONTEXT,
    ):
        self.path = Path(path).expanduser()
        self.key_path = self.path.with_name(self.path.name + ".key")
        self._key = decode_key(key) if key is not None else None
        self._aad = context.encode("utf-8")

    def _load_key(self, create: bool) -> bytes | None:
        if self._key is not None:
            return self._key
        if self.key_path.exists():
            return self.key_path.read_bytes()
        if not create:
            return None
        self.key_path.parent.mkdir(parents=True, exist_ok=True)
        key = AESGCM.generate_key(bit_length=AES_KEY_LENGTH * 8)
        self.key_path.write_bytes(key)
        _restrict(self.key_path)
        logger.debug("Generated credential key at %s", self.key_path)
        return key

    def save(self, token: str) -> None:
        """Encrypt and persist ``token``, replacing any previous one."""
        if not token:
            raise ValueError("token must not be empty")
        key = self._load_key(create=True)
        nonce = os.urandom(AES_NONCE_LENGTH)
        ciphertext = AESGCM(key).encrypt(nonce, token.encode("utf-8"), self._aad)

        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(base64.b64encode(nonce + ciphertext).decode("ascii"), encoding="utf-8")
        _restrict(self.path)
        logger.info("Saved credential to %s", self.path)

    def load(self) -> str | None:
        """Return the stored token, or None when absent or undecryptable."""
        if not self.path.exists():
            return None
        try:
            key = self._load_key(create=False)
            if key is None:
                logger.error("Credential key missing: %s", self.key_path)
                return None
            data = base64.b64decode(self.path.read_text(encoding="utf-8").strip(), validate=True)
            nonce, ciphertext = data[:AES_NONCE_LENGTH], data[AES_NONCE_LENGTH:]
            token = AESGCM(key).decrypt(nonce, ciphertext, self._aad).decode("utf-8")
        except (InvalidTag, binascii.Error, ValueError, OSError) as e:
            logger.error("Failed to decrypt stored credential: %s", type(e).__name__)
            return None
        return token or None

    def clear(self) -> None:
        """Remove the stored ciphertext. Safe to call repeatedly."""
        self.path.unlink(missing_ok=True)
        logger.debug("Cleared credential at %s", self.path)

    def exists(self) -> bool:
        return self.path.exists()

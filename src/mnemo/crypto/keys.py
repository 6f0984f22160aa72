"""Encryption key lifecycle: create once, persist owner-only, reuse."""

from __future__ import annotations

import hashlib
import logging
import os
from pathlib import Path

from mnemo.crypto.blind_index import KEY_LENGTH, derive_hmac_key
from mnemo.errors import KeyFileError

logger = logging.getLogger(__name__)


class KeyManager:
    """Load or generate the symmetric key stored at ``key_path``."""

    def __init__(self, key_path: Path, enabled: bool = False) -> None:
        self.key_path = Path(key_path)
        self._enabled = enabled
        self._key: bytes | None = None

    @property
    def key_present(self) -> bool:
        return self.key_path.exists()

    @property
    def enabled(self) -> bool:
        return self._enabled or self.key_present

    def enable(self) -> bytes:
        """Turn encryption on, generating the key if needed."""
        self._enabled = True
        key = self.get_or_create_key()
        logger.info("Encryption enabled")
        return key

    def get_or_create_key(self) -> bytes:
        if self._key is not None:
            return self._key
        if not self.key_path.exists():
            self._create()
        self._key = self._load()
        return self._key

    def _create(self) -> None:
        key = os.urandom(KEY_LENGTH)
        try:
            self.key_path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(self.key_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        except FileExistsError:
            return  # another process created it first
        except OSError as e:
            raise KeyFileError(f"Cannot create key file {self.key_path}: {e}") from e
        with os.fdopen(fd, "wb") as f:
            f.write(key)
        os.chmod(self.key_path, 0o600)
        logger.info("Generated new encryption key at %s", self.key_path)

    def _load(self) -> bytes:
        try:
            key = self.key_path.read_bytes()
        except OSError as e:
            raise KeyFileError(f"Cannot read key file {self.key_path}: {e}") from e
        if len(key) != KEY_LENGTH:
            raise KeyFileError(
                f"Corrupt key file {self.key_path}: expected {KEY_LENGTH} bytes, got {len(key)}"
            )
        return key

    def status(self) -> dict:
        """Key status for display. Never includes key material."""
        info = {
            "enabled": self.enabled,
            "key_present": self.key_present,
            "key_path": str(self.key_path),
            "fingerprint": None,
        }
        if self.key_present:
            try:
                hmac_key = derive_hmac_key(self.get_or_create_key())
                info["fingerprint"] = hashlib.sha256(hmac_key).hexdigest()[:16]
            except KeyFileError as e:
                info["error"] = str(e)
        return info

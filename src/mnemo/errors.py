"""Error taxonomy shared by the core, the HTTP API and the CLI."""

from __future__ import annotations


class MnemoError(Exception):
    """Base class for all mnemo errors."""


class ValidationError(MnemoError):
    """Bad input: wrong type, empty/oversized content, out-of-range values."""


class StorageError(MnemoError):
    """A partition could not be created, read or written."""


class NotFoundError(MnemoError):
    """A referenced record id does not exist (or was deleted)."""


class DecryptionError(MnemoError):
    """Ciphertext failed authentication; the plaintext is unrecoverable."""


class KeyFileError(MnemoError):
    """The encryption key file is unreadable or corrupt."""

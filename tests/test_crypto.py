"""Tests for searchable encryption: cipher, blind indexes, key lifecycle."""

from __future__ import annotations

import os
import stat
from pathlib import Path

import pytest

from mnemo.core import Mnemo
from mnemo.crypto.blind_index import (
    AUTH_TAG_LENGTH,
    IV_LENGTH,
    KEY_LENGTH,
    blind_index,
    decrypt,
    derive_hmac_key,
    encrypt_with_index,
    query_index,
)
from mnemo.crypto.keys import KeyManager
from mnemo.errors import DecryptionError, KeyFileError


@pytest.fixture
def key() -> bytes:
    return os.urandom(KEY_LENGTH)


class TestCipher:
    def test_roundtrip(self, key: bytes):
        payload = encrypt_with_index("Customer SSN ends in 4821", key)
        assert decrypt(payload.ciphertext, payload.iv, key) == "Customer SSN ends in 4821"

    def test_unicode_roundtrip(self, key: bytes):
        text = "Réunion à Zürich — 東京"
        payload = encrypt_with_index(text, key)
        assert decrypt(payload.ciphertext, payload.iv, key) == text

    def test_layout(self, key: bytes):
        payload = encrypt_with_index("abc", key)
        assert len(bytes.fromhex(payload.iv)) == IV_LENGTH
        assert len(bytes.fromhex(payload.ciphertext)) == 3 + AUTH_TAG_LENGTH

    def test_fresh_iv_each_time(self, key: bytes):
        a = encrypt_with_index("same plaintext", key)
        b = encrypt_with_index("same plaintext", key)
        assert a.iv != b.iv
        assert a.ciphertext != b.ciphertext

    def test_tampered_ciphertext(self, key: bytes):
        payload = encrypt_with_index("Payment secret", key)
        blob = bytearray(bytes.fromhex(payload.ciphertext))
        blob[0] ^= 0x01
        with pytest.raises(DecryptionError):
            decrypt(blob.hex(), payload.iv, key)

    def test_tampered_tag(self, key: bytes):
        payload = encrypt_with_index("Payment secret", key)
        blob = bytearray(bytes.fromhex(payload.ciphertext))
        blob[-1] ^= 0x80
        with pytest.raises(DecryptionError):
            decrypt(blob.hex(), payload.iv, key)

    def test_wrong_key(self, key: bytes):
        payload = encrypt_with_index("Payment secret", key)
        with pytest.raises(DecryptionError):
            decrypt(payload.ciphertext, payload.iv, os.urandom(KEY_LENGTH))

    def test_malformed_input(self, key: bytes):
        with pytest.raises(DecryptionError):
            decrypt("not-hex", "00" * IV_LENGTH, key)
        with pytest.raises(DecryptionError):
            decrypt("abcd", "00" * IV_LENGTH, key)


class TestBlindIndex:
    def test_one_token_per_keyword(self, key: bytes):
        payload = encrypt_with_index("Payment gateway credentials rotated", key)
        hmac_key = derive_hmac_key(key)
        expected = [blind_index(k, hmac_key) for k in ("payment", "gateway", "credentials", "rotated")]
        assert payload.blind_indexes == expected

    def test_deterministic_and_case_insensitive(self, key: bytes):
        hmac_key = derive_hmac_key(key)
        assert blind_index("Payment", hmac_key) == blind_index("payment", hmac_key)

    def test_key_dependent(self, key: bytes):
        other = os.urandom(KEY_LENGTH)
        assert query_index("payment", key) != query_index("payment", other)

    def test_single_keyword_query_matches(self, key: bytes):
        payload = encrypt_with_index("Payment gateway credentials rotated", key)
        assert query_index("Gateway", key) in payload.blind_indexes

    def test_multi_word_query_does_not_match(self, key: bytes):
        payload = encrypt_with_index("Payment gateway credentials rotated", key)
        assert query_index("payment gateway", key) not in payload.blind_indexes

    def test_tokens_hide_keywords(self, key: bytes):
        payload = encrypt_with_index("Payment gateway", key)
        for token in payload.blind_indexes:
            assert "payment" not in token
            assert len(token) == 64


class TestKeyManager:
    def test_creates_owner_only_key(self, tmp_path: Path):
        manager = KeyManager(tmp_path / "keys" / "mnemo.key")
        key = manager.get_or_create_key()
        assert len(key) == KEY_LENGTH
        mode = stat.S_IMODE(manager.key_path.stat().st_mode)
        assert mode == 0o600

    def test_reuses_existing_key(self, tmp_path: Path):
        path = tmp_path / "mnemo.key"
        first = KeyManager(path).get_or_create_key()
        second = KeyManager(path).get_or_create_key()
        assert first == second

    def test_corrupt_key(self, tmp_path: Path):
        path = tmp_path / "mnemo.key"
        path.write_bytes(b"too short")
        with pytest.raises(KeyFileError):
            KeyManager(path).get_or_create_key()

    def test_enabled_flag(self, tmp_path: Path):
        manager = KeyManager(tmp_path / "mnemo.key")
        assert manager.enabled is False
        manager.enable()
        assert manager.enabled is True
        assert manager.key_present is True
        assert KeyManager(tmp_path / "mnemo.key").enabled is True

    def test_status_without_key(self, tmp_path: Path):
        status = KeyManager(tmp_path / "mnemo.key").status()
        assert status["enabled"] is False
        assert status["key_present"] is False
        assert status["fingerprint"] is None

    def test_status_never_leaks_key(self, tmp_path: Path):
        manager = KeyManager(tmp_path / "mnemo.key")
        key = manager.enable()
        status = manager.status()
        rendered = repr(status)
        assert key.hex() not in rendered
        assert derive_hmac_key(key).hex() not in rendered
        assert len(status["fingerprint"]) == 16

    def test_status_reports_corruption(self, tmp_path: Path):
        path = tmp_path / "mnemo.key"
        path.write_bytes(b"x" * 5)
        status = KeyManager(path).status()
        assert status["key_present"] is True
        assert "error" in status


class TestEncryptedStore:
    def test_store_and_query(self, mnemo: Mnemo):
        stored = mnemo.encrypt_store("Vault password rotates monthly", project="ops", importance=9)
        assert stored.encrypted is True

        results = mnemo.encrypt_query("vault", project="ops")
        assert [r.memory.id for r in results] == [stored.id]
        assert results[0].memory.content == "Vault password rotates monthly"
        assert results[0].memory.encrypted is True

    def test_no_plaintext_at_rest(self, mnemo: Mnemo):
        mnemo.encrypt_store("Vault password rotates monthly", project="ops")
        for path in mnemo.partitions.partition_dir("ops").iterdir():
            raw = path.read_bytes()
            assert b"Vault" not in raw
            assert b"password" not in raw
        with mnemo.partitions.connect("ops") as conn:
            assert conn.execute("SELECT COUNT(*) FROM memories").fetchone()[0] == 0
            meta = conn.execute("SELECT metadata FROM encrypted_memories").fetchone()[0]
        assert "vault" not in meta

    def test_multi_word_query_misses(self, mnemo: Mnemo):
        mnemo.encrypt_store("Vault password rotates monthly")
        assert mnemo.encrypt_query("vault password") == []

    def test_order_importance_then_recency(self, mnemo: Mnemo, clock):
        low = mnemo.encrypt_store("Vault audit", importance=3)
        clock.advance(minutes=1)
        high_old = mnemo.encrypt_store("Vault rekey", importance=8)
        clock.advance(minutes=1)
        high_new = mnemo.encrypt_store("Vault backup", importance=8)
        results = mnemo.encrypt_query("vault")
        assert [r.memory.id for r in results] == [high_new.id, high_old.id, low.id]

    def test_filters_and_limit(self, mnemo: Mnemo):
        for i in range(4):
            mnemo.encrypt_store(f"Vault entry {i}", agent_id="ops-bot")
        mnemo.encrypt_store("Vault entry other", agent_id="someone")
        assert len(mnemo.encrypt_query("vault", agent_id="ops-bot", limit=2)) == 2
        assert len(mnemo.encrypt_query("vault", agent_id="someone")) == 1

    def test_corrupted_row_fails_loudly(self, mnemo: Mnemo):
        stored = mnemo.encrypt_store("Vault secret")
        with mnemo.partitions.write("general") as conn:
            ciphertext = conn.execute(
                "SELECT ciphertext FROM encrypted_memories WHERE id = ?", (stored.id,)
            ).fetchone()[0]
            flipped = ("0" if ciphertext[0] != "0" else "1") + ciphertext[1:]
            conn.execute(
                "UPDATE encrypted_memories SET ciphertext = ? WHERE id = ?", (flipped, stored.id)
            )
        with pytest.raises(DecryptionError):
            mnemo.encrypt_query("vault")

    def test_plaintext_unaffected_by_corrupt_key(self, mnemo: Mnemo):
        key_path = mnemo.keys.key_path
        key_path.parent.mkdir(parents=True, exist_ok=True)
        key_path.write_bytes(b"broken")

        stored = mnemo.store("Plain payment note")
        assert [r.memory.id for r in mnemo.query("payment")] == [stored.id]
        with pytest.raises(KeyFileError):
            mnemo.encrypt_store("Vault secret")
        with pytest.raises(KeyFileError):
            mnemo.encrypt_query("vault")

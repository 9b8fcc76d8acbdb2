"""
Tests for PII encryption at rest
"""

import pytest

from banking_core.config import BankingConfig
from banking_core.encryption import (
    NONCE_LENGTH, TAG_LENGTH, EncryptedStorage, Envelope, EnvelopeCodec,
    LegacyPlaintext, create_envelope_codec, encrypt_legacy_fields,
    is_envelope, parse_stored_value
)
from banking_core.errors import AuthenticationFailure, UnconfiguredError
from banking_core.storage import InMemoryStorage

TEST_KEY = "test-encryption-key"


class TestParseStoredValue:
    """Test envelope classification"""

    def test_envelope(self):
        stored = parse_stored_value("00ff:abcd:0102")
        assert stored == Envelope(nonce=b"\x00\xff", tag=b"\xab\xcd", ciphertext=b"\x01\x02")

    def test_uppercase_hex_is_envelope(self):
        assert isinstance(parse_stored_value("00FF:ABCD:0102"), Envelope)

    @pytest.mark.parametrize("value", [
        "123-45-6789",
        "plain text",
        "aa:bb",
        "aa:bb:cc:dd",
        "aa::cc",
        "abc:def:012",      # odd length
        "zz:bb:cc",         # not hex
        "12 Main St: Apt 4: Springfield",
    ])
    def test_legacy_plaintext(self, value):
        assert parse_stored_value(value) == LegacyPlaintext(value)
        assert not is_envelope(value)

    def test_is_envelope_non_string(self):
        assert not is_envelope(None)
        assert not is_envelope(12345)


class TestEnvelopeCodec:
    """Test AES-256-GCM envelopes"""

    def setup_method(self):
        self.codec = EnvelopeCodec(TEST_KEY)

    def test_roundtrip(self):
        for plaintext in ["123-45-6789", "1 Main Street", "ünïcødé ✓"]:
            assert self.codec.decrypt(self.codec.encrypt(plaintext)) == plaintext

    def test_empty_and_none_pass_through(self):
        assert self.codec.encrypt("") == ""
        assert self.codec.decrypt("") == ""
        assert self.codec.encrypt(None) is None
        assert self.codec.decrypt(None) is None

    def test_envelope_format(self):
        encrypted = self.codec.encrypt("123-45-6789")
        nonce_hex, tag_hex, ciphertext_hex = encrypted.split(":")
        assert len(bytes.fromhex(nonce_hex)) == NONCE_LENGTH
        assert len(bytes.fromhex(tag_hex)) == TAG_LENGTH
        assert len(bytes.fromhex(ciphertext_hex)) == len("123-45-6789")
        assert "123-45-6789" not in encrypted

    def test_fresh_nonce_per_call(self):
        assert self.codec.encrypt("same") != self.codec.encrypt("same")

    def test_tampered_tag_fails(self):
        nonce_hex, tag_hex, ciphertext_hex = self.codec.encrypt("123-45-6789").split(":")
        flipped = "%02x" % (int(tag_hex[:2], 16) ^ 0x01) + tag_hex[2:]
        with pytest.raises(AuthenticationFailure):
            self.codec.decrypt(f"{nonce_hex}:{flipped}:{ciphertext_hex}")

    def test_tampered_ciphertext_fails(self):
        nonce_hex, tag_hex, ciphertext_hex = self.codec.encrypt("123-45-6789").split(":")
        flipped = "%02x" % (int(ciphertext_hex[:2], 16) ^ 0x01) + ciphertext_hex[2:]
        with pytest.raises(AuthenticationFailure):
            self.codec.decrypt(f"{nonce_hex}:{tag_hex}:{flipped}")

    def test_wrong_key_fails(self):
        encrypted = self.codec.encrypt("123-45-6789")
        with pytest.raises(AuthenticationFailure):
            EnvelopeCodec("another-key").decrypt(encrypted)

    def test_short_nonce_fails_authentication(self):
        with pytest.raises(AuthenticationFailure):
            self.codec.decrypt("00:" + "00" * TAG_LENGTH + ":0102")

    def test_legacy_plaintext_returned_unchanged(self):
        assert self.codec.decrypt("123-45-6789") == "123-45-6789"

    def test_missing_key_is_fatal(self):
        with pytest.raises(UnconfiguredError):
            EnvelopeCodec("")
        with pytest.raises(UnconfiguredError):
            EnvelopeCodec(None)

    def test_create_from_config(self):
        codec = create_envelope_codec(BankingConfig(encryption_key=TEST_KEY))
        assert codec.decrypt(self.codec.encrypt("x")) == "x"

        with pytest.raises(UnconfiguredError):
            create_envelope_codec(BankingConfig(encryption_key=""))


class TestEncryptedStorage:
    """Test the PII storage wrapper"""

    def setup_method(self):
        self.inner = InMemoryStorage()
        self.codec = EnvelopeCodec(TEST_KEY)
        self.storage = EncryptedStorage(self.inner, self.codec)
        self.record = {
            "id": "u1",
            "email": "jane@example.com",
            "national_id": "123-45-6789",
            "address": "1 Main Street",
        }

    def test_pii_encrypted_at_rest(self):
        self.storage.save("users", "u1", self.record)

        raw = self.inner.load("users", "u1")
        assert is_envelope(raw["national_id"])
        assert is_envelope(raw["address"])
        assert raw["email"] == "jane@example.com"

        assert self.storage.load("users", "u1") == self.record

    def test_insert_encrypts(self):
        self.storage.insert("users", "u1", self.record)
        assert is_envelope(self.inner.load("users", "u1")["national_id"])

    def test_other_tables_untouched(self):
        self.storage.save("accounts", "1", {"id": 1, "national_id": "123-45-6789"})
        assert self.inner.load("accounts", "1")["national_id"] == "123-45-6789"

    def test_load_modify_save_does_not_double_encrypt(self):
        self.storage.save("users", "u1", self.record)
        loaded = self.storage.load("users", "u1")
        loaded["email"] = "new@example.com"
        self.storage.save("users", "u1", loaded)

        assert self.storage.load("users", "u1")["national_id"] == "123-45-6789"

    def test_legacy_plaintext_readable(self):
        self.inner.save("users", "u1", self.record)
        assert self.storage.load("users", "u1") == self.record

    def test_tampered_record_raises(self):
        self.storage.save("users", "u1", self.record)
        raw = self.inner.load("users", "u1")
        nonce_hex, tag_hex, ciphertext_hex = raw["national_id"].split(":")
        raw["national_id"] = f"{nonce_hex}:{'00' * TAG_LENGTH}:{ciphertext_hex}"
        self.inner.save("users", "u1", raw)

        with pytest.raises(AuthenticationFailure):
            self.storage.load("users", "u1")
        with pytest.raises(AuthenticationFailure):
            self.storage.find("users", {"email": "jane@example.com"})

    def test_find_on_plain_field(self):
        self.storage.save("users", "u1", self.record)
        found = self.storage.find("users", {"email": "jane@example.com"})
        assert [r["national_id"] for r in found] == ["123-45-6789"]

    def test_find_on_encrypted_field(self):
        self.storage.save("users", "u1", self.record)
        self.storage.save("users", "u2", dict(self.record, id="u2", national_id="987-65-4321"))

        found = self.storage.find("users", {"national_id": "987-65-4321"})
        assert [r["id"] for r in found] == ["u2"]

    def test_increment_refuses_pii_field(self):
        self.storage.save("users", "u1", self.record)
        with pytest.raises(ValueError):
            self.storage.increment("users", "u1", "national_id", 1)

    def test_atomic_delegates_to_inner(self):
        with pytest.raises(RuntimeError):
            with self.storage.atomic():
                self.storage.save("users", "u1", self.record)
                raise RuntimeError("boom")
        assert self.inner.load("users", "u1") is None


class TestEncryptLegacyFields:
    """Test migration of plaintext PII"""

    def setup_method(self):
        self.inner = InMemoryStorage()
        self.storage = EncryptedStorage(self.inner, EnvelopeCodec(TEST_KEY))

    def test_migrates_plaintext_and_skips_envelopes(self):
        self.inner.save("users", "legacy", {"id": "legacy", "national_id": "111-11-1111", "address": None})
        self.storage.save("users", "current", {"id": "current", "national_id": "222-22-2222", "address": "x"})

        stats = encrypt_legacy_fields(self.storage)

        assert stats == {"migrated": 1, "skipped": 1}
        assert is_envelope(self.inner.load("users", "legacy")["national_id"])
        assert self.storage.load("users", "legacy")["national_id"] == "111-11-1111"
        assert self.storage.load("users", "current")["national_id"] == "222-22-2222"

    def test_second_run_is_noop(self):
        self.inner.save("users", "legacy", {"id": "legacy", "national_id": "111-11-1111"})
        encrypt_legacy_fields(self.storage)
        assert encrypt_legacy_fields(self.storage) == {"migrated": 0, "skipped": 1}

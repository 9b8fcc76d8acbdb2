"""
PII Encryption at Rest Module

Field-level authenticated encryption for regulated personal data (national ID,
address). Stored values use the envelope format

    <hex-nonce>:<hex-tag>:<hex-ciphertext>

produced with AES-256-GCM. Values that do not have that shape are legacy
plaintext written before encryption was introduced; they are tolerated on read
and re-encrypted on the next write.
"""

import hashlib
import logging
import os
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .config import BankingConfig
from .errors import AuthenticationFailure, UnconfiguredError
from .logging_config import log_action
from .storage import StorageInterface

logger = logging.getLogger(__name__)

NONCE_LENGTH = 16  # bytes; AES-GCM accepts 8-128, 16 matches existing data at rest
TAG_LENGTH = 16
ENVELOPE_SEPARATOR = ":"

# PII field definitions per table
PII_FIELDS = {
    "users": ["national_id", "address"],
}

_HEX = re.compile(r'^[0-9a-fA-F]+$')


@dataclass(frozen=True)
class Envelope:
    """An encrypted field value split into its three parts"""
    nonce: bytes
    tag: bytes
    ciphertext: bytes

    def to_string(self) -> str:
        return ENVELOPE_SEPARATOR.join(
            (self.nonce.hex(), self.tag.hex(), self.ciphertext.hex())
        )


@dataclass(frozen=True)
class LegacyPlaintext:
    """A stored value that predates encryption"""
    text: str


StoredValue = Union[Envelope, LegacyPlaintext]


def _is_hex_segment(segment: str) -> bool:
    return bool(_HEX.match(segment)) and len(segment) % 2 == 0


def parse_stored_value(value: str) -> StoredValue:
    """Classify a stored string once, at read time"""
    parts = value.split(ENVELOPE_SEPARATOR)
    if len(parts) != 3 or not all(_is_hex_segment(part) for part in parts):
        return LegacyPlaintext(value)
    nonce, tag, ciphertext = (bytes.fromhex(part) for part in parts)
    return Envelope(nonce=nonce, tag=tag, ciphertext=ciphertext)


def is_envelope(value: Any) -> bool:
    """Check if a stored value has the envelope shape"""
    return isinstance(value, str) and isinstance(parse_stored_value(value), Envelope)


class EnvelopeCodec:
    """AES-256-GCM codec for PII fields"""

    def __init__(self, secret: Optional[str]):
        if not secret:
            raise UnconfiguredError(
                "Encryption key is not configured; set BANKING_ENCRYPTION_KEY"
            )
        # Derive 32-byte key from the configured secret using SHA-256
        self._aesgcm = AESGCM(hashlib.sha256(secret.encode('utf-8')).digest())
        logger.info("EnvelopeCodec initialized")

    def encrypt(self, plaintext: Optional[str]) -> Optional[str]:
        """Encrypt plaintext with a fresh random nonce; empty input is returned as-is"""
        if not plaintext:
            return plaintext

        nonce = os.urandom(NONCE_LENGTH)
        # cryptography appends the tag to the ciphertext
        sealed = self._aesgcm.encrypt(nonce, plaintext.encode('utf-8'), None)
        envelope = Envelope(nonce=nonce, tag=sealed[-TAG_LENGTH:], ciphertext=sealed[:-TAG_LENGTH])
        return envelope.to_string()

    def decrypt(self, value: Optional[str]) -> Optional[str]:
        """
        Decrypt a stored value.

        Legacy plaintext is returned unchanged. A well-formed envelope that
        fails authentication raises AuthenticationFailure.
        """
        if not value:
            return value

        stored = parse_stored_value(value)
        if isinstance(stored, LegacyPlaintext):
            return stored.text
        return self.open(stored)

    def open(self, envelope: Envelope) -> str:
        """Authenticate and decrypt an envelope"""
        try:
            plaintext = self._aesgcm.decrypt(envelope.nonce, envelope.ciphertext + envelope.tag, None)
        except (InvalidTag, ValueError):
            logger.warning("Envelope failed authentication")
            raise AuthenticationFailure("Encrypted value failed authentication")
        return plaintext.decode('utf-8')


def create_envelope_codec(config: BankingConfig) -> EnvelopeCodec:
    """Build the codec from configuration; fails fast without a key"""
    return EnvelopeCodec(config.encryption_key)


class EncryptedStorage(StorageInterface):
    """
    Storage wrapper that encrypts PII fields on save and decrypts on load.
    Wraps any StorageInterface implementation.
    """

    def __init__(
        self,
        inner: StorageInterface,
        codec: EnvelopeCodec,
        pii_fields: Optional[Dict[str, List[str]]] = None
    ):
        self.inner = inner
        self.codec = codec
        self.pii_fields = pii_fields or PII_FIELDS

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save record with PII encryption"""
        self.inner.save(table, record_id, self._encrypt_pii(table, data))

    def insert(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Insert record with PII encryption"""
        self.inner.insert(table, record_id, self._encrypt_pii(table, data))

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load record and decrypt PII"""
        data = self.inner.load(table, record_id)
        if data:
            return self._decrypt_pii(table, data)
        return None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records and decrypt PII"""
        return [self._decrypt_pii(table, data) for data in self.inner.load_all(table)]

    def delete(self, table: str, record_id: str) -> bool:
        """Delete record (pass-through)"""
        return self.inner.delete(table, record_id)

    def exists(self, table: str, record_id: str) -> bool:
        """Check if record exists (pass-through)"""
        return self.inner.exists(table, record_id)

    def _split_filters(self, table: str, filters: Dict[str, Any]):
        pii_field_names = self.pii_fields.get(table, [])
        encrypted = {k: v for k, v in filters.items() if k in pii_field_names}
        plain = {k: v for k, v in filters.items() if k not in pii_field_names}
        return encrypted, plain

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """
        Find records matching filters.

        Envelopes use a random nonce, so encrypted fields cannot be matched in
        storage; those filters are applied in memory after decryption.
        """
        encrypted_filters, plain_filters = self._split_filters(table, filters)
        results = [self._decrypt_pii(table, data) for data in self.inner.find(table, plain_filters)]
        if not encrypted_filters:
            return results
        return [
            record for record in results
            if all(record.get(key) == value for key, value in encrypted_filters.items())
        ]

    def find_ordered(self, table: str, filters: Dict[str, Any],
                     order_by: Sequence[str], descending: bool = False) -> List[Dict[str, Any]]:
        encrypted_filters, plain_filters = self._split_filters(table, filters)
        if encrypted_filters:
            return super().find_ordered(table, filters, order_by, descending)
        records = self.inner.find_ordered(table, plain_filters, order_by, descending)
        return [self._decrypt_pii(table, data) for data in records]

    def increment(self, table: str, record_id: str, field: str, delta: int) -> int:
        if field in self.pii_fields.get(table, []):
            raise ValueError(f"Cannot increment encrypted field {field}")
        return self.inner.increment(table, record_id, field, delta)

    def next_id(self, table: str) -> int:
        return self.inner.next_id(table)

    def count(self, table: str) -> int:
        """Count records (pass-through)"""
        return self.inner.count(table)

    def clear_table(self, table: str) -> None:
        """Clear table (pass-through)"""
        self.inner.clear_table(table)

    def close(self) -> None:
        """Close storage (pass-through)"""
        self.inner.close()

    def begin_transaction(self) -> None:
        self.inner.begin_transaction()

    def commit(self) -> None:
        self.inner.commit()

    def rollback(self) -> None:
        self.inner.rollback()

    def _encrypt_pii(self, table: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """Encrypt PII fields; every write produces a fresh envelope"""
        encrypted_data = data.copy()
        for field in self.pii_fields.get(table, []):
            value = encrypted_data.get(field)
            if value is not None:
                encrypted_data[field] = self.codec.encrypt(str(value))
        return encrypted_data

    def _decrypt_pii(self, table: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """Decrypt PII fields; AuthenticationFailure propagates"""
        decrypted_data = data.copy()
        for field in self.pii_fields.get(table, []):
            value = decrypted_data.get(field)
            if isinstance(value, str):
                decrypted_data[field] = self.codec.decrypt(value)
        return decrypted_data


def encrypt_legacy_fields(storage: EncryptedStorage) -> Dict[str, int]:
    """
    Re-save every record that still holds plaintext PII so it is encrypted
    at rest. Returns counts of migrated and skipped (already encrypted) records.
    """
    stats = {"migrated": 0, "skipped": 0}

    for table, fields in storage.pii_fields.items():
        if not fields:
            continue

        for record in storage.inner.load_all(table):
            needs_encryption = any(
                record.get(field) and not is_envelope(record[field]) for field in fields
            )
            if not needs_encryption:
                stats["skipped"] += 1
                continue

            storage.save(table, record["id"], storage._decrypt_pii(table, record))
            stats["migrated"] += 1

    log_action(
        logger, "info", "Legacy PII encryption completed",
        action="encrypt_legacy_pii", resource="storage", extra=stats
    )
    return stats

"""
Encrypted template storage for the FaceGate engine.

The matching engine only requires a ``TemplateStore`` exposing ``load_all()``.
This module defines that contract and a reference in-memory implementation
that keeps every embedding encrypted at rest:

* AES-256-GCM with a fresh 12-byte random nonce per record, the nonce
  prepended to the ciphertext and the result base64-encoded.
* Each record is bound to its ``(identity_id, sample_index)`` key as
  associated data, so ciphertexts cannot be swapped between records.
* Keys are either random or derived from a passphrase with Argon2id.

A record that fails to decrypt raises ``TemplateUnavailableError``; it is
never skipped, because silently dropping templates would turn systemic
corruption into a stream of ordinary "no match" outcomes.
"""

import base64
import secrets
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Protocol, Tuple, runtime_checkable

import numpy as np
import structlog
from argon2.low_level import Type, hash_secret_raw
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .constants import (
    AES_KEY_LENGTH,
    ARGON2_MEMORY_COST,
    ARGON2_PARALLELISM,
    ARGON2_SALT_LENGTH,
    ARGON2_TIME_COST,
    GCM_NONCE_LENGTH,
)
from .data_models import EnrollmentSample, GalleryEntry, Identity, IdentityId
from .exceptions import ConfigurationError, TemplateUnavailableError
from .similarity import as_vector

logger = structlog.get_logger(__name__)

# Embeddings are serialised as big-endian float32
EMBEDDING_WIRE_DTYPE = np.dtype(">f4")


@runtime_checkable
class TemplateStore(Protocol):
    """Durable source of decrypted ``(identity_id, embedding)`` pairs."""

    def load_all(self) -> List[GalleryEntry]:
        ...


def generate_key() -> bytes:
    """Generate a random AES-256 key."""
    return AESGCM.generate_key(bit_length=AES_KEY_LENGTH * 8)


def generate_salt() -> bytes:
    """Generate a random salt for passphrase key derivation."""
    return secrets.token_bytes(ARGON2_SALT_LENGTH)


def derive_key(passphrase: str, salt: bytes) -> bytes:
    """
    Derive an AES-256 key from a passphrase with Argon2id.

    Parameters
    ----------
    passphrase : str
        Secret passphrase.
    salt : bytes
        At least 8 random bytes, stored alongside the templates.

    Returns
    -------
    bytes
        32-byte key.

    Raises
    ------
    ConfigurationError
        If the passphrase is empty or the salt too short.
    """
    if not passphrase:
        raise ConfigurationError("Template passphrase cannot be empty")

    if len(salt) < 8:
        raise ConfigurationError(
            f"Key derivation salt must be at least 8 bytes, got {len(salt)}"
        )

    return hash_secret_raw(
        secret=passphrase.encode("utf-8"),
        salt=salt,
        time_cost=ARGON2_TIME_COST,
        memory_cost=ARGON2_MEMORY_COST,
        parallelism=ARGON2_PARALLELISM,
        hash_len=AES_KEY_LENGTH,
        type=Type.ID,
    )


def _associated_data(identity_id: IdentityId, sample_index: int) -> bytes:
    return f"{identity_id!r}:{sample_index}".encode("utf-8")


class TemplateCipher:
    """
    AES-256-GCM encryption of embeddings.

    Parameters
    ----------
    key : bytes
        32-byte AES key.

    Examples
    --------
    >>> cipher = TemplateCipher(generate_key())
    >>> token = cipher.encrypt_embedding(embedding, b"user-1:1")
    >>> restored = cipher.decrypt_embedding(token, b"user-1:1")
    """

    def __init__(self, key: bytes) -> None:
        if len(key) != AES_KEY_LENGTH:
            raise ConfigurationError(
                f"Template key must be {AES_KEY_LENGTH} bytes, got {len(key)}"
            )
        self._aesgcm = AESGCM(key)

    @classmethod
    def from_passphrase(cls, passphrase: str, salt: bytes) -> "TemplateCipher":
        return cls(derive_key(passphrase, salt))

    def encrypt(self, data: bytes, associated_data: Optional[bytes] = None) -> str:
        """Encrypt bytes; returns base64 of ``nonce || ciphertext || tag``."""
        nonce = secrets.token_bytes(GCM_NONCE_LENGTH)
        ciphertext = self._aesgcm.encrypt(nonce, data, associated_data)
        return base64.b64encode(nonce + ciphertext).decode("ascii")

    def decrypt(self, token: str, associated_data: Optional[bytes] = None) -> bytes:
        """
        Decrypt a token produced by ``encrypt``.

        Raises
        ------
        cryptography.exceptions.InvalidTag
            If the token was tampered with or the key is wrong.
        ValueError
            If the token is not valid base64 or is too short.
        """
        combined = base64.b64decode(token.encode("ascii"), validate=True)
        if len(combined) <= GCM_NONCE_LENGTH:
            raise ValueError("Encrypted template is truncated")

        nonce, ciphertext = combined[:GCM_NONCE_LENGTH], combined[GCM_NONCE_LENGTH:]
        return self._aesgcm.decrypt(nonce, ciphertext, associated_data)

    def encrypt_embedding(
        self, embedding: np.ndarray, associated_data: Optional[bytes] = None
    ) -> str:
        payload = np.asarray(embedding, dtype=EMBEDDING_WIRE_DTYPE).tobytes()
        return self.encrypt(payload, associated_data)

    def decrypt_embedding(
        self, token: str, associated_data: Optional[bytes] = None
    ) -> np.ndarray:
        payload = self.decrypt(token, associated_data)
        if len(payload) % EMBEDDING_WIRE_DTYPE.itemsize:
            raise ValueError("Decrypted template has an invalid length")
        return np.frombuffer(payload, dtype=EMBEDDING_WIRE_DTYPE).astype(np.float64)


@dataclass(frozen=True)
class StoredTemplate:
    """Encrypted-at-rest enrollment sample."""

    identity_id: IdentityId
    sample_index: int
    ciphertext: str
    quality_score: float
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class EncryptedTemplateStore:
    """
    In-memory template store keeping embeddings encrypted at rest.

    Records are keyed by ``(identity_id, sample_index)``; sample indices
    start at 1 and follow enrollment order. Deleting an identity removes all
    its samples.

    Parameters
    ----------
    cipher : TemplateCipher
        Cipher used for every record.
    """

    def __init__(self, cipher: TemplateCipher) -> None:
        self._cipher = cipher
        self._lock = threading.Lock()
        self._records: Dict[Tuple[IdentityId, int], StoredTemplate] = {}
        self._display_names: Dict[IdentityId, str] = {}

    def register_identity(self, identity_id: IdentityId, display_name: str) -> None:
        with self._lock:
            self._display_names[identity_id] = display_name

    def add_sample(
        self, identity_id: IdentityId, embedding: np.ndarray, quality_score: float
    ) -> EnrollmentSample:
        """
        Encrypt and store a new sample for ``identity_id``.

        Returns
        -------
        EnrollmentSample
            The stored sample with its assigned ``sample_index``.
        """
        vector = as_vector(embedding, "store")

        with self._lock:
            sample_index = 1 + max(
                (index for (owner, index) in self._records if owner == identity_id),
                default=0,
            )
            ciphertext = self._cipher.encrypt_embedding(
                vector, _associated_data(identity_id, sample_index)
            )
            record = StoredTemplate(
                identity_id=identity_id,
                sample_index=sample_index,
                ciphertext=ciphertext,
                quality_score=float(quality_score),
            )
            self._records[(identity_id, sample_index)] = record
            self._display_names.setdefault(identity_id, str(identity_id))

        logger.info(
            "Template stored",
            identity_id=identity_id,
            sample_index=sample_index,
            quality_score=round(float(quality_score), 2),
        )

        return EnrollmentSample(
            identity_id=identity_id,
            embedding=vector,
            quality_score=float(quality_score),
            sample_index=sample_index,
            created_at=record.created_at,
        )

    def _decrypt(self, record: StoredTemplate) -> np.ndarray:
        try:
            return self._cipher.decrypt_embedding(
                record.ciphertext,
                _associated_data(record.identity_id, record.sample_index),
            )
        except (InvalidTag, ValueError) as e:
            logger.error(
                "Failed to decrypt template",
                identity_id=record.identity_id,
                sample_index=record.sample_index,
                error_type=type(e).__name__,
            )
            raise TemplateUnavailableError(
                "Stored template could not be decrypted",
                identity_id=record.identity_id,
                sample_index=record.sample_index,
            ) from e

    def _records_snapshot(self) -> List[StoredTemplate]:
        with self._lock:
            records = list(self._records.values())

        grouped: Dict[IdentityId, List[StoredTemplate]] = {}
        for record in records:
            grouped.setdefault(record.identity_id, []).append(record)

        return [
            record
            for group in grouped.values()
            for record in sorted(group, key=lambda r: r.sample_index)
        ]

    def samples_for(self, identity_id: IdentityId) -> List[EnrollmentSample]:
        """Decrypted samples of one identity, in enrollment order."""
        return [
            EnrollmentSample(
                identity_id=record.identity_id,
                embedding=self._decrypt(record),
                quality_score=record.quality_score,
                sample_index=record.sample_index,
                created_at=record.created_at,
            )
            for record in self._records_snapshot()
            if record.identity_id == identity_id
        ]

    def embeddings_for(self, identity_id: IdentityId) -> List[np.ndarray]:
        return [sample.embedding for sample in self.samples_for(identity_id)]

    def sample_count(self, identity_id: IdentityId) -> int:
        with self._lock:
            return sum(1 for (owner, _) in self._records if owner == identity_id)

    def get_identity(self, identity_id: IdentityId) -> Optional[Identity]:
        """The identity with its decrypted samples, or ``None`` if unknown."""
        with self._lock:
            display_name = self._display_names.get(identity_id)
        if display_name is None:
            return None
        return Identity(
            identity_id=identity_id,
            display_name=display_name,
            samples=tuple(self.samples_for(identity_id)),
        )

    def identities(self) -> List[IdentityId]:
        """Identity ids holding at least one sample, in first-enrolled order."""
        seen: Dict[IdentityId, None] = {}
        with self._lock:
            for owner, _ in self._records:
                seen.setdefault(owner, None)
        return list(seen)

    def delete_identity(self, identity_id: IdentityId) -> int:
        """Remove an identity and all its samples; returns samples removed."""
        with self._lock:
            keys = [key for key in self._records if key[0] == identity_id]
            for key in keys:
                del self._records[key]
            self._display_names.pop(identity_id, None)

        logger.info("Identity deleted", identity_id=identity_id, samples_removed=len(keys))
        return len(keys)

    def load_all(self) -> List[GalleryEntry]:
        """
        Decrypt every stored template.

        Returns
        -------
        List[(identity_id, embedding)]
            All templates, grouped by identity in enrollment order.

        Raises
        ------
        TemplateUnavailableError
            If any record fails to decrypt.
        """
        return [
            (record.identity_id, self._decrypt(record))
            for record in self._records_snapshot()
        ]

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

"""
Audit trail for recognition attempts.

Every attempt, successful or not, produces exactly one ``AuditRecord``. The
record carries a SHA-256 digest of the evaluated face region rather than the
image itself, so an attempt can later be tied to evidence without the audit
log holding biometric data.

Records are handed to an ``AuditSink``. ``JsonLinesAuditSink`` appends them
to a JSON Lines file and chains each line to its predecessor:

    digest_n = sha256(canonical_json(record_n + {"prev_digest": digest_n-1}))

so any edit, deletion or reordering of earlier lines is detectable with
``verify_chain``.
"""

import json
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Protocol, Union, runtime_checkable

import cv2
import numpy as np
import structlog

from .constants import (
    DEFAULT_DEVICE_ID,
    GENESIS_DIGEST,
    HASH_ERROR_PREFIX,
    NO_IMAGE_HASH,
    UNKNOWN_IDENTITY,
)
from .data_models import (
    AuditOutcome,
    AuditRecord,
    BoundingRegion,
    IdentityId,
    Matched,
    MatchDecision,
    NoMatch,
)
from .exceptions import AuditWriteError
from .utils import canonical_json, ensure_directory, generate_record_id, hash_data

logger = structlog.get_logger(__name__)


def _encodable(image: np.ndarray) -> np.ndarray:
    if image.dtype in (np.uint8, np.uint16):
        return image
    return np.clip(image, 0, 255).astype(np.uint8)


def compute_region_hash(
    image: Optional[np.ndarray], region: Optional[BoundingRegion] = None
) -> str:
    """
    SHA-256 hex digest of the face region of an image.

    The region is cropped and PNG-encoded with OpenCV before hashing, so the
    digest only depends on pixel content. A region that does not fit inside
    the image falls back to hashing the whole image.

    Parameters
    ----------
    image : np.ndarray or None
        Captured frame or face crop.
    region : BoundingRegion, optional
        Matched face region in image coordinates.

    Returns
    -------
    str
        64-character hex digest, ``"no_image"`` when ``image`` is None, or
        ``"error_<epoch_ms>"`` when hashing fails.
    """
    if image is None:
        return NO_IMAGE_HASH

    try:
        height, width = image.shape[:2]
        if region is not None and region.is_within(width, height):
            pixels = image[region.top : region.bottom, region.left : region.right]
        else:
            pixels = image

        ok, encoded = cv2.imencode(".png", _encodable(np.ascontiguousarray(pixels)))
        if not ok:
            raise ValueError("PNG encoding failed")

        return hash_data(encoded.tobytes())

    except Exception as e:
        logger.warning(
            "Failed to hash face region",
            error=str(e),
            error_type=type(e).__name__,
        )
        return f"{HASH_ERROR_PREFIX}{int(time.time() * 1000)}"


@runtime_checkable
class AuditSink(Protocol):
    """Append-only destination for audit records."""

    def append(self, record: AuditRecord) -> None:
        ...


class InMemoryAuditSink:
    """Audit sink keeping records in a list, in append order."""

    def __init__(self) -> None:
        self.records: List[AuditRecord] = []

    def append(self, record: AuditRecord) -> None:
        self.records.append(record)

    def __len__(self) -> int:
        return len(self.records)


@dataclass(frozen=True)
class ChainVerification:
    """Result of verifying a hash-chained audit log."""

    is_valid: bool
    n_records: int
    first_invalid_line: Optional[int] = None
    reason: Optional[str] = None


def _entry_digest(entry: dict) -> str:
    return hash_data(canonical_json({k: v for k, v in entry.items() if k != "digest"}))


class JsonLinesAuditSink:
    """
    Append-only JSON Lines audit log with a SHA-256 hash chain.

    Parameters
    ----------
    path : str or Path
        Log file. Created with its parent directories if missing; an
        existing log is continued from its last digest.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        ensure_directory(self.path.parent)
        self._lock = threading.Lock()
        self._last_digest = self._read_last_digest()

    def _read_last_digest(self) -> str:
        if not self.path.exists():
            return GENESIS_DIGEST

        last_line = None
        with open(self.path, "r", encoding="utf-8") as f:
            for line in f:
                if line.strip():
                    last_line = line

        if last_line is None:
            return GENESIS_DIGEST
        return json.loads(last_line)["digest"]

    def append(self, record: AuditRecord) -> None:
        """
        Append a record, chained to the previous line.

        Raises
        ------
        OSError
            If the log cannot be written.
        """
        with self._lock:
            entry = record.to_dict()
            entry["prev_digest"] = self._last_digest
            entry["digest"] = _entry_digest(entry)

            with open(self.path, "a", encoding="utf-8") as f:
                f.write(canonical_json(entry) + "\n")
                f.flush()

            self._last_digest = entry["digest"]

    def verify_chain(self) -> ChainVerification:
        return verify_chain(self.path)


def verify_chain(path: Union[str, Path]) -> ChainVerification:
    """
    Verify the hash chain of a JSON Lines audit log.

    Parameters
    ----------
    path : str or Path
        Audit log file.

    Returns
    -------
    ChainVerification
        ``is_valid`` False with the 1-based ``first_invalid_line`` when a line
        is malformed, was modified, or is out of chain order.
    """
    expected_prev = GENESIS_DIGEST
    n_records = 0

    with open(path, "r", encoding="utf-8") as f:
        for line_number, line in enumerate(f, start=1):
            if not line.strip():
                continue

            try:
                entry = json.loads(line)
            except json.JSONDecodeError:
                return ChainVerification(False, n_records, line_number, "malformed line")

            if not isinstance(entry, dict) or "digest" not in entry:
                return ChainVerification(False, n_records, line_number, "missing digest")

            if entry.get("prev_digest") != expected_prev:
                return ChainVerification(False, n_records, line_number, "broken chain")

            if _entry_digest(entry) != entry["digest"]:
                return ChainVerification(False, n_records, line_number, "digest mismatch")

            expected_prev = entry["digest"]
            n_records += 1

    return ChainVerification(True, n_records)


class AuditRecorder:
    """
    Build audit records for recognition attempts and hand them to a sink.

    Parameters
    ----------
    sink : AuditSink
        Destination of every record.
    device_id : str, default=DEFAULT_DEVICE_ID
        Device identifier written into each record.
    """

    def __init__(self, sink: AuditSink, device_id: str = DEFAULT_DEVICE_ID) -> None:
        self.sink = sink
        self.device_id = device_id or DEFAULT_DEVICE_ID

    def record(
        self,
        result: Union[MatchDecision, AuditOutcome],
        image: Optional[np.ndarray] = None,
        region: Optional[BoundingRegion] = None,
        failure_reason: Optional[str] = None,
        session_id: Optional[str] = None,
        identity_id: Optional[IdentityId] = None,
        confidence: Optional[float] = None,
    ) -> AuditRecord:
        """
        Record one attempt.

        Parameters
        ----------
        result : Matched, NoMatch or AuditOutcome
            A match decision, or an explicit outcome for attempts that were
            rejected or suppressed before or after matching.
        image : np.ndarray, optional
            Image the attempt was evaluated on.
        region : BoundingRegion, optional
            Face region within ``image``.
        failure_reason : str, optional
            Why the attempt was not accepted.
        session_id : str, optional
            Recognition session identifier.
        identity_id, confidence : optional
            Used with an explicit ``AuditOutcome``; ignored for decisions.

        Returns
        -------
        AuditRecord
            The appended record.

        Raises
        ------
        AuditWriteError
            If the sink rejects the record.
        """
        if isinstance(result, Matched):
            outcome = AuditOutcome.MATCHED
            identity_id = result.identity_id
            confidence = result.confidence
        elif isinstance(result, NoMatch):
            outcome = AuditOutcome.NO_MATCH
            identity_id = UNKNOWN_IDENTITY
            confidence = 0.0
        else:
            outcome = result

        record = AuditRecord(
            record_id=generate_record_id(),
            identity_id=UNKNOWN_IDENTITY if identity_id is None else identity_id,
            outcome=outcome,
            confidence=float(confidence or 0.0),
            image_hash=compute_region_hash(image, region),
            device_id=self.device_id,
            session_id=session_id,
            failure_reason=failure_reason,
        )

        try:
            self.sink.append(record)
        except Exception as e:
            logger.error(
                "Failed to write audit record",
                record_id=record.record_id,
                outcome=outcome.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise AuditWriteError(
                f"Audit record could not be written: {e}", record_id=record.record_id
            ) from e

        logger.info(
            "Audit record written",
            record_id=record.record_id,
            identity_id=record.identity_id,
            outcome=outcome.value,
            confidence=round(record.confidence, 4),
            session_id=session_id,
        )
        return record

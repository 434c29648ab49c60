"""
Data models for the FaceGate engine.

This module defines the core data structures shared by the quality,
diversity, matching, caching and audit components. Models that cross a
component boundary are frozen dataclasses: enrollment samples, snapshots and
audit records are never mutated once produced.

Embeddings are held as read-only one-dimensional ``numpy`` arrays.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Hashable, List, Optional, Sequence, Tuple, Union
import numpy as np

from .constants import UNKNOWN_IDENTITY

IdentityId = Hashable

GalleryEntry = Tuple[IdentityId, np.ndarray]


def freeze_embedding(embedding: Union[np.ndarray, Sequence[float]]) -> np.ndarray:
    """
    Return a read-only float64 copy of an embedding.

    Parameters
    ----------
    embedding : array-like
        One-dimensional vector.

    Returns
    -------
    np.ndarray
        Immutable copy of the vector.

    Raises
    ------
    ValueError
        If the input is not one-dimensional.
    """
    array = np.array(embedding, dtype=np.float64, copy=True)
    if array.ndim != 1:
        raise ValueError(f"embedding must be a 1D array, got shape {array.shape}")
    array.setflags(write=False)
    return array


class MatchStrategy(Enum):
    """Algorithm combining an identity's samples into one comparable score."""

    BEST = "best"
    AVERAGE = "average"
    VOTING = "voting"
    WEIGHTED_AVERAGE = "weighted_average"

    @classmethod
    def from_name(cls, name: str) -> "MatchStrategy":
        """Parse a strategy from its name or value, case-insensitively."""
        normalized = name.strip().lower().replace("-", "_")
        for strategy in cls:
            if normalized in (strategy.value, strategy.name.lower()):
                return strategy
        raise ValueError(f"Unknown match strategy: {name}")


class AuditOutcome(Enum):
    """Outcome type written into an audit record."""

    MATCHED = "matched"
    NO_MATCH = "no_match"
    DUPLICATE_SUPPRESSED = "duplicate_suppressed"
    REJECTED_QUALITY = "rejected_quality"
    REJECTED_LIVENESS = "rejected_liveness"
    ERROR = "error"


@dataclass(frozen=True)
class BoundingRegion:
    """
    Axis-aligned pixel rectangle, right and bottom edges exclusive.

    Used both for detected face regions and for full frame bounds.
    """

    left: int
    top: int
    right: int
    bottom: int

    def __post_init__(self) -> None:
        if self.right < self.left or self.bottom < self.top:
            raise ValueError(
                f"Invalid region ({self.left}, {self.top}, {self.right}, {self.bottom})"
            )

    @classmethod
    def from_size(cls, width: int, height: int) -> "BoundingRegion":
        """Region covering a whole ``width`` x ``height`` frame."""
        return cls(0, 0, int(width), int(height))

    @property
    def width(self) -> int:
        return self.right - self.left

    @property
    def height(self) -> int:
        return self.bottom - self.top

    @property
    def center(self) -> Tuple[float, float]:
        return ((self.left + self.right) / 2.0, (self.top + self.bottom) / 2.0)

    @property
    def shorter_side(self) -> int:
        return min(self.width, self.height)

    def is_within(self, width: int, height: int) -> bool:
        """Whether the region lies inside a ``width`` x ``height`` image."""
        return (
            self.left >= 0
            and self.top >= 0
            and self.right <= width
            and self.bottom <= height
        )

    def as_tuple(self) -> Tuple[int, int, int, int]:
        return (self.left, self.top, self.right, self.bottom)


@dataclass(frozen=True)
class EnrollmentSample:
    """
    One accepted enrollment capture for an identity.

    Parameters
    ----------
    identity_id : hashable
        Identity owning this sample.
    embedding : np.ndarray
        L2-normalized embedding, stored read-only.
    quality_score : float
        Overall capture quality, 0-100.
    sample_index : int
        1-based enrollment order.
    created_at : datetime
        Capture time (UTC).
    """

    identity_id: IdentityId
    embedding: np.ndarray
    quality_score: float
    sample_index: int
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        object.__setattr__(self, "embedding", freeze_embedding(self.embedding))

        if not 0.0 <= self.quality_score <= 100.0:
            raise ValueError("quality_score must be between 0 and 100")

        if self.sample_index < 1:
            raise ValueError("sample_index must be at least 1")


@dataclass(frozen=True)
class Identity:
    """An enrolled subject with its accepted samples."""

    identity_id: IdentityId
    display_name: str
    samples: Tuple[EnrollmentSample, ...] = ()

    @property
    def sample_count(self) -> int:
        return len(self.samples)

    @property
    def is_matchable(self) -> bool:
        """An identity takes part in matching only with at least one sample."""
        return self.sample_count > 0

    def embeddings(self) -> List[np.ndarray]:
        return [sample.embedding for sample in self.samples]


@dataclass(frozen=True)
class MatchCandidate:
    """Per-identity score produced during one matching pass."""

    identity_id: IdentityId
    score: float


@dataclass(frozen=True)
class Matched:
    """Decision naming the recognised identity and the match confidence."""

    identity_id: IdentityId
    confidence: float

    @property
    def is_match(self) -> bool:
        return True


@dataclass(frozen=True)
class NoMatch:
    """Decision for a presentation that matched no enrolled identity."""

    @property
    def is_match(self) -> bool:
        return False

    @property
    def confidence(self) -> float:
        return 0.0

    @property
    def identity_id(self) -> None:
        return None


NO_MATCH = NoMatch()

MatchDecision = Union[Matched, NoMatch]


@dataclass(frozen=True)
class CacheSnapshot:
    """
    Immutable, timestamped copy of the decrypted template gallery.

    A snapshot is superseded on refresh, never edited. ``entries`` holds
    ``(identity_id, embedding)`` pairs with read-only arrays.
    """

    entries: Tuple[GalleryEntry, ...]
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_pairs(
        cls, pairs: Sequence[Tuple[IdentityId, Union[np.ndarray, Sequence[float]]]]
    ) -> "CacheSnapshot":
        """Build a snapshot, copying and freezing every embedding."""
        return cls(
            entries=tuple(
                (identity_id, freeze_embedding(embedding))
                for identity_id, embedding in pairs
            )
        )

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def identity_ids(self) -> List[IdentityId]:
        seen: Dict[IdentityId, None] = {}
        for identity_id, _ in self.entries:
            seen.setdefault(identity_id, None)
        return list(seen)

    def as_gallery(self) -> List[GalleryEntry]:
        return list(self.entries)


@dataclass(frozen=True)
class AuditRecord:
    """
    Immutable entry describing one matching attempt.

    Parameters
    ----------
    record_id : str
        Unique identifier of this record.
    identity_id : hashable
        Matched identity, or ``UNKNOWN_IDENTITY`` for unmatched attempts.
    outcome : AuditOutcome
        What the attempt resulted in.
    confidence : float
        Match confidence, 0.0 when nothing matched.
    image_hash : str
        SHA-256 of the evaluated face region, or a synthetic fallback tag.
    device_id : str
        Device the attempt was made on.
    timestamp : datetime
        Time of the attempt (UTC).
    session_id : str, optional
        Recognition session identifier.
    failure_reason : str, optional
        Why the attempt did not produce an accepted match.
    """

    record_id: str
    identity_id: IdentityId
    outcome: AuditOutcome
    confidence: float
    image_hash: str
    device_id: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    session_id: Optional[str] = None
    failure_reason: Optional[str] = None

    @property
    def success(self) -> bool:
        """Whether the attempt recognised an enrolled identity."""
        return self.outcome in (
            AuditOutcome.MATCHED,
            AuditOutcome.DUPLICATE_SUPPRESSED,
        )

    @property
    def is_unknown(self) -> bool:
        return self.identity_id == UNKNOWN_IDENTITY

    def to_dict(self) -> Dict[str, Any]:
        """Convert the record to a JSON-friendly dictionary."""
        return {
            "record_id": self.record_id,
            "identity_id": self.identity_id,
            "outcome": self.outcome.value,
            "confidence": self.confidence,
            "image_hash": self.image_hash,
            "device_id": self.device_id,
            "timestamp": self.timestamp.isoformat(),
            "session_id": self.session_id,
            "failure_reason": self.failure_reason,
            "success": self.success,
        }


@dataclass(frozen=True)
class QualityAssessment:
    """Photometric and geometric assessment of one face capture."""

    overall_score: float
    brightness_score: float
    contrast_score: float
    sharpness_score: float
    position_score: float
    size_score: float
    is_acceptable: bool
    issues: Tuple[str, ...] = ()

    @property
    def primary_issue(self) -> Optional[str]:
        return self.issues[0] if self.issues else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall_score": self.overall_score,
            "brightness_score": self.brightness_score,
            "contrast_score": self.contrast_score,
            "sharpness_score": self.sharpness_score,
            "position_score": self.position_score,
            "size_score": self.size_score,
            "is_acceptable": self.is_acceptable,
            "issues": list(self.issues),
        }


@dataclass(frozen=True)
class DiversityResult:
    """Result of checking a candidate sample against accepted samples."""

    is_diverse: bool
    diversity_score: float
    message: str
    max_similarity: float = 0.0
    min_similarity: float = 0.0
    avg_similarity: float = 0.0


@dataclass(frozen=True)
class SetAnalysis:
    """Analysis of a complete enrollment batch for one identity."""

    diversity_score: float
    quality_score: float
    recommendation: str
    is_good_set: bool
    has_outlier: bool = False
    outlier_indices: Tuple[int, ...] = ()

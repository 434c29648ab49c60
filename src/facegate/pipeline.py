"""
Enrollment and recognition orchestration.

``RecognitionEngine`` wires the quality assessor, diversity checker,
template store, template cache, matcher and audit recorder together:

    enroll:    quality -> diversity -> sample cap -> store -> invalidate cache
    recognize: quality -> snapshot -> match -> liveness -> duplicate window
               -> audit

Rejections are returned as data. Every recognition attempt is audited,
including attempts that fail because stored templates cannot be decrypted;
in that case the error is audited first and then re-raised.
"""

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import numpy as np
import structlog

from .audit import AuditRecorder, InMemoryAuditSink, JsonLinesAuditSink
from .config import EngineConfig
from .constants import RECOMMENDED_SAMPLES_PER_IDENTITY
from .data_models import (
    NO_MATCH,
    AuditOutcome,
    AuditRecord,
    DiversityResult,
    EnrollmentSample,
    IdentityId,
    MatchDecision,
    QualityAssessment,
    SetAnalysis,
)
from .diversity import DiversityChecker
from .exceptions import FaceGateError
from .matching import match_face
from .quality_assessment import FaceQualityAssessor, RegionLike
from .similarity import normalize_embedding
from .template_cache import TemplateCache
from .template_store import EncryptedTemplateStore
from .utils import generate_session_id, timer

logger = structlog.get_logger(__name__)

NO_IDENTITY_REASON = "No matching identity"
LIVENESS_REASON = "Liveness check failed"
DUPLICATE_REASON = "Already recorded recently"
SAMPLE_LIMIT_REASON = "Maximum samples reached for this identity"


@dataclass(frozen=True)
class EnrollmentOutcome:
    """Result of one enrollment attempt."""

    accepted: bool
    reason: Optional[str] = None
    sample: Optional[EnrollmentSample] = None
    quality: Optional[QualityAssessment] = None
    diversity: Optional[DiversityResult] = None


@dataclass(frozen=True)
class RecognitionOutcome:
    """
    Result of one recognition attempt.

    ``decision`` is the matcher's verdict; ``accepted`` is True only when
    that verdict survived the liveness and duplicate-window checks.
    """

    decision: MatchDecision
    record: AuditRecord
    accepted: bool
    reason: Optional[str] = None


class RecognitionEngine:
    """
    Face enrollment and recognition engine.

    Parameters
    ----------
    config : EngineConfig
        Thresholds, strategy and runtime settings.
    store : EncryptedTemplateStore
        Durable encrypted template storage.
    cache : TemplateCache, optional
        Decrypted template cache; built from ``config`` when omitted.
    recorder : AuditRecorder, optional
        Audit recorder; when omitted, records go to ``config.audit_log_path``
        or to memory.
    assessor : FaceQualityAssessor, optional
        Capture quality assessor built from ``config`` when omitted.
    diversity_checker : DiversityChecker, optional
        Enrollment diversity gate built from ``config`` when omitted.
    clock : callable, default=time.monotonic
        Time source for the duplicate window.
    """

    def __init__(
        self,
        config: EngineConfig,
        store: EncryptedTemplateStore,
        cache: Optional[TemplateCache] = None,
        recorder: Optional[AuditRecorder] = None,
        assessor: Optional[FaceQualityAssessor] = None,
        diversity_checker: Optional[DiversityChecker] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.store = store
        self.cache = cache or TemplateCache(config.cache_validity_seconds)

        if recorder is None:
            sink = (
                JsonLinesAuditSink(config.audit_log_path)
                if config.audit_log_path
                else InMemoryAuditSink()
            )
            recorder = AuditRecorder(sink, config.device_id)
        self.recorder = recorder

        self.assessor = assessor or FaceQualityAssessor(config.min_quality)
        self.diversity_checker = diversity_checker or DiversityChecker(
            config.min_diversity, config.optimal_diversity
        )
        self._clock = clock
        self._lock = threading.Lock()
        self._last_accepted: Dict[IdentityId, float] = {}

        logger.info(
            "RecognitionEngine initialized",
            strategy=config.match_strategy.name,
            threshold=config.similarity_threshold,
            device_id=config.device_id,
        )

    @timer
    def enroll_sample(
        self,
        identity_id: IdentityId,
        embedding: np.ndarray,
        face_image: np.ndarray,
        region: RegionLike,
        frame_bounds: RegionLike,
    ) -> EnrollmentOutcome:
        """
        Enroll one captured sample for an identity.

        Parameters
        ----------
        identity_id : hashable
            Identity the sample belongs to.
        embedding : np.ndarray
            Embedding of the capture; stored L2-normalized.
        face_image : np.ndarray
            The face crop, used for the quality gate.
        region, frame_bounds : BoundingRegion or tuple
            Face region and full frame bounds.

        Returns
        -------
        EnrollmentOutcome
            Accepted with the stored sample, or rejected with a reason.
        """
        vector = normalize_embedding(embedding)

        quality = self.assessor.assess(face_image, region, frame_bounds)
        if not quality.is_acceptable:
            reason = quality.primary_issue or "Image quality too low"
            logger.info(
                "Enrollment sample rejected",
                identity_id=identity_id,
                reason=reason,
                quality_score=round(quality.overall_score, 2),
            )
            return EnrollmentOutcome(accepted=False, reason=reason, quality=quality)

        existing = self.store.embeddings_for(identity_id)
        diversity = self.diversity_checker.check(vector, existing)
        if not diversity.is_diverse:
            logger.info(
                "Enrollment sample rejected",
                identity_id=identity_id,
                reason=diversity.message,
                diversity_score=round(diversity.diversity_score, 2),
            )
            return EnrollmentOutcome(
                accepted=False,
                reason=diversity.message,
                quality=quality,
                diversity=diversity,
            )

        if len(existing) >= self.config.max_samples_per_identity:
            logger.info(
                "Enrollment sample rejected",
                identity_id=identity_id,
                reason=SAMPLE_LIMIT_REASON,
                n_samples=len(existing),
            )
            return EnrollmentOutcome(
                accepted=False,
                reason=SAMPLE_LIMIT_REASON,
                quality=quality,
                diversity=diversity,
            )

        sample = self.store.add_sample(identity_id, vector, quality.overall_score)
        self.cache.invalidate()

        return EnrollmentOutcome(
            accepted=True,
            reason=diversity.message,
            sample=sample,
            quality=quality,
            diversity=diversity,
        )

    def is_enrollment_complete(self, identity_id: IdentityId) -> bool:
        """Whether the identity holds the recommended number of samples."""
        return self.store.sample_count(identity_id) >= RECOMMENDED_SAMPLES_PER_IDENTITY

    def analyze_enrollment(self, identity_id: IdentityId) -> SetAnalysis:
        """Analyse the full stored sample set of an identity."""
        return self.diversity_checker.analyze_set(self.store.embeddings_for(identity_id))

    def delete_identity(self, identity_id: IdentityId) -> int:
        """Delete an identity with all its samples; returns samples removed."""
        removed = self.store.delete_identity(identity_id)
        self.cache.invalidate()
        with self._lock:
            self._last_accepted.pop(identity_id, None)
        return removed

    def _is_duplicate(self, identity_id: IdentityId, now: float) -> bool:
        window = self.config.duplicate_window_seconds
        if window <= 0:
            return False
        last = self._last_accepted.get(identity_id)
        return last is not None and now - last < window

    @timer
    def recognize(
        self,
        query: np.ndarray,
        face_image: np.ndarray,
        region: RegionLike,
        frame_bounds: RegionLike,
        liveness_passed: Optional[bool] = None,
        session_id: Optional[str] = None,
    ) -> RecognitionOutcome:
        """
        Run one recognition attempt and audit it.

        Parameters
        ----------
        query : np.ndarray
            Embedding of the captured face.
        face_image : np.ndarray
            The captured face crop. Quality is scored on it and the whole
            crop is hashed into the audit record.
        region, frame_bounds : BoundingRegion or tuple
            Face region and full frame bounds.
        liveness_passed : bool, optional
            External liveness verdict. ``None`` means no liveness signal is
            available and the check is skipped.
        session_id : str, optional
            Recognition session identifier; generated when omitted.

        Returns
        -------
        RecognitionOutcome
            The decision, its audit record and whether it was accepted.

        Raises
        ------
        InvalidEmbeddingError, DimensionMismatchError
            If the query embedding is unusable (after auditing the failure).
        QualityCheckError
            If the face image is empty or malformed (after auditing the
            failure).
        TemplateUnavailableError
            If stored templates cannot be decrypted (after auditing the
            failure).
        AuditWriteError
            If the audit record cannot be written.
        """
        session_id = session_id or generate_session_id()

        # face_image is already the crop, so its region is the whole image
        def audit(result, reason=None, identity_id=None, confidence=None):
            return self.recorder.record(
                result,
                image=face_image,
                failure_reason=reason,
                session_id=session_id,
                identity_id=identity_id,
                confidence=confidence,
            )

        try:
            vector = normalize_embedding(query)
            quality = self.assessor.assess(face_image, region, frame_bounds)
        except FaceGateError as e:
            audit(AuditOutcome.ERROR, str(e))
            raise

        if not quality.is_acceptable:
            reason = quality.primary_issue or "Image quality too low"
            record = audit(AuditOutcome.REJECTED_QUALITY, reason)
            return RecognitionOutcome(NO_MATCH, record, accepted=False, reason=reason)

        try:
            snapshot = self.cache.get_or_load(self.store.load_all)
            decision = match_face(
                vector,
                snapshot.as_gallery(),
                threshold=self.config.similarity_threshold,
                strategy=self.config.match_strategy,
                vote_fraction=self.config.vote_fraction,
            )
        except FaceGateError as e:
            audit(AuditOutcome.ERROR, str(e))
            raise

        if not decision.is_match:
            record = audit(decision, NO_IDENTITY_REASON)
            return RecognitionOutcome(
                decision, record, accepted=False, reason=NO_IDENTITY_REASON
            )

        if liveness_passed is False:
            record = audit(
                AuditOutcome.REJECTED_LIVENESS,
                LIVENESS_REASON,
                decision.identity_id,
                decision.confidence,
            )
            return RecognitionOutcome(
                decision, record, accepted=False, reason=LIVENESS_REASON
            )

        with self._lock:
            now = self._clock()
            duplicate = self._is_duplicate(decision.identity_id, now)

        if duplicate:
            record = audit(
                AuditOutcome.DUPLICATE_SUPPRESSED,
                DUPLICATE_REASON,
                decision.identity_id,
                decision.confidence,
            )
            return RecognitionOutcome(
                decision, record, accepted=False, reason=DUPLICATE_REASON
            )

        record = audit(decision)
        with self._lock:
            self._last_accepted[decision.identity_id] = now
        return RecognitionOutcome(decision, record, accepted=True)

"""
FaceGate - face embedding matching and capture quality governance.

Matches face embeddings against a small multi-sample gallery, gates
enrollment captures on image quality and sample diversity, keeps templates
encrypted at rest behind a time-bounded decrypted cache, and records every
recognition attempt in a tamper-evident audit trail.
"""

__version__ = "1.0.0"

from .audit import AuditRecorder, InMemoryAuditSink, JsonLinesAuditSink, verify_chain
from .config import EngineConfig, load_config
from .data_models import (
    NO_MATCH,
    AuditOutcome,
    AuditRecord,
    BoundingRegion,
    Matched,
    MatchStrategy,
    NoMatch,
)
from .diversity import DiversityChecker
from .matching import match_face
from .pipeline import RecognitionEngine
from .quality_assessment import FaceQualityAssessor
from .similarity import cosine_similarity, normalize_embedding
from .template_cache import TemplateCache
from .template_store import EncryptedTemplateStore, TemplateCipher

__all__ = [
    "AuditOutcome",
    "AuditRecord",
    "AuditRecorder",
    "BoundingRegion",
    "DiversityChecker",
    "EncryptedTemplateStore",
    "EngineConfig",
    "FaceQualityAssessor",
    "InMemoryAuditSink",
    "JsonLinesAuditSink",
    "MatchStrategy",
    "Matched",
    "NO_MATCH",
    "NoMatch",
    "RecognitionEngine",
    "TemplateCache",
    "TemplateCipher",
    "cosine_similarity",
    "load_config",
    "match_face",
    "normalize_embedding",
    "verify_chain",
]

"""
Constants and tunable parameters for the FaceGate matching engine.

This module centralizes all engine parameters so that thresholds used by the
quality, diversity and matching stages can be reviewed in one place. Values
are production defaults; deployments override the user-facing ones through
``config.py``.
"""

from typing import Dict, Final

# =============================================================================
# Matching
# =============================================================================

# Production similarity threshold, balanced for accuracy and usability
DEFAULT_SIMILARITY_THRESHOLD: Final[float] = 0.72

# Informational bands reported alongside a match
STRONG_MATCH_THRESHOLD: Final[float] = 0.82
VERY_STRONG_MATCH_THRESHOLD: Final[float] = 0.88

# Share of an identity's samples that must clear the threshold under VOTING
DEFAULT_VOTE_FRACTION: Final[float] = 0.5

# Exponent applied to similarities by the WEIGHTED_AVERAGE strategy
WEIGHTED_AVERAGE_SHARPNESS: Final[float] = 5.0

# =============================================================================
# Quality assessment
# =============================================================================

QUALITY_WEIGHTS: Final[Dict[str, float]] = {
    "brightness": 0.25,
    "contrast": 0.20,
    "sharpness": 0.25,
    "position": 0.15,
    "size": 0.15,
}

# Minimum overall quality (0-100) for a capture to be usable
MIN_OVERALL_QUALITY: Final[float] = 60.0

# Sub-scores below this value are reported as issues
ISSUE_SCORE_THRESHOLD: Final[float] = 50.0

# Stride of the luminance sampling grid
LUMINANCE_SAMPLE_STEP: Final[int] = 5

# Brightness window on a 0-255 scale
MIN_BRIGHTNESS: Final[float] = 40.0
MAX_BRIGHTNESS: Final[float] = 220.0
OPTIMAL_BRIGHTNESS: Final[float] = 130.0

# Contrast (max - min luminance)
MIN_CONTRAST: Final[float] = 30.0
SATURATED_CONTRAST: Final[float] = 100.0

# Sharpness (root mean squared Laplacian response)
MIN_SHARPNESS: Final[float] = 40.0
MAX_SHARPNESS: Final[float] = 100.0
SHARPNESS_WINDOW: Final[int] = 100

# Face must sit within this fraction of the frame width from the centre
POSITION_TOLERANCE: Final[float] = 0.3

# Shorter side of the face region in pixels
MIN_FACE_SIZE: Final[int] = 140
OPTIMAL_FACE_SIZE: Final[int] = 230

# =============================================================================
# Enrollment diversity
# =============================================================================

MIN_DIVERSITY_THRESHOLD: Final[float] = 0.15
OPTIMAL_DIVERSITY: Final[float] = 0.25

# Average similarity to the rest of the set below which a sample is an outlier
OUTLIER_SIMILARITY_THRESHOLD: Final[float] = 0.70

RECOMMENDED_SAMPLES_PER_IDENTITY: Final[int] = 5
MAX_SAMPLES_PER_IDENTITY: Final[int] = 10

# =============================================================================
# Template cache
# =============================================================================

CACHE_VALIDITY_SECONDS: Final[float] = 300.0

# =============================================================================
# Template encryption (AES-256-GCM, Argon2id key derivation)
# =============================================================================

AES_KEY_LENGTH: Final[int] = 32
GCM_NONCE_LENGTH: Final[int] = 12

ARGON2_TIME_COST: Final[int] = 3
ARGON2_MEMORY_COST: Final[int] = 65536
ARGON2_PARALLELISM: Final[int] = 1
ARGON2_SALT_LENGTH: Final[int] = 16

# =============================================================================
# Audit trail
# =============================================================================

# Identity reference written for attempts that matched nobody
UNKNOWN_IDENTITY: Final[str] = "unknown"

# Hash written when no image was available for the attempt
NO_IMAGE_HASH: Final[str] = "no_image"

# Prefix of the synthetic hash written when hashing the region failed
HASH_ERROR_PREFIX: Final[str] = "error_"

# Digest used as predecessor of the first record in a chained audit log
GENESIS_DIGEST: Final[str] = "0" * 64

# =============================================================================
# Recognition workflow
# =============================================================================

# Minimum interval between two accepted matches of the same identity
DUPLICATE_WINDOW_SECONDS: Final[float] = 30.0

DEFAULT_DEVICE_ID: Final[str] = "UNKNOWN_DEVICE"

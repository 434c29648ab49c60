"""
Face capture quality assessment for the FaceGate engine.

This module scores a single captured face image on five photometric and
geometric criteria: brightness, contrast, sharpness, position in the frame
and face size. Each sub-score lies in 0-100 and the weighted overall score
decides whether the capture is usable for enrollment or recognition.

The metrics are deliberately simple accept/reject proxies. They only have to
separate usable from unusable captures, not measure absolute image quality.
Returning an assessment is never an error: callers gate on
``QualityAssessment.is_acceptable`` and show the first issue as feedback.
"""

from typing import Optional, Tuple, Union
import cv2
import numpy as np
import structlog

from .constants import (
    ISSUE_SCORE_THRESHOLD,
    LUMINANCE_SAMPLE_STEP,
    MAX_BRIGHTNESS,
    MAX_SHARPNESS,
    MIN_BRIGHTNESS,
    MIN_CONTRAST,
    MIN_FACE_SIZE,
    MIN_OVERALL_QUALITY,
    MIN_SHARPNESS,
    OPTIMAL_BRIGHTNESS,
    OPTIMAL_FACE_SIZE,
    POSITION_TOLERANCE,
    QUALITY_WEIGHTS,
    SATURATED_CONTRAST,
    SHARPNESS_WINDOW,
)
from .data_models import BoundingRegion, QualityAssessment
from .exceptions import QualityCheckError

# Initialize structured logger
logger = structlog.get_logger(__name__)

RegionLike = Union[BoundingRegion, Tuple[int, int, int, int]]

ISSUE_MESSAGES = {
    "brightness": "Too dark or too bright",
    "contrast": "Low contrast - check lighting",
    "sharpness": "Image blurry - hold still",
    "position": "Center your face",
    "size": "Move closer to camera",
}


def as_region(region: RegionLike) -> BoundingRegion:
    if isinstance(region, BoundingRegion):
        return region
    left, top, right, bottom = (int(v) for v in region)
    return BoundingRegion(left, top, right, bottom)


def _piecewise_score(value: float, low: float, high: float) -> float:
    """
    Map ``value`` to 0-100: linear to 50 below ``low``, linear from 50 to 100
    between ``low`` and ``high``, saturated at 100 above.
    """
    if value < low:
        return max(0.0, value / low * 50.0)
    if value < high:
        return 50.0 + (value - low) / (high - low) * 50.0
    return 100.0


def to_luminance(image: np.ndarray, bgr: bool = False) -> np.ndarray:
    """
    Convert an image to perceived luminance (0.299R + 0.587G + 0.114B).

    Parameters
    ----------
    image : np.ndarray
        Grayscale (H, W), colour (H, W, 3) or colour with alpha (H, W, 4).
    bgr : bool, default=False
        Whether colour channels are in OpenCV's BGR order.

    Returns
    -------
    np.ndarray
        Float32 luminance array of shape (H, W).

    Raises
    ------
    QualityCheckError
        If the image is empty or has an unsupported shape.
    """
    if image is None or not isinstance(image, np.ndarray) or image.size == 0:
        raise QualityCheckError("Face image is empty or missing")

    pixels = image.astype(np.float32)

    if pixels.ndim == 2:
        return pixels

    if pixels.ndim == 3 and pixels.shape[2] == 1:
        return pixels[:, :, 0]

    if pixels.ndim == 3 and pixels.shape[2] in (3, 4):
        if pixels.shape[2] == 4:
            code = cv2.COLOR_BGRA2GRAY if bgr else cv2.COLOR_RGBA2GRAY
        else:
            code = cv2.COLOR_BGR2GRAY if bgr else cv2.COLOR_RGB2GRAY
        return cv2.cvtColor(pixels, code)

    raise QualityCheckError(
        "Unsupported face image shape", image_shape=tuple(image.shape)
    )


class FaceQualityAssessor:
    """
    Quality assessment engine for face captures.

    Parameters
    ----------
    min_overall_quality : float, default=MIN_OVERALL_QUALITY
        Overall score (0-100) at or above which a capture is acceptable.
    bgr : bool, default=False
        Whether colour images arrive in BGR channel order.

    Examples
    --------
    >>> assessor = FaceQualityAssessor()
    >>> assessment = assessor.assess(face_rgb, (200, 120, 440, 360), (0, 0, 640, 480))
    >>> assessment.is_acceptable
    True
    """

    def __init__(
        self, min_overall_quality: float = MIN_OVERALL_QUALITY, bgr: bool = False
    ) -> None:
        self.min_overall_quality = min_overall_quality
        self.bgr = bgr

        logger.debug(
            "FaceQualityAssessor initialized",
            min_overall_quality=min_overall_quality,
            bgr=bgr,
        )

    def assess(
        self,
        face_image: np.ndarray,
        region: RegionLike,
        frame_bounds: RegionLike,
    ) -> QualityAssessment:
        """
        Assess a captured face image.

        Parameters
        ----------
        face_image : np.ndarray
            The face crop (grayscale or colour).
        region : BoundingRegion or (left, top, right, bottom)
            Detected face region in frame coordinates.
        frame_bounds : BoundingRegion or (left, top, right, bottom)
            Bounds of the full camera frame.

        Returns
        -------
        QualityAssessment
            Sub-scores, weighted overall score, acceptability and issues.

        Raises
        ------
        QualityCheckError
            If the image array is empty or malformed.
        """
        face_region = as_region(region)
        frame = as_region(frame_bounds)
        luminance = to_luminance(face_image, bgr=self.bgr)

        sampled = luminance[::LUMINANCE_SAMPLE_STEP, ::LUMINANCE_SAMPLE_STEP]

        scores = {
            "brightness": self.score_brightness(float(np.mean(sampled))),
            "contrast": self.score_contrast(float(np.max(sampled) - np.min(sampled))),
            "sharpness": self.score_sharpness(luminance),
            "position": self.score_position(face_region, frame),
            "size": self.score_size(face_region),
        }

        overall = sum(scores[name] * weight for name, weight in QUALITY_WEIGHTS.items())

        issues = tuple(
            ISSUE_MESSAGES[name]
            for name in ("brightness", "contrast", "sharpness", "position", "size")
            if scores[name] < ISSUE_SCORE_THRESHOLD
        )

        assessment = QualityAssessment(
            overall_score=float(overall),
            brightness_score=scores["brightness"],
            contrast_score=scores["contrast"],
            sharpness_score=scores["sharpness"],
            position_score=scores["position"],
            size_score=scores["size"],
            is_acceptable=overall >= self.min_overall_quality,
            issues=issues,
        )

        logger.debug(
            "Face quality assessment completed",
            overall_score=round(assessment.overall_score, 2),
            components={k: round(v, 2) for k, v in scores.items()},
            is_acceptable=assessment.is_acceptable,
            n_issues=len(issues),
        )

        return assessment

    @staticmethod
    def score_brightness(mean_luminance: float) -> float:
        """Score average luminance, penalising under- and over-exposure."""
        if mean_luminance < MIN_BRIGHTNESS:
            return max(0.0, mean_luminance / MIN_BRIGHTNESS * 50.0)

        if mean_luminance > MAX_BRIGHTNESS:
            return max(0.0, (255.0 - mean_luminance) / (255.0 - MAX_BRIGHTNESS) * 50.0)

        deviation = abs(mean_luminance - OPTIMAL_BRIGHTNESS)
        return float(np.clip(100.0 - deviation / OPTIMAL_BRIGHTNESS * 50.0, 50.0, 100.0))

    @staticmethod
    def score_contrast(contrast: float) -> float:
        """Score the sampled luminance range (max - min)."""
        return _piecewise_score(contrast, MIN_CONTRAST, SATURATED_CONTRAST)

    @staticmethod
    def score_sharpness(luminance: np.ndarray) -> float:
        """
        Score sharpness from the discrete Laplacian over a central window.

        The Laplacian (4 * centre - 4 neighbours) is squared and averaged over
        interior pixels of a window of side ``min(100, w / 2, h / 2)``. Its
        root is clipped to 0-100 before scoring.
        """
        height, width = luminance.shape
        size = min(SHARPNESS_WINDOW, width // 2, height // 2)
        center_x, center_y = width // 2, height // 2

        # Only pixels with all four neighbours inside the image count.
        y0 = max(center_y - size // 2, 1)
        y1 = min(center_y + size // 2, height - 1)
        x0 = max(center_x - size // 2, 1)
        x1 = min(center_x + size // 2, width - 1)

        if y1 <= y0 or x1 <= x0:
            return 0.0

        laplacian = cv2.Laplacian(luminance.astype(np.float64), cv2.CV_64F, ksize=1)
        window = laplacian[y0:y1, x0:x1]
        mean_square = float(np.mean(window * window))

        sharpness = float(np.clip(np.sqrt(mean_square), 0.0, MAX_SHARPNESS))

        if sharpness < MIN_SHARPNESS:
            return sharpness / MIN_SHARPNESS * 50.0
        return 50.0 + (sharpness - MIN_SHARPNESS) / (MAX_SHARPNESS - MIN_SHARPNESS) * 50.0

    @staticmethod
    def score_position(region: BoundingRegion, frame: BoundingRegion) -> float:
        """Score how close the face centre is to the frame centre."""
        max_offset = frame.width * POSITION_TOLERANCE
        if max_offset <= 0:
            return 0.0

        face_x, face_y = region.center
        frame_x, frame_y = frame.center
        offset = float(np.hypot(face_x - frame_x, face_y - frame_y))

        normalized = min(max(offset / max_offset, 0.0), 1.0)
        return (1.0 - normalized) * 100.0

    @staticmethod
    def score_size(region: BoundingRegion) -> float:
        """Score the shorter side of the face region."""
        return _piecewise_score(
            float(region.shorter_side), float(MIN_FACE_SIZE), float(OPTIMAL_FACE_SIZE)
        )

    def meets_minimum_quality(
        self,
        face_image: np.ndarray,
        region: RegionLike,
        frame_bounds: RegionLike,
    ) -> bool:
        """Quick check whether a capture meets the minimum overall quality."""
        return self.assess(face_image, region, frame_bounds).is_acceptable


def quality_message(assessment: QualityAssessment) -> str:
    """
    User-facing feedback for an assessment.

    Examples
    --------
    >>> quality_message(assessment)  # overall score 85
    'Excellent quality!'
    """
    if assessment.overall_score >= 80.0:
        return "Excellent quality!"
    if assessment.overall_score >= 70.0:
        return "Good quality"
    if assessment.overall_score >= MIN_OVERALL_QUALITY:
        return f"Acceptable - {assessment.primary_issue or ''}".rstrip(" -")
    return assessment.primary_issue or "Poor quality"


# Convenience function for standalone use
def assess_face_quality(
    face_image: np.ndarray,
    region: RegionLike,
    frame_bounds: RegionLike,
    min_overall_quality: Optional[float] = None,
) -> QualityAssessment:
    """
    Assess a face capture with a default assessor.

    Parameters
    ----------
    face_image : np.ndarray
        The face crop.
    region : BoundingRegion or tuple
        Detected face region.
    frame_bounds : BoundingRegion or tuple
        Full frame bounds.
    min_overall_quality : float, optional
        Override of the acceptance threshold.

    Returns
    -------
    QualityAssessment
        The assessment.
    """
    threshold = MIN_OVERALL_QUALITY if min_overall_quality is None else min_overall_quality
    return FaceQualityAssessor(min_overall_quality=threshold).assess(
        face_image, region, frame_bounds
    )

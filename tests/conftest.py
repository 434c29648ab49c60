"""Pytest configuration for the FaceGate test suite."""

import math
import os

import numpy as np
import pytest
import structlog


def _ensure_test_env() -> None:
    """Keep a developer's FACEGATE_* settings out of the tests."""
    for name in list(os.environ):
        if name.startswith("FACEGATE_"):
            del os.environ[name]


_ensure_test_env()

EMBEDDING_DIM = 16

FACE_REGION = (200, 120, 440, 360)
FRAME_BOUNDS = (0, 0, 640, 480)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def axis(index: int, dim: int = EMBEDDING_DIM) -> np.ndarray:
    vector = np.zeros(dim)
    vector[index] = 1.0
    return vector


def with_similarity(similarity: float, base: int, other: int) -> np.ndarray:
    """Unit vector whose cosine similarity to ``axis(base)`` is ``similarity``."""
    return similarity * axis(base) + math.sqrt(1.0 - similarity ** 2) * axis(other)


@pytest.fixture(autouse=True)
def reset_structlog():
    yield
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sharp_face() -> np.ndarray:
    """240x240 RGB crop: 1-pixel checkerboard of 80/180, mean luminance 130."""
    rows, cols = np.indices((240, 240))
    gray = np.where((rows + cols) % 2 == 0, 80, 180).astype(np.uint8)
    return np.repeat(gray[:, :, None], 3, axis=2)


@pytest.fixture
def dark_face() -> np.ndarray:
    return np.full((240, 240, 3), 20, dtype=np.uint8)


@pytest.fixture
def face_region():
    return FACE_REGION


@pytest.fixture
def frame_bounds():
    return FRAME_BOUNDS

"""Unit tests for audit hashing, recording and the hash-chained log."""

import json

import numpy as np
import pytest

from facegate.audit import (
    AuditRecorder,
    InMemoryAuditSink,
    JsonLinesAuditSink,
    compute_region_hash,
    verify_chain,
)
from facegate.data_models import NO_MATCH, AuditOutcome, BoundingRegion, Matched
from facegate.exceptions import AuditWriteError

REGION = BoundingRegion(10, 10, 30, 30)


@pytest.fixture
def frame() -> np.ndarray:
    rng = np.random.default_rng(7)
    return rng.integers(0, 256, size=(40, 40, 3), dtype=np.uint8)


def test_missing_image_hashes_to_sentinel() -> None:
    assert compute_region_hash(None, REGION) == "no_image"


def test_region_hash_is_deterministic_sha256(frame) -> None:
    digest = compute_region_hash(frame, REGION)

    assert digest == compute_region_hash(frame.copy(), REGION)
    assert len(digest) == 64
    int(digest, 16)


def test_region_hash_ignores_pixels_outside_region(frame) -> None:
    altered = frame.copy()
    altered[0:5, 0:5] = 0

    assert compute_region_hash(altered, REGION) == compute_region_hash(frame, REGION)


def test_region_hash_changes_with_region_content(frame) -> None:
    altered = frame.copy()
    altered[15, 15] = 255 - altered[15, 15]

    assert compute_region_hash(altered, REGION) != compute_region_hash(frame, REGION)


def test_out_of_bounds_region_hashes_whole_image(frame) -> None:
    outside = BoundingRegion(30, 30, 80, 80)

    assert compute_region_hash(frame, outside) == compute_region_hash(frame)


def test_hashing_failure_returns_error_tag() -> None:
    digest = compute_region_hash("not an image", REGION)

    assert digest.startswith("error_")
    assert digest[len("error_"):].isdigit()


def test_matched_decision_is_recorded(frame) -> None:
    sink = InMemoryAuditSink()
    recorder = AuditRecorder(sink, device_id="kiosk-1")

    record = recorder.record(
        Matched("alice", 0.91), image=frame, region=REGION, session_id="s1"
    )

    assert sink.records == [record]
    assert record.outcome is AuditOutcome.MATCHED
    assert record.identity_id == "alice"
    assert record.confidence == pytest.approx(0.91)
    assert record.success
    assert record.device_id == "kiosk-1"
    assert record.session_id == "s1"
    assert record.image_hash == compute_region_hash(frame, REGION)


def test_no_match_is_recorded_as_unknown(frame) -> None:
    sink = InMemoryAuditSink()

    record = AuditRecorder(sink).record(NO_MATCH, image=frame, failure_reason="none")

    assert record.outcome is AuditOutcome.NO_MATCH
    assert record.is_unknown
    assert record.confidence == 0.0
    assert not record.success
    assert record.device_id == "UNKNOWN_DEVICE"
    assert record.failure_reason == "none"


def test_explicit_outcome_keeps_identity() -> None:
    record = AuditRecorder(InMemoryAuditSink()).record(
        AuditOutcome.DUPLICATE_SUPPRESSED, identity_id="alice", confidence=0.8
    )

    assert record.identity_id == "alice"
    assert record.success
    assert record.image_hash == "no_image"


def test_sink_failure_raises_audit_write_error() -> None:
    class BrokenSink:
        def append(self, record) -> None:
            raise OSError("disk full")

    with pytest.raises(AuditWriteError) as excinfo:
        AuditRecorder(BrokenSink()).record(NO_MATCH)

    assert excinfo.value.error_code == "AUDIT_001"
    assert "record_id" in excinfo.value.context


def _write_log(path, n_records: int = 3) -> None:
    recorder = AuditRecorder(JsonLinesAuditSink(path), device_id="kiosk-1")
    for i in range(n_records):
        recorder.record(Matched(f"user-{i}", 0.8 + i / 100))


def test_jsonl_log_chain_verifies(tmp_path) -> None:
    path = tmp_path / "audit" / "log.jsonl"
    _write_log(path)

    result = verify_chain(path)

    assert result.is_valid
    assert result.n_records == 3
    lines = path.read_text(encoding="utf-8").splitlines()
    first = json.loads(lines[0])
    assert first["prev_digest"] == "0" * 64
    assert json.loads(lines[1])["prev_digest"] == first["digest"]


def test_reopened_log_continues_chain(tmp_path) -> None:
    path = tmp_path / "log.jsonl"
    _write_log(path, 2)
    _write_log(path, 2)

    sink = JsonLinesAuditSink(path)

    assert sink.verify_chain().n_records == 4
    assert sink.verify_chain().is_valid


def test_edited_line_is_detected(tmp_path) -> None:
    path = tmp_path / "log.jsonl"
    _write_log(path)
    lines = path.read_text(encoding="utf-8").splitlines()
    entry = json.loads(lines[1])
    entry["confidence"] = 0.99
    lines[1] = json.dumps(entry)
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")

    result = verify_chain(path)

    assert not result.is_valid
    assert result.first_invalid_line == 2
    assert result.reason == "digest mismatch"


def test_deleted_line_is_detected(tmp_path) -> None:
    path = tmp_path / "log.jsonl"
    _write_log(path)
    lines = path.read_text(encoding="utf-8").splitlines()
    path.write_text("\n".join(lines[1:]) + "\n", encoding="utf-8")

    result = verify_chain(path)

    assert not result.is_valid
    assert result.first_invalid_line == 1
    assert result.reason == "broken chain"


def test_reordered_lines_are_detected(tmp_path) -> None:
    path = tmp_path / "log.jsonl"
    _write_log(path)
    lines = path.read_text(encoding="utf-8").splitlines()
    lines[1], lines[2] = lines[2], lines[1]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")

    assert not verify_chain(path).is_valid


def test_malformed_line_is_detected(tmp_path) -> None:
    path = tmp_path / "log.jsonl"
    _write_log(path, 1)
    with open(path, "a", encoding="utf-8") as f:
        f.write("{not json\n")

    result = verify_chain(path)

    assert not result.is_valid
    assert result.first_invalid_line == 2
    assert result.n_records == 1

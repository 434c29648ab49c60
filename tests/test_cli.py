"""Tests for the facegate command-line interface."""

import json

import cv2
import numpy as np
import pytest

from facegate.audit import AuditRecorder, JsonLinesAuditSink
from facegate.cli import FaceGateCLI
from facegate.data_models import Matched

REGION_ARGS = ["--region", "200", "120", "440", "360"]


@pytest.fixture
def frame_path(tmp_path, sharp_face):
    frame = np.zeros((480, 640, 3), dtype=np.uint8)
    frame[120:360, 200:440] = sharp_face
    path = tmp_path / "frame.png"
    cv2.imwrite(str(path), frame)
    return path


@pytest.fixture
def dark_frame_path(tmp_path):
    path = tmp_path / "dark.png"
    cv2.imwrite(str(path), np.full((480, 640, 3), 20, dtype=np.uint8))
    return path


def test_assess_acceptable_capture(frame_path, capsys) -> None:
    exit_code = FaceGateCLI().run_from_args(["assess", str(frame_path), *REGION_ARGS])

    assert exit_code == 0
    output = capsys.readouterr().out
    assert "Acceptable: yes" in output
    assert "Excellent quality!" in output


def test_assess_json_output(frame_path, capsys) -> None:
    exit_code = FaceGateCLI().run_from_args(
        ["assess", str(frame_path), *REGION_ARGS, "--json"]
    )

    assert exit_code == 0
    assessment = json.loads(capsys.readouterr().out)
    assert assessment["is_acceptable"] is True
    assert assessment["issues"] == []


def test_assess_poor_capture_exits_with_failure(dark_frame_path, capsys) -> None:
    exit_code = FaceGateCLI().run_from_args(
        ["assess", str(dark_frame_path), *REGION_ARGS]
    )

    assert exit_code == 1
    assert "Acceptable: no" in capsys.readouterr().out


def test_assess_missing_image(tmp_path, capsys) -> None:
    exit_code = FaceGateCLI().run_from_args(
        ["assess", str(tmp_path / "missing.png"), *REGION_ARGS]
    )

    assert exit_code == 1
    assert "Cannot read image" in capsys.readouterr().err


def test_assess_invalid_region(frame_path, capsys) -> None:
    exit_code = FaceGateCLI().run_from_args(
        ["assess", str(frame_path), "--region", "300", "120", "200", "360"]
    )

    assert exit_code == 1


def test_verify_audit_intact_log(tmp_path, capsys) -> None:
    path = tmp_path / "audit.jsonl"
    recorder = AuditRecorder(JsonLinesAuditSink(path))
    recorder.record(Matched("alice", 0.9))
    recorder.record(Matched("bob", 0.8))

    exit_code = FaceGateCLI().run_from_args(["verify-audit", str(path)])

    assert exit_code == 0
    assert "OK: 2 records" in capsys.readouterr().out


def test_verify_audit_tampered_log(tmp_path, capsys) -> None:
    path = tmp_path / "audit.jsonl"
    recorder = AuditRecorder(JsonLinesAuditSink(path))
    recorder.record(Matched("alice", 0.9))
    path.write_text(
        path.read_text(encoding="utf-8").replace("alice", "mallory"), encoding="utf-8"
    )

    exit_code = FaceGateCLI().run_from_args(["verify-audit", str(path)])

    assert exit_code == 1
    assert "TAMPERED: line 1" in capsys.readouterr().out


def test_verify_audit_missing_log(tmp_path, capsys) -> None:
    exit_code = FaceGateCLI().run_from_args(
        ["verify-audit", str(tmp_path / "none.jsonl")]
    )

    assert exit_code == 1


def test_config_command_prints_summary(capsys) -> None:
    exit_code = FaceGateCLI().run_from_args(["config"])

    assert exit_code == 0
    summary = json.loads(capsys.readouterr().out)
    assert summary["matching"]["similarity_threshold"] == 0.72


def test_config_command_reports_invalid_settings(monkeypatch, capsys) -> None:
    monkeypatch.setenv("FACEGATE_SIMILARITY_THRESHOLD", "7")

    exit_code = FaceGateCLI().run_from_args(["config"])

    assert exit_code == 1
    assert "CONFIG_001" in capsys.readouterr().err

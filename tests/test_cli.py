"""Tests for the facepass CLI."""

import json

import pytest

from facepass.cli import main
from facepass.cli.commands.replay import read_frames

POSES = {
    "center": (0.0, 0.0),
    "left": (25.0, 0.0),
    "right": (-25.0, 0.0),
    "up": (0.0, 20.0),
    "down": (0.0, -20.0),
}


def _face(yaw=0.0, pitch=0.0, left=0.9, right=0.9, smile=0.1):
    return {
        "bbox": [125, 125, 150, 150],
        "landmarks": {
            "left_eye": [170, 176],
            "right_eye": [230, 176],
            "nose_base": [200, 200],
            "left_mouth": [176, 230],
            "right_mouth": [224, 230],
            "bottom_mouth": [200, 248],
        },
        "yaw": yaw,
        "pitch": pitch,
        "left_eye_open": left,
        "right_eye_open": right,
        "smiling": smile,
    }


def _write(path, frames):
    path.write_text("\n".join(json.dumps(f) for f in frames) + "\n")
    return path


class TestInfo:
    def test_defaults(self, capsys):
        assert main(["info"]) == 0
        out = capsys.readouterr().out
        assert "[Embedding]" in out
        assert "center, left, right, up, down" in out
        assert "100m" in out
        assert "08:30" in out

    def test_with_config(self, tmp_path, capsys):
        path = tmp_path / "facepass.yaml"
        path.write_text("registration:\n  poses: three\ngeofence:\n  radius_m: 1500\n")
        assert main(["info", "--config", str(path)]) == 0
        out = capsys.readouterr().out
        assert "center, left, right\n" in out
        assert "1.5km" in out


class TestReplay:
    def test_missing_file(self, tmp_path, capsys):
        assert main(["replay", str(tmp_path / "missing.jsonl")]) == 1

    def test_read_frames(self, tmp_path):
        path = _write(tmp_path / "frames.jsonl", [{"t_ms": 5, "faces": [_face()]}, {}])
        frames = list(read_frames(path))
        assert len(frames) == 2
        assert frames[0].t_ns == 5_000_000
        assert frames[0].faces[0].yaw == 0.0
        assert frames[1].faces == []

    def test_read_frames_invalid_json(self, tmp_path):
        path = tmp_path / "bad.jsonl"
        path.write_text("{oops\n")
        with pytest.raises(ValueError, match=":1:"):
            list(read_frames(path))

    def test_liveness_blink_and_smile(self, tmp_path, capsys):
        frames = [
            {"t_ms": 0, "brightness": 120, "faces": [_face()]},
            {"t_ms": 100, "brightness": 120, "faces": [_face(left=0.1, right=0.1)]},
            {"t_ms": 200, "brightness": 120, "faces": [_face()]},
            {"t_ms": 300, "brightness": 120, "faces": [_face(smile=0.9)]},
            {"t_ms": 310, "brightness": 120, "faces": [_face(smile=0.9)]},
        ]
        path = _write(tmp_path / "live.jsonl", frames)
        assert main(["replay", str(path)]) == 0
        out = capsys.readouterr().out
        assert "VERIFY (blink)" in out
        assert "VERIFY (smile)" in out
        assert "2 verification(s)" in out

    def test_registration_complete(self, tmp_path, capsys):
        frames = []
        for i, (yaw, pitch) in enumerate(POSES.values()):
            for k in range(3):
                frames.append({
                    "t_ms": i * 5000 + k * 1000,
                    "brightness": 120,
                    "faces": [_face(yaw, pitch)],
                })
        path = _write(tmp_path / "reg.jsonl", frames)
        assert main(["replay", str(path), "--mode", "registration"]) == 0
        out = capsys.readouterr().out
        assert "captured down" in out
        assert "Registration complete: 5 poses, dim 13" in out

    def test_registration_incomplete(self, tmp_path, capsys):
        frames = [
            {"t_ms": k * 1000, "brightness": 120, "faces": [_face()]} for k in range(3)
        ]
        path = _write(tmp_path / "reg.jsonl", frames)
        assert main(["replay", str(path), "--mode", "registration"]) == 1
        assert "1/5 poses captured" in capsys.readouterr().out

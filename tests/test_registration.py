"""Tests for multi-pose registration capture."""

import numpy as np
import pytest

from facepass.config import FacepassConfig, RegistrationConfig, THREE_POSE
from facepass.embedding.geometric import GeometricExtractor
from facepass.errors import StoreError
from facepass.registration import (
    CaptureMachine,
    CaptureState,
    RegistrationController,
    classify_pose,
)
from facepass.stores import InMemoryTemplateStore
from facepass.types import Reason, ScanType

from conftest import ScriptedExtractor

MS = 1_000_000
POSE_ANGLES = {
    "center": dict(yaw=0.0, pitch=0.0),
    "left": dict(yaw=25.0, pitch=0.0),
    "right": dict(yaw=-25.0, pitch=0.0),
    "up": dict(yaw=0.0, pitch=20.0),
    "down": dict(yaw=0.0, pitch=-20.0),
}


class FailingTemplateStore(InMemoryTemplateStore):
    def __init__(self, failures=1):
        super().__init__()
        self.failures = failures

    def save(self, user_id, template):
        if self.failures > 0:
            self.failures -= 1
            raise StoreError("backend unreachable")
        super().save(user_id, template)


def hold(target, make_frame, t0_ms, pose, step_ms=1000, **overrides):
    """Feed in-position frames at t0, t0+1s, t0+2s; return the last update."""
    angles = dict(POSE_ANGLES[pose], **overrides)
    update = None
    for i in range(3):
        update = target.on_frame(make_frame(t_ns=(t0_ms + i * step_ms) * MS, **angles))
    return update


class TestClassifyPose:
    @pytest.mark.parametrize("pose,yaw,pitch,expected", [
        ("center", 5.0, -4.0, True),
        ("center", 12.0, 0.0, False),
        ("center", 0.0, 11.0, False),
        ("left", 25.0, 0.0, True),
        ("left", 10.0, 0.0, False),
        ("left", -25.0, 0.0, False),
        ("right", -25.0, 0.0, True),
        ("right", 25.0, 0.0, False),
        ("up", 0.0, 20.0, True),
        ("down", 0.0, -20.0, True),
        ("down", 0.0, 20.0, False),
    ])
    def test_positions(self, pose, yaw, pitch, expected):
        assert classify_pose(pose, yaw, pitch)[0] is expected

    def test_center_hints(self):
        assert classify_pose("center", 15.0, 0.0)[1] == "Turn your head slightly right"
        assert classify_pose("center", -15.0, 0.0)[1] == "Turn your head slightly left"

    def test_turn_hints(self):
        assert classify_pose("left", 5.0, 0.0)[1] == "Turn your head more to the left"
        assert classify_pose("left", 45.0, 0.0)[1] == "Turn back slightly"
        assert classify_pose("right", -45.0, 0.0)[1] == "Turn back slightly"

    def test_sign_convention(self):
        cfg = RegistrationConfig(yaw_left_sign=-1)
        assert classify_pose("left", -25.0, 0.0, cfg)[0]
        assert not classify_pose("left", 25.0, 0.0, cfg)[0]

    def test_missing_angles_count_as_zero(self):
        assert classify_pose("center", None, None)[0]
        assert not classify_pose("left", None, None)[0]

    def test_unknown_pose(self):
        with pytest.raises(ValueError):
            classify_pose("sideways", 0.0, 0.0)


class TestCaptureMachine:
    def test_hold_countdown(self, make_frame, make_embedding):
        machine = CaptureMachine(ScriptedExtractor([make_embedding(1)]))
        update = machine.on_frame(make_frame(t_ns=0))
        assert update.in_position
        assert update.countdown == 2.0
        update = machine.on_frame(make_frame(t_ns=1000 * MS))
        assert update.countdown == 1.0
        update = machine.on_frame(make_frame(t_ns=2000 * MS))
        assert update.captured_pose == "center"
        assert machine.current_pose == "left"

    def test_losing_position_cancels_hold(self, make_frame, make_embedding):
        machine = CaptureMachine(ScriptedExtractor([make_embedding(1)]))
        machine.on_frame(make_frame(t_ns=0))
        update = machine.on_frame(make_frame(t_ns=1000 * MS, yaw=20.0))
        assert not update.in_position
        assert not machine.holding
        machine.on_frame(make_frame(t_ns=1500 * MS))
        update = machine.on_frame(make_frame(t_ns=3000 * MS))
        assert update.captured_pose is None
        update = machine.on_frame(make_frame(t_ns=3500 * MS))
        assert update.captured_pose == "center"

    def test_quality_gate_blocks(self, make_frame, make_embedding):
        machine = CaptureMachine(ScriptedExtractor([make_embedding(1)]))
        update = machine.on_frame(make_frame(t_ns=0, brightness=40.0))
        assert not update.in_position
        assert update.reason == Reason.LOW_FACE_QUALITY
        update = machine.on_frame(make_frame(t_ns=0, left_eye_open=0.05, right_eye_open=0.05))
        assert not update.in_position

    def test_three_pose_average(self, make_frame, make_embedding):
        e1, e2, e3 = (make_embedding(seed=s) for s in (11, 12, 13))
        machine = CaptureMachine(
            ScriptedExtractor([e1, e2, e3]), config=RegistrationConfig(poses=THREE_POSE)
        )
        hold(machine, make_frame, 0, "center")
        hold(machine, make_frame, 5000, "left")
        update = hold(machine, make_frame, 10000, "right")

        assert update.complete
        assert machine.state == CaptureState.COMPLETE
        template = machine.template
        assert len(template.embeddings) == 1
        expected = (e1 + e2 + e3) / 3
        expected = expected / np.linalg.norm(expected)
        np.testing.assert_allclose(template.embeddings[0], expected, atol=1e-6)
        assert template.strategy == "learned"

    def test_five_pose_sequence(self, make_frame, make_embedding):
        machine = CaptureMachine(ScriptedExtractor([make_embedding(s) for s in range(5)]))
        for i, pose in enumerate(("center", "left", "right", "up", "down")):
            assert machine.current_pose == pose
            hold(machine, make_frame, i * 5000, pose)
        assert machine.state == CaptureState.COMPLETE

    def test_extraction_failure_keeps_pose(self, make_frame, make_embedding):
        empty = np.zeros(0, dtype=np.float32)
        machine = CaptureMachine(ScriptedExtractor([empty, make_embedding(1)]))
        update = hold(machine, make_frame, 0, "center")
        assert update.reason == Reason.EXTRACTION_FAILED
        assert machine.current_pose == "center"
        assert machine.captured_count == 0
        update = hold(machine, make_frame, 5000, "center")
        assert update.captured_pose == "center"

    def test_cancel_discards(self, make_frame, make_embedding):
        machine = CaptureMachine(ScriptedExtractor([make_embedding(1)]))
        hold(machine, make_frame, 0, "center")
        machine.cancel()
        assert machine.captured_count == 0
        assert machine.template is None
        assert machine.on_frame(make_frame(t_ns=0)).reason == Reason.CANCELLED

    def test_restart(self, make_frame, make_embedding):
        machine = CaptureMachine(ScriptedExtractor([make_embedding(1)]))
        hold(machine, make_frame, 0, "center")
        machine.restart()
        assert machine.current_pose == "center"
        assert machine.captured_count == 0
        assert machine.state == CaptureState.CAPTURING

    def test_geometric_capture_without_pitch(self, make_frame):
        machine = CaptureMachine(GeometricExtractor(), config=RegistrationConfig(poses=THREE_POSE))
        hold(machine, make_frame, 0, "center")
        hold(machine, make_frame, 5000, "left", pitch=None)
        update = hold(machine, make_frame, 10000, "right", pitch=None)

        assert update.complete
        assert machine.state == CaptureState.COMPLETE
        assert machine.template.dim == 13
        assert machine.template.strategy == "geometric"

    def test_mismatched_dimension_retries_pose(self, make_frame, make_embedding):
        extractor = ScriptedExtractor([
            make_embedding(1), make_embedding(2, dim=128), make_embedding(3), make_embedding(4),
        ])
        machine = CaptureMachine(extractor, config=RegistrationConfig(poses=THREE_POSE))
        hold(machine, make_frame, 0, "center")
        update = hold(machine, make_frame, 5000, "left")
        assert update.reason == Reason.EXTRACTION_FAILED
        assert machine.current_pose == "left"
        assert machine.captured_count == 1

        hold(machine, make_frame, 10000, "left")
        update = hold(machine, make_frame, 15000, "right")
        assert update.complete
        assert machine.template.dim == 192

    def test_current_pose_cleared_only_when_complete(self, make_frame, make_embedding):
        machine = CaptureMachine(
            ScriptedExtractor([make_embedding(s) for s in (1, 2, 3)]),
            config=RegistrationConfig(poses=THREE_POSE),
        )
        hold(machine, make_frame, 0, "center")
        hold(machine, make_frame, 5000, "left")
        assert machine.current_pose == "right"
        hold(machine, make_frame, 10000, "right")
        assert machine.current_pose is None
        assert machine.on_frame(make_frame(t_ns=20_000 * MS)).complete

    def test_finalize_incomplete(self, make_embedding):
        machine = CaptureMachine(ScriptedExtractor([make_embedding(1)]))
        with pytest.raises(RuntimeError):
            machine.finalize()


class TestRegistrationController:
    def _config(self):
        return FacepassConfig(registration=RegistrationConfig(poses=THREE_POSE))

    def _run(self, ctrl, make_frame):
        hold(ctrl, make_frame, 0, "center")
        hold(ctrl, make_frame, 5000, "left")
        return hold(ctrl, make_frame, 10000, "right")

    def test_saves_template_and_logs(self, make_frame, make_embedding, template_store, scan_log_store):
        extractor = ScriptedExtractor([make_embedding(s) for s in (1, 2, 3)])
        ctrl = RegistrationController(
            "u1", extractor, template_store, scan_log_store, config=self._config()
        )
        update = self._run(ctrl, make_frame)

        assert update.saved
        assert ctrl.saved
        stored = template_store.get("u1")
        assert stored is not None
        assert len(stored.embeddings) == 1
        assert len(scan_log_store.entries) == 1
        entry = scan_log_store.entries[0]
        assert entry.scan_type == ScanType.REGISTRATION
        assert entry.success

    def test_throttles_frames(self, make_frame, make_embedding, template_store):
        ctrl = RegistrationController(
            "u1", ScriptedExtractor([make_embedding(1)]), template_store, config=self._config()
        )
        assert ctrl.on_frame(make_frame(t_ns=0)) is not None
        assert ctrl.on_frame(make_frame(t_ns=100 * MS)) is None
        assert ctrl.on_frame(make_frame(t_ns=400 * MS)) is not None

    def test_save_failure_requires_restart(self, make_frame, make_embedding, scan_log_store):
        store = FailingTemplateStore(failures=1)
        extractor = ScriptedExtractor([make_embedding(s) for s in (1, 2, 3, 4, 5, 6)])
        ctrl = RegistrationController("u1", extractor, store, scan_log_store, config=self._config())

        update = self._run(ctrl, make_frame)
        assert update.reason == Reason.PERSISTENCE_FAILED
        assert not ctrl.saved
        assert store.get("u1") is None
        assert ctrl.machine.current_pose == "center"
        assert ctrl.machine.captured_count == 0
        assert scan_log_store.entries[-1].error_reason == Reason.PERSISTENCE_FAILED

        hold(ctrl, make_frame, 20000, "center")
        hold(ctrl, make_frame, 25000, "left")
        update = hold(ctrl, make_frame, 30000, "right")
        assert update.saved
        assert store.get("u1") is not None

    def test_scan_log_failure_does_not_block(self, make_frame, make_embedding, template_store):
        class BrokenLog:
            def append(self, entry):
                raise StoreError("log down")

        extractor = ScriptedExtractor([make_embedding(s) for s in (1, 2, 3)])
        ctrl = RegistrationController(
            "u1", extractor, template_store, BrokenLog(), config=self._config()
        )
        assert self._run(ctrl, make_frame).saved

    def test_close_stops_processing(self, make_frame, make_embedding, template_store):
        with RegistrationController(
            "u1", ScriptedExtractor([make_embedding(1)]), template_store
        ) as ctrl:
            hold(ctrl, make_frame, 0, "center")
        assert not ctrl.active
        assert ctrl.on_frame(make_frame(t_ns=10_000 * MS)) is None
        assert ctrl.machine.captured_count == 0
        assert template_store.get("u1") is None

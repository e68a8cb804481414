"""Replay command for facepass CLI.

Input is JSONL, one frame per line::

    {"t_ms": 0, "brightness": 120, "faces": [{"bbox": [x, y, w, h],
     "landmarks": {"left_eye": [x, y], ...}, "yaw": 0.0, "pitch": 0.0,
     "left_eye_open": 0.9, "right_eye_open": 0.9, "smiling": 0.1}]}

Images are not recorded, so registration replay always uses the geometric
strategy.
"""

import json
from pathlib import Path

from facepass.cli.commands.info import load_config
from facepass.embedding import GeometricExtractor
from facepass.liveness import LivenessMachine
from facepass.quality import evaluate_frame
from facepass.registration import RegistrationController
from facepass.scheduling import FrameGate
from facepass.stores import InMemoryScanLogStore, InMemoryTemplateStore
from facepass.types import FaceDetection, Frame


def read_frames(path):
    """Yield frames from a JSONL detections file. Blank lines are skipped."""
    with open(path, "r", encoding="utf-8") as f:
        for lineno, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                data = json.loads(line)
            except json.JSONDecodeError as e:
                raise ValueError(f"{path}:{lineno}: invalid JSON ({e})") from e
            t_ms = data.get("t_ms")
            yield Frame(
                faces=[FaceDetection.from_dict(face) for face in data.get("faces", [])],
                t_ns=int(t_ms * 1_000_000) if t_ms is not None else None,
                brightness=data.get("brightness"),
            )


def run_replay(args):
    path = Path(args.path)
    if not path.exists():
        print(f"Error: file not found: {path}")
        return 1

    config = load_config(getattr(args, "config", None))
    if args.mode == "registration":
        return _replay_registration(path, config)
    return _replay_liveness(path, config)


def _replay_liveness(path, config):
    gate = FrameGate(config.scheduling.liveness_interval_ms)
    machine = LivenessMachine(config.liveness)
    verifications = 0
    last_prompt = None

    for i, frame in enumerate(read_frames(path)):
        with gate.processing(frame.t_ns) as admitted:
            if not admitted:
                continue
            verdict = evaluate_frame(frame, config.quality, check_eyes=False)
            if not verdict.ok:
                prompt = verdict.hint
            else:
                before = machine.state
                effect = machine.step(verdict.face)
                prompt = effect.prompt
                if machine.state != before:
                    print(f"[{i:5d}] {before.value} -> {machine.state.value}")
                if effect.verify:
                    verifications += 1
                    print(f"[{i:5d}] VERIFY ({effect.challenge.value})")
                    machine.resume()
            if prompt != last_prompt:
                print(f"[{i:5d}] {prompt}")
                last_prompt = prompt

    print(f"\n{verifications} verification(s) triggered; gate stats: {gate.stats()}")
    return 0


def _replay_registration(path, config):
    store = InMemoryTemplateStore()
    extractor = GeometricExtractor(config.embedding.min_eye_distance_px)
    controller = RegistrationController(
        "replay", extractor, store, InMemoryScanLogStore(), config=config,
    )
    last_hint = None

    with controller:
        for i, frame in enumerate(read_frames(path)):
            update = controller.on_frame(frame)
            if update is None:
                continue
            if update.captured_pose:
                print(f"[{i:5d}] captured {update.captured_pose}")
            if update.hint != last_hint:
                countdown = f" ({update.countdown:.0f})" if update.countdown else ""
                print(f"[{i:5d}] {update.pose or '-'}: {update.hint}{countdown}")
                last_hint = update.hint
            if update.saved:
                break
        captured = controller.machine.captured_count

    if controller.saved:
        template = store.get("replay")
        print(f"\nRegistration complete: {len(config.registration.poses)} poses, dim {template.dim}")
        return 0
    print(
        f"\nRegistration incomplete: {captured}/"
        f"{len(config.registration.poses)} poses captured"
    )
    return 1

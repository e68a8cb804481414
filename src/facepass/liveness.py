"""Blink / smile liveness state machine.

A verification attempt is only allowed after the user performs a live
challenge: a smile, or a full blink (both eyes closed, then either eye
open again). The transition function is pure; :class:`LivenessMachine`
owns the current context for one screen.

States:
    AWAITING_CHALLENGE -> CHALLENGE_DETECTED (eyes closed)
    AWAITING_CHALLENGE | CHALLENGE_DETECTED -> VERIFYING_MATCH (smile / blink)
    VERIFYING_MATCH -> AWAITING_CHALLENGE (resume after a failed match)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Tuple

from facepass.config import LivenessConfig
from facepass.types import FaceDetection

logger = logging.getLogger(__name__)

PROMPT_IDLE = "Blink or Smile to verify..."
PROMPT_KEEP_BLINKING = "Keep blinking... (Eyes Closed)"
PROMPT_OPEN_EYES = "Open your eyes now"
PROMPT_SMILE_DETECTED = "Smile detected! Verifying..."
PROMPT_BLINK_DETECTED = "Blink detected! Verifying..."
PROMPT_VERIFYING = "Verifying face..."


class LivenessState(str, Enum):
    AWAITING_CHALLENGE = "awaiting_challenge"
    CHALLENGE_DETECTED = "challenge_detected"
    VERIFYING_MATCH = "verifying_match"


class Challenge(str, Enum):
    SMILE = "smile"
    BLINK = "blink"


@dataclass(frozen=True)
class LivenessContext:
    """Immutable liveness state carried between frames.

    Attributes:
        state: Current machine state.
        eyes_closed: Both eyes were seen closed since the last reset.
        in_flight: A verification was requested and has not resolved yet.
    """

    state: LivenessState = LivenessState.AWAITING_CHALLENGE
    eyes_closed: bool = False
    in_flight: bool = False


@dataclass(frozen=True)
class LivenessEffect:
    """What the caller should do after a step.

    ``verify`` is True exactly once per challenge; the caller then runs
    extraction and matching.
    """

    verify: bool = False
    challenge: Optional[Challenge] = None
    prompt: str = ""


def step(
    ctx: LivenessContext,
    face: FaceDetection,
    config: LivenessConfig | None = None,
) -> Tuple[LivenessContext, LivenessEffect]:
    """Advance the machine by one face observation."""
    cfg = config or LivenessConfig()

    if ctx.in_flight or ctx.state == LivenessState.VERIFYING_MATCH:
        return ctx, LivenessEffect(prompt=PROMPT_VERIFYING)

    left = 1.0 if face.left_eye_open is None else face.left_eye_open
    right = 1.0 if face.right_eye_open is None else face.right_eye_open
    smile = 0.0 if face.smiling is None else face.smiling

    if smile > cfg.smile_threshold:
        logger.debug("liveness: smile %.2f", smile)
        return (
            LivenessContext(LivenessState.VERIFYING_MATCH, eyes_closed=False, in_flight=True),
            LivenessEffect(verify=True, challenge=Challenge.SMILE, prompt=PROMPT_SMILE_DETECTED),
        )

    likely_closed = left < cfg.eyes_closed_threshold and right < cfg.eyes_closed_threshold
    likely_open = left > cfg.eyes_open_threshold or right > cfg.eyes_open_threshold

    if likely_closed:
        return (
            replace(ctx, state=LivenessState.CHALLENGE_DETECTED, eyes_closed=True),
            LivenessEffect(prompt=PROMPT_KEEP_BLINKING),
        )

    if likely_open and ctx.eyes_closed:
        logger.debug("liveness: blink complete (L=%.2f R=%.2f)", left, right)
        return (
            LivenessContext(LivenessState.VERIFYING_MATCH, eyes_closed=False, in_flight=True),
            LivenessEffect(verify=True, challenge=Challenge.BLINK, prompt=PROMPT_BLINK_DETECTED),
        )

    return ctx, LivenessEffect(prompt=PROMPT_OPEN_EYES if ctx.eyes_closed else PROMPT_IDLE)


def resume(ctx: LivenessContext) -> LivenessContext:
    """Return to awaiting a fresh challenge after a failed match."""
    return LivenessContext()


class LivenessMachine:
    """Owns the liveness context for one scan screen."""

    def __init__(self, config: LivenessConfig | None = None):
        self.config = config or LivenessConfig()
        self._ctx = LivenessContext()

    @property
    def context(self) -> LivenessContext:
        return self._ctx

    @property
    def state(self) -> LivenessState:
        return self._ctx.state

    @property
    def in_flight(self) -> bool:
        return self._ctx.in_flight

    def step(self, face: FaceDetection) -> LivenessEffect:
        before = self._ctx.state
        self._ctx, effect = step(self._ctx, face, self.config)
        if self._ctx.state != before:
            logger.debug("liveness: %s -> %s", before.value, self._ctx.state.value)
        return effect

    def resume(self) -> None:
        self._ctx = resume(self._ctx)

    def reset(self) -> None:
        self._ctx = LivenessContext()


__all__ = [
    "LivenessState",
    "Challenge",
    "LivenessContext",
    "LivenessEffect",
    "LivenessMachine",
    "step",
    "resume",
]

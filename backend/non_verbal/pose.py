from __future__ import annotations

import math
from collections import deque
from typing import Iterable

import numpy as np

from schemas import BodyLanguageAnalysis, Keypoint, PoseFrame, PoseSummary

# Two thresholds: statistics use anything the model is mildly sure of,
# geometry and drawing need a confident keypoint.
TRACKING_THRESHOLD = 0.2
DRAWING_THRESHOLD = 0.5

POSE_HISTORY_LIMIT = 90  # ~3 s at 30 fps
KEYPOINT_HISTORY_LIMIT = 30
MIN_STABILITY_SAMPLES = 10
MIN_POSTURE_KEYPOINTS = 16
PUBLISH_EVERY_FRAMES = 30  # ~1 s at 30 fps
GESTURE_DISTANCE_RATIO = 0.05
FRAMES_PER_OPTIMAL_GESTURE = 90
MOVEMENT_WINDOW_FRAMES = 30
STABILITY_VARIANCE_SCALE = 50000.0
SMOOTHING_PREVIOUS_WEIGHT = 0.7
NEUTRAL = 50

ALIGNMENT_LANDMARKS = ("nose", "left_shoulder", "right_shoulder", "left_hip", "right_hip")
WRISTS = ("left_wrist", "right_wrist")

SKELETON_CONNECTIONS = [
    ("nose", "left_eye"),
    ("nose", "right_eye"),
    ("left_eye", "left_ear"),
    ("right_eye", "right_ear"),
    ("left_shoulder", "right_shoulder"),
    ("left_shoulder", "left_elbow"),
    ("right_shoulder", "right_elbow"),
    ("left_elbow", "left_wrist"),
    ("right_elbow", "right_wrist"),
    ("left_shoulder", "left_hip"),
    ("right_shoulder", "right_hip"),
    ("left_hip", "right_hip"),
    ("left_hip", "left_knee"),
    ("right_hip", "right_knee"),
    ("left_knee", "left_ankle"),
    ("right_knee", "right_ankle"),
]

NO_POSE_INSIGHT = "Body language video data not available for analysis."
MEASURED_FIELDS = ["posture", "gestures", "movement", "stability"]


def _clamp(value: float, minimum: float, maximum: float) -> float:
    return max(minimum, min(maximum, value))


def _mean(values: Iterable[float]) -> float:
    values = list(values)
    if not values:
        return 0.0
    return float(sum(values) / len(values))


def _score(keypoint: Keypoint | None) -> float:
    if keypoint is None or keypoint.score is None:
        return 0.0
    return keypoint.score


def keypoints_by_name(pose: PoseFrame) -> dict[str, Keypoint]:
    return {kp.name: kp for kp in pose.keypoints if kp.name}


def pose_score(pose: PoseFrame) -> float:
    if pose.score is not None:
        return pose.score
    return _mean(_score(kp) for kp in pose.keypoints)


def pose_confidence(pose: PoseFrame) -> int:
    """Mean score of tracked keypoints, scaled to 0-100."""
    tracked = [_score(kp) for kp in pose.keypoints if _score(kp) > TRACKING_THRESHOLD]
    return round(_mean(tracked) * 100)


def _straightness(offset: float, span: float) -> float:
    """1 - offset/span floored at 0. With a zero span only a zero offset is straight."""
    if span == 0:
        return 1.0 if offset == 0 else 0.0
    return max(0.0, 1 - offset / span)


def posture_score(pose: PoseFrame) -> int:
    """
    Alignment of shoulders, hips and spine.

    Each tilt ratio becomes a 0-1 straightness factor, weighted
    30% shoulders, 30% hips, 40% spine (nose over the shoulder/hip midline).
    """
    if len(pose.keypoints) < MIN_POSTURE_KEYPOINTS:
        return NEUTRAL

    named = keypoints_by_name(pose)
    landmarks = [named.get(name) for name in ALIGNMENT_LANDMARKS]
    if any(_score(kp) <= DRAWING_THRESHOLD for kp in landmarks):
        return NEUTRAL

    nose, l_shoulder, r_shoulder, l_hip, r_hip = landmarks
    shoulder = _straightness(abs(l_shoulder.y - r_shoulder.y), abs(l_shoulder.x - r_shoulder.x))
    hip = _straightness(abs(l_hip.y - r_hip.y), abs(l_hip.x - r_hip.x))

    shoulder_mid_x = (l_shoulder.x + r_shoulder.x) / 2
    hip_mid_x = (l_hip.x + r_hip.x) / 2
    spine = _straightness(abs(nose.x - shoulder_mid_x), abs(shoulder_mid_x - hip_mid_x))

    return round((shoulder * 0.3 + hip * 0.3 + spine * 0.4) * 100)


def gesture_score(gestures: int, frames: int) -> int:
    """Peak at one gesture per 90 frames; falls to 0 at twice that rate."""
    if frames <= 0:
        return NEUTRAL
    optimal = frames / FRAMES_PER_OPTIMAL_GESTURE
    ratio = min(gestures / max(1.0, optimal), 2.0)
    if ratio <= 1:
        return round(ratio * 100)
    return round((2 - ratio) * 100)


def movement_score(gestures: int, frames: int) -> int:
    if frames <= MOVEMENT_WINDOW_FRAMES:
        return NEUTRAL
    return round(min(1.0, gestures / max(1.0, frames / MOVEMENT_WINDOW_FRAMES)) * 100)


def smooth_metrics(previous: PoseSummary | None, raw: PoseSummary) -> PoseSummary:
    """Exponential moving average (0.7 previous, 0.3 new) of published scores."""
    if previous is None:
        return raw.model_copy()

    def blend(old: int, new: int) -> int:
        return round(old * SMOOTHING_PREVIOUS_WEIGHT + new * (1 - SMOOTHING_PREVIOUS_WEIGHT))

    return PoseSummary(
        frames=raw.frames,
        valid_poses=raw.valid_poses,
        pose_confidence=blend(previous.pose_confidence, raw.pose_confidence),
        posture=blend(previous.posture, raw.posture),
        stability=blend(previous.stability, raw.stability),
        movement=blend(previous.movement, raw.movement),
        gestures=blend(previous.gestures, raw.gestures),
    )


def drawable_segments(pose: PoseFrame) -> list[tuple[str, str]]:
    """Skeleton connections whose endpoints are both confident enough to draw."""
    named = keypoints_by_name(pose)
    return [
        (start, end)
        for start, end in SKELETON_CONNECTIONS
        if _score(named.get(start)) > DRAWING_THRESHOLD and _score(named.get(end)) > DRAWING_THRESHOLD
    ]


class PoseTracker:
    """
    Rolling pose state for one recording.

    Feed frames with `update`; every PUBLISH_EVERY_FRAMES frames a smoothed
    PoseSummary is published and returned.
    """

    def __init__(self, publish_every: int = PUBLISH_EVERY_FRAMES) -> None:
        self.publish_every = publish_every
        self.frame_count = 0
        self.valid_poses = 0
        self.gesture_count = 0
        self.pose_history: deque[PoseFrame] = deque(maxlen=POSE_HISTORY_LIMIT)
        self.keypoint_history: dict[str, deque[tuple[float, float]]] = {}
        self.last_wrists: dict[str, tuple[float, float]] = {}
        self.last_pose: PoseFrame | None = None
        self.width = 0.0
        self.height = 0.0
        self.metrics: PoseSummary | None = None

    def _track(self, pose: PoseFrame) -> None:
        self.valid_poses += 1
        self.pose_history.append(pose)

        for kp in pose.keypoints:
            if not kp.name:
                continue
            history = self.keypoint_history.setdefault(
                kp.name, deque(maxlen=KEYPOINT_HISTORY_LIMIT)
            )
            history.append((kp.x, kp.y))

            if kp.name in WRISTS and _score(kp) > DRAWING_THRESHOLD:
                last = self.last_wrists.get(kp.name)
                if last is not None:
                    distance = math.hypot(kp.x - last[0], kp.y - last[1])
                    if distance > self.width * GESTURE_DISTANCE_RATIO:
                        self.gesture_count += 1
                self.last_wrists[kp.name] = (kp.x, kp.y)

    def stability_score(self) -> int:
        """Inverse of canvas-normalized positional variance of the alignment landmarks."""
        if len(self.pose_history) <= MIN_STABILITY_SAMPLES or self.width <= 0 or self.height <= 0:
            return NEUTRAL

        variances: list[float] = []
        for name in ALIGNMENT_LANDMARKS:
            history = self.keypoint_history.get(name)
            if history is None or len(history) <= MIN_STABILITY_SAMPLES:
                continue
            points = np.asarray(history, dtype=np.float64)
            x_var = float(np.var(points[:, 0])) / (self.width * self.width)
            y_var = float(np.var(points[:, 1])) / (self.height * self.height)
            variances.append((x_var + y_var) / 2)

        if not variances:
            return NEUTRAL
        return round(_clamp(100 - _mean(variances) * STABILITY_VARIANCE_SCALE, 0, 100))

    def raw_metrics(self, pose: PoseFrame) -> PoseSummary:
        return PoseSummary(
            frames=self.frame_count,
            valid_poses=self.valid_poses,
            pose_confidence=pose_confidence(pose),
            posture=posture_score(pose),
            stability=self.stability_score(),
            movement=movement_score(self.gesture_count, self.frame_count),
            gestures=gesture_score(self.gesture_count, self.frame_count),
        )

    def update(self, pose: PoseFrame, width: float, height: float) -> PoseSummary | None:
        self.frame_count += 1
        self.width, self.height = width, height
        self.last_pose = pose

        if pose_score(pose) > TRACKING_THRESHOLD:
            self._track(pose)

        if self.frame_count % self.publish_every == 0:
            self.metrics = smooth_metrics(self.metrics, self.raw_metrics(pose))
            return self.metrics
        return None

    def summary(self) -> PoseSummary | None:
        """Latest published metrics, or raw metrics if nothing was published yet."""
        if self.metrics is not None:
            return self.metrics
        if self.last_pose is None:
            return None
        return self.raw_metrics(self.last_pose)


def _pose_insights(summary: PoseSummary) -> list[str]:
    insights: list[str] = []

    if summary.posture >= 75:
        insights.append("Your posture is upright and well aligned.")
    elif summary.posture < 50:
        insights.append("Work on keeping your shoulders level and your spine upright.")
    else:
        insights.append("Your posture is reasonable, though your shoulders or hips tilt at times.")

    if summary.gestures >= 75:
        insights.append("You use hand gestures at a natural, engaging rate.")
    elif summary.gestures < 50:
        insights.append("Use purposeful hand gestures to emphasize key points.")

    if summary.stability >= 75:
        insights.append("You stay steady and grounded while speaking.")
    elif summary.stability < 50:
        insights.append("Try to reduce swaying and shifting so you appear more grounded.")

    return insights


def body_language_from_pose(summary: PoseSummary | None) -> BodyLanguageAnalysis:
    if summary is None:
        return BodyLanguageAnalysis(
            score=NEUTRAL,
            posture=NEUTRAL,
            gestures=NEUTRAL,
            facial_expressions=NEUTRAL,
            eye_contact=NEUTRAL,
            movement=NEUTRAL,
            stability=NEUTRAL,
            measured=[],
            insights=[NO_POSE_INSIGHT],
        )

    overall = (
        0.35 * summary.posture
        + 0.25 * summary.gestures
        + 0.15 * summary.movement
        + 0.25 * summary.stability
    )
    return BodyLanguageAnalysis(
        score=round(_clamp(overall, 0, 100)),
        posture=round(_clamp(summary.posture, 0, 100)),
        gestures=round(_clamp(summary.gestures, 0, 100)),
        facial_expressions=NEUTRAL,
        eye_contact=NEUTRAL,
        movement=round(_clamp(summary.movement, 0, 100)),
        stability=round(_clamp(summary.stability, 0, 100)),
        measured=list(MEASURED_FIELDS),
        insights=_pose_insights(summary),
    )

"""Tests for non_verbal/pose.py: posture geometry, gesture and movement scoring, smoothing and the tracker."""
import pytest

from non_verbal.pose import (
    NO_POSE_INSIGHT,
    SKELETON_CONNECTIONS,
    PoseTracker,
    body_language_from_pose,
    drawable_segments,
    gesture_score,
    movement_score,
    pose_confidence,
    posture_score,
    smooth_metrics,
)
from schemas import Keypoint, PoseFrame, PoseSummary

WIDTH, HEIGHT = 640, 480

UPRIGHT = {
    "nose": (150, 50),
    "left_eye": (140, 40),
    "right_eye": (160, 40),
    "left_ear": (130, 45),
    "right_ear": (170, 45),
    "left_shoulder": (100, 100),
    "right_shoulder": (200, 100),
    "left_elbow": (90, 200),
    "right_elbow": (210, 200),
    "left_wrist": (90, 280),
    "right_wrist": (210, 280),
    "left_hip": (120, 300),
    "right_hip": (180, 300),
    "left_knee": (120, 400),
    "right_knee": (180, 400),
    "left_ankle": (120, 470),
    "right_ankle": (180, 470),
}


def make_pose(overrides=None, score=0.9, scores=None, pose_score=0.9, drop=()):
    positions = {**UPRIGHT, **(overrides or {})}
    keypoints = [
        Keypoint(name=name, x=x, y=y, score=(scores or {}).get(name, score))
        for name, (x, y) in positions.items()
        if name not in drop
    ]
    return PoseFrame(keypoints=keypoints, score=pose_score)


class TestPosture:
    def test_upright_pose(self):
        assert posture_score(make_pose()) == 100

    def test_shoulder_tilt(self):
        # tilt 50/100 halves the shoulder factor: 0.3 * 0.5 + 0.3 + 0.4
        pose = make_pose({"right_shoulder": (200, 150)})
        assert posture_score(pose) == 85

    def test_too_few_keypoints(self):
        pose = make_pose(drop=("left_ankle", "right_ankle"))
        assert posture_score(pose) == 50

    def test_unconfident_landmark(self):
        pose = make_pose(scores={"nose": 0.4})
        assert posture_score(pose) == 50


class TestScores:
    @pytest.mark.parametrize(
        "gestures, frames, expected",
        [(1, 90, 100), (0, 90, 0), (2, 90, 0), (3, 180, 50), (0, 0, 50)],
    )
    def test_gesture_score(self, gestures, frames, expected):
        assert gesture_score(gestures, frames) == expected

    def test_movement_needs_a_full_window(self):
        assert movement_score(5, 30) == 50

    def test_movement_score(self):
        assert movement_score(1, 60) == 50
        assert movement_score(4, 60) == 100

    def test_pose_confidence_ignores_untracked_keypoints(self):
        pose = make_pose(scores={"nose": 0.1})
        assert pose_confidence(pose) == 90


class TestSmoothing:
    def test_first_publication_is_raw(self):
        raw = PoseSummary(frames=30, posture=80)
        assert smooth_metrics(None, raw) == raw

    def test_exponential_moving_average(self):
        previous = PoseSummary(frames=30, posture=100, stability=50, movement=0, gestures=20)
        raw = PoseSummary(frames=60, posture=0, stability=50, movement=100, gestures=20)
        smoothed = smooth_metrics(previous, raw)

        assert smoothed.posture == 70
        assert smoothed.stability == 50
        assert smoothed.movement == 30
        assert smoothed.gestures == 20
        assert smoothed.frames == 60

    def test_smoothing_does_not_mutate_inputs(self):
        previous = PoseSummary(posture=100)
        raw = PoseSummary(posture=0)
        smooth_metrics(previous, raw)
        assert previous.posture == 100
        assert raw.posture == 0


class TestDrawableSegments:
    def test_all_confident(self):
        assert drawable_segments(make_pose()) == SKELETON_CONNECTIONS

    def test_low_confidence_endpoint_dropped(self):
        segments = drawable_segments(make_pose(scores={"left_wrist": 0.3}))
        assert ("left_elbow", "left_wrist") not in segments
        assert len(segments) == len(SKELETON_CONNECTIONS) - 1


class TestPoseTracker:
    def test_publishes_every_thirty_frames(self):
        tracker = PoseTracker()
        pose = make_pose()
        published = [tracker.update(pose, WIDTH, HEIGHT) for _ in range(30)]

        assert all(p is None for p in published[:29])
        metrics = published[29]
        assert metrics is not None
        assert metrics.frames == 30
        assert metrics.valid_poses == 30
        assert metrics.pose_confidence == 90
        assert metrics.posture == 100
        assert metrics.stability == 100
        assert metrics.movement == 50
        assert metrics.gestures == 0

    def test_histories_are_capped(self):
        tracker = PoseTracker()
        for _ in range(120):
            tracker.update(make_pose(), WIDTH, HEIGHT)
        assert len(tracker.pose_history) == 90
        assert len(tracker.keypoint_history["nose"]) == 30

    def test_wrist_movement_counts_gestures(self):
        tracker = PoseTracker()
        for i in range(10):
            x = 90 if i % 2 == 0 else 190
            tracker.update(make_pose({"left_wrist": (x, 280)}), WIDTH, HEIGHT)
        assert tracker.gesture_count == 9

    def test_small_wrist_movement_ignored(self):
        tracker = PoseTracker()
        for i in range(10):
            tracker.update(make_pose({"left_wrist": (90 + i, 280)}), WIDTH, HEIGHT)
        assert tracker.gesture_count == 0

    def test_low_score_pose_not_tracked(self):
        tracker = PoseTracker()
        tracker.update(make_pose(pose_score=0.1), WIDTH, HEIGHT)
        assert tracker.frame_count == 1
        assert tracker.valid_poses == 0
        assert tracker.keypoint_history == {}

    def test_swaying_lowers_stability(self):
        tracker = PoseTracker()
        for i in range(30):
            shift = 60 if i % 2 else -60
            overrides = {
                name: (x + shift, y)
                for name, (x, y) in UPRIGHT.items()
                if name in ("nose", "left_shoulder", "right_shoulder", "left_hip", "right_hip")
            }
            tracker.update(make_pose(overrides), WIDTH, HEIGHT)
        assert tracker.stability_score() < 50

    def test_summary_before_publication(self):
        tracker = PoseTracker()
        assert tracker.summary() is None
        tracker.update(make_pose(), WIDTH, HEIGHT)
        summary = tracker.summary()
        assert summary is not None
        assert summary.frames == 1


class TestBodyLanguageFromPose:
    def test_no_pose_data(self):
        result = body_language_from_pose(None)
        assert result.score == 50
        assert result.posture == 50
        assert result.insights == [NO_POSE_INSIGHT]
        assert result.measured == []

    def test_weighted_score(self):
        summary = PoseSummary(posture=80, gestures=60, movement=40, stability=100)
        result = body_language_from_pose(summary)

        assert result.score == 74
        assert result.facial_expressions == 50
        assert result.eye_contact == 50
        assert "facial_expressions" not in result.measured
        assert "posture" in result.measured
        assert result.insights

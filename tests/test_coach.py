import pytest

from formcoach.logic.adapter import landmarks_to_highlight, plank_to_state, pushup_to_state
from formcoach.logic.coach import ExerciseCoach, UnsupportedExerciseError, parse_exercise
from formcoach.logic.plank import ISSUE_HIPS_SAG, ISSUE_TWIST, PlankPhase, PlankSnapshot, PlankType
from formcoach.logic.pushup import WARN_ARM_HIDDEN, WARN_LEGS_HIDDEN, PushupSnapshot
from formcoach.logic.reps import RepPhase
from formcoach.utils.structures import ExerciseType, PoseResult, Stage
from pose_builders import FRAME_SIZE, build_frame, plank_points, pushup_points


def test_parse_exercise():
    assert parse_exercise(" Squat ") is ExerciseType.SQUAT
    assert parse_exercise(ExerciseType.PLANK) is ExerciseType.PLANK
    with pytest.raises(UnsupportedExerciseError):
        parse_exercise("burpee")


def test_unsupported_exercise_is_rejected():
    with pytest.raises(UnsupportedExerciseError):
        ExerciseCoach("lunge")


def test_highlight_mapping_is_case_insensitive():
    assert landmarks_to_highlight(ExerciseType.PUSHUP, "Keep LEGS in frame") == [25, 26, 23, 24]
    assert landmarks_to_highlight(ExerciseType.PUSHUP, WARN_ARM_HIDDEN) == [13, 14, 15, 16]
    assert landmarks_to_highlight(ExerciseType.SQUAT, "Go deeper") == [23, 24, 25, 26]
    assert landmarks_to_highlight(ExerciseType.PLANK, "") == []
    assert landmarks_to_highlight(ExerciseType.PLANK, "something else") == []


def test_plank_twist_wins_over_hips():
    # The twist cue mentions hips too; its own joints take priority.
    assert landmarks_to_highlight(ExerciseType.PLANK, ISSUE_TWIST) == [11, 12, 23, 24]
    assert landmarks_to_highlight(ExerciseType.PLANK, ISSUE_HIPS_SAG) == [11, 12, 23, 24, 27, 28]


def test_pushup_state_uses_stage_cue_without_warning():
    state = pushup_to_state(PushupSnapshot(2, "", RepPhase.DOWN, 60.0, None))
    assert state.feedback == "Push Up"
    assert state.stage is Stage.DOWN
    assert state.is_correct_form
    assert state.metrics == {"elbow_angle": 60.0}

    state = pushup_to_state(PushupSnapshot(2, WARN_LEGS_HIDDEN, RepPhase.UP, 160.0, None))
    assert state.feedback == WARN_LEGS_HIDDEN
    assert state.visibility_issue
    assert not state.is_correct_form


def test_plank_state_is_correct_only_while_holding():
    snap = PlankSnapshot(
        warning="",
        warnings=(),
        phase=PlankPhase.READY,
        plank_type=PlankType.HIGH,
        hold_time=0.0,
        best_hold=4.0,
        total_time=4.0,
        overall_score=92.0,
        sub_scores={"hip": 1.0},
    )
    state = plank_to_state(snap)
    assert state.feedback == "Hold steady..."
    assert not state.is_correct_form
    assert state.best_hold == 4.0
    assert state.score == 92.0
    assert state.metrics == {"hip_score": 1.0, "total_time": 4.0}


def test_coach_skips_short_frames():
    coach = ExerciseCoach("pushup")
    before = coach.state
    assert coach.update(build_frame(pushup_points(165.0, 170.0))[:12], FRAME_SIZE, FRAME_SIZE) is before
    assert coach.frames_skipped == 1
    assert coach.frames_processed == 0


def test_coach_counts_and_resets():
    coach = ExerciseCoach(ExerciseType.PUSHUP)
    for elbow in (165.0, 55.0, 165.0):
        state = coach.update_pose(PoseResult(build_frame(pushup_points(elbow, 170.0)), (FRAME_SIZE, FRAME_SIZE)))
    assert state.count == 1
    assert state.stage is Stage.UP
    assert coach.frames_processed == 3

    state = coach.reset()
    assert state.count == 0
    assert coach.frames_processed == 0
    assert state.feedback == "Get Ready"


def test_plank_coach_reports_timer(fake_clock):
    coach = ExerciseCoach("plank", clock=fake_clock)
    for t in (0.0, 1.0, 3.0):
        fake_clock.now = t
        state = coach.update(build_frame(plank_points()), FRAME_SIZE, FRAME_SIZE)
    assert state.count == 0
    assert state.timer == pytest.approx(2.0)
    assert state.is_correct_form
    assert state.feedback == "Holding"

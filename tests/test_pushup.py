from formcoach.logic.pushup import (
    WARN_ARM_HIDDEN,
    WARN_EXTEND_ARMS,
    WARN_GO_LOWER,
    WARN_LEGS_HIDDEN,
    WARN_STRAIGHTEN_ALL,
    WARN_STRAIGHTEN_LEGS,
    PushupCounter,
    PushupObservation,
    advance_pushup,
)
from formcoach.logic.reps import RepCycle, RepPhase
from formcoach.utils.config import PushupConfig
from pose_builders import FRAME_SIZE, build_frame, pushup_points

UP, DOWN = 165.0, 55.0
STRAIGHT, BENT = 170.0, 100.0


def feed(counter, elbow, knee, **kwargs):
    counter.update(build_frame(pushup_points(elbow, knee), **kwargs), FRAME_SIZE, FRAME_SIZE)
    return counter.get_state()


def test_full_cycle_counts_one():
    counter = PushupCounter()
    feed(counter, UP, STRAIGHT)
    assert counter.get_state().phase is RepPhase.UP
    feed(counter, DOWN, STRAIGHT)
    assert counter.get_state().phase is RepPhase.DOWN
    state = feed(counter, UP, STRAIGHT)
    assert state.count == 1
    assert state.phase is RepPhase.UP


def test_starting_at_the_bottom_does_not_count():
    counter = PushupCounter()
    feed(counter, DOWN, STRAIGHT)
    feed(counter, UP, STRAIGHT)
    assert counter.get_state().count == 0
    feed(counter, DOWN, STRAIGHT)
    feed(counter, UP, STRAIGHT)
    assert counter.get_state().count == 1


def test_bent_knees_through_descent_do_not_count():
    counter = PushupCounter()
    feed(counter, UP, STRAIGHT)
    state = feed(counter, DOWN, BENT)
    assert state.warning == WARN_STRAIGHTEN_LEGS
    state = feed(counter, UP, BENT)
    assert state.count == 0
    assert state.phase is RepPhase.DOWN


def test_straight_legs_anywhere_in_descent_qualify():
    counter = PushupCounter()
    feed(counter, UP, STRAIGHT)
    feed(counter, DOWN, BENT)
    feed(counter, DOWN, STRAIGHT)
    state = feed(counter, UP, BENT)
    assert state.count == 1


def test_arming_needs_straight_legs():
    counter = PushupCounter()
    state = feed(counter, UP, BENT)
    assert state.phase is RepPhase.UNARMED
    assert state.warning == WARN_STRAIGHTEN_ALL


def test_thresholds_are_inclusive():
    cfg = PushupConfig()

    def obs(elbow):
        return PushupObservation(elbow, 170.0, arm_visible=True, legs_visible=True, legs_extended=True)

    cycle = advance_pushup(RepCycle(), obs(cfg.up_thresh), cfg)
    assert cycle.phase is RepPhase.UP
    cycle = advance_pushup(cycle, obs(cfg.down_thresh), cfg)
    assert cycle.phase is RepPhase.DOWN
    assert cycle.qualified
    cycle = advance_pushup(cycle, obs(cfg.up_thresh), cfg)
    assert cycle == RepCycle(phase=RepPhase.UP, count=1, qualified=False)


def test_hidden_arms_and_legs_warn():
    counter = PushupCounter()
    arms_hidden = {name: 0.1 for name in ("left_elbow", "right_elbow")}
    assert feed(counter, UP, STRAIGHT, overrides=arms_hidden).warning == WARN_ARM_HIDDEN
    legs_hidden = {name: 0.1 for name in ("left_ankle", "right_ankle")}
    state = feed(counter, UP, STRAIGHT, overrides=legs_hidden)
    assert state.warning == WARN_LEGS_HIDDEN
    assert state.knee_angle is None


def test_falls_back_to_the_visible_arm():
    counter = PushupCounter()
    state = feed(counter, UP, STRAIGHT, overrides={"right_elbow": 0.1})
    assert state.warning != WARN_ARM_HIDDEN
    assert state.phase is RepPhase.UP


def test_short_frame_is_ignored():
    counter = PushupCounter()
    feed(counter, UP, STRAIGHT)
    before = counter.get_state()
    counter.update(build_frame(pushup_points(DOWN, STRAIGHT))[:20], FRAME_SIZE, FRAME_SIZE)
    assert counter.get_state() == before


def test_count_never_decreases_and_reset_clears():
    counter = PushupCounter()
    counts = []
    for elbow, knee in [(UP, STRAIGHT), (DOWN, STRAIGHT), (UP, STRAIGHT), (DOWN, BENT), (UP, BENT), (120, BENT), (UP, STRAIGHT)]:
        counts.append(feed(counter, elbow, knee).count)
    assert counts == sorted(counts)
    counter.reset()
    state = counter.get_state()
    assert state.count == 0
    assert state.phase is RepPhase.UNARMED
    assert state.warning == ""


def test_extend_arms_cue_while_up():
    counter = PushupCounter()
    feed(counter, UP, STRAIGHT)
    state = feed(counter, 120.0, STRAIGHT)
    assert state.phase is RepPhase.UP
    assert state.warning == WARN_EXTEND_ARMS


def test_go_lower_cue_and_its_priority():
    counter = PushupCounter()
    feed(counter, UP, STRAIGHT)
    feed(counter, DOWN, STRAIGHT)
    state = feed(counter, 100.0, STRAIGHT)
    assert state.phase is RepPhase.DOWN
    assert state.warning == WARN_GO_LOWER

    # Bent legs through the descent take priority over depth.
    bent = PushupCounter()
    feed(bent, UP, STRAIGHT)
    feed(bent, DOWN, BENT)
    assert feed(bent, 100.0, BENT).warning == WARN_STRAIGHTEN_LEGS


def test_up_at_lockout_has_no_cue():
    counter = PushupCounter()
    assert feed(counter, UP, STRAIGHT).warning == ""

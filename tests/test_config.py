from pathlib import Path

import pytest

from formcoach.server.app import build_session_manager
from formcoach.utils.config import (
    EvaluatorConfig,
    PlankConfig,
    PushupConfig,
    SquatConfig,
    evaluator_config_from_dict,
    load_evaluator_config,
    load_runtime_config,
)
from formcoach.utils.profiler import FrameRateMeter

CONFIG_DIR = Path(__file__).resolve().parent.parent / "configs"


def test_shipped_yaml_matches_defaults():
    assert load_evaluator_config(CONFIG_DIR / "evaluators.yaml") == EvaluatorConfig()
    runtime = load_runtime_config(CONFIG_DIR / "runtime.yaml")
    assert runtime.default_side == "right"
    assert runtime.max_sessions == 32


def test_missing_path_gives_defaults():
    assert load_evaluator_config() == EvaluatorConfig()
    assert load_runtime_config().log_level == "INFO"


def test_partial_override(tmp_path):
    path = tmp_path / "eval.yaml"
    path.write_text("squat:\n  down_thresh: 90\nplank:\n  ready_seconds: 2.5\n")
    cfg = load_evaluator_config(path)
    assert cfg.squat.down_thresh == 90
    assert cfg.squat.up_thresh == SquatConfig().up_thresh
    assert cfg.plank.ready_seconds == 2.5
    assert cfg.pushup == PushupConfig()


def test_unknown_keys_are_rejected():
    with pytest.raises(ValueError):
        evaluator_config_from_dict({"pushup": {"upp_thresh": 150}})
    with pytest.raises(ValueError):
        evaluator_config_from_dict({"lunge": {}})


def test_invalid_bands_are_rejected():
    with pytest.raises(ValueError):
        PushupConfig(up_thresh=60.0, down_thresh=70.0)
    with pytest.raises(ValueError):
        SquatConfig(smooth_alpha=1.5)
    with pytest.raises(ValueError):
        PlankConfig(hip_sag_max=170.0)


def test_yaml_ranges_become_tuples():
    cfg = evaluator_config_from_dict({"plank": {"hip_ok_range": [160, 182]}})
    assert cfg.plank.hip_ok_range == (160, 182)


def test_session_manager_from_config_dir(tmp_path):
    (tmp_path / "runtime.yaml").write_text("default_side: left\nmax_sessions: 3\n")
    manager = build_session_manager(tmp_path)
    assert manager.runtime_config.default_side == "left"
    assert manager.evaluator_config == EvaluatorConfig()
    assert manager.start("plank").side == "left"


def test_frame_rate_meter():
    meter = FrameRateMeter(window=5)
    assert meter.get_fps() == 0.0
    for i in range(5):
        meter.tick(i * 0.1)
    assert meter.get_fps() == pytest.approx(10.0)
    meter.reset()
    assert meter.get_fps() == 0.0


def test_plank_weights_are_read_only():
    cfg = PlankConfig()
    with pytest.raises(TypeError):
        cfg.weights["hip"] = 0.9
    assert sum(cfg.weights.values()) == pytest.approx(1.0)
    assert hash(cfg) == hash(PlankConfig())
    assert hash(load_evaluator_config(CONFIG_DIR / "evaluators.yaml")) == hash(EvaluatorConfig())

"""Test shared utilities (filesystem, logging, profiling).

Tests for src.utils:
    - fs: atomic YAML dump / load roundtrip, empty and missing files
    - logging_config: human and JSON formats, context fields, file handler
    - profiler: timer sink, TimerAccumulator

Run:
    pytest tests/test_utils.py -v
"""

import json
import logging
import time

import pytest
import yaml

from src.utils import fs
from src.utils.logging_config import (
    ContextFormatter,
    get_context,
    log_context,
    pop_context,
    push_context,
    setup_logging,
)
from src.utils.profiler import TimerAccumulator, timer


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def record():
    """A plain INFO record from the renderer logger."""
    return logging.LogRecord(
        name="src.smlm_render.renderer",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Rendered %dx%d",
        args=(64, 32),
        exc_info=None,
    )


@pytest.fixture
def clean_context():
    """Clear logging context fields before and after the test."""
    pop_context()
    yield
    pop_context()


# ============================================================================
# TEST SUITE 1: Filesystem
# ============================================================================

def test_yaml_roundtrip(tmp_path):
    data = {"schema": "render.v1", "resolution": {"pixel_size": 10.0}, "values": [1, 2, 3]}
    path = tmp_path / "sub" / "cfg.yaml"
    fs.atomic_yaml_dump(data, path)
    assert fs.load_yaml(path) == data
    assert not (tmp_path / "sub" / "cfg.yaml.tmp").exists()
    # Insertion order is kept
    assert path.read_text(encoding="utf-8").splitlines()[0] == "schema: render.v1"


def test_load_yaml_empty_file(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")
    assert fs.load_yaml(path) == {}


def test_load_yaml_errors(tmp_path):
    with pytest.raises(FileNotFoundError):
        fs.load_yaml(tmp_path / "missing.yaml")
    broken = tmp_path / "broken.yaml"
    broken.write_text("a: [1, 2\n", encoding="utf-8")
    with pytest.raises(yaml.YAMLError, match="broken.yaml"):
        fs.load_yaml(broken)


def test_ensure_dir(tmp_path):
    path = fs.ensure_dir(tmp_path / "a" / "b")
    assert path.is_dir()
    assert fs.ensure_dir(path) == path


# ============================================================================
# TEST SUITE 2: Logging
# ============================================================================

def test_human_format_includes_context(record, clean_context):
    formatter = ContextFormatter("human", use_color=False)
    with log_context(channel=2):
        line = formatter.format(record)
    assert "INFO" in line
    assert "channel=2" in line
    assert line.endswith("Rendered 64x32")


def test_json_format(record, clean_context):
    push_context(run="abc")
    payload = json.loads(ContextFormatter("json").format(record))
    assert payload["lvl"] == "INFO"
    assert payload["name"] == "src.smlm_render.renderer"
    assert payload["run"] == "abc"
    assert payload["msg"] == "Rendered 64x32"


def test_context_scoping(clean_context):
    push_context(app="render")
    with log_context(channel=1):
        assert get_context() == {"app": "render", "channel": 1}
    assert get_context() == {"app": "render"}
    pop_context(["app"])
    assert get_context() == {}


def test_invalid_format():
    with pytest.raises(ValueError, match="Unknown log format"):
        ContextFormatter("xml")


def test_setup_logging_file_handler(tmp_path, clean_context):
    log_file = tmp_path / "logs" / "render.log"
    root = logging.getLogger()
    previous_level = root.level
    handlers = setup_logging("DEBUG", str(log_file), json=True, to_stderr=False, context={"app": "test"})
    try:
        assert len(handlers) == 1
        logging.getLogger("src.smlm_render.gaussian").debug("skipped %d points", 3)
        for handler in handlers:
            handler.flush()
        lines = log_file.read_text(encoding="utf-8").strip().splitlines()
        payload = json.loads(lines[-1])
        assert payload["msg"] == "skipped 3 points"
        assert payload["app"] == "test"
        assert logging.getLogger("matplotlib").level == logging.WARNING
    finally:
        for handler in handlers:
            root.removeHandler(handler)
            handler.close()
        root.setLevel(previous_level)
        logging.captureWarnings(False)


def test_setup_logging_invalid_level():
    with pytest.raises(ValueError, match="Unknown log level"):
        setup_logging("LOUD", to_stderr=False)


# ============================================================================
# TEST SUITE 3: Profiling
# ============================================================================

def test_timer_sink():
    timings = {}
    with timer("render", sink=timings.__setitem__):
        time.sleep(0.01)
    assert timings["render"] >= 0.005


def test_timer_reports_on_exception():
    timings = {}
    with pytest.raises(RuntimeError):
        with timer("render", sink=timings.__setitem__):
            raise RuntimeError("boom")
    assert "render" in timings


def test_timer_accumulator():
    acc = TimerAccumulator("channel")
    assert acc.mean() == 0.0
    for _ in range(3):
        with acc.measure():
            pass
    assert acc.count == 3
    assert acc.mean() == pytest.approx(acc.total_time / 3)
    assert "channel" in repr(acc)
    acc.reset()
    assert acc.count == 0

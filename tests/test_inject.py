"""Tests for harvesting a properties file from a triggered run's artifacts."""

from __future__ import annotations

import pytest

from conftest import FakeRun
from matrixgate.errors import ArtifactNotFoundError, ArtifactParseError
from matrixgate.inject import inject_properties
from matrixgate.model import Severity


@pytest.fixture
def run(tmp_path) -> FakeRun:
    artifacts = tmp_path / "archive"
    artifacts.mkdir()
    return FakeRun("smoke", 3, Severity.SUCCESS, artifacts)


def test_injects_parsed_values(build, run):
    (run.artifacts_dir / "out.properties").write_text("x=42\n")

    values = inject_properties(build, run, "out.properties", job_name="smoke", log=build.log)

    assert values == {"x": "42"}
    assert build.injected_environment() == {"x": "42"}
    assert build.environment()["x"] == "42"
    assert build.log.lines == ["Injecting out.properties"]


def test_nested_relative_path(build, run):
    (run.artifacts_dir / "reports").mkdir()
    (run.artifacts_dir / "reports" / "env.properties").write_text("a=1\nb=2\n")
    inject_properties(build, run, "reports/env.properties")
    assert build.injected_environment() == {"a": "1", "b": "2"}


def test_missing_file_attaches_nothing(build, run):
    with pytest.raises(ArtifactNotFoundError) as exc:
        inject_properties(build, run, "out.properties", job_name="smoke")
    assert exc.value.path == "out.properties"
    assert exc.value.job == "smoke"
    assert build.injected == []


def test_directory_is_not_an_artifact(build, run):
    (run.artifacts_dir / "out.properties").mkdir()
    with pytest.raises(ArtifactNotFoundError):
        inject_properties(build, run, "out.properties")


def test_path_outside_artifacts_is_not_found(build, run, tmp_path):
    (tmp_path / "secret.properties").write_text("k=v")
    with pytest.raises(ArtifactNotFoundError):
        inject_properties(build, run, "../secret.properties")
    assert build.injected == []


def test_malformed_file(build, run):
    (run.artifacts_dir / "out.properties").write_text("ok=1\nbad=\\u00\n")
    with pytest.raises(ArtifactParseError) as exc:
        inject_properties(build, run, "out.properties", job_name="smoke")
    assert "line 2" in exc.value.message
    assert build.injected == []


def test_empty_path_is_noop(build, run):
    assert inject_properties(build, run, "", log=build.log) == {}
    assert inject_properties(build, run, None) == {}
    assert build.injected == []
    assert build.log.lines == []


def test_later_injection_wins(build, run):
    (run.artifacts_dir / "a.properties").write_text("k=first\nonly_a=1")
    (run.artifacts_dir / "b.properties").write_text("k=second")
    inject_properties(build, run, "a.properties")
    inject_properties(build, run, "b.properties")
    assert build.environment()["k"] == "second"
    assert build.environment()["only_a"] == "1"

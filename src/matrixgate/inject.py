# inject.py
from __future__ import annotations

from pathlib import Path
from typing import Dict, Optional

from .buildlog import BuildLog
from .engine.base import ParentBuild, RunHandle
from .errors import ArtifactNotFoundError, ArtifactParseError, ParseError
from .properties import load_properties


def _resolve_artifact(root: Path, relative_path: str) -> Optional[Path]:
    root = Path(root).resolve()
    artifact = (root / relative_path).resolve()
    try:
        artifact.relative_to(root)
    except ValueError:
        # escapes the artifact store
        return None
    return artifact if artifact.is_file() else None


def inject_properties(
    build: ParentBuild,
    run: RunHandle,
    relative_path: str,
    *,
    job_name: str = "",
    log: Optional[BuildLog] = None,
) -> Dict[str, str]:
    """
    Harvest a properties file from a completed run's artifacts and attach
    it to the parent build's environment.

    No-op (returns {}) when relative_path is empty. Nothing is attached
    unless the whole file was read and parsed.

    Raises:
        ArtifactNotFoundError: file missing from the artifact store
        ArtifactParseError: file is not valid properties text
    """
    relative_path = (relative_path or "").strip()
    if not relative_path:
        return {}

    if log is not None:
        log.println(f"Injecting {relative_path}")

    artifact = _resolve_artifact(run.artifacts_dir, relative_path)
    if artifact is None:
        raise ArtifactNotFoundError(job_name, relative_path)

    try:
        values = load_properties(artifact)
    except FileNotFoundError as e:
        raise ArtifactNotFoundError(job_name, relative_path) from e
    except ParseError as e:
        raise ArtifactParseError(job_name, relative_path, f"line {e.line_number}: {e.message}") from e

    build.add_injected_environment(values, source=f"{run.full_display_name}:{relative_path}")
    return values

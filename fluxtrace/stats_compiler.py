"""Run the target project's bundler to obtain a module stats manifest."""

from __future__ import annotations

import json
import logging
import shlex
import subprocess
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .errors import GraphBuildFailure

logger = logging.getLogger(__name__)

_WEBPACK_CONFIGS = ("webpack.config.js", "webpack.config.ts", "webpack.config.cjs")


def _records(value: Any, where: str) -> List[Dict[str, Any]]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise GraphBuildFailure(f"stats {where} is not a list")
    records = [record for record in value if isinstance(record, dict)]
    if len(records) != len(value):
        logger.warning("Skipped %d malformed records in stats %s", len(value) - len(records), where)
    return records


def modules_of(stats: Any) -> List[Dict[str, Any]]:
    """Module records of a stats document, including multi-compiler children.

    Raises :class:`GraphBuildFailure` when the document is not a stats object.
    """
    if not isinstance(stats, dict):
        raise GraphBuildFailure(f"stats document is a {type(stats).__name__}, expected an object")
    modules = _records(stats.get("modules"), "modules")
    for child in _records(stats.get("children"), "children"):
        modules.extend(_records(child.get("modules"), "child modules"))
    return modules


class StatsCompiler:
    """Builds the project once and returns the bundler's module records."""

    def __init__(self, project_root: Path, command: Optional[str] = None, timeout: float = 300.0):
        self.project_root = project_root
        self.command = command
        self.timeout = timeout

    def _uses_vue_cli(self) -> bool:
        if (self.project_root / "vue.config.js").exists():
            return True
        try:
            package = json.loads((self.project_root / "package.json").read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return False
        deps = {**package.get("dependencies", {}), **package.get("devDependencies", {})}
        return "@vue/cli-service" in deps

    def resolve_command(self, workdir: Path) -> Tuple[Optional[List[str]], Optional[Path]]:
        """Command to run and the file it writes stats to (None = stdout)."""
        output = workdir / "stats.json"
        if self.command:
            parts = shlex.split(self.command)
            if any("{output}" in p for p in parts):
                return [p.replace("{output}", str(output)) for p in parts], output
            return parts, None
        if any((self.project_root / name).exists() for name in _WEBPACK_CONFIGS):
            return ["npx", "webpack", f"--json={output}"], output
        if self._uses_vue_cli():
            dest = workdir / "dist"
            return (
                ["npx", "vue-cli-service", "build", "--mode", "development", "--report-json", "--dest", str(dest)],
                dest / "report.json",
            )
        return None, None

    def compile(self) -> List[Dict[str, Any]]:
        with tempfile.TemporaryDirectory(prefix="fluxtrace-stats-") as tmp:
            command, output = self.resolve_command(Path(tmp))
            if command is None:
                raise GraphBuildFailure("no bundler configuration found for a live build")
            logger.info("Running live build: %s", " ".join(command))
            try:
                proc = subprocess.run(
                    command,
                    cwd=str(self.project_root),
                    capture_output=True,
                    text=True,
                    timeout=self.timeout,
                )
            except (OSError, subprocess.SubprocessError) as exc:
                raise GraphBuildFailure(f"live build could not run: {exc}") from exc
            if proc.returncode != 0:
                tail = (proc.stderr or proc.stdout or "").strip()[-500:]
                raise GraphBuildFailure(f"live build exited with {proc.returncode}: {tail}")
            try:
                raw = output.read_text(encoding="utf-8") if output is not None else proc.stdout
                stats = json.loads(raw)
            except (OSError, ValueError) as exc:
                raise GraphBuildFailure(f"live build produced no readable stats: {exc}") from exc
        return modules_of(stats)

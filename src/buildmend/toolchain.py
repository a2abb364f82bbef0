"""Optional downstream toolchain checks (``plutil -lint``, ``xmllint``).

These tools are stricter than our own parsers on some inputs. They are
only run when installed; a rejection is logged as ToolchainMismatch and
surfaced as a warning, never as a failed artifact.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from .artifacts import Artifact, ArtifactFormat
from .errors import ToolchainMismatch

logger = logging.getLogger("buildmend.toolchain")

Which = Callable[[str], Optional[str]]


@dataclass(frozen=True)
class LintCommand:
    tool: str
    args: tuple[str, ...]

    def argv(self, executable: str, path: Path) -> list[str]:
        return [executable, *self.args, str(path)]


LINTERS: dict[ArtifactFormat, LintCommand] = {
    ArtifactFormat.PLIST: LintCommand("plutil", ("-lint",)),
    ArtifactFormat.ANDROID_MANIFEST: LintCommand("xmllint", ("--noout",)),
    ArtifactFormat.ANDROID_RESOURCE: LintCommand("xmllint", ("--noout",)),
}


def _run(argv: list[str], *, timeout: int = 60) -> tuple[int, str]:
    """Run a lint command, return (rc, combined output)."""
    logger.debug("[toolchain] Running: %s (timeout=%ds)", " ".join(argv), timeout)
    t0 = time.monotonic()
    try:
        proc = subprocess.run(
            argv,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired:
        elapsed = time.monotonic() - t0
        logger.error("[toolchain] Command TIMED OUT after %.1fs: %s", elapsed, " ".join(argv))
        return -9, f"Timed out after {elapsed:.0f}s"
    return proc.returncode, proc.stdout or ""


class Toolchain:
    """Runs the native linter for an artifact when one is available."""

    def __init__(
        self,
        *,
        enabled: bool = True,
        which: Which = shutil.which,
        run: Callable[..., tuple[int, str]] = _run,
    ):
        self.enabled = enabled
        self._which = which
        self._run = run

    def available(self, fmt: ArtifactFormat) -> Optional[str]:
        command = LINTERS.get(fmt)
        if not self.enabled or command is None:
            return None
        return self._which(command.tool)

    def lint(self, artifact: Artifact, path: Path) -> Optional[ToolchainMismatch]:
        """Return a ToolchainMismatch when the native tool rejects ``path``."""
        executable = self.available(artifact.format)
        if executable is None:
            return None
        command = LINTERS[artifact.format]
        rc, output = self._run(command.argv(executable, path))
        if rc == 0:
            logger.debug("[toolchain] %s accepted %s", command.tool, path)
            return None
        mismatch = ToolchainMismatch(path, command.tool, output)
        logger.warning("%s", mismatch)
        return mismatch

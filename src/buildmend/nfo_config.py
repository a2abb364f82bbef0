"""
nfo logging for buildmend.

Modules log through plain ``logging.getLogger(__name__)`` loggers; the main
classes carry nfo's ``@logged`` decorator:

    from buildmend.nfo_config import logged

    @logged
    class ReconciliationRunner: ...

``setup_logging()`` is called by the CLI when ``BUILDMEND_LOG_DIR`` is set.
It attaches file sinks (SQLite by default, so a CI run can be queried
afterwards) and bridges the ``buildmend.*`` stdlib loggers into them.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Iterable, Mapping, Optional

from nfo import log_call, logged  # type: ignore[import-untyped]

__all__ = ["logged", "log_call", "setup_logging", "default_log_dir", "SINK_FILES"]

SINK_FILES = {
    "sqlite": "buildmend.db",
    "csv": "buildmend.csv",
    "md": "buildmend.md",
}

# public functions of these get wrapped by nfo.auto_log_by_name()
_AUTO_LOG_MODULES = [
    "buildmend.store",
    "buildmend.validators",
    "buildmend.reconciler",
    "buildmend.resolver",
    "buildmend.acquisition",
    "buildmend.runner",
]

_BRIDGE_LOGGERS = [
    "buildmend.catalog",
    "buildmend.store",
    "buildmend.reconciler",
    "buildmend.resolver",
    "buildmend.acquisition",
    "buildmend.runner",
    "buildmend.toolchain",
    "buildmend.formats",
]

_configured_dir: Optional[Path] = None


def default_log_dir(env: Optional[Mapping[str, str]] = None) -> Path:
    env = os.environ if env is None else env
    return Path(env.get("BUILDMEND_LOG_DIR") or Path(tempfile.gettempdir()) / "buildmend-logs")


def setup_logging(
    *,
    log_dir: Optional[str | Path] = None,
    level: str = "DEBUG",
    sinks: Iterable[str] = ("sqlite",),
    auto_instrument: bool = False,
) -> Path:
    """Route buildmend logs to nfo sinks and return the log directory.

    Safe to call more than once; only the first call configures nfo.

    Args:
        log_dir: Directory for the sink files. Defaults to BUILDMEND_LOG_DIR.
        level: Minimum log level.
        sinks: Any of ``sqlite``, ``csv``, ``md``.
        auto_instrument: Also wrap the public functions of the engine modules.
    """
    global _configured_dir

    if _configured_dir is not None:
        return _configured_dir

    kinds = list(sinks)
    unknown = sorted(set(kinds) - set(SINK_FILES))
    if unknown:
        raise ValueError(f"unknown log sink(s): {', '.join(unknown)}")

    from nfo import auto_log_by_name, configure  # type: ignore[import-untyped]

    from . import __version__

    path = Path(log_dir) if log_dir else default_log_dir()
    path.mkdir(parents=True, exist_ok=True)
    specs = [f"{kind}:{path / SINK_FILES[kind]}" for kind in kinds]

    configure(
        name="buildmend",
        level=level,
        sinks=specs or None,
        modules=_BRIDGE_LOGGERS if specs else None,
        propagate_stdlib=True,
        # Codemagic exposes the build id; tag records with it when present
        environment=os.environ.get("BUILDMEND_ENV") or os.environ.get("CM_BUILD_ID"),
        version=__version__,
    )

    if auto_instrument and specs:
        auto_log_by_name(*_AUTO_LOG_MODULES, level=level)

    _configured_dir = path
    return path

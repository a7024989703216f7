"""Utility helpers for the gitcrumbs command runner."""

from __future__ import annotations

import os
import re
from typing import Mapping

_SANITIZED_VARS = {
    "PYTHONHOME",
    "PYTHONPATH",
    "VIRTUAL_ENV",
    "PIP_RESPECT_VIRTUALENV",
}

_ANSI_ESCAPE = re.compile(r"\x1B(?:\[[0-?]*[ -/]*[@-~]|\][^\x07]*\x07|[@-Z\\-_])")

DEFAULT_TERMINAL_COLUMNS = 10000


def sanitize_environment(
    additional: Mapping[str, str] | None = None,
    *,
    columns: int = DEFAULT_TERMINAL_COLUMNS,
) -> dict[str, str]:
    """Return an environment that keeps gitcrumbs tables on one line per cell and free of color."""

    env = dict(os.environ)
    for key in _SANITIZED_VARS:
        env.pop(key, None)
    env["COLUMNS"] = str(columns)
    env["NO_COLOR"] = "1"
    if additional:
        env.update(additional)
    return env


def strip_ansi(text: str) -> str:
    """Remove terminal escape sequences from ``text``."""

    return _ANSI_ESCAPE.sub("", text)

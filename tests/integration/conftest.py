# ==============================
# Integration fixtures
# ==============================
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterator

import pytest


@pytest.fixture
def isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    """
    Run from an empty repo root so only defaults + AGENTLOOP__ env overrides apply.

    Console logging is switched off and root handlers are restored afterwards, since
    the CLI bootstraps logging on every invocation.
    """
    for key in list(os.environ):
        if key.startswith("AGENTLOOP__"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("AGENTLOOP__LOGGING__CONSOLE", "false")

    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield tmp_path
    root.handlers = handlers
    root.setLevel(level)

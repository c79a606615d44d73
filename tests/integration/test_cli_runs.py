from __future__ import annotations

# ==============================
# Integration: CLI Runs
# ==============================

import json
from pathlib import Path
from typing import List, Tuple

import pytest

from gateway.cli import main as cli_main


def _run_cli(args: List[str], capsys) -> Tuple[int, dict]:
    code = cli_main.main(args)
    captured = capsys.readouterr()
    output = captured.out.strip()
    data = json.loads(output) if output else {}
    return code, data


@pytest.mark.integration
def test_cli_run_prompt(isolated_env: Path, capsys) -> None:
    code, out = _run_cli(["run", "--prompt", "hello cli", "--run-id", "cli-1", "--tag", "a", "--tag", "b"], capsys)
    assert code == 0
    assert out["ok"] is True
    assert out["data"]["text"] == "hello cli"
    assert out["data"]["run_id"] == "cli-1"
    assert out["data"]["finish_reason"] == "stop"


@pytest.mark.integration
def test_cli_run_messages_file(isolated_env: Path, capsys) -> None:
    transcript = isolated_env / "transcript.json"
    transcript.write_text(
        json.dumps(
            [
                {"role": "user", "content": [{"type": "text", "text": "earlier"}]},
                {"role": "user", "content": [{"type": "text", "text": "from file"}]},
            ]
        ),
        encoding="utf-8",
    )
    code, out = _run_cli(["run", "--messages-file", str(transcript)], capsys)
    assert code == 0
    assert out["data"]["text"] == "from file"


@pytest.mark.integration
def test_cli_run_argument_errors(isolated_env: Path, capsys) -> None:
    with pytest.raises(SystemExit):
        cli_main.main(["run"])
    with pytest.raises(SystemExit):
        cli_main.main(["run", "--prompt", "x", "--messages-file", "y.json"])
    with pytest.raises(SystemExit):
        cli_main.main(["run", "--prompt", "x", "--max-steps", "0"])
    with pytest.raises(SystemExit):
        cli_main.main(["run", "--messages-file", str(isolated_env / "missing.json")])


@pytest.mark.integration
def test_cli_unknown_provider_reports_error(isolated_env: Path, monkeypatch, capsys) -> None:
    monkeypatch.setenv("AGENTLOOP__MODELS__DEFAULT_PROVIDER", "nope")
    code, out = _run_cli(["run", "--prompt", "x"], capsys)
    assert code == 1
    assert out["ok"] is False
    assert out["error"]["type"] == "ConfigurationError"


@pytest.mark.integration
def test_cli_show_config_reflects_env(isolated_env: Path, monkeypatch, capsys) -> None:
    monkeypatch.setenv("AGENTLOOP__AGENT__MAX_STEPS", "4")
    monkeypatch.setenv("AGENTLOOP__POLICIES__BLOCKED_TOOLS", "[shell]")
    code, out = _run_cli(["show-config"], capsys)
    assert code == 0
    assert out["agent"]["max_steps"] == 4
    assert out["policies"]["blocked_tools"] == ["shell"]
    assert out["models"]["default_provider"] == "echo"
    assert out["logging"]["console"] is False


@pytest.mark.integration
def test_cli_reads_configs_dir(isolated_env: Path, capsys) -> None:
    configs = isolated_env / "configs"
    configs.mkdir()
    (configs / "agent.yaml").write_text("system: From yaml.\nmax_steps: 2\n", encoding="utf-8")
    code, out = _run_cli(["show-config"], capsys)
    assert code == 0
    assert out["agent"]["system"] == "From yaml."
    assert out["app"]["repo_root"] == str(isolated_env.resolve())

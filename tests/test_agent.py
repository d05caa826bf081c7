import subprocess

import pytest

from job_tracker import agent
from job_tracker.errors import AgentCallError, AgentOutputError, NeedsInterventionError

AGENT_KWARGS = {
    "command": "claude",
    "model": "sonnet",
    "max_turns": 8,
    "timeout_seconds": 60,
    "allowed_tools": agent.RESEARCH_TOOLS,
    "label": "Research",
}


def test_build_agent_args():
    args = agent.build_agent_args("claude", "do it", "sonnet", 8, ("WebSearch", "WebFetch"))
    assert args == [
        "claude",
        "-p",
        "--model",
        "sonnet",
        "--permission-mode",
        "dontAsk",
        "--allowedTools",
        "WebSearch,WebFetch",
        "--max-turns",
        "8",
        "do it",
    ]


def test_run_agent_returns_stdout(monkeypatch):
    def fake_run(args, **kwargs):
        assert kwargs["timeout"] == 60
        return subprocess.CompletedProcess(args, 0, stdout="  [1, 2]\n", stderr="")

    monkeypatch.setattr(agent.subprocess, "run", fake_run)
    assert agent.run_agent("prompt", **AGENT_KWARGS) == "[1, 2]"


def test_run_agent_timeout_needs_intervention(monkeypatch):
    def fake_run(args, **kwargs):
        raise subprocess.TimeoutExpired(args, kwargs["timeout"])

    monkeypatch.setattr(agent.subprocess, "run", fake_run)
    with pytest.raises(NeedsInterventionError) as excinfo:
        agent.run_agent("prompt", **AGENT_KWARGS)
    assert str(excinfo.value).startswith("NEEDS_INTERVENTION")


def test_run_agent_nonzero_exit(monkeypatch):
    monkeypatch.setattr(
        agent.subprocess,
        "run",
        lambda args, **kwargs: subprocess.CompletedProcess(args, 2, stdout="", stderr="rate limited"),
    )
    with pytest.raises(AgentCallError, match="rate limited"):
        agent.run_agent("prompt", **AGENT_KWARGS)


def test_missing_agent_binary_needs_intervention(monkeypatch):
    def fake_run(args, **kwargs):
        raise FileNotFoundError(args[0])

    monkeypatch.setattr(agent.subprocess, "run", fake_run)
    with pytest.raises(NeedsInterventionError):
        agent.run_agent("prompt", **AGENT_KWARGS)


def test_extract_json_from_surrounding_prose():
    assert agent.extract_json_object('Sure! {"linkedin": []} Done.') == {"linkedin": []}
    assert agent.extract_json_array("```json\n[{\"id\": \"a\"}]\n```") == [{"id": "a"}]
    with pytest.raises(AgentOutputError):
        agent.extract_json_object("no json here")
    with pytest.raises(AgentOutputError):
        agent.extract_json_array('{"a": 1}')


def test_run_agent_for_json_retries_once():
    prompts = []
    outputs = iter(["not json", "[1]"])

    def runner(prompt, **kwargs):
        prompts.append(prompt)
        return next(outputs)

    seen = []
    result = agent.run_agent_for_json("find jobs", agent.extract_json_array, runner=runner, on_output=seen.append, **AGENT_KWARGS)
    assert result == [1]
    assert prompts == ["find jobs", "find jobs" + agent.JSON_ONLY_SUFFIX]
    assert seen == ["not json", "[1]"]


def test_run_agent_for_json_retries_failed_calls():
    calls = []

    def runner(prompt, **kwargs):
        calls.append(prompt)
        raise AgentCallError("exit 1")

    with pytest.raises(NeedsInterventionError, match="unusable output"):
        agent.run_agent_for_json("find jobs", agent.extract_json_array, runner=runner, **AGENT_KWARGS)
    assert len(calls) == 2

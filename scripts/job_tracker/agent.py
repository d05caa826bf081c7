from __future__ import annotations

import json
import logging
import subprocess
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar

from .errors import AgentCallError, AgentOutputError, NeedsInterventionError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RESEARCH_TOOLS = ("Task", "WebSearch", "WebFetch")
GATHER_TOOLS = (
    "WebSearch",
    "WebFetch",
    "mcp__google-workspace__search_gmail_messages",
    "mcp__google-workspace__get_gmail_message_content",
    "mcp__google-workspace__get_gmail_messages_content_batch",
    "mcp__google-workspace__get_gmail_thread_content",
    "mcp__google-workspace__list_gmail_labels",
)

JSON_ONLY_SUFFIX = (
    "\n\nIMPORTANT: your previous answer could not be parsed. "
    "Respond with the JSON only: no prose, no markdown fences, no commentary."
)


def build_agent_args(
    command: str,
    prompt: str,
    model: str,
    max_turns: int,
    allowed_tools: Sequence[str],
) -> List[str]:
    return [
        command,
        "-p",
        "--model",
        model,
        "--permission-mode",
        "dontAsk",
        "--allowedTools",
        ",".join(allowed_tools),
        "--max-turns",
        str(max_turns),
        prompt,
    ]


def run_agent(
    prompt: str,
    *,
    command: str,
    model: str,
    max_turns: int,
    timeout_seconds: int,
    allowed_tools: Sequence[str],
    label: str,
    cwd: Optional[Path] = None,
) -> str:
    args = build_agent_args(command, prompt, model, max_turns, allowed_tools)
    try:
        completed = subprocess.run(
            args,
            cwd=str(cwd) if cwd else None,
            capture_output=True,
            text=True,
            timeout=timeout_seconds,
            stdin=subprocess.DEVNULL,
        )
    except subprocess.TimeoutExpired as exc:
        raise NeedsInterventionError(f"{label} step timed out after {timeout_seconds}s") from exc
    except OSError as exc:
        raise NeedsInterventionError(f"{label} agent could not start ({command}): {exc}") from exc
    if completed.returncode != 0:
        raise AgentCallError(
            f"{label} command failed ({completed.returncode}). {(completed.stderr or '').strip()}"
        )
    return (completed.stdout or "").strip()


def _slice_json(text: str, opener: str, closer: str, label: str) -> Any:
    start = text.find(opener)
    end = text.rfind(closer)
    if start == -1 or end == -1 or end <= start:
        raise AgentOutputError(f"{label} output did not contain JSON")
    try:
        return json.loads(text[start : end + 1])
    except json.JSONDecodeError as exc:
        raise AgentOutputError(f"{label} output was not valid JSON: {exc}") from exc


def extract_json_object(text: str, label: str = "Agent") -> Dict[str, Any]:
    data = _slice_json(text or "", "{", "}", label)
    if not isinstance(data, dict):
        raise AgentOutputError(f"{label} output was not a JSON object")
    return data


def extract_json_array(text: str, label: str = "Agent") -> List[Any]:
    data = _slice_json(text or "", "[", "]", label)
    if not isinstance(data, list):
        raise AgentOutputError(f"{label} output was not a JSON array")
    return data


def run_agent_for_json(
    prompt: str,
    extract: Callable[[str], T],
    *,
    runner: Callable[..., str] = run_agent,
    on_output: Optional[Callable[[str], None]] = None,
    **agent_kwargs: Any,
) -> T:
    """Run the agent and parse its output, retrying once with a stricter JSON-only prompt."""
    label = agent_kwargs.get("label", "Agent")
    last_error: Optional[Exception] = None
    for attempt, attempt_prompt in enumerate((prompt, prompt + JSON_ONLY_SUFFIX), start=1):
        try:
            output = runner(attempt_prompt, **agent_kwargs)
            if on_output is not None:
                on_output(output)
            return extract(output)
        except (AgentOutputError, AgentCallError) as exc:
            last_error = exc
            logger.warning("%s attempt %s failed: %s", label, attempt, exc)
    raise NeedsInterventionError(f"{label} returned unusable output: {last_error}")

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from . import keywords as kw
from .agent import GATHER_TOOLS, extract_json_object, run_agent, run_agent_for_json
from .batches import GATHER_RAW_FILE, write_candidate_file
from .config import PipelineConfig
from .errors import NeedsInterventionError
from .filters import log_screen_result, screen_candidates
from .utils import now_utc

logger = logging.getLogger(__name__)


def build_gather_prompt(cfg: PipelineConfig) -> str:
    sources = ", ".join(kw.GATHER_SOURCES)
    return f"""You are running job intake for a UX/Product Designer job dashboard.

Run web + email intake and return ONLY one JSON object with keys:
{sources}.
Each key must map to an array of jobs.

Tool rules:
- DO NOT use browser or playwright tools.
- DO NOT dispatch Task sub-agents.
- Use only WebSearch/WebFetch and Gmail tools directly.

Sources:
- linkedin: use Gmail for LinkedIn job alerts from the last 7 days; open relevant messages and extract listing links and details.
- uiuxjobsboard: current UK remote listings.
- workinstartups: design jobs.
- indeed: UK UX/product designer listings; return an empty array if blocked.

For EACH job, output fields:
{{title, company, location, type, url, remote, salary, seniority, roleType, freshness, description, postedAt}}

Hard filters:
- Keep ONLY Manchester-area or Remote UK roles.
- Exclude contract/freelance/part-time.
- Exclude lead/principal/head-of roles.
- Exclude strong UI-only focus roles.
- Exclude jobs older than {cfg.max_age_days} days.
- Exclude roles without a salary above £{cfg.min_salary}.

Output rules:
- Return strict JSON only (no markdown, no prose).
- Ensure every array exists even if empty.
- Include this diagnostics object:
  "_meta": {{
    "gmail_checked": true|false,
    "gmail_messages_scanned": number,
    "gmail_tool_used": "google-workspace|gmail|none",
    "gmail_error": null|string
  }}
"""


def check_gmail_meta(payload: Dict[str, Any]) -> Dict[str, Any]:
    meta = payload.get("_meta") if isinstance(payload.get("_meta"), dict) else {}
    linkedin_rows = payload.get("linkedin") if isinstance(payload.get("linkedin"), list) else []
    checked = meta.get("gmail_checked") is True or len(linkedin_rows) > 0
    logger.info("  gmail_checked: %s", checked)
    logger.info("  gmail_messages_scanned: %s", meta.get("gmail_messages_scanned", 0))
    logger.info("  gmail_tool_used: %s", meta.get("gmail_tool_used", "none"))
    if meta.get("gmail_error"):
        logger.info("  gmail_error: %s", meta["gmail_error"])
    if not checked:
        raise NeedsInterventionError("Gmail email intake did not run. Check Google Workspace credentials.")
    return meta


def write_gather_results(
    payload: Dict[str, Any],
    cfg: PipelineConfig,
    now: Optional[datetime] = None,
) -> Dict[str, int]:
    now = now or now_utc()
    counts: Dict[str, int] = {}
    for source in kw.GATHER_SOURCES:
        rows = payload.get(source)
        rows = [row for row in rows if isinstance(row, dict)] if isinstance(rows, list) else []
        result = screen_candidates(source, rows, cfg, now=now, cutoff=cfg.score_cutoff)
        log_screen_result(source, result)
        write_candidate_file(cfg.candidate_path(source), source, result.kept, generated_at=now)
        counts[source] = len(result.kept)
    return counts


def gather(
    cfg: PipelineConfig,
    runner: Callable[..., str] = run_agent,
    now: Optional[datetime] = None,
) -> Dict[str, int]:
    """Run the email + web intake agent and write one candidate file per gathered source."""
    logger.info("=== AGENT GATHER (EMAIL + WEB) ===")
    if not cfg.google_client_id or not cfg.google_client_secret:
        raise NeedsInterventionError(
            "GOOGLE_OAUTH_CLIENT_ID or GOOGLE_OAUTH_CLIENT_SECRET not set. Check .env.local."
        )
    cfg.candidates_dir.mkdir(parents=True, exist_ok=True)
    raw_path = cfg.candidates_dir / GATHER_RAW_FILE

    def keep_raw(output: str) -> None:
        raw_path.write_text(output, encoding="utf-8")

    payload = run_agent_for_json(
        build_gather_prompt(cfg),
        lambda text: extract_json_object(text, label="Gather"),
        runner=runner,
        on_output=keep_raw,
        command=cfg.agent_command,
        model=cfg.gather_model,
        max_turns=cfg.gather_max_turns,
        timeout_seconds=cfg.gather_timeout_seconds,
        allowed_tools=GATHER_TOOLS,
        label="Gather",
        cwd=cfg.base_dir,
    )
    check_gmail_meta(payload)
    counts = write_gather_results(payload, cfg, now=now)
    logger.info("Agent gather complete: %s", ", ".join(f"{k}={v}" for k, v in counts.items()))
    return counts
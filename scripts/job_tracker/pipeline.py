from __future__ import annotations

import json
import logging
import os
import subprocess
import sys
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from . import keywords as kw
from .batches import (
    RESEARCH_QUEUE_FILE,
    RESEARCH_RESULTS_FILE,
    SYNC_REPORT_FILE,
    read_candidate_file,
    read_research_results,
)
from .config import PipelineConfig
from .errors import (
    EXIT_NEEDS_INTERVENTION,
    NEEDS_INTERVENTION_MARKER,
    CandidateValidationError,
    PipelineError,
)
from .notify import Notifier, RunEvent, build_notifier, safe_notify
from .utils import now_utc, to_iso, write_json_atomic

logger = logging.getLogger(__name__)

SCRIPTS_DIR = Path(__file__).resolve().parent.parent
ERROR_TAIL_LINES = 20


@dataclass(frozen=True)
class Phase:
    name: str
    commands: Tuple[str, ...]


PHASES: Tuple[Phase, ...] = (
    Phase("fetch", ("fetch-adzuna", "fetch-reed")),
    Phase("gather", ("gather",)),
    Phase("filter", ("filter-new",)),
    Phase("research", ("research",)),
    Phase("merge", ("merge-research",)),
    Phase("sync", ("sync",)),
)
PHASE_NAMES = tuple(phase.name for phase in PHASES)


@dataclass
class CommandResult:
    code: Optional[int]
    stdout: str = ""
    stderr: str = ""
    duration_ms: int = 0
    timed_out: bool = False


@dataclass
class StepRecord:
    name: str
    status: str
    phase: str = ""
    started_at: Optional[str] = None
    finished_at: Optional[str] = None
    duration_ms: Optional[int] = None
    code: Optional[int] = None
    log_file: Optional[str] = None
    error: Optional[str] = None


@dataclass
class RunState:
    run_id: str
    started_at: str
    run_dir: str
    cutoff_score: int
    status: str = "running"
    steps: List[StepRecord] = field(default_factory=list)
    finished_at: Optional[str] = None
    error: Optional[str] = None
    needs_intervention: bool = False
    summary: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class PhaseFailed(PipelineError):
    def __init__(self, step: str, message: str, needs_intervention: bool = False) -> None:
        super().__init__(message)
        self.step = step
        self.needs_intervention = needs_intervention


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def run_command(
    args: Sequence[str],
    *,
    cwd: Path,
    log_file: Path,
    timeout: int,
    env: Optional[Dict[str, str]] = None,
) -> CommandResult:
    started = time.monotonic()
    try:
        completed = subprocess.run(
            list(args),
            cwd=str(cwd),
            env=env,
            capture_output=True,
            text=True,
            timeout=timeout,
            stdin=subprocess.DEVNULL,
        )
        result = CommandResult(
            code=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )
    except subprocess.TimeoutExpired as exc:
        result = CommandResult(
            code=None,
            stdout=_as_text(exc.stdout),
            stderr=_as_text(exc.stderr),
            timed_out=True,
        )
    except OSError as exc:
        result = CommandResult(code=127, stderr=f"Cannot start {args[0]}: {exc}")
    result.duration_ms = int((time.monotonic() - started) * 1000)
    with log_file.open("a", encoding="utf-8") as log_fh:
        log_fh.write(result.stdout)
        log_fh.write(result.stderr)
        if result.timed_out:
            log_fh.write(f"\n[timeout] killed after {timeout}s\n")
    return result


def error_tail(result: CommandResult) -> str:
    text = (result.stderr.strip() or result.stdout.strip())
    lines = [line for line in text.splitlines() if line.strip()]
    if not lines:
        return f"Command failed with code {result.code}"
    return "\n".join(lines[-ERROR_TAIL_LINES:])


def count_records(path: Path) -> int:
    if not path.exists():
        return 0
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return 0
    if isinstance(data, list):
        return len(data)
    if isinstance(data, dict) and isinstance(data.get("candidates"), list):
        return len(data["candidates"])
    return 0


def validate_step_output(command: str, cfg: PipelineConfig) -> None:
    """Read a step's artifact through the typed readers; raise when it is missing or invalid."""

    def require(path: Path) -> Path:
        if not path.exists():
            raise CandidateValidationError(f"{command} produced no output ({path.name} missing)")
        return path

    if command.startswith("fetch-"):
        source = command[len("fetch-"):]
        read_candidate_file(require(cfg.candidate_path(source)), cfg, source=source)
    elif command == "gather":
        for source in kw.GATHER_SOURCES:
            read_candidate_file(require(cfg.candidate_path(source)), cfg, source=source)
    elif command == "filter-new":
        read_candidate_file(require(cfg.candidates_dir / RESEARCH_QUEUE_FILE), cfg, source="research-queue")
    elif command == "research":
        read_research_results(require(cfg.candidates_dir / RESEARCH_RESULTS_FILE))
    elif command == "sync":
        path = require(cfg.candidates_dir / SYNC_REPORT_FILE)
        try:
            report = json.loads(path.read_text(encoding="utf-8"))
        except ValueError as exc:
            raise CandidateValidationError(f"{path.name} is not valid JSON: {exc}") from exc
        if not isinstance(report, dict) or "inserted" not in report:
            raise CandidateValidationError(f"{path.name} has no inserted count")


def run_stamp(now: datetime) -> str:
    return now.strftime("%Y-%m-%dT%H-%M-%S-%fZ")


CommandRunner = Callable[..., CommandResult]


class PipelineRunner:
    """Runs the phases in order as child processes and records run.json."""

    def __init__(
        self,
        cfg: PipelineConfig,
        notifier: Optional[Notifier] = None,
        command_runner: CommandRunner = run_command,
        python: str = sys.executable,
    ) -> None:
        self.cfg = cfg
        self.notifier = notifier or build_notifier(cfg)
        self.command_runner = command_runner
        self.python = python
        self._lock = threading.Lock()

    def _save(self, state: RunState) -> None:
        with self._lock:
            write_json_atomic(Path(state.run_dir) / "run.json", state.to_dict())

    def _child_env(self) -> Dict[str, str]:
        env = dict(os.environ)
        pythonpath = env.get("PYTHONPATH", "")
        env["PYTHONPATH"] = os.pathsep.join(p for p in (str(SCRIPTS_DIR), pythonpath) if p)
        env["JOB_TRACKER_BASE_DIR"] = str(self.cfg.base_dir)
        return env

    def _run_step(self, state: RunState, phase: Phase, command: str) -> StepRecord:
        log_file = Path(state.run_dir) / f"{command}.log"
        step = StepRecord(
            name=command,
            phase=phase.name,
            status="running",
            started_at=to_iso(now_utc()),
            log_file=str(log_file),
        )
        with self._lock:
            state.steps.append(step)
        self._save(state)

        timeout = self.cfg.phase_timeout(phase.name)
        logger.info("-> %s", command)
        result = self.command_runner(
            [self.python, "-m", "job_tracker.cli", command],
            cwd=self.cfg.base_dir,
            log_file=log_file,
            timeout=timeout,
            env=self._child_env(),
        )
        step.finished_at = to_iso(now_utc())
        step.duration_ms = result.duration_ms
        step.code = result.code

        failure: Optional[PhaseFailed] = None
        if result.timed_out:
            failure = PhaseFailed(
                command,
                f"{NEEDS_INTERVENTION_MARKER}: {command} timed out after {timeout}s",
                needs_intervention=True,
            )
        elif result.code != 0:
            tail = error_tail(result)
            needs = result.code == EXIT_NEEDS_INTERVENTION or NEEDS_INTERVENTION_MARKER in tail
            failure = PhaseFailed(command, tail, needs_intervention=needs)
        else:
            try:
                validate_step_output(command, self.cfg)
            except CandidateValidationError as exc:
                failure = PhaseFailed(command, f"{command} produced no valid output: {exc}")

        if failure is not None:
            step.status = "failed"
            step.error = str(failure)
            self._save(state)
            raise failure

        step.status = "success"
        self._save(state)
        return step

    def _run_phase(self, state: RunState, phase: Phase) -> None:
        if len(phase.commands) == 1:
            self._run_step(state, phase, phase.commands[0])
            return
        # Concurrent sub-steps all finish before the phase outcome is decided.
        with ThreadPoolExecutor(max_workers=len(phase.commands)) as executor:
            futures = [executor.submit(self._run_step, state, phase, cmd) for cmd in phase.commands]
            errors = [future.exception() for future in futures]
        failures = [err for err in errors if err is not None]
        if failures:
            raise failures[0]

    def summarize(self) -> Dict[str, Any]:
        candidates_dir = self.cfg.candidates_dir
        inserted = 0
        report_path = candidates_dir / SYNC_REPORT_FILE
        if report_path.exists():
            try:
                inserted = int(json.loads(report_path.read_text(encoding="utf-8")).get("inserted", 0))
            except (OSError, ValueError, TypeError, AttributeError):
                inserted = 0
        return {
            "research_queue": count_records(candidates_dir / RESEARCH_QUEUE_FILE),
            "researched": count_records(candidates_dir / RESEARCH_RESULTS_FILE),
            "inserted": inserted,
            "dropped_below_cutoff": f"Enforced for score < {self.cfg.score_cutoff} during gather/filter/sync",
        }

    def run(self, skip: Sequence[str] = ()) -> RunState:
        started = now_utc()
        run_id = run_stamp(started)
        run_dir = self.cfg.runs_dir / run_id
        run_dir.mkdir(parents=True, exist_ok=True)
        state = RunState(
            run_id=run_id,
            started_at=to_iso(started),
            run_dir=str(run_dir),
            cutoff_score=self.cfg.score_cutoff,
        )
        self._save(state)
        safe_notify(
            self.notifier,
            RunEvent(
                title="Job pipeline started",
                body=f"Run {run_id} started. Collecting and researching jobs now.",
                severity="info",
                event_type="pipeline_started",
                metadata={"run_id": run_id},
            ),
        )

        logger.info("=== JOB PIPELINE RUN %s ===", run_id)
        try:
            for phase in PHASES:
                if phase.name in skip:
                    logger.info("-> %s (skipped)", phase.name)
                    with self._lock:
                        state.steps.append(StepRecord(name=phase.name, phase=phase.name, status="skipped"))
                    self._save(state)
                    continue
                self._run_phase(state, phase)
        except PhaseFailed as exc:
            state.status = "failed"
            state.error = str(exc)
            state.needs_intervention = exc.needs_intervention
            state.finished_at = to_iso(now_utc())
            self._save(state)
            logger.error("Run %s failed at %s: %s", run_id, exc.step, exc)
            safe_notify(
                self.notifier,
                RunEvent(
                    title="Job pipeline needs intervention" if exc.needs_intervention else "Job pipeline failed",
                    body=f"Run {run_id} failed at {exc.step}. Error: {exc}",
                    severity="warning" if exc.needs_intervention else "error",
                    event_type="pipeline_attention_needed" if exc.needs_intervention else "pipeline_failed",
                    metadata={"run_id": run_id, "step": exc.step},
                ),
            )
            return state

        state.summary = self.summarize()
        state.status = "success"
        state.finished_at = to_iso(now_utc())
        self._save(state)
        logger.info(
            "Run %s complete: queue %s, researched %s, inserted %s",
            run_id,
            state.summary["research_queue"],
            state.summary["researched"],
            state.summary["inserted"],
        )
        safe_notify(
            self.notifier,
            RunEvent(
                title="Job pipeline completed",
                body=(
                    f"Run {run_id} finished. Researched {state.summary['researched']} jobs, "
                    f"synced {state.summary['inserted']} new roles."
                ),
                severity="success",
                event_type="pipeline_success",
                metadata={
                    "run_id": run_id,
                    "research_queue": state.summary["research_queue"],
                    "researched": state.summary["researched"],
                    "inserted": state.summary["inserted"],
                },
            ),
        )
        return state

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Callable, List, Optional

from .config import PipelineConfig
from .db import close_storage, get_storage
from .errors import EXIT_FAILURE, EXIT_NEEDS_INTERVENTION, NeedsInterventionError, PipelineError
from .gather import gather
from .pipeline import PHASE_NAMES, PipelineRunner
from .research import build_research_queue, merge_research, research_queue
from .sources import fetch_source
from .store import JobStore, retention_cutoff
from .sync import run_staleness_sweep, sync
from .utils import now_utc

logger = logging.getLogger(__name__)


def _setup_logging(verbose: bool = False) -> None:
    if logging.getLogger().hasHandlers():
        return
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _store(cfg: PipelineConfig) -> JobStore:
    return JobStore(get_storage(cfg))


def _fetch(source: str) -> Callable[[argparse.Namespace, PipelineConfig], int]:
    def run(args: argparse.Namespace, cfg: PipelineConfig) -> int:
        fetch_source(source, cfg)
        return 0

    return run


def _gather(args: argparse.Namespace, cfg: PipelineConfig) -> int:
    gather(cfg)
    return 0


def _filter_new(args: argparse.Namespace, cfg: PipelineConfig) -> int:
    build_research_queue(cfg, _store(cfg))
    return 0


def _research(args: argparse.Namespace, cfg: PipelineConfig) -> int:
    research_queue(cfg)
    return 0


def _merge_research(args: argparse.Namespace, cfg: PipelineConfig) -> int:
    results_path = None
    if args.results:
        results_path = Path(args.results)
        if not results_path.is_absolute():
            results_path = cfg.base_dir / results_path
    merge_research(cfg, results_path=results_path)
    return 0


def _sync(args: argparse.Namespace, cfg: PipelineConfig) -> int:
    sync(cfg, _store(cfg))
    return 0


def _stale_sweep(args: argparse.Namespace, cfg: PipelineConfig) -> int:
    run_staleness_sweep(_store(cfg), cfg)
    return 0


def _auto_ghost(args: argparse.Namespace, cfg: PipelineConfig) -> int:
    logger.info("=== AUTO-GHOST STALE APPLICATIONS ===")
    now = now_utc()
    cutoff = retention_cutoff(now, cfg.ghost_after_days)
    logger.info("Looking for applications sent before %s", cutoff.date().isoformat())
    ghosted = _store(cfg).ghost_stale_applications(cutoff, cfg.ghost_after_days, now=now)
    if not ghosted:
        logger.info("No stale applications found.")
        return 0
    for row in ghosted:
        logger.info("  %s - %s", row.get("company"), row.get("title"))
    logger.info("Ghosted %s job(s)", len(ghosted))
    return 0


def _init_db(args: argparse.Namespace, cfg: PipelineConfig) -> int:
    logger.info("Applying schema.sql...")
    _store(cfg).apply_schema()
    logger.info("Database schema is ready.")
    return 0


def _pipeline_run(args: argparse.Namespace, cfg: PipelineConfig) -> int:
    state = PipelineRunner(cfg).run(skip=args.skip or ())
    return 0 if state.status == "success" else EXIT_FAILURE


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="job-tracker", description="Job candidate ingestion pipeline")
    parser.add_argument("--base-dir", help="Working directory holding candidates/ and runs/ (default: cwd).")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    for source in ("adzuna", "reed"):
        sub = subparsers.add_parser(f"fetch-{source}", help=f"Fetch {source.title()} listings")
        sub.set_defaults(func=_fetch(source))

    subparsers.add_parser("gather", help="Agent email + web intake").set_defaults(func=_gather)
    subparsers.add_parser("filter-new", help="Build the research queue from new candidates").set_defaults(
        func=_filter_new
    )
    subparsers.add_parser("research", help="Agent company research for the queue").set_defaults(func=_research)

    merge = subparsers.add_parser("merge-research", help="Merge research results into candidate files")
    merge.add_argument("--results", help="Research results file (default: candidates/research-results.json).")
    merge.set_defaults(func=_merge_research)

    subparsers.add_parser("sync", help="Sync candidates into the jobs table").set_defaults(func=_sync)
    subparsers.add_parser("stale-sweep", help="Mark old stored jobs stale").set_defaults(func=_stale_sweep)
    subparsers.add_parser("auto-ghost", help="Ghost unanswered applications").set_defaults(func=_auto_ghost)
    subparsers.add_parser("init-db", help="Apply the database schema").set_defaults(func=_init_db)

    run_cmd = subparsers.add_parser("pipeline-run", help="Run every phase in order")
    run_cmd.add_argument(
        "--skip",
        action="append",
        choices=PHASE_NAMES,
        help="Phase to skip (repeatable).",
    )
    run_cmd.set_defaults(func=_pipeline_run)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.verbose)
    cfg = PipelineConfig.from_env(Path(args.base_dir) if args.base_dir else None)
    try:
        return args.func(args, cfg)
    except NeedsInterventionError as exc:
        logger.error("%s", exc)
        return EXIT_NEEDS_INTERVENTION
    except PipelineError as exc:
        logger.error("%s failed: %s", args.command, exc)
        return EXIT_FAILURE
    finally:
        close_storage()


if __name__ == "__main__":
    sys.exit(main())

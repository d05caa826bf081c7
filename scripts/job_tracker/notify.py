from __future__ import annotations

import logging
import smtplib
import subprocess
import sys
from dataclasses import dataclass, field
from email.mime.text import MIMEText
from pathlib import Path
from typing import Dict, List, Protocol

from .config import PipelineConfig

logger = logging.getLogger(__name__)


@dataclass
class RunEvent:
    title: str
    body: str
    severity: str = "info"
    event_type: str = "pipeline_update"
    metadata: Dict[str, object] = field(default_factory=dict)


class Notifier(Protocol):
    def notify(self, event: RunEvent) -> bool:
        ...


class LogNotifier:
    def notify(self, event: RunEvent) -> bool:
        logger.info("[notify-skip] %s :: %s", event.title, event.body)
        return False


class ScriptNotifier:
    """Hands the event to an external notification script."""

    def __init__(self, script: Path, project: str, timeout_seconds: int = 30) -> None:
        self.script = script
        self.project = project
        self.timeout_seconds = timeout_seconds

    def build_args(self, event: RunEvent) -> List[str]:
        args = [
            sys.executable,
            str(self.script),
            "--project",
            self.project,
            "--event-type",
            event.event_type,
            "--severity",
            event.severity,
            "--title",
            event.title,
            "--body",
            event.body,
        ]
        for key, value in event.metadata.items():
            if value is None:
                continue
            args.extend(["--metadata", f"{key}={value}"])
        return args

    def notify(self, event: RunEvent) -> bool:
        try:
            completed = subprocess.run(
                self.build_args(event),
                capture_output=True,
                text=True,
                timeout=self.timeout_seconds,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            logger.warning("[notify-warning] %s", exc)
            return False
        if completed.returncode != 0:
            logger.warning("[notify-warning] %s", (completed.stderr or "").strip() or completed.returncode)
            return False
        return True


class EmailNotifier:
    def __init__(self, cfg: PipelineConfig) -> None:
        self.cfg = cfg

    def notify(self, event: RunEvent) -> bool:
        cfg = self.cfg
        lines = [event.body, ""]
        lines.extend(f"{key}: {value}" for key, value in event.metadata.items())
        msg = MIMEText("\n".join(lines), "plain")
        msg["Subject"] = f"[{cfg.notify_project}] {event.title}"
        msg["From"] = cfg.from_email
        msg["To"] = cfg.to_email
        try:
            with smtplib.SMTP(cfg.smtp_host, cfg.smtp_port, timeout=30) as server:
                server.starttls()
                server.login(cfg.smtp_user, cfg.smtp_pass)
                server.send_message(msg)
        except (OSError, smtplib.SMTPException) as exc:
            logger.warning("[notify-warning] Email send failed: %s", exc)
            return False
        return True


def email_configured(cfg: PipelineConfig) -> bool:
    return all([cfg.smtp_host, cfg.smtp_port, cfg.smtp_user, cfg.smtp_pass, cfg.from_email, cfg.to_email])


def build_notifier(cfg: PipelineConfig) -> Notifier:
    if cfg.notify_script and Path(cfg.notify_script).exists():
        return ScriptNotifier(Path(cfg.notify_script), cfg.notify_project)
    if email_configured(cfg):
        return EmailNotifier(cfg)
    return LogNotifier()


def safe_notify(notifier: Notifier, event: RunEvent) -> bool:
    """Send without ever letting a notifier failure escape."""
    try:
        return notifier.notify(event)
    except Exception as exc:  # noqa: BLE001
        logger.warning("[notify-warning] %s", exc)
        return False

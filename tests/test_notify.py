import logging
import sys

from job_tracker import notify
from job_tracker.notify import (
    EmailNotifier,
    LogNotifier,
    RunEvent,
    ScriptNotifier,
    build_notifier,
    safe_notify,
)


class ExplodingNotifier:
    def notify(self, event):
        raise RuntimeError("webhook down")


def test_safe_notify_never_raises():
    assert safe_notify(ExplodingNotifier(), RunEvent(title="t", body="b")) is False


def test_log_notifier_logs_skip(caplog):
    with caplog.at_level(logging.INFO, logger="job_tracker.notify"):
        assert LogNotifier().notify(RunEvent(title="Job pipeline started", body="Run x")) is False
    assert "[notify-skip] Job pipeline started :: Run x" in caplog.text


def test_script_notifier_args(tmp_path):
    script = tmp_path / "notify.py"
    event = RunEvent(
        title="Job pipeline failed",
        body="boom",
        severity="error",
        event_type="pipeline_failed",
        metadata={"run_id": "r1", "step": None},
    )
    args = ScriptNotifier(script, "job-tracker").build_args(event)
    assert args[:2] == [sys.executable, str(script)]
    assert args[2:] == [
        "--project",
        "job-tracker",
        "--event-type",
        "pipeline_failed",
        "--severity",
        "error",
        "--title",
        "Job pipeline failed",
        "--body",
        "boom",
        "--metadata",
        "run_id=r1",
    ]


def test_script_notifier_failure_is_reported(monkeypatch, tmp_path):
    def fake_run(args, **kwargs):
        raise OSError("exec format error")

    monkeypatch.setattr(notify.subprocess, "run", fake_run)
    assert ScriptNotifier(tmp_path / "notify.py", "job-tracker").notify(RunEvent(title="t", body="b")) is False


def test_build_notifier_picks_available_channel(cfg, tmp_path):
    assert isinstance(build_notifier(cfg), LogNotifier)

    cfg.smtp_host = "smtp.example.com"
    cfg.smtp_user = "user"
    cfg.smtp_pass = "pass"
    cfg.from_email = "bot@example.com"
    cfg.to_email = "me@example.com"
    assert isinstance(build_notifier(cfg), EmailNotifier)

    script = tmp_path / "notify.py"
    script.write_text("", encoding="utf-8")
    cfg.notify_script = str(script)
    assert isinstance(build_notifier(cfg), ScriptNotifier)

from dataclasses import replace

from qsr import alerts
from qsr.models import CommandResult, Outcome, PassResult
from qsr.reconciler import Reconciler
from qsr.watcher import Trigger


class FakeSMTP:
    sent = []

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        pass

    def login(self, user, password):
        pass

    def sendmail(self, from_addr, to_addrs, msg):
        FakeSMTP.sent.append((from_addr, to_addrs, msg))

    def quit(self):
        pass


def _mail_settings(settings):
    return replace(
        settings,
        enable_email=True,
        smtp_user="bot",
        smtp_password="pw",
        email_from="bot@example.com",
        email_to="ops@example.com",
    )


def test_disabled_by_default(settings):
    assert alerts.send_email(settings, "s", "b") is False


def test_incomplete_smtp_config_is_skipped(settings):
    assert alerts.send_email(replace(settings, enable_email=True), "s", "b") is False


def test_sends_when_configured(settings, monkeypatch):
    FakeSMTP.sent = []
    monkeypatch.setattr(alerts.smtplib, "SMTP", FakeSMTP)

    assert alerts.send_email(_mail_settings(settings), "subject", "body") is True
    assert FakeSMTP.sent[0][1] == ["ops@example.com"]


def test_email_on_failure_and_recovery_only(settings, supervisor, store, write_unit, source, monkeypatch):
    sent = []
    monkeypatch.setattr(alerts, "send_email", lambda s, subject, body: sent.append(subject))
    mail = _mail_settings(settings)
    write_unit("web")
    supervisor.reload_result = CommandResult(Outcome.FAILED, "denied")

    rec = Reconciler(mail, supervisor, store, Trigger(source, 300, 0, sleep=lambda s: None))
    rec.run_forever(max_cycles=1)
    assert sent == []  # failed -> failed

    supervisor.reload_result = CommandResult(Outcome.OK)
    rec.run_forever(max_cycles=2)
    assert len(sent) == 1
    assert sent[0].startswith("RECOVERED")


def test_failed_pass_alert_lists_unit_failures(settings):
    result = PassResult(trigger="event", reload=CommandResult(Outcome.OK))
    result.failures["web"] = "Permission denied"
    result.start_failures["db"] = "exit 1"

    subject, body = alerts.format_pass_alert(settings, result)

    assert subject == f"FAILED: reconciliation on {settings.source_root}"
    assert "Trigger: event" in body
    assert "Status: FAILED" in body
    assert "  link web: Permission denied" in body
    assert "  start db: exit 1" in body


def test_recovered_pass_alert(settings):
    subject, body = alerts.format_pass_alert(settings, PassResult(trigger="timeout"))

    assert subject.startswith("RECOVERED")
    assert "Detail: No changes detected" in body


def test_notify_pass_sends_formatted_alert(settings, monkeypatch):
    FakeSMTP.sent = []
    monkeypatch.setattr(alerts.smtplib, "SMTP", FakeSMTP)
    result = PassResult(trigger="manual", error="RuntimeError: boom")

    assert alerts.notify_pass(_mail_settings(settings), result) is True
    assert "RuntimeError: boom" in FakeSMTP.sent[0][2]

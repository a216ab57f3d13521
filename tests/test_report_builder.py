import pytest

from models.run import MaintenanceStep, RunReport, StepOutcome
from services.maintenance_runner import UPGRADE_PACKAGES
from services.report_builder import ReportBuilder, tail_excerpt


def _step(name, ok=True, log=""):
    return MaintenanceStep(name=name, outcome=StepOutcome.SUCCEEDED if ok else StepOutcome.FAILED, log_excerpt=log)


def test_counts_successes_and_failures(clock):
    steps = [_step("a"), _step("b", ok=False), _step("c")]

    report = ReportBuilder(clock=clock, hostname="mac").build(steps)

    assert report.success_count == 2
    assert report.failure_count == 1
    assert report.success_count + report.failure_count == len(report.steps)
    assert report.skipped_reason is None
    assert report.hostname == "mac"


def test_log_excerpt_is_bounded_tail(clock):
    log = "\n".join(f"line {i}" for i in range(100))

    report = ReportBuilder(excerpt_lines=5, clock=clock, hostname="mac").build([_step("a", log=log)])

    assert report.steps[0].log_excerpt.splitlines() == [f"line {i}" for i in range(95, 100)]


def test_tail_excerpt_caps_characters():
    assert tail_excerpt("x" * 50, max_lines=10, max_chars=8) == "x" * 8


def test_skipped_report_has_no_steps(clock):
    report = ReportBuilder(clock=clock, hostname="mac").build([], skipped_reason="network")

    assert report.skipped
    assert report.steps == ()
    assert report.success_count == report.failure_count == 0


def test_skip_reason_with_steps_is_rejected(clock):
    with pytest.raises(ValueError):
        ReportBuilder(clock=clock, hostname="mac").build([_step("a")], skipped_reason="power")


def test_started_and_finished_stamps(clock):
    started = clock()

    report = ReportBuilder(clock=clock, hostname="mac").build([_step("a")], started_at=started)

    assert report.started_at == started
    assert report.finished_at > started


def test_upgrade_count_taken_from_full_log(clock):
    log = "==> Upgrading git\n" + "\n".join(f"noise {i}" for i in range(50)) + "\n==> Upgrading wget"

    report = ReportBuilder(excerpt_lines=2, clock=clock, hostname="mac").build([_step(UPGRADE_PACKAGES, log=log)])

    assert report.steps[0].upgraded_count == 2


def test_report_is_immutable(clock):
    report = ReportBuilder(clock=clock, hostname="mac").build([_step("a")])

    with pytest.raises(Exception):
        report.success_count = 5


def test_report_model_rejects_inconsistent_counts(clock):
    now = clock()
    with pytest.raises(ValueError):
        RunReport(started_at=now, finished_at=now, steps=(_step("a"),), success_count=0, failure_count=0)

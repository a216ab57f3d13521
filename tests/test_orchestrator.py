from conftest import AC, BATTERY_80, FakeChannel, FakeNetworkProbe, FakePackageManager, FakePowerProbe
from config import build_config
from models.run import RunState, StepDefinition
from services.maintenance_runner import PRUNE_CACHE, REFRESH_INDEX, UPGRADE_APPLICATIONS, UPGRADE_PACKAGES
from services.orchestrator import Orchestrator
from services.precondition_checker import PreconditionChecker
from services.run_logger import RunLogger

HOME_CONFIG = {
    'conditions': {'required_network': 'HomeWiFi', 'require_ac_power': True},
    'retry': {'max_attempts': 3, 'delay_seconds': 300},
}


class _CountingStep:
    def __init__(self, ok=True):
        self.ok = ok
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return self.ok, "output"


def _steps(refresh_ok=True):
    invokers = {
        REFRESH_INDEX: _CountingStep(refresh_ok),
        UPGRADE_PACKAGES: _CountingStep(),
        UPGRADE_APPLICATIONS: _CountingStep(),
        PRUNE_CACHE: _CountingStep(),
    }
    return invokers, [StepDefinition(name, invoke) for name, invoke in invokers.items()]


def _orchestrator(network, power, channels, steps, sleep, clock, package_manager=None, run_logger=None,
                  raw_config=None):
    return Orchestrator(
        config=build_config(raw_config or HOME_CONFIG),
        package_manager=package_manager or FakePackageManager(),
        precondition_checker=PreconditionChecker(network, power, sleep=sleep, clock=clock),
        channels=channels,
        steps=steps,
        run_logger=run_logger,
        clock=clock
    )


def test_network_mismatch_skips_and_notifies_every_enabled_channel(recording_sleep, clock):
    invokers, steps = _steps()
    text, email = FakeChannel("text"), FakeChannel("email")

    outcome = _orchestrator(
        FakeNetworkProbe("Airport"), FakePowerProbe(AC), [text, email], steps, recording_sleep, clock
    ).run()

    assert outcome.report.skipped_reason == "network"
    assert outcome.report.steps == ()
    assert all(i.calls == 0 for i in invokers.values())
    assert len(text.received) == 1 and len(email.received) == 1
    assert recording_sleep.delays == [300, 300]
    assert outcome.states == [
        RunState.IDLE, RunState.CHECKING_PRECONDITIONS, RunState.SKIPPED, RunState.DISPATCHING, RunState.DONE
    ]


def test_battery_power_skip_reason(recording_sleep, clock):
    _, steps = _steps()

    outcome = _orchestrator(
        FakeNetworkProbe("HomeWiFi"), FakePowerProbe(BATTERY_80), [FakeChannel("text")], steps,
        recording_sleep, clock
    ).run()

    assert outcome.report.skipped_reason == "power"


def test_refresh_failure_still_runs_remaining_steps(recording_sleep, clock):
    _, steps = _steps(refresh_ok=False)

    outcome = _orchestrator(
        FakeNetworkProbe("HomeWiFi"), FakePowerProbe(AC), [FakeChannel("text")], steps, recording_sleep, clock
    ).run()

    report = outcome.report
    assert report.success_count == 3
    assert report.failure_count == 1
    assert [s.name for s in report.steps] == [REFRESH_INDEX, UPGRADE_PACKAGES, UPGRADE_APPLICATIONS, PRUNE_CACHE]
    assert outcome.states == [
        RunState.IDLE, RunState.CHECKING_PRECONDITIONS, RunState.RUNNING,
        RunState.REPORTING, RunState.DISPATCHING, RunState.DONE
    ]
    assert recording_sleep.delays == []


def test_one_transport_error_yields_one_failed_result(recording_sleep, clock):
    _, steps = _steps()

    outcome = _orchestrator(
        FakeNetworkProbe("HomeWiFi"), FakePowerProbe(AC),
        [FakeChannel("text"), FakeChannel("email", raises=OSError("connection reset"))],
        steps, recording_sleep, clock
    ).run()

    assert len(outcome.deliveries) == 2
    assert [d.ok for d in outcome.deliveries] == [True, False]
    assert "connection reset" in outcome.deliveries[1].error
    assert outcome.delivered


def test_disabled_channel_reported_as_skipped(recording_sleep, clock):
    _, steps = _steps()
    disabled = FakeChannel("telegram", enabled=False)

    outcome = _orchestrator(
        FakeNetworkProbe("HomeWiFi"), FakePowerProbe(AC), [FakeChannel("text"), disabled], steps,
        recording_sleep, clock
    ).run()

    assert outcome.deliveries[1].ok is True
    assert outcome.deliveries[1].skipped is True
    assert disabled.received == []


def test_missing_package_manager_stops_before_any_step(recording_sleep, clock):
    invokers, steps = _steps()
    network = FakeNetworkProbe("HomeWiFi")
    channel = FakeChannel("text")

    outcome = _orchestrator(
        network, FakePowerProbe(AC), [channel], steps, recording_sleep, clock,
        package_manager=FakePackageManager(available=False)
    ).run()

    assert outcome.report.skipped_reason == "package-manager-missing"
    assert all(i.calls == 0 for i in invokers.values())
    assert network.calls == 0
    assert len(channel.received) == 1


def test_no_conditions_runs_immediately(recording_sleep, clock):
    _, steps = _steps()

    outcome = _orchestrator(
        FakeNetworkProbe(None), FakePowerProbe(), [FakeChannel("text")], steps, recording_sleep, clock,
        raw_config={'conditions': {'require_ac_power': False}}
    ).run()

    assert not outcome.report.skipped
    assert outcome.report.success_count == 4


def test_run_is_recorded_by_run_logger(recording_sleep, clock, tmp_path):
    _, steps = _steps(refresh_ok=False)
    run_logger = RunLogger(tmp_path)

    _orchestrator(
        FakeNetworkProbe("HomeWiFi"), FakePowerProbe(AC), [FakeChannel("text")], steps, recording_sleep, clock,
        run_logger=run_logger
    ).run()

    last_run = run_logger.get_last_run()
    assert last_run['status'] == 'partial_failure'
    assert last_run['steps'][REFRESH_INDEX] == 'failed'
    assert last_run['deliveries'] == {'text': 'ok'}
    assert "refresh-index: failed" in (tmp_path / "runs.log").read_text()


def test_second_run_reports_only_its_own_states(recording_sleep, clock):
    _, steps = _steps()
    orchestrator = _orchestrator(
        FakeNetworkProbe("HomeWiFi"), FakePowerProbe(AC), [FakeChannel("text")], steps, recording_sleep, clock
    )

    first = orchestrator.run()
    second = orchestrator.run()

    expected = [
        RunState.IDLE, RunState.CHECKING_PRECONDITIONS, RunState.RUNNING,
        RunState.REPORTING, RunState.DISPATCHING, RunState.DONE,
    ]
    assert first.states == expected
    assert second.states == expected

from models.run import PowerSource
from services.command_execution_service import ExecutionResult
from services.network_probe import NetworkProbe
from services.package_manager import PackageManager
from services.power_probe import PowerProbe

PMSET_AC = """Now drawing from 'AC Power'
 -InternalBattery-0 (id=4653155)	100%; charged; 0:00 remaining present: true
"""

PMSET_BATTERY = """Now drawing from 'Battery Power'
 -InternalBattery-0 (id=4653155)	63%; discharging; 4:12 remaining present: true
"""


class _StubExecutor:
    def __init__(self, result, exists=True):
        self.result = result
        self.exists = exists
        self.commands = []

    def execute(self, command, timeout=None, env_vars=None, input_text=None):
        self.commands.append((command, env_vars))
        return self.result

    def command_exists(self, binary):
        return self.exists


def test_networksetup_output_parsing():
    assert NetworkProbe.parse_networksetup_output("Current Wi-Fi Network: HomeWiFi\n") == "HomeWiFi"
    assert NetworkProbe.parse_networksetup_output("You are not associated with an AirPort network.\n") is None
    assert NetworkProbe.parse_networksetup_output("") is None


def test_network_probe_failure_is_unknown():
    executor = _StubExecutor(ExecutionResult(success=False, returncode=1, output="boom"))

    assert NetworkProbe(executor=executor, system="Darwin").current_network_id() is None


def test_network_probe_on_linux_uses_iwgetid():
    executor = _StubExecutor(ExecutionResult(success=True, returncode=0, output="HomeWiFi\n"))

    assert NetworkProbe("wlan0", executor=executor, system="Linux").current_network_id() == "HomeWiFi"
    assert executor.commands[0][0] == ["iwgetid", "-r", "wlan0"]


def test_pmset_parsing():
    ac = PowerProbe.parse_pmset_output(PMSET_AC)
    battery = PowerProbe.parse_pmset_output(PMSET_BATTERY)

    assert ac.source == PowerSource.AC and ac.percent == 100
    assert battery.source == PowerSource.BATTERY and battery.percent == 63
    assert PowerProbe.parse_pmset_output("").source == PowerSource.UNKNOWN


def test_sysfs_power_reading(tmp_path):
    (tmp_path / "AC").mkdir()
    (tmp_path / "AC" / "type").write_text("Mains\n")
    (tmp_path / "AC" / "online").write_text("0\n")
    (tmp_path / "BAT0").mkdir()
    (tmp_path / "BAT0" / "type").write_text("Battery\n")
    (tmp_path / "BAT0" / "capacity").write_text("42\n")

    status = PowerProbe(system="Linux", power_supply_dir=tmp_path).current_power()

    assert status.source == PowerSource.BATTERY
    assert status.percent == 42


def test_sysfs_missing_is_unknown(tmp_path):
    status = PowerProbe(system="Linux", power_supply_dir=tmp_path / "absent").current_power()

    assert status.source == PowerSource.UNKNOWN


def test_package_manager_invoke_reports_failure_text():
    executor = _StubExecutor(ExecutionResult(
        success=False, returncode=-1, output="", error_message="Command timed out after 5 seconds", timed_out=True
    ))

    result = PackageManager("brew", timeout_seconds=5, executor=executor).invoke(["update"])

    assert result.ok is False
    assert "timed out" in result.output
    command, env_vars = executor.commands[0]
    assert command == ["brew", "update"]
    assert env_vars["HOMEBREW_NO_AUTO_UPDATE"] == "1"


def test_package_manager_availability():
    missing = PackageManager("brew", executor=_StubExecutor(None, exists=False))

    assert missing.is_available() is False

from datetime import datetime, timedelta
from typing import List, Optional

import pytest

from models.run import DeliveryResult, PowerSource, PowerStatus


class FakeNetworkProbe:
    """Returns the queued network ids in order, repeating the last one"""

    def __init__(self, *network_ids: Optional[str]):
        self.network_ids = list(network_ids) or [None]
        self.calls = 0

    def current_network_id(self):
        value = self.network_ids[min(self.calls, len(self.network_ids) - 1)]
        self.calls += 1
        return value


class FakePowerProbe:
    def __init__(self, *statuses: PowerStatus):
        self.statuses = list(statuses) or [PowerStatus()]
        self.calls = 0

    def current_power(self):
        value = self.statuses[min(self.calls, len(self.statuses) - 1)]
        self.calls += 1
        return value


class FakePackageManager:
    binary = "brew"

    def __init__(self, available: bool = True):
        self.available = available

    def is_available(self):
        return self.available


class FakeChannel:
    """Channel double recording every report it receives"""

    def __init__(self, channel_id: str, ok: bool = True, enabled: bool = True, raises: Optional[Exception] = None):
        self.id = channel_id
        self.ok = ok
        self.enabled = enabled
        self.raises = raises
        self.received: List = []

    def deliver(self, report):
        self.received.append(report)
        if self.raises is not None:
            raise self.raises
        return DeliveryResult(channel_id=self.id, ok=self.ok, error=None if self.ok else "transport down")


class RecordingSleep:
    def __init__(self):
        self.delays = []

    def __call__(self, seconds):
        self.delays.append(seconds)


class SteppingClock:
    """Each call returns a time one second after the previous one"""

    def __init__(self, start: datetime = datetime(2026, 1, 5, 3, 0, 0)):
        self.current = start

    def __call__(self):
        value = self.current
        self.current = self.current + timedelta(seconds=1)
        return value


AC = PowerStatus(source=PowerSource.AC, percent=100)
BATTERY_80 = PowerStatus(source=PowerSource.BATTERY, percent=80)
BATTERY_20 = PowerStatus(source=PowerSource.BATTERY, percent=20)
POWER_UNKNOWN = PowerStatus()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def clock():
    return SteppingClock()

"""
Precondition checker
Polls network identity and power source together, with a bounded number of attempts and a fixed delay
"""
import time
import logging
from datetime import datetime
from typing import Callable, List, Optional, Sequence

from models.run import (
    PowerSource, PowerStatus, Precondition, PreconditionKind, PreconditionResult,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_DELAY_SECONDS = 300


class PreconditionChecker:
    """Evaluates whether the environment permits a maintenance run

    Both gates are re-sampled on every attempt and must hold on the same poll.
    Sleeping happens only between attempts. Running out of attempts is a
    normal result (satisfied=False), never an exception.
    """

    def __init__(self, network_probe, power_probe,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], datetime] = datetime.now):
        self.network_probe = network_probe
        self.power_probe = power_probe
        self.sleep = sleep
        self.clock = clock

    def evaluate(self, required_network: str = "", require_power: bool = False,
                 max_attempts: int = DEFAULT_MAX_ATTEMPTS, delay: float = DEFAULT_DELAY_SECONDS,
                 allowed_networks: Sequence[str] = (),
                 min_battery_percent: Optional[int] = None) -> PreconditionResult:
        """Poll up to max_attempts times until both gates hold"""
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        attempt = 0
        preconditions: List[Precondition] = []
        network_id: Optional[str] = None
        power = PowerStatus()

        while attempt < max_attempts:
            attempt += 1
            network_id = self.network_probe.current_network_id()
            power = self.power_probe.current_power()

            preconditions = [
                self._network_precondition(network_id, required_network, allowed_networks),
                self._power_precondition(power, require_power, min_battery_percent),
            ]

            if all(p.satisfied for p in preconditions):
                logger.info(f"All conditions met on attempt {attempt}/{max_attempts}")
                return PreconditionResult(
                    satisfied=True,
                    last_known_network=network_id,
                    last_known_power=power.source,
                    attempts=attempt,
                    preconditions=tuple(preconditions)
                )

            for precondition in preconditions:
                if not precondition.satisfied:
                    logger.warning(
                        f"Condition not met ({precondition.kind.value}): expected {precondition.expected}, "
                        f"observed {precondition.observed or 'unknown'} (attempt {attempt}/{max_attempts})"
                    )

            if attempt < max_attempts:
                logger.info(f"Retrying in {delay:g} seconds... (attempt {attempt}/{max_attempts})")
                self.sleep(delay)

        logger.warning(f"Conditions still not met after {max_attempts} attempts")
        return PreconditionResult(
            satisfied=False,
            last_known_network=network_id,
            last_known_power=power.source,
            attempts=attempt,
            preconditions=tuple(preconditions)
        )

    def _network_precondition(self, network_id: Optional[str], required_network: str,
                              allowed_networks: Sequence[str]) -> Precondition:
        acceptable = [name for name in [required_network, *allowed_networks] if name]

        if not acceptable:
            satisfied = True
            expected = "any"
        else:
            # An undeterminable network never counts as "any network"
            satisfied = network_id is not None and network_id in acceptable
            expected = " | ".join(acceptable)

        return Precondition(
            kind=PreconditionKind.NETWORK_IDENTITY,
            expected=expected,
            observed=network_id or "",
            satisfied=satisfied,
            checked_at=self.clock()
        )

    def _power_precondition(self, power: PowerStatus, require_power: bool,
                            min_battery_percent: Optional[int]) -> Precondition:
        if require_power:
            satisfied = power.source == PowerSource.AC
            expected = PowerSource.AC.value
        elif min_battery_percent is not None:
            if power.source == PowerSource.AC:
                satisfied = True
            elif power.source == PowerSource.BATTERY:
                satisfied = power.percent is not None and power.percent >= min_battery_percent
            else:
                satisfied = False
            expected = f"ac or battery >= {min_battery_percent}%"
        else:
            satisfied = True
            expected = "any"

        observed = power.source.value
        if power.percent is not None:
            observed = f"{observed} ({power.percent}%)"

        return Precondition(
            kind=PreconditionKind.POWER_SOURCE,
            expected=expected,
            observed=observed,
            satisfied=satisfied,
            checked_at=self.clock()
        )

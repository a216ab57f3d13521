"""
Notification dispatcher
Sends one report through every channel independently and collects a DeliveryResult per channel
"""
import logging
from typing import List, Sequence

from models.run import DeliveryResult, RunReport

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """A failing or raising channel never stops delivery to the others"""

    def dispatch(self, report: RunReport, channels: Sequence) -> List[DeliveryResult]:
        results = []

        for channel in channels:
            if not channel.enabled:
                logger.info(f"Channel '{channel.id}' disabled - skipped")
                results.append(DeliveryResult(channel_id=channel.id, ok=True, skipped=True))
                continue

            try:
                result = channel.deliver(report)
            except Exception as e:
                logger.error(f"Channel '{channel.id}' raised during delivery: {e}")
                result = DeliveryResult(channel_id=channel.id, ok=False, error=f"{type(e).__name__}: {e}")

            if result.ok:
                logger.info(f"Notification sent via '{channel.id}'")
            else:
                logger.warning(f"Notification via '{channel.id}' failed: {result.error}")
            results.append(result)

        self.log_results(results)
        return results

    def log_results(self, results: List[DeliveryResult]):
        """Log an overall line for the delivery attempts"""
        attempted = [r for r in results if not r.skipped]
        if not attempted:
            logger.warning("No enabled notification channels - report was not delivered")
            return

        successful = [r for r in attempted if r.ok]
        if successful:
            channels = ", ".join(r.channel_id for r in successful)
            logger.info(f"Report sent via {len(successful)}/{len(attempted)} channels: {channels}")
        else:
            channels = ", ".join(r.channel_id for r in attempted)
            logger.warning(f"Report delivery failed via all {len(attempted)} channels: {channels}")
            for result in attempted:
                if result.error:
                    logger.warning(f"  - {result.channel_id}: {result.error}")

    @staticmethod
    def any_delivered(results: List[DeliveryResult]) -> bool:
        return any(r.ok and not r.skipped for r in results)

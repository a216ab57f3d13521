"""
Notification channels
Transports for telegram, email and iMessage plus the channel wrapper that turns a RunReport into a delivery
"""
import logging
import threading
from typing import Any, Dict, List, Optional, Tuple

from notifiers import get_notifier

from config import AgentConfig, ChannelConfig
from models.run import DeliveryResult, RunReport
from services.command_execution_service import CommandExecutionService, ExecutionConfig
from services.notification_message_formatter import NotificationMessageFormatter

logger = logging.getLogger(__name__)

SendResult = Tuple[bool, Optional[str]]

TRUE_STRINGS = ("1", "true", "yes", "on")


def _as_bool(value: Any, default: bool) -> bool:
    """Settings booleans may arrive as strings from secrets.env or quoted YAML"""
    if value is None or value == "":
        return default
    if isinstance(value, str):
        return value.strip().lower() in TRUE_STRINGS
    return bool(value)


# =============================================================================
# TRANSPORTS
# =============================================================================

class NotificationTransport:
    """Delivery mechanism for one provider: send(subject, body) -> (ok, error)"""

    provider_name = "generic"

    def send(self, subject: str, body: str, html: bool = False) -> SendResult:
        raise NotImplementedError


class NotifiersTransport(NotificationTransport):
    """Sends through the notifiers library, bounded by a timeout"""

    def __init__(self, provider_name: str, settings: Dict[str, Any], timeout_seconds: float = 30):
        self.provider_name = provider_name
        self.settings = settings
        self.timeout_seconds = timeout_seconds

    def build_arguments(self, subject: str, body: str, html: bool = False) -> Dict[str, Any]:
        """Provider-specific notify() arguments"""
        if self.provider_name == "telegram":
            return {
                "token": self.settings["token"],
                "chat_id": self.settings["chat_id"],
                "message": f"{subject}\n\n{body}",
                "disable_web_page_preview": True
            }

        if self.provider_name == "email":
            arguments = {
                "to": self.settings["to_email"],
                "from": self.settings["from_email"],
                "subject": subject,
                "message": body,
                "host": self.settings["smtp_server"],
                "port": int(self.settings.get("smtp_port", 587)),
                "tls": _as_bool(self.settings.get("use_tls"), True),
                "ssl": _as_bool(self.settings.get("use_ssl"), False),
                "html": html
            }
            if self.settings.get("username"):
                arguments["username"] = self.settings["username"]
                arguments["password"] = self.settings.get("password", "")
            else:
                arguments["login"] = False
            return arguments

        raise ValueError(f"Unknown notification provider: {self.provider_name}")

    def send(self, subject: str, body: str, html: bool = False) -> SendResult:
        try:
            arguments = self.build_arguments(subject, body, html)
        except (KeyError, ValueError) as e:
            return False, f"Invalid {self.provider_name} settings: {e}"

        notifier = get_notifier(self.provider_name)
        outcome: Dict[str, Any] = {}

        def _notify():
            try:
                outcome['result'] = notifier.notify(**arguments)
            except Exception as e:
                outcome['error'] = e

        # Daemon thread, never waited on past the channel timeout
        worker = threading.Thread(target=_notify, name=f"notify-{self.provider_name}", daemon=True)
        worker.start()
        worker.join(self.timeout_seconds)

        if worker.is_alive():
            return False, f"{self.provider_name} delivery timed out after {self.timeout_seconds} seconds"
        if 'error' in outcome:
            return False, f"Failed to send {self.provider_name} notification: {outcome['error']}"

        result = outcome.get('result')
        if result is not None and hasattr(result, 'status'):
            if str(result.status).lower() == 'success':
                return True, None
            errors = getattr(result, 'errors', None) or ['Unknown error']
            return False, f"Notification failed: {', '.join(str(e) for e in errors)}"

        return True, None


class IMessageTransport(NotificationTransport):
    """Sends a text through Messages.app with osascript"""

    provider_name = "imessage"

    def __init__(self, phone_number: str, timeout_seconds: int = 30,
                 executor: Optional[CommandExecutionService] = None):
        self.phone_number = phone_number
        self.timeout_seconds = timeout_seconds
        self.executor = executor or CommandExecutionService(ExecutionConfig(timeout=timeout_seconds))

    @staticmethod
    def _quote(text: str) -> str:
        return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'

    def build_script(self, body: str) -> str:
        return (
            'tell application "Messages"\n'
            f'    send {self._quote(body)} to buddy {self._quote(self.phone_number)} '
            'of (service 1 whose service type is iMessage)\n'
            'end tell\n'
        )

    def send(self, subject: str, body: str, html: bool = False) -> SendResult:
        if not self.executor.command_exists("osascript"):
            return False, "AppleScript (osascript) not available for text messaging"

        result = self.executor.execute(
            ["osascript", "-"], timeout=self.timeout_seconds, input_text=self.build_script(body)
        )
        if result.success:
            return True, None
        detail = result.output.strip() or result.error_message
        return False, f"Failed to send text message: {detail}"


# =============================================================================
# CHANNEL
# =============================================================================

class NotificationChannel:
    """A configured delivery target; stateless across runs"""

    def __init__(self, channel_id: str, transport: NotificationTransport, kind: str = "summary",
                 enabled: bool = True, formatter: Optional[NotificationMessageFormatter] = None):
        self.id = channel_id
        self.transport = transport
        self.kind = kind
        self.enabled = enabled
        self.formatter = formatter or NotificationMessageFormatter()

    def deliver(self, report: RunReport) -> DeliveryResult:
        content = self.formatter.format_message_for_provider(self.transport.provider_name, self.kind, report)
        ok, error = self.transport.send(content["subject"], content["message"], content.get("html", False))
        return DeliveryResult(channel_id=self.id, ok=ok, error=error)

    def send_test(self, message: str) -> DeliveryResult:
        """Send a free-form test message, bypassing report formatting"""
        ok, error = self.transport.send("Brewkeeper Test Notification", message)
        return DeliveryResult(channel_id=self.id, ok=ok, error=error)

    def __repr__(self):
        return f"NotificationChannel(id={self.id!r}, provider={self.transport.provider_name!r}, kind={self.kind!r})"


# =============================================================================
# CHANNEL FACTORY
# =============================================================================

class NotificationChannelFactory:
    """Creates channels from configuration"""

    @staticmethod
    def create_transport(channel_config: ChannelConfig) -> NotificationTransport:
        if channel_config.provider == "imessage":
            return IMessageTransport(
                phone_number=str(channel_config.settings.get("phone_number", "")),
                timeout_seconds=channel_config.timeout_seconds
            )
        return NotifiersTransport(
            channel_config.provider, dict(channel_config.settings), channel_config.timeout_seconds
        )

    @staticmethod
    def create_channel(channel_config: ChannelConfig,
                       formatter: Optional[NotificationMessageFormatter] = None) -> NotificationChannel:
        return NotificationChannel(
            channel_id=channel_config.id,
            transport=NotificationChannelFactory.create_transport(channel_config),
            kind=channel_config.kind,
            enabled=channel_config.enabled,
            formatter=formatter
        )

    @staticmethod
    def create_all_channels(config: AgentConfig) -> List[NotificationChannel]:
        """Every configured channel, disabled ones included so they are reported as skipped"""
        formatter = NotificationMessageFormatter()
        return [NotificationChannelFactory.create_channel(c, formatter) for c in config.channels]

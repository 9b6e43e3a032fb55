import os
from typing import Dict, Any, Optional
from loguru import logger

VARIANT_EMOJI = {
    "success": ":white_check_mark:",
    "info": ":information_source:",
    "warning": ":warning:",
    "error": ":x:",
}

class SlackNotifier:
    """Slack integration for user-facing account and quote notifications."""

    def __init__(self):
        self.token = os.getenv("SLACK_BOT_TOKEN")
        self.default_channel = os.getenv("SLACK_DEFAULT_CHANNEL", "#revops-alerts")

        if not self.token:
            logger.warning("No Slack token provided, using mock mode")

    def send_notification(self, title: str, message: str, variant: str = "info", channel: Optional[str] = None) -> Optional[str]:
        """
        Send a notification to a Slack channel.

        Args:
            title: Short heading, e.g. "Success"
            message: Notification body
            variant: One of success, info, warning, error
            channel: Slack channel (optional, uses default if not specified)

        Returns:
            Slack message timestamp or None if failed
        """
        if not self.token:
            logger.info(f"Mock mode: would send Slack notification [{variant}] {title}: {message}")
            return "mock_timestamp_123"

        try:
            from slack_sdk.web import WebClient

            client = WebClient(token=self.token)
            target_channel = channel or self.default_channel

            payload = self._build_message(title, message, variant)

            response = client.chat_postMessage(
                channel=target_channel,
                text=payload["text"],
                blocks=payload["blocks"]
            )

            message_ts = response["ts"]
            logger.info(f"Slack notification sent to {target_channel}: {message_ts}")

            return message_ts

        except Exception as e:
            logger.error(f"Slack notification failed: {e}")
            return None

    def _build_message(self, title: str, message: str, variant: str) -> Dict[str, Any]:
        """Build Slack message blocks for a notification."""
        emoji = VARIANT_EMOJI.get(variant, VARIANT_EMOJI["info"])
        text = f"{emoji} {title}: {message}"

        blocks = [
            {
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": f"{emoji} *{title}*\n{message}"
                }
            }
        ]

        return {"text": text, "blocks": blocks}

# Global Slack notifier instance
slack_notifier = SlackNotifier()

def send_notification(title: str, message: str, variant: str = "info", channel: Optional[str] = None) -> Optional[str]:
    """Send a notification using the global Slack notifier."""
    return slack_notifier.send_notification(title, message, variant, channel)

"""Webhook notifications for applied votes."""

import logging
from datetime import datetime, timezone
from typing import Any

import requests

from forumrank.core.models import VoteApplied

logger = logging.getLogger(__name__)

UPVOTE_COLOR = 0x00FF00
DOWNVOTE_COLOR = 0xFF4500
RETRACT_COLOR = 0x808080


class NotificationError(RuntimeError):
    """The webhook endpoint could not be reached or rejected the message."""


def build_vote_message(event: VoteApplied) -> dict[str, Any]:
    """Render a vote event as a Discord-style embed message."""
    if event.value > 0:
        title, color = "Upvote", UPVOTE_COLOR
    elif event.value < 0:
        title, color = "Downvote", DOWNVOTE_COLOR
    else:
        title, color = "Vote removed", RETRACT_COLOR

    timestamp = datetime.fromtimestamp(event.created_at, timezone.utc).isoformat()
    return {
        "embeds": [
            {
                "title": f"{title} on {event.target_type.value} {event.target_id}",
                "color": color,
                "fields": [
                    {"name": "Voter", "value": event.voter_id, "inline": True},
                    {"name": "Author", "value": event.author_id or "[removed]", "inline": True},
                    {"name": "Change", "value": f"{event.delta:+d}", "inline": True},
                    {"name": "Score", "value": str(event.score), "inline": True},
                ],
                "timestamp": timestamp,
            }
        ]
    }


class WebhookNotifier:
    """Vote listener that posts each applied vote to a webhook URL."""

    def __init__(self, url: str | None, timeout: float = 10.0):
        self.url = url
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.url) and "YOUR_WEBHOOK" not in (self.url or "")

    def send(self, message: dict[str, Any]) -> bool:
        """
        Post a message to the webhook.

        Returns False without making a request when no URL is configured.
        Raises NotificationError when the request fails.
        """
        if not self.configured:
            logger.info("Webhook not configured, skipping notification")
            return False

        try:
            response = requests.post(self.url, json=message, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise NotificationError(f"Webhook error: {e}") from e
        return True

    def __call__(self, event: VoteApplied) -> None:
        self.send(build_vote_message(event))

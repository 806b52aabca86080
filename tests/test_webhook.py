"""Tests for the vote webhook notifier."""

import logging

import pytest
import requests

from forumrank.api.engine import create_post, vote
from forumrank.core.models import TargetType, VoteApplied
from forumrank.notify import webhook
from forumrank.notify.webhook import NotificationError, WebhookNotifier, build_vote_message

T0 = 1_700_000_000


class FakeResponse:
    def __init__(self, status_code=204):
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} error")


def make_event(value=1, delta=1, score=2):
    return VoteApplied(
        voter_id="bob",
        target_type=TargetType.POST,
        target_id=3,
        author_id="alice",
        previous_value=value - delta,
        value=value,
        delta=delta,
        score=score,
        karma_applied=True,
        created_at=T0,
    )


def test_message_shape():
    message = build_vote_message(make_event(value=-1, delta=-2, score=0))

    embed = message["embeds"][0]
    assert embed["title"] == "Downvote on post 3"
    assert embed["timestamp"].startswith("2023-11-14T22:13:20")
    fields = {f["name"]: f["value"] for f in embed["fields"]}
    assert fields == {"Voter": "bob", "Author": "alice", "Change": "-2", "Score": "0"}


def test_posts_json_to_url(monkeypatch):
    sent = []

    def fake_post(url, json=None, timeout=None):
        sent.append((url, json, timeout))
        return FakeResponse()

    monkeypatch.setattr(webhook.requests, "post", fake_post)

    notifier = WebhookNotifier("https://hooks.example.com/votes", timeout=3.0)
    notifier(make_event())

    assert len(sent) == 1
    url, payload, timeout = sent[0]
    assert url == "https://hooks.example.com/votes"
    assert payload["embeds"][0]["title"] == "Upvote on post 3"
    assert timeout == 3.0


@pytest.mark.parametrize("url", [None, "", "https://discord.com/api/webhooks/YOUR_WEBHOOK"])
def test_unconfigured_url_skips(monkeypatch, caplog, url):
    def fail_post(*args, **kwargs):
        raise AssertionError("should not send")

    monkeypatch.setattr(webhook.requests, "post", fail_post)

    with caplog.at_level(logging.INFO, logger="forumrank.notify.webhook"):
        assert WebhookNotifier(url).send({"content": "x"}) is False
    assert "not configured" in caplog.text


def test_http_error_raises_notification_error(monkeypatch):
    monkeypatch.setattr(webhook.requests, "post", lambda *a, **k: FakeResponse(500))

    with pytest.raises(NotificationError):
        WebhookNotifier("https://hooks.example.com/votes").send({"content": "x"})


def test_failed_delivery_does_not_block_vote(forum, monkeypatch):
    def unreachable(*args, **kwargs):
        raise requests.exceptions.ConnectionError("connection refused")

    monkeypatch.setattr(webhook.requests, "post", unreachable)
    post = create_post(forum, "alice", "general", "Notify me", content="x", now=T0)

    result = vote(
        forum, "bob", "post", post.id, 1,
        listeners=[WebhookNotifier("https://hooks.example.com/votes")],
    )

    assert result.score == 2

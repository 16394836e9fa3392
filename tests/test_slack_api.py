"""Tests for the Slack Web API client."""

from datetime import datetime, timezone
from urllib.parse import parse_qs

import httpx
import pytest

from yellcop.services.slack_api import SlackAPIError, SlackClient, SlackUnavailable


class SlackStub:
    """Records requests and replays canned responses per method."""

    def __init__(self, responses):
        self.responses = {method: list(pages) for method, pages in responses.items()}
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        method = request.url.path.rsplit("/", 1)[-1]
        form = {key: values[0] for key, values in parse_qs(request.content.decode()).items()}
        self.requests.append((method, form, request.headers.get("authorization")))
        response = self.responses[method].pop(0)
        if isinstance(response, httpx.Response):
            return response
        if isinstance(response, Exception):
            raise response
        return httpx.Response(200, json=response)


def _client(stub, **kwargs):
    return SlackClient(
        bot_token="xoxb-bot",
        user_token=kwargs.pop("user_token", "xoxp-user"),
        transport=httpx.MockTransport(stub),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_post_message_uses_bot_token():
    stub = SlackStub({"chat.postMessage": [{"ok": True, "ts": "1.0"}]})
    client = _client(stub)
    await client.post_message("C1", "HELLO")
    method, form, auth = stub.requests[0]
    assert method == "chat.postMessage"
    assert form == {"channel": "C1", "text": "HELLO"}
    assert auth == "Bearer xoxb-bot"
    await client.close()


@pytest.mark.asyncio
async def test_post_ephemeral_targets_user():
    stub = SlackStub({"chat.postEphemeral": [{"ok": True}]})
    client = _client(stub)
    await client.post_ephemeral("C1", "U1", "WELCOME")
    assert stub.requests[0][1] == {"channel": "C1", "user": "U1", "text": "WELCOME"}
    await client.close()


@pytest.mark.asyncio
async def test_kick_uses_user_token():
    """Removing members needs the admin user token."""
    stub = SlackStub({"conversations.kick": [{"ok": True}]})
    client = _client(stub)
    await client.kick("C1", "U1")
    assert stub.requests[0][2] == "Bearer xoxp-user"
    await client.close()


@pytest.mark.asyncio
async def test_kick_falls_back_to_bot_token():
    stub = SlackStub({"conversations.kick": [{"ok": True}]})
    client = _client(stub, user_token=None)
    await client.kick("C1", "U1")
    assert stub.requests[0][2] == "Bearer xoxb-bot"
    await client.close()


@pytest.mark.asyncio
async def test_list_members_follows_cursor():
    """Pages are requested until Slack returns an empty cursor."""
    stub = SlackStub(
        {
            "conversations.members": [
                {"ok": True, "members": ["A", "B"], "response_metadata": {"next_cursor": "abc"}},
                {"ok": True, "members": ["C"], "response_metadata": {"next_cursor": ""}},
            ]
        }
    )
    client = _client(stub)
    assert await client.list_members("C1") == ["A", "B", "C"]
    first, second = stub.requests
    assert "cursor" not in first[1]
    assert first[1]["limit"] == "200"
    assert second[1]["cursor"] == "abc"
    await client.close()


@pytest.mark.asyncio
async def test_failed_page_discards_partial_results():
    """An error mid-pagination raises instead of returning half a roster."""
    stub = SlackStub(
        {
            "conversations.members": [
                {"ok": True, "members": ["A"], "response_metadata": {"next_cursor": "abc"}},
                {"ok": False, "error": "ratelimited"},
            ]
        }
    )
    client = _client(stub)
    with pytest.raises(SlackAPIError) as excinfo:
        await client.list_members("C1")
    assert excinfo.value.method == "conversations.members"
    assert excinfo.value.error == "ratelimited"
    await client.close()


@pytest.mark.asyncio
async def test_pagination_stops_at_page_budget():
    page = {"ok": True, "members": ["A"], "response_metadata": {"next_cursor": "more"}}
    stub = SlackStub({"conversations.members": [page] * 3})
    client = _client(stub, max_pages=3)
    assert await client.list_members("C1") == ["A", "A", "A"]
    assert len(stub.requests) == 3
    await client.close()


@pytest.mark.asyncio
async def test_fetch_history_returns_authors():
    oldest = datetime(2024, 1, 1, tzinfo=timezone.utc)
    stub = SlackStub(
        {
            "conversations.history": [
                {
                    "ok": True,
                    "messages": [{"user": "A"}, {"bot_id": "B1"}, {"user": "B"}],
                    "response_metadata": {"next_cursor": ""},
                }
            ]
        }
    )
    client = _client(stub)
    assert await client.fetch_history("C1", oldest) == ["A", None, "B"]
    assert stub.requests[0][1]["oldest"] == f"{oldest.timestamp():.6f}"
    await client.close()


@pytest.mark.asyncio
async def test_user_info_and_auth_test():
    stub = SlackStub(
        {
            "users.info": [{"ok": True, "user": {"id": "U1", "is_bot": True}}],
            "auth.test": [{"ok": True, "user_id": "UBOT", "user": "yellcop"}],
        }
    )
    client = _client(stub)
    assert (await client.user_info("U1"))["is_bot"] is True
    assert (await client.auth_test())["user_id"] == "UBOT"
    await client.close()


@pytest.mark.asyncio
async def test_http_errors_become_slack_errors():
    stub = SlackStub({"chat.postMessage": [httpx.Response(500, text="boom")]})
    client = _client(stub)
    with pytest.raises(SlackAPIError, match="HTTP 500"):
        await client.post_message("C1", "HI")
    await client.close()


@pytest.mark.asyncio
async def test_transport_errors_become_slack_errors():
    stub = SlackStub({"chat.postMessage": [httpx.ConnectError("unreachable")]})
    client = _client(stub)
    with pytest.raises(SlackAPIError, match="unreachable"):
        await client.post_message("C1", "HI")
    await client.close()


@pytest.mark.asyncio
async def test_missing_token_is_reported():
    client = SlackClient(bot_token=None, transport=httpx.MockTransport(SlackStub({})))
    assert not client.is_configured()
    with pytest.raises(SlackUnavailable):
        await client.post_message("C1", "HI")
    await client.close()


@pytest.mark.asyncio
async def test_truncated_history_raises():
    """Running out of page budget on history is an error, never a short listing."""
    page = {"ok": True, "messages": [{"user": "NEW"}], "response_metadata": {"next_cursor": "more"}}
    stub = SlackStub({"conversations.history": [page] * 3})
    client = _client(stub, max_pages=3)
    with pytest.raises(SlackAPIError, match="page budget exhausted"):
        await client.fetch_history("C1", datetime(2024, 1, 1, tzinfo=timezone.utc))
    assert len(stub.requests) == 3
    await client.close()


@pytest.mark.asyncio
async def test_fetch_history_includes_thread_replies():
    """Members who only reply in threads still count as active."""
    stub = SlackStub(
        {
            "conversations.history": [
                {
                    "ok": True,
                    "messages": [
                        {"user": "A", "ts": "100.1", "reply_count": 2},
                        {"user": "B", "ts": "100.2"},
                    ],
                }
            ],
            "conversations.replies": [
                {
                    "ok": True,
                    "messages": [
                        {"user": "A", "ts": "100.1"},
                        {"user": "THREADER", "ts": "100.3", "thread_ts": "100.1"},
                    ],
                    "response_metadata": {"next_cursor": "r2"},
                },
                {
                    "ok": True,
                    "messages": [
                        {"user": "A", "ts": "100.1"},
                        {"user": "C", "ts": "100.4", "thread_ts": "100.1"},
                    ],
                },
            ],
        }
    )
    client = _client(stub)
    authors = await client.fetch_history("C1", datetime(2024, 1, 1, tzinfo=timezone.utc))
    assert sorted(authors) == ["A", "B", "C", "THREADER"]
    replies = [request for request in stub.requests if request[0] == "conversations.replies"]
    assert replies[0][1]["ts"] == "100.1"
    assert replies[1][1]["cursor"] == "r2"
    await client.close()

"""
Karaoke Queue Service - Push Notification Tests

Tests for the karaoke/services/notifications.py module. Validates:
- Expo push token format check
- Message builders for approval, rejection and broadcast
- notify(): token lookup, missing/invalid tokens, disabled switch
- Failures (HTTP errors, transport errors, error tickets) reported, never raised
- broadcast(): chunking and sent-count
"""

import json

import httpx
import pytest

from karaoke import database
from karaoke.services.notifications import (
    PushNotifier,
    approval_notification,
    broadcast_notification,
    is_expo_push_token,
    rejection_notification,
)
from tests.conftest import run

TOKEN = "ExponentPushToken[abc123]"


class ExpoStub:
    """MockTransport handler recording every posted batch."""

    def __init__(self, status: int = 200, ticket_status: str = "ok"):
        self.status = status
        self.ticket_status = ticket_status
        self.batches: list[list[dict]] = []
        self.headers: list[httpx.Headers] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        batch = json.loads(request.content)
        self.batches.append(batch)
        self.headers.append(request.headers)
        if self.status != 200:
            return httpx.Response(self.status)
        tickets = [{"status": self.ticket_status, "message": "DeviceNotRegistered"} for _ in batch]
        return httpx.Response(200, json={"data": tickets})


def _notifier(handler, **kwargs) -> PushNotifier:
    kwargs.setdefault("enabled", True)
    return PushNotifier(
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        push_url="https://exp.host/--/api/v2/push/send",
        **kwargs,
    )


def _user(user_id: str, token=TOKEN):
    run(database.ensure_user(user_id))
    if token is not None:
        run(database.update_user(user_id, push_token=token))


# ===========================================================================
# Token format / builders
# ===========================================================================


class TestMessages:
    """Test token validation and message construction."""

    @pytest.mark.parametrize(
        "token", ["ExponentPushToken[abc]", "ExpoPushToken[xyz-123]"]
    )
    def test_valid_tokens(self, token):
        assert is_expo_push_token(token)

    @pytest.mark.parametrize("token", [None, "", "abc", "ExponentPushToken[]", "FCM[abc]"])
    def test_invalid_tokens(self, token):
        assert not is_expo_push_token(token)

    def test_approval(self):
        n = approval_notification("r1")
        assert n.title == "Song Approved! 🎤"
        assert n.body == "Your song request has been approved"
        assert n.to_message(TOKEN)["data"] == {"request_id": "r1", "type": "approval"}

    def test_rejection(self):
        n = rejection_notification("r1", "Too explicit")
        assert n.title == "Song Request Update"
        assert n.body == "Your request was declined: Too explicit"

    def test_broadcast(self):
        n = broadcast_notification("Last call!", "e1")
        assert n.title == "Announcement 📢"
        assert n.data == {"event_id": "e1", "type": "broadcast"}


# ===========================================================================
# notify
# ===========================================================================


class TestNotify:
    """Test single-recipient delivery."""

    def test_sends_to_stored_token(self, db_path):
        _user("singer-1")
        stub = ExpoStub()
        assert run(_notifier(stub, access_token="expo-secret").notify("singer-1", approval_notification("r1")))
        (batch,) = stub.batches
        assert batch[0]["to"] == TOKEN
        assert batch[0]["sound"] == "default"
        assert stub.headers[0]["Authorization"] == "Bearer expo-secret"

    def test_no_user(self, db_path):
        stub = ExpoStub()
        assert run(_notifier(stub).notify("ghost", approval_notification("r1"))) is False
        assert stub.batches == []

    def test_no_token(self, db_path):
        _user("singer-1", token=None)
        assert run(_notifier(ExpoStub()).notify("singer-1", approval_notification("r1"))) is False

    def test_invalid_token(self, db_path):
        _user("singer-1", token="not-a-token")
        stub = ExpoStub()
        assert run(_notifier(stub).notify("singer-1", approval_notification("r1"))) is False
        assert stub.batches == []

    def test_disabled(self, db_path):
        _user("singer-1")
        stub = ExpoStub()
        assert run(_notifier(stub, enabled=False).notify("singer-1", approval_notification("r1"))) is False
        assert stub.batches == []

    def test_http_error_reported(self, db_path):
        _user("singer-1")
        assert run(_notifier(ExpoStub(status=500)).notify("singer-1", approval_notification("r1"))) is False

    def test_error_ticket_reported(self, db_path):
        _user("singer-1")
        stub = ExpoStub(ticket_status="error")
        assert run(_notifier(stub).notify("singer-1", approval_notification("r1"))) is False

    def test_transport_error_reported(self, db_path):
        _user("singer-1")

        def handler(request):
            raise httpx.ConnectTimeout("slow", request=request)

        assert run(_notifier(handler).notify("singer-1", approval_notification("r1"))) is False

    def test_non_json_reply_reported(self, db_path):
        _user("singer-1")

        def handler(request):
            return httpx.Response(200, text="<html>oops</html>")

        assert run(_notifier(handler).notify("singer-1", approval_notification("r1"))) is False


# ===========================================================================
# broadcast
# ===========================================================================


class TestBroadcast:
    """Test fan-out to every registered device."""

    def test_chunks_and_counts(self, db_path):
        for i in range(5):
            _user(f"u{i}", token=f"ExpoPushToken[t{i}]")
        _user("bad", token="garbage")
        stub = ExpoStub()
        sent = run(_notifier(stub, chunk_size=2).broadcast(broadcast_notification("Hi")))
        assert sent == 5
        assert [len(b) for b in stub.batches] == [2, 2, 1]

    def test_no_devices(self, db_path):
        stub = ExpoStub()
        assert run(_notifier(stub).broadcast(broadcast_notification("Hi"))) == 0
        assert stub.batches == []

    def test_failed_chunk_not_counted(self, db_path):
        for i in range(3):
            _user(f"u{i}", token=f"ExpoPushToken[t{i}]")
        calls = {"n": 0}

        def handler(request):
            calls["n"] += 1
            if calls["n"] == 1:
                return httpx.Response(503)
            batch = json.loads(request.content)
            return httpx.Response(200, json={"data": [{"status": "ok"} for _ in batch]})

        sent = run(_notifier(handler, chunk_size=2).broadcast(broadcast_notification("Hi")))
        assert sent == 1

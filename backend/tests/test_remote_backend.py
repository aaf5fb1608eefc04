"""Tests for the remote identity provider and request store."""

import json
import threading
from contextlib import contextmanager
from unittest.mock import Mock

import pytest
import requests
from websockets.sync.server import serve

from client.backend import (
    BackendError,
    RemoteIdentityProvider,
    RemoteRequestStore,
    Session,
    Subscription,
)
from models.maintenance_request import RequestStatus

BASE_URL = "http://api.test:8000"


def _response(status_code=200, body=None, text=""):
    response = Mock()
    response.status_code = status_code
    response.ok = status_code < 400
    response.reason = "Error"
    response.text = text or (json.dumps(body) if body is not None else "")
    if body is None:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = body
    return response


def _sign_in_body(user_id="anon-1", provider="anonymous"):
    return {
        "user": {"user_id": user_id, "provider": provider, "is_new_user": True},
        "tokens": {
            "access_token": f"access-{user_id}",
            "refresh_token": f"refresh-{user_id}",
            "token_type": "Bearer",
            "expires_in": 3600,
        },
        "is_new_user": True,
    }


@contextmanager
def _serve(handler):
    """Run a real WebSocket server on a free local port."""
    with serve(handler, "127.0.0.1", 0) as server:
        thread = threading.Thread(target=server.serve_forever, daemon=True)
        thread.start()
        yield f"ws://127.0.0.1:{server.socket.getsockname()[1]}"
    thread.join(timeout=5)


def _snapshot_frame(requests_data):
    return json.dumps(
        {"event": "snapshot", "data": {"namespace": "hospital-a", "requests": requests_data}}
    )


class FakeWebSocket:
    """Iterates over canned messages like a websockets sync connection."""

    def __init__(self, messages):
        self.messages = messages
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.closed = True
        return False

    def __iter__(self):
        return iter(self.messages)

    def close(self):
        self.closed = True


@pytest.fixture
def http():
    return Mock(spec=requests.Session)


@pytest.fixture
def identity(http):
    return RemoteIdentityProvider(BASE_URL, http=http)


class TestRemoteIdentityProvider:
    """Test cases for RemoteIdentityProvider."""

    def test_anonymous_sign_in(self, identity, http):
        """Test anonymous sign in stores the session."""
        http.post.return_value = _response(body=_sign_in_body())

        session = identity.sign_in_anonymously()

        assert session.user_id == "anon-1"
        assert identity.access_token == "access-anon-1"
        http.post.assert_called_once_with(
            f"{BASE_URL}/api/v1/auth/anonymous", json=None, timeout=10
        )

    def test_custom_token_sign_in(self, identity, http):
        """Test the token is posted for exchange."""
        http.post.return_value = _response(body=_sign_in_body("staff-7", "custom_token"))

        identity.sign_in_with_custom_token("pre-issued")

        assert identity.current_user_id == "staff-7"
        assert http.post.call_args[1]["json"] == {"token": "pre-issued"}

    def test_rejected_sign_in(self, identity, http):
        """Test the server's detail is surfaced."""
        http.post.return_value = _response(401, {"detail": "Custom token has expired"})

        with pytest.raises(BackendError, match="Custom token has expired") as exc_info:
            identity.sign_in_with_custom_token("stale")

        assert exc_info.value.status_code == 401
        assert identity.current_session is None

    def test_network_failure(self, identity, http):
        """Test transport errors become BackendError."""
        http.post.side_effect = requests.ConnectionError("refused")

        with pytest.raises(BackendError, match="Sign in request failed"):
            identity.sign_in_anonymously()

    def test_listeners(self, identity, http):
        """Test listeners get the current session and each change."""
        seen = []
        unsubscribe = identity.on_session_changed(seen.append)
        http.post.return_value = _response(body=_sign_in_body())

        identity.sign_in_anonymously()
        identity.sign_in_anonymously()
        identity.sign_out()
        unsubscribe()
        identity.sign_in_anonymously()

        assert [s.user_id if s else None for s in seen] == [None, "anon-1", None]


class TestRemoteRequestStore:
    """Test cases for RemoteRequestStore."""

    @pytest.fixture
    def signed_in(self, identity, http):
        http.post.return_value = _response(body=_sign_in_body())
        identity.sign_in_anonymously()
        http.post.reset_mock()
        return identity

    def test_add(self, signed_in, http, sample_request_create, sample_request):
        """Test a create is posted with the bearer token."""
        http.post.return_value = _response(201, sample_request.model_dump())
        store = RemoteRequestStore(BASE_URL, "hospital-a", signed_in, http=http)

        record = store.add(sample_request_create)

        assert record == sample_request
        args, kwargs = http.post.call_args
        assert args[0] == f"{BASE_URL}/api/v1/namespaces/hospital-a/requests"
        assert kwargs["headers"] == {"Authorization": "Bearer access-anon-1"}
        assert kwargs["json"]["system"] == "งานระบบไฟฟ้า"
        assert "status" not in kwargs["json"]

    def test_add_validation_detail(self, signed_in, http, sample_request_create):
        """Test structured error details are rendered as text."""
        http.post.return_value = _response(422, {"detail": [{"msg": "Field required"}]})
        store = RemoteRequestStore(BASE_URL, "hospital-a", signed_in, http=http)

        with pytest.raises(BackendError, match="Field required"):
            store.add(sample_request_create)

    def test_add_not_signed_in(self, identity, http, sample_request_create):
        """Test writes need a session."""
        store = RemoteRequestStore(BASE_URL, "hospital-a", identity, http=http)

        with pytest.raises(BackendError, match="Not signed in"):
            store.add(sample_request_create)
        http.post.assert_not_called()

    def test_update_status(self, signed_in, http):
        """Test a status patch sends only the status."""
        http.patch.return_value = _response(body={"request_id": "r1", "status": "ยกเลิก"})
        store = RemoteRequestStore(BASE_URL, "hospital-a", signed_in, http=http)

        store.update_status("r1", RequestStatus.CANCELLED)

        args, kwargs = http.patch.call_args
        assert args[0] == f"{BASE_URL}/api/v1/namespaces/hospital-a/requests/r1/status"
        assert kwargs["json"] == {"status": "ยกเลิก"}

    def test_update_status_not_found(self, signed_in, http):
        """Test a 404 is surfaced with the server's detail."""
        http.patch.return_value = _response(404, {"detail": "Request r9 not found"})
        store = RemoteRequestStore(BASE_URL, "hospital-a", signed_in, http=http)

        with pytest.raises(BackendError) as exc_info:
            store.update_status("r9", RequestStatus.DONE)

        assert exc_info.value.status_code == 404

    def test_subscribe_url(self, signed_in, http):
        """Test the feed URL carries the namespace and token."""
        urls = []

        def connect(url):
            urls.append(url)
            return FakeWebSocket([])

        store = RemoteRequestStore(
            "https://api.test/", "hospital-a", signed_in, http=http, connect=connect
        )

        subscription = store.subscribe(on_snapshot=Mock(), on_error=Mock())
        subscription.close()

        assert urls == ["wss://api.test/ws/namespaces/hospital-a/requests?token=access-anon-1"]

    def test_subscribe_not_signed_in(self, identity, http):
        """Test a feed needs a session."""
        store = RemoteRequestStore(BASE_URL, "hospital-a", identity, http=http)

        with pytest.raises(BackendError) as exc_info:
            store.subscribe(on_snapshot=Mock(), on_error=Mock())

        assert exc_info.value.status_code == 401


class TestSubscription:
    """Test cases for the snapshot feed thread."""

    def test_dispatches_snapshots_and_errors(self, sample_request):
        """Test snapshot and error frames reach their callbacks."""
        messages = [
            json.dumps(
                {
                    "event": "snapshot",
                    "data": {"namespace": "hospital-a", "requests": [sample_request.model_dump()]},
                }
            ),
            "pong",
            json.dumps({"event": "error", "data": {"detail": "store down"}}),
        ]
        on_snapshot, on_error = Mock(), Mock()
        subscription = Subscription(
            "ws://test", on_snapshot, on_error, connect=lambda url: FakeWebSocket(messages)
        )

        subscription._run()

        on_snapshot.assert_called_once_with([sample_request])
        error = on_error.call_args_list[0][0][0]
        assert isinstance(error, BackendError)
        assert str(error) == "store down"
        assert str(on_error.call_args_list[-1][0][0]) == "Subscription closed"

    def test_unauthorized_close(self):
        """Test a 4401 close from the server is reported as unauthorized."""

        def handler(ws):
            ws.close(code=4401, reason="unauthorized")

        on_error = Mock()
        with _serve(handler) as url:
            Subscription(url, Mock(), on_error)._run()

        error = on_error.call_args[0][0]
        assert isinstance(error, BackendError)
        assert error.status_code == 401
        assert "unauthorized" in str(error)

    def test_server_close_is_reported(self, sample_request):
        """Test the feed ending normally still surfaces an error."""

        def handler(ws):
            ws.send(_snapshot_frame([sample_request.model_dump()]))

        on_snapshot, on_error = Mock(), Mock()
        with _serve(handler) as url:
            Subscription(url, on_snapshot, on_error)._run()

        on_snapshot.assert_called_once_with([sample_request])
        on_error.assert_called_once()
        assert str(on_error.call_args[0][0]) == "Subscription closed"

    def test_invalid_record_keeps_feed_alive(self, sample_request):
        """Test a snapshot with a bad record is reported and later ones still arrive."""
        broken = {k: v for k, v in sample_request.model_dump().items() if k != "symptoms"}

        def handler(ws):
            ws.send(_snapshot_frame([broken]))
            ws.send(_snapshot_frame([sample_request.model_dump()]))

        on_snapshot, on_error = Mock(), Mock()
        with _serve(handler) as url:
            Subscription(url, on_snapshot, on_error)._run()

        on_snapshot.assert_called_once_with([sample_request])
        errors = [str(c[0][0]) for c in on_error.call_args_list]
        assert errors[0].startswith("Invalid snapshot")
        assert errors[-1] == "Subscription closed"

    def test_connect_failure(self):
        """Test connection errors are reported."""

        def connect(url):
            raise OSError("connection refused")

        on_error = Mock()
        subscription = Subscription("ws://test", Mock(), on_error, connect=connect)

        subscription._run()

        assert isinstance(on_error.call_args[0][0], OSError)

    def test_closed_feed_is_silent(self, sample_request):
        """Test nothing is delivered after close."""
        on_snapshot, on_error = Mock(), Mock()
        message = json.dumps(
            {"event": "snapshot", "data": {"requests": [sample_request.model_dump()]}}
        )
        subscription = Subscription(
            "ws://test", on_snapshot, on_error, connect=lambda url: FakeWebSocket([message])
        )

        subscription.close()
        subscription._run()

        assert subscription.closed is True
        on_snapshot.assert_not_called()
        on_error.assert_not_called()

    def test_session_dataclass(self):
        """Test sessions compare by value."""
        assert Session("u", "a", "r", "anonymous") == Session("u", "a", "r", "anonymous")

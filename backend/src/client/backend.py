"""Remote identity provider and request store used by the client app.

Both talk to the maintenance API over HTTP (requests) and receive live
snapshots over a WebSocket (websockets' threaded client).
"""

import json
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable
from urllib.parse import quote, urlencode

import requests
from pydantic import ValidationError
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK
from websockets.sync.client import connect as ws_connect

from models.maintenance_request import (
    MaintenanceRequest,
    MaintenanceRequestCreate,
    RequestStatus,
)

logger = logging.getLogger(__name__)

# WebSocket close code the server uses for a rejected token
WS_UNAUTHORIZED = 4401


class BackendError(Exception):
    """A call to the maintenance API failed."""

    def __init__(self, detail: str, status_code: int | None = None):
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code


@dataclass(frozen=True)
class Session:
    """An established identity-provider session."""

    user_id: str
    access_token: str
    refresh_token: str
    provider: str


def _raise_for_response(response: requests.Response) -> dict[str, Any]:
    """Return the JSON body, or raise BackendError with the server's detail."""
    try:
        body = response.json()
    except ValueError:
        body = None

    if response.ok:
        return body or {}

    detail = body.get("detail") if isinstance(body, dict) else None
    if detail is None:
        detail = response.text or response.reason
    elif not isinstance(detail, str):
        detail = json.dumps(detail, ensure_ascii=False)
    raise BackendError(detail, status_code=response.status_code)


class RemoteIdentityProvider:
    """Session holder that signs in against the maintenance API.

    Session changes are pushed to listeners registered with
    on_session_changed.
    """

    def __init__(self, base_url: str, http: requests.Session | None = None, timeout: float = 10):
        self.base_url = base_url.rstrip("/")
        self.http = http or requests.Session()
        self.timeout = timeout
        self._session: Session | None = None
        self._listeners: list[Callable[[Session | None], None]] = []
        self._lock = threading.Lock()

    @property
    def current_session(self) -> Session | None:
        return self._session

    @property
    def current_user_id(self) -> str | None:
        return self._session.user_id if self._session else None

    @property
    def access_token(self) -> str | None:
        return self._session.access_token if self._session else None

    def on_session_changed(
        self, callback: Callable[[Session | None], None]
    ) -> Callable[[], None]:
        """Register a listener; it is called now and on every change.

        Returns:
            A callable that removes the listener
        """
        with self._lock:
            self._listeners.append(callback)
            current = self._session
        callback(current)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._listeners:
                    self._listeners.remove(callback)

        return unsubscribe

    def sign_in_with_custom_token(self, token: str) -> Session:
        """Exchange a pre-issued token for a session."""
        return self._sign_in("/api/v1/auth/token", {"token": token})

    def sign_in_anonymously(self) -> Session:
        """Start a session under a fresh anonymous identity."""
        return self._sign_in("/api/v1/auth/anonymous", None)

    def sign_out(self) -> None:
        self._set_session(None)

    def _sign_in(self, path: str, body: dict | None) -> Session:
        try:
            response = self.http.post(
                f"{self.base_url}{path}", json=body, timeout=self.timeout
            )
        except requests.RequestException as e:
            raise BackendError(f"Sign in request failed: {e}")

        data = _raise_for_response(response)
        session = Session(
            user_id=data["user"]["user_id"],
            access_token=data["tokens"]["access_token"],
            refresh_token=data["tokens"]["refresh_token"],
            provider=data["user"]["provider"],
        )
        self._set_session(session)
        return session

    def _set_session(self, session: Session | None) -> None:
        with self._lock:
            changed = session != self._session
            self._session = session
            listeners = list(self._listeners)
        if not changed:
            return
        for listener in listeners:
            listener(session)


class Subscription:
    """A live snapshot feed running on its own thread until closed."""

    def __init__(
        self,
        url: str,
        on_snapshot: Callable[[list[MaintenanceRequest]], None],
        on_error: Callable[[Exception], None],
        connect: Callable = ws_connect,
    ):
        self._url = url
        self._on_snapshot = on_snapshot
        self._on_error = on_error
        self._connect = connect
        self._closed = threading.Event()
        self._ws = None
        self._thread = threading.Thread(
            target=self._run, name="maintenance-subscription", daemon=True
        )

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def start(self) -> "Subscription":
        self._thread.start()
        return self

    def close(self) -> None:
        """Stop receiving snapshots. Safe to call more than once."""
        self._closed.set()
        ws = self._ws
        if ws is not None:
            ws.close()
        if self._thread.is_alive() and threading.current_thread() is not self._thread:
            self._thread.join(timeout=5)

    def _run(self) -> None:
        try:
            with self._connect(self._url) as ws:
                self._ws = ws
                if self._closed.is_set():
                    return
                for message in ws:
                    if self._closed.is_set():
                        break
                    self._dispatch(message)
        except ConnectionClosedOK:
            pass
        except ConnectionClosed as e:
            if not self._closed.is_set():
                rcvd = getattr(e, "rcvd", None)
                if rcvd is not None and rcvd.code == WS_UNAUTHORIZED:
                    self._on_error(BackendError("Subscription rejected: unauthorized", 401))
                else:
                    self._on_error(BackendError(f"Subscription closed: {e}"))
            return
        except Exception as e:
            if not self._closed.is_set():
                self._on_error(e)
            return
        if not self._closed.is_set():
            self._on_error(BackendError("Subscription closed"))

    def _dispatch(self, message: str) -> None:
        try:
            payload = json.loads(message)
        except ValueError:
            # keep-alive replies
            return
        if not isinstance(payload, dict):
            return

        event = payload.get("event")
        data = payload.get("data") or {}
        if event == "snapshot":
            try:
                records = [MaintenanceRequest(**r) for r in data.get("requests", [])]
            except ValidationError as e:
                self._on_error(BackendError(f"Invalid snapshot: {e}"))
                return
            self._on_snapshot(records)
        elif event == "error":
            self._on_error(BackendError(data.get("detail", "Unknown subscription error")))


class RemoteRequestStore:
    """The shared `<namespace>/requests` collection behind the maintenance API."""

    def __init__(
        self,
        base_url: str,
        namespace: str,
        identity: RemoteIdentityProvider,
        http: requests.Session | None = None,
        timeout: float = 10,
        connect: Callable = ws_connect,
    ):
        self.base_url = base_url.rstrip("/")
        self.namespace = namespace
        self.identity = identity
        self.http = http or identity.http
        self.timeout = timeout
        self._connect = connect

    @property
    def collection_path(self) -> str:
        return f"/api/v1/namespaces/{quote(self.namespace, safe='')}/requests"

    def _auth_headers(self) -> dict[str, str]:
        token = self.identity.access_token
        if not token:
            raise BackendError("Not signed in", status_code=401)
        return {"Authorization": f"Bearer {token}"}

    def subscribe(
        self,
        on_snapshot: Callable[[list[MaintenanceRequest]], None],
        on_error: Callable[[Exception], None],
    ) -> Subscription:
        """Open a live feed of full snapshots for the namespace."""
        token = self.identity.access_token
        if not token:
            raise BackendError("Not signed in", status_code=401)

        ws_base = self.base_url.replace("https://", "wss://", 1).replace(
            "http://", "ws://", 1
        )
        url = (
            f"{ws_base}/ws/namespaces/{quote(self.namespace, safe='')}/requests?"
            f"{urlencode({'token': token})}"
        )
        logger.info("Subscribing to %s/requests", self.namespace)
        return Subscription(url, on_snapshot, on_error, connect=self._connect).start()

    def add(self, request: MaintenanceRequestCreate) -> MaintenanceRequest:
        """Insert a new request document."""
        headers = self._auth_headers()
        try:
            response = self.http.post(
                f"{self.base_url}{self.collection_path}",
                json=request.model_dump(),
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise BackendError(f"Create request failed: {e}")
        return MaintenanceRequest(**_raise_for_response(response))

    def update_status(self, request_id: str, status: RequestStatus) -> None:
        """Patch the status field of one request."""
        headers = self._auth_headers()
        try:
            response = self.http.patch(
                f"{self.base_url}{self.collection_path}/{quote(request_id, safe='')}/status",
                json={"status": RequestStatus(status).value},
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise BackendError(f"Status update failed: {e}")
        _raise_for_response(response)

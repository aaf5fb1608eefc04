"""Maintenance request application controller.

Owns the AppState and drives it through the reducers in client.state.
Identity and subscription listeners run on other threads and only post
events; process_events() applies them on the caller's thread.
"""

import logging
import queue
import threading
import time
import uuid
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass

from pydantic import ValidationError

from client import state as reducers
from client.state import AppState
from models.maintenance_request import MaintenanceRequest, RequestStatus

logger = logging.getLogger(__name__)

MSG_SUBMITTED = "บันทึกข้อมูลการแจ้งซ่อมเรียบร้อยแล้ว"
MSG_STATUS_UPDATED = "อัปเดตสถานะเรียบร้อยแล้ว"
MSG_NO_IDENTITY = "ยังไม่ได้ยืนยันตัวตน กรุณาลองใหม่อีกครั้ง"
MSG_AUTH_FAILED = "เกิดข้อผิดพลาดในการยืนยันตัวตน: {}"
MSG_LOAD_FAILED = "เกิดข้อผิดพลาดในการโหลดข้อมูล: {}"
MSG_SUBMIT_FAILED = "เกิดข้อผิดพลาดในการบันทึกข้อมูล: {}"
MSG_STATUS_FAILED = "เกิดข้อผิดพลาดในการอัปเดตสถานะ: {}"


# Events posted to the update queue


@dataclass(frozen=True)
class IdentityChanged:
    user_id: str | None


@dataclass(frozen=True)
class SignInFailed:
    error: Exception


@dataclass(frozen=True)
class SnapshotReceived:
    generation: int
    requests: tuple[MaintenanceRequest, ...]


@dataclass(frozen=True)
class SubscriptionFailed:
    generation: int
    error: Exception


@dataclass(frozen=True)
class RequestSubmitted:
    request: MaintenanceRequest


@dataclass(frozen=True)
class StatusUpdated:
    request_id: str


@dataclass(frozen=True)
class Notify:
    message: str


class MaintenanceApp:
    """Form-and-list application bound to one shared request collection."""

    def __init__(
        self,
        identity,
        store,
        initial_token: str | None = None,
        executor: Executor | None = None,
    ):
        """Initialize the application.

        Args:
            identity: Identity provider (sign in, session listener)
            store: Request store (subscribe, add, update_status)
            initial_token: Optional pre-issued token to sign in with
            executor: Runs sign-in and writes off the caller's thread
        """
        self.identity = identity
        self.store = store
        self.initial_token = initial_token
        self.state = AppState()

        self._events: queue.Queue = queue.Queue()
        self._resolved = threading.Event()
        self._executor = executor or ThreadPoolExecutor(
            max_workers=2, thread_name_prefix="maintenance-app"
        )
        self._owns_executor = executor is None
        self._subscription = None
        self._generation = 0
        self._unsubscribe_identity = None

    # ============================================
    # Lifecycle
    # ============================================

    def start(self) -> None:
        """Begin observing the session and sign in in the background."""
        self._unsubscribe_identity = self.identity.on_session_changed(
            self._on_session_changed
        )
        self._executor.submit(self._sign_in)

    def stop(self) -> None:
        """Tear down listeners and the live subscription."""
        if self._unsubscribe_identity is not None:
            self._unsubscribe_identity()
            self._unsubscribe_identity = None
        self._close_subscription()
        if self._owns_executor:
            self._executor.shutdown(wait=False)

    def wait_until_ready(self, timeout: float | None = None) -> bool:
        """Process events until sign-in has succeeded or failed.

        Returns:
            True once identity has resolved, False on timeout
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while not self._resolved.is_set():
            remaining = None if deadline is None else deadline - time.monotonic()
            if remaining is not None and remaining <= 0:
                break
            self.process_events(timeout=0.1 if remaining is None else min(remaining, 0.1))
        return self._resolved.is_set()

    def process_events(self, timeout: float | None = None) -> int:
        """Apply queued events to the state.

        Args:
            timeout: Seconds to wait for a first event, None to not wait

        Returns:
            Number of events applied
        """
        processed = 0
        block = timeout is not None
        while True:
            try:
                event = self._events.get(block=block, timeout=timeout)
            except queue.Empty:
                return processed
            self._apply(event)
            processed += 1
            block = False

    # ============================================
    # User actions
    # ============================================

    def set_field(self, name: str, value) -> None:
        self.state = reducers.set_form_field(self.state, name, value)

    def select_attachment(self, selected: bool = True) -> None:
        self.state = reducers.set_form_field(self.state, "attachment_selected", selected)

    def dismiss_notification(self) -> None:
        self.state = reducers.dismiss_notification(self.state)

    def submit(self) -> Future | None:
        """Send the current form as a new request.

        Returns:
            Future for the write, or None if it was rejected locally
        """
        if not self.state.identity_ready or not self.state.user_id:
            self._show(MSG_NO_IDENTITY)
            return None

        try:
            payload = self.state.form.to_create()
        except ValidationError as e:
            self._show(MSG_SUBMIT_FAILED.format(e))
            return None

        future = self._executor.submit(self.store.add, payload)
        future.add_done_callback(self._on_submit_done)
        return future

    def update_status(self, request_id: str, status) -> Future | None:
        """Patch one request's status; the list follows the next snapshot."""
        try:
            new_status = RequestStatus(status)
        except ValueError as e:
            self._show(MSG_STATUS_FAILED.format(e))
            return None

        future = self._executor.submit(self.store.update_status, request_id, new_status)
        future.add_done_callback(
            lambda f: self._on_status_done(f, request_id)
        )
        return future

    # ============================================
    # Producers (any thread)
    # ============================================

    def _sign_in(self) -> None:
        errors = []
        attempts = []
        if self.initial_token:
            attempts.append(lambda: self.identity.sign_in_with_custom_token(self.initial_token))
        attempts.append(self.identity.sign_in_anonymously)

        for attempt in attempts:
            try:
                attempt()
                return
            except Exception as e:
                logger.warning("Sign in attempt failed: %s", e)
                errors.append(e)

        logger.error("Could not establish an identity: %s", errors[-1], exc_info=errors[-1])
        self._events.put(SignInFailed(errors[-1]))

    def _on_session_changed(self, session) -> None:
        self._events.put(IdentityChanged(session.user_id if session else None))

    def _on_submit_done(self, future: Future) -> None:
        error = future.exception()
        if error is not None:
            logger.error("Failed to submit request: %s", error, exc_info=error)
            self._events.put(Notify(MSG_SUBMIT_FAILED.format(error)))
        else:
            self._events.put(RequestSubmitted(future.result()))

    def _on_status_done(self, future: Future, request_id: str) -> None:
        error = future.exception()
        if error is not None:
            logger.error("Failed to update status of %s: %s", request_id, error, exc_info=error)
            self._events.put(Notify(MSG_STATUS_FAILED.format(error)))
        else:
            self._events.put(StatusUpdated(request_id))

    # ============================================
    # Consumer (caller's thread)
    # ============================================

    def _apply(self, event) -> None:
        if isinstance(event, IdentityChanged):
            self._apply_identity(event.user_id)
        elif isinstance(event, SignInFailed):
            self._show(MSG_AUTH_FAILED.format(event.error))
            self._resolved.set()
        elif isinstance(event, SnapshotReceived):
            # Snapshots from a subscription that has since been replaced are stale
            if event.generation == self._generation:
                self.state = reducers.snapshot_received(self.state, event.requests)
        elif isinstance(event, SubscriptionFailed):
            if event.generation == self._generation:
                self._show(MSG_LOAD_FAILED.format(event.error))
        elif isinstance(event, RequestSubmitted):
            self.state = reducers.reset_form(self.state)
            self._show(MSG_SUBMITTED)
        elif isinstance(event, StatusUpdated):
            self._show(MSG_STATUS_UPDATED)
        elif isinstance(event, Notify):
            self._show(event.message)

    def _apply_identity(self, provider_user_id: str | None) -> None:
        signed_in = provider_user_id is not None
        if signed_in and provider_user_id == self.state.user_id and self.state.signed_in:
            return

        user_id = provider_user_id or str(uuid.uuid4())
        self.state = reducers.identity_resolved(self.state, user_id, signed_in)

        self._close_subscription()
        if signed_in:
            self._resolved.set()
            self._open_subscription()

    def _open_subscription(self) -> None:
        self._generation += 1
        generation = self._generation
        try:
            self._subscription = self.store.subscribe(
                on_snapshot=lambda records: self._events.put(
                    SnapshotReceived(generation, tuple(records))
                ),
                on_error=lambda error: self._events.put(
                    SubscriptionFailed(generation, error)
                ),
            )
        except Exception as e:
            logger.error("Failed to subscribe to requests: %s", e, exc_info=True)
            self._show(MSG_LOAD_FAILED.format(e))

    def _close_subscription(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
        # Invalidate anything still queued from the old feed
        self._generation += 1

    def _show(self, message: str) -> None:
        self.state = reducers.notify(self.state, message)

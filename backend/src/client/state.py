"""Application state and the pure functions that update it.

Every reducer takes the current AppState and returns a new one; nothing
here performs I/O or reads the clock.
"""

from dataclasses import dataclass, field, fields, replace

from models.maintenance_request import MaintenanceRequest, MaintenanceRequestCreate


@dataclass(frozen=True)
class FormState:
    """Current values of the request form, one attribute per input."""

    date_notified: str = ""
    system: str = ""
    work_order_number: str = ""
    area: str = ""
    floor: str = ""
    building: str = ""
    symptoms: str = ""
    action_taken: str = ""
    desired_date_time: str = ""
    attachment_selected: bool = False

    def to_create(self) -> MaintenanceRequestCreate:
        """Build the create payload.

        Raises:
            pydantic.ValidationError: If a required field is missing or invalid
        """
        return MaintenanceRequestCreate(
            date_notified=self.date_notified,
            system=self.system,
            work_order_number=self.work_order_number,
            area=self.area,
            floor=self.floor,
            building=self.building,
            symptoms=self.symptoms,
            action_taken=self.action_taken or None,
            desired_date_time=self.desired_date_time or None,
            has_attachment=self.attachment_selected,
        )


FORM_FIELDS: tuple[str, ...] = tuple(f.name for f in fields(FormState))


@dataclass(frozen=True)
class Notification:
    """Single-slot modal message."""

    message: str = ""
    visible: bool = False


@dataclass(frozen=True)
class AppState:
    user_id: str | None = None
    identity_ready: bool = False
    signed_in: bool = False
    requests: tuple[MaintenanceRequest, ...] = ()
    form: FormState = field(default_factory=FormState)
    notification: Notification = field(default_factory=Notification)


def identity_resolved(state: AppState, user_id: str, signed_in: bool) -> AppState:
    return replace(state, user_id=user_id, identity_ready=True, signed_in=signed_in)


def set_form_field(state: AppState, name: str, value) -> AppState:
    if name not in FORM_FIELDS:
        raise ValueError(f"Unknown form field: {name}")
    return replace(state, form=replace(state.form, **{name: value}))


def reset_form(state: AppState) -> AppState:
    return replace(state, form=FormState())


def snapshot_received(
    state: AppState, requests: tuple[MaintenanceRequest, ...]
) -> AppState:
    """Replace the list wholesale with the delivered snapshot."""
    return replace(state, requests=tuple(requests))


def notify(state: AppState, message: str) -> AppState:
    """Show a message, overwriting whatever the modal held."""
    return replace(state, notification=Notification(message=message, visible=True))


def dismiss_notification(state: AppState) -> AppState:
    return replace(state, notification=replace(state.notification, visible=False))

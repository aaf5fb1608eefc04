"""Maintenance request data models."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RequestStatus(str, Enum):
    """Maintenance request status.

    Values are the labels shown in the UI. Any status may follow any other.
    """

    PENDING = "รอดำเนินการ"
    IN_PROGRESS = "กำลังดำเนินการ"
    DONE = "เสร็จสิ้น"
    CANCELLED = "ยกเลิก"


# Fixed list of system categories offered by the form
SYSTEM_OPTIONS: list[str] = [
    "งานระบบไฟฟ้า",
    "งานระบบไฟฟ้าสำรอง",
    "งานระบบประปา",
    "งานระบบสุขาภิบาล",
    "งานระบบปรับอากาศ",
    "งานระบบระบายอากาศ",
    "งานระบบก๊าซทางการแพทย์",
    "งานระบบลิฟต์",
    "งานระบบสื่อสาร",
    "งานระบบป้องกันอัคคีภัย",
    "งานระบบบำบัดน้ำเสีย",
    "งานโครงสร้างอาคาร",
    "งานประตูและหน้าต่าง",
    "งานเฟอร์นิเจอร์",
    "อื่นๆ",
]

# Stored instead of a real upload when the user picked a file
ATTACHMENT_PLACEHOLDER = "placeholder_image_url"


def _validate_date(v: str) -> str:
    try:
        datetime.strptime(v, "%Y-%m-%d")
        return v
    except ValueError:
        raise ValueError("Date must be in YYYY-MM-DD format")


def _validate_datetime(v: str | None) -> str | None:
    if v is None or v == "":
        return None
    try:
        datetime.fromisoformat(v)
        return v
    except ValueError:
        raise ValueError("Desired date/time must be an ISO 8601 datetime")


class MaintenanceRequestCreate(BaseModel):
    """Form fields submitted to create a maintenance request.

    Identity, id, timestamps and status are assigned by the store and
    cannot be supplied here.
    """

    date_notified: str = Field(..., description="Date the problem was reported (YYYY-MM-DD)")
    system: str = Field(..., description="System category, one of SYSTEM_OPTIONS")
    work_order_number: str = Field(
        default="", max_length=200, description="Reporter name (legacy work order field)"
    )
    area: str = Field(..., min_length=1, max_length=200)
    floor: str = Field(..., min_length=1, max_length=50)
    building: str = Field(..., min_length=1, max_length=200)
    symptoms: str = Field(..., min_length=1, max_length=2000)
    action_taken: str | None = Field(None, max_length=2000)
    desired_date_time: str | None = Field(None, description="Preferred service time (ISO 8601)")
    has_attachment: bool = Field(
        default=False, description="Whether the user selected an image file"
    )

    @field_validator("area", "floor", "building", "symptoms", mode="before")
    @classmethod
    def strip_required_text(cls, v):
        """Required text fields must not be blank."""
        if isinstance(v, str):
            v = v.strip()
            if not v:
                raise ValueError("Field is required")
        return v

    @field_validator("date_notified")
    @classmethod
    def validate_date_notified(cls, v: str) -> str:
        return _validate_date(v)

    @field_validator("desired_date_time")
    @classmethod
    def validate_desired_date_time(cls, v: str | None) -> str | None:
        return _validate_datetime(v)

    @field_validator("system")
    @classmethod
    def validate_system(cls, v: str) -> str:
        if v not in SYSTEM_OPTIONS:
            raise ValueError(f"Unknown system category: {v}")
        return v

    @field_validator("action_taken", mode="before")
    @classmethod
    def empty_action_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class MaintenanceRequest(BaseModel):
    """A stored maintenance request document."""

    request_id: str = Field(..., description="Store-assigned identifier (ULID)")
    namespace: str = Field(..., description="Application namespace the record belongs to")
    date_notified: str
    repair_type: str | None = Field(None, description="Legacy field, not used by the form")
    system: str
    work_order_number: str = ""
    attached_image_url: str | None = None
    area: str
    floor: str
    building: str
    symptoms: str
    action_taken: str | None = None
    desired_date_time: str | None = None
    status: RequestStatus = Field(default=RequestStatus.PENDING)
    reporter_id: str = Field(..., description="Identity of the user who created the record")
    created_at: str = Field(..., description="Server-assigned ISO timestamp")

    model_config = ConfigDict(use_enum_values=True)


class StatusUpdateRequest(BaseModel):
    """Body of a status patch."""

    status: RequestStatus

from datetime import date, datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from classshift.models.change_request import ChangeRequestStatus, ChangeRequestType


class RescheduleDetails(BaseModel):
    kind: Literal["reschedule"] = "reschedule"
    new_date: date
    new_time_slot_id: str = Field(min_length=1, max_length=36)
    new_resource_id: str = Field(min_length=1, max_length=36)

    model_config = {"extra": "forbid"}


class ModalityChangeDetails(BaseModel):
    kind: Literal["modality_change"] = "modality_change"
    # Optional at submission: staff may pick the resource when approving.
    new_resource_id: str | None = Field(default=None, min_length=1, max_length=36)

    model_config = {"extra": "forbid"}


class SwapDetails(BaseModel):
    kind: Literal["swap"] = "swap"
    replacement_teacher_id: str | None = Field(default=None, min_length=1, max_length=36)

    model_config = {"extra": "forbid"}


ChangeDetails = Annotated[
    Union[RescheduleDetails, ModalityChangeDetails, SwapDetails],
    Field(discriminator="kind"),
]


class ChangeRequestCreate(BaseModel):
    session_id: str = Field(min_length=1, max_length=36)
    reason: str | None = Field(default=None, max_length=1000)
    details: ChangeDetails


class ChangeRequestApprove(BaseModel):
    note: str | None = Field(default=None, max_length=1000)
    new_date: date | None = None
    new_time_slot_id: str | None = Field(default=None, min_length=1, max_length=36)
    new_resource_id: str | None = Field(default=None, min_length=1, max_length=36)
    replacement_teacher_id: str | None = Field(default=None, min_length=1, max_length=36)


class ChangeRequestReject(BaseModel):
    reason: str = Field(min_length=1, max_length=1000)


class SwapDecline(BaseModel):
    reason: str = Field(min_length=1, max_length=1000)


class ChangeRequestOut(BaseModel):
    id: str
    request_type: ChangeRequestType
    status: ChangeRequestStatus
    session_id: str
    class_code: str | None = None
    session_date: date | None = None
    teacher_id: str
    teacher_name: str | None = None
    teacher_email: str | None = None
    request_reason: str | None = None
    new_date: date | None = None
    new_time_slot_id: str | None = None
    new_time_slot_name: str | None = None
    new_resource_id: str | None = None
    new_resource_name: str | None = None
    new_session_id: str | None = None
    replacement_teacher_id: str | None = None
    replacement_teacher_name: str | None = None
    replacement_teacher_email: str | None = None
    note: str | None = None
    submitted_at: datetime
    decided_at: datetime | None = None
    decided_by_id: str | None = None


class ChangeRequestListItem(BaseModel):
    id: str
    request_type: ChangeRequestType
    status: ChangeRequestStatus
    session_id: str
    session_date: date | None = None
    class_code: str | None = None
    class_name: str | None = None
    teacher_id: str
    teacher_name: str | None = None
    teacher_email: str | None = None
    request_reason: str | None = None
    submitted_at: datetime
    decided_at: datetime | None = None

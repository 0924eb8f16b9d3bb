from datetime import date, time

from pydantic import BaseModel

from classshift.models.resource import ResourceType
from classshift.models.training_class import Modality


class TeacherSessionOut(BaseModel):
    session_id: str
    session_date: date
    time_slot_id: str
    time_slot_name: str
    start_time: time
    end_time: time
    class_id: str
    class_code: str
    class_name: str
    modality: Modality
    topic: str | None = None
    resource_id: str | None = None
    resource_name: str | None = None
    days_from_now: int
    has_pending_request: bool


class TimeSlotSuggestionOut(BaseModel):
    time_slot_id: str
    label: str
    start_time: time
    end_time: time
    available_resource_count: int


class ResourceSuggestionOut(BaseModel):
    resource_id: str
    code: str
    name: str
    resource_type: ResourceType
    capacity: int | None = None
    branch_id: str
    current_resource: bool = False


class SwapCandidateOut(BaseModel):
    teacher_id: str
    full_name: str
    email: str
    skill_priority: int
    availability_priority: int
    has_conflict: bool

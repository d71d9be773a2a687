"""Auto-save and verification submission schemas."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from fieldsync.schemas.common import CamelModel
from fieldsync.schemas.sync import GeoPoint


class FormType(str, Enum):
    RESIDENCE = "RESIDENCE"
    OFFICE = "OFFICE"


class AutoSaveRequest(CamelModel):
    form_type: str
    form_data: dict[str, Any] = {}
    timestamp: datetime


class AutoSaveData(CamelModel):
    saved_at: str
    version: int


class AutoSavedForm(CamelModel):
    form_type: str
    form_data: dict[str, Any]
    saved_at: str
    version: int


class PhotoRef(CamelModel):
    attachment_id: str
    geo_location: Optional[GeoPoint] = None


class VerificationSubmission(CamelModel):
    form_data: dict[str, Any] = {}
    attachment_ids: list[str] = []
    geo_location: Optional[GeoPoint] = None
    photos: list[PhotoRef] = []


class VerificationResult(CamelModel):
    case_id: str
    status: str
    completed_at: Optional[str]
    report_id: str


class FormField(CamelModel):
    name: str
    type: str
    required: bool
    label: str
    options: Optional[list[str]] = None


class FormTemplate(CamelModel):
    form_type: str
    fields: list[FormField]
    required_photos: int
    photo_types: list[str]

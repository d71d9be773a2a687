"""FieldSync Database Models."""

from fieldsync.models.user import Client, User
from fieldsync.models.device import Device, RefreshToken
from fieldsync.models.case import Attachment, Case, LocationPoint
from fieldsync.models.form import AutoSave, VerificationReport
from fieldsync.models.audit import AuditLog

__all__ = [
    "User",
    "Client",
    "Device",
    "RefreshToken",
    "Case",
    "Attachment",
    "LocationPoint",
    "AutoSave",
    "VerificationReport",
    "AuditLog",
]

"""
Request bodies for the HTTP API

Fields are optional at the schema level where the service layer owns the
"required" check, so every missing field surfaces as the same
validation_error with a domain message.
"""

from typing import List, Optional, Union

from pydantic import BaseModel, StrictFloat, StrictInt

# JSON numbers only; numeric strings are rejected
Number = Union[StrictInt, StrictFloat]


class RegisterRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    skills: List[str] = []


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class CreateIncidentRequest(BaseModel):
    crisisType: Optional[str] = None
    lat: Optional[Number] = None
    lng: Optional[Number] = None
    radiusMeters: Optional[Number] = None
    address: Optional[str] = ""
    description: Optional[str] = ""
    anonymous: bool = False


class RespondRequest(BaseModel):
    lat: Optional[Number] = None
    lng: Optional[Number] = None


class ResolveIncidentRequest(BaseModel):
    note: Optional[str] = None


class FlagReportRequest(BaseModel):
    sosId: Optional[str] = None
    reason: Optional[str] = None


class ResolveReportRequest(BaseModel):
    resolutionNote: Optional[str] = None
    falseAlert: bool = False


class CrisisAssistRequest(BaseModel):
    crisisType: Optional[str] = "other"
    context: Optional[str] = ""

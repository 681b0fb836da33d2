"""Patient domain schemas - Pydantic models for validation"""

from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, field_validator, model_validator

from ...models import Patient, Visit
from ...shared.validators import clean_text, validate_age, validate_email, validate_gender, validate_phone


class PatientCreate(BaseModel):
    fullName: str
    phone: str
    age: Optional[int] = None
    gender: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None

    @field_validator("fullName")
    @classmethod
    def validate_full_name(cls, v):
        v = clean_text(v)
        if not v:
            raise ValueError("Full name is required")
        return v

    @field_validator("phone")
    @classmethod
    def validate_phone_field(cls, v):
        v = clean_text(v)
        if not v:
            raise ValueError("Phone number is required")
        return validate_phone(v)

    @field_validator("age", mode="before")
    @classmethod
    def blank_age(cls, v):
        if v == "":
            return None
        return v

    @field_validator("age")
    @classmethod
    def validate_age_field(cls, v):
        return validate_age(v)

    @field_validator("gender")
    @classmethod
    def validate_gender_field(cls, v):
        return validate_gender(v)

    @field_validator("email")
    @classmethod
    def validate_email_field(cls, v):
        return validate_email(clean_text(v))

    @field_validator("address")
    @classmethod
    def validate_address(cls, v):
        return clean_text(v)


class PatientUpdate(BaseModel):
    """Only fields present in the request body are changed"""

    fullName: Optional[str] = None
    phone: Optional[str] = None
    age: Optional[int] = None
    gender: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None

    @field_validator("fullName")
    @classmethod
    def validate_full_name(cls, v):
        if v is None:
            return v
        v = clean_text(v)
        if not v:
            raise ValueError("Full name cannot be empty")
        return v

    @field_validator("phone")
    @classmethod
    def validate_phone_field(cls, v):
        if v is None:
            return v
        v = clean_text(v)
        if not v:
            raise ValueError("Phone number cannot be empty")
        return validate_phone(v)

    @field_validator("age")
    @classmethod
    def validate_age_field(cls, v):
        return validate_age(v)

    @field_validator("gender")
    @classmethod
    def validate_gender_field(cls, v):
        return validate_gender(v)

    @field_validator("email")
    @classmethod
    def validate_email_field(cls, v):
        return validate_email(clean_text(v))

    @field_validator("address")
    @classmethod
    def validate_address(cls, v):
        return clean_text(v)


class Medicine(BaseModel):
    name: str
    morning: bool = False
    afternoon: bool = False
    evening: bool = False

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        v = clean_text(v)
        if not v:
            raise ValueError("Medicine name is required")
        return v


class Prescription(BaseModel):
    startDate: date
    endDate: date
    medicines: list[Medicine] = []
    revisitRequired: bool = False

    @model_validator(mode="after")
    def check_dates(self):
        if self.endDate < self.startDate:
            raise ValueError("Prescription end date cannot be before its start date")
        return self

    def to_document(self) -> dict[str, Any]:
        """Stored form of the prescription (JSON column)"""
        return {
            "start_date": self.startDate.isoformat(),
            "end_date": self.endDate.isoformat(),
            "medicines": [medicine.model_dump() for medicine in self.medicines],
            "revisit_required": self.revisitRequired,
        }

    @classmethod
    def from_document(cls, document: Optional[dict]) -> Optional["Prescription"]:
        if not document:
            return None
        return cls(
            startDate=document["start_date"],
            endDate=document["end_date"],
            medicines=document.get("medicines") or [],
            revisitRequired=document.get("revisit_required", False),
        )


class VisitCreate(BaseModel):
    problem: str
    diagnosis: str
    prescription: Optional[Prescription] = None
    createdBy: Optional[str] = None

    @field_validator("problem", "diagnosis")
    @classmethod
    def validate_required_text(cls, v, info):
        v = clean_text(v)
        if not v:
            raise ValueError(f"{info.field_name.capitalize()} is required")
        return v


class VisitResponse(BaseModel):
    id: int
    date: datetime
    problem: str
    diagnosis: str
    prescription: Optional[Prescription] = None
    createdBy: Optional[str] = None

    @classmethod
    def from_model(cls, visit: Visit) -> "VisitResponse":
        return cls(
            id=visit.id,
            date=visit.date,
            problem=visit.problem,
            diagnosis=visit.diagnosis,
            prescription=Prescription.from_document(visit.prescription),
            createdBy=visit.created_by,
        )


class PatientResponse(BaseModel):
    """Schema for patient response"""

    id: int
    fullName: str
    age: Optional[int] = None
    gender: Optional[str] = None
    phone: str
    email: Optional[str] = None
    address: Optional[str] = None
    onboardingDate: datetime
    createdAt: datetime
    updatedAt: datetime

    @classmethod
    def from_model(cls, patient: Patient) -> "PatientResponse":
        return cls(
            id=patient.id,
            fullName=patient.full_name,
            age=patient.age,
            gender=patient.gender,
            phone=patient.phone or "",
            email=patient.email,
            address=patient.address,
            onboardingDate=patient.onboarding_date,
            createdAt=patient.created_at,
            updatedAt=patient.updated_at,
        )


class Pagination(BaseModel):
    current: int
    pages: int
    total: int


class PatientDetailResponse(PatientResponse):
    visits: list[VisitResponse]
    totalVisits: int
    visitsPagination: Pagination


class PatientListResponse(BaseModel):
    success: bool = True
    patients: list[PatientResponse]
    pagination: Pagination


class PatientSearchResponse(BaseModel):
    success: bool = True
    patients: list[PatientResponse]
    count: int


class PatientDetailEnvelope(BaseModel):
    success: bool = True
    patient: PatientDetailResponse


class PatientEnvelope(BaseModel):
    success: bool = True
    message: str
    patient: PatientResponse


class VisitEnvelope(BaseModel):
    success: bool = True
    message: str
    visit: VisitResponse

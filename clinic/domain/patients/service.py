"""Patient service - Business logic for patient records and visits"""

import logging
import math
from typing import Optional

from fastapi import BackgroundTasks
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ... import email_service
from ...exceptions import DependencyError, NotFoundError, ValidationError
from ...models import Patient, Visit
from .repository import PatientRepository
from .schemas import PatientCreate, PatientUpdate, VisitCreate

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 20
MAX_PAGE_SIZE = 100

# Request field -> model column
PATIENT_FIELDS = {
    "fullName": "full_name",
    "phone": "phone",
    "age": "age",
    "gender": "gender",
    "email": "email",
    "address": "address",
}


class PatientService:
    """Service layer for patient business logic"""

    def __init__(self, db: Session, background_tasks: Optional[BackgroundTasks] = None):
        self.db = db
        self.repo = PatientRepository()
        self.background_tasks = background_tasks

    def list_patients(
        self, page: int = 1, limit: int = 10, search: Optional[str] = None
    ) -> tuple[list[Patient], dict[str, int]]:
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive")
        limit = min(limit, MAX_PAGE_SIZE)
        search = search.strip() if search else None

        try:
            patients, total = self.repo.get_patients(self.db, page, limit, search)
        except SQLAlchemyError as e:
            logger.error(f"❌ Error fetching patients: {e}")
            raise DependencyError("Failed to fetch patients") from e

        return patients, {"current": page, "pages": math.ceil(total / limit), "total": total}

    def search_patients(self, query: Optional[str]) -> list[Patient]:
        """Quick lookup by name, email or phone, alphabetical"""
        query = (query or "").strip()
        if not query:
            raise ValidationError("Search query is required")
        try:
            return self.repo.search_patients(self.db, query, SEARCH_LIMIT)
        except SQLAlchemyError as e:
            logger.error(f"❌ Error searching patients for '{query}': {e}")
            raise DependencyError("Failed to search patients") from e

    def get_patient(self, patient_id: int) -> Patient:
        patient = self.repo.get_patient_by_id(self.db, patient_id)
        if not patient:
            raise NotFoundError("Patient not found")
        return patient

    def get_patient_with_visits(
        self, patient_id: int, page: int = 1, limit: int = 5
    ) -> tuple[Patient, list[Visit], dict[str, int]]:
        """Patient plus one page of visits, most recent first"""
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive")
        limit = min(limit, MAX_PAGE_SIZE)
        patient = self.get_patient(patient_id)
        visits, total = self.repo.get_visits(self.db, patient.id, page, limit)
        return patient, visits, {"current": page, "pages": math.ceil(total / limit), "total": total}

    def _ensure_unique(
        self, email: Optional[str], phone: Optional[str], exclude_id: Optional[int] = None
    ) -> None:
        duplicate = self.repo.find_duplicate(self.db, email, phone, exclude_id)
        if duplicate:
            field = "email" if email and duplicate.email == email else "phone"
            logger.warning(f"⚠️ Duplicate patient {field} rejected (existing patient {duplicate.id})")
            raise ValidationError(f"A patient with this {field} already exists")

    def create_patient(self, data: PatientCreate) -> Patient:
        """Manual entry from the dashboard"""
        logger.info(f"📥 Creating patient {data.fullName}")
        # Check-then-insert, not atomic under concurrent requests
        self._ensure_unique(data.email, data.phone)

        try:
            return self.repo.create_patient(
                self.db,
                full_name=data.fullName,
                phone=data.phone,
                age=data.age,
                gender=data.gender,
                email=data.email,
                address=data.address,
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Failed to create patient: {e}")
            raise DependencyError("Failed to create patient") from e

    def update_patient(self, patient_id: int, data: PatientUpdate) -> Patient:
        patient = self.get_patient(patient_id)
        provided = data.model_dump(exclude_unset=True)
        updates = {PATIENT_FIELDS[key]: value for key, value in provided.items()}

        if "full_name" in updates and updates["full_name"] is None:
            raise ValidationError("Full name cannot be empty")
        if "phone" in updates and updates["phone"] is None:
            raise ValidationError("Phone number cannot be empty")

        if updates.get("email") or updates.get("phone"):
            self._ensure_unique(updates.get("email"), updates.get("phone"), exclude_id=patient.id)

        try:
            patient = self.repo.update_patient(self.db, patient, **updates)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Failed to update patient {patient_id}: {e}")
            raise DependencyError("Failed to update patient") from e

        logger.info(f"📝 Updated patient {patient_id}: {', '.join(updates) or 'no changes'}")
        return patient

    def add_visit(self, patient_id: int, data: VisitCreate) -> Visit:
        """Append a visit. A prescription is also emailed to the patient when possible."""
        patient = self.get_patient(patient_id)
        prescription = data.prescription.to_document() if data.prescription else None

        try:
            visit = self.repo.add_visit(
                self.db,
                patient,
                problem=data.problem,
                diagnosis=data.diagnosis,
                prescription=prescription,
                created_by=data.createdBy,
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Failed to add visit for patient {patient_id}: {e}")
            raise DependencyError("Failed to add visit") from e

        logger.info(f"✅ Visit {visit.id} recorded for patient {patient_id}")
        if prescription and patient.email:
            if self.background_tasks is not None:
                self.background_tasks.add_task(
                    email_service.send_prescription_reminder,
                    patient.email,
                    patient.full_name,
                    prescription,
                )
            else:
                logger.warning("⚠️ No background task runner, prescription email not sent")
        return visit

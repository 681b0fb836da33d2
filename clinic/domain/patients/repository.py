"""Patient repository - Database operations for patients and their visits"""

from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ...models import Patient, Visit


class PatientRepository:
    """Repository for patient database operations"""

    @staticmethod
    def get_patients(
        db: Session, page: int, limit: int, search: Optional[str] = None
    ) -> tuple[list[Patient], int]:
        """Newest patients first, optionally filtered by name, email or phone"""
        query = db.query(Patient)
        if search:
            pattern = f"%{search}%"
            query = query.filter(
                or_(
                    Patient.full_name.ilike(pattern),
                    Patient.email.ilike(pattern),
                    Patient.phone.ilike(pattern),
                )
            )

        total = query.count()
        patients = (
            query.order_by(Patient.created_at.desc(), Patient.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return patients, total

    @staticmethod
    def search_patients(db: Session, term: str, limit: int = 20) -> list[Patient]:
        pattern = f"%{term}%"
        return (
            db.query(Patient)
            .filter(
                or_(
                    Patient.full_name.ilike(pattern),
                    Patient.email.ilike(pattern),
                    Patient.phone.ilike(pattern),
                )
            )
            .order_by(Patient.full_name.asc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def get_patient_by_id(db: Session, patient_id: int) -> Optional[Patient]:
        return db.query(Patient).filter(Patient.id == patient_id).first()

    @staticmethod
    def get_patient_by_email(db: Session, email: str) -> Optional[Patient]:
        """Emails are stored lower-cased, so callers pass the normalised form"""
        return (
            db.query(Patient)
            .filter(Patient.email == email.strip().lower())
            .order_by(Patient.id.asc())
            .first()
        )

    @staticmethod
    def find_duplicate(
        db: Session,
        email: Optional[str],
        phone: Optional[str],
        exclude_id: Optional[int] = None,
    ) -> Optional[Patient]:
        """Another patient already using this email or phone"""
        conditions = []
        if email:
            conditions.append(Patient.email == email)
        if phone:
            conditions.append(Patient.phone == phone)
        if not conditions:
            return None

        query = db.query(Patient).filter(or_(*conditions))
        if exclude_id is not None:
            query = query.filter(Patient.id != exclude_id)
        return query.first()

    @staticmethod
    def create_patient(db: Session, **patient_data) -> Patient:
        patient = Patient(**patient_data)
        db.add(patient)
        db.commit()
        db.refresh(patient)
        return patient

    @staticmethod
    def update_patient(db: Session, patient: Patient, **updates) -> Patient:
        """Update a patient with provided fields"""
        for key, value in updates.items():
            if hasattr(patient, key):
                setattr(patient, key, value)

        db.commit()
        db.refresh(patient)
        return patient

    @staticmethod
    def get_visits(
        db: Session, patient_id: int, page: int, limit: int
    ) -> tuple[list[Visit], int]:
        """Most recent visits first"""
        query = db.query(Visit).filter(Visit.patient_id == patient_id)
        total = query.with_entities(func.count(Visit.id)).scalar() or 0
        visits = (
            query.order_by(Visit.date.desc(), Visit.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return visits, total

    @staticmethod
    def add_visit(db: Session, patient: Patient, **visit_data) -> Visit:
        visit = Visit(patient_id=patient.id, **visit_data)
        db.add(visit)
        db.commit()
        db.refresh(visit)
        return visit

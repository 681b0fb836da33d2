"""Patient router - FastAPI endpoints for patient records"""

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session

from ...database import get_db
from .schemas import (
    Pagination,
    PatientCreate,
    PatientDetailEnvelope,
    PatientDetailResponse,
    PatientEnvelope,
    PatientListResponse,
    PatientResponse,
    PatientSearchResponse,
    PatientUpdate,
    VisitCreate,
    VisitEnvelope,
    VisitResponse,
)
from .service import PatientService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/patients", tags=["Patients"])


def get_patient_service(
    background_tasks: BackgroundTasks, db: Session = Depends(get_db)
) -> PatientService:
    """Dependency injection for PatientService"""
    return PatientService(db, background_tasks)


@router.get("", response_model=PatientListResponse)
async def get_patients(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    search: Optional[str] = Query(None),
    service: PatientService = Depends(get_patient_service),
):
    patients, pagination = service.list_patients(page, limit, search)
    return PatientListResponse(
        patients=[PatientResponse.from_model(p) for p in patients],
        pagination=Pagination(**pagination),
    )


@router.get("/search", response_model=PatientSearchResponse)
async def search_patients(
    query: Optional[str] = Query(None),
    service: PatientService = Depends(get_patient_service),
):
    patients = service.search_patients(query)
    return PatientSearchResponse(
        patients=[PatientResponse.from_model(p) for p in patients], count=len(patients)
    )


@router.get("/{patient_id}", response_model=PatientDetailEnvelope)
async def get_patient(
    patient_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(5, ge=1),
    service: PatientService = Depends(get_patient_service),
):
    """Patient record with a page of visits"""
    patient, visits, pagination = service.get_patient_with_visits(patient_id, page, limit)
    detail = PatientDetailResponse(
        **PatientResponse.from_model(patient).model_dump(),
        visits=[VisitResponse.from_model(v) for v in visits],
        totalVisits=pagination["total"],
        visitsPagination=Pagination(**pagination),
    )
    return PatientDetailEnvelope(patient=detail)


@router.post("", response_model=PatientEnvelope, status_code=201)
async def create_patient(
    data: PatientCreate,
    service: PatientService = Depends(get_patient_service),
):
    patient = service.create_patient(data)
    return PatientEnvelope(
        message="Patient created successfully", patient=PatientResponse.from_model(patient)
    )


@router.put("/{patient_id}", response_model=PatientEnvelope)
async def update_patient(
    patient_id: int,
    data: PatientUpdate,
    service: PatientService = Depends(get_patient_service),
):
    patient = service.update_patient(patient_id, data)
    return PatientEnvelope(
        message="Patient updated successfully", patient=PatientResponse.from_model(patient)
    )


@router.post("/{patient_id}/visits", response_model=VisitEnvelope, status_code=201)
async def add_visit(
    patient_id: int,
    data: VisitCreate,
    service: PatientService = Depends(get_patient_service),
):
    visit = service.add_visit(patient_id, data)
    return VisitEnvelope(message="Visit added successfully", visit=VisitResponse.from_model(visit))

"""
Admission API Entrypoint - Thin API with Command Dispatch
API receives payloads and dispatches commands through message bus
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel
from sqlalchemy import create_engine

import config
from admission import views
from admission.adapters import orm
from admission.adapters.ledger import TransactionLedger
from admission.adapters.notifications import RedisNotifier
from admission.domain.commands import (
    CreatePatientWithInfection,
    RetryInfectionCreation,
    RollbackPatientCreation,
)
from admission.domain.exceptions import (
    InfectionEventCreationError,
    PatientCreationError,
    PatientNotFound,
    RollbackError,
    TransactionDataError,
)
from admission.service_layer import messagebus
from admission.service_layer.coordinator import TransactionCoordinator
from admission.service_layer.loading import InMemoryLoadingIndicator
from admission.service_layer.unit_of_work import SqlAlchemyUnitOfWork, default_session_factory

logging.basicConfig(
    level=getattr(logging, config.get_log_level()),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Admission API",
    description="Coordinated admission of patients with an infection event",
    version="1.0.0"
)


# Initialize ORM mappers and the process-wide ledger (Cosmic Python pattern)
@app.on_event("startup")
def startup_event():
    engine = create_engine(config.get_postgres_uri())
    orm.metadata.create_all(engine)
    orm.start_mappers()
    session_factory = default_session_factory(engine)
    app.state.coordinator = TransactionCoordinator(
        # a fresh unit of work per saga step, never shared between requests
        uow_factory=lambda: SqlAlchemyUnitOfWork(session_factory=session_factory),
        ledger=TransactionLedger(),
        notifier=RedisNotifier(),
        loading=InMemoryLoadingIndicator(),
    )
    logger.info("Admission service initialized")


def get_coordinator(request: Request) -> TransactionCoordinator:
    return request.app.state.coordinator


# ---------- Request/Response models ----------

class AdmissionRequest(BaseModel):
    patient: Dict[str, Any]
    infection: Dict[str, Any]


class RetryRequest(BaseModel):
    patient_id: str
    infection: Dict[str, Any]


class CleanupRequest(BaseModel):
    max_age_hours: Optional[float] = None


# ---------- Endpoints ----------

@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "admission-api",
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


@app.post("/api/v1/admissions/infected", status_code=201)
def admit_patient_with_infection(
    body: AdmissionRequest,
    coordinator: TransactionCoordinator = Depends(get_coordinator),
):
    """
    Create a patient and its infection event as one operation.

    A 409 means the patient exists but the event does not: the response
    carries the ids and the actions the client offers the operator.
    """
    cmd = CreatePatientWithInfection(patient_data=body.patient, infection_data=body.infection)
    try:
        [result] = messagebus.handle(cmd, coordinator)
    except TransactionDataError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PatientCreationError as e:
        raise HTTPException(status_code=502, detail={
            "message": str(e),
            "transaction_id": e.transaction_id,
        })
    except InfectionEventCreationError as e:
        raise HTTPException(status_code=409, detail={
            "message": str(e),
            "transaction_id": e.transaction_id,
            "patient_id": e.patient_id,
            "actions": jsonable_encoder(e.actions),
        })

    return jsonable_encoder(result.to_dict())


@app.post("/api/v1/admissions/transactions/{transaction_id}/retry", status_code=201)
def retry_infection(
    transaction_id: str,
    body: RetryRequest,
    coordinator: TransactionCoordinator = Depends(get_coordinator),
):
    cmd = RetryInfectionCreation(
        transaction_id=transaction_id,
        patient_id=body.patient_id,
        infection_data=body.infection,
    )
    try:
        [infection_event] = messagebus.handle(cmd, coordinator)
    except TransactionDataError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PatientNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=502, detail=str(e))

    return jsonable_encoder(infection_event)


@app.post("/api/v1/admissions/patients/{patient_id}/rollback")
def rollback_patient(
    patient_id: str,
    transaction_id: Optional[str] = None,
    coordinator: TransactionCoordinator = Depends(get_coordinator),
):
    cmd = RollbackPatientCreation(patient_id=patient_id, transaction_id=transaction_id)
    try:
        messagebus.handle(cmd, coordinator)
    except RollbackError as e:
        raise HTTPException(status_code=500, detail={
            "message": str(e),
            "patient_id": patient_id,
            "manual_intervention_required": True,
        })

    return {"status": "rolled_back", "patient_id": patient_id}


@app.get("/api/v1/admissions/transactions/stats")
def transaction_stats(coordinator: TransactionCoordinator = Depends(get_coordinator)):
    return views.get_transaction_stats(coordinator.ledger)


@app.post("/api/v1/admissions/transactions/cleanup")
def cleanup_transactions(
    body: CleanupRequest,
    coordinator: TransactionCoordinator = Depends(get_coordinator),
):
    return views.cleanup_transactions(coordinator.ledger, body.max_age_hours)


@app.get("/api/v1/admissions/transactions/{transaction_id}")
def get_transaction(transaction_id: str, coordinator: TransactionCoordinator = Depends(get_coordinator)):
    record = views.get_transaction(transaction_id, coordinator.ledger)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Transaction {transaction_id} not found")
    return jsonable_encoder(record)


@app.get("/api/v1/admissions/patients/{patient_id}")
def get_patient(patient_id: str, coordinator: TransactionCoordinator = Depends(get_coordinator)):
    patient = views.get_patient(patient_id, coordinator.uow_factory())
    if patient is None:
        raise HTTPException(status_code=404, detail=f"Patient with ID {patient_id} not found")
    return jsonable_encoder(patient)


@app.get("/api/v1/admissions/loading")
def loading_state(coordinator: TransactionCoordinator = Depends(get_coordinator)):
    snapshot = getattr(coordinator.loading, "snapshot", None)
    if snapshot is None:
        return {"loading": None, "message": None}
    return snapshot()


def main():
    import uvicorn

    uvicorn.run(
        "admission.entrypoints.admission_api:app",
        host="0.0.0.0",
        port=config.get_api_port(),
        log_level=config.get_log_level().lower(),
    )

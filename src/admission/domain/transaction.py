"""Audit records for saga transactions."""

from __future__ import annotations
import copy
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from admission.domain.events import TransactionCompleted


class TransactionStatus(str, Enum):
    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"


class StepStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"


class SagaState(str, Enum):
    """Where a patient-with-infection transaction stopped."""
    STARTED = "started"
    PATIENT_CREATED = "patient_created"
    COMPLETED = "completed"
    FAILED = "failed"
    PARTIAL_FAILURE = "partial_failure"


# Transaction types
PATIENT_WITH_INFECTION = "patient_with_infection"
RETRY_INFECTION_CREATION = "retry_infection_creation"
ROLLBACK_PATIENT_CREATION = "rollback_patient_creation"

# Step names
VALIDATE = "validate"
CREATE_PATIENT = "create_patient"
CREATE_INFECTION_EVENT = "create_infection_event"
RECONCILE_PATIENT = "reconcile_patient"
DELETE_PATIENT = "delete_patient"

FINAL_STATUSES = (TransactionStatus.COMPLETED, TransactionStatus.FAILED)


def _value(status) -> str:
    return status.value if isinstance(status, Enum) else str(status)


@dataclass(frozen=True)
class TransactionStep:
    step: str
    status: str
    data: Any
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.step,
            "status": self.status,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class TransactionRecord:
    id: str
    type: str
    initial_data: Any
    status: TransactionStatus = TransactionStatus.STARTED
    steps: List[TransactionStep] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None
    events: List = field(default_factory=list, compare=False, repr=False)

    @property
    def is_finished(self) -> bool:
        return self.status in FINAL_STATUSES

    def add_step(self, step: str, status, data: Any = None) -> TransactionStep:
        entry = TransactionStep(
            step=step,
            status=_value(status),
            data=data,
            timestamp=datetime.now(timezone.utc),
        )
        self.steps.append(entry)
        return entry

    def complete(self, final_status: TransactionStatus) -> None:
        """Move the record to its final status and raise TransactionCompleted."""
        self.status = final_status
        self.completed_at = datetime.now(timezone.utc)
        self.events.append(
            TransactionCompleted(
                transaction_id=self.id,
                transaction_type=self.type,
                status=self.status.value,
                saga_state=self.saga_state.value,
                completed_at=self.completed_at,
            )
        )

    def snapshot(self) -> TransactionRecord:
        """Detached copy for readers; changes to it never reach the ledger."""
        return replace(
            self,
            initial_data=copy.deepcopy(self.initial_data),
            steps=copy.deepcopy(self.steps),
            events=[],
        )

    def step_status(self, step: str) -> Optional[str]:
        """Status of the latest entry for ``step``, or None if it never ran."""
        for entry in reversed(self.steps):
            if entry.step == step:
                return entry.status
        return None

    @property
    def saga_state(self) -> SagaState:
        patient_created = self.step_status(CREATE_PATIENT) == StepStatus.COMPLETED.value
        event_failed = self.step_status(CREATE_INFECTION_EVENT) == StepStatus.FAILED.value

        if patient_created and event_failed:
            return SagaState.PARTIAL_FAILURE
        if self.status == TransactionStatus.COMPLETED:
            return SagaState.COMPLETED
        if self.status == TransactionStatus.FAILED:
            return SagaState.FAILED
        if patient_created:
            return SagaState.PATIENT_CREATED
        return SagaState.STARTED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "status": self.status.value,
            "saga_state": self.saga_state.value,
            "initial_data": self.initial_data,
            "steps": [step.to_dict() for step in self.steps],
            "created_at": self.created_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }

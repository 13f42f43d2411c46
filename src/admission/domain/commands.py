"""Commands for the admission service."""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from shared.domain.commands import Command


@dataclass
class CreatePatientWithInfection(Command):
    """Command to admit a patient together with an infection event."""
    patient_data: Dict[str, Any]
    infection_data: Dict[str, Any]


@dataclass
class RetryInfectionCreation(Command):
    """Command to re-attempt the infection event of a partially failed transaction."""
    transaction_id: str
    patient_id: str
    infection_data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class RollbackPatientCreation(Command):
    """Command to delete the patient left behind by a partially failed transaction."""
    patient_id: str
    transaction_id: Optional[str] = None

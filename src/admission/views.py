"""
Views for read operations - separate from the saga's write path.

Transaction views read the ledger; patient views go through the unit of work
and serialize inside the session block.
"""
import logging
from datetime import timedelta
from typing import Any, Dict, Optional

from admission.adapters.ledger import TransactionLedger
from admission.domain.exceptions import PatientNotFound
from admission.service_layer.unit_of_work import AbstractAdmissionUnitOfWork
from shared.services.sanitizer import sanitize

logger = logging.getLogger(__name__)


def get_transaction(transaction_id: str, ledger: TransactionLedger) -> Optional[Dict[str, Any]]:
    record = ledger.get(transaction_id)
    if record is None:
        return None
    return record.to_dict()


def get_transaction_stats(ledger: TransactionLedger) -> Dict[str, Any]:
    stats = ledger.stats()
    for key in ("oldest_log", "newest_log"):
        if stats[key] is not None:
            stats[key] = stats[key].isoformat()
    return stats


def cleanup_transactions(ledger: TransactionLedger, max_age_hours: Optional[float] = None) -> Dict[str, Any]:
    max_age = timedelta(hours=max_age_hours) if max_age_hours is not None else None
    removed = ledger.cleanup_old_logs(max_age)
    return {"removed": removed, "remaining": len(ledger)}


def get_patient(patient_id: str, uow: AbstractAdmissionUnitOfWork) -> Optional[Dict[str, Any]]:
    """Patient with its clinical events, or None if the patient does not exist."""
    with uow:
        try:
            patient = uow.patients.get(patient_id)
        except PatientNotFound:
            return None
        events = uow.events.list_for_patient(patient_id)

        return {
            **sanitize(patient),
            "clinical_events": [sanitize(event) for event in events],
        }

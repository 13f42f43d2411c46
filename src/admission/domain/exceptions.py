"""Errors raised by the admission saga."""

from typing import List, Optional


class AdmissionError(Exception):
    """Base class for all admission service errors."""
    pass


class TransactionDataError(AdmissionError):
    """Pre-flight validation failure. Raised before anything is written."""
    pass


class InvalidInputError(TransactionDataError):
    pass


class MissingFieldError(TransactionDataError):
    def __init__(self, message: str, field: str):
        super().__init__(message)
        self.field = field


class InvalidDateError(TransactionDataError):
    pass


class FutureDateError(InvalidDateError):
    pass


class PatientCreationError(AdmissionError):
    """The patient write failed. Nothing was persisted."""

    def __init__(self, message: str, transaction_id: Optional[str] = None):
        super().__init__(message)
        self.transaction_id = transaction_id


class InfectionEventCreationError(AdmissionError):
    """
    The patient was persisted but the infection event was not.

    Carries what an operator needs to either retry the event creation or
    roll the patient back.
    """

    def __init__(
        self,
        message: str,
        transaction_id: str,
        patient_id: str,
        actions: Optional[List] = None,
    ):
        super().__init__(message)
        self.transaction_id = transaction_id
        self.patient_id = patient_id
        self.actions = actions or []


class RollbackError(AdmissionError):
    """Compensation failed; the patient record needs manual intervention."""

    def __init__(self, message: str, patient_id: Optional[str] = None):
        super().__init__(message)
        self.patient_id = patient_id


class DuplicateTransactionError(AdmissionError):
    pass


class PatientNotFound(AdmissionError):
    def __init__(self, patient_id: str):
        super().__init__(f"Paziente con ID {patient_id} non trovato")
        self.patient_id = patient_id


class MissingPatientReference(AdmissionError):
    """A clinical event was submitted without the id of its patient."""
    pass

"""
Saga coordinator for admitting a patient together with an infection event.

The patient and the clinical event live in separate tables of a backend that
offers no transaction spanning both, so the coordinator orders the writes
itself:

    STARTED -> PATIENT_CREATED -> COMPLETED
    STARTED -> FAILED                        (validation or patient write failed)
    STARTED -> PATIENT_CREATED -> PARTIAL_FAILURE

A partial failure is never compensated automatically. The operator is shown
a persistent warning and decides between ``retry_infection_creation`` and
``rollback_patient_creation``. Every outcome is written to the ledger before
the call returns or raises.
"""

from __future__ import annotations
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

from admission.adapters.ledger import TransactionLedger
from admission.adapters.notifications import AbstractNotifier, NotificationAction
from admission.domain import transaction as tx
from admission.domain.exceptions import (
    InfectionEventCreationError,
    PatientCreationError,
    RollbackError,
    TransactionDataError,
)
from admission.domain.model import ClinicalEvent, InfectionEventDraft, Patient, PatientDraft
from admission.service_layer.loading import AbstractLoadingIndicator, InMemoryLoadingIndicator
from admission.service_layer.unit_of_work import AbstractAdmissionUnitOfWork
from admission.service_layer.validation import TransactionValidator
from shared.services.sanitizer import sanitize

logger = logging.getLogger(__name__)

SUCCESS_MESSAGE = "Paziente e evento infezione creati con successo!"
RETRY_SUCCESS_MESSAGE = "Evento infezione creato con successo!"
ROLLBACK_SUCCESS_MESSAGE = "Rollback completato: paziente eliminato"

RETRY_ACTION = "retry_infection_creation"
ROLLBACK_ACTION = "rollback_patient_creation"


@dataclass
class TransactionResult:
    success: bool
    transaction_id: str
    patient: Patient
    infection_event: ClinicalEvent

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "transaction_id": self.transaction_id,
            "patient": sanitize(self.patient),
            "infection_event": sanitize(self.infection_event),
        }


class TransactionCoordinator:
    """
    Runs the admission saga. Every step opens its own unit of work from
    ``uow_factory``, so concurrent transactions share only the ledger.
    """

    def __init__(
        self,
        uow_factory: Callable[[], AbstractAdmissionUnitOfWork],
        ledger: TransactionLedger,
        notifier: AbstractNotifier,
        loading: Optional[AbstractLoadingIndicator] = None,
        validator: Optional[TransactionValidator] = None,
    ):
        self.uow_factory = uow_factory
        self.ledger = ledger
        self.notifier = notifier
        self.loading = loading or InMemoryLoadingIndicator()
        self.validator = validator or TransactionValidator()

    @contextmanager
    def _loading(self, message: str):
        self.loading.set_loading(True, message)
        try:
            yield
        finally:
            self.loading.set_loading(False)

    def execute_patient_with_infection_transaction(
        self,
        patient_data: Mapping[str, Any],
        infection_data: Mapping[str, Any],
    ) -> TransactionResult:
        """
        Create a patient and its infection event as one logical operation.

        Raises:
            TransactionDataError: input rejected, nothing written
            PatientCreationError: patient write failed, nothing written
            InfectionEventCreationError: patient written, event not; needs an operator decision
        """
        transaction_id = self.ledger.generate_id()
        self.ledger.begin(transaction_id, tx.PATIENT_WITH_INFECTION, {
            "patient_data": sanitize(patient_data),
            "infection_data": sanitize(infection_data),
        })

        with self._loading("Creazione paziente e evento infezione..."):
            try:
                self.validator.validate(patient_data, infection_data)
                patient_draft = PatientDraft.from_dict(patient_data)
                # the patient id is only known after the first write
                InfectionEventDraft.from_dict(None, infection_data)
            except TransactionDataError as e:
                logger.warning(f"Transaction {transaction_id} rejected: {e}")
                self.ledger.append_step(transaction_id, tx.VALIDATE, tx.StepStatus.FAILED, e)
                self.ledger.complete(transaction_id, tx.TransactionStatus.FAILED)
                self.notifier.error(str(e))
                raise

            patient = self._create_patient_step(transaction_id, patient_draft)
            infection_event = self._create_infection_event_step(transaction_id, patient, infection_data)
            patient = self._reconcile_patient_step(transaction_id, patient)

            self.ledger.complete(transaction_id, tx.TransactionStatus.COMPLETED)
            self.notifier.success(SUCCESS_MESSAGE)
            logger.info(
                f"Transaction {transaction_id} completed: patient {patient.id}, "
                f"infection event {infection_event.id}"
            )

            return TransactionResult(
                success=True,
                transaction_id=transaction_id,
                patient=patient,
                infection_event=infection_event,
            )

    def rollback_patient_creation(self, patient_id: str, transaction_id: Optional[str] = None) -> None:
        """Delete the patient left behind by a partial failure."""
        rollback_id = self.ledger.generate_id()
        self.ledger.begin(rollback_id, tx.ROLLBACK_PATIENT_CREATION, {
            "patient_id": patient_id,
            "original_transaction_id": transaction_id,
        })

        with self._loading("Rollback creazione paziente..."):
            try:
                with self.uow_factory() as uow:
                    deleted = uow.patients.delete(patient_id)
                    uow.commit()
            except Exception as e:
                logger.error(f"Rollback of patient {patient_id} failed: {e}")
                self.ledger.append_step(rollback_id, tx.DELETE_PATIENT, tx.StepStatus.FAILED, e)
                self.ledger.complete(rollback_id, tx.TransactionStatus.FAILED)
                message = f"Rollback fallito: {e}"
                self.notifier.error(
                    f"{message}. Il paziente {patient_id} richiede un intervento manuale.",
                    persistent=True,
                )
                raise RollbackError(message, patient_id=patient_id) from e

            if not deleted:
                logger.warning(f"Rollback: patient {patient_id} was already gone")
            self.ledger.append_step(rollback_id, tx.DELETE_PATIENT, tx.StepStatus.COMPLETED, {
                "patient_id": patient_id,
                "deleted": deleted,
            })
            self.ledger.complete(rollback_id, tx.TransactionStatus.COMPLETED)
            logger.info(f"Rollback completed: patient {patient_id} deleted")
            self.notifier.success(ROLLBACK_SUCCESS_MESSAGE)

    def retry_infection_creation(
        self,
        transaction_id: str,
        patient_id: str,
        infection_data: Mapping[str, Any],
    ) -> ClinicalEvent:
        """
        Re-attempt the infection event of a partially failed transaction.

        Failures are re-raised unwrapped: the operator has already seen the
        wrapped message of the original attempt.
        """
        retry_id = self.ledger.generate_id()
        self.ledger.begin(retry_id, tx.RETRY_INFECTION_CREATION, {
            "original_transaction_id": transaction_id,
            "patient_id": patient_id,
            "infection_data": sanitize(infection_data),
        })

        with self._loading("Creazione evento infezione..."):
            try:
                self.validator.validate_infection(infection_data)
                draft = InfectionEventDraft.from_dict(patient_id, infection_data)
                with self.uow_factory() as uow:
                    infection_event = uow.events.add(draft)
                    uow.commit()
            except Exception as e:
                logger.error(f"Retry of infection event for transaction {transaction_id} failed: {e}")
                step = tx.VALIDATE if isinstance(e, TransactionDataError) else tx.CREATE_INFECTION_EVENT
                self.ledger.append_step(retry_id, step, tx.StepStatus.FAILED, e)
                self.ledger.complete(retry_id, tx.TransactionStatus.FAILED)
                self.notifier.error(str(e))
                raise

            self.ledger.append_step(retry_id, tx.CREATE_INFECTION_EVENT, tx.StepStatus.COMPLETED, infection_event)
            self._reconcile_patient_step(retry_id, None, patient_id=patient_id)

            self.ledger.complete(retry_id, tx.TransactionStatus.COMPLETED)
            self.notifier.success(RETRY_SUCCESS_MESSAGE)
            return infection_event

    def _create_patient_step(self, transaction_id: str, draft: PatientDraft) -> Patient:
        try:
            with self.uow_factory() as uow:
                patient = uow.patients.add(draft)
                uow.commit()
            if patient is None or not patient.id:
                raise ValueError("nessun ID restituito")
        except Exception as e:
            logger.error(f"Patient creation failed in transaction {transaction_id}: {e}")
            self.ledger.append_step(transaction_id, tx.CREATE_PATIENT, tx.StepStatus.FAILED, e)
            self.ledger.complete(transaction_id, tx.TransactionStatus.FAILED)
            message = f"Fallimento creazione paziente: {e}"
            self.notifier.error(message)
            raise PatientCreationError(message, transaction_id=transaction_id) from e

        self.ledger.append_step(transaction_id, tx.CREATE_PATIENT, tx.StepStatus.COMPLETED, patient)
        logger.info(f"Patient created: ID {patient.id}")
        return patient

    def _create_infection_event_step(
        self,
        transaction_id: str,
        patient: Patient,
        infection_data: Mapping[str, Any],
    ) -> ClinicalEvent:
        try:
            draft = InfectionEventDraft.from_dict(patient.id, infection_data)
            with self.uow_factory() as uow:
                infection_event = uow.events.add(draft)
                uow.commit()
            if infection_event is None or not infection_event.id:
                raise ValueError("nessun ID restituito")
        except Exception as e:
            logger.error(f"Infection event creation failed in transaction {transaction_id}: {e}")
            self.ledger.append_step(transaction_id, tx.CREATE_INFECTION_EVENT, tx.StepStatus.FAILED, e)
            self.ledger.complete(transaction_id, tx.TransactionStatus.FAILED)

            actions = self.recovery_actions(transaction_id, patient.id)
            self.notifier.warning(
                f"Paziente creato (ID {patient.id}) ma creazione evento infezione fallita: {e}. "
                f"Scegli se creare comunque l'evento o annullare la creazione del paziente.",
                persistent=True,
                actions=actions,
            )
            raise InfectionEventCreationError(
                f"Fallimento creazione evento infezione: {e}",
                transaction_id=transaction_id,
                patient_id=patient.id,
                actions=actions,
            ) from e

        self.ledger.append_step(transaction_id, tx.CREATE_INFECTION_EVENT, tx.StepStatus.COMPLETED, infection_event)
        logger.info(f"Infection event created: ID {infection_event.id}")
        return infection_event

    def _reconcile_patient_step(
        self,
        transaction_id: str,
        patient: Optional[Patient],
        patient_id: Optional[str] = None,
    ) -> Optional[Patient]:
        """Re-read the patient; the repository owns the derived infection fields."""
        patient_id = patient_id or patient.id
        try:
            with self.uow_factory() as uow:
                reconciled = uow.patients.get(patient_id)
        except Exception as e:
            logger.warning(f"Could not reconcile patient {patient_id}, keeping the created record: {e}")
            self.ledger.append_step(transaction_id, tx.RECONCILE_PATIENT, tx.StepStatus.FAILED, e)
            return patient

        if not reconciled.infected:
            logger.warning(f"Patient {patient_id}: infected flag not synchronized")
        if reconciled.infection_date is None:
            logger.warning(f"Patient {patient_id}: infection_date not synchronized")

        self.ledger.append_step(transaction_id, tx.RECONCILE_PATIENT, tx.StepStatus.COMPLETED, {
            "patient_id": patient_id,
            "infected": reconciled.infected,
            "infection_date": reconciled.infection_date,
        })
        return reconciled

    @staticmethod
    def recovery_actions(transaction_id: str, patient_id: str):
        data = {"transaction_id": transaction_id, "patient_id": patient_id}
        return [
            NotificationAction(label="Crea Comunque", action=RETRY_ACTION, data=data),
            NotificationAction(label="Annulla", action=ROLLBACK_ACTION, data=data),
        ]

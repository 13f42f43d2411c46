import abc
import logging
from typing import List
from uuid import uuid4

from admission.domain import model
from admission.domain.exceptions import MissingPatientReference, PatientNotFound

logger = logging.getLogger(__name__)


class AbstractPatientRepository(abc.ABC):

    def add(self, draft: model.PatientDraft) -> model.Patient:
        patient = model.Patient.from_draft(str(uuid4()), draft)
        self._add(patient)
        return patient

    def get(self, patient_id: str) -> model.Patient:
        patient = self._get(patient_id)
        if patient is None:
            raise PatientNotFound(patient_id)
        return patient

    def delete(self, patient_id: str) -> bool:
        """Delete a patient. Returns False when there was nothing to delete."""
        return self._delete(patient_id)

    @abc.abstractmethod
    def _add(self, patient: model.Patient):
        raise NotImplementedError

    @abc.abstractmethod
    def _get(self, patient_id: str) -> model.Patient:
        raise NotImplementedError

    @abc.abstractmethod
    def _delete(self, patient_id: str) -> bool:
        raise NotImplementedError


class AbstractClinicalEventRepository(abc.ABC):

    def add(self, draft: model.InfectionEventDraft) -> model.ClinicalEvent:
        if not draft.patient_id:
            raise MissingPatientReference("Evento clinico senza paziente associato")
        event = model.ClinicalEvent.from_draft(str(uuid4()), draft)
        self._add(event)
        return event

    def list_for_patient(self, patient_id: str) -> List[model.ClinicalEvent]:
        return self._list_for_patient(patient_id)

    @abc.abstractmethod
    def _add(self, event: model.ClinicalEvent):
        raise NotImplementedError

    @abc.abstractmethod
    def _list_for_patient(self, patient_id: str) -> List[model.ClinicalEvent]:
        raise NotImplementedError


class SqlAlchemyPatientRepository(AbstractPatientRepository):
    def __init__(self, session):
        self.session = session

    def _add(self, patient):
        self.session.add(patient)

    def _get(self, patient_id):
        return self.session.query(model.Patient).filter_by(id=patient_id).first()

    def _delete(self, patient_id):
        patient = self._get(patient_id)
        if patient is None:
            logger.warning(f"Patient {patient_id} not found, nothing to delete")
            return False

        # Events reference the patient, remove them first
        self.session.query(model.ClinicalEvent).filter_by(patient_id=patient_id).delete()
        self.session.delete(patient)
        return True


class SqlAlchemyClinicalEventRepository(AbstractClinicalEventRepository):
    def __init__(self, session):
        self.session = session

    def _add(self, event):
        patient = self.session.query(model.Patient).filter_by(id=event.patient_id).first()
        if patient is None:
            raise PatientNotFound(event.patient_id)

        self.session.add(event)
        if event.event_type == model.INFECTION_EVENT_TYPE:
            self._sync_patient_infection_status(patient)

    def _list_for_patient(self, patient_id):
        return (
            self.session.query(model.ClinicalEvent)
            .filter_by(patient_id=patient_id)
            .order_by(model.ClinicalEvent.event_date)
            .all()
        )

    def _sync_patient_infection_status(self, patient: model.Patient):
        """Derive the infection flag and date from the most recent open infection."""
        latest = (
            self.session.query(model.ClinicalEvent)
            .filter_by(patient_id=patient.id, event_type=model.INFECTION_EVENT_TYPE, event_end_date=None)
            .order_by(model.ClinicalEvent.event_date.desc())
            .first()
        )
        patient.infected = latest is not None
        patient.infection_date = latest.event_date if latest else None
        logger.info(f"Infection status for patient {patient.id} updated: infected={patient.infected}")

"""Unit tests for the patient-with-infection saga."""
from datetime import date, timedelta

import pytest

from admission.domain.exceptions import (
    FutureDateError,
    InfectionEventCreationError,
    MissingFieldError,
    PatientCreationError,
    PatientNotFound,
    RollbackError,
)
from admission.domain.model import INFECTION_EVENT_TYPE
from admission.domain.transaction import SagaState, TransactionStatus
from admission.service_layer.coordinator import (
    RETRY_ACTION,
    ROLLBACK_ACTION,
    ROLLBACK_SUCCESS_MESSAGE,
    SUCCESS_MESSAGE,
)

YESTERDAY = date.today() - timedelta(days=1)


def steps_of(ledger, transaction_id):
    return [(s.step, s.status) for s in ledger.get(transaction_id).steps]


def only_transaction(ledger, transaction_type=None):
    records = [r for r in ledger.list() if transaction_type is None or r.type == transaction_type]
    assert len(records) == 1
    return records[0]


class TestPatientWithInfection:

    def test_happy_path_creates_patient_and_event(self, coordinator, uow, notifier, ledger,
                                                  patient_data, infection_data):
        result = coordinator.execute_patient_with_infection_transaction(patient_data, infection_data)

        assert result.success is True
        assert result.transaction_id.startswith("tx_")
        assert result.patient.id
        assert result.infection_event.id

        draft = uow.patients.created[0]
        assert draft.infected is True
        assert draft.infection_date is None
        assert draft.birth_date == date(1960, 4, 12)

        event_draft = uow.events.created[0]
        assert event_draft.patient_id == result.patient.id
        assert event_draft.event_type == INFECTION_EVENT_TYPE
        assert event_draft.event_date == YESTERDAY
        assert event_draft.pathogen_agent == "Klebsiella pneumoniae"
        assert event_draft.event_end_date is None

        assert [n.message for n in notifier.sent] == [SUCCESS_MESSAGE]

        record = ledger.get(result.transaction_id)
        assert record.status == TransactionStatus.COMPLETED
        assert record.saga_state == SagaState.COMPLETED
        assert record.completed_at is not None
        assert steps_of(ledger, result.transaction_id)[:2] == [
            ("create_patient", "completed"),
            ("create_infection_event", "completed"),
        ]

    def test_result_carries_the_reconciled_patient(self, coordinator, patient_data, infection_data):
        result = coordinator.execute_patient_with_infection_transaction(patient_data, infection_data)

        assert result.patient.infected is True
        assert result.patient.infection_date == YESTERDAY

    def test_initial_data_is_sanitized_in_the_ledger(self, coordinator, ledger, patient_data, infection_data):
        patient_data["token"] = "abc"

        result = coordinator.execute_patient_with_infection_transaction(patient_data, infection_data)

        initial = ledger.get(result.transaction_id).initial_data
        assert initial["patient_data"]["token"] == "[REDACTED]"
        assert initial["patient_data"]["nome"] == "Mario"
        assert initial["infection_data"] == infection_data

    def test_partial_failure_keeps_the_patient_and_offers_recovery(
            self, coordinator, uow, notifier, ledger, patient_data, infection_data):
        uow.events.fail_with = RuntimeError("DB down")

        with pytest.raises(InfectionEventCreationError) as exc_info:
            coordinator.execute_patient_with_infection_transaction(patient_data, infection_data)

        error = exc_info.value
        assert str(error) == "Fallimento creazione evento infezione: DB down"
        assert error.patient_id in uow.store
        assert [a.action for a in error.actions] == [RETRY_ACTION, ROLLBACK_ACTION]
        assert [a.label for a in error.actions] == ["Crea Comunque", "Annulla"]
        assert error.actions[0].data == {
            "transaction_id": error.transaction_id,
            "patient_id": error.patient_id,
        }

        warning = notifier.of_level("warning")[0]
        assert warning.persistent is True
        assert "DB down" in warning.message
        assert warning.actions == error.actions
        assert notifier.of_level("success") == []

        record = ledger.get(error.transaction_id)
        assert record.status == TransactionStatus.FAILED
        assert record.saga_state == SagaState.PARTIAL_FAILURE
        assert steps_of(ledger, error.transaction_id) == [
            ("create_patient", "completed"),
            ("create_infection_event", "failed"),
        ]
        assert record.steps[1].data["error"] == "DB down"

    def test_patient_creation_failure_writes_nothing_else(
            self, coordinator, uow, notifier, ledger, patient_data, infection_data):
        uow.patients.fail_with = RuntimeError("connection refused")

        with pytest.raises(PatientCreationError, match="Fallimento creazione paziente: connection refused") as exc_info:
            coordinator.execute_patient_with_infection_transaction(patient_data, infection_data)

        assert uow.events.created == []
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert notifier.of_level("error")[0].message == "Fallimento creazione paziente: connection refused"

        record = ledger.get(exc_info.value.transaction_id)
        assert record.status == TransactionStatus.FAILED
        assert record.saga_state == SagaState.FAILED
        assert steps_of(ledger, record.id) == [("create_patient", "failed")]

    def test_future_event_date_makes_no_writes(self, coordinator, uow, notifier, ledger, patient_data):
        tomorrow = (date.today() + timedelta(days=1)).isoformat()

        with pytest.raises(FutureDateError):
            coordinator.execute_patient_with_infection_transaction(patient_data, {"event_date": tomorrow})

        assert uow.patients.created == []
        assert uow.events.created == []
        assert uow.commits == 0
        assert len(notifier.of_level("error")) == 1

        record = only_transaction(ledger)
        assert record.status == TransactionStatus.FAILED
        assert steps_of(ledger, record.id) == [("validate", "failed")]

    def test_first_missing_field_is_reported(self, coordinator, uow, infection_data):
        with pytest.raises(MissingFieldError) as exc_info:
            coordinator.execute_patient_with_infection_transaction({"nome": "Mario"}, infection_data)

        assert "cognome" in str(exc_info.value)
        assert uow.patients.created == []

    @pytest.mark.parametrize("fail", ["patients", "events", None])
    def test_loading_is_always_cleared(self, coordinator, uow, loading, patient_data, infection_data, fail):
        if fail is not None:
            getattr(uow, fail).fail_with = RuntimeError("boom")

        try:
            coordinator.execute_patient_with_infection_transaction(patient_data, infection_data)
        except (PatientCreationError, InfectionEventCreationError):
            pass

        assert loading.calls == [True, False]

    def test_loading_is_cleared_after_validation_failure(self, coordinator, loading, infection_data):
        with pytest.raises(MissingFieldError):
            coordinator.execute_patient_with_infection_transaction({}, infection_data)

        assert loading.calls == [True, False]

    def test_reconcile_failure_does_not_fail_the_saga(
            self, coordinator, uow, ledger, patient_data, infection_data, caplog):
        uow.patients.fail_get_with = RuntimeError("read timeout")

        result = coordinator.execute_patient_with_infection_transaction(patient_data, infection_data)

        assert result.success is True
        assert result.patient is not None
        assert ledger.get(result.transaction_id).status == TransactionStatus.COMPLETED
        assert ("reconcile_patient", "failed") in steps_of(ledger, result.transaction_id)
        assert "read timeout" in caplog.text

    def test_each_run_gets_its_own_transaction(self, coordinator, ledger, patient_data, infection_data):
        first = coordinator.execute_patient_with_infection_transaction(patient_data, infection_data)
        second = coordinator.execute_patient_with_infection_transaction(patient_data, infection_data)

        assert first.transaction_id != second.transaction_id
        assert first.patient.id != second.patient.id
        assert len(ledger) == 2


class TestRollback:

    def test_rollback_deletes_the_patient(self, coordinator, uow, notifier, ledger, patient_data, infection_data):
        uow.events.fail_with = RuntimeError("DB down")
        with pytest.raises(InfectionEventCreationError) as exc_info:
            coordinator.execute_patient_with_infection_transaction(patient_data, infection_data)
        error = exc_info.value

        coordinator.rollback_patient_creation(error.patient_id, transaction_id=error.transaction_id)

        assert uow.patients.deleted == [error.patient_id]
        assert error.patient_id not in uow.store
        assert notifier.sent[-1].level == "success"
        assert notifier.sent[-1].message == ROLLBACK_SUCCESS_MESSAGE

        rollback = only_transaction(ledger, "rollback_patient_creation")
        assert rollback.status == TransactionStatus.COMPLETED
        assert rollback.initial_data["original_transaction_id"] == error.transaction_id
        assert steps_of(ledger, rollback.id) == [("delete_patient", "completed")]

    def test_rollback_of_missing_patient_is_idempotent(self, coordinator, uow, ledger):
        coordinator.rollback_patient_creation("p-gone")

        rollback = only_transaction(ledger)
        assert rollback.status == TransactionStatus.COMPLETED
        assert rollback.steps[0].data == {"patient_id": "p-gone", "deleted": False}

    def test_rollback_failure_needs_manual_intervention(self, coordinator, uow, notifier, ledger, loading):
        uow.patients.fail_delete_with = RuntimeError("FK violation")

        with pytest.raises(RollbackError, match="Rollback fallito: FK violation") as exc_info:
            coordinator.rollback_patient_creation("p-1")

        assert exc_info.value.patient_id == "p-1"
        error = notifier.of_level("error")[0]
        assert error.persistent is True
        assert "p-1" in error.message
        assert only_transaction(ledger).status == TransactionStatus.FAILED
        assert loading.calls == [True, False]


class TestRetry:

    @pytest.fixture
    def partial_failure(self, coordinator, uow, patient_data, infection_data):
        uow.events.fail_with = RuntimeError("DB down")
        with pytest.raises(InfectionEventCreationError) as exc_info:
            coordinator.execute_patient_with_infection_transaction(patient_data, infection_data)
        uow.events.fail_with = None
        return exc_info.value

    def test_retry_creates_the_event_and_syncs_the_patient(
            self, coordinator, uow, notifier, ledger, partial_failure, infection_data):
        event = coordinator.retry_infection_creation(
            partial_failure.transaction_id, partial_failure.patient_id, infection_data,
        )

        assert event.patient_id == partial_failure.patient_id
        assert event.event_type == INFECTION_EVENT_TYPE
        patient = uow.store[partial_failure.patient_id]
        assert patient.infected is True
        assert patient.infection_date == YESTERDAY
        assert notifier.sent[-1].level == "success"

        retry = only_transaction(ledger, "retry_infection_creation")
        assert retry.status == TransactionStatus.COMPLETED
        assert retry.initial_data["original_transaction_id"] == partial_failure.transaction_id
        assert steps_of(ledger, retry.id) == [
            ("create_infection_event", "completed"),
            ("reconcile_patient", "completed"),
        ]
        # the original record keeps its outcome
        assert ledger.get(partial_failure.transaction_id).saga_state == SagaState.PARTIAL_FAILURE

    def test_retry_failure_is_raised_unwrapped(self, coordinator, uow, notifier, ledger,
                                               partial_failure, infection_data, loading):
        boom = RuntimeError("still down")
        uow.events.fail_with = boom
        loading.calls.clear()

        with pytest.raises(RuntimeError) as exc_info:
            coordinator.retry_infection_creation(
                partial_failure.transaction_id, partial_failure.patient_id, infection_data,
            )

        assert exc_info.value is boom
        assert notifier.sent[-1].level == "error"
        assert notifier.sent[-1].message == "still down"
        retry = only_transaction(ledger, "retry_infection_creation")
        assert steps_of(ledger, retry.id) == [("create_infection_event", "failed")]
        assert loading.calls == [True, False]

    def test_retry_validates_the_event_date(self, coordinator, uow, ledger, partial_failure):
        tomorrow = (date.today() + timedelta(days=1)).isoformat()

        with pytest.raises(FutureDateError):
            coordinator.retry_infection_creation(
                partial_failure.transaction_id, partial_failure.patient_id, {"event_date": tomorrow},
            )

        retry = only_transaction(ledger, "retry_infection_creation")
        assert steps_of(ledger, retry.id) == [("validate", "failed")]

    def test_retry_for_unknown_patient(self, coordinator, infection_data):
        with pytest.raises(PatientNotFound):
            coordinator.retry_infection_creation("tx_1_a", "p-unknown", infection_data)

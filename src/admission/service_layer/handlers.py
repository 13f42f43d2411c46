import logging

import config
from admission.domain.commands import (
    CreatePatientWithInfection,
    RetryInfectionCreation,
    RollbackPatientCreation,
)
from admission.domain.events import TransactionCompleted
from admission.service_layer.coordinator import TransactionCoordinator

logger = logging.getLogger(__name__)


def create_patient_with_infection(
    command: CreatePatientWithInfection,
    coordinator: TransactionCoordinator,
):
    """
    Admit a patient together with an infection event.

    Returns:
        TransactionResult of the saga
    """
    logger.info("Processing CreatePatientWithInfection command")
    return coordinator.execute_patient_with_infection_transaction(
        command.patient_data,
        command.infection_data,
    )


def retry_infection_creation(
    command: RetryInfectionCreation,
    coordinator: TransactionCoordinator,
):
    logger.info(f"Processing RetryInfectionCreation command for transaction {command.transaction_id}")
    return coordinator.retry_infection_creation(
        command.transaction_id,
        command.patient_id,
        command.infection_data,
    )


def rollback_patient_creation(
    command: RollbackPatientCreation,
    coordinator: TransactionCoordinator,
):
    logger.info(f"Processing RollbackPatientCreation command for patient {command.patient_id}")
    coordinator.rollback_patient_creation(command.patient_id, transaction_id=command.transaction_id)
    return command.patient_id


def publish_transaction_completed(event: TransactionCompleted, coordinator: TransactionCoordinator):
    """
    Publish TransactionCompleted so dashboards and the audit archive can follow the saga.

    Args:
        event: TransactionCompleted event
        coordinator: unused, kept for the common handler signature
    """
    logger.info(f"Publishing TransactionCompleted event for {event.transaction_id}")
    try:
        # Import here so the Redis client is only created when something is published
        from admission.adapters import redis_adapter

        redis_adapter.publish(config.get_transaction_channel(), event)
        logger.info(f"Published TransactionCompleted event for {event.transaction_id}")

    except Exception as e:
        logger.error(f"Failed to publish TransactionCompleted event for {event.transaction_id}: {e}")
        # Don't re-raise - external failures shouldn't break the flow

# pylint: disable=broad-except
"""Message bus for the admission service following Cosmic Python pattern."""

from __future__ import annotations
import logging
from typing import List, Dict, Callable, Type, Union, TYPE_CHECKING

from shared.domain.commands import Command, Event
from admission.service_layer import handlers
from admission.domain.events import TransactionCompleted
from admission.domain.commands import (
    CreatePatientWithInfection,
    RetryInfectionCreation,
    RollbackPatientCreation,
)

if TYPE_CHECKING:
    from admission.service_layer.coordinator import TransactionCoordinator

logger = logging.getLogger(__name__)

Message = Union[
    CreatePatientWithInfection,
    RetryInfectionCreation,
    RollbackPatientCreation,
    TransactionCompleted,
]


def handle(
    message: Message,
    coordinator: TransactionCoordinator,
):
    """Handle message (command or event) with the appropriate handler."""
    results = []
    queue = [message]

    while queue:
        message = queue.pop(0)

        if isinstance(message, Event):
            handle_event(message, queue, coordinator)
        elif isinstance(message, Command):
            cmd_result = handle_command(message, queue, coordinator)
            results.append(cmd_result)
        else:
            raise Exception(f"{message} was not an Event or Command")

    return results


def handle_event(
    event: Event,
    queue: List[Message],
    coordinator: TransactionCoordinator,
):
    """Handle event by calling all registered event handlers."""
    for handler in EVENT_HANDLERS[type(event)]:
        try:
            logger.debug(f"handling event {event} with handler {handler}")
            handler(event, coordinator=coordinator)
            queue.extend(coordinator.ledger.collect_new_events())
        except Exception:
            logger.exception("Exception handling event %s", event)
            continue


def handle_command(
    command: Command,
    queue: List[Message],
    coordinator: TransactionCoordinator,
):
    """Handle command by calling the registered command handler."""
    logger.debug(f"handling command {command}")
    try:
        handler = COMMAND_HANDLERS[type(command)]
        result = handler(command, coordinator=coordinator)
        queue.extend(coordinator.ledger.collect_new_events())
        return result
    except Exception:
        logger.exception("Exception handling command %s", command)
        # Failed sagas are recorded too, publish them before propagating
        for event in list(coordinator.ledger.collect_new_events()):
            handle_event(event, queue, coordinator)
        raise


# Event handlers - multiple handlers can respond to same event
EVENT_HANDLERS = {
    TransactionCompleted: [
        handlers.publish_transaction_completed,
    ],
}  # type: Dict[Type[Event], List[Callable]]

# Command handlers - single handler per command type
COMMAND_HANDLERS = {
    CreatePatientWithInfection: handlers.create_patient_with_infection,
    RetryInfectionCreation: handlers.retry_infection_creation,
    RollbackPatientCreation: handlers.rollback_patient_creation,
}  # type: Dict[Type[Command], Callable]

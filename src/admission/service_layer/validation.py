"""Pre-flight checks run before the saga writes anything."""

import logging
from collections.abc import Mapping
from datetime import date, datetime, timezone
from typing import Any, Callable, Optional

from admission.domain.exceptions import (
    FutureDateError,
    InvalidDateError,
    InvalidInputError,
    MissingFieldError,
)
from admission.domain.model import REQUIRED_PATIENT_FIELDS, get_field, is_blank, parse_temporal

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TransactionValidator:
    """
    Validates the combined (patient, infection event) input.

    The order of the checks is part of the contract: callers and tests rely
    on the *first* offending field being the one reported.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self.clock = clock or _utcnow

    def validate(self, patient_data: Any, infection_data: Any) -> None:
        if not isinstance(patient_data, Mapping):
            raise InvalidInputError("Dati paziente non validi")
        if not isinstance(infection_data, Mapping):
            raise InvalidInputError("Dati infezione non validi")

        for field in REQUIRED_PATIENT_FIELDS:
            if is_blank(get_field(patient_data, field)):
                raise MissingFieldError(f"Campo paziente obbligatorio mancante: {field}", field=field)

        self.parse_event_date(infection_data)
        logger.debug("Transaction data validated")

    def validate_infection(self, infection_data: Any) -> None:
        """Check only the infection half, for retries against an existing patient."""
        if not isinstance(infection_data, Mapping):
            raise InvalidInputError("Dati infezione non validi")
        self.parse_event_date(infection_data)

    def parse_event_date(self, infection_data: Mapping) -> date:
        try:
            event_date = parse_temporal(get_field(infection_data, "event_date"))
        except ValueError as e:
            raise InvalidDateError("Data evento infezione non valida") from e

        if self._is_future(event_date):
            raise FutureDateError("La data dell'evento di infezione non può essere nel futuro")

        return event_date.date() if isinstance(event_date, datetime) else event_date

    def _is_future(self, value) -> bool:
        now = self.clock()
        if now.tzinfo is None:
            now = now.astimezone()
        if isinstance(value, datetime):
            if value.tzinfo is None:
                # naive timestamps are local wall-clock time
                return value > now.astimezone().replace(tzinfo=None)
            return value > now
        return value > now.astimezone().date()

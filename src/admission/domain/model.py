"""Domain model for patients admitted with an infection event."""

from __future__ import annotations
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Mapping, Optional, Union

from admission.domain.exceptions import InvalidDateError

INFECTION_EVENT_TYPE = "infection"

REQUIRED_PATIENT_FIELDS = (
    "nome",
    "cognome",
    "birth_date",
    "admission_date",
    "diagnosis",
    "department",
)

# camelCase spellings sent by the web client
FIELD_ALIASES = {
    "birth_date": "birthDate",
    "admission_date": "admissionDate",
    "infection_date": "infectionDate",
    "event_date": "eventDate",
    "event_end_date": "eventEndDate",
    "pathogen_agent": "pathogenAgent",
    "patient_id": "patientId",
}


def get_field(data: Mapping[str, Any], name: str) -> Any:
    """Read a payload field by its snake_case name, falling back to its camelCase alias."""
    if name in data:
        return data[name]
    alias = FIELD_ALIASES.get(name)
    if alias is not None:
        return data.get(alias)
    return None


def is_blank(value: Any) -> bool:
    return value is None or str(value).strip() == ""


def parse_temporal(value: Any) -> Union[date, datetime]:
    """
    Parse a date or date-time given as ``date``, ``datetime`` or ISO-8601 string.

    Date-only strings come back as ``date`` so callers can tell them apart
    from timestamps. Raises ValueError when the value cannot be parsed.
    """
    if isinstance(value, (date, datetime)):
        return value
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Not a date: {value!r}")

    text = value.strip()
    if len(text) == 10:
        return date.fromisoformat(text)
    return datetime.fromisoformat(text.replace("Z", "+00:00"))


def as_date(value: Any) -> date:
    parsed = parse_temporal(value)
    if isinstance(parsed, datetime):
        return parsed.date()
    return parsed


def _optional_text(value: Any) -> Optional[str]:
    if is_blank(value):
        return None
    return str(value).strip()


@dataclass
class PatientDraft:
    nome: str
    cognome: str
    birth_date: date
    admission_date: date
    diagnosis: str
    department: str
    infected: bool = True
    infection_date: Optional[date] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PatientDraft:
        """
        Build the draft the saga persists in its first step.

        The infection flag is forced on and the infection date left empty:
        the clinical event repository fills it in once the event exists.
        """
        dates = {}
        for field in ("birth_date", "admission_date"):
            try:
                dates[field] = as_date(get_field(data, field))
            except ValueError as e:
                raise InvalidDateError(f"Data paziente non valida: {field}") from e

        return cls(
            nome=str(get_field(data, "nome")).strip(),
            cognome=str(get_field(data, "cognome")).strip(),
            birth_date=dates["birth_date"],
            admission_date=dates["admission_date"],
            diagnosis=str(get_field(data, "diagnosis")).strip(),
            department=str(get_field(data, "department")).strip(),
            infected=True,
            infection_date=None,
        )


@dataclass
class InfectionEventDraft:
    patient_id: Optional[str]
    event_date: date
    pathogen_agent: Optional[str] = None
    description: Optional[str] = None
    event_type: str = INFECTION_EVENT_TYPE
    event_end_date: Optional[date] = None

    @classmethod
    def from_dict(cls, patient_id: Optional[str], data: Mapping[str, Any]) -> InfectionEventDraft:
        try:
            event_date = as_date(get_field(data, "event_date"))
        except ValueError as e:
            raise InvalidDateError("Data evento infezione non valida") from e

        return cls(
            patient_id=patient_id,
            event_date=event_date,
            pathogen_agent=_optional_text(get_field(data, "pathogen_agent")),
            description=_optional_text(get_field(data, "description")),
            event_type=INFECTION_EVENT_TYPE,
            event_end_date=None,
        )


@dataclass
class Patient:
    id: str
    nome: str
    cognome: str
    birth_date: date
    admission_date: date
    diagnosis: str
    department: str
    infected: bool = False
    infection_date: Optional[date] = None

    @classmethod
    def from_draft(cls, patient_id: str, draft: PatientDraft) -> Patient:
        return cls(
            id=patient_id,
            nome=draft.nome,
            cognome=draft.cognome,
            birth_date=draft.birth_date,
            admission_date=draft.admission_date,
            diagnosis=draft.diagnosis,
            department=draft.department,
            infected=draft.infected,
            infection_date=draft.infection_date,
        )


@dataclass
class ClinicalEvent:
    id: str
    patient_id: str
    event_type: str
    event_date: date
    pathogen_agent: Optional[str] = None
    description: Optional[str] = None
    event_end_date: Optional[date] = None

    @classmethod
    def from_draft(cls, event_id: str, draft: InfectionEventDraft) -> ClinicalEvent:
        return cls(
            id=event_id,
            patient_id=draft.patient_id,
            event_type=draft.event_type,
            event_date=draft.event_date,
            pathogen_agent=draft.pathogen_agent,
            description=draft.description,
            event_end_date=draft.event_end_date,
        )

    @property
    def is_open_infection(self) -> bool:
        return self.event_type == INFECTION_EVENT_TYPE and self.event_end_date is None

import logging
from sqlalchemy import (
    Table,
    Column,
    String,
    Date,
    Boolean,
    Text,
    ForeignKey,
)
from sqlalchemy.orm import registry
from admission.domain import model

logger = logging.getLogger(__name__)

# SQLAlchemy 2.0 pattern: use registry
mapper_registry = registry()
metadata = mapper_registry.metadata

patients = Table(
    "patients",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("nome", String(255), nullable=False),
    Column("cognome", String(255), nullable=False),
    Column("birth_date", Date, nullable=False),
    Column("admission_date", Date, nullable=False),
    Column("diagnosis", String(255), nullable=False),
    Column("department", String(255), nullable=False),
    Column("infected", Boolean, nullable=False, default=False),
    Column("infection_date", Date, nullable=True),
)

clinical_events = Table(
    "clinical_events",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("patient_id", String(36), ForeignKey("patients.id"), nullable=False, index=True),
    Column("event_type", String(50), nullable=False),
    Column("event_date", Date, nullable=False),
    Column("pathogen_agent", String(255)),
    Column("description", Text),
    Column("event_end_date", Date, nullable=True),
)


def start_mappers():
    logger.info("Starting mappers")
    mapper_registry.map_imperatively(model.Patient, patients)
    mapper_registry.map_imperatively(model.ClinicalEvent, clinical_events)

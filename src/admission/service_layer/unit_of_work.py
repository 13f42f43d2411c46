# pylint: disable=attribute-defined-outside-init
from __future__ import annotations
import abc
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm.session import Session

import config
from admission.adapters import repository
from shared.service_layer.unit_of_work import AbstractUnitOfWork


class AbstractAdmissionUnitOfWork(AbstractUnitOfWork):
    patients: repository.AbstractPatientRepository
    events: repository.AbstractClinicalEventRepository

    def __enter__(self) -> AbstractAdmissionUnitOfWork:
        return super().__enter__()

    @abc.abstractmethod
    def _commit(self):
        raise NotImplementedError

    @abc.abstractmethod
    def rollback(self):
        raise NotImplementedError


def default_session_factory(engine=None):
    engine = engine or create_engine(
        config.get_postgres_uri(),
        isolation_level="REPEATABLE READ",
    )
    # objects must stay readable after the step that loaded them has committed
    return sessionmaker(bind=engine, expire_on_commit=False)


class SqlAlchemyUnitOfWork(AbstractAdmissionUnitOfWork):
    """
    One session per ``with`` block.

    Every saga step runs in its own block and commits on its own; the backend
    offers no transaction spanning patient and event writes.
    """

    def __init__(self, session_factory=None):
        self.session_factory = session_factory or default_session_factory()

    def __enter__(self):
        self.session = self.session_factory()  # type: Session
        self.patients = repository.SqlAlchemyPatientRepository(self.session)
        self.events = repository.SqlAlchemyClinicalEventRepository(self.session)
        return super().__enter__()

    def __exit__(self, *args):
        # Detach loaded objects so callers can read them after the session is gone
        self.session.expunge_all()
        super().__exit__(*args)
        self.session.close()

    def _commit(self):
        self.session.commit()

    def rollback(self):
        self.session.rollback()

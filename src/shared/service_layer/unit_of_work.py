from __future__ import annotations

"""Abstract Unit of Work pattern for coordinating operations across repositories."""

import abc


class AbstractUnitOfWork(abc.ABC):
    """Abstract Unit of Work for coordinating operations across repositories.

    Leaving the ``with`` block without ``commit()`` rolls back, so every saga
    step that persists something has to commit explicitly.
    """

    def __enter__(self) -> AbstractUnitOfWork:
        return self

    def __exit__(self, *args):
        self.rollback()

    def commit(self):
        self._commit()

    @abc.abstractmethod
    def _commit(self):
        raise NotImplementedError

    @abc.abstractmethod
    def rollback(self):
        raise NotImplementedError

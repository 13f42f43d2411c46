"""Loading indicator the web client polls while a saga is running."""

import abc
import logging
from threading import Lock
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class AbstractLoadingIndicator(abc.ABC):

    @abc.abstractmethod
    def set_loading(self, loading: bool, message: Optional[str] = None) -> None:
        raise NotImplementedError


class InMemoryLoadingIndicator(AbstractLoadingIndicator):
    def __init__(self):
        self._lock = Lock()
        self.loading = False
        self.message = None

    def set_loading(self, loading, message=None):
        with self._lock:
            self.loading = loading
            self.message = message if loading else None
        logger.debug(f"Loading: {loading} {message or ''}")

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {"loading": self.loading, "message": self.message}

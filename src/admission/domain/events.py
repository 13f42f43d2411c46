"""Domain events for the admission service."""

from dataclasses import dataclass
from datetime import datetime

from shared.domain.commands import Event


@dataclass
class TransactionCompleted(Event):
    """Event raised when a saga transaction reaches a final status."""
    transaction_id: str
    transaction_type: str
    status: str  # 'completed' | 'failed'
    saga_state: str
    completed_at: datetime

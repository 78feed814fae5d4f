"""
EVENT STORE
Append-only audit log of calculation runs, keyed by correlation id

RULES:
❌ Events are never updated or deleted
✅ Strict lifecycle per correlation id:
   CALC_STARTED → INPUTS_CAPTURED → SCORES_COMPUTED → CALC_COMPLETED
✅ CALC_COMPLETED may follow any earlier stage (failed runs)
✅ Exactly one CALC_COMPLETED per correlation id (duplicates are deduplicated)
✅ Payloads validated against their schema before storage
"""

import logging
from dataclasses import replace
from typing import Iterable, List, Optional, Protocol

from pydantic import BaseModel, ValidationError

from portfolio_engine.domain.exceptions import EventSequenceError, InvalidEventError
from portfolio_engine.domain.models import CalculationEvent, EventType, StoredEvent
from portfolio_engine.domain.schemas.events import PAYLOAD_SCHEMAS

logger = logging.getLogger(__name__)

DEFAULT_QUERY_LIMIT = 100

# event type -> event type that must immediately precede it
_PREDECESSOR = {
    EventType.INPUTS_CAPTURED: EventType.CALC_STARTED,
    EventType.SCORES_COMPUTED: EventType.INPUTS_CAPTURED,
}


class CalculationEventRepository(Protocol):
    """Storage behind the event store (insert + read only)"""

    async def append(self, event: CalculationEvent, sequence: int) -> str:
        ...

    async def list_for_correlation(self, correlation_id: str) -> List[StoredEvent]:
        ...

    async def list_for_user(self, user_id: str, limit: int) -> List[StoredEvent]:
        ...

    async def list_by_type(self, user_id: str, event_type: EventType, limit: int) -> List[StoredEvent]:
        ...


def parse_payload(event_type: EventType, payload: dict) -> BaseModel:
    """
    Validate a payload against its event type's schema

    Raises:
        InvalidEventError: Payload does not match
    """
    schema = PAYLOAD_SCHEMAS[event_type]
    try:
        return schema.model_validate(payload)
    except ValidationError as exc:
        raise InvalidEventError(f"Invalid {event_type.value} payload: {exc}") from exc


class EventStore:
    """
    Event Store
    Enforces the calculation lifecycle on top of an insert-only repository
    """

    def __init__(self, repository: CalculationEventRepository, query_limit: int = DEFAULT_QUERY_LIMIT):
        self.repository = repository
        self.query_limit = query_limit

    async def append(self, user_id: str, event: CalculationEvent) -> str:
        """
        Append an event to its correlation id's history

        Args:
            user_id: Owner of the calculation
            event: Event to store

        Returns:
            Stored event id (the existing id for a duplicate CALC_COMPLETED)

        Raises:
            InvalidEventError: Payload or ownership mismatch
            EventSequenceError: Event out of lifecycle order
        """
        if event.user_id != user_id:
            raise InvalidEventError(f"Event user {event.user_id} does not match {user_id}")

        payload = parse_payload(event.event_type, event.payload)
        if payload.correlation_id != event.correlation_id:
            raise InvalidEventError(
                f"Payload correlation id does not match event {event.correlation_id}"
            )
        if event.event_type == EventType.CALC_STARTED and payload.user_id != user_id:
            raise InvalidEventError(f"CALC_STARTED payload user does not match {user_id}")

        history = await self.repository.list_for_correlation(event.correlation_id)
        duplicate = self._check_sequence(user_id, event, history)
        if duplicate is not None:
            logger.info("Duplicate CALC_COMPLETED for %s ignored", event.correlation_id)
            return duplicate.id

        stored = replace(event, payload=payload.model_dump(mode="json"))
        event_id = await self.repository.append(stored, sequence=len(history) + 1)
        logger.debug("Appended %s for %s", event.event_type.value, event.correlation_id)
        return event_id

    async def append_batch(self, user_id: str, events: Iterable[CalculationEvent]) -> List[str]:
        """Append several events in order."""
        return [await self.append(user_id, event) for event in events]

    @staticmethod
    def _check_sequence(
        user_id: str,
        event: CalculationEvent,
        history: List[StoredEvent],
    ) -> Optional[StoredEvent]:
        correlation_id = event.correlation_id
        types = [stored.event_type for stored in history]

        if history and history[0].user_id != user_id:
            raise EventSequenceError(correlation_id, f"run belongs to user {history[0].user_id}")

        if EventType.CALC_COMPLETED in types:
            if event.event_type == EventType.CALC_COMPLETED:
                return history[types.index(EventType.CALC_COMPLETED)]
            raise EventSequenceError(correlation_id, f"{event.event_type.value} after CALC_COMPLETED")

        if event.event_type == EventType.CALC_STARTED:
            if history:
                raise EventSequenceError(correlation_id, "CALC_STARTED must be the first event")
            return None

        if not history:
            raise EventSequenceError(correlation_id, f"{event.event_type.value} before CALC_STARTED")

        predecessor = _PREDECESSOR.get(event.event_type)
        if predecessor is not None and types[-1] != predecessor:
            raise EventSequenceError(
                correlation_id,
                f"{event.event_type.value} must follow {predecessor.value}, last was {types[-1].value}",
            )
        return None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_by_correlation_id(self, correlation_id: str) -> List[StoredEvent]:
        """Full history of one run, in emission order"""
        events = await self.repository.list_for_correlation(correlation_id)
        return sorted(events, key=lambda stored: stored.sequence)

    async def get_by_user_id(self, user_id: str, limit: Optional[int] = None) -> List[StoredEvent]:
        """Most recent events of a user, newest first"""
        return await self.repository.list_for_user(user_id, limit or self.query_limit)

    async def get_by_event_type(
        self,
        user_id: str,
        event_type: EventType,
        limit: Optional[int] = None,
    ) -> List[StoredEvent]:
        return await self.repository.list_by_type(user_id, event_type, limit or self.query_limit)

    async def get_calc_started_event(self, correlation_id: str) -> Optional[StoredEvent]:
        return await self._first_of_type(correlation_id, EventType.CALC_STARTED)

    async def get_completion_event(self, correlation_id: str) -> Optional[StoredEvent]:
        return await self._first_of_type(correlation_id, EventType.CALC_COMPLETED)

    async def is_complete(self, correlation_id: str) -> bool:
        return await self.get_completion_event(correlation_id) is not None

    async def _first_of_type(self, correlation_id: str, event_type: EventType) -> Optional[StoredEvent]:
        for stored in await self.get_by_correlation_id(correlation_id):
            if stored.event_type == event_type:
                return stored
        return None

"""Record assembly: folds classified lines into complete events."""

from __future__ import annotations

from dataclasses import dataclass

from .line_parser import Line

DEFAULT_EVENT_NAME = "message"


@dataclass(frozen=True)
class Event:
    """A single dispatched Server-Sent Event."""

    data: str
    name: str = DEFAULT_EVENT_NAME
    id: str | None = None

    def to_dict(self) -> dict[str, str | None]:
        return {"id": self.id, "name": self.name, "data": self.data}


@dataclass
class PendingRecord:
    """Fields accumulated for the record currently being read."""

    event_name: str | None = None
    event_data: str = ""
    event_id: str | None = None


@dataclass(frozen=True)
class RecordOutcome:
    """Result of a blank line: the event (if any) and the id to resume from."""

    event: Event | None
    event_id: str | None


def apply_field(record: PendingRecord, field: str, value: str) -> None:
    """Apply one field line to the pending record. Unknown fields are ignored."""
    if field == "data":
        record.event_data += value + "\n"
    elif field == "event":
        record.event_name = value
    elif field == "id":
        if "\x00" not in value:
            record.event_id = value


def complete_record(record: PendingRecord) -> RecordOutcome:
    """Build the outcome for a record terminated by a blank line."""
    event = None
    if record.event_data:
        event = Event(
            data=record.event_data[:-1],
            name=DEFAULT_EVENT_NAME if record.event_name is None else record.event_name,
            id=record.event_id,
        )
    return RecordOutcome(event=event, event_id=record.event_id)


class EventAssembler:
    """Owns the pending record and turns a line sequence into outcomes."""

    def __init__(self) -> None:
        self.pending = PendingRecord()

    def process(self, line: Line) -> RecordOutcome | None:
        """Consume a line. Returns an outcome only when a record completes."""
        if not line.blank:
            apply_field(self.pending, line.field, line.value)
            return None

        outcome = complete_record(self.pending)
        self.pending = PendingRecord()
        return outcome

    def reset(self) -> None:
        """Discard any partially read record."""
        self.pending = PendingRecord()

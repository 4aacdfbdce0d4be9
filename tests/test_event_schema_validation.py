import uuid
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from app.core.exceptions import BatchLimitError, EventValidationError
from app.schemas.event import ScoringEventIn, ScoringEventRequest, ScoringEventOut
from app.schemas.rule import ScoringRuleUpdate
from app.services.event_validation import EventValidator

_LEAD_ID = uuid.uuid4()


def _event(**overrides) -> ScoringEventIn:
    data = {"event_id": "evt_1", "event_type": "email_open", "lead_id": _LEAD_ID}
    data.update(overrides)
    return ScoringEventIn(**data)


class TestEventFields:
    """Field-level checks on incoming events."""

    def test_minimal_event_gets_defaults(self):
        before = datetime.now(timezone.utc)
        event = _event()
        assert event.metadata == {}
        assert event.timestamp >= before
        assert event.timestamp.tzinfo is not None

    def test_event_id_is_stripped(self):
        assert _event(event_id="  evt_9  ").event_id == "evt_9"

    @pytest.mark.parametrize("event_id", ["", "   ", "x" * 256])
    def test_bad_event_id_rejected(self, event_id: str):
        with pytest.raises(ValidationError):
            _event(event_id=event_id)

    def test_unknown_event_type_rejected(self):
        with pytest.raises(ValidationError, match="event_type must be one of"):
            _event(event_type="teleport")

    def test_lead_id_must_be_uuid(self):
        with pytest.raises(ValidationError):
            _event(lead_id="not-a-uuid")

    def test_naive_timestamp_is_treated_as_utc(self):
        event = _event(timestamp=datetime(2026, 3, 1, 9, 30))
        assert event.timestamp == datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc)

    def test_offset_timestamp_is_normalised(self):
        plus_four = timezone(timedelta(hours=4))
        event = _event(timestamp=datetime(2026, 3, 1, 13, 30, tzinfo=plus_four))
        assert event.timestamp == datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc)
        assert event.timestamp.utcoffset() == timedelta(0)

    def test_null_timestamp_and_metadata_default(self):
        event = _event(timestamp=None, metadata=None)
        assert event.timestamp is not None
        assert event.metadata == {}

    def test_request_strips_sync_flag(self):
        request = ScoringEventRequest(
            event_id="evt_2", event_type="purchase", lead_id=_LEAD_ID, sync=True
        )
        event = request.to_event()
        assert type(event) is ScoringEventIn
        assert event.event_id == "evt_2"

    def test_event_out_reads_orm_metadata_attribute(self):
        class Row:
            event_id = "evt_3"
            event_type = "page_view"
            lead_id = _LEAD_ID
            timestamp = datetime(2026, 1, 1, tzinfo=timezone.utc)
            event_metadata = {"page": "/pricing"}
            processed = True
            processed_at = None
            sequence = 4

        out = ScoringEventOut.model_validate(Row())
        assert out.metadata == {"page": "/pricing"}
        assert out.model_dump()["metadata"] == {"page": "/pricing"}


class TestEventValidator:
    def test_parse_event_wraps_validation_errors(self):
        with pytest.raises(EventValidationError, match="Invalid event payload"):
            EventValidator.parse_event({"event_id": "evt_x", "event_type": "teleport"})

    def test_parse_event_accepts_json_payload(self):
        event = EventValidator.parse_event(
            {
                "event_id": "evt_y",
                "event_type": "purchase",
                "lead_id": str(_LEAD_ID),
                "timestamp": "2026-01-01T12:00:00Z",
                "metadata": {"amount": 99},
            }
        )
        assert event.lead_id == _LEAD_ID
        assert event.metadata == {"amount": 99}

    @pytest.mark.parametrize("size", [1, 5])
    def test_batch_within_limit(self, size: int):
        EventValidator.validate_batch_size([object()] * size, max_size=5)

    @pytest.mark.parametrize("size", [0, 6])
    def test_batch_outside_limit(self, size: int):
        with pytest.raises(BatchLimitError):
            EventValidator.validate_batch_size([object()] * size, max_size=5)


class TestScoringRuleUpdate:
    def test_requires_at_least_one_field(self):
        with pytest.raises(ValidationError):
            ScoringRuleUpdate()

    @pytest.mark.parametrize("payload", [{"points": "10"}, {"points": 1.5}, {"active": 1}])
    def test_strict_types(self, payload):
        with pytest.raises(ValidationError):
            ScoringRuleUpdate(**payload)

    def test_negative_points_allowed(self):
        assert ScoringRuleUpdate(points=-25).points == -25

from datetime import date, datetime, timezone

from barcal.models import (
    DRINK,
    FOOD,
    announcement_from_record,
    event_from_record,
    event_update_payload,
    parse_calendar_date,
    parse_instant,
    special_from_record,
)

UTC = timezone.utc


def test_event_record_with_json_encoded_lists():
    event = event_from_record(
        {
            "id": 7,
            "title": "Karaoke",
            "startDateTime": "2024-06-06T03:00:00.000Z",
            "endDateTime": "2024-06-06T06:00:00.000Z",
            "recurrenceRule": "FREQ=WEEKLY;BYDAY=WE",
            "exceptions": '["2024-06-19"]',
            "tags": '["karaoke"]',
            "venueArea": None,
        }
    )

    assert event.id == "7"
    assert event.start_at == datetime(2024, 6, 6, 3, 0, tzinfo=UTC)
    assert event.exception_dates == frozenset({"2024-06-19"})
    assert event.tags == ("karaoke",)
    assert event.venue_area == "bar"
    assert event.is_recurring
    assert event.is_active


def test_blank_rule_is_not_recurring():
    event = event_from_record({"id": "1", "startDateTime": "2024-06-06T03:00:00Z", "recurrenceRule": ""})

    assert event.recurrence_rule is None
    assert not event.is_recurring


def test_special_record_dates_and_type():
    drink = special_from_record(
        {"id": "d", "type": "drink", "startDate": "2024-06-01T00:00:00.000Z", "appliesOn": '["Friday"]'}
    )
    odd = special_from_record({"id": "x", "type": "dessert", "startDate": "2024-06-01"})

    assert drink.type == DRINK
    assert drink.start_date == date(2024, 6, 1)
    assert drink.applies_on == ("Friday",)
    assert odd.type == FOOD


def test_announcement_record():
    announcement = announcement_from_record({"id": "a", "title": "Closed", "publishAt": "2024-06-03T15:00:00Z"})

    assert announcement.publish_at == datetime(2024, 6, 3, 15, 0, tzinfo=UTC)
    assert announcement.expires_at is None
    assert announcement.is_published is False


def test_naive_timestamps_are_utc():
    assert parse_instant("2024-06-06T03:00:00") == datetime(2024, 6, 6, 3, 0, tzinfo=UTC)
    assert parse_instant("") is None
    assert parse_calendar_date("2024-06-01") == date(2024, 6, 1)


def test_update_payload_round_trips_series_fields():
    event = event_from_record(
        {
            "id": "1",
            "title": "Poker",
            "startDateTime": "2024-06-06T01:00:00Z",
            "recurrenceRule": "FREQ=WEEKLY;BYDAY=WE",
            "exceptions": ["2024-07-03", "2024-06-19"],
        }
    )

    payload = event_update_payload(event)

    assert payload["exceptions"] == ["2024-06-19", "2024-07-03"]
    assert payload["recurrenceRule"] == "FREQ=WEEKLY;BYDAY=WE"
    assert payload["endDateTime"] is None
    assert payload["description"] == ""

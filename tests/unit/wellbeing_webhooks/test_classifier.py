"""Tests for event classification."""

import pytest
from payloads import biomarker_payload, data_log_payload, score_payload

from wellbeing_webhooks.domain.models import EventKind
from wellbeing_webhooks.services.classifier import (
    classify,
    classify_event_type,
    classify_payload_shape,
)


@pytest.mark.parametrize(
    "event_type,expected",
    [
        ("ScoreCreatedIntegrationEvent", EventKind.SCORE),
        ("BiomarkerCreatedIntegrationEvent", EventKind.BIOMARKER),
        ("DataLogReceivedIntegrationEvent", EventKind.DATA_LOG),
        ("ArchetypeCreatedIntegrationEvent", EventKind.ARCHETYPE),
        ("SomethingNewIntegrationEvent", EventKind.UNKNOWN),
        ("", EventKind.UNKNOWN),
        (None, EventKind.UNKNOWN),
    ],
)
def test_classify_event_type(event_type: str | None, expected: EventKind) -> None:
    assert classify_event_type(event_type) is expected


def test_header_wins_over_payload_shape() -> None:
    # Score-shaped payload, but the header says biomarker
    kind, name = classify("BiomarkerCreatedIntegrationEvent", score_payload())
    assert kind is EventKind.BIOMARKER
    assert name == "BiomarkerCreatedIntegrationEvent"


def test_unknown_header_is_not_guessed_from_shape() -> None:
    kind, name = classify("FooEvent", score_payload())
    assert kind is EventKind.UNKNOWN
    assert name == "FooEvent"


def test_payload_event_type_used_without_header() -> None:
    kind, name = classify(None, {"eventType": "ScoreCreatedIntegrationEvent"})
    assert kind is EventKind.SCORE
    assert name == "ScoreCreatedIntegrationEvent"


@pytest.mark.parametrize(
    "payload,expected",
    [
        (score_payload(), EventKind.SCORE),
        (biomarker_payload(), EventKind.BIOMARKER),
        (data_log_payload(), EventKind.DATA_LOG),
        ({"name": "activity_level", "dataType": "ordinal"}, EventKind.ARCHETYPE),
        ({"hello": "world"}, EventKind.UNKNOWN),
    ],
)
def test_shape_detection_without_names(payload: dict, expected: EventKind) -> None:
    assert classify_payload_shape(payload) is expected
    kind, name = classify(None, payload)
    assert kind is expected
    assert name == expected.value


def test_shape_detection_looks_inside_data_envelope() -> None:
    kind, _ = classify(None, {"data": score_payload()})
    assert kind is EventKind.SCORE

"""Tests for extracting tagged responses from model replies"""
import json

import pytest

from app.agents.checklist_agent import checklist_adapter
from app.agents.discovery_agent import discovery_adapter
from app.agents.inspection_agent import inspection_adapter
from app.agents.parsing import ResponseParseError, extract_json_object, parse_response
from app.agents.schemas import (
    DiscoveryCompletedResponse,
    NotFoundResponse,
    PickEndpointResponse,
    SensitivityLevel,
    TracingEndpointResponse,
)
from tests.factories import checklist_reply, discovered, endpoint_dict, report_reply


def test_extract_plain_object():
    assert extract_json_object('{"status": "not_found"}') == {"status": "not_found"}


def test_extract_object_surrounded_by_prose():
    text = 'Sure! Here you go: {"status": "pick_endpoint", "file_to_read_next": "a.ts"} Hope that helps.'
    assert extract_json_object(text)["file_to_read_next"] == "a.ts"


def test_extract_from_code_fence():
    text = "I will read the routes.\n```json\n{\"status\": \"pick_endpoint\", \"file_to_read_next\": \"src/routes/auth.ts\"}\n```"
    assert extract_json_object(text)["file_to_read_next"] == "src/routes/auth.ts"


def test_extract_keeps_markdown_fences_inside_strings():
    payload = {"status": "completed", "result": endpoint_dict(mark_down="```ts\nrouter.post('/login')\n```")}
    text = "```json\n" + json.dumps(payload) + "\n```"
    data = extract_json_object(text)
    assert data["result"]["mark_down"].startswith("```ts")


def test_extract_first_of_two_objects():
    text = 'first {"status": "not_found"} then {"status": "pick_endpoint"}'
    assert extract_json_object(text) == {"status": "not_found"}


@pytest.mark.parametrize(
    "text, message",
    [
        ("", "Empty response"),
        ("   \n", "Empty response"),
        ("I could not find any endpoints.", "No JSON object found in response"),
        ('{"status": "pick_endpoint", "file_to_read_next": ', "Response contains malformed JSON"),
    ],
)
def test_extract_errors(text, message):
    with pytest.raises(ResponseParseError, match=message):
        extract_json_object(text)


def test_parse_discovery_variants():
    assert isinstance(parse_response('{"status": "not_found"}', discovery_adapter), NotFoundResponse)
    pick = parse_response('{"status": "pick_endpoint", "file_to_read_next": "a.ts"}', discovery_adapter)
    assert isinstance(pick, PickEndpointResponse)
    completed = parse_response(discovered(sensitivity_level="HIGH"), discovery_adapter)
    assert isinstance(completed, DiscoveryCompletedResponse)
    assert completed.result.sensitivity_level == SensitivityLevel.HIGH


def test_tracing_read_later_defaults_to_empty():
    missing = parse_response(
        '{"status": "tracing_endpoint", "endpoint_being_traced": "GET /x", "file_to_read_next": "a.ts"}',
        discovery_adapter,
    )
    null = parse_response(
        '{"status": "tracing_endpoint", "endpoint_being_traced": "GET /x", "file_to_read_next": "a.ts", "files_to_read_later": null}',
        discovery_adapter,
    )
    assert isinstance(missing, TracingEndpointResponse)
    assert missing.files_to_read_later == []
    assert null.files_to_read_later == []


def test_missing_status_is_rejected():
    with pytest.raises(ResponseParseError, match="missing 'status'"):
        parse_response('{"file_to_read_next": "a.ts"}', discovery_adapter)


def test_unknown_status_is_rejected():
    with pytest.raises(ResponseParseError, match="Invalid 'done' response"):
        parse_response('{"status": "done"}', discovery_adapter)


def test_completed_without_required_field_is_rejected():
    data = {"status": "completed", "result": endpoint_dict()}
    del data["result"]["mark_down"]
    with pytest.raises(ResponseParseError, match="mark_down"):
        parse_response(json.dumps(data), discovery_adapter)


def test_invalid_sensitivity_is_rejected():
    with pytest.raises(ResponseParseError):
        parse_response(discovered(sensitivity_level="extreme"), discovery_adapter)


def test_checklist_requires_references():
    data = json.loads(checklist_reply())
    del data["result"]["references"]
    with pytest.raises(ResponseParseError, match="references"):
        parse_response(json.dumps(data), checklist_adapter)


def test_checklist_error_status():
    response = parse_response('{"status": "error", "message": "too little context"}', checklist_adapter)
    assert response.status == "error"
    assert response.message == "too little context"


def test_inspection_vulnerabilities_default_to_empty():
    data = json.loads(report_reply())
    del data["result"]["vulnerabilities"]
    response = parse_response(json.dumps(data), inspection_adapter)
    assert response.result.vulnerabilities == []

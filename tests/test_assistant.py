"""Tests for the text generation helpers; the HTTP session is always mocked."""

from __future__ import annotations

from dataclasses import replace
from unittest.mock import Mock

import pytest
import requests

from estate_ledger import assistant


def _response(status_code=200, payload=None, json_error=None):
    response = Mock(status_code=status_code)
    if json_error is not None:
        response.json.side_effect = json_error
    else:
        response.json.return_value = payload
    return response


def _generator(session):
    return assistant.GeminiTextGenerator("secret", model="gemini-test", timeout=5.0, session=session)


def test_generate_posts_prompt_and_joins_parts():
    session = Mock()
    session.post.return_value = _response(
        payload={"candidates": [{"content": {"parts": [{"text": "Hello "}, {"text": "world"}]}}]}
    )

    text = _generator(session).generate("Say hi")

    assert text == "Hello world"
    session.post.assert_called_once_with(
        assistant.GEMINI_ENDPOINT.format(model="gemini-test"),
        headers={"x-goog-api-key": "secret"},
        json={"contents": [{"parts": [{"text": "Say hi"}]}]},
        timeout=5.0,
    )


def test_generate_raises_on_http_error():
    session = Mock()
    session.post.return_value = _response(status_code=403)

    with pytest.raises(assistant.AssistantError, match="HTTP 403"):
        _generator(session).generate("x")


def test_generate_raises_on_transport_error():
    session = Mock()
    session.post.side_effect = requests.ConnectionError("offline")

    with pytest.raises(assistant.AssistantError, match="offline"):
        _generator(session).generate("x")


@pytest.mark.parametrize(
    "response",
    [
        _response(payload={"candidates": []}),
        _response(payload={"error": "nope"}),
        _response(json_error=ValueError("not json")),
    ],
)
def test_generate_raises_on_malformed_response(response):
    session = Mock()
    session.post.return_value = response

    with pytest.raises(assistant.AssistantError, match="Malformed"):
        _generator(session).generate("x")


def test_build_text_generator_requires_key(settings):
    assert assistant.build_text_generator(settings, environ={}) is None

    custom = replace(settings, api_key_env="ESTATE_KEY", assistant_model="gemini-x")
    generator = assistant.build_text_generator(custom, environ={"ESTATE_KEY": "abc"})

    assert isinstance(generator, assistant.GeminiTextGenerator)
    assert generator.api_key == "abc"
    assert generator.model == "gemini-x"


def test_clause_without_generator():
    assert assistant.generate_agreement_clause(None, "pets allowed") == assistant.MISSING_KEY_CLAUSE


def test_clause_quotes_requirement_in_prompt():
    generator = Mock()
    generator.generate.return_value = "The Purchaser may keep pets."

    text = assistant.generate_agreement_clause(generator, "pets allowed")

    assert text == "The Purchaser may keep pets."
    (prompt,), _ = generator.generate.call_args
    assert '"pets allowed"' in prompt


def test_clause_failure_and_empty_text():
    failing = Mock()
    failing.generate.side_effect = assistant.AssistantError("boom")
    empty = Mock()
    empty.generate.return_value = ""

    assert assistant.generate_agreement_clause(failing, "x") == assistant.CLAUSE_ERROR
    assert assistant.generate_agreement_clause(empty, "x") == assistant.EMPTY_CLAUSE


def test_analysis_without_generator(demo_context):
    assert assistant.analyze_sales_data(None, "q", demo_context.snapshot) == assistant.MISSING_KEY_ANALYSIS


def test_analysis_prompt_contains_data_and_agency(demo_context):
    generator = Mock()
    generator.generate.return_value = "Sunset sold one stand."

    text = assistant.analyze_sales_data(
        generator,
        "Who sold the most?",
        demo_context.snapshot,
        agency_name="Fine Estate",
    )

    assert text == "Sunset sold one stand."
    (prompt,), _ = generator.generate.call_args
    assert '"Fine Estate"' in prompt
    assert '"Who sold the most?"' in prompt
    assert '"standId": "d1-102"' in prompt
    assert "Sunset Properties" in prompt
    assert "REF001" in prompt


def test_analysis_failure_and_empty_text(demo_context):
    failing = Mock()
    failing.generate.side_effect = requests.Timeout("slow")
    empty = Mock()
    empty.generate.return_value = ""

    assert assistant.analyze_sales_data(failing, "q", demo_context.snapshot) == assistant.ANALYSIS_ERROR
    assert assistant.analyze_sales_data(empty, "q", demo_context.snapshot) == assistant.EMPTY_ANALYSIS


def test_generate_raises_assistant_error_for_non_mapping_parts():
    session = Mock()
    session.post.return_value = _response(payload={"candidates": [{"content": {"parts": ["plain string"]}}]})

    with pytest.raises(assistant.AssistantError, match="Malformed"):
        _generator(session).generate("x")


def test_clause_for_non_mapping_parts_returns_error_text():
    session = Mock()
    session.post.return_value = _response(payload={"candidates": [{"content": {"parts": ["plain string"]}}]})

    assert assistant.generate_agreement_clause(_generator(session), "x") == assistant.CLAUSE_ERROR


@pytest.mark.parametrize("error", [TimeoutError("slow"), RuntimeError("bad state"), OSError("socket closed")])
def test_any_generator_failure_becomes_error_text(demo_context, error, caplog):
    generator = Mock()
    generator.generate.side_effect = error

    assert assistant.analyze_sales_data(generator, "q", demo_context.snapshot) == assistant.ANALYSIS_ERROR
    assert assistant.generate_agreement_clause(generator, "x") == assistant.CLAUSE_ERROR
    assert "Text generation failed" in caplog.text


def test_analysis_accepts_serialized_payload(demo_context):
    generator = Mock()
    generator.generate.return_value = "One sale."
    payload = assistant.sales_data_payload(demo_context.snapshot)

    assert assistant.analyze_sales_data(generator, "q", payload) == "One sale."
    (prompt,), _ = generator.generate.call_args
    assert '"standId": "d1-102"' in prompt
    assert set(payload) == {"sales", "developers", "payments"}

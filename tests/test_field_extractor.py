"""Tests for template field extraction and the pattern fallback."""

import json
from collections.abc import Callable
from unittest.mock import MagicMock

import httpx
import pytest

from docintel.clients.chat_client import ChatClient
from docintel.extraction.field_extractor import (
    FieldExtractor,
    MappingSource,
    build_extraction_prompt,
    pattern_fallback,
)
from docintel.extraction.templates import FieldType, TemplateDefinition
from docintel.utils.config import FieldExtractionConfig, LLMConfig

LABELED_TEXT = "Name: Ravi Kumar\nRank: SI\nStation: Gooty\nDate: 12/03/2024"


def _extractor(transport: httpx.MockTransport) -> FieldExtractor:
    return FieldExtractor(
        ChatClient(LLMConfig(), transport=transport), FieldExtractionConfig()
    )


def _assert_type_conforming(fields: dict, template: TemplateDefinition) -> None:
    assert list(fields) == template.field_ids
    for spec in template.fields:
        value = fields[spec.id]
        if spec.type in (FieldType.TEXT, FieldType.TEXTAREA):
            assert isinstance(value, str)
        elif spec.type == FieldType.NUMBER:
            assert value is None or (
                isinstance(value, int | float) and not isinstance(value, bool)
            )
        elif spec.type == FieldType.DATE:
            assert value is None or isinstance(value, str)
        elif spec.options:
            assert value in spec.options
        else:
            assert value == "" or isinstance(value, str)


class TestPatternFallback:
    """Tests for the deterministic regex fallback."""

    def test_labeled_text(self, catalog: tuple[TemplateDefinition, ...]) -> None:
        result = pattern_fallback(LABELED_TEXT, catalog[0])
        assert result.fields == {
            "officer_name": "Ravi Kumar",
            "rank": "SI",
            "to_station": "Gooty",
            "order_date": "12/03/2024",
        }
        assert result.confidence == 0.6
        assert result.source == "fallback"
        assert {d.field_id for d in result.field_details} == set(result.fields)
        assert all(
            d.source == MappingSource.PATTERN_MATCH for d in result.field_details
        )

    def test_empty_text_gives_defaults(
        self, catalog: tuple[TemplateDefinition, ...]
    ) -> None:
        result = pattern_fallback("", catalog[0])
        assert result.fields == {
            "officer_name": "",
            "rank": "Constable",
            "to_station": "",
            "order_date": None,
        }
        assert result.confidence == 0.6
        assert result.field_details == []

    def test_unmatched_keys_are_skipped(
        self, catalog: tuple[TemplateDefinition, ...]
    ) -> None:
        # Complaint template has no rank or station field.
        result = pattern_fallback(LABELED_TEXT, catalog[2])
        assert result.fields == {
            "complainant_name": "Ravi Kumar",
            "incident_date": "12/03/2024",
        }

    def test_is_deterministic(self, catalog: tuple[TemplateDefinition, ...]) -> None:
        assert pattern_fallback(LABELED_TEXT, catalog[0]) == pattern_fallback(
            LABELED_TEXT, catalog[0]
        )


class TestFieldExtractor:
    """Tests for the FieldExtractor class."""

    def test_model_extraction_is_completed_and_coerced(
        self,
        chat_transport: Callable[..., httpx.MockTransport],
        catalog: tuple[TemplateDefinition, ...],
    ) -> None:
        reply = {
            "confidence": 0.88,
            "reasoning": "Labeled fields found",
            "extractedFields": {
                "officer_name": "Ravi Kumar",
                "rank": "head constable",
                "order_date": "null",
                "invented_field": "dropped",
            },
            "fieldMappingDetails": [
                {"fieldId": "officer_name", "confidence": 0.95, "source": "direct_match"},
                {"fieldId": "rank", "confidence": 0.6, "source": "guesswork"},
                {"fieldId": "invented_field", "confidence": 0.9},
            ],
        }
        result = _extractor(chat_transport(json.dumps(reply))).extract_fields(
            LABELED_TEXT, catalog[0]
        )

        assert result.fields == {
            "officer_name": "Ravi Kumar",
            "rank": "Head Constable",
            "to_station": "",
            "order_date": None,
        }
        assert result.confidence == 0.88
        assert result.source == "model"
        assert [d.field_id for d in result.field_details] == ["officer_name", "rank"]
        assert result.field_details[0].source == MappingSource.DIRECT_MATCH
        assert result.field_details[1].source == MappingSource.AI_INFERENCE
        assert result.field_details[1].extracted_value == "Head Constable"

    def test_non_string_field_ids_in_details_are_skipped(
        self,
        chat_transport: Callable[..., httpx.MockTransport],
        catalog: tuple[TemplateDefinition, ...],
    ) -> None:
        reply = {
            "extractedFields": {"officer_name": "Ravi"},
            "fieldMappingDetails": [
                {"fieldId": ["officer_name"]},
                {"fieldId": {"id": "rank"}},
                "officer_name",
                {"fieldId": "officer_name", "source": ["direct_match"]},
            ],
        }
        result = _extractor(chat_transport(json.dumps(reply))).extract_fields(
            "Name: Ravi", catalog[0]
        )
        assert result.source == "model"
        assert result.fields["officer_name"] == "Ravi"
        assert [d.field_id for d in result.field_details] == ["officer_name"]
        assert result.field_details[0].source == MappingSource.AI_INFERENCE

    def test_numbers_parsed(
        self,
        chat_transport: Callable[..., httpx.MockTransport],
        catalog: tuple[TemplateDefinition, ...],
    ) -> None:
        reply = {"extractedFields": {"recipient_name": "Anil", "cash_amount": "5,000"}}
        result = _extractor(chat_transport(json.dumps(reply))).extract_fields(
            "Cash reward of Rs 5,000 to Anil", catalog[1]
        )
        assert result.fields["cash_amount"] == 5000
        assert result.confidence == 0.7

    def test_missing_extracted_fields_falls_back(
        self,
        chat_transport: Callable[..., httpx.MockTransport],
        catalog: tuple[TemplateDefinition, ...],
    ) -> None:
        reply = {"confidence": 0.9, "extractedFields": ["not", "an", "object"]}
        result = _extractor(chat_transport(json.dumps(reply))).extract_fields(
            LABELED_TEXT, catalog[0]
        )
        assert result.source == "fallback"
        assert result.fields["officer_name"] == "Ravi Kumar"

    def test_transport_failure_falls_back(
        self,
        chat_transport: Callable[..., httpx.MockTransport],
        catalog: tuple[TemplateDefinition, ...],
    ) -> None:
        extractor = _extractor(chat_transport(status=503))
        result = extractor.extract_fields(LABELED_TEXT, catalog[0])
        assert result.source == "fallback"
        assert result.confidence == 0.6

    def test_blank_text_skips_model(
        self, catalog: tuple[TemplateDefinition, ...]
    ) -> None:
        client = MagicMock()
        extractor = FieldExtractor(client, FieldExtractionConfig())
        result = extractor.extract_fields("", catalog[0])
        client.complete.assert_not_called()
        assert result.confidence == 0.6
        assert result.fields["rank"] == "Constable"

    @pytest.mark.parametrize(
        "text", ["", "Name: Ravi", LABELED_TEXT, "Cash 12 / 1,000 rupees"]
    )
    @pytest.mark.parametrize("template_index", [0, 1, 2])
    def test_fields_always_complete_and_typed(
        self,
        text: str,
        template_index: int,
        chat_transport: Callable[..., httpx.MockTransport],
        catalog: tuple[TemplateDefinition, ...],
    ) -> None:
        template = catalog[template_index]
        extractor = _extractor(chat_transport(error=httpx.ConnectError("down")))
        result = extractor.extract_fields(text, template)
        _assert_type_conforming(result.fields, template)
        assert 0.0 <= result.confidence <= 1.0

    def test_text_truncated_to_prefix(
        self, catalog: tuple[TemplateDefinition, ...]
    ) -> None:
        client = MagicMock()
        client.complete.return_value = json.dumps({"extractedFields": {}})
        extractor = FieldExtractor(
            client, FieldExtractionConfig(extraction_prefix_chars=10)
        )
        extractor.extract_fields("y" * 50, catalog[0])

        _, user_prompt = client.complete.call_args.args
        assert "y" * 10 in user_prompt
        assert "y" * 11 not in user_prompt
        assert client.complete.call_args.kwargs == {
            "temperature": 0.1,
            "max_tokens": 2000,
        }

    def test_prompt_describes_fields(
        self, catalog: tuple[TemplateDefinition, ...]
    ) -> None:
        prompt = build_extraction_prompt("doc", catalog[0])
        assert '"officer_name": "extracted value or null"' in prompt
        assert '"Head Constable"' in prompt
        assert "TARGET TEMPLATE: Transfer Order" in prompt

"""Tests for template classification and the keyword fallback."""

import json
from collections.abc import Callable
from unittest.mock import MagicMock

import httpx
import pytest

from docintel.clients.chat_client import ChatClient
from docintel.extraction.template_classifier import (
    TemplateClassifier,
    build_classification_prompt,
    keyword_fallback,
    template_keywords,
)
from docintel.extraction.templates import TemplateDefinition
from docintel.utils.config import ClassifierConfig, LLMConfig


def _classifier(transport: httpx.MockTransport) -> TemplateClassifier:
    return TemplateClassifier(
        ChatClient(LLMConfig(), transport=transport), ClassifierConfig()
    )


class TestTemplateKeywords:
    """Tests for the per-template keyword vocabulary."""

    def test_includes_name_category_labels_and_synonyms(
        self, catalog: tuple[TemplateDefinition, ...]
    ) -> None:
        keywords = template_keywords(catalog[0])
        assert keywords[:2] == ["transfer", "order"]
        assert "administrative" in keywords
        assert "station" in keywords
        assert "posting" in keywords
        assert len(keywords) == len(set(keywords))
        assert "" not in keywords


class TestKeywordFallback:
    """Tests for the deterministic keyword fallback."""

    def test_empty_text_picks_first_template(
        self, catalog: tuple[TemplateDefinition, ...]
    ) -> None:
        result = keyword_fallback("", catalog)
        assert result.template.id == "transfer"
        assert result.confidence == 0.5
        assert result.source == "fallback"

    def test_hits_raise_confidence_up_to_cap(
        self, catalog: tuple[TemplateDefinition, ...]
    ) -> None:
        result = keyword_fallback("Award certificate for bravery medal", catalog)
        assert result.template.id == "award"
        assert result.confidence == 0.8

    def test_catalog_order_breaks_ties(
        self, catalog: tuple[TemplateDefinition, ...]
    ) -> None:
        result = keyword_fallback("posting award certificate medal", catalog)
        assert result.template.id == "transfer"
        assert result.confidence == 0.6

    def test_is_deterministic(self, catalog: tuple[TemplateDefinition, ...]) -> None:
        text = "Grievance filed against constable"
        assert keyword_fallback(text, catalog) == keyword_fallback(text, catalog)


class TestTemplateClassifier:
    """Tests for the TemplateClassifier class."""

    def test_model_classification(
        self,
        chat_transport: Callable[..., httpx.MockTransport],
        catalog: tuple[TemplateDefinition, ...],
    ) -> None:
        reply = json.dumps(
            {"bestTemplateId": "award", "confidence": 0.92, "reasoning": "medal"}
        )
        result = _classifier(chat_transport(f"```json\n{reply}\n```")).classify(
            "Gallantry medal awarded", catalog
        )
        assert result.template.id == "award"
        assert result.confidence == 0.92
        assert result.reasoning == "medal"
        assert result.source == "model"

    def test_missing_confidence_defaults(
        self,
        chat_transport: Callable[..., httpx.MockTransport],
        catalog: tuple[TemplateDefinition, ...],
    ) -> None:
        reply = json.dumps({"bestTemplateId": "complaint"})
        result = _classifier(chat_transport(reply)).classify("text", catalog)
        assert result.confidence == 0.7

    def test_confidence_clamped(
        self,
        chat_transport: Callable[..., httpx.MockTransport],
        catalog: tuple[TemplateDefinition, ...],
    ) -> None:
        reply = json.dumps({"bestTemplateId": "complaint", "confidence": 3})
        result = _classifier(chat_transport(reply)).classify("text", catalog)
        assert result.confidence == 1.0

    def test_unknown_template_falls_back(
        self,
        chat_transport: Callable[..., httpx.MockTransport],
        catalog: tuple[TemplateDefinition, ...],
    ) -> None:
        reply = json.dumps({"bestTemplateId": "invoice", "confidence": 0.99})
        result = _classifier(chat_transport(reply)).classify(
            "Award certificate for bravery medal", catalog
        )
        assert result.source == "fallback"
        assert result.template.id == "award"

    def test_transport_failure_falls_back(
        self,
        chat_transport: Callable[..., httpx.MockTransport],
        catalog: tuple[TemplateDefinition, ...],
    ) -> None:
        classifier = _classifier(chat_transport(error=httpx.ConnectError("down")))
        result = classifier.classify("unrelated words", catalog)
        assert result.source == "fallback"
        assert 0.0 <= result.confidence <= 1.0

    def test_malformed_reply_falls_back(
        self,
        chat_transport: Callable[..., httpx.MockTransport],
        catalog: tuple[TemplateDefinition, ...],
    ) -> None:
        result = _classifier(chat_transport("It is an award.")).classify(
            "text", catalog
        )
        assert result.source == "fallback"

    def test_blank_text_skips_model(
        self, catalog: tuple[TemplateDefinition, ...]
    ) -> None:
        client = MagicMock()
        result = TemplateClassifier(client, ClassifierConfig()).classify(
            "   ", catalog
        )
        client.complete.assert_not_called()
        assert result.template.id == "transfer"
        assert result.confidence == 0.5

    def test_empty_catalog_raises(self) -> None:
        classifier = TemplateClassifier(MagicMock(), ClassifierConfig())
        with pytest.raises(ValueError):
            classifier.classify("text", ())

    def test_text_truncated_to_prefix(
        self, catalog: tuple[TemplateDefinition, ...]
    ) -> None:
        client = MagicMock()
        client.complete.return_value = json.dumps({"bestTemplateId": "transfer"})
        classifier = TemplateClassifier(
            client, ClassifierConfig(classification_prefix_chars=10)
        )
        classifier.classify("x" * 50, catalog)

        _, user_prompt = client.complete.call_args.args
        assert "x" * 10 in user_prompt
        assert "x" * 11 not in user_prompt
        assert client.complete.call_args.kwargs == {
            "temperature": 0.2,
            "max_tokens": 500,
        }

    def test_prompt_lists_templates(
        self, catalog: tuple[TemplateDefinition, ...]
    ) -> None:
        prompt = build_classification_prompt("doc", catalog)
        assert '"id": "award"' in prompt
        assert "bestTemplateId" in prompt

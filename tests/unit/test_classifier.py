"""
Unit tests for the page classifier.

The LLM is replaced with a plain callable; no network access.
"""

import pytest
from washpipe.core.exceptions import ClassificationError
from washpipe.llm.classifier import (
    PageClassifier,
    clean_amenities,
    coerce_verdict,
    parse_classification,
)
from washpipe.llm.prompt_loader import DEFAULT_PROMPT, build_classifier_prompt, load_classifier_prompt


class TestCoerceVerdict:
    """Tests for coerce_verdict function."""

    @pytest.mark.parametrize("value,expected", [
        (True, True),
        (False, False),
        ("true", True),
        ("Yes", True),
        ("touchless", True),
        ("FALSE", False),
        ("no", False),
        (None, None),
        ("null", None),
        ("unknown", None),
        (1, None),
    ])
    def test_values(self, value, expected):
        assert coerce_verdict(value) is expected


class TestCleanAmenities:
    """Tests for clean_amenities function."""

    def test_dedupes_case_insensitively(self):
        assert clean_amenities(["Vacuum", " vacuum ", "Towels", None, 3]) == ["Vacuum", "Towels"]

    def test_comma_string(self):
        assert clean_amenities("Towels, Wax,") == ["Towels", "Wax"]

    @pytest.mark.parametrize("value", [None, {}, 7])
    def test_garbage(self, value):
        assert clean_amenities(value) == []


class TestParseClassification:
    """Tests for parse_classification function."""

    def test_full_response(self):
        raw = (
            '```json\n{"is_touchless": true, "touchless_evidence": " Touch-free laser wash ", '
            '"amenities": ["Free Vacuum"], "description": "A laser wash in Austin."}\n```'
        )
        result = parse_classification(raw)
        assert result.verdict is True
        assert result.evidence == "Touch-free laser wash"
        assert result.amenities == ["Free Vacuum"]
        assert result.description == "A laser wash in Austin."

    def test_null_verdict(self):
        result = parse_classification('{"is_touchless": null, "amenities": null, "description": "  "}')
        assert result.verdict is None
        assert result.amenities == []
        assert result.description is None

    def test_prose_wrapped(self):
        result = parse_classification('Here it is: {"is_touchless": "no"} done')
        assert result.verdict is False

    @pytest.mark.parametrize("raw", [None, "", "I could not decide."])
    def test_no_object_is_an_error(self, raw):
        with pytest.raises(ClassificationError, match="No JSON object"):
            parse_classification(raw)

    def test_unparseable_object_is_an_error(self):
        with pytest.raises(ClassificationError, match="Unparseable"):
            parse_classification("{this is : not [ json}")


class TestPageClassifier:
    """Tests for PageClassifier."""

    def test_prompt_and_truncation(self):
        prompts = []

        def llm(prompt):
            prompts.append(prompt)
            return '{"is_touchless": true}'

        classifier = PageClassifier(llm_call=llm, max_chars=10, instructions="INSTRUCTIONS:")
        result = classifier.classify("0123456789ABCDEF")
        assert result.verdict is True
        assert prompts == ["INSTRUCTIONS:0123456789"]

    def test_llm_failure_wrapped(self):
        def llm(prompt):
            raise ConnectionError("quota exceeded")

        classifier = PageClassifier(llm_call=llm, instructions="x")
        with pytest.raises(ClassificationError, match="quota exceeded"):
            classifier.classify("page")

    def test_empty_response(self):
        classifier = PageClassifier(llm_call=lambda p: "", instructions="x")
        with pytest.raises(ClassificationError):
            classifier.classify("page")

    def test_from_config(self, config):
        config.classify_max_chars = 123
        classifier = PageClassifier.from_config(config, llm_call=lambda p: "{}", instructions="x")
        assert classifier.max_chars == 123
        assert classifier.model_name == config.gemini_model


class TestPromptLoader:
    """Tests for prompt loading."""

    def test_default_when_missing(self, tmp_path):
        assert load_classifier_prompt(tmp_path / "nope.txt") == DEFAULT_PROMPT

    def test_override_file(self, tmp_path):
        path = tmp_path / "prompt.txt"
        path.write_text("Custom:\n", encoding="utf-8")
        assert load_classifier_prompt(path) == "Custom:\n"

    def test_default_prompt_rules(self):
        assert "touch-free" in DEFAULT_PROMPT
        assert '"is_touchless"' in DEFAULT_PROMPT
        assert build_classifier_prompt("PAGE").endswith("Website text:\nPAGE")

"""
Page Classifier: turns one scraped page into a touchless verdict.

The model is asked for a single JSON object; the verdict is tri-state
(True / False / None for "no signal"). A response without a parseable
object raises ClassificationError so the caller records a retryable
classify_failed status instead of guessing.
"""

from typing import Any, Callable, List, Optional

from pydantic import BaseModel, Field

from washpipe.core.config import Config, get_config
from washpipe.core.exceptions import ClassificationError
from washpipe.core.logging import get_logger
from washpipe.llm.parsers import extract_json_object, parse_json_robust
from washpipe.llm.prompt_loader import build_classifier_prompt, load_classifier_prompt

logger = get_logger(__name__)

_TRUE_WORDS = {"true", "yes", "y", "1", "touchless"}
_FALSE_WORDS = {"false", "no", "n", "0"}


class Classification(BaseModel):
    """Classifier output for one page."""
    verdict: Optional[bool] = Field(None, description="True/False, or None when the page has no signal")
    evidence: str = Field(default="", description="Supporting phrase from the page")
    amenities: List[str] = Field(default_factory=list, description="Amenity tags found on the page")
    description: Optional[str] = Field(None, description="Short factual description")


def coerce_verdict(value: Any) -> Optional[bool]:
    """
    Normalize the model's verdict to a tri-state.

    Example:
        >>> coerce_verdict("Yes"), coerce_verdict(False), coerce_verdict("unknown")
        (True, False, None)
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        word = value.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
    return None


def clean_amenities(value: Any) -> List[str]:
    """
    Normalize an amenity list: strings only, stripped, de-duplicated case-insensitively.

    Example:
        >>> clean_amenities(["Vacuum", " vacuum ", "Towels", None])
        ['Vacuum', 'Towels']
    """
    if value is None:
        return []
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, (list, tuple)):
        return []

    seen = set()
    cleaned: List[str] = []
    for item in value:
        if not isinstance(item, str):
            continue
        item = item.strip()
        if item and item.lower() not in seen:
            seen.add(item.lower())
            cleaned.append(item)
    return cleaned


def parse_classification(raw: Optional[str]) -> Classification:
    """
    Parse a model response into a Classification.

    Raises:
        ClassificationError: No JSON object in the response, or it cannot be parsed
    """
    obj_text = extract_json_object(raw)
    if obj_text is None:
        raise ClassificationError("No JSON object in classifier response")

    try:
        data = parse_json_robust(obj_text)
    except ValueError as e:
        raise ClassificationError(f"Unparseable classifier JSON: {e}") from e

    description = data.get("description")
    evidence = data.get("touchless_evidence")
    return Classification(
        verdict=coerce_verdict(data.get("is_touchless")),
        evidence=str(evidence).strip() if evidence else "",
        amenities=clean_amenities(data.get("amenities")),
        description=description.strip() if isinstance(description, str) and description.strip() else None,
    )


class PageClassifier:
    """
    Classify scraped page text with an LLM.

    Args:
        llm_call: Callable taking a prompt and returning the model's text.
                  Defaults to Gemini via washpipe.llm.client.call_gemini.
        max_chars: Page text is truncated to this many characters
        instructions: Prompt instructions (default: configs/classifier_prompt.txt or built-in)
    """

    def __init__(
        self,
        llm_call: Optional[Callable[[str], str]] = None,
        max_chars: int = 8000,
        instructions: Optional[str] = None,
        model_name: Optional[str] = None,
    ):
        self.max_chars = max_chars
        self.instructions = instructions or load_classifier_prompt()
        self.model_name = model_name
        self._llm_call = llm_call or self._call_gemini

    @classmethod
    def from_config(cls, config: Optional[Config] = None, **kwargs) -> "PageClassifier":
        config = config or get_config()
        return cls(max_chars=config.classify_max_chars, model_name=config.gemini_model, **kwargs)

    def _call_gemini(self, prompt: str) -> str:
        # Imported lazily so the pipeline can be exercised without the Gemini SDK configured
        from washpipe.llm.client import call_gemini
        return call_gemini(prompt, model_name=self.model_name)

    def classify(self, page_text: str) -> Classification:
        """
        Classify one page.

        Args:
            page_text: Extracted page text (markdown)

        Returns:
            Classification with tri-state verdict, evidence and amenities

        Raises:
            ClassificationError: The call failed or returned no usable JSON
        """
        text = (page_text or "")[: self.max_chars]
        prompt = build_classifier_prompt(text, self.instructions)

        try:
            raw = self._llm_call(prompt)
        except ClassificationError:
            raise
        except Exception as e:
            raise ClassificationError(f"Classifier call failed: {e}") from e

        result = parse_classification(raw)
        logger.debug(f"[Classifier] verdict={result.verdict} amenities={result.amenities}")
        return result

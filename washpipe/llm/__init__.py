"""
LLM module for classifying scraped car wash pages with Google Gemini.

Module Structure:
- parsers: JSON extraction and robust parsing
- prompt_loader: Classifier prompt management
- classifier: PageClassifier and its result model
- client: Gemini API interactions (lazy loaded)
"""

from washpipe.llm.parsers import (
    extract_json_object,
    parse_json_robust,
    sanitize_json_text,
)

from washpipe.llm.prompt_loader import (
    AMENITY_VOCABULARY,
    DEFAULT_PROMPT,
    build_classifier_prompt,
    load_classifier_prompt,
)

from washpipe.llm.classifier import (
    Classification,
    PageClassifier,
    parse_classification,
)


# Lazy import for functions that require the Gemini SDK
def __getattr__(name):
    """Lazy loading for Gemini-dependent functions."""
    if name in ("get_gemini_client", "call_gemini_with_retries", "call_gemini"):
        from washpipe.llm import client
        return getattr(client, name)

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    # Parser functions
    "extract_json_object",
    "parse_json_robust",
    "sanitize_json_text",
    # Prompt functions
    "AMENITY_VOCABULARY",
    "DEFAULT_PROMPT",
    "build_classifier_prompt",
    "load_classifier_prompt",
    # Classifier
    "Classification",
    "PageClassifier",
    "parse_classification",
    # Client functions (require Gemini - lazy loaded)
    "get_gemini_client",
    "call_gemini_with_retries",
    "call_gemini",
]

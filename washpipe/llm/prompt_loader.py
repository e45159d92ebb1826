"""
Classifier prompt management.

The default prompt can be overridden by configs/classifier_prompt.txt.
The page text is appended after the instructions.
"""

from pathlib import Path
from washpipe.core.logging import get_logger

logger = get_logger(__name__)

AMENITY_VOCABULARY = (
    "Free Vacuum",
    "Air Freshener",
    "Towels",
    "Tire Shine",
    "Wax",
    "Ceramic Coating",
    "Unlimited Wash Club",
    "Detailing",
    "Pet Wash",
    "RV/Truck Wash",
    "Self-Serve Bays",
    "Interior Cleaning",
    "Underbody Wash",
)

DEFAULT_PROMPT = f"""You are classifying a car wash business from the text of its website.

Decide whether the car wash offers a TOUCHLESS wash, list its amenities, and write a
one-sentence factual description.

Rules for is_touchless:
- true if the page mentions touchless, touch-free, touch free, laser wash, no-touch,
  no touch, friction-free, self-serve, self service, wand wash, coin-operated or bay wash.
- true if the business offers BOTH touchless and brush/soft-touch options.
- false ONLY if the page exclusively mentions soft touch, soft cloth, foam brush,
  brush wash, friction wash, hand wash or full-service hand dry, with no touchless option.
- null if the page has no information about the wash method.

Amenities: only include items the page clearly offers, using these names:
{", ".join(AMENITY_VOCABULARY)}.

Description: a brief factual summary (at most 2 sentences), not marketing copy.
Use null if the page says nothing useful.

Respond with ONLY this JSON object (no commentary, no markdown fences):

{{
  "is_touchless": true | false | null,
  "touchless_evidence": "short quote or phrase from the page supporting the verdict",
  "amenities": ["..."],
  "description": "..." | null
}}

Website text:
"""


def load_classifier_prompt(prompt_path: Path = None) -> str:
    """
    Load classifier prompt from file with fallback to default.

    Args:
        prompt_path: Optional path to custom prompt file.
                    Defaults to configs/classifier_prompt.txt

    Returns:
        Prompt text string
    """
    if prompt_path is None:
        prompt_path = Path("configs/classifier_prompt.txt")

    if prompt_path.exists():
        try:
            content = prompt_path.read_text(encoding='utf-8')
            logger.info(f"Loaded classifier prompt from {prompt_path}")
            return content
        except Exception as e:
            logger.warning(f"Failed to load prompt from {prompt_path}: {e}. Using default.")
            return DEFAULT_PROMPT

    logger.debug(f"Prompt file not found at {prompt_path}. Using default.")
    return DEFAULT_PROMPT


def build_classifier_prompt(page_text: str, instructions: str = None) -> str:
    """
    Combine the instructions with the (already truncated) page text.

    Example:
        >>> "touchless" in build_classifier_prompt("We offer a touchless bay.")
        True
    """
    return f"{instructions or DEFAULT_PROMPT}{page_text}"

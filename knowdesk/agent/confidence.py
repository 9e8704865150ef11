"""
Answer confidence.

Two signals feed the score: how similar the best retrieved passage is to the
question, and whether the model's own answer admits it does not know.
"""

import re
from typing import Optional

from knowdesk.agent.prompts import NO_ANSWER_SENTENCE

UNCERTAINTY_PATTERN = re.compile(
    r"\b("
    r"i don'?t know|i do not know|i'?m not sure|i am not sure|i'?m unsure"
    r"|(?:don'?t|do not) have enough information|not enough information"
    r"|no information (?:about|on|regarding)"
    r"|(?:cannot|can'?t|couldn'?t|could not|unable to) (?:find|answer|determine|tell)"
    r"|(?:is|was) not mentioned|(?:does|do) not (?:mention|say|specify)"
    r")\b",
    re.IGNORECASE,
)


def detect_uncertainty(text: str) -> bool:
    """True when the answer says, in some form, that it does not know."""
    if not text or not text.strip():
        return True
    normalized = text.replace("’", "'")
    if NO_ANSWER_SENTENCE.lower() in normalized.lower():
        return True
    return UNCERTAINTY_PATTERN.search(normalized) is not None


def compute_confidence(
    best_similarity: Optional[float],
    model_uncertain: bool,
    floor: float = 0.35,
    ceiling: float = 0.8,
    uncertain_cap: float = 0.2,
) -> float:
    """
    Maps the best retrieval similarity linearly from [floor, ceiling] onto
    [0, 1], then caps it at `uncertain_cap` if the model was uncertain.

    Returns 0.0 when nothing was retrieved.
    """
    if ceiling <= floor:
        raise ValueError("ceiling must be greater than floor")
    if best_similarity is None:
        return 0.0
    score = (best_similarity - floor) / (ceiling - floor)
    score = min(1.0, max(0.0, score))
    if model_uncertain:
        score = min(score, uncertain_cap)
    return score


def should_handoff(confidence: float, threshold: float) -> bool:
    # A confidence equal to the threshold is good enough.
    return confidence < threshold

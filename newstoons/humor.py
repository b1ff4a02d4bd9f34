# humor.py
"""Offline humor estimate used when no API key is at hand."""
from typing import Optional

HUMOR_KEYWORDS = {
    "absurd": ["bizarre", "unusual", "strange", "weird", "odd", "unexpected", "shocking", "ridiculous"],
    "ironic": ["ironic", "despite", "however", "contradicts", "opposite", "backfire", "paradox"],
    "political": ["politician", "government", "minister", "mayor", "scandal", "controversy", "protest"],
    "visual": ["falls", "crash", "stuck", "trapped", "costume", "animal", "giant", "huge"],
    "extreme": ["extreme", "massive", "record", "unprecedented", "worst", "best", "biggest"],
}


def estimate_humor_score(title: str, description: Optional[str] = None) -> int:
    """Keyword heuristic in 1..100; substring matches, so "animals" counts."""
    text = f"{title} {description or ''}".lower()
    score = 30

    for words in HUMOR_KEYWORDS.values():
        matches = sum(1 for w in words if w in text)
        score += min(matches * 5, 15)

    score += min(text.count("!") * 3, 9)
    score += min(text.count("?") * 4, 12)
    if len(text) < 50:
        score -= 10
    if len(text) > 200:
        score += 5

    return max(1, min(100, score))

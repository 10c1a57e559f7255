"""
Heat/substance scoring for article text
"""
import re
from dataclasses import dataclass
from typing import Pattern, Sequence, Tuple

Signal = Tuple[Pattern[str], float]

# A signal contributes at most this many matches to a score
MAX_MATCHES_PER_SIGNAL = 3

HEAT_SIGNALS: Sequence[Signal] = (
    (re.compile(r"unprecedented", re.IGNORECASE), 0.15),
    (re.compile(r"shocking", re.IGNORECASE), 0.2),
    (re.compile(r"breaking", re.IGNORECASE), 0.1),
    (re.compile(r"bombshell", re.IGNORECASE), 0.25),
    (re.compile(r"slammed", re.IGNORECASE), 0.15),
    (re.compile(r"outrage", re.IGNORECASE), 0.2),
    (re.compile(r"crisis", re.IGNORECASE), 0.15),
    (re.compile(r"you won't believe", re.IGNORECASE), 0.25),
    (re.compile(r"everyone is saying", re.IGNORECASE), 0.2),
    (re.compile(r"could be catastrophic", re.IGNORECASE), 0.2),
    (re.compile(r"!{2,}"), 0.1),
    (re.compile(r"\b[A-Z]{4,}\b"), 0.05),
    (re.compile(r"devastating", re.IGNORECASE), 0.15),
    (re.compile(r"explosive", re.IGNORECASE), 0.2),
    (re.compile(r"terrifying", re.IGNORECASE), 0.2),
    (re.compile(r"unbelievable", re.IGNORECASE), 0.15),
    (re.compile(r"fury", re.IGNORECASE), 0.15),
    (re.compile(r"chaos", re.IGNORECASE), 0.15),
    (re.compile(r"panic", re.IGNORECASE), 0.15),
    (re.compile(r"alarming", re.IGNORECASE), 0.12),
    (re.compile(r"urgent", re.IGNORECASE), 0.1),
    (re.compile(r"extreme", re.IGNORECASE), 0.1),
)

SUBSTANCE_SIGNALS: Sequence[Signal] = (
    (re.compile(r"\$[\d,]+"), 0.2),
    (re.compile(r"\d+%"), 0.2),
    (re.compile(r"\d{1,3}(?:,\d{3})+"), 0.15),
    (re.compile(r'"[^"]{10,}"'), 0.2),
    (re.compile(r"according to", re.IGNORECASE), 0.15),
    (re.compile(r"study|research|report", re.IGNORECASE), 0.15),
    (re.compile(r"data shows", re.IGNORECASE), 0.15),
    (re.compile(r"percent", re.IGNORECASE), 0.1),
    (re.compile(r"billion|million|trillion", re.IGNORECASE), 0.15),
    (re.compile(r"officials? said", re.IGNORECASE), 0.1),
    (re.compile(r"announced", re.IGNORECASE), 0.08),
    (re.compile(r"legislation|bill|law", re.IGNORECASE), 0.1),
    (re.compile(r"voted?\s+\d+", re.IGNORECASE), 0.15),
    (re.compile(r"per\s+capita", re.IGNORECASE), 0.12),
    (re.compile(r"year-over-year|YoY", re.IGNORECASE), 0.12),
)

LABEL_HIGH_HEAT_LOW_SUBSTANCE = "High heat, low substance. Read skeptically."
LABEL_HIGH_HEAT_HIGH_SUBSTANCE = "High heat, high substance."
LABEL_QUALITY = "Low heat, high substance. Quality reporting."
LABEL_NEUTRAL = "Neutral coverage."
LABEL_BALANCED = "Balanced coverage."


@dataclass(frozen=True)
class ContentScore:
    heat: float
    substance: float
    label: str


def score_signals(text: str, signals: Sequence[Signal]) -> float:
    """
    Weighted match count over a signal table, clamped to [0, 1].
    """
    score = 0.0
    for pattern, weight in signals:
        matches = sum(1 for _ in pattern.finditer(text))
        if matches:
            score += weight * min(matches, MAX_MATCHES_PER_SIGNAL)
    return min(score, 1.0)


def label_for(heat: float, substance: float) -> str:
    if heat > 0.5 and substance < 0.3:
        return LABEL_HIGH_HEAT_LOW_SUBSTANCE
    if heat > 0.5 and substance > 0.5:
        return LABEL_HIGH_HEAT_HIGH_SUBSTANCE
    if heat < 0.3 and substance > 0.5:
        return LABEL_QUALITY
    if heat < 0.3 and substance < 0.3:
        return LABEL_NEUTRAL
    return LABEL_BALANCED


def score_content(text: str) -> ContentScore:
    """
    Scores concatenated title + description text.
    The label is decided on unrounded scores; the returned scores are
    rounded to two decimals.
    """
    text = text or ""
    heat = score_signals(text, HEAT_SIGNALS)
    substance = score_signals(text, SUBSTANCE_SIGNALS)

    return ContentScore(
        heat=round(heat, 2),
        substance=round(substance, 2),
        label=label_for(heat, substance),
    )

"""
Triage Rules Module
===================
Rule-based priority classification for field cases. Maps the set of
symptom tags chosen on the intake form to one of three priority tiers.

The rules are evaluated in strict precedence order:
  1. any critical symptom  -> red
  2. any urgent symptom    -> blue
  3. otherwise             -> green

Supply requests never go through the classifier; they are always blue.
"""

from __future__ import annotations

import logging
from typing import Iterable

logger = logging.getLogger(__name__)

# Priority tier constants
PRIORITY_RED = "red"
PRIORITY_BLUE = "blue"
PRIORITY_GREEN = "green"

PRIORITIES = (PRIORITY_RED, PRIORITY_BLUE, PRIORITY_GREEN)

PRIORITY_LABELS = {
    PRIORITY_RED: "CRITICAL",
    PRIORITY_BLUE: "URGENT",
    PRIORITY_GREEN: "NON-URGENT",
}

PRIORITY_DESCRIPTIONS = {
    PRIORITY_RED: "Life-threatening, needs immediate help",
    PRIORITY_BLUE: "Serious, needs medical attention soon",
    PRIORITY_GREEN: "Minor, can wait or be self-treated",
}

# Case categories
CATEGORY_PUBLIC = "public"
CATEGORY_MEDIC = "medic"
CATEGORY_SUPPLY = "supply"

CATEGORIES = (CATEGORY_PUBLIC, CATEGORY_MEDIC, CATEGORY_SUPPLY)

# ---------------------------------------------------------------------------
# Symptom sets. Anything outside CRITICAL/URGENT is non-matching, including
# tags the forms do not know about.
# ---------------------------------------------------------------------------
CRITICAL_SYMPTOMS = frozenset({"unconscious", "notBreathing", "severeBleeding"})
URGENT_SYMPTOMS = frozenset(
    {"chestPain", "headInjury", "difficultyBreathing", "severePain"}
)

# Order matches the intake forms.
KNOWN_SYMPTOMS: list[str] = [
    "unconscious",
    "notBreathing",
    "severeBleeding",
    "chestPain",
    "headInjury",
    "difficultyBreathing",
    "severePain",
    "moderateBleeding",
    "nausea",
    "fever",
    "minorCut",
    "bruise",
]

SUPPLY_OPTIONS: list[str] = [
    "water",
    "food",
    "babyFormula",
    "bandages",
    "power",
    "other",
]

# Supply requests are urgent but never critical.
SUPPLY_PRIORITY = PRIORITY_BLUE


def classify(symptom_tags: Iterable[str]) -> str:
    """Return the priority tier for a set of symptom tags.

    Args:
        symptom_tags: Symptom identifiers, in any order. May be empty.

    Returns:
        One of PRIORITY_RED, PRIORITY_BLUE, PRIORITY_GREEN.
    """
    tags = set(symptom_tags or ())

    if tags & CRITICAL_SYMPTOMS:
        return PRIORITY_RED
    if tags & URGENT_SYMPTOMS:
        return PRIORITY_BLUE
    return PRIORITY_GREEN


def unknown_symptoms(symptom_tags: Iterable[str]) -> list[str]:
    """List tags that are not in the symptom catalogue (sorted)."""
    return sorted(set(symptom_tags or ()) - set(KNOWN_SYMPTOMS))


def is_auto_broadcast(category: str, priority: str) -> bool:
    """Whether a freshly created case should start broadcasting on its own."""
    return category != CATEGORY_SUPPLY and priority in (PRIORITY_RED, PRIORITY_BLUE)

"""Tiered crisis keyword lexicon.

Phrases are lowercase and matched by substring containment against
lowercased text, so "disconnected" also matches inside longer words.
Tuple order is the order triggers are reported in.

Changes here shift classifier confidence; review with the clinical team.
"""
from typing import Tuple

from mindcompanion.shared.models import CrisisLevel

LEXICON_VERSION = "2025.03.1"

# Immediate crisis indicators
HIGH_SEVERITY: Tuple[str, ...] = (
    "kill myself",
    "end my life",
    "want to die",
    "suicide",
    "suicidal",
    "self harm",
    "self-harm",
    "cut myself",
    "hurt myself",
    "overdose",
    "jump off",
    "hang myself",
    "no point living",
    "better off dead",
    "plan to die",
    "ending it all",
    "can't go on",
    "ready to die",
    "worthless",
    "nobody cares",
    "give up completely",
)

# Concerning indicators
MEDIUM_SEVERITY: Tuple[str, ...] = (
    "depressed",
    "hopeless",
    "helpless",
    "trapped",
    "burden",
    "empty inside",
    "numb",
    "can't cope",
    "falling apart",
    "breaking down",
    "lost control",
    "panic attack",
    "severe anxiety",
    "can't breathe",
    "heart racing",
    "dizzy",
    "chest pain",
    "afraid to leave",
    "isolating",
    "avoid everyone",
)

# Warning signs
LOW_SEVERITY: Tuple[str, ...] = (
    "stressed",
    "overwhelmed",
    "anxious",
    "worried",
    "sad",
    "upset",
    "frustrated",
    "tired",
    "exhausted",
    "struggling",
    "difficult time",
    "hard to focus",
    "sleep problems",
    "appetite changes",
    "mood swings",
    "irritable",
    "lonely",
    "disconnected",
)

# Scan order, highest tier first
LEXICON_TIERS: Tuple[Tuple[CrisisLevel, Tuple[str, ...]], ...] = (
    (CrisisLevel.HIGH, HIGH_SEVERITY),
    (CrisisLevel.MEDIUM, MEDIUM_SEVERITY),
    (CrisisLevel.LOW, LOW_SEVERITY),
)

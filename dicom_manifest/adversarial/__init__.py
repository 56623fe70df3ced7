"""Adversarial manifest generation.

Produces KOS/MADO documents with omitted construction steps and planted
defects, recording each defect so validator coverage can be measured.
"""

from .base import DefectInjector, InjectedDefect
from .campaign import AdversarialCampaign, CampaignStats
from .corruption import FieldCorruptor, corrupt_one
from .dice import Dice, default_dice
from .forbidden import add_forbidden_tags
from .generator import (
    AdversarialDocument,
    AdversarialGenerator,
    generate_adversarial_document,
)
from .simulated import SimulatedStudy, simulate_study
from .violations import (
    MADO_VIOLATION_CATEGORIES,
    VIOLATIONS,
    get_violation,
    inject_violation,
)

__all__ = [
    "MADO_VIOLATION_CATEGORIES",
    "VIOLATIONS",
    "AdversarialCampaign",
    "AdversarialDocument",
    "AdversarialGenerator",
    "CampaignStats",
    "DefectInjector",
    "Dice",
    "FieldCorruptor",
    "InjectedDefect",
    "SimulatedStudy",
    "add_forbidden_tags",
    "corrupt_one",
    "default_dice",
    "generate_adversarial_document",
    "get_violation",
    "inject_violation",
    "simulate_study",
]

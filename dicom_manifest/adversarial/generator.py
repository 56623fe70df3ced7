"""Adversarial manifest generator.

Replays the KOS or MADO builder on a synthetic study while a step gate
omits optional construction steps at random, then plants further defects:

1. Single-field corruption (corrupt_p)
2. A catalogued MADO violation (mado_violation_p, MADO documents only)
3. Evidence/content desynchronization (evidence_mismatch_p)
4. Forbidden attributes (forbidden_tag_p)

Every planted defect is recorded on the returned AdversarialDocument so a
caller can check that the validator finds it.
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pydicom.dataset import Dataset

from dicom_manifest.builders.base import ManifestBuilder, ReferencedInstance
from dicom_manifest.builders.kos import KosManifestBuilder
from dicom_manifest.builders.mado import MadoManifestBuilder
from dicom_manifest.core.config import GeneratorConfig, get_settings
from dicom_manifest.core.constants import (
    KOS_OBJECT_DESCRIPTION,
    KOS_TITLE,
    OF_INTEREST,
    SOP_INSTANCE_UID,
)
from dicom_manifest.core.exceptions import ConfigurationError
from dicom_manifest.core.types import RelationshipType, ValidationProfile
from dicom_manifest.model.content import CodeNode, ContentNode, TextNode, UidRefNode
from dicom_manifest.utils.logger import AuditEventLogger, get_logger

from .base import InjectedDefect
from .corruption import corrupt_one
from .dice import Dice, default_dice
from .forbidden import add_forbidden_tags
from .simulated import SimulatedStudy, simulate_study
from .violations import MADO_VIOLATION_CATEGORIES, inject_violation

logger = get_logger(__name__)
audit = AuditEventLogger(logger)

#: Validator module reporting forbidden attributes, per profile
FORBIDDEN_MODULES: dict[ValidationProfile, str | None] = {
    ValidationProfile.NONE: None,
    ValidationProfile.XDSI_MANIFEST: "XDSIManifest",
    ValidationProfile.MADO: "MADOProfile",
}

KEY_OBJECT_NOTE_DESCRIPTION = "Key Objects for Surgery"


@dataclass
class AdversarialDocument:
    """A generated document and the defects planted into it."""

    dataset: Dataset
    profile: ValidationProfile
    injections: list[InjectedDefect] = field(default_factory=list)
    skipped_steps: list[str] = field(default_factory=list)

    @property
    def categories(self) -> set[str]:
        return {defect.category for defect in self.injections}


class KeyImageNoteMadoBuilder(MadoManifestBuilder):
    """MADO builder whose key image note entries name the flagged instances."""

    def __init__(
        self,
        key_image_notes: set[str],
        key_images: list[str],
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.key_image_notes = key_image_notes
        self.key_images = key_images

    def _entry_children(self, ref: ReferencedInstance) -> list[ContentNode]:
        children = super()._entry_children(ref)
        if ref.sop_instance_uid in self.key_image_notes:
            children.extend(self._key_object_descriptors())
        return children

    def _key_object_descriptors(self) -> list[ContentNode]:
        contains = RelationshipType.CONTAINS
        descriptors: list[ContentNode] = []
        if self._emit("entry.KOSTitle"):
            descriptors.append(
                CodeNode(
                    relationship=contains, concept_name=KOS_TITLE, value=OF_INTEREST
                )
            )
        if self._emit("entry.KOSObjectDescription"):
            descriptors.append(
                TextNode(
                    relationship=contains,
                    concept_name=KOS_OBJECT_DESCRIPTION,
                    value=KEY_OBJECT_NOTE_DESCRIPTION,
                )
            )
        for uid in self.key_images:
            if self._emit("entry.SOPInstanceUID"):
                descriptors.append(
                    UidRefNode(
                        relationship=contains, concept_name=SOP_INSTANCE_UID, uid=uid
                    )
                )
        return descriptors


class AdversarialGenerator:
    """Generates manifests with randomly omitted steps and planted defects.

    Args:
        dice: Source of randomness; the process default dice when omitted
        config: Probabilities; Settings.generator when omitted

    """

    def __init__(
        self, dice: Dice | None = None, config: GeneratorConfig | None = None
    ) -> None:
        self.dice = dice or default_dice()
        self.config = config or get_settings().generator

    def _step_gate(self, step: str) -> bool:
        return not self.dice.chance(self.config.skip_step_p)

    def _builder(
        self, profile: ValidationProfile, study: SimulatedStudy
    ) -> ManifestBuilder:
        options: dict[str, Any] = {
            "uid_factory": self.dice.uid,
            "step_gate": self._step_gate,
        }
        if profile == ValidationProfile.MADO:
            return KeyImageNoteMadoBuilder(
                key_image_notes=study.key_image_note_uids,
                key_images=study.key_images,
                **options,
            )
        return KosManifestBuilder(**options)

    def generate(
        self,
        profile: ValidationProfile | str = ValidationProfile.MADO,
        moment: datetime | None = None,
    ) -> AdversarialDocument:
        """Generate one adversarial document.

        Args:
            profile: Profile the document pretends to conform to; MADO
                produces a TID 1600 manifest, the others a TID 2010 one
            moment: Study date/time of the synthetic study

        Returns:
            The document with its planted defects and skipped steps

        Raises:
            ConfigurationError: If the profile name is unknown

        """
        resolved = ValidationProfile.resolve(profile)
        if resolved is None:
            raise ConfigurationError(
                f"Unknown profile: {profile}",
                error_code="UNKNOWN_PROFILE",
                context={"profile": str(profile)},
            )

        study = simulate_study(self.dice, moment)
        builder = self._builder(resolved, study)
        injections: list[InjectedDefect] = []

        # Planted defects trigger pydicom value warnings
        with warnings.catch_warnings():
            warnings.filterwarnings("ignore", module="pydicom")
            dataset = builder.build(study.study, study.series, study.instances)
            config = self.config
            if self.dice.chance(config.corrupt_p):
                injections.append(corrupt_one(dataset, self.dice))
            if resolved == ValidationProfile.MADO and self.dice.chance(
                config.mado_violation_p
            ):
                category = self.dice.choice(MADO_VIOLATION_CATEGORIES)
                injections.append(inject_violation(dataset, category, self.dice))
            if self.dice.chance(config.evidence_mismatch_p):
                injections.append(inject_violation(dataset, "mismatch", self.dice))
            if self.dice.chance(config.forbidden_tag_p):
                injections.extend(
                    add_forbidden_tags(
                        dataset,
                        self.dice,
                        FORBIDDEN_MODULES[resolved],
                        config.max_forbidden_tags,
                    )
                )

        sop_instance_uid = str(dataset.get("SOPInstanceUID", "") or "") or None
        logger.info(
            "adversarial_document_generated",
            profile=resolved.value,
            sop_instance_uid=sop_instance_uid,
            skipped_steps=len(builder.skipped_steps),
            injections=len(injections),
        )
        if injections:
            audit.log_adversarial_injection(
                sop_instance_uid, [str(defect) for defect in injections]
            )
        return AdversarialDocument(
            dataset=dataset,
            profile=resolved,
            injections=injections,
            skipped_steps=list(builder.skipped_steps),
        )


def generate_adversarial_document(
    seed: int | None = None, profile: ValidationProfile | str = "IHEMADO"
) -> Dataset:
    """Generate one adversarial manifest.

    Args:
        seed: Replays the same document when given; the process default
            dice is used otherwise
        profile: "IHEMADO" (default), "IHEXDSIManifest" or "none"

    Returns:
        The generated dataset

    """
    dice = Dice.from_seed(seed) if seed is not None else default_dice()
    return AdversarialGenerator(dice).generate(profile).dataset

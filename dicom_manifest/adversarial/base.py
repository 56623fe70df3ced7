"""Base class for defect injectors.

An injector applies one strategy, picked with the dice, to a finished
manifest and reports what it did as an InjectedDefect. The expected
module names the validator path under which the defect is reported
(None when the validator has no check for it).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pydicom.dataset import Dataset

    from .dice import Dice


@dataclass
class InjectedDefect:
    """A defect planted into a generated document."""

    category: str
    strategy: str
    expected_module: str | None

    def __str__(self) -> str:
        return f"{self.category}:{self.strategy}"


#: (strategy name, expected module, mutation applied in place)
Strategy = tuple[str, "str | None", Callable[["Dataset"], None]]


class DefectInjector(ABC):
    """Abstract base class for defect injectors.

    Subclasses list their strategies; inject() picks one and applies it
    to the dataset in place.
    """

    def __init__(self, dice: Dice) -> None:
        self.dice = dice

    @property
    @abstractmethod
    def category(self) -> str:
        """Category name recorded on every injected defect."""

    @abstractmethod
    def strategies(self) -> list[Strategy]:
        """Available strategies of this injector."""

    def inject(self, dataset: Dataset) -> InjectedDefect:
        """Apply one randomly chosen strategy to dataset."""
        name, module, mutate = self.dice.choice(self.strategies())
        mutate(dataset)
        return InjectedDefect(self.category, name, module)

    def inject_strategy(self, dataset: Dataset, name: str) -> InjectedDefect:
        """Apply the named strategy to dataset."""
        for strategy_name, module, mutate in self.strategies():
            if strategy_name == name:
                mutate(dataset)
                return InjectedDefect(self.category, name, module)
        raise KeyError(f"{self.category} has no strategy '{name}'")


__all__ = ["DefectInjector", "InjectedDefect", "Strategy"]

"""Tests for the dice randomness capability."""

import random
import re
import threading

import pytest
from hypothesis import given
from hypothesis import strategies as st

from dicom_manifest.adversarial import dice as dice_module
from dicom_manifest.adversarial.dice import UUID_UID_ROOT, Dice, default_dice
from dicom_manifest.core import config
from dicom_manifest.core.config import GeneratorConfig, Settings


class TestChance:
    """Test probability bounds."""

    @pytest.mark.parametrize(
        "p,expected",
        [
            pytest.param(0.0, False, id="zero"),
            pytest.param(-0.5, False, id="negative"),
            pytest.param(1.0, True, id="one"),
            pytest.param(3.0, True, id="above-one"),
        ],
    )
    def test_bounds(self, dice, p, expected):
        """Verify p <= 0 never fires and p >= 1 always fires."""
        assert all(dice.chance(p) is expected for _ in range(50))

    def test_bounds_consume_nothing(self):
        """Test that certain outcomes leave the sequence untouched."""
        a, b = Dice.from_seed(7), Dice.from_seed(7)
        a.chance(0.0)
        a.chance(1.0)

        assert a.uid() == b.uid()

    def test_rate(self):
        seeded = Dice.from_seed(42)

        hits = sum(seeded.chance(0.25) for _ in range(4000))

        assert 800 < hits < 1200


class TestDraws:
    """Test the draw helpers."""

    def test_token(self, dice):
        assert re.fullmatch(r"[0-9a-f]{6}", dice.token())
        assert re.fullmatch(r"[0-9a-f]{10}", dice.token(10))

    def test_uid(self, dice):
        """Verify generated UIDs are 2.25 UIDs within the length limit."""
        for _ in range(100):
            uid = dice.uid()
            assert uid.startswith(UUID_UID_ROOT)
            assert len(uid) <= 64
            assert re.fullmatch(r"2\.25\.(0|[1-9][0-9]*)", uid)

    def test_randbelow_rejects_empty_range(self, dice):
        with pytest.raises(ValueError):
            dice.randbelow(0)

    def test_between_inclusive(self, dice):
        draws = {dice.between(1, 3) for _ in range(200)}

        assert draws == {1, 2, 3}

    def test_random_bytes(self, dice):
        assert len(dice.random_bytes(16)) == 16

    def test_unseeded_uses_system_random(self):
        unseeded = Dice.from_seed()

        assert unseeded.seed is None
        assert isinstance(unseeded._rng, random.SystemRandom)

    def test_shared_between_threads(self):
        """Test that concurrent draws never fail or repeat UIDs."""
        shared = Dice.from_seed(3)
        uids: list[str] = []
        lock = threading.Lock()

        def draw():
            batch = [shared.uid() for _ in range(200)]
            with lock:
                uids.extend(batch)

        threads = [threading.Thread(target=draw) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(set(uids)) == 800


class TestReplay:
    """Property: a seed replays the same sequence."""

    @given(seed=st.integers(min_value=0, max_value=2**32))
    def test_same_seed_same_draws(self, seed):
        a, b = Dice.from_seed(seed), Dice.from_seed(seed)

        assert [a.uid(), a.token(), a.between(1, 9)] == [
            b.uid(),
            b.token(),
            b.between(1, 9),
        ]

    @given(p=st.floats(min_value=0.0, max_value=1.0))
    def test_chance_returns_bool(self, p):
        assert isinstance(Dice.from_seed(1).chance(p), bool)


class TestDefaultDice:
    """Test the process-wide dice."""

    def test_seeded_from_settings(self, monkeypatch):
        monkeypatch.setattr(dice_module, "_default_dice", None)
        monkeypatch.setattr(
            config, "_settings", Settings(generator=GeneratorConfig(seed=77))
        )

        first = default_dice()

        assert first is default_dice()
        assert first.seed == 77
        assert first.uid() == Dice.from_seed(77).uid()

"""
Unit tests for the dice engine.
"""

import random

import pytest

from conftest import ScriptedRandom

from dw_rules.core.config import RulesConfig
from dw_rules.core.dice_engine import DiceParser, DiceRoller, DiceTerm
from dw_rules.core.errors import MalformedFormula


class TestDiceParser:
    """Test expression parsing."""

    def test_simple_expression(self):
        terms, modifier = DiceParser.parse_expression("2d6+3")

        assert terms == [DiceTerm(1, 2, 6)]
        assert modifier == 3

    def test_implicit_count(self):
        terms, _ = DiceParser.parse_expression("d20")
        assert terms[0].count == 1
        assert terms[0].sides == 20

    def test_negative_term_and_spaces(self):
        terms, modifier = DiceParser.parse_expression("2d6 - 1d4 - 2")

        assert terms[1].sign == -1
        assert modifier == -2

    def test_collapsed_signs(self):
        _, modifier = DiceParser.parse_expression("2d6+-1")
        assert modifier == -1

    def test_keep_highest_and_lowest(self):
        terms, _ = DiceParser.parse_expression("4d6k3+2d20kl1")

        assert terms[0].keep == 3
        assert not terms[0].keep_lowest
        assert terms[1].keep == 1
        assert terms[1].keep_lowest

    @pytest.mark.parametrize("expression", ["", "2d6+", "0d6", "2d0", "2x6", "3d6k4"])
    def test_malformed(self, expression):
        with pytest.raises(MalformedFormula):
            DiceParser.parse_expression(expression)

    def test_limits_follow_config(self):
        config = RulesConfig(MAX_DICE_COUNT=5, MAX_DICE_SIDES=12)

        DiceParser.parse_expression("5d12", config)
        with pytest.raises(MalformedFormula):
            DiceParser.parse_expression("6d6", config)
        with pytest.raises(MalformedFormula):
            DiceParser.parse_expression("1d20", config)

    def test_substitute_references(self):
        assert DiceParser.substitute_references("@level+7", {"level": 3}) == "3+7"

    def test_unknown_reference(self):
        with pytest.raises(MalformedFormula):
            DiceParser.substitute_references("@bogus+1", {"level": 3})


class TestDiceRoller:
    """Test rolling with an injected random source."""

    def test_roll_expression(self):
        roller = DiceRoller(rng=ScriptedRandom([3, 5]))
        result = roller.roll_expression("2d6+1")

        assert result.total == 9
        assert result.rolls == [3, 5]
        assert result.format_result() == "2d6+1 = [3, 5]+1 = 9"

    def test_keep_highest(self):
        roller = DiceRoller(rng=ScriptedRandom([1, 6, 4, 3]))
        result = roller.roll_expression("4d6k3")

        assert sorted(result.rolls) == [3, 4, 6]
        assert result.total == 13

    def test_references_in_expression(self):
        roller = DiceRoller(rng=ScriptedRandom([]))
        result = roller.roll_expression("@level+7", {"level": 4})

        assert result.total == 11
        assert result.terms == []

    def test_seeded_rolls_repeat(self):
        first = DiceRoller(rng=random.Random(42)).roll_expression("10d10")
        second = DiceRoller(rng=random.Random(42)).roll_expression("10d10")

        assert first.rolls == second.rolls

    def test_advantage_takes_higher(self):
        roller = DiceRoller(rng=ScriptedRandom([1, 1, 6, 6]))
        assert roller.roll_advantage("2d6").total == 12

    def test_disadvantage_takes_lower(self):
        roller = DiceRoller(rng=ScriptedRandom([1, 1, 6, 6]))
        assert roller.roll_disadvantage("2d6").total == 2

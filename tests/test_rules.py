"""Tests de la configuración de reglas."""

import pytest
from pydantic import ValidationError

from gemelo.models import RulesConfig


class TestRulesConfig:
    def test_defaults(self):
        rules = RulesConfig()

        assert rules.weights.address == 0.30
        assert rules.weights.area == 0.25
        assert rules.threshold.auto_match == 93
        assert rules.threshold.review_required_min == 80
        assert rules.area.exclusive_relative_tolerance == 0.06
        assert rules.price.rent_tolerance == 0.08
        assert (rules.distance.high, rules.distance.medium, rules.distance.low) == (20, 80, 500)

    def test_default_reads_thresholds_from_settings(self, settings):
        custom = settings.model_copy(update={"auto_match_threshold": 90, "review_required_min": 70})
        rules = RulesConfig.default(custom)
        assert rules.threshold.auto_match == 90
        assert rules.threshold.review_required_min == 70

    def test_overrides_merge_per_section(self):
        rules = RulesConfig().with_overrides({"weights": {"price": 0.2}})

        assert rules.weights.price == 0.2
        assert rules.weights.address == 0.30
        assert rules.threshold.auto_match == 93

    def test_overrides_return_new_value(self):
        base = RulesConfig()
        base.with_overrides({"threshold": {"auto_match": 95}})
        assert base.threshold.auto_match == 93

    def test_rules_are_frozen(self):
        rules = RulesConfig()
        with pytest.raises(ValidationError):
            rules.weights.address = 1

    def test_unknown_section_is_rejected(self):
        with pytest.raises(ValidationError):
            RulesConfig().with_overrides({"magic": {"x": 1}})

    def test_threshold_order_is_validated(self):
        with pytest.raises(ValidationError):
            RulesConfig().with_overrides({"threshold": {"auto_match": 70}})

    def test_distance_order_is_validated(self):
        with pytest.raises(ValidationError):
            RulesConfig().with_overrides({"distance": {"medium": 10}})

    def test_snapshot_round_trip(self):
        rules = RulesConfig().with_overrides({"price": {"deposit_tolerance": 0.2}})
        assert RulesConfig.model_validate(rules.snapshot()) == rules

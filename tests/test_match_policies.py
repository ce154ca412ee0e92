"""Tests for atlas_dedup — interactive and batch match policies."""

import pytest

from atlas_dedup.algorithms.geo_proximity import Coordinate
from atlas_dedup.algorithms.match_policies import (
    DEFAULT_RULES_PATH,
    ExceptionGroup,
    MatchingConfig,
    batch_match,
    in_exception_set,
    interactive_match,
)
from tests.conftest import make_record, offset_north


ORIGIN = Coordinate(52.0, 21.0)


def _pair(name_a, name_b, metres, **fields):
    there = offset_north(ORIGIN, metres)
    a = make_record("store-1", name_a, ORIGIN.lat, ORIGIN.lng, **fields)
    b = make_record("store-2", name_b, there.lat, there.lng, **fields)
    return a, b


# ---- interactive_match --------------------------------------------------------


class TestInteractiveMatch:
    def test_qualified_name_close_by(self):
        a = make_record("store-1", "City Hall", 0.0, 0.001)
        b = make_record("gen-1", "City Hall (West Wing)", 0.0, 0.0012)
        assert interactive_match(a, b)
        assert interactive_match(b, a)

    def test_same_name_too_far(self):
        a, b = _pair("City Hall", "City Hall", 600)
        assert not interactive_match(a, b)

    def test_different_names_close_by(self):
        a, b = _pair("City Hall", "Central Station", 50)
        assert not interactive_match(a, b)

    def test_invalid_coordinates(self):
        a = make_record("store-1", "City Hall", 0.0, 0.0)
        b = make_record("store-2", "City Hall", 0.0, 0.0)
        assert not interactive_match(a, b)

    def test_threshold_from_config(self, config):
        a, b = _pair("Tower", "Tower Hotel", 10)  # similarity 5/11
        assert not interactive_match(a, b, config)
        config.interactive["min_name_similarity"] = 0.4
        assert interactive_match(a, b, config)


# ---- batch_match --------------------------------------------------------------


class TestBatchMatch:
    def test_designated_siblings_eight_km_apart(self):
        a, b = _pair("Ministry Building A", "Ministry Building B", 8_000)
        assert batch_match(a, b)
        assert not interactive_match(a, b)

    def test_containment_above_overlap(self):
        # 13 / 20 = 0.65
        a, b = _pair("Grand Theatre", "Grand Theatre Warsaw", 300)
        assert batch_match(a, b)

    def test_containment_below_overlap(self):
        # 17 / 29 ≈ 0.59
        a, b = _pair("Palace of Culture", "Palace of Culture and Science", 300)
        assert not batch_match(a, b)

    def test_short_base_name_cannot_contain(self):
        a, b = _pair("Bank", "Banks", 100)
        assert not batch_match(a, b)

    def test_beyond_ten_km(self):
        a, b = _pair("Grand Theatre", "Grand Theatre", 10_500)
        assert not batch_match(a, b)

    def test_invalid_coordinates(self):
        a = make_record("store-1", "Grand Theatre", 0.0, 0.0)
        b = make_record("store-2", "Grand Theatre", 52.0, 21.0)
        assert not batch_match(a, b)

    def test_exception_group_never_merged(self):
        a, b = _pair(
            "Ministry of Foreign Affairs",
            "Ministry of Foreign Affairs Building",
            300,
            city="Moscow",
            country="Russia",
        )
        assert in_exception_set(a) == "moscow_seven_sisters"
        assert not batch_match(a, b)

    def test_exception_group_with_long_country_name(self):
        a, b = _pair(
            "Hotel Ukraina",
            "Hotel Ukraina (Radisson)",
            110,
            city="Moscow",
            country="Russian Federation",
        )
        assert in_exception_set(a) == "moscow_seven_sisters"
        assert not batch_match(a, b)

    def test_same_names_outside_exception_city(self):
        a, b = _pair(
            "Ministry of Foreign Affairs",
            "Ministry of Foreign Affairs Building",
            300,
            city="Minsk",
            country="Belarus",
        )
        assert in_exception_set(a) is None
        assert batch_match(a, b)


# ---- exception groups ---------------------------------------------------------


class TestExceptionGroup:
    def test_requires_country_city_and_keyword(self):
        group = ExceptionGroup.from_dict(
            "test", {"countries": ["Russia"], "cities": ["Moscow"], "keywords": ["Red Gates"]}
        )
        inside = make_record(name="Red Gates Building", city="moscow", country="RUSSIA")
        assert group.contains(inside)
        assert not group.contains(make_record(name="Red Gates Building", city="Kazan", country="Russia"))
        assert not group.contains(make_record(name="Bolshoi Theatre", city="Moscow", country="Russia"))

    def test_aliases_match_inside_longer_values(self):
        group = ExceptionGroup.from_dict(
            "test", {"countries": ["Russia"], "cities": ["Moscow"], "keywords": ["Red Gates"]}
        )
        assert group.contains(
            make_record(name="Red Gates Building", city="Moscow, Russia", country="Russian Federation")
        )
        assert not group.contains(make_record(name="Red Gates Building", city=None, country="Russia"))

    def test_empty_country_and_city_lists_match_anywhere(self):
        group = ExceptionGroup.from_dict("twins", {"keywords": ["twin tower"]})
        assert group.contains(make_record(name="Twin Tower North", city="Anywhere"))

    def test_cyrillic_aliases(self):
        record = make_record(name="Сталинская высотка", city="Москва", country="Россия")
        assert in_exception_set(record) == "moscow_seven_sisters"


# ---- MatchingConfig -----------------------------------------------------------


class TestMatchingConfig:
    def test_packaged_rules_match_defaults(self):
        config = MatchingConfig.from_yaml(DEFAULT_RULES_PATH)
        defaults = MatchingConfig()
        assert config.interactive == defaults.interactive
        assert config.batch == defaults.batch
        assert config.scoring == defaults.scoring
        assert config.search == defaults.search
        assert [g.name for g in config.exception_groups] == ["moscow_seven_sisters"]

    def test_partial_file_keeps_defaults(self, tmp_path):
        path = tmp_path / "rules.yaml"
        path.write_text("interactive:\n  max_distance_m: 100\n  bogus_key: 7\n", encoding="utf-8")
        config = MatchingConfig.from_yaml(path)
        assert config.interactive["max_distance_m"] == 100
        assert config.interactive["min_name_similarity"] == 0.6
        assert "bogus_key" not in config.interactive
        assert config.batch["max_distance_m"] == 10_000
        assert [g.name for g in config.exception_groups] == ["moscow_seven_sisters"]

    def test_exception_groups_can_be_emptied(self, tmp_path):
        path = tmp_path / "rules.yaml"
        path.write_text("exception_groups: {}\n", encoding="utf-8")
        config = MatchingConfig.from_yaml(path)
        assert config.exception_groups == []

    def test_path_from_environment(self, tmp_path, monkeypatch):
        path = tmp_path / "rules.yaml"
        path.write_text("search:\n  generative_trigger: 3\n", encoding="utf-8")
        monkeypatch.setenv("ATLAS_MATCHING_RULES", str(path))
        assert MatchingConfig.from_yaml().search["generative_trigger"] == 3

    def test_similarity_uses_name_settings(self):
        config = MatchingConfig()
        config.names["qualifier_weight"] = 0.5
        assert config.similarity("City Hall", "City Hall (West Wing)") == pytest.approx(0.5)

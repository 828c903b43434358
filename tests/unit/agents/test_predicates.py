"""Unit tests for switchboard.agents.predicates module."""

from typing import Any

import pytest
import yaml

from switchboard.agents.predicates import (
    ALWAYS,
    NEVER,
    AllOf,
    AnyOf,
    AtLeast,
    Below,
    Contains,
    Equals,
    Flag,
    Not,
    OneOf,
    Present,
    parse_predicate,
)
from switchboard.core.errors import ConfigError


class TestLeaves:
    """Leaf predicates look at one attribute and never raise."""

    def test_flag_requires_true(self) -> None:
        """Flag matches only the boolean True."""
        flag = Flag("has_unsafe_block")
        assert flag({"has_unsafe_block": True})
        assert not flag({"has_unsafe_block": 1})
        assert not flag({"has_unsafe_block": "yes"})
        assert not flag({})

    def test_present(self) -> None:
        """Present ignores missing and None attributes."""
        present = Present("deploy_target")
        assert present({"deploy_target": "k8s"})
        assert present({"deploy_target": False})
        assert not present({"deploy_target": None})
        assert not present({})

    def test_equals_does_not_confuse_bool_and_int(self) -> None:
        """True never equals 1 and vice versa."""
        assert Equals("n", 1)({"n": 1})
        assert not Equals("n", 1)({"n": True})
        assert not Equals("n", True)({"n": 1})

    def test_one_of(self) -> None:
        """OneOf matches any listed value."""
        pred = OneOf("lang", ("rust", "c"))
        assert pred({"lang": "c"})
        assert not pred({"lang": "go"})
        assert not pred({})

    def test_contains(self) -> None:
        """Contains looks inside collections but not strings."""
        pred = Contains("labels", "security")
        assert pred({"labels": ["bug", "security"]})
        assert pred({"labels": frozenset({"security"})})
        assert not pred({"labels": "security"})
        assert not pred({"labels": None})

    def test_contains_unhashable_item_against_set(self) -> None:
        """An unhashable value tested against a set is simply False."""
        assert not Contains("labels", ("a", ["b"]))({"labels": {"a"}})

    def test_numeric_thresholds(self) -> None:
        """AtLeast and Below compare numbers and reject bools and strings."""
        assert AtLeast("coverage", 0.8)({"coverage": 0.8})
        assert Below("coverage", 0.8)({"coverage": 0.5})
        assert not Below("coverage", 0.8)({"coverage": "0.5"})
        assert not Below("coverage", 2)({"coverage": True})
        assert not AtLeast("coverage", 0.1)({})

    def test_always_and_never(self) -> None:
        """ALWAYS and NEVER ignore the context."""
        assert ALWAYS({})
        assert not NEVER({"anything": True})


class TestCombinators:
    """AllOf, AnyOf and Not."""

    def test_operators(self) -> None:
        """& | ~ build the matching combinators."""
        unsafe_rust = Equals("lang", "rust") & Flag("has_unsafe_block")
        assert isinstance(unsafe_rust, AllOf)
        assert unsafe_rust({"lang": "rust", "has_unsafe_block": True})
        assert not unsafe_rust({"lang": "rust"})

        either = Flag("a") | Flag("b")
        assert isinstance(either, AnyOf)
        assert either({"b": True})

        negated = ~Flag("a")
        assert isinstance(negated, Not)
        assert negated({})

    def test_empty_combinators(self) -> None:
        """Empty AllOf is True, empty AnyOf is False."""
        assert AllOf(())({})
        assert not AnyOf(())({})

    def test_predicates_are_hashable(self) -> None:
        """Predicates compare and hash by value."""
        assert Flag("a") == Flag("a")
        assert len({Flag("a"), Flag("a"), Flag("b")}) == 2


class TestParsePredicate:
    """Test parse_predicate()."""

    def test_parses_nested_yaml(self) -> None:
        """The documented YAML form parses into an evaluable tree."""
        node = yaml.safe_load(
            """
            any:
              - flag: handles_auth
              - all:
                  - equals: {lang: rust}
                  - flag: has_unsafe_block
            """
        )
        pred = parse_predicate(node)
        assert pred({"handles_auth": True})
        assert pred({"lang": "rust", "has_unsafe_block": True})
        assert not pred({"lang": "rust"})

    def test_multi_attribute_mapping_is_conjunction(self) -> None:
        """equals with several attributes requires all of them."""
        pred = parse_predicate({"equals": {"lang": "rust", "edition": 2021}})
        assert isinstance(pred, AllOf)
        assert pred({"lang": "rust", "edition": 2021})
        assert not pred({"lang": "rust", "edition": 2018})

    def test_booleans(self) -> None:
        """Bare booleans are ALWAYS and NEVER."""
        assert parse_predicate(True) is ALWAYS
        assert parse_predicate(False) is NEVER
        assert parse_predicate({"always": True}) is ALWAYS
        assert parse_predicate({"never": True}) is NEVER

    def test_one_of_lists_become_tuples(self) -> None:
        """List values are frozen into tuples."""
        pred = parse_predicate({"one_of": {"lang": ["rust", "c"]}})
        assert pred == OneOf("lang", ("rust", "c"))

    def test_to_dict_round_trips(self) -> None:
        """to_dict produces a form parse_predicate accepts."""
        pred = AnyOf((Flag("a"), Not(Below("coverage", 0.5)), Present("x")))
        assert parse_predicate(pred.to_dict()) == pred

    @pytest.mark.parametrize(
        "node",
        [
            "has_diff",
            {"flag": "a", "present": "b"},
            {"flag": ""},
            {"equals": []},
            {"one_of": {"lang": "rust"}},
            {"at_least": {"coverage": "high"}},
            {"below": {"coverage": True}},
            {"any": {"flag": "a"}},
            {"unknown_op": "a"},
        ],
    )
    def test_malformed_nodes_raise(self, node: Any) -> None:
        """Malformed nodes raise ConfigError."""
        with pytest.raises(ConfigError):
            parse_predicate(node)

    def test_error_path_points_at_child(self) -> None:
        """The config_key locates the bad child."""
        with pytest.raises(ConfigError) as exc_info:
            parse_predicate({"any": [{"flag": "a"}, {"bogus": 1}]}, path="agents[2].trigger")
        assert exc_info.value.config_key == "agents[2].trigger.any[1]"

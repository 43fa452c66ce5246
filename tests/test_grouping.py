"""Tests for update grouping."""

from collections import Counter

from depbot.config import GroupRule, ReconciliationConfig
from depbot.engine.grouping import default_group_name, group_updates
from depbot.models import UpdateType
from helpers import make_update


def _flatten(groups):
    return [u for g in groups for u in g.updates]


class TestDefaultGrouping:
    """Tests for the ecosystem/severity fallback."""

    def test_buckets_by_ecosystem_and_major(self):
        """Test majors and non-majors of each ecosystem get separate groups."""
        updates = [
            make_update("react", "17.0.0", "18.2.0"),
            make_update("lodash", "4.17.20", "4.17.21"),
            make_update("axios", "1.5.0", "1.6.0"),
            make_update("requests", "2.30.0", "2.31.0", "pip", "requirements.txt"),
        ]
        groups = group_updates(updates, ReconciliationConfig())

        names = [g.name for g in groups]
        assert names == [
            "npm major updates",
            "npm non-major updates",
            "Python non-major updates",
        ]
        non_major = groups[1]
        assert non_major.update_type is UpdateType.MINOR
        assert [u.name for u in non_major.updates] == ["axios", "lodash"]

    def test_default_group_name(self):
        """Test default names use the ecosystem label."""
        assert default_group_name("github-actions", True) == "GitHub Actions major updates"
        assert default_group_name("pip", False) == "Python non-major updates"


class TestRuleGrouping:
    """Tests for configured group rules."""

    def test_first_rule_wins(self):
        """Test an update matched by two rules lands in the first only."""
        config = ReconciliationConfig(
            groups=(
                GroupRule("react ecosystem", ("react*",)),
                GroupRule("frontend", ("react-dom", "vue")),
            )
        )
        updates = [
            make_update("react", "18.0.0", "18.2.0"),
            make_update("react-dom", "18.0.0", "18.2.0"),
            make_update("vue", "3.3.0", "3.4.0"),
        ]
        groups = group_updates(updates, config)

        by_name = {g.name: [u.name for u in g.updates] for g in groups}
        assert by_name == {"react ecosystem": ["react", "react-dom"], "frontend": ["vue"]}

    def test_severity_filter(self):
        """Test a rule with update_types leaves other severities to the defaults."""
        config = ReconciliationConfig(
            groups=(GroupRule("eslint", ("eslint*",), (UpdateType.MINOR, UpdateType.PATCH)),)
        )
        updates = [
            make_update("eslint", "8.0.0", "9.0.0"),
            make_update("eslint-plugin-x", "1.0.0", "1.1.0"),
        ]
        groups = group_updates(updates, config)

        assert [(g.name, [u.name for u in g.updates]) for g in groups] == [
            ("eslint", ["eslint-plugin-x"]),
            ("npm major updates", ["eslint"]),
        ]

    def test_regex_pattern(self):
        """Test /regex/ patterns match package names."""
        config = ReconciliationConfig(groups=(GroupRule("types", ("/^@types\\//",)),))
        updates = [
            make_update("@types/node", "20.0.0", "20.1.0"),
            make_update("typescript", "5.0.0", "5.1.0"),
        ]
        groups = group_updates(updates, config)
        assert [u.name for u in groups[0].updates] == ["@types/node"]


class TestPartition:
    """Tests for partition completeness."""

    def test_every_update_exactly_once(self):
        """Test the union of groups is a permutation of the input."""
        config = ReconciliationConfig(
            groups=(GroupRule("a", ("a*",)), GroupRule("b", ("b*", "a1")))
        )
        updates = [
            make_update(name, current, new, eco, f"{eco}.txt")
            for name, current, new, eco in [
                ("a1", "1.0.0", "2.0.0", "npm"),
                ("a2", "1.0.0", "1.1.0", "pip"),
                ("b1", "1.0.0", "1.0.1", "npm"),
                ("c1", "1.0.0", "3.0.0", "pip"),
                ("c2", "0.1.0", "0.2.0", "github-actions"),
                ("c3", "2.0.0", "2.0.5", "npm"),
            ]
        ]
        flat = _flatten(group_updates(updates, config))
        assert Counter(flat) == Counter(updates)

    def test_empty_input(self):
        """Test no updates yields no groups."""
        assert group_updates([], ReconciliationConfig()) == []

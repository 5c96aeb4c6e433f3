"""Tests for expression trees and the runner breakdown (expression_diagnostics.expression_ast).

Tests verify:
    1. JSON-logic parses into And/Or/Comparison nodes with stable clause ids,
       flipping `threshold op var` comparisons.
    2. Malformed logic raises ValueError.
    3. Evaluation fails comparisons on missing or non-numeric values.
    4. Tree rewrites (threshold replacement, clause removal) return copies.
    5. ClauseNode.from_dict reads the runner's camelCase breakdown and keeps
       unknown counts as None.
"""

import pytest

from expression_diagnostics.expression_ast import (
    AndNode,
    ClauseNode,
    ComparisonNode,
    OrNode,
    clause_id_for,
    evaluate,
    iter_comparisons,
    parse_logic,
    remove_clauses,
    replace_thresholds,
    top_level_clauses,
)

EXPRESSION = {"and": [
    {">=": [{"var": "emotions.joy"}, 0.6]},
    {"or": [
        {"<=": [{"var": "moodAxes.threat"}, 20]},
        {">=": [{"var": "sexualStates.lust"}, 0.4]},
    ]},
]}


class TestParseLogic:
    """JSON-logic to tagged nodes."""

    def test_structure(self):
        root = parse_logic(EXPRESSION)
        assert isinstance(root, AndNode)
        joy, block = root.children
        assert isinstance(joy, ComparisonNode)
        assert joy.clause_id == "var:emotions.joy:>=:0.6"
        assert isinstance(block, OrNode)
        assert [leaf.var_path for leaf in block.children] == ["moodAxes.threat", "sexualStates.lust"]

    def test_list_root_is_implicit_and(self):
        root = parse_logic([{">=": [{"var": "emotions.joy"}, 0.6]}])
        assert root.kind == "and"
        assert len(root.children) == 1

    def test_empty_inputs(self):
        assert parse_logic(None) is None
        assert parse_logic([]) is None

    def test_flipped_operands(self):
        leaf = parse_logic({"<=": [0.5, {"var": "emotions.joy"}]})
        assert (leaf.var_path, leaf.operator, leaf.threshold) == ("emotions.joy", ">=", 0.5)
        assert leaf.clause_id == "var:emotions.joy:>=:0.5"

    def test_already_parsed_passes_through(self):
        root = parse_logic(EXPRESSION)
        assert parse_logic(root) is root

    @pytest.mark.parametrize("raw", [
        {"xor": []},
        {"and": "x"},
        {">=": [{"var": "a"}]},
        {">=": [{"var": "a"}, "x"]},
        {">=": [{"var": "a"}, True]},
        {">=": [1, 2]},
        {"and": [], "or": []},
        "emotions.joy",
    ])
    def test_malformed(self, raw):
        with pytest.raises(ValueError):
            parse_logic(raw)

    def test_clause_id_formatting(self):
        assert clause_id_for("moodAxes.valence", ">=", 20.0) == "var:moodAxes.valence:>=:20"
        assert clause_id_for("emotions.joy", "<", 0.25) == "var:emotions.joy:<:0.25"


class TestEvaluate:
    """Evaluating against contexts."""

    def test_and_or(self):
        root = parse_logic(EXPRESSION)
        context = {"emotions": {"joy": 0.7}, "moodAxes": {"threat": 50}, "sexualStates": {"lust": 0.5}}
        assert evaluate(root, context) is True
        context["sexualStates"]["lust"] = 0.1
        assert evaluate(root, context) is False

    def test_missing_and_non_numeric_fail(self):
        leaf = parse_logic({"<=": [{"var": "moodAxes.threat"}, 20]})
        assert evaluate(leaf, {}) is False
        assert evaluate(leaf, {"moodAxes": {"threat": "low"}}) is False
        assert evaluate(leaf, {"moodAxes": {"threat": float("nan")}}) is False

    def test_none_tree_is_false(self):
        assert evaluate(None, {}) is False

    def test_empty_and_is_true(self):
        assert evaluate(AndNode(()), {}) is True


class TestTraversal:
    def test_iter_comparisons_depth_first(self):
        paths = [leaf.var_path for leaf in iter_comparisons(parse_logic(EXPRESSION))]
        assert paths == ["emotions.joy", "moodAxes.threat", "sexualStates.lust"]

    def test_top_level_clauses(self):
        root = parse_logic(EXPRESSION)
        assert top_level_clauses(root) == root.children
        leaf = root.children[0]
        assert top_level_clauses(leaf) == (leaf,)
        assert top_level_clauses(None) == ()

    def test_gap(self):
        leaf = ComparisonNode("emotions.joy", ">=", 0.6)
        assert leaf.gap(0.4) == pytest.approx(0.2)
        assert leaf.gap(0.9) == 0.0
        assert leaf.gap(None) is None
        assert ComparisonNode("moodAxes.threat", "<=", 20).gap(35) == pytest.approx(15)


class TestRewrites:
    """Copies with thresholds replaced or clauses removed."""

    def test_replace_thresholds_keeps_clause_id(self):
        root = parse_logic(EXPRESSION)
        edited = replace_thresholds(root, {"var:emotions.joy:>=:0.6": 0.4})
        leaf = edited.children[0]
        assert leaf.threshold == 0.4
        assert leaf.clause_id == "var:emotions.joy:>=:0.6"
        assert root.children[0].threshold == 0.6

    def test_remove_clause_from_or(self):
        root = parse_logic(EXPRESSION)
        edited = remove_clauses(root, ["var:moodAxes.threat:<=:20"])
        assert len(edited.children[1].children) == 1

    def test_emptied_or_is_dropped(self):
        root = parse_logic(EXPRESSION)
        edited = remove_clauses(root, ["var:moodAxes.threat:<=:20", "var:sexualStates.lust:>=:0.4"])
        assert len(edited.children) == 1
        assert edited.children[0].var_path == "emotions.joy"

    def test_emptied_and_is_always_true(self):
        leaf_only = parse_logic([{">=": [{"var": "emotions.joy"}, 0.6]}])
        edited = remove_clauses(leaf_only, ["var:emotions.joy:>=:0.6"])
        assert isinstance(edited, AndNode)
        assert evaluate(edited, {}) is True


class TestClauseNode:
    """The runner's hierarchical breakdown."""

    def test_from_dict(self, or_breakdown):
        root = ClauseNode.from_dict(or_breakdown)
        assert root.node_type == "and"
        assert root.evaluation_count == 100
        assert len(root.children) == 3
        assert len(list(root.iter_leaves())) == 6
        blocks = list(root.iter_or_blocks())
        assert len(blocks) == 1
        block = blocks[0]
        assert block.or_union_pass_count == 80
        assert block.or_block_exclusive_pass_count == 50
        assert block.or_pair_pass_counts[0].pass_count == 12
        assert block.or_pair_pass_in_regime_counts == ()

    def test_missing_counts_stay_none(self, or_breakdown):
        leaf = ClauseNode.from_dict(or_breakdown).children[0]
        assert leaf.gate_pass_in_regime_count is None
        assert leaf.or_pass_count is None
        assert leaf.in_regime_failure_count == 0

    def test_node_type_inferred(self):
        assert ClauseNode.from_dict({"description": "x"}).node_type == "leaf"
        assert ClauseNode.from_dict({"children": [{"description": "x"}]}).node_type == "and"
        assert ClauseNode.from_dict("nope") is None

    def test_non_numeric_counts_dropped(self):
        node = ClauseNode.from_dict({"nodeType": "leaf", "failureRate": "high", "failureCount": True})
        assert node.failure_rate is None
        assert node.failure_count is None

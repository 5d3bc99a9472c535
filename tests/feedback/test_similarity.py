"""Tests for set-overlap similarity."""

import pytest

from feedback.similarity import containment, jaccard, normalize_text, similarity, tokenize


class TestNormalize:
    def test_lowercases_and_strips_punctuation(self):
        assert normalize_text("Hello, World!") == "hello world"

    def test_collapses_whitespace(self):
        assert normalize_text("  a \n\t b   c ") == "a b c"

    def test_none_is_empty(self):
        assert normalize_text(None) == ""

    def test_tokenize_is_a_set(self):
        assert tokenize("the cat and the hat") == {"the", "cat", "and", "hat"}


class TestSimilarity:
    @pytest.mark.parametrize("text", ["JWT tokens", "a", "Deploy on Friday."])
    def test_identity(self, text):
        assert similarity(text, text) == 1.0

    def test_both_empty_is_identical(self):
        assert similarity("", "") == 1.0

    def test_one_empty_is_zero(self):
        assert similarity("something", "") == 0.0
        assert similarity("", "something") == 0.0

    def test_symmetric(self):
        a, b = "auth uses JWT tokens", "Authentication uses JWT tokens"
        assert similarity(a, b) == similarity(b, a)

    def test_case_and_punctuation_ignored(self):
        assert similarity("JWT, Tokens!", "jwt tokens") == 1.0

    def test_partial_overlap(self):
        # {a, b, c} vs {b, c, d}: 2 shared of 4
        assert similarity("a b c", "b c d") == pytest.approx(0.5)

    def test_disjoint(self):
        assert similarity("alpha beta", "gamma delta") == 0.0


class TestJaccard:
    def test_same_edge_cases_as_similarity(self):
        assert jaccard(set(), set()) == 1.0
        assert jaccard({"a"}, set()) == 0.0
        assert jaccard(set(), {"a"}) == 0.0

    def test_accepts_iterables(self):
        assert jaccard(["a", "b"], ("b", "c")) == pytest.approx(1 / 3)


class TestContainment:
    def test_share_of_part_found(self):
        assert containment({"a", "b"}, {"a", "x", "y", "z"}) == pytest.approx(0.5)

    def test_not_symmetric(self):
        small, large = {"redis", "cache"}, {"redis", "cache", "deploy", "kubernetes", "friday"}
        assert containment(small, large) == 1.0
        assert containment(large, small) == pytest.approx(0.4)

    def test_empty_part_is_zero(self):
        assert containment(set(), {"a"}) == 0.0
        assert containment(set(), set()) == 0.0

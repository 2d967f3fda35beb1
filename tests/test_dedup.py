"""Tests for near-duplicate detection and greedy clustering."""

import pytest

from lexis_kg.ingestion.dedup import (
    chunked,
    cluster_in_chunks,
    cluster_records,
    contains_bounded,
    is_similar,
)
from lexis_kg.types import LexicalRecord


def _record(record_id, term, explanation=""):
    return LexicalRecord(id=record_id, term=term, explanation=explanation)


def _cluster(records):
    return cluster_records(records, key=lambda r: r.term, explanation=lambda r: r.explanation)


class TestIsSimilar:
    """Test the pairwise similarity rules."""

    def test_equal_keys_ignore_case_and_whitespace(self):
        """Normalized equal keys are similar."""
        assert is_similar(" Hog ", "", "hog", "")

    def test_bounded_containment(self):
        """A key inside another, bounded by a delimiter, is similar."""
        assert is_similar("Hog", "", "Hog/Pig", "")
        assert is_similar("Pig", "", "Hog/Pig", "")
        assert is_similar("hog", "", "big hog (animal)", "")

    def test_unbounded_containment_is_not_similar(self):
        """'Hog' inside 'Hogwash' does not count."""
        assert not is_similar("Hog", "", "Hogwash", "")

    def test_fuzzy_needs_both_key_and_explanation(self):
        """Close keys need close explanations too."""
        assert is_similar("Wooterkant", "the beach side", "Wooterkaant", "the beach side")
        assert not is_similar("Wooterkant", "the beach side", "Wooterkaant", "a kind of bread")

    def test_symmetric(self):
        """Similarity does not depend on argument order."""
        pairs = [
            ("Hog", "x", "Hog/Pig", "y"),
            ("Hog", "x", "Hogwash", "x"),
            ("Wooterkant", "beach", "Wooterkaant", "beach"),
        ]
        for a, ea, b, eb in pairs:
            assert is_similar(a, ea, b, eb) == is_similar(b, eb, a, ea)

    def test_empty_key_never_similar(self):
        """Empty keys match nothing, not even each other."""
        assert not is_similar("", "", "", "")
        assert not is_similar("  ", "", "hog", "")

    def test_rules_can_be_disabled(self):
        """Exact-only mode ignores containment and fuzzy matches."""
        assert not is_similar("Hog", "", "Hog/Pig", "", use_containment=False)
        assert not is_similar(
            "Wooterkant", "beach", "Wooterkaant", "beach", use_fuzzy=False
        )
        assert is_similar("Hog", "", "hog", "", use_containment=False, use_fuzzy=False)


class TestContainsBounded:
    """Test delimiter-bounded containment."""

    def test_delimiters(self):
        """Whitespace, slash, comma, semicolon and parentheses are delimiters."""
        for haystack in ("hog pig", "hog/pig", "hog,pig", "hog;pig", "(hog) pig"):
            assert contains_bounded(haystack, "hog")

    def test_needle_not_shorter(self):
        """A needle as long as the haystack is not 'contained'."""
        assert not contains_bounded("hog", "hog")


class TestClusterRecords:
    """Test greedy clustering."""

    def test_hog_example(self):
        """Hog absorbs Hog/Pig; Hogwash and Pig stay apart."""
        records = [
            _record("1", "Hog", "a pig"),
            _record("2", "Hog/Pig", "pig or hog"),
            _record("3", "Hogwash", "nonsense"),
            _record("4", "Pig", "an animal"),
        ]
        clusters = _cluster(records)

        assert [[r.id for r in c.members] for c in clusters] == [["1", "2"], ["3"], ["4"]]
        assert clusters[0].key == "hog"

    def test_partition(self):
        """Every record lands in exactly one cluster."""
        records = [
            _record("1", "Hog"),
            _record("2", "hog"),
            _record("3", "Pig"),
            _record("4", "Hog/Pig"),
            _record("5", "Dog"),
            _record("6", ""),
        ]
        clusters = _cluster(records)

        ids = [r.id for c in clusters for r in c.members]
        assert sorted(ids) == ["1", "2", "3", "4", "5", "6"]
        assert len(ids) == len(set(ids))

    def test_primary_is_first_in_input_order(self):
        """The earliest record of a cluster is its primary."""
        clusters = _cluster([_record("b", "hog"), _record("a", "Hog")])
        assert clusters[0].primary.id == "b"
        assert [r.id for r in clusters[0].duplicates] == ["a"]

    def test_merged_explanation(self):
        """Explanations are joined with ' ++ '; empty and repeated ones dropped."""
        clusters = _cluster([
            _record("1", "Hog", "a pig"),
            _record("2", "hog", ""),
            _record("3", "HOG", "a pig"),
            _record("4", "hog", "swine"),
        ])
        assert len(clusters) == 1
        assert clusters[0].merged_explanation == "a pig ++ swine"
        assert clusters[0].member_ids == ["1", "2", "3", "4"]

    def test_empty_input(self):
        """No records, no clusters."""
        assert _cluster([]) == []


class TestChunking:
    """Test chunked clustering for large inputs."""

    def test_chunked_sizes(self):
        """Chunks are consecutive slices of at most the chunk size."""
        assert [list(c) for c in chunked([1, 2, 3, 4, 5], 2)] == [[1, 2], [3, 4], [5]]

    def test_chunked_rejects_zero(self):
        """Chunk size must be positive."""
        with pytest.raises(ValueError):
            list(chunked([1], 0))

    def test_duplicates_across_chunks_stay_separate(self):
        """Clustering never merges across chunk boundaries."""
        records = [_record("1", "hog"), _record("2", "dog"), _record("3", "hog")]
        clusters = cluster_in_chunks(
            records,
            chunk_size=2,
            key=lambda r: r.term,
            explanation=lambda r: r.explanation,
        )
        assert [[r.id for r in c.members] for c in clusters] == [["1"], ["2"], ["3"]]

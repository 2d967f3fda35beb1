"""Tests for sentence segmentation."""

from lexis_kg.ingestion.segmentation import segment_text, split_sentences


class TestSplitSentences:
    """Test sentence splitting."""

    def test_terminators(self):
        assert split_sentences("Wat kumt diar? Ik wiit et nich. Gung!") == [
            "Wat kumt diar?",
            "Ik wiit et nich.",
            "Gung!",
        ]

    def test_trailing_fragment(self):
        assert split_sentences("Wat kumt diar? Ik wiit et nich") == [
            "Wat kumt diar?",
            "Ik wiit et nich",
        ]

    def test_repeated_terminators(self):
        assert split_sentences("Wat?! Nee...") == ["Wat?!", "Nee..."]

    def test_empty(self):
        assert split_sentences("") == []
        assert split_sentences("   ") == []


class TestSegmentText:
    """Test work item creation."""

    def test_ids_and_sequence(self):
        items = segment_text("story", "Een. Twee.")

        assert [i.id for i in items] == ["story_s0000", "story_s0001"]
        assert [i.sequence for i in items] == [0, 1]
        assert all(i.parent_id == "story" for i in items)

    def test_deterministic(self):
        assert segment_text("story", "Een. Twee.") == segment_text("story", "Een. Twee.")

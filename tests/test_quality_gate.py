"""Tests for the pre-scoring quality gate."""

from writewise.services import catalog
from writewise.services.quality_gate import check_submission, min_words_for


STORY = (
    "The old lighthouse keeper heard a knock at midnight. Nobody ever visited the island, "
    "especially not in a storm like this one. He lifted his lantern and opened the creaking door."
)


class TestMinWords:

    def test_no_rubric_default(self):
        assert min_words_for(None) == 10

    def test_half_of_rubric_lower_bound(self):
        rubric = catalog.get_rubric("N1_story_beginning")
        assert rubric.word_range[0] == 50
        assert min_words_for(rubric) == 25


class TestCheckSubmission:

    def test_too_short(self):
        result = check_submission("My dog is fun.", None)
        assert result.valid is False
        assert result.error == "too_short"
        assert result.word_count == 4
        assert result.min_words == 10
        assert "10" in result.message

    def test_empty(self):
        result = check_submission("", None)
        assert result.valid is False
        assert result.word_count == 0

    def test_repeated_word_is_gibberish(self):
        result = check_submission(" ".join(["dog"] * 30), None)
        assert result.valid is False
        assert result.error == "gibberish"

    def test_no_letters_is_gibberish(self):
        result = check_submission("123 456 789 000 111 222 333 444 555 666 777", None)
        assert result.valid is False
        assert result.error == "gibberish"

    def test_real_writing_passes(self):
        result = check_submission(STORY, catalog.get_rubric("N1_story_beginning"))
        assert result.valid is True
        assert result.error is None
        assert result.word_count == len(STORY.split())

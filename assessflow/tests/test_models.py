"""
Tests for the assessment domain models: question variants, question banks,
definitions and attempts.
"""

import datetime

import pytest

from assessflow.assessments.models import (
    AssessmentAttempt,
    AssessmentDefinition,
    AssessmentFamily,
    DurationUnit,
    EnumerationQuestion,
    MultipleChoiceQuestion,
    Question,
    QuestionType,
    ShortAnswerQuestion,
    TrueFalseQuestion,
    build_question_bank,
)
from assessflow.common.error_handling import ValidationError
from assessflow.tests.factories import START_TIME, sample_questions


class TestQuestionVariants:
    """Construction-time validation of each question type"""

    def test_multiple_choice_valid(self):
        q = MultipleChoiceQuestion(prompt_text="2 + 2?", options=["3", "4"], correct_answer="4")
        assert q.question_type == QuestionType.MULTIPLE_CHOICE
        assert q.is_correct("4") is True
        assert q.is_correct("3") is False
        assert q.is_correct(None) is False

    def test_multiple_choice_needs_two_options(self):
        with pytest.raises(ValidationError):
            MultipleChoiceQuestion(prompt_text="2 + 2?", options=["4"], correct_answer="4")

    def test_multiple_choice_answer_must_be_an_option(self):
        with pytest.raises(ValidationError):
            MultipleChoiceQuestion(prompt_text="2 + 2?", options=["3", "5"], correct_answer="4")

    def test_multiple_choice_rejects_duplicate_options(self):
        with pytest.raises(ValidationError):
            MultipleChoiceQuestion(prompt_text="2 + 2?", options=["4", "4"], correct_answer="4")

    def test_multiple_choice_rejects_blank_option(self):
        with pytest.raises(ValidationError):
            MultipleChoiceQuestion(prompt_text="2 + 2?", options=["4", "  "], correct_answer="4")

    def test_matching_is_case_sensitive(self):
        q = MultipleChoiceQuestion(prompt_text="Capital?", options=["Paris", "Rome"],
                                   correct_answer="Paris")
        assert q.is_correct("paris") is False
        assert q.is_correct("Paris ") is False

    def test_true_false_fills_fixed_options(self):
        q = TrueFalseQuestion(prompt_text="Sky is blue", correct_answer="True")
        assert q.options == ["True", "False"]

    def test_true_false_rejects_other_answers(self):
        with pytest.raises(ValidationError):
            TrueFalseQuestion(prompt_text="Sky is blue", correct_answer="yes")

    def test_true_false_rejects_custom_options(self):
        with pytest.raises(ValidationError):
            TrueFalseQuestion(prompt_text="Sky is blue", options=["Yes", "No"], correct_answer="True")

    def test_short_answer_requires_model_answer(self):
        with pytest.raises(ValidationError):
            ShortAnswerQuestion(prompt_text="Explain photosynthesis")

    def test_short_answer_is_never_auto_graded(self):
        q = ShortAnswerQuestion(prompt_text="Explain photosynthesis",
                                model_answer="Plants turn light into chemical energy")
        assert q.is_correct("anything") is None
        assert q.options is None

    def test_enumeration_rejects_correct_answer(self):
        with pytest.raises(ValidationError):
            EnumerationQuestion(prompt_text="List three gases", correct_answer="O2, N2, CO2",
                                model_answer="O2, N2, CO2")

    @pytest.mark.parametrize("points", [0, -1, 1.5, True])
    def test_points_must_be_positive_integer(self, points):
        with pytest.raises(ValidationError):
            TrueFalseQuestion(prompt_text="Sky is blue", correct_answer="True", points=points)

    def test_prompt_required(self):
        with pytest.raises(ValidationError):
            TrueFalseQuestion(prompt_text="   ", correct_answer="True")

    def test_from_dict_accepts_essay_alias(self):
        q = Question.from_dict({
            "type": "essay",
            "question_text": "Describe the water cycle",
            "model_answer": "Evaporation, condensation, precipitation",
        })
        assert isinstance(q, ShortAnswerQuestion)
        assert q.prompt_text == "Describe the water cycle"

    def test_from_dict_unknown_type(self):
        with pytest.raises(ValidationError):
            Question.from_dict({"question_type": "matching", "prompt_text": "Match"})

    def test_taker_view_withholds_answers(self):
        q = MultipleChoiceQuestion(prompt_text="2 + 2?", options=["3", "4"], correct_answer="4",
                                   explanation="Basic addition")
        view = q.to_taker_dict()
        assert "correct_answer" not in view
        assert "explanation" not in view
        assert view["options"] == ["3", "4"]


class TestQuestionBank:
    """Tests for build_question_bank"""

    def test_empty_bank_rejected(self):
        with pytest.raises(ValidationError):
            build_question_bank([])

    def test_order_defaults_to_position(self):
        bank = build_question_bank(sample_questions())
        assert [q.order_index for q in bank] == [0, 1]
        assert [q.points for q in bank] == [2, 3]

    def test_sorted_by_order_index(self):
        data = sample_questions()
        data[0]["order_index"] = 5
        data[1]["order_index"] = 1
        bank = build_question_bank(data)
        assert [q.question_type for q in bank] == [QuestionType.TRUE_FALSE, QuestionType.MULTIPLE_CHOICE]

    def test_duplicate_order_rejected(self):
        data = sample_questions()
        data[0]["order_index"] = 1
        data[1]["order_index"] = 1
        with pytest.raises(ValidationError):
            build_question_bank(data)

    def test_one_invalid_question_rejects_bank(self):
        data = sample_questions()
        data[1]["correct_answer"] = "maybe"
        with pytest.raises(ValidationError):
            build_question_bank(data)

    def test_instances_are_copied(self):
        original = TrueFalseQuestion(prompt_text="Sky is blue", correct_answer="True", id=9,
                                     assessment_id=3)
        bank = build_question_bank([original])
        assert bank[0] is not original
        assert bank[0].id is None
        assert bank[0].assessment_id is None


class TestAssessmentDefinition:
    """Tests for definition validation"""

    def test_hours_convert_to_minutes(self):
        definition = AssessmentDefinition(title="Finals", duration=2, duration_unit="hours")
        assert definition.duration_unit == DurationUnit.HOURS
        assert definition.duration_minutes == 120
        assert definition.duration_delta == datetime.timedelta(hours=2)

    @pytest.mark.parametrize("duration", [0, -5, "30"])
    def test_duration_must_be_positive_integer(self, duration):
        with pytest.raises(ValidationError):
            AssessmentDefinition(title="Quiz", duration=duration)

    @pytest.mark.parametrize("passing", [-1, 100.5])
    def test_passing_score_bounds(self, passing):
        with pytest.raises(ValidationError):
            AssessmentDefinition(title="Quiz", duration=10, passing_score_percent=passing)

    def test_family_parsed_from_string(self):
        definition = AssessmentDefinition(title="Quiz", duration=10, family="post_test")
        assert definition.family == AssessmentFamily.POST_TEST

    def test_invalid_family(self):
        with pytest.raises(ValidationError):
            AssessmentDefinition(title="Quiz", duration=10, family="midterm")

    def test_title_required(self):
        with pytest.raises(ValidationError):
            AssessmentDefinition(title="", duration=10)


class TestAssessmentAttempt:
    """Tests for attempt bookkeeping"""

    def _attempt(self):
        questions = build_question_bank(sample_questions())
        for index, question in enumerate(questions, start=1):
            question.id = index
        return AssessmentAttempt(
            taker_id=1,
            assessment_id=1,
            family=AssessmentFamily.PRE_ASSESSMENT,
            started_at=START_TIME,
            deadline=START_TIME + datetime.timedelta(minutes=1),
            passing_score_percent=70.0,
            questions=questions,
        )

    def test_answers_start_empty(self):
        attempt = self._attempt()
        assert attempt.answers == {1: None, 2: None}

    def test_expiry_is_inclusive_of_deadline(self):
        attempt = self._attempt()
        assert not attempt.is_expired(START_TIME + datetime.timedelta(seconds=59))
        assert attempt.is_expired(START_TIME + datetime.timedelta(seconds=60))

    def test_seconds_remaining_never_negative(self):
        attempt = self._attempt()
        assert attempt.seconds_remaining(START_TIME + datetime.timedelta(seconds=15)) == 45
        assert attempt.seconds_remaining(START_TIME + datetime.timedelta(minutes=5)) == 0

import json

import pytest

from mathjourney.decoder import (
    DEFAULT_IMPROVEMENTS,
    DEFAULT_STRENGTHS,
    PARSE_ERROR_NOTE,
    decode_progress_analysis,
    decode_worksheet_analysis,
    restore_latex,
)
from mathjourney.schemas import Difficulty, EndReason, MarkScheme, ProgressionLevel, Question


def _question(qid, answer=""):
    return Question(id=qid, text="Expand (1 + x)^3", student_answer=answer, mark_scheme=MarkScheme(total_marks=2))


CLEAN = {
    "questionAnalyses": [
        {
            "questionId": "q1",
            "steps": [
                {"description": "General term", "feedback": "Correct", "isCorrect": True, "workingShown": "T = nCr"},
                {"description": "Coefficient", "feedback": "Arithmetic slip", "isCorrect": False, "workingShown": "12"},
            ],
        },
        {
            "questionId": "q2",
            "steps": [{"description": "Sum", "feedback": "Good", "isCorrect": True, "workingShown": "S = 10"}],
        },
    ],
    "strengths": ["Recalls the binomial formula"],
    "improvements": ["Check arithmetic"],
}


def test_clean_input_round_trips():
    decoded = decode_worksheet_analysis(json.dumps(CLEAN), 2)
    assert not decoded.degraded
    assert decoded.stage == "direct"
    assert [
        {"questionId": qa.question_id, "steps": [s.to_document() for s in qa.steps]}
        for qa in decoded.question_analyses
    ] == CLEAN["questionAnalyses"]
    assert decoded.strengths == CLEAN["strengths"]
    assert decoded.improvements == CLEAN["improvements"]


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "{",
        '{"questionAnalyses": [',
        r'{"questionAnalyses": [{"questionId": "1", "steps": [{"description": "\sqrt{x}", "isCorrect": true}]}]',
        '{"questionAnalyses": [{"questionId": "1",},],,}',
        "Sorry, I cannot grade this.",
        "```json\n```",
        '["not", "an", "object"]',
    ],
)
def test_malformed_input_always_yields_expected_count(raw):
    decoded = decode_worksheet_analysis(raw, 3)
    assert len(decoded.question_analyses) == 3
    assert all(qa.steps for qa in decoded.question_analyses)


def test_unparseable_output_uses_fallback():
    questions = [_question("q1", "x^3 + 3x^2"), _question("q2")]
    decoded = decode_worksheet_analysis("total nonsense", 2, questions=questions)
    assert decoded.degraded
    assert decoded.strengths == [PARSE_ERROR_NOTE]
    assert decoded.improvements == [PARSE_ERROR_NOTE]
    first, second = decoded.question_analyses
    assert first.question_id == "q1"
    assert first.steps[0].description == "Unable to parse analysis"
    assert not first.steps[0].is_correct
    assert first.steps[0].working_shown == "x^3 + 3x^2"
    assert second.steps[0].working_shown == "No answer provided"


def test_legacy_field_names_are_accepted():
    raw = json.dumps(
        {
            "questionAnalyses": [
                {
                    "questionId": "q1",
                    "stepByStepAnalysis": [
                        {"step": "Expand", "feedback": "ok", "isCorrect": "true", "workingShown": "x"},
                        {"step": "Simplify", "feedback": "no", "isCorrect": "false", "workingShown": "y"},
                    ],
                }
            ],
            "areasofstrength": ["algebra"],
            "areasofimprovement": ["care"],
        }
    )
    decoded = decode_worksheet_analysis(raw, 1)
    steps = decoded.question_analyses[0].steps
    assert [s.description for s in steps] == ["Expand", "Simplify"]
    assert [s.is_correct for s in steps] == [True, False]
    assert decoded.strengths == ["algebra"]
    assert decoded.improvements == ["care"]


def test_missing_steps_and_lists_get_defaults():
    raw = json.dumps({"questionAnalyses": [{"questionId": "q1", "steps": []}]})
    decoded = decode_worksheet_analysis(raw, 1, questions=[_question("q1", "42")])
    step = decoded.question_analyses[0].steps[0]
    assert step.description == "Analysis step"
    assert step.feedback == "No detailed steps were provided by the AI."
    assert step.working_shown == "42"
    assert decoded.strengths == DEFAULT_STRENGTHS
    assert decoded.improvements == DEFAULT_IMPROVEMENTS
    assert not decoded.degraded


def test_short_analysis_is_padded_and_long_one_truncated():
    one = json.dumps({"questionAnalyses": [CLEAN["questionAnalyses"][0]]})
    padded = decode_worksheet_analysis(one, 3, questions=[_question("q1"), _question("q2"), _question("q3")])
    assert [qa.question_id for qa in padded.question_analyses] == ["q1", "q2", "q3"]
    assert padded.question_analyses[2].steps[0].description == "Question not analysed"

    truncated = decode_worksheet_analysis(json.dumps(CLEAN), 1)
    assert [qa.question_id for qa in truncated.question_analyses] == ["q1"]


def test_latex_eaten_by_json_escapes_is_restored():
    # "\f" and "\t" are valid JSON escapes, so the model's single backslashes decode to control characters
    raw = '{"questionAnalyses": [{"questionId": "q1", "steps": [{"description": "\\frac{1}{2} \\times 3", "isCorrect": true}]}]}'
    decoded = decode_worksheet_analysis(raw, 1)
    assert decoded.question_analyses[0].steps[0].description == r"\frac{1}{2} \times 3"


def test_restore_latex_keeps_ordinary_whitespace():
    assert restore_latex("a\tb") == "a\tb"
    assert restore_latex("\beta + \right)") == r"\beta + \right)"


PROGRESS = {
    "conceptualUnderstanding": "Solid grasp of the general term.",
    "patternAnalysis": {"recurringStrengths": ["formula recall"], "recurringWeaknesses": []},
    "skillBreakdown": {"mastered": ["nCr"], "developing": ["expansion"], "needsWork": []},
    "progressionStatus": {
        "level": "next-topic",
        "next-topic": "Complex Numbers",
        "next-topic-difficulty": "medium",
        "explanation": "Ready to move on.",
        "confidenceScore": "85",
    },
    "recommendedFocus": {"topicsForNextWorksheet": ["Complex Numbers"], "conceptsToReview": []},
    "journeyStatus": {"journey-complete": "no", "endReason": ""},
}


def test_progress_analysis_decodes():
    analysis = decode_progress_analysis(json.dumps(PROGRESS), "Binomial Theorem", Difficulty.MEDIUM)
    rec = analysis.recommendation
    assert rec.level == ProgressionLevel.NEXT_TOPIC
    assert rec.next_topic == "Complex Numbers"
    assert rec.next_difficulty == Difficulty.MEDIUM
    assert rec.confidence_score == 85
    assert rec.journey_complete is False
    assert rec.end_reason is None
    assert analysis.skill_breakdown.developing == ["expansion"]
    assert not analysis.degraded


def test_progress_fallback_reviews_current_topic():
    analysis = decode_progress_analysis("the model timed out", "Complex Numbers", Difficulty.HARD)
    rec = analysis.recommendation
    assert analysis.degraded
    assert rec.level == ProgressionLevel.REVIEW
    assert rec.next_topic == "Complex Numbers"
    assert rec.next_difficulty == Difficulty.MEDIUM
    assert rec.confidence_score == 50
    assert rec.explanation.startswith("Due to an error processing the AI response")


def test_progress_fields_are_coerced():
    raw = json.dumps(
        {
            "progressionStatus": {
                "level": "Intensive Review",
                "next-topic": "Same topic",
                "next-topic-difficulty": "extreme",
                "confidenceScore": 150,
            },
            "journeyStatus": {"journey-complete": "Yes", "endReason": "too-many-attempts"},
        }
    )
    rec = decode_progress_analysis(raw, "Sequences and Series", Difficulty.EASY).recommendation
    assert rec.level == ProgressionLevel.INTENSIVE_REVIEW
    assert rec.next_topic == "Sequences and Series"
    assert rec.next_difficulty == Difficulty.EASY
    assert rec.confidence_score == 100
    assert rec.journey_complete is True
    assert rec.end_reason == EndReason.MAX_ATTEMPTS_REACHED


def test_progress_unknown_level_defaults_to_review():
    raw = '{progressionStatus: {level: "maybe", "next-topic": "Complex Numbers"},}'
    rec = decode_progress_analysis(raw, "Binomial Theorem", Difficulty.MEDIUM).recommendation
    assert rec.level == ProgressionLevel.REVIEW
    assert rec.next_topic == "Complex Numbers"
    assert rec.confidence_score == 50


@pytest.mark.parametrize("value", ["NaN", "Infinity", "-Infinity"])
def test_non_finite_confidence_defaults_to_fifty(value):
    raw = '{"progressionStatus": {"level": "review", "next-topic": "Same topic", "confidenceScore": %s}}' % value
    rec = decode_progress_analysis(raw, "Binomial Theorem", Difficulty.MEDIUM).recommendation
    assert rec.confidence_score == 50
    assert rec.next_topic == "Binomial Theorem"


def test_deeply_nested_output_falls_back():
    raw = '{"questionAnalyses": ' + "[" * 50000 + "]" * 50000 + "}"
    decoded = decode_worksheet_analysis(raw, 2)
    assert decoded.degraded
    assert len(decoded.question_analyses) == 2
    assert decode_progress_analysis(raw, "Complex Numbers", Difficulty.EASY).degraded

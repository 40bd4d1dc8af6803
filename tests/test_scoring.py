import pytest

from mathjourney.decoder import DecodedAnalysis
from mathjourney.schemas import MarkScheme, MarkSchemeStep, Question, QuestionAnalysis, StepAnalysis
from mathjourney.scoring import percentage, round_half_up, score_question, score_worksheet


def _scheme(*marks, total=None):
    return MarkScheme(
        total_marks=sum(marks) if total is None else total,
        steps=[MarkSchemeStep(description=f"step {i}", marks=m) for i, m in enumerate(marks, start=1)],
    )


def _steps(*correct):
    return [StepAnalysis(description=f"s{i}", is_correct=c) for i, c in enumerate(correct)]


def test_positional_all_correct():
    assert score_question(_steps(True, True, True, True), _scheme(1, 1, 1, 1)) == 4
    assert percentage(4, 4) == 100


def test_positional_uses_step_weights():
    assert score_question(_steps(False, True, True), _scheme(2, 1, 3)) == 4


def test_proportional_when_step_counts_differ():
    # 4 marks, grader returned 2 steps with 1 correct
    assert score_question(_steps(True, False), _scheme(1, 1, 1, 1)) == 2


def test_proportional_rounds_half_up():
    # 5 * 1/2 = 2.5 rounds to 3, not to the even 2
    assert score_question(_steps(True, False), _scheme(1, 1, 1, 1, 1)) == 3
    assert round_half_up(2.5) == 3
    assert round_half_up(0.49) == 0


def test_no_steps_scores_zero():
    assert score_question([], _scheme(2, 2)) == 0


def test_score_is_clamped_to_total():
    # step marks sum to 5 but the question is only worth 3
    assert score_question(_steps(True, True), _scheme(2, 3, total=3)) == 3


@pytest.mark.parametrize("score,total,expected", [(0, 0, 0), (1, 3, 33), (2, 3, 67), (5, 8, 63)])
def test_percentage(score, total, expected):
    assert percentage(score, total) == expected


def _question(qid, scheme):
    return Question(id=qid, text="...", mark_scheme=scheme)


def test_worksheet_totals():
    questions = [_question("q1", _scheme(1, 1, 1, 1)), _question("q2", _scheme(2, 2, 2))]
    analysis = DecodedAnalysis(
        question_analyses=[
            QuestionAnalysis(question_id="q1", steps=_steps(True, True, False, True)),
            QuestionAnalysis(question_id="q2", steps=_steps(True, False)),
        ],
        strengths=["recall"],
        improvements=["care"],
    )
    scored = score_worksheet(analysis, questions)
    assert [qa.score for qa in scored.question_analyses] == [3, 3]
    assert [qa.total_marks for qa in scored.question_analyses] == [4, 6]
    assert [qa.percentage for qa in scored.question_analyses] == [75, 50]
    assert scored.total_score == 6
    assert scored.total_possible_score == 10
    assert scored.percentage_score == 60
    assert scored.strengths == ["recall"]


def test_worksheet_with_zero_possible_marks():
    questions = [_question("q1", MarkScheme(total_marks=0))]
    analysis = DecodedAnalysis(question_analyses=[QuestionAnalysis(question_id="q1", steps=_steps(True))])
    scored = score_worksheet(analysis, questions)
    assert scored.total_score == 0
    assert scored.percentage_score == 0
    assert scored.question_analyses[0].percentage == 0


def test_missing_analysis_scores_zero():
    questions = [_question("q1", _scheme(2)), _question("q2", _scheme(2))]
    analysis = DecodedAnalysis(question_analyses=[QuestionAnalysis(question_id="q1", steps=_steps(True))])
    scored = score_worksheet(analysis, questions)
    assert [qa.score for qa in scored.question_analyses] == [2, 0]
    assert scored.question_analyses[1].question_id == "q2"

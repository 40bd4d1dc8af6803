import json

from mathjourney import repository
from mathjourney.errors import CompletionError, StoreError
from mathjourney.routers import worksheet_analysis


def _question(qid, marks=(1, 1)):
    return {
        "id": qid,
        "text": "Find the coefficient of x^2 in (1 + 2x)^5",
        "studentAnswer": "40",
        "markScheme": {
            "totalMarks": sum(marks),
            "steps": [{"description": f"step {i}", "marks": m} for i, m in enumerate(marks, start=1)],
            "commonErrors": ["forgetting the 2^2"],
        },
    }


REQUEST = {
    "userId": "u1",
    "journeyId": "j1",
    "worksheetId": "ws1",
    "topic": "Binomial Theorem",
    "difficulty": "medium",
    "questions": [_question("q1"), _question("q2", (2, 2))],
}

MODEL_OUTPUT = json.dumps(
    {
        "questionAnalyses": [
            {
                "questionId": "q1",
                "steps": [
                    {"description": "General term", "feedback": "ok", "isCorrect": True, "workingShown": "5C2"},
                    {"description": "Evaluate", "feedback": "ok", "isCorrect": True, "workingShown": "40"},
                ],
            },
            {
                "questionId": "q2",
                "steps": [
                    {"description": "Set up", "feedback": "ok", "isCorrect": True, "workingShown": ""},
                    {"description": "Solve", "feedback": "slip", "isCorrect": False, "workingShown": ""},
                ],
            },
        ],
        "strengths": ["Uses the general term"],
        "improvements": ["Check powers of the coefficient"],
    }
)


def test_analysis_is_scored_and_stored(client, completion, store):
    completion.queue("```json\n" + MODEL_OUTPUT + "\n```")
    res = client.post("/api/worksheet-analysis/analyze", json=REQUEST)
    assert res.status_code == 200
    body = res.json()
    analysis = body["analysis"]

    assert analysis["totalScore"] == 4
    assert analysis["totalPossibleScore"] == 6
    assert analysis["percentageScore"] == 67
    assert [qa["score"] for qa in analysis["questionAnalyses"]] == [2, 2]
    assert analysis["degraded"] is False
    assert analysis["worksheetResultId"].startswith("j1_ws1_u1_")
    assert body["tokenUsage"] == {"inputTokens": 120, "outputTokens": 80, "totalTokens": 200}
    assert body["apiCost"] > 0

    stored = repository.load_result(store, analysis["worksheetResultId"])
    assert stored.total_score == 4
    assert stored.strengths == ["Uses the general term"]

    fetched = client.get(f"/api/worksheet-analysis/result/{stored.id}").json()
    assert fetched["analysis"]["percentageScore"] == 67


def test_prompt_carries_question_and_mark_scheme(client, completion):
    completion.queue(MODEL_OUTPUT)
    client.post("/api/worksheet-analysis/analyze", json=REQUEST)
    call = completion.calls[0]
    assert "Student's Answer: 40" in call["user_prompt"]
    assert "forgetting the 2^2" in call["user_prompt"]
    assert call["max_output_tokens"] == worksheet_analysis.MAX_OUTPUT_TOKENS
    assert call["temperature"] == worksheet_analysis.TEMPERATURE


def test_unparseable_output_degrades_to_zero_score(client, completion):
    completion.queue("I'm sorry, I can't help with that.")
    res = client.post("/api/worksheet-analysis/analyze", json=REQUEST)
    assert res.status_code == 200
    analysis = res.json()["analysis"]
    assert analysis["degraded"] is True
    assert analysis["totalScore"] == 0
    assert len(analysis["questionAnalyses"]) == 2
    assert analysis["worksheetResultId"] is not None


def test_store_failure_still_returns_feedback(client, completion, monkeypatch):
    def fail(store, result):
        raise StoreError("disk full")

    monkeypatch.setattr(worksheet_analysis, "save_result", fail)
    completion.queue(MODEL_OUTPUT)
    res = client.post("/api/worksheet-analysis/analyze", json=REQUEST)
    assert res.status_code == 200
    assert res.json()["analysis"]["worksheetResultId"] is None
    assert res.json()["analysis"]["totalScore"] == 4


def test_completion_failure_is_502(client, completion, store):
    completion.queue(CompletionError("Gemini call failed: timed out"))
    res = client.post("/api/worksheet-analysis/analyze", json=REQUEST)
    assert res.status_code == 502
    assert res.json()["success"] is False
    assert store.query(repository.WORKSHEET_RESULTS) == []


def test_empty_question_list_is_rejected(client):
    res = client.post("/api/worksheet-analysis/analyze", json={**REQUEST, "questions": []})
    assert res.status_code == 422


def test_missing_result_is_404(client):
    assert client.get("/api/worksheet-analysis/result/nope").status_code == 404
    assert client.get("/api/worksheets/result/nope").status_code == 404

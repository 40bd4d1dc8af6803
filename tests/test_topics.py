import pytest

from mathjourney.schemas import Difficulty
from mathjourney.topics import TOPICS, canonical_topic, is_last_topic, resources_for, worksheet_id


@pytest.mark.parametrize(
    "name,expected",
    [
        ("Binomial Theorem", "Binomial Theorem"),
        ("binomial theorem", "Binomial Theorem"),
        ("Binomial Expansion", "Binomial Theorem"),
        ("Arithmetic Sequences", "Sequences and Series"),
        ("Mathematical Induction", "Mathematical Induction and Contradiction"),
        ("Exponential and Logarithmic Functions", "Exponents and Logarithms"),
        ("complex-numbers", "Complex Numbers"),
        ("Vectors", None),
        ("Logarithms", None),
        ("Binomial and Complex", None),
        ("", None),
        (None, None),
    ],
)
def test_canonical_topic(name, expected):
    assert canonical_topic(name) == expected


def test_worksheet_id():
    assert worksheet_id("Binomial Theorem", Difficulty.MEDIUM) == "binomial_theorem_medium"
    assert worksheet_id("Sequences and Series", "hard") == "sequences_and_series_hard"


def test_last_topic():
    assert is_last_topic("Exponents and Logarithms")
    assert not is_last_topic("Binomial Theorem")
    assert len(TOPICS) == 5


def test_every_topic_has_resources():
    for topic in TOPICS:
        assert resources_for(topic)
    assert resources_for("Vectors") == []

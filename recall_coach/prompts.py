"""
Prompt and message texts handed to collaborators.

- EXTRACTION_PROMPT: asks a language model for review items as JSON
- sparring_prompt: sets a language model up as an adversarial interviewer
- ANSWER_EVALUATION_PROMPT: asks a language model to grade an answer
- weekly_report_prompt: asks a language model to write the weekly report
- evening_summary_message: the plain-text evening summary

The coach never calls a model itself; these are returned to the caller.
"""
from __future__ import annotations

from .models import WeeklyReport

# =============================================================================
# Extraction
# =============================================================================

LEVEL_GUIDANCE = {
    "beginner": "Use plain language and focus on definitions and core facts.",
    "intermediate": "Mix definitions with how and why questions.",
    "advanced": "Prefer questions about trade-offs, mechanisms and edge cases.",
    "expert": "Ask about limits of the theory, competing views and open problems.",
}

EXTRACTION_PROMPT = """You are a learning coach turning study notes into review questions.

Learner level: {level}
{guidance}

From the notes below, extract 3 to 7 question/answer pairs.

Rules:
- One idea per question
- expectedAnswer holds the key points, not a full essay
- difficulty is an integer from 1 (easy) to 5 (hard)
- tags are short lowercase keywords

Output a JSON array only:
[{{"topic": "...", "question": "...", "expectedAnswer": "...", "difficulty": 3, "tags": ["..."]}}]

Notes:
{notes}"""


def extraction_prompt(notes: str, level: str = "intermediate") -> str:
    """Build the extraction prompt for a learner level."""
    return EXTRACTION_PROMPT.format(
        level=level,
        guidance=LEVEL_GUIDANCE.get(level, LEVEL_GUIDANCE["intermediate"]),
        notes=notes,
    )


# =============================================================================
# Sparring
# =============================================================================

SPARRING_INTENSITY = {
    "beginner": "kind, but quick to point out a missed core idea",
    "intermediate": "precise about every logical gap",
    "advanced": "relentless with counterexamples and edge cases",
    "expert": "ready to cite current debates in the field",
}

SPARRING_PROMPT = """You are an interviewer who is {intensity}.

Topic: "{topic}"

Rules:
1. When the learner explains the concept, attack logical gaps, counterexamples and contradictions.
2. Do not praise. Only point out weaknesses.
3. When the learner defends successfully, ask one level deeper.
4. Run at most 5 rounds.
5. Finish with an overall evaluation:
   - What the learner defended well
   - What is still weak
   - Keywords that need more study

Output format:
[Round N] Challenge: (question)
---
(wait for the learner's answer, or the evaluation)"""


def sparring_prompt(topic: str, level: str = "intermediate") -> str:
    """System prompt for an adversarial sparring session."""
    return SPARRING_PROMPT.format(
        intensity=SPARRING_INTENSITY.get(level, SPARRING_INTENSITY["intermediate"]),
        topic=topic,
    )


# =============================================================================
# Answer Evaluation
# =============================================================================

ANSWER_EVALUATION_PROMPT = """As a learning coach, grade the learner's review answer.

Question: {question}
Expected answer: {expected_answer}
Learner answer: {user_answer}

Criteria:
1. Did the answer hit the key points? (pass/fail)
2. What was accurate?
3. What was missing?
4. One line on how to improve

Output format:
Result: [pass or fail]
Accurate: ...
Missing: ...
Suggestion: ..."""


def answer_evaluation_prompt(question: str, expected_answer: str, user_answer: str) -> str:
    return ANSWER_EVALUATION_PROMPT.format(
        question=question,
        expected_answer=expected_answer,
        user_answer=user_answer,
    )


# =============================================================================
# Weekly Report
# =============================================================================


def weekly_report_prompt(
    report: WeeklyReport,
    failed_topics: list[str],
    strong_topics: list[str],
) -> str:
    """Prompt asking a language model to write up a weekly report."""
    return f"""As a learning coach, write this week's learning report.

This week:
- Reviews: {report.total_reviews}
- Correct rate: {report.correct_rate:.1f}%
- Topics studied: {report.topics_studied}

Weak topics: {", ".join(failed_topics) or "none"}
Strong topics: {", ".join(strong_topics) or "none"}

Include:
1. A 2-3 sentence summary of the week
2. The three weakest areas, each with a concrete way to shore it up
3. A study plan for next week
4. A short note of encouragement

Output format:
Weekly Learning Report
----------------------
[report]"""


# =============================================================================
# Evening Summary
# =============================================================================


def evening_summary_message(today_topics: list[str], today_item_count: int) -> str:
    """Plain-text summary of what was studied today."""
    if not today_topics:
        return (
            "Nothing new was studied today. How about learning one thing tomorrow?\n\n"
            "Tip: add study notes and review questions are created for you."
        )

    return (
        "Today's learning summary\n\n"
        f"Topics studied today: {', '.join(today_topics)}\n"
        f"Review items created: {today_item_count}\n\n"
        "Pick one of today's topics and explain its core in 30 seconds.\n"
        "Starting with the one you feel least sure about works best."
    )

"""
Prompt templates for lesson generation and open-form grading.
"""

import json
from typing import Any, Iterable

LESSON_CONTENT_SYSTEM_PROMPT = """You are an expert educator. Your task is to generate lesson content as a single, valid JSON array.
- The entire response MUST be ONLY the JSON array.
- Do NOT include any text, explanations, or markdown code blocks around the JSON.
- Each element is a section object with a "type" of "text" or "quiz".
- For "text" sections, provide "title" and "content"; "content" uses standard Markdown (e.g. '## Title').
- For "quiz" sections, the "quiz" field MUST be an array of question objects.
- Each question object MUST have "question", "options" (an array of strings), and "correct_answer" (a string that exactly matches one of the options)."""

EXERCISE_EVALUATION_SYSTEM_PROMPT = """You are an expert coach providing feedback on a learner's exercise submission.
Analyze the answer against the exercise details and return a JSON object with this structure:
{
  "verdict": "correct" | "partial" | "incorrect",
  "explanation": "Why the answer is correct, partial, or incorrect, referring to specific parts of it.",
  "improvement_advice": ["2-3 actionable tips for improvement."],
  "skill_score": <integer from 0 to 100 representing mastery of the targeted skill>
}
Ensure your response is ONLY the JSON object."""


def lesson_content_prompt(lesson_title: str, learning_objectives: Iterable[str]) -> str:
    objectives = ", ".join(o for o in learning_objectives if o) or "(none specified)"
    return (
        f'Generate a JSON array of lesson sections for the lesson titled "{lesson_title}".\n'
        f"Learning Objectives: {objectives}.\n"
        "Respond with ONLY the JSON array."
    )


def exercise_evaluation_prompt(
    title: str,
    exercise_type: str,
    instructions: str,
    rubric: str,
    submitted_answer: Any,
) -> str:
    answer = json.dumps(submitted_answer, indent=2, ensure_ascii=False, default=str)
    return (
        "Please evaluate the following exercise submission:\n\n"
        "## Exercise Details:\n"
        f"- **Title:** {title}\n"
        f"- **Type:** {exercise_type}\n"
        f"- **Instructions:** {instructions or 'N/A'}\n"
        f"- **Evaluation Criteria:** {rubric or 'N/A'}\n\n"
        "## User's Submission:\n"
        f"{answer}\n"
    )

"""AskUserQuestion tool: multiple-choice questions for the user."""

from typing import Any, Awaitable, Callable

from tenx.logging import get_logger
from tenx.tools.registry import Tool, ToolResult

log = get_logger(__name__)

MAX_QUESTIONS = 4
MIN_OPTIONS = 2
MAX_OPTIONS = 4

AskQuestionPromptFn = Callable[[list[dict[str, Any]]], Awaitable[dict[str, str]]]


def _validate(questions: Any) -> str | None:
    if not isinstance(questions, list) or not questions:
        return "questions must be a non-empty array"
    if len(questions) > MAX_QUESTIONS:
        return f"Maximum {MAX_QUESTIONS} questions allowed"
    for question in questions:
        if not isinstance(question, dict):
            return "Each question must be an object"
        if not isinstance(question.get("question"), str) or not question["question"]:
            return "Each question must have a question string"
        if not isinstance(question.get("header"), str) or not question["header"]:
            return "Each question must have a header string"
        options = question.get("options")
        if not isinstance(options, list) or not MIN_OPTIONS <= len(options) <= MAX_OPTIONS:
            return f"Each question must have {MIN_OPTIONS}-{MAX_OPTIONS} options"
    return None


def format_questions(questions: list[dict[str, Any]]) -> str:
    blocks = []
    for question in questions:
        options = "\n".join(
            f"  {index}. {option.get('label', '')}: {option.get('description') or ''}"
            for index, option in enumerate(question["options"], start=1)
        )
        blocks.append(f"{question['header']}: {question['question']}\nOptions:\n{options}")
    return "\n\n".join(blocks)


class AskUserQuestionTool(Tool):
    """Ask the user 1-4 multiple-choice questions."""

    name = "askuserquestion"
    description = (
        "Ask the user 1-4 multiple-choice questions to clarify requirements "
        "or choose between approaches."
    )
    # Waiting on a human, not on a computation.
    timeout_seconds = 3600.0
    parameters = {
        "type": "object",
        "properties": {
            "questions": {
                "type": "array",
                "description": "Questions to ask the user (1-4 questions)",
                "items": {
                    "type": "object",
                    "properties": {
                        "question": {
                            "type": "string",
                            "description": "The complete question to ask the user",
                        },
                        "header": {
                            "type": "string",
                            "description": 'Very short label (max 12 chars). Examples: "Auth method", "Library"',
                        },
                        "options": {
                            "type": "array",
                            "description": "The available choices (2-4 options)",
                            "items": {
                                "type": "object",
                                "properties": {
                                    "label": {"type": "string"},
                                    "description": {"type": "string"},
                                },
                                "required": ["label", "description"],
                            },
                        },
                        "multiSelect": {
                            "type": "boolean",
                            "description": "Set to true to allow multiple selections",
                        },
                    },
                    "required": ["question", "header", "options", "multiSelect"],
                },
            },
        },
        "required": ["questions"],
    }

    def __init__(self, prompt_fn: AskQuestionPromptFn | None = None):
        self.prompt_fn = prompt_fn

    async def execute(self, questions: Any, **kwargs: Any) -> ToolResult:
        error = _validate(questions)
        if error:
            return ToolResult(success=False, error=error)

        if self.prompt_fn is None:
            return ToolResult(
                success=True,
                output=(
                    "Please answer the following questions:\n\n"
                    f"{format_questions(questions)}\n\n"
                    "(Note: Interactive question UI not available, please respond in chat)"
                ),
            )

        answers = await self.prompt_fn(questions)
        log.info("User answered questions", count=len(answers))
        answer_text = ", ".join(f'"{question}"="{answer}"' for question, answer in answers.items())
        return ToolResult(
            success=True,
            output=(
                f"User has answered your questions: {answer_text}. "
                "You can now continue with the user's answers in mind."
            ),
        )

"""ask_user_question: present the user with a structured multiple-choice card.

The tool's output barely matters: clients render the question from the tool
call arguments and the user's pick arrives as the next message. It is the
default completer tool, so executing it ends the run.
"""

from typing import Any

from pydantic import BaseModel, Field

from agentstream.llm.provider import Tool
from agentstream.runner.tool_registry import ToolRegistry

TOOL_NAME = "ask_user_question"

DESCRIPTION = (
    "Present the user with a structured question card with clickable options. "
    "Use this instead of asking open-ended questions when the answer is one of a "
    "known set of choices, e.g. selecting a service, confirming an action (yes/no), "
    "or choosing between options. Only ask ONE question at a time."
)


class QuestionOption(BaseModel):
    label: str = Field(description="Button text for this option (1-5 words)")
    description: str | None = Field(
        default=None, description="Optional extra context shown below the label"
    )


class AskUserQuestionInput(BaseModel):
    question: str = Field(description="The question to ask the user")
    header: str = Field(description="Short label displayed above the question (2-4 words)")
    options: list[QuestionOption] = Field(
        min_length=2,
        max_length=6,
        description="The choices the user can pick from",
    )


def ask_user_question(inputs: dict[str, Any]) -> dict[str, Any]:
    """Validate the question card and acknowledge it."""
    card = AskUserQuestionInput.model_validate(inputs)
    return {
        "status": "question_presented",
        "message": "Waiting for user response.",
        "options": [o.label for o in card.options],
    }


def register(registry: ToolRegistry) -> None:
    registry.register(
        TOOL_NAME,
        Tool(
            name=TOOL_NAME,
            description=DESCRIPTION,
            parameters=AskUserQuestionInput.model_json_schema(),
        ),
        ask_user_question,
    )

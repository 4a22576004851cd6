"""Clarification form — collects the user's answers to an ambiguity.

Each question offers its predefined choices plus an "Autre" option with a
free-text answer.  Once every question is answered the form builds the
:class:`ClarificationContext` sent on the clarification round; free-text
answers are prefixed ``"Autre: "`` so the pipeline can tell them apart.
"""

from __future__ import annotations

import logging

from models.ambiguity import (
    ClarificationAnswer,
    ClarificationContext,
    ClarificationQuestion,
)

logger = logging.getLogger(__name__)

OTHER_CHOICE = "Autre"
OTHER_PREFIX = f"{OTHER_CHOICE}: "


class ClarificationForm:
    """Answer state for one set of clarification questions."""

    def __init__(self, questions: list[ClarificationQuestion]) -> None:
        self.questions = list(questions)
        self.answers = [ClarificationAnswer(question=q.question) for q in self.questions]

    def choices(self, index: int) -> list[str]:
        """Options displayed for question *index*, "Autre" last."""
        return [*self.questions[index].choices, OTHER_CHOICE]

    def select(self, index: int, choice: str) -> None:
        """Select *choice* for question *index*; a predefined choice clears free text."""
        if choice not in self.choices(index):
            raise ValueError(f"Unknown choice {choice!r} for question {index}")
        answer = self.answers[index]
        answer.selected_choice = choice
        if choice != OTHER_CHOICE:
            answer.custom_answer = ""

    def answer_other(self, index: int, text: str) -> None:
        """Select "Autre" for question *index* with a free-text answer."""
        self.select(index, OTHER_CHOICE)
        self.answers[index].custom_answer = text

    def is_answered(self, index: int) -> bool:
        answer = self.answers[index]
        if answer.selected_choice is None:
            return False
        if answer.selected_choice == OTHER_CHOICE:
            return bool(answer.custom_answer.strip())
        return True

    def is_complete(self) -> bool:
        return all(self.is_answered(i) for i in range(len(self.answers)))

    def build_context(self) -> ClarificationContext:
        """Build the clarification payload.  Raises ``ValueError`` if incomplete."""
        missing = [i for i in range(len(self.answers)) if not self.is_answered(i)]
        if missing:
            raise ValueError(f"Clarification questions not answered: {missing}")

        user_answers: dict[str, str] = {}
        for question, answer in zip(self.questions, self.answers):
            if answer.selected_choice == OTHER_CHOICE:
                user_answers[question.question] = f"{OTHER_PREFIX}{answer.custom_answer.strip()}"
            else:
                user_answers[question.question] = answer.selected_choice or ""
        logger.debug("Clarification context built for %d questions", len(user_answers))
        return ClarificationContext(user_answers=user_answers)

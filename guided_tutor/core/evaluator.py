"""
Learner Evaluators for the Guided Tutor engine

An evaluator turns one validated exchange into a LearnerContextDelta. The
orchestrator applies the delta and uses `completes_item` to decide whether
the active screen (or placement item) is satisfied.

Contract:
    evaluate(session, learner_context, turn_input, response) -> LearnerContextDelta

Evaluators are pure: they read their inputs and return a delta, nothing else.
"""

from typing import Optional, Protocol

from guided_tutor.models.learner import LearnerContext, LearnerContextDelta, MasteryStatus
from guided_tutor.models.lesson import Problem
from guided_tutor.models.session import LifecycleState, Session
from guided_tutor.models.turn import TurnInput
from guided_tutor.utils.state_utils import is_question, is_sole_answer, progress_mastery


class LearnerEvaluator(Protocol):
    """Pluggable evidence extraction."""

    def evaluate(
        self,
        session: Session,
        learner_context: LearnerContext,
        turn_input: TurnInput,
        response: str,
    ) -> LearnerContextDelta:
        ...


class AnswerMatchEvaluator:
    """
    Compares the learner's message with the active problem's answer.

    - Numeric answers match by exact value (3/4 == 0.75 == 6/8); textual
      answers match as whole-word phrases.
    - A message counts as an answer only when it commits to one value;
      listing several guesses is an attempt, never a correct one.
    - A correct answer progresses mastery one level, resolves an open
      misconception on the concept and completes the item.
    - A wrong answer listed in the problem's common mistakes records the
      misconception and a weakness.
    - A question with no answer in it is not an attempt.
    - During placement, any attempt completes the item.
    """

    def evaluate(
        self,
        session: Session,
        learner_context: LearnerContext,
        turn_input: TurnInput,
        response: str,
    ) -> LearnerContextDelta:
        problem = session.active_problem
        if problem is None:
            return LearnerContextDelta()

        message = turn_input.message
        concept = problem.concept
        correct = is_sole_answer(problem.expected_answer, message, exclude_text=problem.prompt)
        mistake = None if correct else self._match_mistake(problem, message)

        if not correct and mistake is None and is_question(message):
            return LearnerContextDelta(concept=concept)

        placement = session.state == LifecycleState.ASSESSING_LEVEL
        delta = LearnerContextDelta(
            concept=concept,
            is_attempt=True,
            is_correct=correct,
            completes_item=correct or placement,
        )

        if correct:
            new_status = progress_mastery(learner_context.status_of(concept))
            delta.mastery_updates[concept] = new_status
            if concept in {m.concept for m in learner_context.open_misconceptions}:
                delta.misconceptions_resolved.append(concept)
            if new_status == MasteryStatus.MASTERED:
                delta.strengths_added.append(concept)
        elif mistake is not None:
            delta.misconceptions_observed[concept] = mistake
            delta.weaknesses_added.append(concept)
        return delta

    def _match_mistake(self, problem: Problem, message: str) -> Optional[str]:
        for wrong_answer, description in problem.common_mistakes.items():
            if is_sole_answer(wrong_answer, message, exclude_text=problem.prompt):
                return description
        return None

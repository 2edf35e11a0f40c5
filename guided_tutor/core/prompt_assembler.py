"""
Prompt Assembler for the Guided Tutor engine

Renders a complete GenerationRequest from the instructor profile, the
learner context, the session and the learner's message. Layers are always
composed in LayerKind order:

    IDENTITY, TEACHING_RULES, LEARNER_CONTEXT, FALLBACK, LEARNER_MESSAGE

Assembly is a pure function of its inputs and the read-only TemplateSet:
identical inputs render byte-identical prompts.

When the estimated prompt exceeds the token budget, history is dropped
oldest first (session summaries, then transcript messages). Identity and
rules layers are never truncated; if the prompt still does not fit,
ContextTooLargeError is raised.
"""

from typing import Optional, Sequence

from guided_tutor.exceptions import ContextTooLargeError
from guided_tutor.logging_config import get_logger
from guided_tutor.models.generation import (
    GenerationParams,
    GenerationRequest,
    LayerKind,
    PromptLayer,
)
from guided_tutor.models.instructor import InstructorProfile
from guided_tutor.models.learner import LearnerContext, SessionSummary
from guided_tutor.models.session import LifecycleState, Message, Session
from guided_tutor.models.turn import TurnInput
from guided_tutor.prompts.templates import LEARNER_MESSAGE_TEMPLATE, TemplateSet
from guided_tutor.utils.prompt_utils import (
    estimate_tokens,
    format_bullets,
    format_learner_context,
    format_transcript,
)


logger = get_logger("prompt_assembler")


class PromptAssembler:
    """
    Builds generation requests from layered instructional context.

    Attributes:
        templates: Immutable template set shared by all sessions
        token_budget: Maximum estimated prompt tokens
        default_params: Sampling parameters applied to every request
    """

    def __init__(
        self,
        templates: TemplateSet,
        token_budget: int = 6000,
        default_params: Optional[GenerationParams] = None,
    ):
        self.templates = templates.validate()
        self.token_budget = token_budget
        self.default_params = default_params or GenerationParams()

    def assemble(
        self,
        session: Session,
        learner_context: LearnerContext,
        profile: InstructorProfile,
        turn_input: TurnInput,
        *,
        reminders: Sequence[str] = (),
        stream: bool = False,
    ) -> GenerationRequest:
        """
        Render the generation request for one attempt.

        Args:
            session: Current session (read-only)
            learner_context: Learner knowledge state (read-only)
            profile: Instructor profile
            turn_input: The learner's message
            reminders: Retry guidance appended to the fallback layer
            stream: Whether the request will be streamed

        Returns:
            GenerationRequest with all five layers

        Raises:
            TemplateMissingError: If a required template is not in the set
            ContextTooLargeError: If the prompt exceeds the budget after truncation
        """
        identity = self._render_identity(session, profile)
        rules = self._render_teaching_rules(profile)
        fallback = self._render_fallback(profile, reminders)
        message = LEARNER_MESSAGE_TEMPLATE.render(
            message=turn_input.message,
            instructor_name=profile.name,
        )
        lesson_context = self._render_lesson_context(session)

        summaries: list[SessionSummary] = list(learner_context.session_summaries)
        transcript: list[Message] = list(session.transcript)
        dropped = 0

        while True:
            context_layer = self.templates.get("context_usage").render(
                learner_context=format_learner_context(learner_context, summaries),
                lesson_context=lesson_context,
                conversation=format_transcript(transcript, profile.name),
            )
            layers = [
                PromptLayer(kind=LayerKind.IDENTITY, content=identity),
                PromptLayer(kind=LayerKind.TEACHING_RULES, content=rules),
                PromptLayer(kind=LayerKind.LEARNER_CONTEXT, content=context_layer.strip()),
                PromptLayer(kind=LayerKind.FALLBACK, content=fallback),
                PromptLayer(kind=LayerKind.LEARNER_MESSAGE, content=message),
            ]
            estimated = estimate_tokens("\n\n".join(layer.content for layer in layers))

            if estimated <= self.token_budget:
                break

            # Oldest history goes first: summaries, then transcript
            if summaries:
                summaries.pop(0)
            elif transcript:
                transcript.pop(0)
            else:
                raise ContextTooLargeError(estimated, self.token_budget)
            dropped += 1

        if dropped:
            logger.info(
                f"Prompt truncated by {dropped} history entries",
                extra={
                    "component": "prompt_assembler",
                    "event": "prompt_truncated",
                    "session_id": session.session_id,
                    "data": {
                        "dropped": dropped,
                        "estimated_tokens": estimated,
                        "budget": self.token_budget,
                    },
                },
            )

        return GenerationRequest(
            layers=layers,
            params=self.default_params.model_copy(update={"stream": stream}),
            estimated_tokens=estimated,
            truncated_entries=dropped,
        )

    # ===========================================
    # Layer Rendering
    # ===========================================

    def _render_identity(self, session: Session, profile: InstructorProfile) -> str:
        lesson = session.lesson
        return self.templates.get("identity").render(
            instructor_name=profile.name,
            subject=lesson.subject,
            topic=lesson.topic,
            learning_objective=lesson.learning_objective,
        )

    def _render_teaching_rules(self, profile: InstructorProfile) -> str:
        return self.templates.get("teaching_rules").render(
            correction_style=profile.correction_style,
            response_structure=profile.response_structure,
            guidance_level=profile.guidance_level,
            teaching_patterns=format_bullets(profile.teaching_patterns),
            question_patterns=format_bullets(profile.question_patterns),
        )

    def _render_fallback(self, profile: InstructorProfile, reminders: Sequence[str]) -> str:
        forbidden = ", ".join(profile.forbidden_topics) or "anything unrelated to the lesson"
        rendered = self.templates.get("fallback").render(
            forbidden_topics=forbidden,
            reminders="\n\n".join(reminder.strip() for reminder in reminders),
        )
        return rendered.strip()

    def _render_lesson_context(self, session: Session) -> str:
        lesson = session.lesson
        problem = session.active_problem

        if session.state == LifecycleState.ASSESSING_LEVEL:
            position = (
                f"Placement question {session.assessment_index + 1} of "
                f"{len(lesson.assessment_questions)} (checking what the learner already knows)"
            )
        elif session.state == LifecycleState.IN_LESSON:
            position = f"Screen {session.screen_index} of {session.total_screens} ({session.screen_id})"
        else:
            position = f"Lesson state: {session.state.value}"

        lines = [f"Lesson: {lesson.topic}", position]
        if problem is not None:
            lines.extend([
                f"Concept: {problem.concept}",
                f"Problem: {problem.prompt}",
                f"Expected answer (never reveal it): {problem.expected_answer}",
            ])
            if problem.hints:
                lines.append("Hints you may use, in order:")
                lines.append(format_bullets(problem.hints))
            if problem.common_mistakes:
                lines.append("Common mistakes:")
                lines.append(format_bullets(
                    f"{wrong} -> {meaning}"
                    for wrong, meaning in sorted(problem.common_mistakes.items())
                ))
        return "\n".join(lines)

from typing import Dict, Optional
from quizcraft.core.errors import AuthorizationError, NotFoundError
from quizcraft.core.security import AuthContext
from quizcraft.engine.grading import GradingWorkflow
from quizcraft.engine.session import QuizSession

class SessionRegistry:
    """In-process store of live quiz sessions and grading workflows.

    Sessions live only as long as the process; an abandoned session leaves its
    attempt row incomplete.
    """

    def __init__(self):
        # attempt_id -> session being taken
        self.sessions: Dict[int, QuizSession] = {}
        # attempt_id -> grading workflow opened by an author
        self.grading: Dict[int, GradingWorkflow] = {}

    def add(self, session: QuizSession) -> QuizSession:
        self.sessions[session.attempt_id] = session
        return session

    def get(self, attempt_id: int, auth: AuthContext) -> QuizSession:
        session = self.sessions.get(attempt_id)
        if session is None:
            raise NotFoundError("Quiz session not found", field="attempt_id")
        if session.respondent.user_id != auth.user_id:
            raise AuthorizationError("This session belongs to another user", field="attempt_id")
        return session

    def discard(self, attempt_id: int) -> Optional[QuizSession]:
        return self.sessions.pop(attempt_id, None)

    def open_grading(self, workflow: GradingWorkflow) -> GradingWorkflow:
        self.grading[workflow.attempt_id] = workflow
        return workflow

    def get_grading(self, attempt_id: int) -> GradingWorkflow:
        workflow = self.grading.get(attempt_id)
        if workflow is None:
            raise NotFoundError("No grading in progress for this attempt", field="attempt_id")
        return workflow

    def close_grading(self, attempt_id: int) -> None:
        self.grading.pop(attempt_id, None)

    def clear(self) -> None:
        self.sessions.clear()
        self.grading.clear()

registry = SessionRegistry()

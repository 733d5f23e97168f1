# Import every model so that Base.metadata is complete for Alembic and create_all.
from quizcraft.db.base_class import Base  # noqa: F401
from quizcraft.models.user import User  # noqa: F401
from quizcraft.models.quiz import Quiz, Question, QuizCustomField  # noqa: F401
from quizcraft.models.attempt import QuizAttempt, Answer, QuizAttemptField  # noqa: F401

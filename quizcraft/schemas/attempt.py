from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from datetime import datetime

class PasswordIn(BaseModel):
    password: str

class FieldsIn(BaseModel):
    values: Dict[str, Optional[str]]

class AnswerIn(BaseModel):
    value: Any = None

class NavigateIn(BaseModel):
    confirmed: bool = False

class Confirmation(BaseModel):
    kind: str
    message: str
    unanswered: int = 0

class SessionResponse(BaseModel):
    session: Dict[str, Any]
    confirmation: Optional[Confirmation] = None

class GradeIn(BaseModel):
    index: int
    is_correct: bool
    points_awarded: float = Field(..., ge=0)
    feedback: Optional[str] = None

class AttemptField(BaseModel):
    field_name: str
    field_value: Optional[str] = None

    class Config:
        from_attributes = True

class Answer(BaseModel):
    id: int
    question_id: int
    user_answer: Any = None
    is_correct: Optional[bool] = None
    points_awarded: Optional[float] = None
    feedback: Optional[str] = None
    graded_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class Attempt(BaseModel):
    id: int
    quiz_id: int
    user_id: int
    email: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    score: float
    max_score: float
    is_graded: bool
    fields: List[AttemptField] = []
    answers: List[Answer] = []

class QuizStats(BaseModel):
    quiz_id: int
    title: str
    attempts: List[Attempt]
    analytics: Dict[str, Any]

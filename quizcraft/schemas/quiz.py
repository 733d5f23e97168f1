from pydantic import BaseModel, Field
from typing import Any, List, Optional
from datetime import datetime
from quizcraft.engine.codec import QuestionType

class QuizSettings(BaseModel):
    time_limit: Optional[int] = Field(None, ge=1, le=180)
    password: Optional[str] = None
    randomize_questions: bool = False
    randomize_answers: bool = False
    show_correct_answers: bool = False
    show_question_numbers: bool = False
    show_progress_bar: bool = False
    question_limit: Optional[int] = Field(None, ge=1, le=100)
    show_elapsed_time: bool = False
    prevent_copy: bool = False
    prevent_back_navigation: bool = False
    confirm_last_next: bool = False
    confirm_finish: bool = True

class QuizBase(BaseModel):
    title: str = Field(..., max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    is_public: bool = False

class QuizCreate(QuizBase):
    settings: QuizSettings = QuizSettings()

class QuizUpdate(BaseModel):
    title: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    is_public: Optional[bool] = None

class QuestionBase(BaseModel):
    content: str
    question_type: QuestionType
    points: int = Field(1, ge=1)
    options: Optional[List[Any]] = None
    correct_answers: Optional[List[Any]] = None
    image_url: Optional[str] = None

class QuestionCreate(QuestionBase):
    position: Optional[int] = Field(None, ge=0)

class QuestionUpdate(BaseModel):
    content: Optional[str] = None
    question_type: Optional[QuestionType] = None
    points: Optional[int] = Field(None, ge=1)
    options: Optional[List[Any]] = None
    correct_answers: Optional[List[Any]] = None
    image_url: Optional[str] = None
    position: Optional[int] = Field(None, ge=0)

class Question(QuestionBase):
    id: int
    quiz_id: int
    position: int
    grading_method: str

    class Config:
        from_attributes = True

class CustomFieldIn(BaseModel):
    field_name: str
    field_label: str
    is_required: bool = False

class CustomField(CustomFieldIn):
    id: int
    position: int

    class Config:
        from_attributes = True

class CustomFieldsUpdate(BaseModel):
    fields: List[CustomFieldIn]

class Quiz(QuizBase):
    id: int
    created_by_id: int
    is_published: bool
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None
    settings: QuizSettings
    question_count: int = 0
    questions: List[Question] = []
    custom_fields: List[CustomField] = []

class QuizSummary(QuizBase):
    id: int
    is_published: bool
    has_password: bool
    question_count: int
    createdAt: Optional[datetime] = None

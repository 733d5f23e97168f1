from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, JSON, DateTime, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from quizcraft.db.base_class import Base

class Quiz(Base):
    __tablename__ = "quizzes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(200), nullable=False)
    description = Column(String(1000))
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    is_public = Column(Boolean, default=False, nullable=False)
    is_published = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Behaviour settings
    time_limit = Column(Integer)  # minutes
    password = Column(String(255))
    randomize_questions = Column(Boolean, default=False, nullable=False)
    randomize_answers = Column(Boolean, default=False, nullable=False)
    show_correct_answers = Column(Boolean, default=False, nullable=False)
    show_question_numbers = Column(Boolean, default=False, nullable=False)
    show_progress_bar = Column(Boolean, default=False, nullable=False)
    question_limit = Column(Integer)
    show_elapsed_time = Column(Boolean, default=False, nullable=False)
    prevent_copy = Column(Boolean, default=False, nullable=False)
    prevent_back_navigation = Column(Boolean, default=False, nullable=False)
    confirm_last_next = Column(Boolean, default=False, nullable=False)
    confirm_finish = Column(Boolean, default=True, nullable=False)

    # Relationships
    created_by = relationship("User", back_populates="quizzes")
    questions = relationship(
        "Question", back_populates="quiz", cascade="all, delete-orphan",
        lazy="selectin", order_by="Question.position",
    )
    custom_fields = relationship(
        "QuizCustomField", back_populates="quiz", cascade="all, delete-orphan",
        lazy="selectin", order_by="QuizCustomField.position",
    )

class Question(Base):
    __tablename__ = "questions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    quiz_id = Column(Integer, ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    content = Column(Text, nullable=False)
    image_url = Column(String(500))
    points = Column(Integer, nullable=False, default=1)
    question_type = Column(String(20), nullable=False)
    grading_method = Column(String(20), nullable=False, default="automatic")
    options = Column(JSON)  # type-dependent, see quizcraft.engine.codec
    correct_answers = Column(JSON)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    quiz = relationship("Quiz", back_populates="questions")

class QuizCustomField(Base):
    __tablename__ = "quiz_custom_fields"

    id = Column(Integer, primary_key=True, autoincrement=True)
    quiz_id = Column(Integer, ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False, index=True)
    field_name = Column(String(100), nullable=False)
    field_label = Column(String(200), nullable=False)
    is_required = Column(Boolean, default=False, nullable=False)
    position = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    quiz = relationship("Quiz", back_populates="custom_fields")

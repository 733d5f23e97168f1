from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, JSON, DateTime, Float, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from quizcraft.db.base_class import Base

class QuizAttempt(Base):
    __tablename__ = "quiz_attempts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    quiz_id = Column(Integer, ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    started_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    completed_at = Column(DateTime(timezone=True))
    score = Column(Float, default=0, nullable=False)
    max_score = Column(Float, default=0, nullable=False)
    is_graded = Column(Boolean, default=False, nullable=False)

    # Relationships
    user = relationship("User", lazy="selectin")
    answers = relationship("Answer", back_populates="attempt", cascade="all, delete-orphan", lazy="selectin")
    fields = relationship("QuizAttemptField", back_populates="attempt", cascade="all, delete-orphan", lazy="selectin")

class Answer(Base):
    __tablename__ = "answers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    attempt_id = Column(Integer, ForeignKey("quiz_attempts.id", ondelete="CASCADE"), nullable=False, index=True)
    # Weak reference: questions may be deleted after an attempt was taken.
    question_id = Column(Integer, nullable=False, index=True)
    user_answer = Column(JSON)
    is_correct = Column(Boolean)  # None while awaiting manual grading
    points_awarded = Column(Float)
    feedback = Column(Text)
    graded_at = Column(DateTime(timezone=True))
    graded_by_id = Column(Integer)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    attempt = relationship("QuizAttempt", back_populates="answers")

class QuizAttemptField(Base):
    __tablename__ = "quiz_attempt_fields"

    id = Column(Integer, primary_key=True, autoincrement=True)
    attempt_id = Column(Integer, ForeignKey("quiz_attempts.id", ondelete="CASCADE"), nullable=False, index=True)
    field_name = Column(String(100), nullable=False)
    field_value = Column(String(1000))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    attempt = relationship("QuizAttempt", back_populates="fields")

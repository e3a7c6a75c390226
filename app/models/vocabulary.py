from sqlalchemy import Column, String, Text, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.core.database import Base
import uuid


class Category(Base):
    __tablename__ = "categories"

    id = Column(String(50), primary_key=True, default=lambda: f"cat_{uuid.uuid4().hex[:12]}")
    name = Column(String(150), nullable=False)
    learning_language_code = Column(String(10), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    words = relationship("Word", back_populates="category", cascade="all, delete-orphan")


class Word(Base):
    __tablename__ = "words"
    __table_args__ = (UniqueConstraint("category_id", "term", name="uq_words_category_term"),)

    id = Column(String(50), primary_key=True, default=lambda: f"word_{uuid.uuid4().hex[:12]}")
    category_id = Column(String(50), ForeignKey("categories.id", ondelete="CASCADE"), nullable=False, index=True)
    term = Column(String(500), nullable=False)
    translation = Column(String(500), nullable=False)
    examples_md = Column(Text, nullable=False, default="")
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    category = relationship("Category", back_populates="words")

"""GameCompletion model"""
from sqlalchemy import Column, Integer, String, Float, DateTime, Index, CheckConstraint
from datetime import datetime, timezone
from app.models.base import Base


class GameCompletion(Base):
    """Append-only log of mini-game completions and the discount each earned"""
    __tablename__ = "game_completions"

    id = Column(Integer, primary_key=True, index=True)
    session_token = Column(String(64), nullable=False, index=True)  # Client-generated, from localStorage
    game_type = Column(String(50), nullable=False)  # 'culling', 'harvest', 'telegram', 'snake', 'garden', 'metamorphosis'
    product_id = Column(String(100), nullable=False)
    score = Column(Float, nullable=False)
    discount_earned = Column(Float, nullable=False, default=0)
    completed_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    __table_args__ = (
        CheckConstraint('score >= 0', name='ck_game_completions_score'),
        CheckConstraint('discount_earned >= 0 AND discount_earned <= 15', name='ck_game_completions_discount'),
        Index('ix_game_completions_session_completed', 'session_token', 'completed_at'),
    )

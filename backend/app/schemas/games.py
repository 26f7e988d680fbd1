"""Pydantic schemas for game completions"""
from app.schemas.base import CamelModel


class GameCompletionRequest(CamelModel):
    session_token: str
    game_type: str  # 'culling', 'harvest', 'telegram', 'snake', 'garden', 'metamorphosis'
    product_id: str
    score: float

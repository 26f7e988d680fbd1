"""Game completion API routes"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.security import RateLimit
from app.db.session import get_db
from app.schemas.games import GameCompletionRequest
from app.services.cart_service import validate_session_token
from app.services.discount_service import MAX_DISCOUNT_PERCENT, get_session_totals, record_completion

router = APIRouter(prefix="/api/games", tags=["games"])


@router.post("/complete", dependencies=[Depends(RateLimit("games", settings.RATE_LIMIT_GAMES))])
def complete_game(request: GameCompletionRequest, db: Session = Depends(get_db)):
    """Record a game completion and return the discount it earned"""
    completion = record_completion(
        db,
        session_token=request.session_token,
        product_id=request.product_id,
        game_type=request.game_type,
        score=request.score,
    )
    return {
        "data": {
            "gameType": completion.game_type,
            "productId": completion.product_id,
            "score": completion.score,
            "discountEarned": completion.discount_earned,
            "maxDiscountPercent": MAX_DISCOUNT_PERCENT,
            "completedAt": completion.completed_at.isoformat(),
        }
    }


@router.get("/stats/{session_token}")
def get_game_stats(session_token: str, db: Session = Depends(get_db)):
    """Aggregate discount stats for a session"""
    validate_session_token(session_token)
    return {"data": get_session_totals(db, session_token)}

"""Discount ledger: game score bucketing, the shared discount clamp, session totals

``clamp_discount`` is the only place the discount cap is enforced. Checkout,
order estimates and webhook materialization all call it; nothing else may
re-derive the bounds.
"""
import logging
import math
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from app.core.exceptions import PersistenceError, ValidationError
from app.core.metrics import game_completions_counter
from app.models.game_completion import GameCompletion
from app.services.cart_service import validate_session_token

logger = logging.getLogger(__name__)

MAX_DISCOUNT_PERCENT = 15

VALID_GAME_TYPES = (
    "culling",
    "harvest",
    "telegram",
    "snake",
    "garden",
    "metamorphosis",
)

# (minimum score, discount percent), checked top-down
SCORE_THRESHOLDS = (
    (60, 15),  # Perfect/near-perfect play
    (50, 12),  # Excellent play
    (40, 9),   # Very good play
    (30, 6),   # Good play
    (20, 3),   # Decent play
)


def clamp_discount(discount_percent: Any) -> float:
    """Bound any discount value to [0, MAX_DISCOUNT_PERCENT].

    Non-numeric input and NaN clamp to 0. In-range values pass through unchanged.
    """
    try:
        value = float(discount_percent)
    except (TypeError, ValueError):
        return 0
    if math.isnan(value) or value <= 0:
        return 0
    if value >= MAX_DISCOUNT_PERCENT:
        return MAX_DISCOUNT_PERCENT
    return value


def score_to_discount(score: float) -> int:
    """Convert a game score to a discount percentage"""
    for minimum, percent in SCORE_THRESHOLDS:
        if score >= minimum:
            return percent
    return 0


def discounted_unit_price(unit_price: float, discount_percent: Any) -> float:
    return unit_price * (1 - clamp_discount(discount_percent) / 100)


def to_minor_units(amount: float) -> int:
    """Dollars to cents, rounding half away from zero like the storefront does"""
    return int(math.floor(amount * 100 + 0.5))


def calculate_retail_costs(subtotal: float, discount_percent: Any, shipping: float = 0) -> Dict[str, str]:
    """Retail cost block sent to Printful and used for the ledger totals"""
    validated_discount = clamp_discount(discount_percent)
    discount_amount = subtotal * (validated_discount / 100)
    total = subtotal - discount_amount + shipping

    return {
        "currency": "USD",
        "subtotal": f"{subtotal:.2f}",
        "discount": f"{discount_amount:.2f}",
        "shipping": f"{shipping:.2f}",
        "tax": "0.00",
        "total": f"{total:.2f}",
    }


def validate_score(score: Any) -> float:
    """Shallow check only: the score comes from the client and cannot be verified here"""
    if isinstance(score, bool) or not isinstance(score, (int, float)) or not math.isfinite(score) or score < 0:
        raise ValidationError("score must be a non-negative number")
    return score


def record_completion(
    db: Session,
    session_token: str,
    product_id: str,
    game_type: str,
    score: float
) -> GameCompletion:
    """Persist a game completion and return it with the discount it earned.

    Zero-discount completions are still recorded for analytics and abuse review.
    """
    if not session_token or not product_id or not game_type:
        raise ValidationError("sessionToken, gameType, productId, and score are required")
    validate_session_token(session_token)

    if game_type not in VALID_GAME_TYPES:
        raise ValidationError(f"gameType must be one of: {', '.join(VALID_GAME_TYPES)}")

    score = validate_score(score)
    discount_earned = clamp_discount(score_to_discount(score))

    completion = GameCompletion(
        session_token=session_token,
        game_type=game_type,
        product_id=product_id,
        score=score,
        discount_earned=discount_earned,
    )
    try:
        db.add(completion)
        db.commit()
        db.refresh(completion)
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to record game completion for session {session_token}: {e}", exc_info=True)
        raise PersistenceError("Failed to track game completion")

    game_completions_counter.labels(game_type=game_type, discount=str(discount_earned)).inc()
    logger.info(
        f"Game completion recorded - session: {session_token}, game: {game_type}, "
        f"score: {score}, discount: {discount_earned}%"
    )
    return completion


def _completion_dict(completion: GameCompletion) -> Dict[str, Any]:
    return {
        "gameType": completion.game_type,
        "productId": completion.product_id,
        "score": completion.score,
        "discountEarned": completion.discount_earned,
        "completedAt": completion.completed_at.isoformat() if completion.completed_at else None,
    }


def get_session_totals(db: Session, session_token: str) -> Dict[str, Any]:
    """Aggregate stats for a session. The total discount is capped at MAX_DISCOUNT_PERCENT."""
    completions: List[GameCompletion] = db.query(GameCompletion).filter(
        GameCompletion.session_token == session_token
    ).order_by(GameCompletion.completed_at.desc(), GameCompletion.id.desc()).all()

    total_games = len(completions)
    raw_discount = sum(c.discount_earned for c in completions)
    capped_discount = clamp_discount(raw_discount)
    average_score = sum(c.score for c in completions) / total_games if total_games else 0

    by_game_type: Dict[str, Dict[str, Any]] = {}
    for completion in completions:
        entry = by_game_type.setdefault(
            completion.game_type, {"count": 0, "totalDiscount": 0, "avgScore": 0, "_scoreSum": 0}
        )
        entry["count"] += 1
        entry["totalDiscount"] += completion.discount_earned
        entry["_scoreSum"] += completion.score

    for entry in by_game_type.values():
        entry["avgScore"] = round(entry.pop("_scoreSum") / entry["count"], 1)

    return {
        "sessionToken": session_token,
        "totalGamesPlayed": total_games,
        "totalDiscountEarned": capped_discount,
        "effectiveDiscountPercent": capped_discount,
        "averageScore": round(average_score, 1),
        "completions": [_completion_dict(c) for c in completions],
        "byGameType": by_game_type,
    }

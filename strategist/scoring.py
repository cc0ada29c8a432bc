"""Static move scoring.

Every legal move is simulated once on a copy of the board and scored
from captures, promotions, castling, check/checkmate and whether the
destination square is left en prise. The scorer never touches the
caller's board.
"""

from __future__ import annotations

import chess

from strategist.models import MoveCandidate
from strategist.phase import piece_value

CAPTURE_MULTIPLIER = 10
PROMOTION_MULTIPLIER = 10
CASTLING_BONUS = 15
CHECK_BONUS = 50
# Dominates every other term combined
CHECKMATE_BONUS = 10_000
HANGING_MULTIPLIER = 10


def describe_move(board: chess.Board, move: chess.Move) -> MoveCandidate:
    """Build an unscored MoveCandidate for a legal move.

    Args:
        board: Position before the move.
        move: A legal move in that position.

    Returns:
        MoveCandidate with notation, squares, pieces and a description.
    """
    moving = board.piece_at(move.from_square)
    moving_name = chess.piece_name(moving.piece_type) if moving else "piece"

    captured_name = None
    if board.is_en_passant(move):
        captured_name = chess.piece_name(chess.PAWN)
    elif board.is_capture(move):
        victim = board.piece_at(move.to_square)
        if victim is not None:
            captured_name = chess.piece_name(victim.piece_type)

    promotion_name = chess.piece_name(move.promotion) if move.promotion else None
    origin = chess.square_name(move.from_square)
    destination = chess.square_name(move.to_square)

    description = f"{moving_name.capitalize()} from {origin} to {destination}"
    if board.is_castling(move):
        side = "kingside" if chess.square_file(move.to_square) > chess.square_file(move.from_square) else "queenside"
        description = f"Castles {side}"
    if captured_name:
        description += f" (captures {captured_name})"
    if promotion_name:
        description += f" (promotes to {promotion_name})"

    return MoveCandidate(
        notation=board.san(move),
        uci=move.uci(),
        origin=origin,
        destination=destination,
        moving_piece=moving_name,
        captured_piece=captured_name,
        promotion=promotion_name,
        is_castling=board.is_castling(move),
        description=description,
    )


def score_move(board: chess.Board, move: chess.Move) -> MoveCandidate:
    """Describe and score a single legal move.

    Args:
        board: Position before the move (not modified).
        move: Legal move to score.

    Returns:
        MoveCandidate with ``score``, ``gives_check`` and ``gives_mate`` set.
    """
    candidate = describe_move(board, move)
    opponent = not board.turn

    captured_type = None
    if board.is_en_passant(move):
        captured_type = chess.PAWN
    elif board.is_capture(move):
        captured_type = board.piece_type_at(move.to_square)

    score = 0
    if captured_type is not None:
        score += piece_value(captured_type) * CAPTURE_MULTIPLIER
    if move.promotion:
        score += (piece_value(move.promotion) - piece_value(chess.PAWN)) * PROMOTION_MULTIPLIER
    if board.is_castling(move):
        score += CASTLING_BONUS

    after = board.copy(stack=False)
    after.push(move)

    if after.is_checkmate():
        score += CHECKMATE_BONUS
        candidate.gives_mate = True
        candidate.gives_check = True
    elif after.is_check():
        score += CHECK_BONUS
        candidate.gives_check = True

    if after.is_attacked_by(opponent, move.to_square):
        # Value of what now stands on the square (the promoted piece after promotion)
        moved_value = piece_value(after.piece_type_at(move.to_square))
        if captured_type is not None:
            penalty = max(0, moved_value - piece_value(captured_type)) * HANGING_MULTIPLIER
        else:
            penalty = moved_value * HANGING_MULTIPLIER
        score -= penalty

    candidate.score = score
    return candidate


def score_moves(board: chess.Board) -> list[MoveCandidate]:
    """Score every legal move, best first.

    The sort is stable over python-chess's deterministic move generation
    order, so equal scores keep a fixed relative order.
    """
    candidates = [score_move(board, move) for move in board.legal_moves]
    return sorted(candidates, key=lambda c: c.score, reverse=True)

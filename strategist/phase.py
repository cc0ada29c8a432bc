"""Game phase classification from ply count and material on the board."""

from __future__ import annotations

import chess

from strategist.models import GamePhase

# Fixed piece values used for phase detection and move scoring
PIECE_VALUES: dict[int, int] = {
    chess.PAWN: 1,
    chess.KNIGHT: 3,
    chess.BISHOP: 3,
    chess.ROOK: 5,
    chess.QUEEN: 9,
    chess.KING: 0,
}

OPENING_MAX_PLY = 8
ENDGAME_MATERIAL = 20


def piece_value(piece_type: int | None) -> int:
    """Return the fixed value of a piece type (0 for None)."""
    if piece_type is None:
        return 0
    return PIECE_VALUES.get(piece_type, 0)


def material_sum(board: chess.Board, color: chess.Color | None = None) -> int:
    """Sum piece values on the board.

    Args:
        board: Position to count.
        color: Count only this side's pieces. None counts both sides.

    Returns:
        Total material in pawn units (kings count 0).
    """
    colors = (chess.WHITE, chess.BLACK) if color is None else (color,)
    total = 0
    for side in colors:
        for piece_type, value in PIECE_VALUES.items():
            total += len(board.pieces(piece_type, side)) * value
    return total


def classify_phase(
    ply_count: int,
    material: int,
    *,
    opening_max_ply: int = OPENING_MAX_PLY,
    endgame_material: int = ENDGAME_MATERIAL,
) -> GamePhase:
    """Map (ply count, material sum) to a game phase.

    Total over all integer inputs: the first few plies are the opening,
    after that low material means endgame and anything else middlegame.
    """
    if ply_count <= opening_max_ply:
        return GamePhase.OPENING
    if material < endgame_material:
        return GamePhase.ENDGAME
    return GamePhase.MIDDLEGAME


def ply_from_board(board: chess.Board) -> int:
    """Derive the ply count from the FEN move counters."""
    return (board.fullmove_number - 1) * 2 + (0 if board.turn == chess.WHITE else 1)


def board_phase(
    board: chess.Board,
    ply_count: int | None = None,
    *,
    opening_max_ply: int = OPENING_MAX_PLY,
    endgame_material: int = ENDGAME_MATERIAL,
) -> GamePhase:
    """Classify the phase of a position, deriving ply from the FEN if needed."""
    ply = ply_from_board(board) if ply_count is None else ply_count
    return classify_phase(
        ply,
        material_sum(board),
        opening_max_ply=opening_max_ply,
        endgame_material=endgame_material,
    )

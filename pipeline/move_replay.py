"""Board/move helpers over python-chess: token application, position keys, forcing moves."""

import re

import chess

from errors import InvalidMove
from models import PlayerColor

UCI_MOVE = re.compile(r"^[a-h][1-8][a-h][1-8][qrbn]?$")
CENTER_SQUARES = frozenset({chess.D4, chess.E4, chess.D5, chess.E5})


def is_uci_move(token: str) -> bool:
    return bool(UCI_MOVE.match(token))


def parse_move_token(board: chess.Board, token: str) -> chess.Move:
    """Resolve a coordinate or algebraic token to a legal move on board."""
    try:
        move = chess.Move.from_uci(token) if is_uci_move(token) else board.parse_san(token)
    except ValueError as e:
        # InvalidMoveError, IllegalMoveError and AmbiguousMoveError
        raise InvalidMove(board.fen(), token) from e
    if move not in board.legal_moves:
        raise InvalidMove(board.fen(), token)
    return move


def apply_move_token(board: chess.Board, token: str) -> chess.Move:
    """Push token onto board in place. Raises InvalidMove and leaves board untouched."""
    move = parse_move_token(board, token)
    board.push(move)
    return move


def position_key(board: chess.Board) -> str:
    """Placement, side to move, castling rights and en-passant target."""
    return board.epd()


def fen_after_move(fen: str, token: str) -> str:
    board = chess.Board(fen)
    apply_move_token(board, token)
    return board.fen()


def side_to_move(fen: str) -> PlayerColor:
    return "white" if fen.split()[1] == "w" else "black"


def san_for_move(fen: str, token: str | None) -> str | None:
    """SAN form of token at fen, or None when the token is absent or unplayable."""
    if not token:
        return None
    board = chess.Board(fen)
    try:
        return board.san(parse_move_token(board, token))
    except InvalidMove:
        return None


def is_forcing_san(san: str | None) -> bool:
    return bool(san) and ("x" in san or "+" in san or "#" in san)


def has_forcing_moves(board: chess.Board) -> bool:
    """Whether any legal move captures material or gives check."""
    return any(board.is_capture(move) or board.gives_check(move) for move in board.legal_moves)


def opponent(color: PlayerColor) -> PlayerColor:
    return "black" if color == "white" else "white"


def player_perspective(centipawns: int, evaluated_side: PlayerColor, player: PlayerColor) -> int:
    """Flip a side-to-move score so it reads from player's point of view."""
    return centipawns if evaluated_side == player else -centipawns

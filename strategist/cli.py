"""Command-line interface for the chess strategist.

Usage:
    strategist decide FEN [--history e4 e5 ...] [--strategy critic] [--json]
    strategist plan FEN [--history ...] [--json]
    strategist play [--color black] [--strategy single]

Reads configuration from STRATEGIST_* environment variables and the
Gemini key from GEMINI_API_KEY / GOOGLE_API_KEY.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys

import chess
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from strategist.config import STRATEGIES, EngineConfig
from strategist.engine import DecisionEngine, check_position, load_board
from strategist.errors import ORACLE_UNAVAILABLE, DecisionError
from strategist.log import setup_logging
from strategist.models import DecisionResult, StrategicPlan
from strategist.oracle import GeminiOracle, OracleError
from strategist.prompts import PIECE_SYMBOLS, format_plan

_LIGHT_SQ = "grey85"
_DARK_SQ = "grey50"
_HIGHLIGHT = "yellow"

console = Console()


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def board_panel(board: chess.Board, flipped: bool = False, title: str = "Chess Strategist") -> Panel:
    """Render a board as a Rich Panel, highlighting the last move."""
    highlight: set[int] = set()
    if board.move_stack:
        last = board.peek()
        highlight = {last.from_square, last.to_square}

    table = Table(show_header=False, show_edge=False, pad_edge=False,
                  box=None, padding=(0, 1))
    table.add_column(width=2, justify="right")
    for _ in range(8):
        table.add_column(width=3, justify="center")

    ranks = range(8) if flipped else range(7, -1, -1)
    files = list(range(7, -1, -1)) if flipped else list(range(8))

    for rank in ranks:
        row: list[Text] = [Text(str(rank + 1), style="bold")]
        for file in files:
            sq = chess.square(file, rank)
            piece = board.piece_at(sq)
            bg = _LIGHT_SQ if (rank + file) % 2 == 1 else _DARK_SQ
            if sq in highlight:
                bg = _HIGHLIGHT
            symbol = PIECE_SYMBOLS[piece.symbol()] if piece is not None else " "
            row.append(Text(f" {symbol} ", style=f"on {bg}"))
        table.add_row(*row)

    table.add_row(Text("  "), *[Text(f" {chess.FILE_NAMES[f]} ", style="bold") for f in files])
    return Panel(table, title=title, border_style="blue")


def result_panel(result: DecisionResult) -> Panel:
    """Summarize a decision: move, flags, critic rounds and warnings."""
    parts = [f"[bold]Move:[/bold] {result.move}   [dim]({result.phase.value}, {result.strategy})[/dim]"]
    if result.opening:
        parts.append(f"[bold]Opening:[/bold] {result.opening}")
    parts.append(f"[bold]Reasoning:[/bold] {result.rationale}")

    flags = []
    if result.forced:
        flags.append("[cyan]forced[/cyan]")
    if result.fallback_used:
        flags.append("[red]fallback[/red]")
    if result.is_checkmate:
        flags.append("[bold red]checkmate[/bold red]")
    elif result.is_check:
        flags.append("[yellow]check[/yellow]")
    if result.is_stalemate:
        flags.append("stalemate")
    flags.append(f"iterations: {result.iterations}")
    parts.append(" | ".join(flags))

    if result.attempts:
        parts.append("")
        parts.append("[bold]Critic rounds:[/bold]")
        for attempt in result.attempts:
            mark = "[green]approved[/green]" if attempt.evaluation.approved else "[red]rejected[/red]"
            parts.append(f"  {attempt.candidate.notation}: {attempt.evaluation.score}/10 {mark}")

    for warning in result.warnings:
        parts.append(f"[yellow]warning:[/yellow] {warning}")

    border = "red" if result.fallback_used else "green"
    return Panel("\n".join(parts), title="Decision", border_style=border)


def plan_panel(plan: StrategicPlan) -> Panel:
    title = f"Plan ({plan.phase_at_creation.value}, ply {plan.created_at_ply})"
    return Panel(format_plan(plan), title=title, border_style="magenta")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _build_engine(config: EngineConfig) -> DecisionEngine:
    oracle = GeminiOracle(config.model, config.api_key, config.oracle_timeout)
    return DecisionEngine(oracle, config)


def _cmd_decide(config: EngineConfig, args: argparse.Namespace) -> int:
    try:
        check_position(load_board(args.fen), config.engine_turn)
        engine = _build_engine(config)
        result = engine.decide(args.fen, args.history, args.ply, strategy=args.strategy)
    except DecisionError as exc:
        return _report_error(exc, args.json)

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        console.print(board_panel(chess.Board(result.resulting_fen)))
        console.print(result_panel(result))
    return 0


def _cmd_plan(config: EngineConfig, args: argparse.Namespace) -> int:
    try:
        load_board(args.fen)
        engine = _build_engine(config)
        plan, warning = engine.current_plan(args.fen, args.history, args.ply, force=True)
    except DecisionError as exc:
        return _report_error(exc, args.json)

    if args.json:
        print(json.dumps({"plan": plan.to_dict(), "reasoning": engine.plan_cache.reasoning,
                          "warning": warning}, indent=2))
    else:
        console.print(plan_panel(plan))
        if warning:
            console.print(f"[yellow]warning:[/yellow] {warning}")
    return 0


def _cmd_play(config: EngineConfig, args: argparse.Namespace) -> int:
    """Interactive game: the human plays ``args.color``, the engine the other side."""
    human = chess.WHITE if args.color == "white" else chess.BLACK
    engine_side = "black" if human == chess.WHITE else "white"
    engine = _build_engine(config.with_overrides(engine_color=engine_side))
    board = chess.Board()
    history: list[str] = []
    flipped = human == chess.BLACK

    console.print(board_panel(board, flipped))
    while not board.is_game_over():
        if board.turn == human:
            user_input = console.input("Your move (SAN or UCI, 'q' to quit): ").strip()
            if user_input.lower() == "q":
                console.print("Game ended by user.")
                return 0
            try:
                try:
                    move = board.parse_san(user_input)
                except ValueError:
                    move = chess.Move.from_uci(user_input)
                if move not in board.legal_moves:
                    console.print("[red]Illegal move. Try again.[/red]")
                    continue
            except ValueError:
                console.print("Invalid move format. Use SAN (e.g., e4) or UCI (e.g., e2e4).")
                continue
            history.append(board.san(move))
            board.push(move)
        else:
            try:
                result = engine.decide(board.fen(), history, len(board.move_stack),
                                       strategy=args.strategy)
            except DecisionError as exc:
                return _report_error(exc, False)
            move = board.parse_san(result.move)
            history.append(result.move)
            board.push(move)
            console.print(result_panel(result))

        console.print(board_panel(board, flipped))

    outcome = board.outcome()
    console.print(f"Game over: {board.result()}")
    if outcome is not None and outcome.winner is not None:
        console.print(f"Winner: {'White' if outcome.winner else 'Black'}")
    else:
        console.print("Draw")
    return 0


def _report_error(exc: DecisionError, as_json: bool) -> int:
    if as_json:
        print(json.dumps(exc.to_dict(), indent=2))
    else:
        console.print(f"[bold red]{exc.category}:[/bold red] {exc.message}")
    return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="strategist",
        description="LLM-driven chess move decisions",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--log-file", help="Also write logs to this file")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    decide_parser = subparsers.add_parser("decide", help="Choose a move for a FEN position")
    decide_parser.add_argument("fen", type=str, help="FEN of the position to move in")
    decide_parser.add_argument("--history", nargs="*", default=None, help="SAN moves played so far")
    decide_parser.add_argument("--ply", type=int, default=None, help="Ply count of the position")
    decide_parser.add_argument("--strategy", choices=STRATEGIES, default=None)
    decide_parser.add_argument("--json", action="store_true", help="Print the response as JSON")

    plan_parser = subparsers.add_parser("plan", help="Generate a strategic plan for a FEN position")
    plan_parser.add_argument("fen", type=str, help="FEN of the position")
    plan_parser.add_argument("--history", nargs="*", default=None, help="SAN moves played so far")
    plan_parser.add_argument("--ply", type=int, default=None, help="Ply count of the position")
    plan_parser.add_argument("--json", action="store_true", help="Print the plan as JSON")

    play_parser = subparsers.add_parser("play", help="Play against the engine")
    play_parser.add_argument("--color", choices=("white", "black"), default="white",
                             help="Your color")
    play_parser.add_argument("--strategy", choices=STRATEGIES, default=None)

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for the ``strategist`` console script."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        sys.exit(1)

    setup_logging(logging.DEBUG if args.verbose else logging.WARNING, args.log_file)
    try:
        config = EngineConfig.from_env()
    except ValueError as exc:
        console.print(f"[bold red]Configuration error:[/bold red] {exc}")
        sys.exit(2)

    commands = {"decide": _cmd_decide, "plan": _cmd_plan, "play": _cmd_play}
    try:
        code = commands[args.command](config, args)
    except OracleError as exc:
        _report_error(DecisionError(ORACLE_UNAVAILABLE, str(exc)), getattr(args, "json", False))
        code = 2
    sys.exit(code)


if __name__ == "__main__":
    main()

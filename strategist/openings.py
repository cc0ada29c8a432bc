"""Opening recognition using a trie over SAN move sequences.

Ships a small catalog of standard openings, which is injected into
opening-phase prompts, and identifies the deepest catalog line that
matches the game so far.

Usage:
    from strategist.openings import OpeningBook
    book = OpeningBook()
    book.identify_opening(["e4", "c5"])
"""

from __future__ import annotations

# (name, SAN line, description)
_CATALOG: list[tuple[str, str, str]] = [
    ("Ruy Lopez", "e4 e5 Nf3 Nc6 Bb5",
     "White develops quickly and pressures the knight on c6, indirectly targeting the center."),
    ("Italian Game", "e4 e5 Nf3 Nc6 Bc4",
     "Quick development and central control, with chances for aggressive play against f7."),
    ("Sicilian Defense", "e4 c5",
     "Black counters in the center asymmetrically, leading to sharp, tactical play."),
    ("French Defense", "e4 e6",
     "Black builds a solid pawn structure, planning ...d5 to challenge the center."),
    ("Caro-Kann Defense", "e4 c6",
     "A solid defense; Black supports ...d5 without blocking the light-squared bishop."),
    ("Scandinavian Defense", "e4 d5",
     "Immediate central confrontation; Black gives up some development speed."),
    ("Pirc Defense", "e4 d6 d4 Nf6 Nc3 g6",
     "Black allows White a strong center, aiming to counterattack it later."),
    ("Alekhine's Defense", "e4 Nf6",
     "Black tempts White to overextend the pawns, planning to undermine them."),
    ("King's Gambit", "e4 e5 f4",
     "An aggressive gambit aiming to open the f-file and seize the initiative."),
    ("Queen's Gambit", "d4 d5 c4",
     "White offers a pawn for central control; can be accepted or declined."),
    ("Slav Defense", "d4 d5 c4 c6",
     "Black defends the Queen's Gambit solidly without blocking the bishop."),
    ("Nimzo-Indian Defense", "d4 Nf6 c4 e6 Nc3 Bb4",
     "Black pins the knight, fighting for the center with flexible pawn structures."),
    ("King's Indian Defense", "d4 Nf6 c4 g6 Nc3 Bg7",
     "Black concedes a big center, then strikes with ...e5 or ...c5."),
    ("Grunfeld Defense", "d4 Nf6 c4 g6 Nc3 d5",
     "Black attacks the pawn center immediately, leading to dynamic play."),
    ("English Opening", "c4",
     "White controls the center from the flank, often transposing into other systems."),
    ("Reti Opening", "Nf3",
     "Flexible hypermodern play; White develops pieces before committing central pawns."),
    ("Benoni Defense", "d4 Nf6 c4 c5 d5 e6",
     "Black creates an imbalanced structure and seeks queenside counterplay."),
    ("Dutch Defense", "d4 f5",
     "Black controls e4 and aims for kingside play at the cost of some weaknesses."),
]


def _build_trie(catalog: list[tuple[str, str, str]]) -> dict:
    """Build a nested-dict trie keyed by SAN; terminal nodes carry ``_name``."""
    trie: dict = {}
    for name, line, description in catalog:
        node = trie
        for san in line.split():
            node = node.setdefault(san, {})
        node["_name"] = name
        node["_description"] = description
    return trie


class OpeningBook:
    """Opening identification over the built-in catalog."""

    def __init__(self, catalog: list[tuple[str, str, str]] | None = None) -> None:
        self._catalog = catalog if catalog is not None else _CATALOG
        self._trie = _build_trie(self._catalog)

    def identify_opening(self, san_moves: list[str]) -> dict | None:
        """Identify the deepest named opening matching a SAN move sequence.

        Check and mate suffixes are ignored when matching.

        Args:
            san_moves: Moves from the starting position, e.g. ["e4", "c5"].

        Returns:
            Dict with name, description, moves_matched, or None if out of book.
        """
        if not san_moves:
            return None

        node = self._trie
        best_match = None
        for i, san in enumerate(san_moves):
            key = san.rstrip("+#")
            if key not in node:
                break
            node = node[key]
            if "_name" in node:
                best_match = {
                    "name": node["_name"],
                    "description": node["_description"],
                    "moves_matched": i + 1,
                }
        return best_match

    def reference_text(self) -> str:
        """Render the catalog as numbered reference text for prompts."""
        lines = []
        for i, (name, line, description) in enumerate(self._catalog, 1):
            lines.append(f"{i}. {name}: {_number_line(line.split())} - {description}")
        return "\n".join(lines)


def _number_line(moves: list[str]) -> str:
    """Convert ['e4', 'e5', 'Nf3'] to '1.e4 e5 2.Nf3'."""
    parts = []
    for i, move in enumerate(moves):
        if i % 2 == 0:
            parts.append(f"{i // 2 + 1}.{move}")
        else:
            parts.append(move)
    return " ".join(parts)

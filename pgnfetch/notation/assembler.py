"""
Numbered-pair move notation.

Tokens are paired positionally: even index is the first player's move, the
next token (if any) the second player's. No chess validation is done.
"""

from collections.abc import Sequence


def assemble(tokens: Sequence[str]) -> str:
    """Join half-move tokens into "1. e4 e5 2. Nf3 Nc6" style text.

    A trailing unpaired move yields a final pair with an empty second field.

    Example:
        >>> assemble(["e4", "e5", "Nf3"])
        '1. e4 e5 2. Nf3'
        >>> assemble([])
        ''
    """
    parts = []
    for index in range(0, len(tokens), 2):
        first = tokens[index]
        second = tokens[index + 1] if index + 1 < len(tokens) else ""
        parts.append(f"{index // 2 + 1}. {first} {second} ")
    return "".join(parts).rstrip()

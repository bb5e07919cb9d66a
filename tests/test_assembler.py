"""
Tests for numbered-pair notation assembly.
"""

import pytest

from pgnfetch.notation import assemble


class TestAssemble:
    """Tests for assemble()."""

    def test_empty_tokens(self) -> None:
        """Given no tokens, When assembled, Then the result is empty."""
        assert assemble([]) == ""

    def test_single_token(self) -> None:
        """Given one token, When assembled, Then it forms an unpaired first move."""
        assert assemble(["e4"]) == "1. e4"

    def test_two_full_pairs(self) -> None:
        """
        Given: Four tokens
        When: Assembled
        Then: Two numbered pairs separated by single spaces
        """
        assert assemble(["e4", "e5", "Nf3", "Nc6"]) == "1. e4 e5 2. Nf3 Nc6"

    def test_trailing_unpaired_token(self) -> None:
        """Given an odd count, When assembled, Then the last pair has one move and no trailing space."""
        result = assemble(["d4", "d5", "c4"])

        assert result == "1. d4 d5 2. c4"
        assert not result.endswith(" ")

    @pytest.mark.parametrize("count", [1, 2, 5, 8, 13])
    def test_pair_numbers_are_sequential(self, count: int) -> None:
        """
        Given: count tokens
        When: Assembled
        Then: Pair numbers run 1..ceil(count / 2) in order
        """
        tokens = [f"m{i}" for i in range(count)]

        result = assemble(tokens)

        expected_pairs = (count + 1) // 2
        for number in range(1, expected_pairs + 1):
            assert f"{number}. m{2 * (number - 1)}" in result
        assert f"{expected_pairs + 1}. " not in result

    def test_tokens_are_not_validated(self) -> None:
        """Given arbitrary strings, When assembled, Then they are paired positionally as-is."""
        assert assemble(["foo", "bar", "baz"]) == "1. foo bar 2. baz"

    def test_deterministic(self) -> None:
        """Given the same tokens twice, When assembled, Then the output is identical."""
        tokens = ("e4", "c5", "Nf3")
        assert assemble(tokens) == assemble(list(tokens))

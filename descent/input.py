"""
The minimal view of source text needed by the parser.

Every matching operation reports failure by returning False and leaving the
position untouched; none of them raise.
"""

__all__ = [
    "Input",
    "StringInput",
]


class Input:
    """
    Abstract base class for parser inputs.

    Positions are offsets in the range ``0 <= position <= length()``.
    """

    def length(self) -> int:
        """The length of the input."""
        raise NotImplementedError()

    def position(self) -> int:
        """The current position within the input."""
        raise NotImplementedError()

    def set_position(self, position: int) -> None:
        """Move to an arbitrary position within the input."""
        raise NotImplementedError()

    def match_literal(self, literal: str) -> bool:
        """
        If the input at the current position starts with ``literal``, advance
        past it and return True. Otherwise return False without moving.
        """
        raise NotImplementedError()

    def match_char_range(self, low: str, high: str) -> bool:
        """
        If the character at the current position lies within the inclusive
        range ``[low, high]``, advance by one character and return True.
        Otherwise return False without moving.
        """
        raise NotImplementedError()

    def slice(self, start: int, end: int) -> str:
        """Return the text between two positions."""
        raise NotImplementedError()


class StringInput(Input):
    """
    An :py:class:`Input` backed by a Python :py:class:`str`. Positions are
    code point offsets.

    Parameters
    ----------
    string : str
        The text to be parsed.
    """

    _string: str
    _position: int

    def __init__(self, string: str) -> None:
        self._string = string
        self._position = 0

    @property
    def string(self) -> str:
        """The complete input text."""
        return self._string

    def length(self) -> int:
        return len(self._string)

    def position(self) -> int:
        return self._position

    def set_position(self, position: int) -> None:
        if not 0 <= position <= len(self._string):
            raise ValueError(
                "position {} outside input of length {}".format(
                    position, len(self._string)
                )
            )
        self._position = position

    def match_literal(self, literal: str) -> bool:
        if self._string.startswith(literal, self._position):
            self._position += len(literal)
            return True
        else:
            return False

    def match_char_range(self, low: str, high: str) -> bool:
        if self._position >= len(self._string):
            return False

        if low <= self._string[self._position] <= high:
            self._position += 1
            return True
        else:
            return False

    def slice(self, start: int, end: int) -> str:
        return self._string[start:end]

    def __repr__(self) -> str:
        return "StringInput({!r})".format(self._string)

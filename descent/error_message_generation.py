"""
Utility functions for turning an input offset into a readable error message.
"""

from typing import List, Tuple

from bisect import bisect_right

from textwrap import indent


def line_start_offsets(string: str) -> List[int]:
    """
    Return the offset of the first character of every line in ``string``. The
    result always contains at least one entry (0).
    """
    offsets = [0]
    for line in string.splitlines(keepends=True):
        offsets.append(offsets[-1] + len(line))
    # NB: The final entry is the end of the string, not the start of a line
    # (except for the empty string, whose only line starts at 0). A trailing
    # newline therefore does not begin an extra empty line.
    if len(offsets) > 1:
        offsets.pop()
    return offsets


def offset_to_line_and_column(string: str, offset: int) -> Tuple[int, int]:
    """
    Return the (1-indexed) line and column number corresponding with the
    specified offset.

    Offsets beyond the end of the string point just past the end of the last
    line.
    """
    offset = min(offset, len(string))
    starts = line_start_offsets(string)
    line_index = bisect_right(starts, offset) - 1
    return line_index + 1, offset - starts[line_index] + 1


def extract_line(string: str, line: int) -> str:
    """
    Given a line number (from :py:func:`offset_to_line_and_column`), return
    just that line (without any trailing newlines).
    """
    lines = string.splitlines()
    if 1 <= line <= len(lines):
        return lines[line - 1]
    else:
        return ""


def format_error_message(line: int, column: int, snippet: str, message: str) -> str:
    """
    Generate a formatted error message of the style::

        At line 3 column 6:
            (1 + + 2)
                 ^
        Expected number or paren

    Takes a line and column number (from :py:func:`offset_to_line_and_column`),
    a one-line snippet (from :py:func:`extract_line`) and a message.
    """
    snippet = snippet.rstrip()
    pointer = (" " * (column - 1)) + "^"
    indented_snippet = indent(f"{snippet}\n{pointer}", "    ")

    return f"At line {line} column {column}:\n{indented_snippet}\n{message}"

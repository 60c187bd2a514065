import pytest  # type: ignore

from typing import Dict, List, Optional

from descent.parser import (
    Token,
    Operator,
    OperatorMatch,
    Parser,
)


OPERATORS: Dict[str, OperatorMatch] = {
    "+": Operator("add", 1),
    "-": Operator("sub", 1),
    "*": Operator("mul", 2),
    "/": Operator("div", 2),
    "^": Operator("pow", 3, right_associative=True),
    # Silent operator, given as a plain tuple
    "&": (None, 1, False),
}


class Infix(Parser):
    """Single-letter operands separated by single-character operators."""

    def primary(self) -> bool:
        return self.rule("primary", lambda p: self.match_char_range("a", "z"))

    def operator(self) -> Optional[OperatorMatch]:
        for symbol, operator in OPERATORS.items():
            if self.match_literal(symbol):
                return operator
        return None

    def expression(self) -> bool:
        def body(p: Parser) -> bool:
            queue_pos = len(self.queue)
            if not self.primary():
                return False
            self.prec_climb(
                queue_pos,
                self.queue[queue_pos].start,
                0,
                None,
                lambda p: self.primary(),
                lambda p: self.operator(),
            )
            return True

        return self.rule("expression", body, silent=True)


def P(start: int) -> Token:
    return Token("primary", start, start + 1)


@pytest.mark.parametrize(
    "string, exp",
    [
        # No operators
        ("a", [P(0)]),
        # Single operator
        ("a+b", [Token("add", 0, 3), P(0), P(2)]),
        # Left associative
        (
            "a+b+c",
            [Token("add", 0, 5), Token("add", 0, 3), P(0), P(2), P(4)],
        ),
        (
            "a-b+c",
            [Token("add", 0, 5), Token("sub", 0, 3), P(0), P(2), P(4)],
        ),
        # Right associative
        (
            "a^b^c",
            [Token("pow", 0, 5), P(0), Token("pow", 2, 5), P(2), P(4)],
        ),
        # Higher precedence on the right
        (
            "a+b*c",
            [Token("add", 0, 5), P(0), Token("mul", 2, 5), P(2), P(4)],
        ),
        # Higher precedence on the left
        (
            "a*b+c",
            [Token("add", 0, 5), Token("mul", 0, 3), P(0), P(2), P(4)],
        ),
        # Mixed
        (
            "a+b*c+d",
            [
                Token("add", 0, 7),
                Token("add", 0, 5),
                P(0),
                Token("mul", 2, 5),
                P(2),
                P(4),
                P(6),
            ],
        ),
        (
            "a*b^c^d",
            [
                Token("mul", 0, 7),
                P(0),
                Token("pow", 2, 7),
                P(2),
                Token("pow", 4, 7),
                P(4),
                P(6),
            ],
        ),
        # Silent operators produce no tokens
        ("a&b", [P(0), P(2)]),
        ("a&b*c", [P(0), Token("mul", 2, 5), P(2), P(4)]),
    ],
)
def test_nesting(string: str, exp: List[Token]) -> None:
    parser = Infix(string)
    assert parser.expression()
    assert parser.end()
    assert parser.queue == exp


@pytest.mark.parametrize("string", ["a+b+c", "a^b^c", "a+b*c+d", "a*b-c/d^e"])
def test_tokens_nested_before_their_contents(string: str) -> None:
    parser = Infix(string)
    assert parser.expression()
    tokens = list(parser.queue)
    for i, a in enumerate(tokens):
        for b in tokens[i + 1 :]:
            assert not (b.contains(a) and b != a)


def test_leftover_operator() -> None:
    parser = Infix("a*b+c")
    assert parser.primary()
    op, right = parser.prec_climb(
        0, 0, 2, None, lambda p: parser.primary(), lambda p: parser.operator()
    )
    assert op == Operator("add", 1)
    assert right == 3
    assert parser.pos() == 4
    assert parser.queue == [Token("mul", 0, 3), P(0), P(2)]


def test_no_operator() -> None:
    parser = Infix("a")
    assert parser.primary()
    assert parser.prec_climb(
        0, 0, 0, None, lambda p: parser.primary(), lambda p: parser.operator()
    ) == (None, None)
    assert parser.queue == [P(0)]


def test_missing_operand_is_not_inspected() -> None:
    # The primary's failure is left for the caller to detect
    parser = Infix("a+")
    assert parser.expression()
    assert parser.end()
    assert parser.queue == [Token("add", 0, 2), P(0)]

"""
A backtracking recursive descent parser core with precedence climbing.

The :py:class:`Parser` holds the state of a single parse: a position within
an :py:class:`~descent.input.Input`, a :py:class:`TokenQueue` of matched rule
spans and a :py:class:`FailureTracker` summarising the furthest point at
which matching failed. Grammar rules are ordinary functions taking the parser
and returning a bool; they are composed from the primitive matchers,
:py:meth:`Parser.attempt` (the single rollback primitive),
:py:meth:`Parser.rule` and :py:meth:`Parser.prec_climb`.

Nothing on the matching path raises: failure is a False return value plus,
at most, an update of the failure summary.
"""

import logging

from dataclasses import dataclass, field

from typing import (
    Callable,
    Iterable,
    Iterator,
    List,
    Mapping,
    NamedTuple,
    Optional,
    Set,
    Tuple,
    Union,
)

from descent.input import Input, StringInput

from descent.error_message_generation import (
    offset_to_line_and_column,
    extract_line,
    format_error_message,
)


__all__ = [
    "ANY_RULE",
    "EOI_RULE",
    "Token",
    "TokenQueue",
    "FailureTracker",
    "Operator",
    "Parser",
    "GrammarError",
    "RepeatedEmptyTermError",
    "LeftRecursionError",
    "UndefinedRuleError",
    "ParseError",
]


log = logging.getLogger(__name__)


ANY_RULE = "any"
"""Tag of the built-in rule matching any single character."""

EOI_RULE = "eoi"
"""Tag of the built-in rule matching the end of the input."""


@dataclass(frozen=True)
class Token:
    """The span matched by a non-silent rule."""

    rule: str
    """The tag of the rule which matched."""

    start: int
    """Offset of the first character matched."""

    end: int
    """Offset just beyond the last character matched."""

    def contains(self, other: "Token") -> bool:
        """True if the span of ``other`` lies within this token's span."""
        return self.start <= other.start and other.end <= self.end


class TokenQueue:
    """
    The ordered sequence of :py:class:`Token`\\ s produced during a parse.

    Tokens appear in left-to-right order of their starting position with
    enclosing tokens placed before the tokens they enclose, even though
    enclosing tokens are typically created after their contents have been
    matched (see :py:meth:`insert_at`).
    """

    _tokens: List[Token]

    def __init__(self, tokens: Iterable[Token] = ()) -> None:
        self._tokens = list(tokens)

    def push(self, token: Token) -> None:
        """Append a token to the end of the queue."""
        self._tokens.append(token)

    def insert_at(self, index: int, token: Token) -> None:
        """
        Insert a token at the specified index, shifting all later tokens
        along. Used to place a token before the tokens of its children.
        """
        self._tokens.insert(index, token)

    def truncate(self, length: int) -> None:
        """Discard all tokens beyond the first ``length``."""
        del self._tokens[length:]

    def clear(self) -> None:
        self._tokens.clear()

    def get(self, index: int) -> Optional[Token]:
        """Return the token at ``index``, or None if out of range."""
        if 0 <= index < len(self._tokens):
            return self._tokens[index]
        else:
            return None

    def __len__(self) -> int:
        return len(self._tokens)

    def __getitem__(self, index: int) -> Token:
        return self._tokens[index]

    def __iter__(self) -> Iterator[Token]:
        return iter(self._tokens)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, TokenQueue):
            return self._tokens == other._tokens
        elif isinstance(other, list):
            return self._tokens == other
        else:
            return NotImplemented

    def __repr__(self) -> str:
        return "TokenQueue({!r})".format(self._tokens)


class FailureTracker:
    """
    A running summary of the furthest failures seen during a parse.

    Only the rules which failed at the single deepest position reached are
    kept: a failure at a deeper position replaces everything recorded so
    far, a failure at the same position is added and a failure at a
    shallower position is ignored.
    """

    _rules: List[str]
    _position: int

    def __init__(self) -> None:
        self._rules = []
        self._position = 0

    @property
    def position(self) -> int:
        """The deepest position at which a failure was tracked (0 if none)."""
        return self._position

    def track(self, rule: str, position: int) -> None:
        """Record that ``rule`` failed to match at ``position``."""
        if not self._rules:
            self._rules.append(rule)
            self._position = position
        elif position == self._position:
            self._rules.append(rule)
        elif position > self._position:
            self._rules = [rule]
            self._position = position

    def expected(self) -> Tuple[List[str], int]:
        """
        Return the sorted, de-duplicated rules which failed at the deepest
        position, along with that position.
        """
        self._rules = sorted(set(self._rules))
        return list(self._rules), self._position

    def clear(self) -> None:
        self._rules = []
        self._position = 0

    def save(self) -> Tuple[Tuple[str, ...], int]:
        """Capture the current summary for later :py:meth:`restore`."""
        return tuple(self._rules), self._position

    def restore(self, state: Tuple[Tuple[str, ...], int]) -> None:
        """Return to a summary captured by :py:meth:`save`."""
        rules, self._position = state
        self._rules = list(rules)

    def __len__(self) -> int:
        return len(self._rules)


class Operator(NamedTuple):
    """An infix operator recognised during precedence climbing."""

    rule: Optional[str]
    """
    The tag of the token produced for expressions using this operator, or
    None if such expressions produce no token.
    """

    precedence: int
    """Binding strength; larger values bind more tightly."""

    right_associative: bool = False
    """If True, chains of this operator group from the right."""


OperatorMatch = Tuple[Optional[str], int, bool]
"""An :py:class:`Operator` or an equivalent plain tuple."""

RuleBody = Callable[["Parser"], bool]
"""A function which attempts to match some input, returning success."""

OperatorLookup = Callable[["Parser"], Optional[OperatorMatch]]
"""
A function which attempts to match an infix operator. On success it consumes
the operator and returns its :py:class:`Operator`, otherwise it returns None
leaving the position unchanged.
"""


class GrammarError(Exception):
    """Thrown when a problem is encountered with the grammar during parsing."""


class RepeatedEmptyTermError(GrammarError):
    """
    Thrown when a grammar repeats a term which has just matched the empty
    string (and would therefore repeat forever).
    """


class LeftRecursionError(GrammarError):
    """
    Thrown when a rule is re-entered at the same position without consuming
    any input, i.e. the grammar is (directly, indirectly or hiddenly) left
    recursive.
    """


class UndefinedRuleError(GrammarError):
    """
    Thrown when a grammar contains a reference to an undefined rule.
    """


class Parser:
    """
    The state of a parse of a single input.

    Hand-written grammars subclass this class, defining one method per rule
    which calls :py:meth:`rule` with a body built from the matching
    primitives. Whitespace and comment skipping are enabled by overriding
    :py:meth:`whitespace` and :py:meth:`comment`. For example::

        >>> class Parens(Parser):
        ...     def expression(self):
        ...         return self.rule("expression", lambda p: (
        ...             p.paren() and (p.expression() or True)
        ...         ), silent=True)
        ...
        ...     def paren(self):
        ...         return self.rule("paren", lambda p: (
        ...             p.match_literal("(")
        ...             and (p.expression() or True)
        ...             and p.match_literal(")")
        ...         ))

        >>> parser = Parens("(())()")
        >>> parser.expression() and parser.end()
        True
        >>> for token in parser.queue:
        ...     print(token)
        Token(rule='paren', start=0, end=4)
        Token(rule='paren', start=1, end=3)
        Token(rule='paren', start=4, end=6)

    Parameters
    ----------
    source : :py:class:`~descent.input.Input` or str
        The input to parse. Strings are wrapped in a
        :py:class:`~descent.input.StringInput`.
    """

    _input: Input
    """The input being parsed; also holds the current position."""

    _queue: TokenQueue
    """Tokens produced by successfully matched non-silent rules."""

    _queue_index: int
    """Cursor used by consumers walking the finished :py:attr:`_queue`."""

    _failures: FailureTracker
    """The furthest-failure summary used for error reporting."""

    _atomic: bool
    """When True, skipping and failure tracking are disabled."""

    _skipping_comments: bool
    """Set while comments are being skipped to prevent re-entrant skipping."""

    _eoi_matched: bool
    """Set once :py:meth:`eoi` has matched."""

    _current_rule: Optional[str]
    """
    The innermost non-silent rule being attempted. Failures of the primitive
    matchers are reported against this rule.
    """

    def __init__(self, source: Union[Input, str]) -> None:
        if isinstance(source, str):
            source = StringInput(source)
        self._input = source
        self._queue = TokenQueue()
        self._failures = FailureTracker()
        self._queue_index = 0
        self._atomic = False
        self._skipping_comments = False
        self._eoi_matched = False
        self._current_rule = None

    @property
    def input(self) -> Input:
        """The :py:class:`~descent.input.Input` being parsed."""
        return self._input

    # Rules which may be overridden

    def whitespace(self) -> bool:
        """
        Match a single piece of whitespace. Called repeatedly (in atomic mode)
        by :py:meth:`skip_ws`. The default matches nothing.
        """
        return False

    def comment(self) -> bool:
        """
        Match a single comment. Called repeatedly by :py:meth:`skip_com`. The
        default matches nothing.
        """
        return False

    # Built-in rules

    def any(self) -> bool:
        """Match any single character."""
        if self.end():
            self.track(ANY_RULE, self.pos())
            return False
        else:
            self.set_pos(self.pos() + 1)
            return True

    def eoi(self) -> bool:
        """Match the end of the input."""
        if self.end():
            self._eoi_matched = True
            return True
        else:
            self.track(EOI_RULE, self.pos())
            return False

    # Primitive matchers

    def match_literal(self, literal: str) -> bool:
        """Match a literal string, advancing past it on success."""
        position = self._input.position()
        if self._input.match_literal(literal):
            return True
        if self._current_rule is not None:
            self.track(self._current_rule, position)
        return False

    def match_char_range(self, low: str, high: str) -> bool:
        """
        Match one character in the inclusive range ``[low, high]``, advancing
        past it on success.
        """
        position = self._input.position()
        if self._input.match_char_range(low, high):
            return True
        if self._current_rule is not None:
            self.track(self._current_rule, position)
        return False

    # Composition

    def attempt(self, revert: bool, body: RuleBody) -> bool:
        """
        Run ``body``, rolling back its effects if it fails.

        If ``body`` returns False, the position is restored and any tokens it
        added to the queue are discarded. If ``revert`` is True the position
        is restored even on success (but the tokens produced are kept).
        """
        position = self._input.position()
        queue_len = len(self._queue)

        result = body(self)

        if revert or not result:
            self._input.set_position(position)

        if not result:
            self._queue.truncate(queue_len)

        return result

    def rule(
        self, name: str, body: RuleBody, silent: bool = False, atomic: bool = False
    ) -> bool:
        """
        Match a named grammar rule.

        Whitespace and comments are skipped before the rule (unless already in
        atomic mode), then ``body`` is run. On success, a non-silent rule
        inserts a :py:class:`Token` spanning its match ahead of any tokens
        produced by ``body``. On failure everything is rolled back and, if
        ``body`` recorded no failure of its own, the rule's own failure is
        tracked at its start position.

        Parameters
        ----------
        name : str
            The rule's tag.
        body : callable
            The rule body.
        silent : bool
            If True, no token is produced for this rule and failures within it
            are attributed to the enclosing non-silent rule.
        atomic : bool
            If True, the body is matched with skipping and failure tracking
            disabled. The rule's own failure is still tracked.
        """

        def match_rule(parser: "Parser") -> bool:
            parser.skip()
            start = parser.pos()
            queue_len = len(parser._queue)
            failures_before = parser._failure_mark()

            was_atomic = parser._atomic
            outer_rule = parser._current_rule
            if atomic:
                parser._atomic = True
            if not silent:
                parser._current_rule = name

            log.debug("trying %s at %d", name, start)
            try:
                matched = body(parser)
            finally:
                parser._atomic = was_atomic
                parser._current_rule = outer_rule

            if matched:
                log.debug("matched %s at %d-%d", name, start, parser.pos())
                if not silent:
                    parser._queue.insert_at(queue_len, Token(name, start, parser.pos()))
            elif not silent and parser._failure_mark() == failures_before:
                parser.track(name, start)

            return matched

        return self.attempt(False, match_rule)

    def prec_climb(
        self,
        queue_pos: int,
        left: int,
        min_prec: int,
        last_op: Optional[OperatorMatch],
        primary: RuleBody,
        climb: OperatorLookup,
    ) -> Tuple[Optional[OperatorMatch], Optional[int]]:
        """
        Match a run of infix operators and primaries using the precedence
        climbing algorithm, producing a token for every binary operation.

        Callers typically match a first primary, then call this method to
        match the remainder of the expression with ``min_prec`` of 0.

        Parameters
        ----------
        queue_pos : int
            The queue index at which the tokens of the expression's left-most
            operand begin. Operation tokens are inserted here so that they
            precede their operands' tokens.
        left : int
            The start offset of the expression's left-most operand.
        min_prec : int
            Only operators of at least this precedence are consumed.
        last_op : :py:class:`Operator` or None
            An operator which has already been consumed, or None to look up
            the next one using ``climb``.
        primary : callable
            Matches one operand. Its return value is not inspected.
        climb : callable
            Matches one operator, returning its :py:class:`Operator` (or None).

        Returns
        -------
        (leftover_op, right)
            The consumed operator (if any) which was of too low a precedence
            to be handled here, and the furthest offset reached by an operand
            (None if no operand was matched).
        """
        op = last_op if last_op is not None else climb(self)
        last_right: Optional[int] = None

        while op is not None:
            rule, prec, _ = op
            if prec < min_prec:
                return op, last_right

            new_pos = self.pos()
            right = self.pos()
            primary_queue_pos = len(self._queue)

            primary(self)

            token = self._queue.get(primary_queue_pos)
            if token is not None:
                new_pos = token.start
                right = token.end

            op = climb(self)

            while op is not None:
                _, new_prec, right_assoc = op
                if new_prec > prec or (right_assoc and new_prec == prec):
                    op, last_right = self.prec_climb(
                        primary_queue_pos, new_pos, new_prec, op, primary, climb
                    )
                else:
                    break

            if last_right is not None:
                right = max(last_right, right)
            else:
                last_right = right

            if rule is not None:
                self._queue.insert_at(queue_pos, Token(rule, left, right))

        return op, last_right

    # Position and end of input

    def pos(self) -> int:
        return self._input.position()

    def set_pos(self, pos: int) -> None:
        self._input.set_position(pos)

    def end(self) -> bool:
        """True when the whole input has been consumed."""
        return self._input.position() == self._input.length()

    def eoi_matched(self) -> bool:
        """True if :py:meth:`eoi` has matched."""
        return self._eoi_matched

    def slice_input(self, start: int, end: int) -> str:
        return self._input.slice(start, end)

    def reset(self) -> None:
        """Return the parser to its initial state, keeping its input."""
        self._input.set_position(0)
        self._queue.clear()
        self._failures.clear()
        self._queue_index = 0
        self._atomic = False
        self._skipping_comments = False
        self._eoi_matched = False
        self._current_rule = None

    # Token queue

    @property
    def queue(self) -> TokenQueue:
        """The (live) queue of matched tokens."""
        return self._queue

    def queue_index(self) -> int:
        """The consumer cursor into :py:attr:`queue`."""
        return self._queue_index

    def inc_queue_index(self) -> None:
        self._queue_index += 1

    def set_queue_index(self, index: int) -> None:
        self._queue_index = index

    # Skipping and atomicity

    def skip_ws(self) -> None:
        """Skip any whitespace (using :py:meth:`whitespace`)."""
        if self._atomic:
            return

        self._atomic = True
        try:
            while True:
                before = self.pos()
                if not self.whitespace() or self.pos() == before:
                    break
        finally:
            self._atomic = False

    def skip_com(self) -> None:
        """Skip any comments (using :py:meth:`comment`)."""
        if self._atomic or self._skipping_comments:
            return

        self._skipping_comments = True
        # NB: A missing comment is never what the user should be told was
        # expected so failures noted here are discarded.
        failures = self._failures.save()
        try:
            while True:
                before = self.pos()
                if not self.comment() or self.pos() == before:
                    break
        finally:
            self._failures.restore(failures)
            self._skipping_comments = False

    def skip(self) -> None:
        """Skip any comments and whitespace between tokens."""
        self.skip_com()
        self.skip_ws()

    def is_atomic(self) -> bool:
        return self._atomic

    def set_atomic(self, value: bool) -> None:
        """
        Enter (or leave) atomic mode in which whitespace and comments are not
        skipped and failures are not tracked.
        """
        self._atomic = value

    # Failure tracking

    @property
    def failures(self) -> FailureTracker:
        return self._failures

    def track(self, rule: str, pos: int) -> None:
        """Record that ``rule`` failed at ``pos`` (ignored in atomic mode)."""
        if self._atomic:
            return
        self._failures.track(rule, pos)

    def tracked_len(self) -> int:
        """The number of failures recorded at the furthest position."""
        return len(self._failures)

    def expected(self) -> Tuple[List[str], int]:
        """
        Return the sorted rule tags which failed at the furthest position
        reached, and that position.
        """
        return self._failures.expected()

    def _failure_mark(self) -> Tuple[int, int]:
        """A value which changes whenever a failure is successfully tracked."""
        return len(self._failures), self._failures.position


@dataclass
class ParseError(Exception):
    """
    Thrown when parsing fails.

    Parameters
    ----------
    line : int
        One-indexed line number where the error occurred.
    column : int
        One-indexed column number where the error occurred.
    snippet : str
        The contents of the offending line.
    expected : (str, ...)
        The rules which failed at the furthest point reached.
    offset : int
        The offset of that point in the input.
    rule_explanations : {rule: str or None, ...}
        Error message customization parameter. By default expected rules are
        shown by their name. This may be overridden by a string entry in this
        dictionary or the rule suppressed entirely with None. Default = {}.
    last_resort_rules : {rule, ...}
        Error message customization parameter. Rules which are only mentioned
        when nothing else is expected. Default = {}.
    """

    line: int
    column: int
    snippet: str
    expected: Tuple[str, ...]
    offset: int = 0

    rule_explanations: Mapping[str, Optional[str]] = field(default_factory=dict)
    last_resort_rules: Set[str] = field(default_factory=set)

    @classmethod
    def from_parser(cls, parser: Parser) -> "ParseError":
        """Produce a :py:class:`ParseError` from a parser's failure summary."""
        rules, offset = parser.expected()
        string = parser.slice_input(0, parser.input.length())
        line, column = offset_to_line_and_column(string, offset)
        return cls(line, column, extract_line(string, line), tuple(rules), offset)

    def explain(
        self,
        rule_explanations: Optional[Mapping[str, Optional[str]]] = None,
        last_resort_rules: Optional[Set[str]] = None,
    ) -> str:
        """
        Return a human-readable string describing the expected next values.

        Parameters
        ----------
        rule_explanations : {rule: str or None, ...}
            See :py:attr:`rule_explanations`.
        last_resort_rules : {rule, ...}
            See :py:attr:`last_resort_rules`.
        """
        if rule_explanations is None:
            rule_explanations = self.rule_explanations
        if last_resort_rules is None:
            last_resort_rules = self.last_resort_rules

        # [(explanation, last_resort), ...]
        explanations: List[Tuple[str, bool]] = []
        for rule in self.expected:
            explanation: Optional[str]
            if rule in rule_explanations:
                explanation = rule_explanations[rule]
            else:
                explanation = rule

            if explanation is None:
                continue

            if explanation not in [e for e, _l in explanations]:
                explanations.append((explanation, rule in last_resort_rules))

        # Hide last resort explanations unless they're all we've got
        if not all(last_resort for _e, last_resort in explanations):
            explanations = [(e, l) for e, l in explanations if not l]

        if explanations:
            return "Expected {}".format(
                " or ".join(sorted(e for e, _l in explanations))
            )
        else:
            return "Parsing failure"

    def __str__(self) -> str:
        return format_error_message(
            self.line, self.column, self.snippet, self.explain()
        )

"""
Grammars described as data and a parser which runs them.

A :py:class:`Grammar` maps rule names to :py:class:`Expr` trees. A
:py:class:`GrammarParser` compiles each rule into a closure built on the
:py:class:`~descent.parser.Parser` primitives once, ahead of parsing, and then
evaluates rules by name.
"""

import logging

from dataclasses import dataclass

from typing import (
    Dict,
    FrozenSet,
    Iterable,
    List,
    Mapping,
    Optional,
    Set,
    Tuple,
    Union,
)

from descent.input import Input

from descent.parser import (
    ANY_RULE,
    EOI_RULE,
    Operator,
    OperatorMatch,
    Parser,
    RuleBody,
    Token,
    TokenQueue,
    GrammarError,
    RepeatedEmptyTermError,
    LeftRecursionError,
    UndefinedRuleError,
    ParseError,
)


__all__ = [
    "WHITESPACE_RULE",
    "COMMENT_RULE",
    "GrammarWellFormedness",
    "WellFormed",
    "UndefinedRule",
    "ReservedRule",
    "LeftRecursion",
    "RepeatedEmptyTerm",
    "Expr",
    "LiteralExpr",
    "RangeExpr",
    "EmptyExpr",
    "RuleExpr",
    "AltExpr",
    "ConcatExpr",
    "StarExpr",
    "PlusExpr",
    "MaybeExpr",
    "LookaheadExpr",
    "PositiveLookaheadExpr",
    "OperatorLevel",
    "PrecClimbExpr",
    "Grammar",
    "GrammarNotWellFormedError",
    "GrammarParser",
]


log = logging.getLogger(__name__)


WHITESPACE_RULE = "whitespace"
"""Name of the (optional) rule matching whitespace to be skipped."""

COMMENT_RULE = "comment"
"""Name of the (optional) rule matching comments to be skipped."""

BUILTIN_RULES = frozenset([ANY_RULE, EOI_RULE])


@dataclass
class GrammarWellFormedness:
    """Base class of result from a well-formedness test."""

    def __bool__(self) -> bool:
        return False


@dataclass
class WellFormed(GrammarWellFormedness):
    """The grammar is well formed."""

    def __bool__(self) -> bool:
        return True


@dataclass
class UndefinedRule(GrammarWellFormedness):
    """The grammar refers to an undefined rule."""

    name: str


@dataclass
class ReservedRule(GrammarWellFormedness):
    """The grammar defines a rule with the name of a built-in rule."""

    name: str


@dataclass
class LeftRecursion(GrammarWellFormedness):
    """The grammar contains a left-recursive rule."""

    name: str


@dataclass
class RepeatedEmptyTerm(GrammarWellFormedness):
    """The grammar repeats a term which may match the empty string."""

    expr: "Expr"


class Expr:
    """An expression in a grammar. Abstract base class."""

    def iter_subexpressions(self, grammar: "Grammar") -> Iterable["Expr"]:
        """
        Iterate over the sub-expressions within this expression. Terminals
        have none.
        """
        return iter(())

    def iter_first_subexpressions(self, grammar: "Grammar") -> Iterable["Expr"]:
        """
        Iterate over subexpressions which may be matched first by this
        expression.
        """
        return self.iter_subexpressions(grammar)

    def matches_empty(
        self, grammar: "Grammar", _visited_rules: Optional[Set[str]] = None
    ) -> bool:
        """
        Test if this expression can match the empty string (in the context of
        the specified grammar).
        """
        raise NotImplementedError()

    def first_set(
        self, grammar: "Grammar", _visited_rules: Optional[Set[str]] = None
    ) -> Set["Expr"]:
        r"""
        Return the set of :py:class:`Expr`\ s which may be matched first by
        this :py:class:`Expr`. Results are recursive.
        """
        if _visited_rules is None:
            _visited_rules = set()

        first = set()
        for subexpression in self.iter_first_subexpressions(grammar):
            first.add(subexpression)
            first.update(subexpression.first_set(grammar, _visited_rules))
        return first

    def is_well_formed(
        self, grammar: "Grammar", _visited_rules: Optional[Set[str]] = None
    ) -> GrammarWellFormedness:
        """
        Is this expression well-formed? That is, does it lack any repeated
        empty expressions, left recursion or undefined rules.
        """
        if _visited_rules is None:
            _visited_rules = set()

        for expr in self.iter_subexpressions(grammar):
            well_formed = expr.is_well_formed(grammar, _visited_rules)
            if not well_formed:
                return well_formed
        return WellFormed()


@dataclass(frozen=True)
class LiteralExpr(Expr):
    """Match a literal string."""

    text: str

    def matches_empty(
        self, grammar: "Grammar", _visited_rules: Optional[Set[str]] = None
    ) -> bool:
        return self.text == ""


@dataclass(frozen=True)
class RangeExpr(Expr):
    """Match a single character in the inclusive range ``[low, high]``."""

    low: str
    high: str

    def matches_empty(
        self, grammar: "Grammar", _visited_rules: Optional[Set[str]] = None
    ) -> bool:
        return False


@dataclass(frozen=True)
class EmptyExpr(Expr):
    """Match the empty string."""

    def matches_empty(
        self, grammar: "Grammar", _visited_rules: Optional[Set[str]] = None
    ) -> bool:
        return True


@dataclass(frozen=True)
class RuleExpr(Expr):
    """
    Match a named rule in the grammar, or one of the built-in rules ``any``
    (any single character) and ``eoi`` (the end of the input).
    """

    name: str

    def iter_subexpressions(self, grammar: "Grammar") -> Iterable[Expr]:
        # Special case; to avoid crash when undefined rule is used
        if self.name in grammar.rules:
            return iter((grammar.rules[self.name],))
        else:
            return iter(())

    def matches_empty(
        self, grammar: "Grammar", _visited_rules: Optional[Set[str]] = None
    ) -> bool:
        if self.name in BUILTIN_RULES:
            return self.name == EOI_RULE
        if self.name not in grammar.rules:
            return False

        if _visited_rules is None:
            _visited_rules = set()

        if self.name in _visited_rules:
            return True  # Left-recursive rule encountered; halt recursion
        else:
            _visited_rules.add(self.name)
            result = grammar.rules[self.name].matches_empty(grammar, _visited_rules)
            _visited_rules.remove(self.name)
            return result

    def first_set(
        self, grammar: "Grammar", _visited_rules: Optional[Set[str]] = None
    ) -> Set[Expr]:
        if _visited_rules is None:
            _visited_rules = set()

        if self.name in _visited_rules:
            return set()
        else:
            _visited_rules.add(self.name)

        return super().first_set(grammar, _visited_rules)

    def is_well_formed(
        self, grammar: "Grammar", _visited_rules: Optional[Set[str]] = None
    ) -> GrammarWellFormedness:
        if self.name in BUILTIN_RULES:
            return WellFormed()
        if self.name not in grammar.rules:
            return UndefinedRule(self.name)
        if self in self.first_set(grammar):
            return LeftRecursion(self.name)

        if _visited_rules is None:
            _visited_rules = set()
        if self.name in _visited_rules:
            return WellFormed()
        _visited_rules.add(self.name)

        return super().is_well_formed(grammar, _visited_rules)


@dataclass(frozen=True)
class AltExpr(Expr):
    """Prioritised alternation: matches first matching expression."""

    exprs: Tuple[Expr, ...]

    def iter_subexpressions(self, grammar: "Grammar") -> Iterable[Expr]:
        return iter(self.exprs)

    def matches_empty(
        self, grammar: "Grammar", _visited_rules: Optional[Set[str]] = None
    ) -> bool:
        if _visited_rules is None:
            _visited_rules = set()
        return any(e.matches_empty(grammar, _visited_rules) for e in self.exprs)


@dataclass(frozen=True)
class ConcatExpr(Expr):
    """
    Concatenation of several expressions. Outside of atomic rules, whitespace
    and comments may appear between the expressions.
    """

    exprs: Tuple[Expr, ...]

    def iter_subexpressions(self, grammar: "Grammar") -> Iterable[Expr]:
        return iter(self.exprs)

    def iter_first_subexpressions(self, grammar: "Grammar") -> Iterable[Expr]:
        for expr in self.exprs:
            yield expr
            if not expr.matches_empty(grammar):
                break

    def matches_empty(
        self, grammar: "Grammar", _visited_rules: Optional[Set[str]] = None
    ) -> bool:
        if _visited_rules is None:
            _visited_rules = set()
        return all(e.matches_empty(grammar, _visited_rules) for e in self.exprs)


@dataclass(frozen=True)
class StarExpr(Expr):
    """Kleene star: matches 0-or-more repetitions of an expression."""

    expr: Expr

    def iter_subexpressions(self, grammar: "Grammar") -> Iterable[Expr]:
        return iter((self.expr,))

    def matches_empty(
        self, grammar: "Grammar", _visited_rules: Optional[Set[str]] = None
    ) -> bool:
        return True

    def is_well_formed(
        self, grammar: "Grammar", _visited_rules: Optional[Set[str]] = None
    ) -> GrammarWellFormedness:
        if self.expr.matches_empty(grammar):
            return RepeatedEmptyTerm(self)
        return super().is_well_formed(grammar, _visited_rules)


@dataclass(frozen=True)
class PlusExpr(Expr):
    """'Kleene plus': match 1-or-more repetitions of an expression."""

    expr: Expr

    def iter_subexpressions(self, grammar: "Grammar") -> Iterable[Expr]:
        return iter((self.expr,))

    def matches_empty(
        self, grammar: "Grammar", _visited_rules: Optional[Set[str]] = None
    ) -> bool:
        return self.expr.matches_empty(grammar, _visited_rules)

    def is_well_formed(
        self, grammar: "Grammar", _visited_rules: Optional[Set[str]] = None
    ) -> GrammarWellFormedness:
        if self.expr.matches_empty(grammar):
            return RepeatedEmptyTerm(self)
        return super().is_well_formed(grammar, _visited_rules)


@dataclass(frozen=True)
class MaybeExpr(Expr):
    """Match an expression, or an empty string."""

    expr: Expr

    def iter_subexpressions(self, grammar: "Grammar") -> Iterable[Expr]:
        return iter((self.expr,))

    def matches_empty(
        self, grammar: "Grammar", _visited_rules: Optional[Set[str]] = None
    ) -> bool:
        return True


@dataclass(frozen=True)
class LookaheadExpr(Expr):
    """Negative lookahead: match only when the expression does not match."""

    expr: Expr

    def iter_subexpressions(self, grammar: "Grammar") -> Iterable[Expr]:
        return iter((self.expr,))

    def matches_empty(
        self, grammar: "Grammar", _visited_rules: Optional[Set[str]] = None
    ) -> bool:
        return True


@dataclass(frozen=True)
class PositiveLookaheadExpr(Expr):
    """Positive lookahead: match, but don't consume an expression."""

    expr: Expr

    def iter_subexpressions(self, grammar: "Grammar") -> Iterable[Expr]:
        return iter((self.expr,))

    def matches_empty(
        self, grammar: "Grammar", _visited_rules: Optional[Set[str]] = None
    ) -> bool:
        return True


@dataclass(frozen=True)
class OperatorLevel:
    """
    A group of infix operators sharing a precedence within a
    :py:class:`PrecClimbExpr`.
    """

    name: Optional[str]
    """
    The tag of the token produced for each operation at this level, or None
    for no token.
    """

    expr: Expr
    """Matches any one of the operators at this level."""

    right_associative: bool = False
    """If True, chains of operators at this level group from the right."""


@dataclass(frozen=True)
class PrecClimbExpr(Expr):
    """
    An infix operator expression parsed by precedence climbing: one or more
    ``primary`` operands separated by operators from ``levels``.

    Levels are listed from the loosest to the tightest binding; a level's
    precedence is its (one-based) position in the list. When several levels'
    operators could match, the earliest level listed wins.

    The span of each operation's token runs from the start of the first token
    produced by its left operand to the end of the first token produced by its
    right operand, so operands should be non-silent rules.
    """

    primary: Expr
    levels: Tuple[OperatorLevel, ...]

    def iter_subexpressions(self, grammar: "Grammar") -> Iterable[Expr]:
        yield self.primary
        for level in self.levels:
            yield level.expr

    def iter_first_subexpressions(self, grammar: "Grammar") -> Iterable[Expr]:
        return iter((self.primary,))

    def matches_empty(
        self, grammar: "Grammar", _visited_rules: Optional[Set[str]] = None
    ) -> bool:
        return self.primary.matches_empty(grammar, _visited_rules)

    def is_well_formed(
        self, grammar: "Grammar", _visited_rules: Optional[Set[str]] = None
    ) -> GrammarWellFormedness:
        # An operator which matches nothing is always found, after which an
        # operand is always required
        if any(level.expr.matches_empty(grammar) for level in self.levels):
            return RepeatedEmptyTerm(self)
        return super().is_well_formed(grammar, _visited_rules)


@dataclass
class Grammar:
    """A grammar description."""

    rules: Mapping[str, Expr]
    """The expression for each rule in the grammar."""

    start_rule: str = "start"
    """Name of the starting rule in :py:attr:`rules`."""

    silent_rules: FrozenSet[str] = frozenset()
    """
    Rules which do not produce tokens. The :py:data:`WHITESPACE_RULE` and
    :py:data:`COMMENT_RULE` rules are always silent.
    """

    atomic_rules: FrozenSet[str] = frozenset()
    """
    Rules matched in atomic mode: no whitespace or comments are skipped within
    them and only the rule itself is reported when it fails.
    """

    def is_silent(self, name: str) -> bool:
        return name in self.silent_rules or name in (WHITESPACE_RULE, COMMENT_RULE)

    def is_well_formed(self) -> GrammarWellFormedness:
        """
        Is this grammar well-formed? That is, is it free from missing rules,
        redefined built-in rules, (direct/indirect/hidden) left recursive rules
        and iteration of empty patterns?
        """
        if self.start_rule not in self.rules:
            return UndefinedRule(self.start_rule)
        for name in self.rules:
            if name in BUILTIN_RULES:
                return ReservedRule(name)
        visited_rules: Set[str] = set()
        for name in self.rules:
            well_formed = RuleExpr(name).is_well_formed(self, visited_rules)
            if not well_formed:
                return well_formed
        return WellFormed()


class GrammarNotWellFormedError(GrammarError):
    """
    Thrown when a :py:class:`GrammarParser` is given a grammar which is not
    well formed.
    """

    well_formedness: GrammarWellFormedness

    def __init__(self, well_formedness: GrammarWellFormedness) -> None:
        super().__init__(well_formedness)
        self.well_formedness = well_formedness


class GrammarParser(Parser):
    """
    A :py:class:`~descent.parser.Parser` for the language described by a
    :py:class:`Grammar`.

    Each rule is compiled into a closure when the parser is constructed. The
    grammar's ``whitespace`` and ``comment`` rules, if defined, are used for
    skipping.

    Parameters
    ----------
    grammar : :py:class:`Grammar`
        The grammar describing the language to be parsed.
    source : :py:class:`~descent.input.Input` or str
        The input to parse.
    check_well_formed : bool
        If True (the default), the grammar is checked for well-formedness
        before use. Ill-formed grammars which skip this check may instead
        fail with a :py:exc:`~descent.parser.GrammarError` during parsing.

    Raises
    ------
    :py:exc:`GrammarNotWellFormedError`
        If the grammar is not well formed.
    """

    _grammar: Grammar

    _rules: Dict[str, RuleBody]
    """The compiled body of every rule in the grammar."""

    _executing_rules: Set[Tuple[str, int]]
    """
    Used for an internal well-formedness sanity check. Verifies that no rule
    performs direct/indirect/hidden left recursion.
    """

    def __init__(
        self,
        grammar: Grammar,
        source: Union[Input, str],
        check_well_formed: bool = True,
    ) -> None:
        if check_well_formed:
            well_formed = grammar.is_well_formed()
            if not well_formed:
                raise GrammarNotWellFormedError(well_formed)

        super().__init__(source)
        self._grammar = grammar
        self._executing_rules = set()
        self._rules = {
            name: self._compile_rule(name, expr) for name, expr in grammar.rules.items()
        }

    @property
    def grammar(self) -> Grammar:
        return self._grammar

    def whitespace(self) -> bool:
        body = self._rules.get(WHITESPACE_RULE)
        return body(self) if body is not None else False

    def comment(self) -> bool:
        body = self._rules.get(COMMENT_RULE)
        return body(self) if body is not None else False

    def reset(self) -> None:
        super().reset()
        self._executing_rules = set()

    def call(self, name: str) -> bool:
        """Attempt to match the named rule at the current position."""
        if name == ANY_RULE:
            return self.any()
        elif name == EOI_RULE:
            return self.eoi()

        body = self._rules.get(name)
        if body is None:
            raise UndefinedRuleError(name)
        return body(self)

    def parse(self, rule: Optional[str] = None) -> TokenQueue:
        """
        Parse the input from the start, returning the token queue if the rule
        matches or raising a :py:exc:`~descent.parser.ParseError` if not.

        Parameters
        ----------
        rule : str or None
            The rule to match. Defaults to the grammar's start rule.
        """
        name = rule if rule is not None else self._grammar.start_rule
        self.reset()
        if self.call(name):
            return self.queue

        error = ParseError.from_parser(self)
        log.debug("parse of %s failed: %s", name, error.explain())
        raise error

    def _compile_rule(self, name: str, expr: Expr) -> RuleBody:
        body = self._compile(expr)
        silent = self._grammar.is_silent(name)
        atomic = name in self._grammar.atomic_rules

        def guarded_body(parser: Parser) -> bool:
            # Well-formedness sanity check: Rules must not include
            # direct/indirect/hidden left recursion. Registered after the
            # rule's leading skip.
            rule_instantiation = (name, parser.pos())
            if rule_instantiation in self._executing_rules:
                raise LeftRecursionError(name)
            self._executing_rules.add(rule_instantiation)
            try:
                return body(parser)
            finally:
                self._executing_rules.remove(rule_instantiation)

        def match_rule(parser: Parser) -> bool:
            return parser.rule(name, guarded_body, silent=silent, atomic=atomic)

        return match_rule

    def _compile(self, expr: Expr) -> RuleBody:
        """
        Compile an expression into a function matching it. Every compiled
        function leaves the position and token queue unchanged when it fails.
        """
        if isinstance(expr, LiteralExpr):
            return self._compile_literal(expr)
        elif isinstance(expr, RangeExpr):
            return self._compile_range(expr)
        elif isinstance(expr, EmptyExpr):
            return lambda parser: True
        elif isinstance(expr, RuleExpr):
            return self._compile_rule_reference(expr)
        elif isinstance(expr, AltExpr):
            return self._compile_alt(expr)
        elif isinstance(expr, ConcatExpr):
            return self._compile_concat(expr)
        elif isinstance(expr, StarExpr):
            return self._compile_repetition(expr, expr.expr, 0)
        elif isinstance(expr, PlusExpr):
            return self._compile_repetition(expr, expr.expr, 1)
        elif isinstance(expr, MaybeExpr):
            return self._compile_maybe(expr)
        elif isinstance(expr, LookaheadExpr):
            return self._compile_lookahead(expr.expr, negative=True)
        elif isinstance(expr, PositiveLookaheadExpr):
            return self._compile_lookahead(expr.expr, negative=False)
        elif isinstance(expr, PrecClimbExpr):
            return self._compile_prec_climb(expr)
        else:
            # Should be unreachable...
            raise TypeError(type(expr))

    def _compile_literal(self, expr: LiteralExpr) -> RuleBody:
        text = expr.text
        return lambda parser: parser.match_literal(text)

    def _compile_range(self, expr: RangeExpr) -> RuleBody:
        low, high = expr.low, expr.high
        return lambda parser: parser.match_char_range(low, high)

    def _compile_rule_reference(self, expr: RuleExpr) -> RuleBody:
        # NB: Resolved at match time since rules may refer to rules which have
        # not been compiled yet.
        name = expr.name
        return lambda parser: self.call(name)

    def _compile_alt(self, expr: AltExpr) -> RuleBody:
        bodies = [self._compile(e) for e in expr.exprs]

        def match_alt(parser: Parser) -> bool:
            for body in bodies:
                if body(parser):
                    return True
            return False

        return match_alt

    def _compile_concat(self, expr: ConcatExpr) -> RuleBody:
        bodies = [self._compile(e) for e in expr.exprs]

        def match_all(parser: Parser) -> bool:
            for index, body in enumerate(bodies):
                if index == 0:
                    matched = body(parser)
                else:
                    matched = self._skip_then(body)
                if not matched:
                    return False
            return True

        return lambda parser: parser.attempt(False, match_all)

    def _compile_repetition(self, expr: Expr, repeated: Expr, minimum: int) -> RuleBody:
        body = self._compile(repeated)

        def match_repetition(parser: Parser) -> bool:
            count = 0
            while True:
                before = parser.pos()
                matched = body(parser) if count == 0 else self._skip_then(body)
                if not matched:
                    return count >= minimum

                # Well-formedness sanity check: must not have matched the
                # empty string
                if parser.pos() <= before:
                    raise RepeatedEmptyTermError(expr)
                count += 1

        return match_repetition

    def _compile_maybe(self, expr: MaybeExpr) -> RuleBody:
        body = self._compile(expr.expr)

        def match_maybe(parser: Parser) -> bool:
            body(parser)
            return True

        return match_maybe

    def _compile_lookahead(self, expr: Expr, negative: bool) -> RuleBody:
        body = self._compile(expr)

        def match_lookahead(parser: Parser) -> bool:
            queue_len = len(parser.queue)
            failures = parser.failures.save()

            matched = parser.attempt(True, body)

            # Lookaheads never produce tokens
            parser.queue.truncate(queue_len)
            if negative:
                # Erase all failures noted during the lookahead
                parser.failures.restore(failures)
                return not matched
            else:
                return matched

        return match_lookahead

    def _compile_prec_climb(self, expr: PrecClimbExpr) -> RuleBody:
        primary_body = self._compile(expr.primary)
        levels = [
            (
                Operator(level.name, precedence, level.right_associative),
                self._compile(level.expr),
            )
            for precedence, level in enumerate(expr.levels, start=1)
        ]

        def climb(parser: Parser) -> Optional[OperatorMatch]:
            for operator, body in levels:
                if self._skip_then(body):
                    return operator
            return None

        def match_expression(parser: Parser) -> bool:
            # Set when an operator is not followed by an operand
            missing_operand: List[bool] = []

            def primary(parser: Parser) -> bool:
                if self._skip_then(primary_body):
                    return True
                missing_operand.append(True)
                return False

            queue_pos = len(parser.queue)
            start = parser.pos()
            if not primary_body(parser):
                return False

            first = parser.queue.get(queue_pos)
            left = first.start if first is not None else start
            parser.prec_climb(queue_pos, left, 0, None, primary, climb)
            return not missing_operand

        return lambda parser: parser.attempt(False, match_expression)

    def _skip_then(self, body: RuleBody) -> bool:
        """
        Skip whitespace and comments then match ``body``. The skipped text is
        only kept if ``body`` then consumes some input or matches the end of
        the input. Otherwise any (zero-width) tokens ``body`` produced are
        moved back to the unskipped position.
        """
        start = self.pos()

        def match_after_skip(parser: Parser) -> bool:
            queue_len = len(parser.queue)
            eoi_matched = parser.eoi_matched()
            parser.skip()
            skipped_to = parser.pos()
            if not body(parser):
                return False
            if parser.pos() != skipped_to or skipped_to == start:
                return True
            if parser.eoi_matched() and not eoi_matched:
                return True

            tokens = [parser.queue[i] for i in range(queue_len, len(parser.queue))]
            parser.queue.truncate(queue_len)
            for token in tokens:
                parser.queue.push(Token(token.rule, start, start))
            parser.set_pos(start)
            return True

        return self.attempt(False, match_after_skip)

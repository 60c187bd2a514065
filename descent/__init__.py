r"""
Descent is a backtracking recursive descent parsing library in the style of
Parsing Expression Grammars (PEG) [PEG]_ with built-in precedence climbing for
infix operator expressions.

Rather than building a parse tree, a parse produces a flat queue of
:py:class:`.Token`\ s (one per successfully matched rule, each recording the
span of input it matched) in the order a depth-first walk of the parse tree
would visit them. Whitespace and comments are skipped automatically between
the elements of a rule, and when parsing fails the parser reports which rules
failed at the furthest point reached in the input.

Basic usage
===========

Grammars may be described as data using a :py:class:`.Grammar` mapping rule
names to expressions. For example, a grammar for sums and products of numbers
such as ``1 + 2 * 3``::

    >>> from descent import (
    ...     Grammar,
    ...     RuleExpr,
    ...     LiteralExpr,
    ...     RangeExpr,
    ...     ConcatExpr,
    ...     PlusExpr,
    ...     PrecClimbExpr,
    ...     OperatorLevel,
    ... )
    >>> grammar = Grammar(
    ...     rules={
    ...         "start": ConcatExpr((RuleExpr("expr"), RuleExpr("eoi"))),
    ...         "expr": PrecClimbExpr(
    ...             RuleExpr("number"),
    ...             (
    ...                 OperatorLevel("add", LiteralExpr("+")),
    ...                 OperatorLevel("mul", LiteralExpr("*")),
    ...             ),
    ...         ),
    ...         "number": PlusExpr(RangeExpr("0", "9")),
    ...         "whitespace": LiteralExpr(" "),
    ...     },
    ...     silent_rules=frozenset(["start", "expr"]),
    ...     atomic_rules=frozenset(["number"]),
    ... )

The built-in ``eoi`` rule matches only at the end of the input and ``any``
matches any single character. The ``whitespace`` (and ``comment``) rules, when
defined, are skipped between the elements of every non-atomic rule.

Silent rules produce no tokens. Atomic rules (like ``number`` above) do not
skip whitespace between their elements, so ``1 2`` is not a number.

Operator levels are listed from loosest to tightest binding. A token is
produced for each binary operation using the level's name.

The grammar is parsed using a :py:class:`.GrammarParser`::

    >>> from descent import GrammarParser
    >>> parser = GrammarParser(grammar, "1 + 2 * 3")
    >>> for token in parser.parse():
    ...     print(token)
    Token(rule='add', start=0, end=9)
    Token(rule='number', start=0, end=1)
    Token(rule='mul', start=4, end=9)
    Token(rule='number', start=4, end=5)
    Token(rule='number', start=8, end=9)

The token queue may be turned back into a tree using
:py:func:`.build_token_trees` and then evaluated (or otherwise transformed)
by a :py:class:`.TokenTreeTransformer` subclass defining a method for each
rule of interest::

    >>> from descent import TokenTreeTransformer, build_token_trees

    >>> class Calculator(TokenTreeTransformer):
    ...     def number(self, tree, children):
    ...         return int(tree.text)
    ...
    ...     def add(self, tree, children):
    ...         left, right = children
    ...         return left + right
    ...
    ...     def mul(self, tree, children):
    ...         left, right = children
    ...         return left * right

    >>> [tree] = build_token_trees(parser)
    >>> Calculator().transform(tree)
    7

Error messages
==============

When parsing fails a :py:exc:`.ParseError` is raised. Its string
representation points at the furthest point the parser reached and lists the
rules which could have matched there::

    >>> GrammarParser(grammar, "1 + * 3").parse()
    Traceback (most recent call last):
      ...
    descent.parser.ParseError: At line 1 column 5:
        1 + * 3
            ^
    Expected number

The :py:meth:`.ParseError.explain` method accepts alternative descriptions for
rules, for example to replace the names of rules with something more
meaningful to a user.

Hand-written parsers
====================

Grammars may also be written directly as Python by subclassing
:py:class:`.Parser` and defining one method per rule. Rule methods call
:py:meth:`.Parser.rule` with a function combining the primitive matchers
(:py:meth:`.Parser.match_literal`, :py:meth:`.Parser.match_char_range`),
other rule methods and :py:meth:`.Parser.attempt`, which rolls back any
partial match. Infix expressions are matched using
:py:meth:`.Parser.prec_climb`. Whitespace and comment skipping is enabled by
overriding :py:meth:`.Parser.whitespace` and :py:meth:`.Parser.comment`.

.. [PEG] Ford, Bryan. "Parsing expression grammars: a recognition-based
   syntactic foundation." Proceedings of the 31st ACM SIGPLAN-SIGACT symposium
   on Principles of programming languages. 2004.

API Reference
=============

.. autoclass:: Parser
    :members:

.. autoclass:: Token
    :members:

.. autoclass:: TokenQueue
    :members:

.. autoclass:: Grammar
    :members:

.. autoclass:: GrammarParser
    :members:

.. autoclass:: TokenTreeTransformer
    :members:
    :private-members:

.. autoclass:: ParseError
    :members:
"""


from descent.version import __version__

from descent.input import *
from descent.parser import *
from descent.grammar import *
from descent.transformer import *

# NB: These names are explicitly re-exported here because mypy in strict mode
# does not allow implicit re-exports. The completeness of this list is tested
# by the test suite.
__all__ = [  # noqa: F405
    # input.*
    "Input",
    "StringInput",
    # parser.*
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
    # grammar.*
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
    # transformer.*
    "TokenTree",
    "build_token_trees",
    "TokenTreeTransformer",
]

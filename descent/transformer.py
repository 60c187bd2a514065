"""Rebuild token trees from a parser's token queue and transform them."""

from dataclasses import dataclass

from typing import Any, List, Tuple

from descent.parser import Parser, Token

__all__ = [
    "TokenTree",
    "build_token_trees",
    "TokenTreeTransformer",
]


@dataclass(frozen=True)
class TokenTree:
    """A :py:class:`~descent.parser.Token` along with the tokens it encloses."""

    token: Token

    text: str
    """The input text matched by :py:attr:`token`."""

    children: Tuple["TokenTree", ...] = ()

    @property
    def rule(self) -> str:
        return self.token.rule

    @property
    def start(self) -> int:
        return self.token.start

    @property
    def end(self) -> int:
        return self.token.end


def build_token_trees(parser: Parser) -> List[TokenTree]:
    """
    Rebuild the nesting of the tokens in a parser's queue.

    Tokens are consumed from the parser's
    :py:meth:`~descent.parser.Parser.queue_index` onward, advancing the index
    as they are consumed. A token's children are the tokens immediately
    following it which lie within its span.
    """
    trees = []
    while parser.queue_index() < len(parser.queue):
        trees.append(_build_token_tree(parser))
    return trees


def _build_token_tree(parser: Parser) -> TokenTree:
    token = parser.queue[parser.queue_index()]
    parser.inc_queue_index()

    children = []
    while parser.queue_index() < len(parser.queue):
        if not token.contains(parser.queue[parser.queue_index()]):
            break
        children.append(_build_token_tree(parser))

    return TokenTree(token, parser.slice_input(token.start, token.end), tuple(children))


class TokenTreeTransformer:
    """
    By default, this transformer will produce a representation containing a
    hierarchy of lists with the matched text of each childless token at the
    leaves.

    Transformations may be customised by defining methods with the name of the
    rule to be transformed. These will be called with the :py:class:`TokenTree`
    of the matched rule along with the transformed values of its children (a
    list). Methods should return the newly transformed value. If no matching
    method is defined, the :py:meth:`_default` method will be called. In the
    event that a method name is a Python reserved word, a method name should be
    given a "_" suffix.

    Methods named ``<rule_name>_enter`` will be called (if defined) before
    the children of a rule are transformed.
    """

    def transform(self, tree: TokenTree) -> Any:
        """
        Transform the provided token tree with this transformer.
        """
        enter_fn = getattr(self, "{}_enter".format(tree.rule), None)
        if enter_fn is not None:
            enter_fn(tree)

        processed_children = [self.transform(child) for child in tree.children]

        process_fn = getattr(
            self, tree.rule, getattr(self, tree.rule + "_", self._default)
        )
        return process_fn(tree, processed_children)

    def _default(self, tree: TokenTree, transformed_children: List[Any]) -> Any:
        """
        The default transformation for rules: the matched text for tokens
        without children, otherwise the transformed children.
        """
        if tree.children:
            return transformed_children
        else:
            return tree.text

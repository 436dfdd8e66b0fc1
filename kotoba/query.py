"""
Query language parser.

Grammar (whitespace separates OR-ed predicates)::

    expr     := predicate*
    predicate:= '!'* conj
    conj     := [&~]* term ([&~]+ term)*
    term     := group | keyword
    group    := ( '(' | '[' | '「' ) expr ( ')' | ']' | '」' )
    keyword  := ['=' | '>'] (text | '*' | '?')+

`&`/`+` join AND-ed terms, `~` joins a negated term, `!` negates a whole
predicate. `=` restricts a keyword to exact matching, `>` additionally
enables fuzzy matching. Full-width variants of every operator are
accepted. Input is NFC-normalized and upper-cased before tokenizing.
"""

import re
import unicodedata
from dataclasses import dataclass, replace
from enum import Enum
from typing import Iterator, List, Optional, Tuple, Union

from kotoba.errors import QuerySyntaxError
from kotoba.patterns import GLOB_CHAR, GLOB_STAR

NOT_OPS = "!！"
AND_OPS = "+＋&＆"
AND_NOT_OPS = "~～"
OPEN_BRACKETS = "(（[［「"
CLOSE_BRACKETS = ")）]］」"
EXACT_PREFIX = "=＝"
FUZZY_PREFIX = ">＞"

OPERATORS = NOT_OPS + AND_OPS + AND_NOT_OPS + OPEN_BRACKETS + CLOSE_BRACKETS

_OPERATOR_RE = re.compile("([" + re.escape(OPERATORS) + "])")
_CHUNK_RE = re.compile(r"\S+")


# =============================================================================
# Predicate Tree
# =============================================================================

class Mode(str, Enum):
    NORMAL = "normal"
    EXACT = "exact"
    FUZZY = "fuzzy"


@dataclass(frozen=True)
class Glob:
    """A structural wildcard: '*' (any run) or '?' (one character)."""
    kind: str

    def __repr__(self) -> str:
        return f"Glob({self.kind!r})"


STAR = Glob("*")
ANY_CHAR = Glob("?")

Segment = Union[str, Glob]


@dataclass(frozen=True)
class Keyword:
    segments: Tuple[Segment, ...]
    mode: Mode = Mode.NORMAL
    negate: bool = False

    @property
    def text(self) -> str:
        """Keyword text with wildcards rendered as '*' and '?'."""
        return "".join(s if isinstance(s, str) else s.kind for s in self.segments)

    @property
    def literal(self) -> str:
        """Keyword text with wildcards removed."""
        return "".join(s for s in self.segments if isinstance(s, str))

    @property
    def has_glob(self) -> bool:
        return any(isinstance(s, Glob) for s in self.segments)


@dataclass(frozen=True)
class And:
    children: Tuple["Node", ...]


@dataclass(frozen=True)
class Or:
    children: Tuple["Node", ...]


@dataclass(frozen=True)
class Not:
    child: "Node"


Node = Union[Or, And, Not, Keyword]


@dataclass(frozen=True)
class ParsedQuery:
    """
    A parsed query.

    Attributes:
        id: Normalized query text (tokens joined by single spaces)
        root: Predicate tree, or None for an empty query
    """
    id: str
    root: Optional[Node]

    def keywords(self) -> List[Keyword]:
        """Positive (non-negated) keywords, in query order."""
        return list(_positive_keywords(self.root))


def _positive_keywords(node: Optional[Node]) -> Iterator[Keyword]:
    if isinstance(node, Keyword):
        if not node.negate:
            yield node
    elif isinstance(node, (And, Or)):
        for child in node.children:
            yield from _positive_keywords(child)


def negate(node: Node) -> Node:
    """Negate a node, collapsing double negation."""
    if isinstance(node, Not):
        return node.child
    return Not(node)


def make_or(children: List[Node]) -> Optional[Node]:
    """Build an Or, dropping duplicate children and collapsing single ones."""
    unique: List[Node] = []
    for child in children:
        if child not in unique:
            unique.append(child)
    if not unique:
        return None
    if len(unique) == 1:
        return unique[0]
    return Or(tuple(unique))


# =============================================================================
# Tokenizer
# =============================================================================

@dataclass(frozen=True)
class Token:
    text: str
    position: int


def normalize(text: str) -> str:
    return unicodedata.normalize("NFC", text).upper()


def tokenize(text: str) -> List[Token]:
    """Split a query into keyword and operator tokens with their offsets."""
    tokens = []
    for chunk in _CHUNK_RE.finditer(normalize(text)):
        offset = chunk.start()
        for part in _OPERATOR_RE.split(chunk.group()):
            if part:
                tokens.append(Token(part, offset))
            offset += len(part)
    return tokens


# =============================================================================
# Parser
# =============================================================================

class _Parser:
    def __init__(self, tokens: List[Token], length: int):
        self.tokens = tokens
        self.index = 0
        self.length = length

    def peek(self) -> Optional[Token]:
        if self.index < len(self.tokens):
            return self.tokens[self.index]
        return None

    def advance(self) -> Token:
        token = self.tokens[self.index]
        self.index += 1
        return token

    def fail(self, message: str, token: Optional[Token]):
        if token is None:
            raise QuerySyntaxError(message, None, self.length)
        raise QuerySyntaxError(message, token.text, token.position)

    def _at(self, chars: str) -> bool:
        token = self.peek()
        return token is not None and token.text in chars

    def parse_root(self) -> Optional[Node]:
        node = self.parse_expr()
        token = self.peek()
        if token is not None:
            if token.text in CLOSE_BRACKETS:
                self.fail("Unmatched closing bracket", token)
            self.fail("Unexpected token", token)
        return node

    def parse_expr(self) -> Optional[Node]:
        children = []
        while self.peek() is not None and not self._at(CLOSE_BRACKETS):
            node = self.parse_predicate()
            if node is not None:
                children.append(node)
        return make_or(children)

    def parse_predicate(self) -> Optional[Node]:
        negated = False
        bang = None
        while self._at(NOT_OPS):
            bang = self.advance()
            negated = not negated
        if bang is not None and (self.peek() is None or self._at(CLOSE_BRACKETS)):
            self.fail("Expected operand after negation", self.peek())
        node = self.parse_conjunction()
        if node is None:
            return None
        return negate(node) if negated else node

    def parse_conjunction(self) -> Optional[Node]:
        terms = []
        while True:
            negated = False
            while self._at(AND_OPS + AND_NOT_OPS):
                if self.advance().text in AND_NOT_OPS:
                    negated = not negated
            term = self.parse_term(negated)
            if term is not None:
                terms.append(term)
            if not self._at(AND_OPS + AND_NOT_OPS):
                break
        if not terms:
            return None
        if len(terms) == 1:
            return terms[0]
        return And(tuple(terms))

    def parse_term(self, negated: bool) -> Optional[Node]:
        token = self.peek()
        if token is None:
            self.fail("Expected keyword", None)
        if token.text in OPEN_BRACKETS:
            node = self.parse_group()
            if node is None:
                return None
            return negate(node) if negated else node
        if token.text in OPERATORS:
            self.fail("Unexpected operator", token)
        return self.parse_keyword(negated)

    def parse_group(self) -> Optional[Node]:
        opening = self.advance()
        node = self.parse_expr()
        if self.peek() is None:
            self.fail("Unclosed bracket", opening)
        self.advance()
        return node

    def parse_keyword(self, negated: bool) -> Keyword:
        token = self.advance()
        text = token.text
        mode = Mode.NORMAL
        if text[0] in EXACT_PREFIX:
            mode, text = Mode.EXACT, text[1:]
        elif text[0] in FUZZY_PREFIX:
            mode, text = Mode.FUZZY, text[1:]
        if not text:
            self.fail("Expected keyword after match prefix", token)
        return Keyword(split_segments(text), mode, negated)


def split_segments(text: str) -> Tuple[Segment, ...]:
    """Split keyword text into literal runs and wildcards."""
    segments: List[Segment] = []
    literal = []
    for ch in text:
        if ch in GLOB_STAR or ch in GLOB_CHAR:
            if literal:
                segments.append("".join(literal))
                literal = []
            glob = STAR if ch in GLOB_STAR else ANY_CHAR
            # '**' is the same as '*'
            if glob is STAR and segments and segments[-1] is STAR:
                continue
            segments.append(glob)
        else:
            literal.append(ch)
    if literal:
        segments.append("".join(literal))
    return tuple(segments)


def parse(text: str) -> ParsedQuery:
    """
    Parse a query.

    Args:
        text: Query text

    Returns:
        ParsedQuery; its root is None when the query has no keywords

    Raises:
        QuerySyntaxError: For unmatched brackets, misplaced operators or
            trailing tokens

    Example:
        >>> parse("食べ* !=犬").root
        Or(children=(Keyword(...), Not(child=Keyword(...))))
    """
    tokens = tokenize(text)
    parser = _Parser(tokens, len(normalize(text)))
    root = parser.parse_root()
    return ParsedQuery(" ".join(t.text for t in tokens), root)


def unparse(node: Optional[Node]) -> str:
    """Render a predicate tree back into query syntax."""
    if node is None:
        return ""
    if isinstance(node, Keyword):
        prefix = {Mode.EXACT: "=", Mode.FUZZY: ">"}.get(node.mode, "")
        return ("~" if node.negate else "") + prefix + node.text
    if isinstance(node, Not):
        inner = unparse(node.child)
        if isinstance(node.child, Keyword) and not node.child.negate:
            return "!" + inner
        return "!(" + inner + ")"
    if isinstance(node, And):
        parts = []
        for child in node.children:
            if isinstance(child, Keyword):
                part = unparse(child)
            elif isinstance(child, Not):
                part = "~(" + unparse(child.child) + ")"
            else:
                part = "(" + unparse(child) + ")"
            if parts and not part.startswith("~"):
                part = "&" + part
            parts.append(part)
        return "".join(parts)
    if isinstance(node, Or):
        return " ".join(
            "(" + unparse(c) + ")" if isinstance(c, Or) else unparse(c)
            for c in node.children
        )
    raise TypeError(f"Unknown query node: {node!r}")


def with_mode(keyword: Keyword, mode: Mode) -> Keyword:
    return replace(keyword, mode=mode)

"""
Legal Unit Parser
=================

Splits consolidated legal text into citable units:

    art. 389                 (article, full body)
    art. 389 al. 1           (alinéa / paragraph)
    art. 389 al. 1 let. a    (lettered sub-item)

The parser is a line-oriented state machine. Each line is classified as
one token (HEADER / PARAGRAPH / LETTER / BODY) and fed to a small builder
that keeps the open article and the open paragraph. Letters are split out
of a paragraph once it is closed, because they can also appear inline
("Il doit: a) informer; b) rendre compte.").

Usage:
    units = parse(text, "rs_210")
    for unit in units:
        print(unit.order_index, unit.cite_key, unit.content_text[:40])
"""

import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, List, Optional, Tuple

from app.core.errors import ParseError
from app.services.legal_corpus.hashing import hash_text

logger = logging.getLogger(__name__)


# ============================================================================
# CONSTANTS
# ============================================================================

MIN_PARAGRAPH_LENGTH = 10  # strictly longer than this to be kept
MIN_LETTER_LENGTH = 5
KEYWORD_LIMIT = 10
KEYWORD_MIN_LENGTH = 3  # strictly longer than this

ARTICLE_SUFFIXES = "bis|ter|quater|quinquies|sexies|septies|octies|novies|decies"

# Headers are capitalised; a lowercase "art." is an inline cross-reference
HEADER_RE = re.compile(
    rf"^\s*Art(?:icle)?\.?\s*(\d+(?:{ARTICLE_SUFFIXES}|[a-z])?)\b(.*)$"
)
HEADER_TITLE_RE = re.compile(r"^\s*[-–—]\s*(.+?)\s*$")
PARAGRAPH_RE = re.compile(
    r"^\s*(?:(\d+)\s*[.)°]|al\.\s*(\d+)|([⁰¹²³⁴⁵⁶⁷⁸⁹]+))\s+(.*)$",
    re.IGNORECASE,
)
LETTER_LINE_RE = re.compile(r"^\s*([a-z])\)\s+", re.IGNORECASE)
# A letter marker starts the paragraph, a line, or follows ':' / ';'
LETTER_MARKER_RE = re.compile(r"(?:^|(?<=[:;\n]))\s*([a-z])\)\s+", re.IGNORECASE)

SUPERSCRIPT_DIGITS = str.maketrans("⁰¹²³⁴⁵⁶⁷⁸⁹", "0123456789")

FRENCH_STOPWORDS = frozenset({
    "le", "la", "les", "de", "du", "des", "un", "une", "et", "ou", "en", "à",
    "au", "aux", "pour", "par", "sur", "dans", "est", "sont", "être", "avoir",
    "qui", "que", "ce", "cette", "ces", "il", "elle", "ils", "elles", "son",
    "sa", "ses", "leur", "leurs", "tout", "tous", "toute", "toutes", "avec",
    "sans", "peut", "peuvent", "doit", "doivent", "fait", "font", "dont",
    "cas", "selon", "ainsi", "donc", "mais", "comme", "même", "plus", "moins",
    "autre", "autres",
})
KEYWORD_STRIP_RE = re.compile(r"[^\w\sàâäéèêëïîôùûüçœæ]")


# ============================================================================
# DATA MODELS
# ============================================================================

class UnitType(str, Enum):
    ARTICLE = "article"
    PARAGRAPH = "paragraph"
    LETTER = "letter"


class TokenKind(str, Enum):
    HEADER = "header"
    PARAGRAPH = "paragraph"
    LETTER = "letter"
    BODY = "body"


@dataclass
class Token:
    kind: TokenKind
    text: str  # full line (BODY/LETTER) or the text after the marker
    number: Optional[str] = None  # article / paragraph number
    title: Optional[str] = None
    raw: str = ""  # original line, kept verbatim in the article body


@dataclass
class ParsedUnit:
    """One citable unit produced by the parser, ready for persistence."""
    cite_key: str
    unit_type: UnitType
    content_text: str
    order_index: int
    article_number: str
    paragraph_number: Optional[str] = None
    letter: Optional[str] = None
    title: Optional[str] = None
    hash_sha256: str = ""
    keywords: List[str] = field(default_factory=list)

    def __post_init__(self):
        if not self.hash_sha256:
            self.hash_sha256 = hash_text(self.content_text)
        if not self.keywords:
            self.keywords = extract_keywords(self.content_text)

    @property
    def is_key_unit(self) -> bool:
        return self.unit_type == UnitType.ARTICLE

    def to_dict(self) -> dict:
        return {
            "cite_key": self.cite_key,
            "unit_type": self.unit_type.value,
            "article_number": self.article_number,
            "paragraph_number": self.paragraph_number,
            "letter": self.letter,
            "title": self.title,
            "content_text": self.content_text,
            "hash_sha256": self.hash_sha256,
            "keywords": self.keywords,
            "order_index": self.order_index,
            "is_key_unit": self.is_key_unit,
        }


@dataclass
class _OpenParagraph:
    number: str
    lines: List[str] = field(default_factory=list)


@dataclass
class _OpenArticle:
    number: str
    title: Optional[str]
    body: List[str] = field(default_factory=list)
    paragraphs: List[_OpenParagraph] = field(default_factory=list)


# ============================================================================
# KEYWORDS
# ============================================================================

def extract_keywords(text: str, limit: int = KEYWORD_LIMIT) -> List[str]:
    """
    Top-`limit` keywords by raw frequency.

    Lowercases, strips punctuation (accented letters survive), drops short
    tokens and French function words. Ties keep first-seen order.
    """
    cleaned = KEYWORD_STRIP_RE.sub(" ", text.lower())
    words = [
        w for w in cleaned.split()
        if len(w) > KEYWORD_MIN_LENGTH and w not in FRENCH_STOPWORDS
    ]
    return [word for word, _ in Counter(words).most_common(limit)]


# ============================================================================
# LEXER
# ============================================================================

def tokenize(raw_text: str) -> Iterator[Token]:
    """Classify each line of the text into a token."""
    text = raw_text.replace("\r\n", "\n").replace("\r", "\n").replace("\xa0", " ")
    for line in text.split("\n"):
        header = HEADER_RE.match(line)
        if header:
            number = header.group(1).lower()
            remainder = header.group(2)
            title_match = HEADER_TITLE_RE.match(remainder)
            if title_match:
                yield Token(TokenKind.HEADER, "", number=number, title=title_match.group(1))
            else:
                yield Token(TokenKind.HEADER, remainder.strip(), number=number)
            continue

        paragraph = PARAGRAPH_RE.match(line)
        if paragraph:
            number = paragraph.group(1) or paragraph.group(2)
            if number is None:
                number = paragraph.group(3).translate(SUPERSCRIPT_DIGITS)
            yield Token(
                TokenKind.PARAGRAPH, paragraph.group(4), number=str(int(number)), raw=line.rstrip(),
            )
            continue

        if LETTER_LINE_RE.match(line):
            yield Token(TokenKind.LETTER, line.strip())
            continue

        yield Token(TokenKind.BODY, line.rstrip())


# ============================================================================
# PARSER
# ============================================================================

def split_letters(paragraph_text: str) -> Tuple[str, List[Tuple[str, str]]]:
    """
    Split a paragraph into its lead-in text and (letter, text) items.

    A letter's text ends at the first ';' or at the next letter marker.
    """
    markers = list(LETTER_MARKER_RE.finditer(paragraph_text))
    if not markers:
        return paragraph_text.strip(), []

    lead_in = paragraph_text[:markers[0].start()].strip()
    letters = []
    for i, marker in enumerate(markers):
        end = markers[i + 1].start() if i + 1 < len(markers) else len(paragraph_text)
        segment = paragraph_text[marker.end():end]
        letters.append((marker.group(1).lower(), segment.split(";", 1)[0].strip()))
    return lead_in, letters


class UnitParser:
    """
    Builds the unit list from the token stream.

    One instance per parse call; order_index is assigned as units are
    emitted, which follows document scan order.
    """

    def __init__(self, instrument_uid: str):
        self.instrument_uid = instrument_uid
        self.units: List[ParsedUnit] = []
        self._seen_keys: set = set()
        self._article: Optional[_OpenArticle] = None

    def feed(self, token: Token) -> None:
        if token.kind == TokenKind.HEADER:
            self._close_article()
            self._article = _OpenArticle(number=token.number, title=token.title)
            if token.text:
                self._article.body.append(token.text)
            return

        if self._article is None:
            # Preamble before the first article header
            return

        if token.kind == TokenKind.PARAGRAPH:
            self._article.paragraphs.append(_OpenParagraph(number=token.number, lines=[token.text]))
            self._article.body.append(token.raw)
            return

        self._article.body.append(token.text)
        if self._article.paragraphs:
            self._article.paragraphs[-1].lines.append(token.text)

    def finish(self) -> List[ParsedUnit]:
        self._close_article()
        return self.units

    def _emit(self, **kwargs) -> None:
        cite_key = kwargs["cite_key"]
        if cite_key in self._seen_keys:
            logger.warning(
                "Duplicate cite key %s in %s, keeping first occurrence",
                cite_key, self.instrument_uid,
            )
            return
        self._seen_keys.add(cite_key)
        self.units.append(ParsedUnit(order_index=len(self.units), **kwargs))

    def _close_article(self) -> None:
        article = self._article
        if article is None:
            return
        self._article = None

        art = article.number
        self._emit(
            cite_key=f"art. {art}",
            unit_type=UnitType.ARTICLE,
            article_number=art,
            title=article.title,
            content_text="\n".join(article.body).strip(),
        )

        for paragraph in article.paragraphs:
            full_text = "\n".join(paragraph.lines).strip()
            if len(full_text) <= MIN_PARAGRAPH_LENGTH:
                continue

            lead_in, letters = split_letters(full_text)
            self._emit(
                cite_key=f"art. {art} al. {paragraph.number}",
                unit_type=UnitType.PARAGRAPH,
                article_number=art,
                paragraph_number=paragraph.number,
                content_text=lead_in or full_text,
            )
            for letter, letter_text in letters:
                if len(letter_text) <= MIN_LETTER_LENGTH:
                    continue
                self._emit(
                    cite_key=f"art. {art} al. {paragraph.number} let. {letter}",
                    unit_type=UnitType.LETTER,
                    article_number=art,
                    paragraph_number=paragraph.number,
                    letter=letter,
                    content_text=letter_text,
                )


def parse(raw_text: str, instrument_uid: str) -> List[ParsedUnit]:
    """
    Parse legal text into an ordered list of units.

    Text without any article header yields an empty list.
    """
    if not isinstance(raw_text, str):
        raise ParseError(f"Expected text for {instrument_uid}, got {type(raw_text).__name__}")

    parser = UnitParser(instrument_uid)
    for token in tokenize(raw_text):
        parser.feed(token)
    units = parser.finish()

    logger.debug("Parsed %d units for %s", len(units), instrument_uid)
    return units

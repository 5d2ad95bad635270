"""
Legal Unit Parser Tests
=======================

Segmentation of consolidated legal text into article, paragraph and
letter units.
"""

import pytest

from app.core.errors import ParseError
from app.services.legal_corpus import UnitType, extract_keywords, parse
from app.services.legal_corpus.unit_parser import split_letters

from conftest import CIVIL_CODE_TEXT


class TestArticleSegmentation:
    """Article / paragraph / letter scenario."""

    def test_article_with_paragraph_and_letter(self):
        text = (
            "Art. 389\n"
            "Le mandat de curatelle.\n"
            "1. Premier alinéa.\n"
            "a) lettre a.\n"
            "Art. 390\n"
            "Suite du texte."
        )
        units = parse(text, "rs_210")

        assert [u.cite_key for u in units] == [
            "art. 389",
            "art. 389 al. 1",
            "art. 389 al. 1 let. a",
            "art. 390",
        ]
        assert [u.order_index for u in units] == [0, 1, 2, 3]
        assert [u.unit_type for u in units] == [
            UnitType.ARTICLE, UnitType.PARAGRAPH, UnitType.LETTER, UnitType.ARTICLE,
        ]

        article = units[0]
        assert "Le mandat de curatelle." in article.content_text
        assert "1. Premier alinéa." in article.content_text
        assert article.is_key_unit is True

        assert units[1].content_text == "Premier alinéa."
        assert units[1].paragraph_number == "1"
        assert units[2].letter == "a"
        assert units[2].content_text == "lettre a."
        assert units[3].content_text == "Suite du texte."

    def test_article_count_matches_headers(self):
        text = "\n".join(f"Art. {n}\nContenu de l'article {n}." for n in range(1, 6))
        units = parse(text, "test")
        articles = [u for u in units if u.unit_type == UnitType.ARTICLE]
        assert len(articles) == 5
        assert [a.article_number for a in articles] == ["1", "2", "3", "4", "5"]

    def test_suffixed_article_numbers(self):
        units = parse("Art. 46a\nDéni de justice.\nArt. 12bis\nNouveau texte.", "pa")
        assert [u.cite_key for u in units] == ["art. 46a", "art. 12bis"]

    def test_text_without_headers_yields_nothing(self):
        assert parse("Simple préambule sans article.\nAutre ligne.", "none") == []
        assert parse("", "empty") == []

    def test_header_title(self):
        units = parse("Art. 7 - Dignité humaine\nLa dignité humaine doit être respectée.", "cst")
        assert units[0].title == "Dignité humaine"
        assert units[0].content_text == "La dignité humaine doit être respectée."

    def test_lowercase_reference_is_not_a_header(self):
        text = (
            "Art. 6\n"
            "1. Le mandataire applique les règles suivantes et respecte les délais.\n"
            "art. 5 cité en début de ligne reste dans le corps."
        )
        units = parse(text, "test")
        assert [u.cite_key for u in units if u.unit_type == UnitType.ARTICLE] == ["art. 6"]
        assert "art. 5 cité" in units[0].content_text

    def test_rejects_non_text(self):
        with pytest.raises(ParseError):
            parse(b"Art. 1", "bytes")


class TestParagraphsAndLetters:
    """Sub-unit extraction and filtering."""

    def test_civil_code_sample(self):
        units = parse(CIVIL_CODE_TEXT, "rs_210")
        keys = [u.cite_key for u in units]
        assert keys == [
            "art. 389",
            "art. 389 al. 1",
            "art. 389 al. 1 let. a",
            "art. 389 al. 1 let. b",
            "art. 389 al. 2",
            "art. 406",
            "art. 406 al. 1",
        ]
        paragraph = units[1]
        assert paragraph.content_text == "L'autorité de protection de l'adulte ordonne une mesure lorsque:"
        assert units[2].content_text == "l'appui fourni par les membres de la famille ne suffit pas"

    def test_short_paragraph_dropped(self):
        units = parse("Art. 1\nTexte de l'article.\n1. Court.", "short")
        assert [u.cite_key for u in units] == ["art. 1"]

    def test_short_letter_dropped(self):
        units = parse("Art. 2\n1. Il doit notamment: a) oui; b) rendre compte.", "short")
        assert "art. 2 al. 1 let. a" not in [u.cite_key for u in units]
        assert "art. 2 al. 1 let. b" in [u.cite_key for u in units]

    def test_split_inline_letters(self):
        lead_in, letters = split_letters("Il doit: a) informer la personne; b) rendre compte.")
        assert lead_in == "Il doit:"
        assert letters == [("a", "informer la personne"), ("b", "rendre compte.")]

    def test_split_without_letters(self):
        assert split_letters("Aucune lettre ici.") == ("Aucune lettre ici.", [])

    def test_duplicate_cite_key_keeps_first(self):
        units = parse("Art. 3\nPremière version.\nArt. 3\nSeconde version.", "dup")
        assert len(units) == 1
        assert units[0].content_text == "Première version."

    def test_units_carry_hash_and_keywords(self):
        units = parse(CIVIL_CODE_TEXT, "rs_210")
        for unit in units:
            assert len(unit.hash_sha256) == 64
        assert "curateur" in units[5].keywords


class TestKeywords:
    """Keyword extraction."""

    def test_stopwords_and_short_words_removed(self):
        keywords = extract_keywords("Le curateur doit informer la personne concernée par le mandat.")
        assert "curateur" in keywords
        assert "doit" not in keywords
        assert "le" not in keywords

    def test_frequency_order(self):
        keywords = extract_keywords("mandat curatelle mandat autorité mandat curatelle")
        assert keywords[:3] == ["mandat", "curatelle", "autorité"]

    def test_limit(self):
        text = " ".join(f"terme{n}" for n in range(30))
        assert len(extract_keywords(text)) == 10

"""Tests for text normalization, structural scanning and language detection."""

from pii_engine.preprocessing import (
    detect_frontmatter_end,
    detect_language,
    find_code_spans,
    is_in_spans,
    normalize_text,
)


# -- normalize_text --

def test_fullwidth_characters_become_ascii():
    assert normalize_text("ｊｏｈｎ＠ｅｘａｍｐｌｅ．ｃｏｍ") == "john@example.com"


def test_zero_width_and_dashes():
    assert normalize_text("CH93\u200b0076\ufeff") == "CH930076"
    assert normalize_text("2024\u20130815 \u2212 5") == "2024-0815 - 5"


def test_whitespace_collapsed_but_newlines_kept():
    assert normalize_text("Bahnhofstrasse\t 10\n8001   Zürich") == "Bahnhofstrasse 10\n8001 Zürich"


def test_empty_text():
    assert normalize_text("") == ""


# -- Frontmatter --

def test_frontmatter_end():
    text = "---\ntitle: Rechnung\nauthor: Hans\n---\nBody text"
    end = detect_frontmatter_end(text)
    assert text[end:] == "Body text"


def test_no_frontmatter():
    assert detect_frontmatter_end("Body --- text") == 0
    assert detect_frontmatter_end("---\nnever closed") == 0
    assert detect_frontmatter_end("--- not a delimiter\n---\n") == 0


# -- Code spans --

def test_fenced_and_inline_code():
    text = "Mail `a@b.ch` here\n```\nIBAN CH93\n```\nafter"
    spans = find_code_spans(text)
    assert [text[s:e] for s, e in spans] == ["`a@b.ch`", "```\nIBAN CH93\n```"]


def test_is_in_spans():
    spans = [(5, 10)]
    assert is_in_spans(8, 12, spans)
    assert not is_in_spans(10, 12, spans)
    assert not is_in_spans(0, 5, spans)


# -- Language --

def test_detect_language():
    assert detect_language("Sehr geehrte Frau Meier, die Rechnung ist bezahlt") == "de"
    assert detect_language("Madame, veuillez trouver la facture pour le mois") == "fr"
    assert detect_language("Gentile signora, la fattura è pronta per il pagamento") == "it"
    assert detect_language("Dear customer, please find the invoice attached") == "en"


def test_language_default():
    assert detect_language("12345 67890") == "de"
    assert detect_language("", default="en") == "en"

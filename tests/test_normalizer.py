from __future__ import annotations

from core.normalizer import normalize


def test_folds_accents_and_case() -> None:
    assert normalize("Café CRÈME") == "cafe creme"


def test_drops_punctuation_inside_words() -> None:
    assert normalize("Don't panic!") == "dont panic"


def test_keeps_digits_and_whitespace() -> None:
    assert normalize("Order #42\tshipped") == "order 42\tshipped"


def test_is_idempotent() -> None:
    samples = ["Ünïcödé wörds!!", "  spaced   out ", "ÀÉÎÕÜ 123", "¿Qué pasó?"]
    for sample in samples:
        once = normalize(sample)
        assert normalize(once) == once


def test_empty_and_none_inputs() -> None:
    assert normalize("") == ""
    assert normalize(None) == ""
    assert normalize("!!!") == ""


def test_folding_can_be_disabled() -> None:
    assert normalize("Café", fold_diacritics=False) == "café"


def test_non_latin_letters_survive() -> None:
    assert normalize("Привет, мир!") == "привет мир"

# File: tests/test_g2p.py
"""
Tests for the G2P front ends.
"""

import pytest

from voicebank_aligner.g2p import (
    DictionaryG2P,
    MalformedPhonemeSequenceError,
    PhonemeG2P,
    get_g2p,
)


class TestPhonemeG2P:

    def test_tokens_become_phonemes(self):
        ph_seq, word_seq, ph_idx_to_word_idx = PhonemeG2P().convert("a b")
        assert ph_seq == ["SP", "a", "SP", "b", "SP"]
        assert word_seq == ["a", "b"]
        assert ph_idx_to_word_idx == [-1, 0, -1, 1, -1]

    def test_explicit_silence_tokens_are_dropped(self):
        ph_seq, _, _ = PhonemeG2P().convert("SP a SP SP b")
        assert ph_seq == ["SP", "a", "SP", "b", "SP"]

    def test_language_prefix(self):
        ph_seq, word_seq, _ = PhonemeG2P("zh").convert("a b")
        assert ph_seq == ["SP", "zh/a", "SP", "zh/b", "SP"]
        assert word_seq == ["a", "b"]

    def test_empty_text_is_malformed(self):
        with pytest.raises(MalformedPhonemeSequenceError):
            PhonemeG2P().convert("   ")


class TestDictionaryG2P:

    @pytest.fixture
    def dict_path(self, tmp_path):
        path = tmp_path / "dictionary.txt"
        path.write_text(
            "# word<TAB>phonemes\n"
            "ab\ta b\n"
            "hi\tSP h i SP\n"
            "bad\ta SP SP b\n",
            encoding="utf-8",
        )
        return str(path)

    def test_lookup_and_word_mapping(self, dict_path):
        ph_seq, word_seq, ph_idx_to_word_idx = DictionaryG2P(None, dict_path).convert("ab zz hi")
        assert ph_seq == ["SP", "a", "b", "SP", "h", "i", "SP"]
        assert word_seq == ["ab", "hi"]
        assert ph_idx_to_word_idx == [-1, 0, 0, -1, 1, 1, -1]

    def test_only_unknown_words_is_malformed(self, dict_path):
        with pytest.raises(MalformedPhonemeSequenceError):
            DictionaryG2P(None, dict_path).convert("zz yy")

    def test_consecutive_silence_is_malformed(self, dict_path):
        with pytest.raises(MalformedPhonemeSequenceError):
            DictionaryG2P(None, dict_path).convert("bad")

    def test_missing_dictionary(self, tmp_path):
        with pytest.raises(FileNotFoundError) as exc:
            DictionaryG2P(None, str(tmp_path / "missing.txt"))
        assert str(tmp_path) in str(exc.value)


class TestFactory:

    def test_known_modes(self, tmp_path):
        path = tmp_path / "d.txt"
        path.write_text("a\ta\n", encoding="utf-8")
        assert isinstance(get_g2p("dictionary", dict_path=str(path)), DictionaryG2P)
        assert isinstance(get_g2p("phoneme"), PhonemeG2P)

    def test_unknown_mode(self):
        with pytest.raises(ValueError):
            get_g2p("espeak")

    def test_dictionary_mode_needs_path(self):
        with pytest.raises(ValueError):
            get_g2p("dictionary")

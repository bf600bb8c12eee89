'''
Grapheme-to-phoneme front ends.

Both strategies turn a transcription into (ph_seq, word_seq, ph_idx_to_word_idx)
where every word is framed by the "SP" silence symbol. Silence entries map to
word index -1.
'''

import logging
import os

logger = logging.getLogger(__name__)

SILENCE = "SP"


class MalformedPhonemeSequenceError(ValueError):
    """The phoneme sequence is not framed by single SP symbols."""


class BaseG2P:
    """
    Shared validation and language prefixing.

    Args:
        language: Prefix applied as "{language}/{phoneme}" to every non-SP phoneme,
            or None to keep bare labels.
    """

    def __init__(self, language=None):
        self.language = language

    def _g2p(self, text):
        raise NotImplementedError

    def convert(self, text):
        ph_seq, word_seq, ph_idx_to_word_idx = self._g2p(text)

        if len(ph_seq) < 2 or ph_seq[0] != SILENCE or ph_seq[-1] != SILENCE:
            raise MalformedPhonemeSequenceError(f"The first and last phonemes should be `{SILENCE}`: {ph_seq}")
        for a, b in zip(ph_seq, ph_seq[1:]):
            if a == SILENCE and b == SILENCE:
                raise MalformedPhonemeSequenceError(f"Consecutive `{SILENCE}` symbols in {ph_seq}")

        if self.language is not None:
            ph_seq = [ph if ph == SILENCE else f"{self.language}/{ph}" for ph in ph_seq]
        return ph_seq, word_seq, ph_idx_to_word_idx


class PhonemeG2P(BaseG2P):
    """Each whitespace token is already a phoneme."""

    def _g2p(self, text):
        tokens = [tok for tok in text.split() if tok != SILENCE]
        ph_seq = [SILENCE]
        ph_idx_to_word_idx = [-1]
        for i, tok in enumerate(tokens):
            ph_seq += [tok, SILENCE]
            ph_idx_to_word_idx += [i, -1]
        return ph_seq, tokens, ph_idx_to_word_idx


class DictionaryG2P(BaseG2P):
    """
    Pronunciation-dictionary lookup.

    Args:
        language: Language prefix (see BaseG2P)
        dict_path: Tab separated `word<TAB>ph ph ...` file
    """

    def __init__(self, language, dict_path):
        super().__init__(language)
        if not os.path.isfile(dict_path):
            raise FileNotFoundError(f"{os.path.abspath(dict_path)} does not exist.")
        self.dictionary = load_pronunciation_dictionary(dict_path)

    def _g2p(self, text):
        word_seq = []
        ph_seq = [SILENCE]
        ph_idx_to_word_idx = [-1]

        for word in text.split():
            phones = self.dictionary.get(word)
            if phones is None:
                logger.debug("Skipping out-of-dictionary word %r", word)
                continue
            word_idx = len(word_seq)
            word_seq.append(word)
            last = len(phones) - 1
            for i, ph in enumerate(phones):
                if ph == SILENCE and i in (0, last):
                    continue
                ph_seq.append(ph)
                ph_idx_to_word_idx.append(word_idx)
            if ph_seq[-1] != SILENCE:
                ph_seq.append(SILENCE)
                ph_idx_to_word_idx.append(-1)

        return ph_seq, word_seq, ph_idx_to_word_idx


def load_pronunciation_dictionary(dict_path):
    entries = {}
    with open(dict_path, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            parts = line.split("\t", 1)
            if len(parts) != 2:
                continue
            entries[parts[0].strip()] = parts[1].split()
    return entries


G2P_MODES = ("dictionary", "phoneme")


def get_g2p(mode, language=None, dict_path=None):
    """Build the G2P strategy named by `mode` ("dictionary" or "phoneme")."""
    if mode == "dictionary":
        if dict_path is None:
            raise ValueError("g2p 'dictionary' requires a dictionary path")
        return DictionaryG2P(language, dict_path)
    if mode == "phoneme":
        return PhonemeG2P(language)
    raise ValueError(f"g2p - {mode} is not supported, which should be 'dictionary' or 'phoneme'.")

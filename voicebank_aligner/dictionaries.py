'''
Lookup tables for the oto conversion.

DsDictionary maps phone sequences back to lyric words; PresampMappings gives the
vowel and consonant category of each phone.
'''

import os
from dataclasses import dataclass, field
from typing import Dict, Set, Tuple


def _require_file(path):
    if not os.path.isfile(path):
        raise FileNotFoundError(f"{os.path.abspath(path)} does not exist")


@dataclass
class DsDictionary:
    valid_phones: Set[str] = field(default_factory=set)
    sequence_to_word: Dict[Tuple[str, ...], str] = field(default_factory=dict)
    max_sequence_length: int = 0

    @classmethod
    def load(cls, path):
        """Whitespace separated `word ph ph ...` lines; `#` starts a comment line."""
        _require_file(path)
        table = cls()
        with open(path, "r", encoding="utf-8-sig") as f:
            for line in f:
                line = line.strip()
                if not line or line.startswith("#"):
                    continue
                parts = line.split()
                if len(parts) < 2:
                    continue
                table.add(parts[0], parts[1:])
        return table

    def add(self, word, phones):
        key = tuple(phones)
        self.sequence_to_word[key] = word
        self.valid_phones.update(key)
        self.max_sequence_length = max(self.max_sequence_length, len(key))

    def lookup(self, phones):
        return self.sequence_to_word.get(tuple(phones))


@dataclass
class PresampMappings:
    """
    Vowel/consonant categories from a presamp.ini.

    cv_v: phone -> vowel grapheme ([VOWEL] section)
    cv_c: phone -> consonant grapheme ([CONSONANT] section)
    vv: phones that have a vowel but no consonant (vowel-only units)
    """
    cv_v: Dict[str, str] = field(default_factory=dict)
    cv_c: Dict[str, str] = field(default_factory=dict)

    @property
    def vv(self):
        return {ph for ph in self.cv_v if ph not in self.cv_c}

    @classmethod
    def load(cls, path):
        _require_file(path)
        mappings = cls()
        section = None
        with open(path, "r", encoding="utf-8-sig") as f:
            for line in f:
                line = line.strip()
                if not line or line.startswith(";"):
                    continue
                if line.startswith("[") and line.endswith("]"):
                    section = line[1:-1].strip().upper()
                    continue

                parts = [p.strip() for p in line.split("=")]
                if section == "VOWEL" and len(parts) >= 3:
                    for ph in _csv(parts[2]):
                        mappings.cv_v[ph] = parts[0]
                elif section == "CONSONANT" and len(parts) >= 2:
                    for ph in _csv(parts[1]):
                        mappings.cv_c[ph] = parts[0]
        return mappings


def _csv(text):
    return [tok.strip() for tok in text.split(",") if tok.strip()]

'''
Interval data model for aligned speech.

Phonemes and words are half-open time spans in seconds. A WordList keeps its
words ordered and non-overlapping; every operation that can refuse an edit
returns the refusal as a diagnostic message instead of raising, so a single bad
interval never aborts a whole recording.
'''

import logging
from dataclasses import dataclass, field
from typing import Generic, List, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

CONTIGUITY_TOL = 1e-9


class IntervalError(ValueError):
    """Raised when an interval is constructed with start >= end."""


@dataclass
class Diagnosed(Generic[T]):
    """A value plus the non-fatal warnings produced while computing it."""
    value: T
    diagnostics: List[str] = field(default_factory=list)


def _warn(diagnostics, message):
    logger.warning(message)
    diagnostics.append("WARNING: " + message)


class Phoneme:
    """A labelled span. Negative starts are clamped to zero."""

    __slots__ = ("start", "end", "text")

    def __init__(self, start, end, text):
        self.start = max(0.0, float(start))
        self.end = float(end)
        self.text = text
        if not self.start < self.end:
            raise IntervalError(f"Phoneme invalid: text={text} start={self.start}, end={self.end}")

    @property
    def duration(self):
        return self.end - self.start

    def __repr__(self):
        return f"Phoneme({self.start:.4f}, {self.end:.4f}, {self.text!r})"


class Word:
    """
    A labelled span holding an ordered run of phonemes.

    Args:
        start: Start time in seconds (clamped to >= 0)
        end: End time in seconds
        text: Word label
        init_phoneme: Seed the word with one phoneme covering the whole span
    """

    def __init__(self, start, end, text, init_phoneme=False):
        self.start = max(0.0, float(start))
        self.end = float(end)
        self.text = text
        self.phonemes: List[Phoneme] = []
        if not self.start < self.end:
            raise IntervalError(f"Word invalid: text={text} start={self.start}, end={self.end}")
        if init_phoneme:
            self.phonemes.append(Phoneme(self.start, self.end, text))

    @classmethod
    def single(cls, start, end, text):
        return cls(start, end, text, init_phoneme=True)

    @property
    def duration(self):
        return self.end - self.start

    def add_phoneme(self, phoneme):
        """Add a phoneme that lies fully inside the word bounds."""
        diagnostics = []
        if phoneme.start == phoneme.end:
            _warn(diagnostics, f"{phoneme.text}: zero-length phoneme rejected")
        elif phoneme.start >= self.start and phoneme.end <= self.end:
            self.phonemes.append(phoneme)
        else:
            _warn(diagnostics, f"{phoneme.text}: phoneme lies outside word {self.text!r}")
        return diagnostics

    def append_phoneme(self, phoneme):
        """Append a phoneme contiguous with the current last phoneme and extend the word."""
        diagnostics = []
        if phoneme.start == phoneme.end:
            _warn(diagnostics, f"{phoneme.text}: zero-length phoneme rejected")
            return diagnostics

        anchor = self.phonemes[-1].end if self.phonemes else self.start
        if abs(phoneme.start - anchor) < CONTIGUITY_TOL:
            self.phonemes.append(phoneme)
            self.end = phoneme.end
        elif self.phonemes:
            _warn(diagnostics, f"{phoneme.text}: phoneme is not contiguous with {self.phonemes[-1].text}")
        else:
            _warn(diagnostics, f"{phoneme.text}: first phoneme does not start at word start")
        return diagnostics

    def move_start(self, new_start):
        diagnostics = []
        if 0 <= new_start < self.phonemes[0].end:
            self.start = new_start
            self.phonemes[0].start = new_start
        else:
            _warn(diagnostics, f"{self.text}: start {new_start} >= first phoneme end, boundary kept")
        return diagnostics

    def move_end(self, new_end):
        diagnostics = []
        if new_end > self.phonemes[-1].start >= 0:
            self.end = new_end
            self.phonemes[-1].end = new_end
        else:
            _warn(diagnostics, f"{self.text}: end {new_end} <= last phoneme start, boundary kept")
        return diagnostics

    def __repr__(self):
        return f"Word({self.start:.4f}, {self.end:.4f}, {self.text!r}, {self.phonemes!r})"


def subtract_interval(raw, remove):
    """Return the parts of `raw` (start, end) not covered by `remove` (0, 1 or 2 spans)."""
    raw_start, raw_end = raw
    rem_start, rem_end = remove
    if not raw_start < raw_end:
        raise IntervalError("raw interval start must be smaller than its end")
    if not rem_start < rem_end:
        raise IntervalError("removed interval start must be smaller than its end")

    overlap_start = max(raw_start, rem_start)
    overlap_end = min(raw_end, rem_end)
    if overlap_start >= overlap_end:
        return [raw]

    pieces = []
    if raw_start < overlap_start:
        pieces.append((raw_start, overlap_start))
    if overlap_end < raw_end:
        pieces.append((overlap_end, raw_end))
    return pieces


class WordList:
    """Ordered, non-overlapping sequence of words."""

    def __init__(self, words=None):
        self._words: List[Word] = []
        if words:
            for word in words:
                self.insert_if_non_overlapping(word)

    def __len__(self):
        return len(self._words)

    def __iter__(self):
        return iter(self._words)

    def __getitem__(self, index):
        return self._words[index]

    def __bool__(self):
        return bool(self._words)

    def __repr__(self):
        return f"WordList({self._words!r})"

    @property
    def phonemes(self):
        """Flat list of phoneme labels."""
        return [ph.text for word in self._words for ph in word.phonemes]

    @property
    def phoneme_list(self):
        return [ph for word in self._words for ph in word.phonemes]

    def _overlapping(self, new_word):
        return [w for w in self._words if not (new_word.end <= w.start or new_word.start >= w.end)]

    def insert_if_non_overlapping(self, word):
        """Append a word unless it has no phonemes or overlaps an existing word."""
        diagnostics = []
        if not word.phonemes:
            _warn(diagnostics, f"{word.text}: word has no phonemes")
        elif self._words and self._overlapping(word):
            _warn(diagnostics, f"{word.text}: overlaps an existing word [{word.start}, {word.end}]")
        else:
            self._words.append(word)
        return diagnostics

    def replace_all(self, words):
        self._words = list(words)

    def sort_by_start(self):
        self._words.sort(key=lambda w: w.start)

    def merge_non_lexical(self, new_word, min_dur=0.1):
        """
        Merge a non-lexical event (breath etc.) into the list.

        The event span minus every existing word span is inserted as standalone
        single-phoneme words; fragments shorter than `min_dur` are dropped.
        """
        diagnostics = []
        if not new_word.phonemes:
            _warn(diagnostics, f"{new_word.text}: word has no phonemes")
            return diagnostics

        if not self._words or not self._overlapping(new_word):
            diagnostics += self.insert_if_non_overlapping(new_word)
            self.sort_by_start()
            return diagnostics

        spans = [(new_word.start, new_word.end)]
        for word in self._words:
            spans = [piece for span in spans for piece in subtract_interval(span, (word.start, word.end))]

        for start, end in spans:
            if end - start < min_dur:
                continue
            diagnostics += self.insert_if_non_overlapping(Word.single(start, end, new_word.text))
        self.sort_by_start()
        return diagnostics

    def fill_small_gaps(self, wav_length, gap_length=0.1):
        """Close gaps of at most `gap_length` seconds by stretching the neighbouring word."""
        diagnostics = []
        if not self._words:
            return diagnostics

        first = self._words[0]
        if first.start < 0:
            first.start = 0.0
        if 0 < first.start < gap_length < first.duration:
            diagnostics += first.move_start(0.0)

        last = self._words[-1]
        if last.end >= wav_length - gap_length:
            diagnostics += last.move_end(wav_length)

        for prev, word in zip(self._words, self._words[1:]):
            gap = word.start - prev.end
            if 0 < gap <= gap_length:
                diagnostics += prev.move_end(word.start)
        return diagnostics

    def with_silences(self, wav_length, label="SP"):
        """Return a new list covering [0, wav_length] with `label` words in every gap."""
        diagnostics = []
        result = WordList()
        def fill(start, end):
            try:
                diagnostics.extend(result.insert_if_non_overlapping(Word.single(start, end, label)))
            except IntervalError as e:
                logger.warning(str(e))
                diagnostics.append("ERROR: " + str(e))

        if not self._words:
            if wav_length > 0:
                fill(0.0, wav_length)
            return Diagnosed(result, diagnostics)

        if self._words[0].start > 0:
            fill(0.0, self._words[0].start)
        diagnostics += result.insert_if_non_overlapping(self._words[0])
        for word in self._words[1:]:
            if result and word.start > result[-1].end:
                fill(result[-1].end, word.start)
            diagnostics += result.insert_if_non_overlapping(word)
        if self._words[-1].end < wav_length:
            fill(self._words[-1].end, wav_length)
        return Diagnosed(result, diagnostics)

    def clear_language_prefix(self):
        """Strip `lang/` prefixes from every phoneme label."""
        for ph in self.phoneme_list:
            ph.text = ph.text.split("/")[-1]

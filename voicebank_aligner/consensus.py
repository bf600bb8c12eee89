'''
Multi-pass consensus.

The same recording is decoded several times with different amounts of leading
silence. Passes that agree on the phoneme sequence form the majority group and
their boundaries are combined per position with a median/MAD outlier filter.
'''

import logging
from collections import Counter

import numpy as np

from .words import Diagnosed, Phoneme, Word, WordList

logger = logging.getLogger(__name__)

MAD_SCALE = 1.4826
MIN_PHONEME_DURATION = 1e-4


class ConsensusError(ValueError):
    """No two padded passes agreed on the phoneme sequence."""


def pad_lengths(pad_times, pad_length):
    """Left-padding durations in seconds, one per pass."""
    if pad_times > 1:
        return [round(pad_length / pad_times * i, 1) for i in range(pad_times)]
    return [0.0]


def robust_average(values, threshold=1.5):
    """
    Mean of the values whose modified z-score is within `threshold`.

    Falls back to the median when the MAD is zero or nothing survives.
    """
    data = np.asarray(values, dtype=np.float64)
    if data.size == 0:
        return 0.0
    median = float(np.median(data))
    mad = float(np.median(np.abs(data - median)))
    if mad == 0:
        return median
    z = np.abs(data - median) / (mad * MAD_SCALE)
    kept = data[z <= threshold]
    if kept.size == 0:
        return median
    return float(kept.mean())


def find_majority_group(phoneme_lists):
    """
    Indices of the passes in the largest group of identical phoneme sequences.

    Ties go to the group whose joined text is longer. Raises ConsensusError
    when no sequence occurs at least twice.
    """
    if len(phoneme_lists) == 1:
        return [0]

    keys = [tuple(phs) for phs in phoneme_lists]
    counts = Counter(keys)
    groups = [(key, n) for key, n in counts.items() if n > 1]
    if not groups:
        raise ConsensusError(f"No majority among {len(phoneme_lists)} padded passes")

    groups.sort(key=lambda item: (-item[1], -len("".join(item[0]))))
    winner = groups[0][0]
    return [i for i, key in enumerate(keys) if key == winner]


def merge_consensus(word_lists):
    """Combine structurally identical word lists into one with robust boundaries."""
    reference = word_lists[0]
    for other in word_lists[1:]:
        if len(other) != len(reference) or any(
                len(a.phonemes) != len(b.phonemes) for a, b in zip(reference, other)):
            raise ConsensusError("Padded passes disagree on word structure")

    diagnostics = []
    merged = WordList()
    previous_end = 0.0
    for w_idx, ref_word in enumerate(reference):
        phonemes = []
        for p_idx, ref_ph in enumerate(ref_word.phonemes):
            start = robust_average([words[w_idx].phonemes[p_idx].start for words in word_lists])
            end = robust_average([words[w_idx].phonemes[p_idx].end for words in word_lists])
            start = max(start, previous_end)
            end = max(start + MIN_PHONEME_DURATION, end)
            phonemes.append(Phoneme(start, end, ref_ph.text))
            previous_end = end

        word = Word(phonemes[0].start, phonemes[-1].end, ref_word.text)
        for ph in phonemes:
            diagnostics += word.append_phoneme(ph)
        diagnostics += merged.insert_if_non_overlapping(word)
    return Diagnosed(merged, diagnostics)


def assemble(word_lists, wav_length, gap_length=0.1, silence="SP"):
    """
    Majority vote, robust merge, gap filling and silence insertion.

    Returns:
        Diagnosed[WordList] spanning [0, wav_length]
    """
    keep = find_majority_group([words.phonemes for words in word_lists])
    if len(keep) < len(word_lists):
        logger.info("Kept %d of %d padded passes", len(keep), len(word_lists))
    result = merge_consensus([word_lists[i] for i in keep])
    words, diagnostics = result.value, result.diagnostics
    diagnostics += words.fill_small_gaps(wav_length, gap_length)
    filled = words.with_silences(wav_length, silence)
    return Diagnosed(filled.value, diagnostics + filled.diagnostics)

# tests/__init__.py
"""
Test suite for Voicebank Forced Aligner.

Shared helpers build tiny model folders and synthetic logits so that no model
download or ONNX runtime session is needed.
"""

import json
import os

import numpy as np

from voicebank_aligner.onnx_model import extract_logits
from voicebank_aligner.words import Phoneme, Word, WordList

# Test configuration
TEST_CONFIG = {
    "sample_rate": 1000,
    "hop_size": 10,
    "vocab": {"SP": 0, "a": 1, "b": 2},
    "non_lexical_phonemes": ["AP"],
    "language": "zh",
}

# 50 frames of 10 ms: SP, a, b, SP
FRAME_SCHEDULE = [0] * 12 + [1] * 8 + [2] * 5 + [0] * 25
EDGE_FRAMES = (12, 20, 25)


def create_model_folder(root, vocab=None, dictionaries=None, dictionary_text="ab\ta b\n",
                        version="5", language_prefix=None, non_lexical_phonemes=None):
    """Write vocab.json, config.json, VERSION and a dictionary into `root`."""
    os.makedirs(root, exist_ok=True)
    if dictionaries is None:
        dictionaries = {TEST_CONFIG["language"]: "dictionary.txt"}
    vocab_data = {
        "vocab": vocab or TEST_CONFIG["vocab"],
        "non_lexical_phonemes": non_lexical_phonemes or TEST_CONFIG["non_lexical_phonemes"],
        "dictionaries": dictionaries,
    }
    if language_prefix is not None:
        vocab_data["language_prefix"] = language_prefix
    with open(os.path.join(root, "vocab.json"), "w", encoding="utf-8") as f:
        json.dump(vocab_data, f)
    with open(os.path.join(root, "config.json"), "w", encoding="utf-8") as f:
        json.dump({"mel_spec_config": {"sample_rate": TEST_CONFIG["sample_rate"],
                                       "hop_size": TEST_CONFIG["hop_size"]}}, f)
    with open(os.path.join(root, "VERSION"), "w", encoding="utf-8") as f:
        f.write(version + "\n")
    for name in dictionaries.values():
        with open(os.path.join(root, name), "w", encoding="utf-8") as f:
            f.write(dictionary_text)
    return str(root)


def create_frame_logits(schedule=FRAME_SCHEDULE, edges=EDGE_FRAMES, vocab_size=3,
                        high=10.0, edge_on=3.0, edge_off=-6.0):
    """Class logits peaking on `schedule` and edge logits firing at `edges`."""
    num_frames = len(schedule)
    ph_frame_logits = np.zeros((vocab_size, num_frames), dtype=np.float32)
    ph_frame_logits[schedule, np.arange(num_frames)] = high
    ph_edge_logits = np.full(num_frames, edge_off, dtype=np.float32)
    ph_edge_logits[list(edges)] = edge_on
    return ph_frame_logits, ph_edge_logits


def create_cvnt_logits(num_frames=50, events=(), num_classes=2):
    """Non-lexical logits where "None" dominates except inside `events` (class, start, end)."""
    cvnt = np.zeros((num_classes, num_frames), dtype=np.float32)
    cvnt[0] = 5.0
    for cls, start, end in events:
        cvnt[cls, start:end] = 10.0
    return cvnt


class FakeFrameModel:
    """
    Stand-in for FrameLogitModel.

    Prepends `padded_frames` silent frames to the stored logits, then goes
    through extract_logits exactly like the ONNX session output does.
    `events_by_pad` optionally overrides the non-lexical events per pass.
    """

    def __init__(self, ph_frame_logits=None, ph_edge_logits=None, cvnt_logits=None, events_by_pad=None):
        if ph_frame_logits is None:
            ph_frame_logits, ph_edge_logits = create_frame_logits()
        self.ph_frame_logits = ph_frame_logits
        self.ph_edge_logits = ph_edge_logits
        self.cvnt_logits = cvnt_logits if cvnt_logits is not None else create_cvnt_logits(ph_frame_logits.shape[1])
        self.events_by_pad = events_by_pad or {}
        self.calls = []

    def __call__(self, waveform, padded_frames=0):
        self.calls.append(padded_frames)
        num_frames = self.ph_frame_logits.shape[1]
        cvnt = self.cvnt_logits
        if padded_frames in self.events_by_pad:
            cvnt = create_cvnt_logits(num_frames, self.events_by_pad[padded_frames], cvnt.shape[0])

        def pad(array):
            zeros = np.zeros(array.shape[:-1] + (padded_frames,), dtype=np.float32)
            return np.concatenate([zeros, array], axis=-1)[None]

        return extract_logits({
            "ph_frame_logits": pad(self.ph_frame_logits),
            "ph_edge_logits": pad(self.ph_edge_logits),
            "cvnt_logits": pad(cvnt),
        }, padded_frames)


def create_word(start, end, text, phonemes=None):
    """Word with explicit phonemes [(start, end, text)]; defaults to one covering phoneme."""
    if phonemes is None:
        return Word.single(start, end, text)
    word = Word(start, end, text)
    for ph_start, ph_end, ph_text in phonemes:
        word.add_phoneme(Phoneme(ph_start, ph_end, ph_text))
    return word


def create_word_list(*words):
    return WordList(list(words))

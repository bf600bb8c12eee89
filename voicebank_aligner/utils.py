'''
TextGrid reading/writing and audio loading helpers.
'''

import os
import re
from dataclasses import dataclass, field
from typing import List

import torch
import torchaudio


def format_number(value):
    """Up to 8 decimals, trailing zeros removed, period separator."""
    text = f"{value:.8f}".rstrip("0").rstrip(".")
    return "0" if text in ("-0", "") else text


def _quote(text):
    return '"' + text.replace('"', '""') + '"'


def _unquote(text):
    return text.replace('""', '"')


def _tier_lines(tier_num, name, xmax, intervals):
    lines = [
        f"    item [{tier_num}]:",
        '        class = "IntervalTier"',
        f'        name = {_quote(name)}',
        '        xmin = 0',
        f'        xmax = {format_number(xmax)}',
        f'        intervals: size = {len(intervals)}',
    ]
    for i, (start, end, text) in enumerate(intervals, 1):
        lines.append(f'        intervals [{i}]:')
        lines.append(f'            xmin = {format_number(start)}')
        lines.append(f'            xmax = {format_number(end)}')
        lines.append(f'            text = {_quote(text)}')
    return lines


def words_to_textgrid(words, wav_length, output_file=None):
    """
    Convert a WordList to Praat TextGrid text with a "words" and a "phones" tier.

    Args:
        words: WordList covering [0, wav_length]
        wav_length: Recording length in seconds
        output_file (str, optional): Output file path. If None, returns string.

    Returns:
        str: TextGrid content if output_file is None, otherwise writes to file
    """
    word_intervals = [(w.start, w.end, w.text) for w in words]
    phone_intervals = [(p.start, p.end, p.text) for p in words.phoneme_list]

    content = [
        'File type = "ooTextFile"',
        'Object class = "TextGrid"',
        '',
        'xmin = 0',
        f'xmax = {format_number(wav_length)}',
        'tiers? <exists>',
        'size = 2',
        'item []:',
    ]
    for tier_num, (name, intervals) in enumerate((("words", word_intervals), ("phones", phone_intervals)), 1):
        content.extend(_tier_lines(tier_num, name, wav_length, intervals))

    textgrid = "\n".join(content) + "\n"
    if output_file is None:
        return textgrid
    with open(output_file, "w", encoding="utf-8") as f:
        f.write(textgrid)
    return output_file


@dataclass(frozen=True)
class PhoneInterval:
    """A phone (or merged word) span; `middle` marks the consonant/vowel split."""
    xmin: float
    xmax: float
    middle: float
    text: str


@dataclass
class ParsedTextGrid:
    wav_file_name: str
    wav_start: float
    wav_end: float
    phones: List[PhoneInterval] = field(default_factory=list)


_GLOBAL_X = re.compile(r"(?:\bxmin\b|\bxmax\b)\s*=\s*(\d+(?:\.\d+)?)")
_PHONES_TIER = re.compile(r'name\s*=\s*"phones"')
_INTERVAL = re.compile(
    r'intervals\s*\[(\d+)\]\s*:\s*xmin\s*=\s*([\d.]+)\s*xmax\s*=\s*([\d.]+)\s*text\s*=\s*"((?:[^"]|"")*)"',
    re.DOTALL,
)


def read_text_with_bom(path):
    with open(path, "rb") as f:
        data = f.read()
    if data[:2] in (b"\xff\xfe", b"\xfe\xff"):
        return data.decode("utf-16")
    return data.decode("utf-8-sig")


def parse_textgrid(path):
    """
    Read the "phones" tier of a TextGrid.

    The global xmin/xmax are the first two time values in the file; each
    phone's middle starts out equal to its xmin.
    """
    content = read_text_with_bom(path)

    bounds = [float(m.group(1)) for m in _GLOBAL_X.finditer(content)]
    wav_start = bounds[0] if len(bounds) >= 1 else 0.0
    wav_end = bounds[1] if len(bounds) >= 2 else 0.0

    tier = _PHONES_TIER.search(content)
    body = content[tier.start():] if tier else content

    intervals = []
    for m in _INTERVAL.finditer(body):
        xmin, xmax = float(m.group(2)), float(m.group(3))
        intervals.append((int(m.group(1)), PhoneInterval(xmin, xmax, xmin, _unquote(m.group(4)))))
    intervals.sort(key=lambda item: item[0])

    wav_name = re.sub(r"\.textgrid", ".wav", os.path.basename(path), flags=re.IGNORECASE)
    return ParsedTextGrid(wav_name, wav_start, wav_end, [phone for _, phone in intervals])


def load_audio(audio_path, sample_rate):
    """Load an audio file as a mono float tensor [N] at `sample_rate`."""
    wav, sr = torchaudio.load(audio_path, normalize=True)
    if wav.shape[1] == 0:
        raise ValueError(f"Audio data is empty: {audio_path}")
    wav = wav.mean(dim=0)
    if sr != sample_rate:
        resampler = torchaudio.transforms.Resample(
            orig_freq=sr,
            new_freq=sample_rate,
            lowpass_filter_width=64,
            rolloff=0.9475937167399596,
            resampling_method="sinc_interp_kaiser",
            beta=14.769656459379492,
        )
        wav = resampler(wav.unsqueeze(0)).squeeze(0)
    return wav.to(torch.float32)

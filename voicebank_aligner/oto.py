'''
TextGrid to oto.ini conversion.

Every synthesizable unit gets five cues in milliseconds: left (offset from the
start of the wav), fixed (unstretched region), right (cutoff, stored negative
so it is measured from the left cue), preutterance and overlap. The raw values
come from the segmented phone intervals scaled by five per-family divisors;
post-processing rounds them, numbers repeated aliases and applies a global
offset.
'''

import enum
import logging
import os
from dataclasses import dataclass, replace

from .config import load_oto_config
from .dictionaries import DsDictionary, PresampMappings
from .segmenter import REST, filter_phones, phones_to_words
from .utils import format_number, parse_textgrid

logger = logging.getLogger(__name__)

EPSILON_MS = 20.0


class OtoMode(enum.IntEnum):
    CVVC = 0
    VCV = 1
    CVV = 2


@dataclass
class RawOtoEntry:
    """Unrounded cues as produced by the generators."""
    wav_file: str
    alias: str
    left: float
    fixed: float
    right: float
    prevoice: float
    overlap: float

    def to_line(self):
        cues = (self.left, self.fixed, self.right, self.prevoice, self.overlap)
        return f"{self.wav_file}={self.alias}," + ",".join(format_number(c) for c in cues) + "\n"


@dataclass(frozen=True)
class OtoEntry:
    wav_file: str
    alias: str
    left: int
    fixed: int
    right: int
    prevoice: int
    overlap: int

    def to_line(self, pitch=""):
        return (f"{self.wav_file}={self.alias}{pitch},"
                f"{self.left},{self.fixed},{self.right},{self.prevoice},{self.overlap}\n")


def _div(value, divisor):
    # a zero stretch divisor means "do not stretch"
    return value / divisor if divisor else value


def _separate(prevoice, right):
    """Keep preutterance and right cutoff apart by EPSILON_MS."""
    if abs(prevoice - right) < 1e-9:
        if prevoice <= EPSILON_MS:
            right += EPSILON_MS
        else:
            prevoice -= EPSILON_MS
    return prevoice, right


def _onset_unit(wav, alias, ph, s, fixed_from_right=False, isolated=False):
    """Unit cut from the start of `ph` (silence-prefixed or standalone CV)."""
    left = _div(ph.xmin * 1000, s[0])
    head = (ph.middle - ph.xmin) * 1000
    tail = (ph.xmax - ph.middle) * 1000
    prevoice = _div(head, s[3])
    if isolated and s[3] != 1:
        left += head - prevoice
    right = _div(tail, s[2]) + prevoice
    prevoice, right = _separate(prevoice, right)
    if s[1] == 0:
        fixed = prevoice
    elif fixed_from_right:
        fixed = prevoice + (right - prevoice) / s[1]
    else:
        fixed = tail / s[1] + prevoice
    return RawOtoEntry(wav, alias, left, fixed, -right, prevoice, _div(prevoice, s[4]))


def _transition_left(ph, s):
    return ph.middle * 1000 + _div((ph.xmax - ph.middle) * 1000, s[0])


def _vowel_tail_unit(wav, alias, cur, nxt, s, overlap_from_left=True):
    """Unit spanning the tail of `cur` into the vowel (or rest) `nxt`."""
    left = _transition_left(cur, s)
    prevoice = _div(nxt.middle * 1000 - left, s[3])
    tail = (nxt.xmax - nxt.middle) * 1000
    right = _div(tail, s[2]) + prevoice
    prevoice, right = _separate(prevoice, right)
    fixed = prevoice if s[1] == 0 else prevoice + tail / s[1]
    if overlap_from_left:
        overlap = _div(cur.xmax * 1000 - left, s[4])
    else:
        overlap = _div((cur.xmax - cur.middle) * 1000, s[4])
    return RawOtoEntry(wav, alias, left, fixed, -right, prevoice, overlap)


def _consonant_unit(wav, alias, cur, nxt, s):
    """Vowel tail of `cur` into the consonant head of `nxt`."""
    left = _transition_left(cur, s)
    prevoice = _div(nxt.xmin * 1000 - left, s[3])
    head = (nxt.middle - nxt.xmin) * 1000
    right = _div(head, s[2]) + prevoice
    prevoice, right = _separate(prevoice, right)
    fixed = prevoice if s[1] == 0 else prevoice + head / s[1]
    overlap = _div(cur.xmax * 1000 - left, s[4])
    return RawOtoEntry(wav, alias, left, fixed, -right, prevoice, overlap)


def generate_cvvc_cv(wav, phones, s, ignore):
    entries = []
    i = 0
    while i < len(phones):
        cur = phones[i]
        has_next = i + 1 < len(phones)
        if has_next and cur.text in ignore and phones[i + 1].text in ignore:
            i += 1
            continue
        if has_next and cur.text in ignore:
            nxt = phones[i + 1]
            entries.append(_onset_unit(wav, f"- {nxt.text}", nxt, s))
            i += 2
            continue
        if cur.text not in ignore:
            entries.append(_onset_unit(wav, cur.text, cur, s, isolated=True))
        i += 1
    return entries


def generate_cvvc_vc(wav, phones, presamp, vc_sum, vv_sum, ignore):
    entries = []
    vv = presamp.vv
    for cur, nxt in zip(phones, phones[1:]):
        if cur.text in ("R", "-"):
            continue
        vowel = presamp.cv_v.get(cur.text)
        if vowel is None:
            continue
        if nxt.text in ignore:
            entries.append(_vowel_tail_unit(wav, f"{vowel} {nxt.text}", cur, nxt, vc_sum))
        elif nxt.text in vv:
            entries.append(_vowel_tail_unit(wav, f"{vowel} {nxt.text}", cur, nxt, vv_sum))
        elif nxt.text in presamp.cv_c:
            consonant = presamp.cv_c[nxt.text]
            entries.append(_consonant_unit(wav, f"{vowel} {consonant}", cur, nxt, vc_sum))
    return entries


def generate_vcv_cv(wav, phones, s, ignore):
    entries = []
    i = 0
    while i < len(phones) - 1:
        cur, nxt = phones[i], phones[i + 1]
        if cur.text in ignore and nxt.text not in ignore:
            entries.append(_onset_unit(wav, f"- {nxt.text}", nxt, s, fixed_from_right=True))
            i += 2
        else:
            i += 1
    return entries


def generate_vcv_vc(wav, phones, presamp, s, ignore):
    entries = []
    cv_v = dict(presamp.cv_v)
    cv_v[REST] = REST
    for cur, nxt in zip(phones, phones[1:]):
        if cur.text in ignore:
            continue
        vowel = cv_v.get(cur.text)
        if vowel is None:
            continue
        if nxt.text in ignore or nxt.text in cv_v:
            entries.append(_vowel_tail_unit(wav, f"{vowel} {nxt.text}", cur, nxt, s, overlap_from_left=False))
    return entries


def generate_cvv_cv(wav, phones, s, ignore):
    entries = []
    if not phones:
        return entries
    last = phones[-1]
    if last.text not in ignore:
        entries.append(_onset_unit(wav, last.text, last, s, fixed_from_right=True))

    i = 0
    while i < len(phones) - 1:
        cur = phones[i]
        if cur.text in ignore:
            nxt = phones[i + 1]
            entries.append(_onset_unit(wav, nxt.text, nxt, s, fixed_from_right=True))
            i += 2
        else:
            entries.append(_onset_unit(wav, cur.text, cur, s, fixed_from_right=True))
            i += 1
    return entries


def apply_cvv_v_cross(entries, vv, cross_sum):
    """Vowel-only CVV units overlap by fixed / cross_sum."""
    if cross_sum == 0:
        return list(entries)
    return [replace(e, overlap=e.fixed / cross_sum) if e.alias in vv else e for e in entries]


def generate_cvv_vc(wav, phones, cv_v, s, ignore):
    entries = []
    for cur in phones[:-1]:
        if cur.text in ignore:
            continue
        vowel = cv_v.get(cur.text)
        if vowel is None:
            continue
        left = _transition_left(cur, s)
        prevoice = _div(cur.xmax * 1000 - left, s[3])
        right = prevoice + 50
        fixed = prevoice if s[1] == 0 else prevoice + (right - prevoice) / s[1]
        overlap = _div((cur.xmax - cur.middle) * 1000, s[4])
        entries.append(RawOtoEntry(wav, f"{vowel} R", left, fixed, -right, prevoice, overlap))

        span = cur.xmax * 1000 - left
        prevoice = span / 4
        fixed = (span - prevoice) / 4 + prevoice
        entries.append(RawOtoEntry(wav, f"_{vowel}", left, fixed, -span, prevoice, prevoice / 2))
    return entries


def round_ms(value):
    """Round half to even after trimming to the 8 decimals the raw files keep."""
    return int(round(round(value, 8)))


def to_entries(raw_entries):
    return [
        OtoEntry(e.wav_file, e.alias, round_ms(e.left), round_ms(e.fixed), round_ms(e.right),
                 round_ms(e.prevoice), round_ms(e.overlap))
        for e in raw_entries
    ]


def apply_repeat(entries, repeat):
    """
    Keep the first occurrence of each alias; later ones get `_n` suffixes while
    the running count stays below `repeat`, and are dropped after that.
    """
    counts = {}
    result = []
    for e in entries:
        count = counts.get(e.alias)
        if count is None:
            counts[e.alias] = 1
            result.append(e)
            continue
        if count < repeat:
            result.append(replace(e, alias=f"{e.alias}_{count}"))
        counts[e.alias] = count + 1
    return result


def is_zero_offset(offset):
    return len(offset) < 5 or all(abs(v) <= 1e-9 for v in offset[:5])


def apply_offset(entries, offset):
    """
    Shift every cue by `offset` = (left, fixed, right, prevoice, overlap) while
    keeping left >= 0, overlap >= 0, prevoice >= 0, fixed >= prevoice and
    |right| >= fixed.
    """
    result = []
    for e in entries:
        left_sum = e.left + offset[0]
        fixed_sum = e.fixed + offset[1]
        right_sum = -e.right + offset[2]
        prevoice_sum = e.prevoice + offset[3]
        overlap_sum = e.overlap + offset[4]

        left = round_ms(left_sum) if left_sum >= 0 else e.left
        overlap = round_ms(overlap_sum) if overlap_sum >= 0 else 20
        prevoice = round_ms(prevoice_sum) if prevoice_sum >= 0 else e.prevoice
        fixed = round_ms(fixed_sum) if fixed_sum >= prevoice else prevoice
        right = -round_ms(right_sum) if right_sum >= fixed else -(fixed + 10)

        result.append(replace(e, left=left, fixed=fixed, right=right, prevoice=prevoice, overlap=overlap))
    return result


def unique_path(path):
    """`path` if free, else the first free `name_NN.ext`."""
    if not os.path.exists(path):
        return path
    root, ext = os.path.splitext(path)
    for i in range(1, 100):
        candidate = f"{root}_{i:02d}{ext}"
        if not os.path.exists(candidate):
            return candidate
    return path


def _output_path(path, cover):
    return path if cover.strip().upper() == "Y" else unique_path(path)


def write_raw_oto(path, raw_entries, cover="Y"):
    out_path = _output_path(path, cover)
    with open(out_path, "w", encoding="utf-8", newline="") as f:
        f.writelines(e.to_line() for e in raw_entries)
    return out_path


def write_final_oto(path, entries, pitch="", cover="N", encoding="utf-8"):
    out_path = _output_path(path, cover)
    with open(out_path, "w", encoding=encoding, newline="") as f:
        f.writelines(e.to_line(pitch) for e in entries)
    return out_path


def _check_divisors(name, values):
    if len(values) != 5:
        raise ValueError(f"{name} needs 5 divisors, got {len(values)}")
    return tuple(float(v) for v in values)


class TextGridToOtoConverter:
    """
    Turn a folder of aligned TextGrids into raw oto entries.

    Args:
        ds_dict: DsDictionary for word grouping
        presamp: PresampMappings for vowel/consonant categories
        ignore: Labels treated as rests
        mode: OtoMode
        cv_sum, vc_sum, vv_sum: Stretch divisors (left, fixed, right, prevoice, overlap)
    """

    def __init__(self, ds_dict, presamp, ignore, mode, cv_sum, vc_sum, vv_sum):
        self.ds_dict = ds_dict
        self.presamp = presamp
        self.ignore = set(ignore)
        self.mode = OtoMode(mode)
        self.cv_sum = _check_divisors("cv_sum", cv_sum)
        self.vc_sum = _check_divisors("vc_sum", vc_sum)
        self.vv_sum = _check_divisors("vv_sum", vv_sum)

    @classmethod
    def from_config(cls, config):
        return cls(
            ds_dict=DsDictionary.load(config.ds_dict),
            presamp=PresampMappings.load(config.presamp),
            ignore=config.ignore_set,
            mode=config.mode,
            cv_sum=config.cv_sum,
            vc_sum=config.vc_sum,
            vv_sum=config.vv_sum,
        )

    def segment(self, textgrid):
        phones = filter_phones(textgrid.phones, textgrid.wav_end, self.ds_dict, self.ignore)
        return phones_to_words(phones, self.ds_dict) if phones else []

    def convert_textgrid(self, path):
        """Raw (cv, vc) entries for one TextGrid file."""
        textgrid = parse_textgrid(path)
        words = self.segment(textgrid)
        if not words:
            logger.warning("No usable phones in %s", path)
            return [], []

        wav = textgrid.wav_file_name
        if self.mode == OtoMode.CVVC:
            cv = generate_cvvc_cv(wav, words, self.cv_sum, self.ignore)
            vc = generate_cvvc_vc(wav, words, self.presamp, self.vc_sum, self.vv_sum, self.ignore)
        elif self.mode == OtoMode.VCV:
            cv = generate_vcv_cv(wav, words, self.cv_sum, self.ignore)
            vc = generate_vcv_vc(wav, words, self.presamp, self.vc_sum, self.ignore)
        else:
            cv = generate_cvv_cv(wav, words, self.cv_sum, self.ignore)
            cv = apply_cvv_v_cross(cv, self.presamp.vv, self.vv_sum[4])
            vc = generate_cvv_vc(wav, words, self.presamp.cv_v, self.vc_sum, self.ignore)
        return cv, vc

    def convert_directory(self, textgrid_dir):
        """Raw (cv, vc) entries for every *.TextGrid below `textgrid_dir`."""
        if not os.path.isdir(textgrid_dir):
            raise FileNotFoundError(f"{os.path.abspath(textgrid_dir)} does not exist")

        paths = []
        for root, _, files in os.walk(textgrid_dir):
            paths += [os.path.join(root, name) for name in files if name.lower().endswith(".textgrid")]

        cv_entries, vc_entries = [], []
        for path in sorted(paths):
            cv, vc = self.convert_textgrid(path)
            cv_entries += cv
            vc_entries += vc
        logger.info("Converted %d TextGrids: %d CV and %d VC entries", len(paths), len(cv_entries), len(vc_entries))
        return cv_entries, vc_entries


def convert_from_config(config_path):
    """
    Run a full conversion described by an oto config file.

    Writes cv_oto.ini / vc_oto.ini (raw, always overwritten) and oto.ini into
    the wav folder and returns the path of the final oto.ini.
    """
    config = load_oto_config(config_path)
    converter = TextGridToOtoConverter.from_config(config)
    cv_raw, vc_raw = converter.convert_directory(config.textgrid_path)

    write_raw_oto(os.path.join(config.wav_path, "cv_oto.ini"), cv_raw, cover="Y")
    write_raw_oto(os.path.join(config.wav_path, "vc_oto.ini"), vc_raw, cover="Y")

    cv_entries = apply_repeat(to_entries(cv_raw), config.cv_repeat)
    vc_entries = apply_repeat(to_entries(vc_raw), config.vc_repeat)
    if not is_zero_offset(config.cv_offset):
        cv_entries = apply_offset(cv_entries, config.cv_offset)
    if not is_zero_offset(config.vc_offset):
        vc_entries = apply_offset(vc_entries, config.vc_offset)

    out_path = write_final_oto(os.path.join(config.wav_path, "oto.ini"), cv_entries + vc_entries,
                               pitch=config.pitch, cover=config.cover)
    logger.info("Wrote %d entries to %s", len(cv_entries) + len(vc_entries), out_path)
    return out_path

'''
Phone filtering and lyric-word segmentation.
'''

from dataclasses import replace

from .utils import PhoneInterval

REST = "R"
PAUSE_LABELS = ("R", "-")


def filter_phones(phones, wav_end, ds_dict, ignore):
    """
    Normalize a phones tier for segmentation.

    Phones known to `ds_dict` are kept, labels in `ignore` become "R", anything
    else is dropped. Adjacent rests merge into one and the result is framed by
    leading and trailing rests.
    """
    kept = []
    for ph in phones:
        if ph.text in ds_dict.valid_phones:
            kept.append(ph)
        elif ph.text in ignore:
            kept.append(replace(ph, text=REST))

    merged = []
    for ph in kept:
        if merged and merged[-1].text in PAUSE_LABELS and ph.text in PAUSE_LABELS:
            ph = replace(ph, xmin=merged.pop().xmin)
        merged.append(ph)

    if not merged:
        return merged
    if merged[0].text != REST:
        merged.insert(0, PhoneInterval(0.0, merged[0].xmin, 0.0, REST))
    last = merged[-1]
    if last.text != REST and last.xmax < wav_end:
        merged.append(PhoneInterval(last.xmax, wav_end, last.xmax, REST))
    return merged


def phones_to_words(phones, ds_dict):
    """
    Greedy longest-match grouping of phones into dictionary words.

    The merged interval's middle is the first phone's end (its start when the
    match is a single phone). Unmatched phones pass through unchanged.
    """
    words = []
    i = 0
    while i < len(phones):
        cur = phones[i]
        if cur.text in PAUSE_LABELS:
            words.append(PhoneInterval(cur.xmin, cur.xmax, cur.xmin, cur.text))
            i += 1
            continue

        for k in range(min(ds_dict.max_sequence_length, len(phones) - i), 0, -1):
            word = ds_dict.lookup(ph.text for ph in phones[i:i + k])
            if word is None:
                continue
            first, last = phones[i], phones[i + k - 1]
            middle = first.xmin if first.xmax == last.xmax else first.xmax
            words.append(PhoneInterval(first.xmin, last.xmax, middle, word))
            i += k
            break
        else:
            words.append(PhoneInterval(cur.xmin, cur.xmax, cur.xmin, cur.text))
            i += 1
    return words

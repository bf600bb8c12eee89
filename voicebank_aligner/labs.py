'''
Generate .lab transcripts from wav file names ("ka_ki_ku.wav" -> "ka ki ku").
'''

import logging
import os

logger = logging.getLogger(__name__)


def lab_text_from_name(file_name):
    stem = os.path.splitext(os.path.basename(file_name))[0]
    return stem.replace("_", " ").strip()


def generate_labs(wav_folder, out_folder=None, progress_callback=None):
    """
    Write one .lab per .wav in `wav_folder`.

    Args:
        wav_folder: Folder with the recordings (not searched recursively)
        out_folder: Where to write the .lab files; defaults to `wav_folder`
        progress_callback: Optional callable(done, total, name)

    Returns:
        Number of .lab files written
    """
    if not os.path.isdir(wav_folder):
        raise FileNotFoundError(f"{os.path.abspath(wav_folder)} does not exist")
    out_folder = out_folder or wav_folder
    os.makedirs(out_folder, exist_ok=True)

    wav_names = sorted(n for n in os.listdir(wav_folder) if n.lower().endswith(".wav"))
    for done, name in enumerate(wav_names, 1):
        lab_path = os.path.join(out_folder, os.path.splitext(name)[0] + ".lab")
        text = lab_text_from_name(name)
        with open(lab_path, "w", encoding="utf-8") as f:
            f.write(text)
        logger.debug("Created %s (%r)", lab_path, text)
        if progress_callback is not None:
            progress_callback(done, len(wav_names), name)
    return len(wav_names)

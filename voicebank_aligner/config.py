'''
Configuration objects.

Model side: VocabConfig and MelSpecConfig are read once from a model folder
(vocab.json, config.json, VERSION) and passed explicitly to the decoders.
Oto side: OtoConfig is read from a sectionless `key=value` run file.
'''

import configparser
import glob
import json
import logging
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

MODEL_VERSION = 5

DEFAULT_IGNORE = "AP,SP,EP,R,-,B"
DEFAULT_CV_SUM = (1.0, 3.0, 1.5, 1.0, 2.0)
DEFAULT_VC_SUM = (3.0, 0.0, 2.0, 1.0, 2.0)
DEFAULT_VV_SUM = (3.0, 3.0, 1.5, 1.0, 1.5)
ZERO_OFFSET = (0.0, 0.0, 0.0, 0.0, 0.0)


class ConfigError(KeyError):
    """A required configuration key is missing or empty."""


@dataclass(frozen=True)
class MelSpecConfig:
    sample_rate: int = 44100
    hop_size: int = 441

    @property
    def frame_length(self):
        """Seconds per model frame."""
        return self.hop_size / self.sample_rate

    def num_frames(self, wav_length):
        """Usable frame count for `wav_length` seconds of audio."""
        return int((wav_length * self.sample_rate + 0.5) / self.hop_size)


@dataclass(frozen=True)
class VocabConfig:
    vocab: Dict[str, int]
    vocab_size: int
    non_lexical_phonemes: List[str] = field(default_factory=list)
    dictionaries: Dict[str, str] = field(default_factory=dict)
    language_prefix: bool = False

    @classmethod
    def from_dict(cls, data):
        vocab = {str(k): int(v) for k, v in data["vocab"].items()}
        return cls(
            vocab=vocab,
            vocab_size=int(data.get("vocab_size", len(vocab))),
            non_lexical_phonemes=[p for p in data.get("non_lexical_phonemes", []) if p],
            dictionaries={k: v for k, v in data.get("dictionaries", {}).items()},
            language_prefix=data.get("language_prefix") is True,
        )


def load_vocab_config(vocab_path):
    with open(vocab_path, "r", encoding="utf-8") as f:
        return VocabConfig.from_dict(json.load(f))


def load_mel_config(config_path):
    with open(config_path, "r", encoding="utf-8") as f:
        mel = json.load(f).get("mel_spec_config", {})
    return MelSpecConfig(
        sample_rate=int(mel.get("sample_rate", 44100)),
        hop_size=int(mel.get("hop_size", 441)),
    )


def _require_file(path):
    if not os.path.isfile(path):
        raise FileNotFoundError(f"{os.path.abspath(path)} does not exist")


def load_model_folder(model_folder):
    """
    Load and validate a model folder.

    Args:
        model_folder: Directory holding vocab.json, config.json, VERSION,
            the dictionaries named in vocab.json and an .onnx model

    Returns:
        (VocabConfig, MelSpecConfig)
    """
    vocab_path = os.path.join(model_folder, "vocab.json")
    config_path = os.path.join(model_folder, "config.json")
    version_path = os.path.join(model_folder, "VERSION")
    for path in (vocab_path, config_path, version_path):
        _require_file(path)

    with open(version_path, "r", encoding="utf-8") as f:
        lines = f.read().splitlines()
    version = lines[0].strip() if lines else ""
    if version != str(MODEL_VERSION):
        raise ValueError(f"onnx model version must be {MODEL_VERSION}, got {version!r}")

    vocab = load_vocab_config(vocab_path)
    mel = load_mel_config(config_path)

    for dict_name in vocab.dictionaries.values():
        if dict_name:
            _require_file(os.path.join(model_folder, dict_name))

    logger.info("Loaded model folder %s (vocab=%d, sr=%d, hop=%d)",
                model_folder, vocab.vocab_size, mel.sample_rate, mel.hop_size)
    return vocab, mel


def find_onnx_model(model_folder):
    """model.onnx if present, else the first *.onnx in the folder."""
    preferred = os.path.join(model_folder, "model.onnx")
    if os.path.isfile(preferred):
        return preferred
    candidates = sorted(glob.glob(os.path.join(model_folder, "*.onnx")))
    if not candidates:
        raise FileNotFoundError(f"No .onnx model found in {os.path.abspath(model_folder)}")
    return candidates[0]


@dataclass
class OtoConfig:
    """Settings for one TextGrid to oto.ini conversion run."""
    wav_path: str
    ds_dict: str
    presamp: str
    textgrid_path: str
    ignore: str = DEFAULT_IGNORE
    mode: int = 0
    cv_sum: tuple = DEFAULT_CV_SUM
    vc_sum: tuple = DEFAULT_VC_SUM
    vv_sum: tuple = DEFAULT_VV_SUM
    cv_offset: tuple = ZERO_OFFSET
    vc_offset: tuple = ZERO_OFFSET
    cv_repeat: int = 1
    vc_repeat: int = 1
    pitch: str = ""
    cover: str = "N"

    @property
    def ignore_set(self):
        return {tok.strip() for tok in self.ignore.split(",") if tok.strip()}


def parse_csv_floats(raw, expected=5):
    """Parse "1,3,1.5,1,2" (optionally bracketed) into a tuple of floats."""
    parts = [p.strip() for p in raw.strip().strip("[]").split(",") if p.strip()]
    try:
        values = tuple(float(p) for p in parts)
    except ValueError as e:
        raise ValueError(f"Malformed number list {raw!r}: {e}") from e
    if expected is not None and len(values) != expected:
        raise ValueError(f"Expected {expected} values, got {len(values)} in {raw!r}")
    return values


def _read_sectionless(path):
    """
    All `key=value` pairs of the file in one section.

    Lines are trimmed first, so indentation never continues a value, and
    `[section]` headers are ignored.
    """
    with open(path, "r", encoding="utf-8-sig") as f:
        lines = [line.strip() for line in f]
    lines = [line for line in lines if "=" in line and not (line.startswith("[") and line.endswith("]"))]

    parser = configparser.ConfigParser(interpolation=None, strict=False, delimiters=("=",))
    parser.read_string("[oto]\n" + "\n".join(lines) + "\n")
    return parser["oto"]


def load_oto_config(path) -> OtoConfig:
    """Read an INI-like `key=value` file (keys are case-insensitive)."""
    _require_file(path)
    section = _read_sectionless(path)

    def get(key, default=None):
        value = section.get(key)
        if value is None or not value.strip():
            return default
        return value.strip()

    def require(key):
        value = get(key)
        if value is None:
            raise ConfigError(f"Missing config key: {key}")
        return value

    def get_int(key, default):
        value = get(key)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            logger.warning("Ignoring non-integer %s=%r", key, value)
            return default

    def get_floats(key, default):
        value = get(key)
        return default if value is None else parse_csv_floats(value)

    wav_path = require("wav_path")
    mode_raw = get("VCV_mode", "0")
    mode = int(mode_raw) if mode_raw in ("0", "1", "2") else 0

    return OtoConfig(
        wav_path=wav_path,
        ds_dict=require("ds_dict"),
        presamp=require("presamp"),
        textgrid_path=get("TextGrid_path", os.path.join(wav_path, "TextGrid")),
        ignore=get("ignore", DEFAULT_IGNORE),
        mode=mode,
        cv_sum=get_floats("cv_sum", DEFAULT_CV_SUM),
        vc_sum=get_floats("vc_sum", DEFAULT_VC_SUM),
        vv_sum=get_floats("vv_sum", DEFAULT_VV_SUM),
        cv_offset=get_floats("cv_offset", ZERO_OFFSET),
        vc_offset=get_floats("vc_offset", ZERO_OFFSET),
        cv_repeat=get_int("CV_repeat", 1),
        vc_repeat=get_int("VC_repeat", 1),
        pitch=get("pitch", ""),
        cover=get("cover", "N"),
    )


def default_dictionary_path(model_folder, vocab: VocabConfig, language) -> Optional[str]:
    """Dictionary file for `language` inside the model folder, if vocab.json names one."""
    name = vocab.dictionaries.get(language)
    return os.path.join(model_folder, name) if name else None

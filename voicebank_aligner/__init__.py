"""
Voicebank Forced Aligner - phoneme alignment of .lab transcripts and oto.ini generation for singing voicebanks.
"""

__version__ = "0.1.0"

from .core import LabAligner, align_folder
from .labs import generate_labs
from .oto import TextGridToOtoConverter, convert_from_config

__all__ = [
    "LabAligner",
    "align_folder",
    "generate_labs",
    "TextGridToOtoConverter",
    "convert_from_config",
    "__version__"
]

'''
Lab-driven forced alignment of voicebank recordings.

Inputs: a folder of .wav recordings with .lab transcripts, a model folder
(model.onnx, vocab.json, config.json, VERSION, dictionaries).
Outputs: one TextGrid per recording with "words" and "phones" tiers covering
the whole file.
'''

import logging
import os
from concurrent.futures import ThreadPoolExecutor

import torch

from .config import default_dictionary_path, find_onnx_model, load_model_folder
from .consensus import ConsensusError, assemble, pad_lengths
from .forced_alignment import AlignmentDecoder, NonLexicalDecoder
from .g2p import G2P_MODES, get_g2p
from .onnx_model import FrameLogitModel
from .utils import load_audio, words_to_textgrid
from .words import Diagnosed

logger = logging.getLogger(__name__)


def parse_label_list(labels):
    if isinstance(labels, str):
        return [tok.strip() for tok in labels.split(",") if tok.strip()]
    return list(labels or [])


class LabAligner:
    """
    Align .lab transcripts to recordings with an exported ONNX aligner.

    Args:
        model_folder: Local model folder. If None, `repo_id` is downloaded from the Hugging Face Hub.
        repo_id: Hub repository holding a model folder
        g2p: "dictionary" or "phoneme"
        language: Language key for dictionaries and phoneme prefixes
        dictionary: Pronunciation dictionary path; defaults to the one vocab.json names for `language`
        non_lexical_phonemes: Comma separated (or list of) non-lexical labels to detect, e.g. "AP"
        pad_times: Number of padded passes used for consensus
        pad_length: Largest left padding in seconds
        workers: Threads for padded passes (default: one per pass)
        providers: onnxruntime execution providers
        model: Callable(waveform, padded_frames) -> FrameLogits, used instead of the folder's .onnx
    """

    def __init__(self, model_folder=None, repo_id=None, g2p="dictionary", language="zh", dictionary=None,
                 non_lexical_phonemes="AP", pad_times=1, pad_length=5.0, workers=None, providers=None,
                 model=None):
        if model_folder is None:
            if repo_id is None:
                raise ValueError("Either model_folder or repo_id must be provided.")
            model_folder = self.download_model(repo_id)
        if not os.path.isdir(model_folder):
            raise FileNotFoundError(f"Model folder does not exist: {os.path.abspath(model_folder)}")

        self.model_folder = model_folder
        self.vocab, self.mel_config = load_model_folder(model_folder)
        self.model = model if model is not None else FrameLogitModel(find_onnx_model(model_folder), providers)

        self.non_lexical_phonemes = parse_label_list(non_lexical_phonemes)
        unknown = [p for p in self.non_lexical_phonemes if p not in self.vocab.non_lexical_phonemes]
        if unknown:
            raise ValueError(f"The non_lexical_phonemes contain elements that are not included in the vocab: {unknown}")

        if pad_times < 1:
            raise ValueError("pad_times must be >= 1")
        self.pad_times = pad_times
        self.pad_length = pad_length
        self.workers = workers

        self._setup_decoders()
        self._setup_g2p(g2p, language, dictionary)

        self.dataset = []
        self.predictions = []

    def _setup_decoders(self):
        self.decoder = AlignmentDecoder(self.vocab, self.mel_config)
        self.non_lexical_decoder = NonLexicalDecoder(["None"] + self.vocab.non_lexical_phonemes, self.mel_config)

    def _setup_g2p(self, g2p, language, dictionary):
        if g2p not in G2P_MODES:
            raise ValueError(f"g2p - {g2p} is not supported, which should be 'dictionary' or 'phoneme'.")
        if g2p == "dictionary" and dictionary is None:
            dictionary = default_dictionary_path(self.model_folder, self.vocab, language)
            if dictionary is None:
                raise ValueError(f"vocab.json names no dictionary for language {language!r}; pass one explicitly")
        prefix = language if self.vocab.language_prefix else None
        self.g2p = get_g2p(g2p, prefix, dictionary)

    @staticmethod
    def download_model(repo_id, local_dir=None):
        """Download a model folder snapshot from the Hugging Face Hub and return its path."""
        from huggingface_hub import snapshot_download

        model_path = snapshot_download(repo_id=repo_id, local_dir=local_dir)
        logger.info("Model available at: %s", model_path)
        return model_path

    def _add_sample(self, wav_path, lab_path):
        with open(lab_path, "r", encoding="utf-8") as f:
            text = f.read().strip()
        if not text:
            logger.warning("Empty transcript %s, skipped", lab_path)
            return
        ph_seq, word_seq, ph_idx_to_word_idx = self.g2p.convert(text)
        self.dataset.append((wav_path, ph_seq, word_seq, ph_idx_to_word_idx))

    def get_dataset(self, wav_folder, in_format="lab"):
        """Collect every wav below `wav_folder` that has a transcript next to it."""
        if not os.path.isdir(wav_folder):
            raise FileNotFoundError(f"Input folder does not exist: {os.path.abspath(wav_folder)}")
        for root, _, files in os.walk(wav_folder):
            for name in sorted(files):
                if not name.lower().endswith(".wav"):
                    continue
                wav_path = os.path.join(root, name)
                lab_path = os.path.splitext(wav_path)[0] + "." + in_format
                if os.path.isfile(lab_path):
                    self._add_sample(wav_path, lab_path)
        logger.info("Loaded %d samples.", len(self.dataset))
        return self.dataset

    def get_dataset_from_lab_folder(self, wav_folder, lab_folder):
        """Pair wavs and labs kept in separate folders by file stem."""
        for folder in (wav_folder, lab_folder):
            if not os.path.isdir(folder):
                raise FileNotFoundError(f"Input folder does not exist: {os.path.abspath(folder)}")
        wav_map = {os.path.splitext(n)[0].lower(): os.path.join(wav_folder, n)
                   for n in os.listdir(wav_folder) if n.lower().endswith(".wav")}
        for name in sorted(os.listdir(lab_folder)):
            if not name.lower().endswith(".lab"):
                continue
            wav_path = wav_map.get(os.path.splitext(name)[0].lower())
            if wav_path is not None:
                self._add_sample(wav_path, os.path.join(lab_folder, name))
        logger.info("Loaded %d samples.", len(self.dataset))
        return self.dataset

    def load_audio(self, audio_path):
        return load_audio(audio_path, self.mel_config.sample_rate)

    @torch.no_grad()
    def infer_pass(self, wav, pad_length, ph_seq, word_seq, ph_idx_to_word_idx, wav_length):
        """One padded decoding pass. Returns (WordList, diagnostics)."""
        padded_samples = int(pad_length * self.mel_config.sample_rate)
        padded_frames = int(padded_samples / self.mel_config.hop_size)
        padded_wav = torch.nn.functional.pad(wav, (padded_samples, 0))

        logits = self.model(padded_wav, padded_frames)
        result = self.decoder.decode(logits.ph_frame_logits, logits.ph_edge_logits, wav_length,
                                     ph_seq, word_seq, ph_idx_to_word_idx, ignore_sp=True)
        words, diagnostics = result.value, list(result.diagnostics)

        events = self.non_lexical_decoder.decode(logits.cvnt_logits, wav_length, self.non_lexical_phonemes)
        for tag_events in events:
            for event in tag_events:
                diagnostics += words.merge_non_lexical(event)
        words.clear_language_prefix()
        return words, diagnostics

    def align(self, wav, ph_seq, word_seq, ph_idx_to_word_idx):
        """
        Align one waveform with padded passes and consensus.

        Args:
            wav: Mono waveform tensor [N] at the model sample rate

        Returns:
            (wav_length, Diagnosed[WordList])
        """
        wav_length = wav.shape[0] / self.mel_config.sample_rate
        lengths = pad_lengths(self.pad_times, self.pad_length)

        def run(pad):
            return self.infer_pass(wav, pad, ph_seq, word_seq, ph_idx_to_word_idx, wav_length)

        if len(lengths) == 1:
            passes = [run(lengths[0])]
        else:
            with ThreadPoolExecutor(max_workers=self.workers or len(lengths)) as executor:
                passes = list(executor.map(run, lengths))

        diagnostics = [msg for _, pass_diagnostics in passes for msg in pass_diagnostics]
        result = assemble([words for words, _ in passes], wav_length)
        return wav_length, Diagnosed(result.value, diagnostics + result.diagnostics)

    def infer(self, progress_callback=None):
        """
        Align every loaded sample.

        Samples whose padded passes never agree are logged and skipped.
        """
        total = len(self.dataset)
        for i, (wav_path, ph_seq, word_seq, ph_idx_to_word_idx) in enumerate(self.dataset, 1):
            wav = self.load_audio(wav_path)
            try:
                wav_length, result = self.align(wav, ph_seq, word_seq, ph_idx_to_word_idx)
            except ConsensusError as e:
                logger.error("%s: %s", wav_path, e)
                continue
            if result.diagnostics:
                logger.debug("%s: %d alignment warnings", wav_path, len(result.diagnostics))
            self.predictions.append((wav_path, wav_length, result.value))
            if progress_callback is not None:
                progress_callback(i, total, os.path.splitext(os.path.basename(wav_path))[0])
        return self.predictions

    def export(self, output_folder, output_format=("textgrid",)):
        """Write <output_folder>/TextGrid/<stem>.TextGrid for every prediction."""
        written = []
        if "textgrid" in [f.lower() for f in output_format]:
            out_dir = os.path.join(output_folder, "TextGrid")
            os.makedirs(out_dir, exist_ok=True)
            for wav_path, wav_length, words in self.predictions:
                stem = os.path.splitext(os.path.basename(wav_path))[0]
                written.append(words_to_textgrid(words, wav_length, os.path.join(out_dir, stem + ".TextGrid")))
            logger.info("Saved %d TextGrids to %s", len(written), out_dir)
        return written


def align_folder(model_folder, wav_folder, out_folder=None, lab_folder=None, **kwargs):
    """Load, align and export a whole folder in one call. Returns the written TextGrid paths."""
    aligner = LabAligner(model_folder=model_folder, **kwargs)
    if lab_folder is None:
        aligner.get_dataset(wav_folder)
    else:
        aligner.get_dataset_from_lab_folder(wav_folder, lab_folder)
    aligner.infer()
    return aligner.export(out_folder or wav_folder)

'''
Frame-level decoders.

AlignmentDecoder maps a known phoneme sequence onto model frames with a
three-transition dynamic program (stay / advance one / skip an optional
silence) scored from masked class log-probabilities and boundary probabilities,
then refines each boundary to a sub-frame time.
NonLexicalDecoder finds breath-like events with hysteresis run detection.
'''

import logging

import torch
import torch.nn.functional as F

from .g2p import SILENCE
from .words import Diagnosed, IntervalError, Phoneme, Word, WordList

logger = logging.getLogger(__name__)


class AlignmentDecoder:
    """
    Forced aligner over phoneme-class and boundary logits.

    Args:
        vocab: VocabConfig (label -> id, id 0 is silence)
        mel_config: MelSpecConfig defining the frame duration
    """

    def __init__(self, vocab, mel_config, eps=1e-6, mask_bias=1e9):
        self.vocab = vocab
        self.mel_config = mel_config
        self.frame_length = mel_config.frame_length
        self.eps = eps
        self.mask_bias = mask_bias
        self._neg_inf = float("-inf")

    def _masked_log_probs(self, ph_frame_logits, ph_seq_id, num_frames):
        """log_softmax over the vocab axis with symbols outside the sequence suppressed."""
        logits = torch.as_tensor(ph_frame_logits, dtype=torch.float32)[:, :num_frames]
        mask = torch.full((logits.shape[0],), self.mask_bias, dtype=torch.float32)
        mask[torch.as_tensor(sorted(set(ph_seq_id)), dtype=torch.long)] = 0.0
        mask[0] = 0.0
        return F.log_softmax(logits - mask[:, None], dim=0)

    @staticmethod
    def edge_signals(ph_edge_logits, num_frames):
        """
        Boundary signals from raw edge logits.

        Returns:
            edge_prob: clamp(p[t] + p[t-1], 0, 1), smoothed boundary likelihood
            edge_diff: p[t+1] - p[t] (0 at the last frame), used for sub-frame refinement
        """
        edge_pred = torch.sigmoid(torch.as_tensor(ph_edge_logits, dtype=torch.float32)[:num_frames]).clamp(0.0, 1.0)
        edge_diff = torch.zeros_like(edge_pred)
        edge_diff[:-1] = edge_pred[1:] - edge_pred[:-1]
        previous = torch.cat([torch.zeros(1), edge_pred[:-1]])
        edge_prob = (edge_pred + previous).clamp(0.0, 1.0)
        return edge_prob, edge_diff

    @torch.no_grad()
    def decode_path(self, ph_seq_id, log_probs, edge_prob):
        """
        Run the DP and backtrack.

        Args:
            ph_seq_id: Expected symbol ids [S]
            log_probs: Masked class log-probabilities [V, T]
            edge_prob: Boundary probability per frame [T]

        Returns:
            (symbol_indices, frames): positions in the sequence and the frame each
            one starts at, both weakly increasing
        """
        num_symbols = len(ph_seq_id)
        num_frames = log_probs.shape[1]
        ids = torch.as_tensor(ph_seq_id, dtype=torch.long)
        prob_log = log_probs[ids]  # [S, T]

        dp = torch.full((num_symbols, num_frames), self._neg_inf)
        backtrack = torch.full((num_symbols, num_frames), -1, dtype=torch.long)
        run_bonus = torch.full((num_symbols,), self._neg_inf)
        is_silence = ids == 0

        dp[0, 0] = prob_log[0, 0]
        run_bonus[0] = prob_log[0, 0]
        if ph_seq_id[0] == 0 and num_symbols > 1:
            dp[1, 0] = prob_log[1, 0]
            run_bonus[1] = prob_log[1, 0]
        run_bonus = torch.where(is_silence, torch.zeros_like(run_bonus), run_bonus)

        edge_log = torch.log(edge_prob + self.eps)
        not_edge_log = torch.log(1 - edge_prob + self.eps)

        # a two-symbol jump is only allowed over a silence symbol
        can_skip = torch.zeros(num_symbols, dtype=torch.bool)
        if num_symbols > 2:
            can_skip[2:] = is_silence[1:-1]

        scale = num_frames / num_symbols
        for t in range(1, num_frames):
            prev = dp[:, t - 1]
            frame_lp = prob_log[:, t]

            stay = prev + frame_lp + not_edge_log[t]

            advance = torch.full_like(stay, self._neg_inf)
            advance[1:] = prev[:-1] + frame_lp[1:] + edge_log[t] + run_bonus[:-1] * scale

            skip = torch.full_like(stay, self._neg_inf)
            if num_symbols > 2:
                skip[2:] = torch.where(
                    can_skip[2:],
                    prev[:-2] + frame_lp[2:] + edge_log[t] + run_bonus[:-2] * scale,
                    torch.full_like(stay[2:], self._neg_inf),
                )

            # argmax keeps the first maximum, so ties prefer stay, then advance
            scores = torch.stack([stay, advance, skip], dim=0)
            best = torch.argmax(scores, dim=0)
            dp[:, t] = scores.gather(0, best.unsqueeze(0)).squeeze(0)
            backtrack[:, t] = best

            run_bonus = torch.where(best == 0, torch.maximum(run_bonus, frame_lp), frame_lp)
            run_bonus = torch.where(is_silence, torch.zeros_like(run_bonus), run_bonus)

        if num_symbols == 1:
            s_end = 0
        elif dp[-2, -1] > dp[-1, -1] and ph_seq_id[-1] == 0:
            s_end = num_symbols - 2
        else:
            s_end = num_symbols - 1

        steps = backtrack.tolist()
        symbol_indices, frames = [], []
        s = s_end
        for t in range(num_frames - 1, -1, -1):
            step = steps[s][t]
            if step != 0:
                symbol_indices.append(s)
                frames.append(t)
                if step > 0:
                    s -= step
        symbol_indices.reverse()
        frames.reverse()
        return symbol_indices, frames

    def refine_boundaries(self, frames, edge_diff, num_frames):
        """Sub-frame boundary times for each realized transition, plus the final boundary."""
        boundaries = []
        for t in frames:
            offset = min(max(float(edge_diff[t]) / 2, -0.5), 0.5)
            boundaries.append(max(0.0, self.frame_length * (t + offset)))
        boundaries.append(self.frame_length * num_frames)
        return boundaries

    def decode(self, ph_frame_logits, ph_edge_logits, wav_length, ph_seq,
               word_seq=None, ph_idx_to_word_idx=None, ignore_sp=True):
        """
        Align `ph_seq` to the logits of one recording.

        Args:
            ph_frame_logits: Class logits [V, T]
            ph_edge_logits: Boundary logits [T]
            wav_length: Recording length in seconds (limits usable frames)
            ph_seq: Expected phoneme labels, framed by SP
            word_seq: Word labels; defaults to ph_seq
            ph_idx_to_word_idx: Word index per phoneme (-1 for SP); defaults to identity
            ignore_sp: Drop silence symbols from the output

        Returns:
            Diagnosed[WordList]
        """
        missing = [ph for ph in ph_seq if ph not in self.vocab.vocab]
        if missing:
            raise ValueError(f"Phonemes not in vocab: {missing}")
        ph_seq_id = [self.vocab.vocab[ph] for ph in ph_seq]
        if word_seq is None:
            word_seq = list(ph_seq)
        if ph_idx_to_word_idx is None:
            ph_idx_to_word_idx = list(range(len(ph_seq)))

        diagnostics = []
        tensor_frames = torch.as_tensor(ph_frame_logits).shape[1]
        num_frames = min(self.mel_config.num_frames(wav_length), tensor_frames)
        if num_frames < 1 or not ph_seq_id:
            diagnostics.append("WARNING: nothing to align (no frames or empty sequence)")
            logger.warning(diagnostics[-1])
            return Diagnosed(WordList(), diagnostics)

        log_probs = self._masked_log_probs(ph_frame_logits, ph_seq_id, num_frames)
        edge_prob, edge_diff = self.edge_signals(ph_edge_logits, num_frames)
        symbol_indices, frames = self.decode_path(ph_seq_id, log_probs, edge_prob)
        boundaries = self.refine_boundaries(frames, edge_diff, num_frames)

        words = WordList()
        word = None
        last_word_idx = None
        for i, ph_idx in enumerate(symbol_indices):
            text = ph_seq[ph_idx]
            if ignore_sp and text == SILENCE:
                continue
            start, end = boundaries[i], boundaries[i + 1]
            try:
                phoneme = Phoneme(start, end, text)
            except IntervalError as e:
                diagnostics.append("WARNING: " + str(e))
                logger.warning("Skipping collapsed phoneme: %s", e)
                continue

            word_idx = ph_idx_to_word_idx[ph_idx]
            if word is not None and word_idx == last_word_idx:
                diagnostics += word.append_phoneme(phoneme)
            else:
                word = Word(start, end, text if word_idx < 0 else word_seq[word_idx])
                diagnostics += word.add_phoneme(phoneme)
                diagnostics += words.insert_if_non_overlapping(word)
                last_word_idx = word_idx

        return Diagnosed(words, diagnostics)


class NonLexicalDecoder:
    """
    Hysteresis detector for non-lexical events.

    Args:
        class_names: ["None"] + the model's non-lexical phoneme labels
        mel_config: MelSpecConfig defining the frame duration
        threshold: Probability that opens a run
        max_gap: Sub-threshold frames tolerated inside a run
        min_frames: Shortest run that becomes an event
    """

    def __init__(self, class_names, mel_config, threshold=0.5, max_gap=5, min_frames=10):
        self.class_names = list(class_names)
        self.mel_config = mel_config
        self.frame_length = mel_config.frame_length
        self.threshold = threshold
        self.max_gap = max_gap
        self.min_frames = min_frames

    @torch.no_grad()
    def decode(self, cvnt_logits, wav_length, labels):
        """One list of single-phoneme Words per requested label found in class_names."""
        logits = torch.as_tensor(cvnt_logits, dtype=torch.float32)
        num_frames = logits.shape[1]
        if wav_length is not None:
            num_frames = min(num_frames, self.mel_config.num_frames(wav_length))
        probs = F.softmax(logits[:, :num_frames], dim=0)

        events = []
        for label in labels:
            if label not in self.class_names:
                logger.debug("Non-lexical label %r not produced by the model", label)
                continue
            row = probs[self.class_names.index(label)].tolist()
            events.append(self.detect_runs(row, label))
        return events

    def _event(self, start, end, tag):
        return Word.single(start * self.frame_length, end * self.frame_length, tag)

    def detect_runs(self, prob, tag):
        words = []
        start = None
        gap = 0
        for i, p in enumerate(prob):
            if p >= self.threshold:
                if start is None:
                    start = i
                gap = 0
            elif start is not None:
                if gap < self.max_gap:
                    gap += 1
                    continue
                end = i - gap - 1
                if end > start and end - start >= self.min_frames:
                    words.append(self._event(start, end, tag))
                start = None
                gap = 0

        if start is not None and len(prob) - start >= self.min_frames:
            words.append(self._event(start, len(prob) - 1, tag))
        return words

'''
ONNX frame-logit model.

Input:  waveform        [1, N] float32
Output: ph_frame_logits [1, V, T]
        ph_edge_logits  [1, T]
        cvnt_logits     [1, C, T]
'''

import logging
from dataclasses import dataclass

import numpy as np
import onnxruntime as ort

logger = logging.getLogger(__name__)

INPUT_NAME = "waveform"
OUTPUT_NAMES = ("ph_frame_logits", "ph_edge_logits", "cvnt_logits")


@dataclass
class FrameLogits:
    """Batch-free model outputs with the padded frames removed."""
    ph_frame_logits: np.ndarray  # [V, T]
    ph_edge_logits: np.ndarray   # [T]
    cvnt_logits: np.ndarray      # [C, T]


def _check_batch(name, array, rank):
    if array.ndim != rank:
        raise ValueError(f"{name}: expected rank {rank}, got shape {array.shape}")
    if array.shape[0] != 1:
        raise ValueError(f"{name}: batch size must be 1, got {array.shape[0]}")


def extract_logits(outputs, padded_frames=0):
    """
    Validate the tensor contract and drop the leading `padded_frames`.

    Args:
        outputs: Mapping output name -> array
        padded_frames: Frames produced by left padding
    """
    missing = [name for name in OUTPUT_NAMES if name not in outputs]
    if missing:
        raise ValueError(f"Missing model outputs: {missing}")

    frame = np.asarray(outputs["ph_frame_logits"], dtype=np.float32)
    edge = np.asarray(outputs["ph_edge_logits"], dtype=np.float32)
    cvnt = np.asarray(outputs["cvnt_logits"], dtype=np.float32)
    _check_batch("ph_frame_logits", frame, 3)
    _check_batch("ph_edge_logits", edge, 2)
    _check_batch("cvnt_logits", cvnt, 3)

    return FrameLogits(
        ph_frame_logits=frame[0, :, padded_frames:],
        ph_edge_logits=edge[0, padded_frames:],
        cvnt_logits=cvnt[0, :, padded_frames:],
    )


class FrameLogitModel:
    """
    onnxruntime session wrapper.

    Args:
        onnx_path: Path to the exported model
        providers: onnxruntime execution providers in priority order
    """

    def __init__(self, onnx_path, providers=None):
        if providers is None:
            providers = ["CPUExecutionProvider"]
        available = set(ort.get_available_providers())
        usable = [p for p in providers if p in available] or ["CPUExecutionProvider"]

        options = ort.SessionOptions()
        options.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_ALL
        self.sess = ort.InferenceSession(onnx_path, sess_options=options, providers=usable)
        self.onnx_path = onnx_path
        logger.info("Loaded %s with providers %s", onnx_path, usable)

    def __call__(self, waveform, padded_frames=0):
        """Run one mono waveform (1-D array or tensor) and return trimmed FrameLogits."""
        if hasattr(waveform, "detach"):
            waveform = waveform.detach().cpu().numpy()
        x_np = np.asarray(waveform, dtype=np.float32).reshape(1, -1)
        names = [o.name for o in self.sess.get_outputs()]
        values = self.sess.run(None, {INPUT_NAME: x_np})
        return extract_logits(dict(zip(names, values)), padded_frames)

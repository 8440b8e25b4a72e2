"""
Pose Classification Models.

PoseMLP — static (single-frame) pose classifier.
    Input:  (batch, 99)             — 33 keypoints × (x, y, z)
    Output: (batch, num_classes)    — class probabilities

ViolenceLSTM — temporal violence classifier over a sliding window.
    Input:  (batch, seq_len, 99)    — seq_len frames × 33 keypoints × (x, y, presence)
    Output: (batch, 1)              — violence probability

Checkpoints are torch.save() dicts holding 'model_state_dict' plus the
architecture hyper-parameters used at training time.
"""

import logging
import os

import torch
import torch.nn as nn

from engines.pose_classification.errors import AssetLoadError
from engines.pose_classification.landmarks import FEATURE_SIZE

logger = logging.getLogger(__name__)

DEFAULT_SEQ_LEN = 10


class PoseMLP(nn.Module):
    """
    Feed-forward classifier for one frame of landmarks.

    Architecture:
        Input (99) → FC(hidden) → ReLU → Dropout → FC(hidden/2) → ReLU → FC(num_classes) → Softmax
    """

    def __init__(
        self,
        input_dim: int = FEATURE_SIZE,
        hidden_dim: int = 128,
        num_classes: int = 5,
        dropout: float = 0.2,
    ):
        super().__init__()
        self.input_dim = input_dim
        self.hidden_dim = hidden_dim
        self.num_classes = num_classes

        self.net = nn.Sequential(
            nn.Linear(input_dim, hidden_dim),
            nn.ReLU(),
            nn.Dropout(dropout),
            nn.Linear(hidden_dim, hidden_dim // 2),
            nn.ReLU(),
            nn.Linear(hidden_dim // 2, num_classes),
        )

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return torch.softmax(self.net(x), dim=-1)


class ViolenceLSTM(nn.Module):
    """
    LSTM over a window of skeleton frames with a single sigmoid output.

    Architecture:
        Input (99) → LayerNorm → LSTM(hidden, num_layers) → last step → FC(hidden/2) → FC(1) → Sigmoid
    """

    def __init__(
        self,
        input_dim: int = FEATURE_SIZE,
        hidden_dim: int = 64,
        num_layers: int = 2,
        dropout: float = 0.3,
        seq_len: int = DEFAULT_SEQ_LEN,
    ):
        super().__init__()
        self.input_dim = input_dim
        self.hidden_dim = hidden_dim
        self.num_layers = num_layers
        self.seq_len = seq_len

        self.input_norm = nn.LayerNorm(input_dim)
        self.lstm = nn.LSTM(
            input_size=input_dim,
            hidden_size=hidden_dim,
            num_layers=num_layers,
            batch_first=True,
            dropout=dropout if num_layers > 1 else 0.0,
        )
        self.head = nn.Sequential(
            nn.Linear(hidden_dim, hidden_dim // 2),
            nn.ReLU(),
            nn.Dropout(dropout),
            nn.Linear(hidden_dim // 2, 1),
        )

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        """
        Args:
            x: (batch, seq_len, input_dim) — keypoint sequences, oldest frame first
        Returns:
            probs: (batch, 1)
        """
        x = self.input_norm(x)
        lstm_out, _ = self.lstm(x)       # (batch, seq_len, hidden_dim)
        last = lstm_out[:, -1, :]        # (batch, hidden_dim)
        return torch.sigmoid(self.head(last))


def resolve_device(use_gpu: bool) -> torch.device:
    """Map the compute delegate to a torch device."""
    if use_gpu:
        if not torch.cuda.is_available():
            raise AssetLoadError("GPU delegate requested but CUDA is not available",
                                 delegate_related=True)
        return torch.device('cuda')
    return torch.device('cpu')


def _load_checkpoint(path: str, device: torch.device) -> dict:
    if not os.path.exists(path):
        raise AssetLoadError(f"Model file not found: {path}")
    try:
        checkpoint = torch.load(path, map_location=device)
    except RuntimeError as e:
        # CUDA deserialization errors surface as RuntimeError
        raise AssetLoadError(f"Failed to read {path}: {e}",
                             delegate_related=device.type == 'cuda')
    except Exception as e:
        raise AssetLoadError(f"Failed to read {path}: {e}")
    if not isinstance(checkpoint, dict) or 'model_state_dict' not in checkpoint:
        raise AssetLoadError(f"{path} is not a model checkpoint (missing model_state_dict)")
    return checkpoint


def load_pose_classifier(path: str, device: torch.device) -> PoseMLP:
    """Load a trained PoseMLP checkpoint for inference."""
    checkpoint = _load_checkpoint(path, device)
    try:
        model = PoseMLP(
            input_dim=checkpoint.get('input_dim', FEATURE_SIZE),
            hidden_dim=checkpoint.get('hidden_dim', 128),
            num_classes=checkpoint.get('num_classes', 5),
            dropout=0.0,  # No dropout at inference
        ).to(device)
        model.load_state_dict(checkpoint['model_state_dict'])
    except Exception as e:
        raise AssetLoadError(f"Pose classifier checkpoint {path} is incompatible: {e}",
                             delegate_related=device.type == 'cuda')
    model.eval()
    logger.info(f"Pose classifier loaded from {path} (device: {device})")
    return model


def load_violence_model(path: str, device: torch.device,
                        seq_len: int = DEFAULT_SEQ_LEN) -> ViolenceLSTM:
    """Load a trained ViolenceLSTM checkpoint for inference."""
    checkpoint = _load_checkpoint(path, device)
    trained_len = checkpoint.get('seq_len', seq_len)
    if trained_len != seq_len:
        raise AssetLoadError(
            f"Violence model {path} was trained on {trained_len}-frame windows, "
            f"pipeline is configured for {seq_len}"
        )
    try:
        model = ViolenceLSTM(
            input_dim=checkpoint.get('input_dim', FEATURE_SIZE),
            hidden_dim=checkpoint.get('hidden_dim', 64),
            num_layers=checkpoint.get('num_layers', 2),
            dropout=0.0,
            seq_len=trained_len,
        ).to(device)
        model.load_state_dict(checkpoint['model_state_dict'])
    except Exception as e:
        raise AssetLoadError(f"Violence model checkpoint {path} is incompatible: {e}",
                             delegate_related=device.type == 'cuda')
    model.eval()
    logger.info(f"Violence model loaded from {path} (device: {device}, seq_len: {trained_len})")
    return model


def save_checkpoint(model: nn.Module, path: str, **extra) -> None:
    """Write a checkpoint in the format the loaders above expect."""
    payload = {'model_state_dict': model.state_dict()}
    for attr in ('input_dim', 'hidden_dim', 'num_layers', 'num_classes', 'seq_len'):
        if hasattr(model, attr):
            payload[attr] = getattr(model, attr)
    payload.update(extra)
    torch.save(payload, path)


def count_parameters(model: nn.Module) -> int:
    """Count trainable parameters."""
    return sum(p.numel() for p in model.parameters() if p.requires_grad)

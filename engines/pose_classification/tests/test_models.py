"""
Tests for the torch models and checkpoint loading.
"""

import pytest
import torch

from engines.pose_classification.errors import AssetLoadError
from engines.pose_classification.models import (
    PoseMLP, ViolenceLSTM, count_parameters, load_pose_classifier,
    load_violence_model, resolve_device, save_checkpoint,
)

CPU = torch.device('cpu')


class TestPoseMLP:
    def test_output_shape(self):
        model = PoseMLP(num_classes=4).eval()
        out = model(torch.randn(2, 99))
        assert out.shape == (2, 4)

    def test_outputs_are_probabilities(self):
        out = PoseMLP().eval()(torch.randn(1, 99))
        assert torch.allclose(out.sum(dim=-1), torch.ones(1), atol=1e-5)

    def test_has_parameters(self):
        assert count_parameters(PoseMLP()) > 0


class TestViolenceLSTM:
    def test_output_shape(self):
        out = ViolenceLSTM().eval()(torch.randn(3, 10, 99))
        assert out.shape == (3, 1)
        assert torch.all((out >= 0) & (out <= 1))

    def test_single_layer_no_dropout_warning(self):
        model = ViolenceLSTM(num_layers=1, dropout=0.5)
        assert model.lstm.dropout == 0.0


class TestCheckpoints:
    def test_pose_classifier_round_trip(self, tmp_path):
        path = str(tmp_path / 'pose.pt')
        model = PoseMLP(hidden_dim=32, num_classes=3)
        save_checkpoint(model, path)

        loaded = load_pose_classifier(path, CPU)
        assert loaded.num_classes == 3
        assert loaded.hidden_dim == 32
        assert not loaded.training
        x = torch.randn(1, 99)
        model.eval()
        assert torch.allclose(model(x), loaded(x))

    def test_violence_round_trip(self, tmp_path):
        path = str(tmp_path / 'violence.pt')
        save_checkpoint(ViolenceLSTM(hidden_dim=16, num_layers=1, seq_len=4), path)
        loaded = load_violence_model(path, CPU, seq_len=4)
        assert loaded.seq_len == 4
        assert loaded.hidden_dim == 16

    def test_violence_window_mismatch(self, tmp_path):
        path = str(tmp_path / 'violence.pt')
        save_checkpoint(ViolenceLSTM(seq_len=10), path)
        with pytest.raises(AssetLoadError, match='10-frame'):
            load_violence_model(path, CPU, seq_len=5)

    def test_missing_file(self, tmp_path):
        with pytest.raises(AssetLoadError, match='not found') as exc:
            load_pose_classifier(str(tmp_path / 'missing.pt'), CPU)
        assert not exc.value.delegate_related

    def test_not_a_checkpoint(self, tmp_path):
        path = str(tmp_path / 'weights.pt')
        torch.save({'weights': [1, 2, 3]}, path)
        with pytest.raises(AssetLoadError, match='model_state_dict'):
            load_violence_model(path, CPU)

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / 'corrupt.pt'
        path.write_bytes(b'not a torch file')
        with pytest.raises(AssetLoadError):
            load_pose_classifier(str(path), CPU)

    def test_incompatible_state(self, tmp_path):
        path = str(tmp_path / 'pose.pt')
        save_checkpoint(PoseMLP(num_classes=3), path, num_classes=5)
        with pytest.raises(AssetLoadError, match='incompatible'):
            load_pose_classifier(path, CPU)


class TestResolveDevice:
    def test_cpu(self):
        assert resolve_device(False) == CPU

    @pytest.mark.skipif(torch.cuda.is_available(), reason='CUDA present')
    def test_gpu_unavailable_is_delegate_error(self):
        with pytest.raises(AssetLoadError) as exc:
            resolve_device(True)
        assert exc.value.delegate_related

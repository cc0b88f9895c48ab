"""Tests for the PyTorch adapter."""

import pytest

torch = pytest.importorskip("torch")

from tensorsafe.dtypes import DType  # noqa: E402
from tensorsafe.exceptions import InvalidInput, SharedStorageError  # noqa: E402
from tensorsafe.reader import TensorReader, safe_open  # noqa: E402
from tensorsafe.torch import (  # noqa: E402
    from_view,
    load,
    load_file,
    save,
    save_file,
    to_dtype,
    to_view,
)


class TestTorchAdapter:
    """Tests for converting torch tensors."""

    def test_dtype_mapping(self):
        assert to_dtype(torch.float32) is DType.F32
        assert to_dtype(torch.bfloat16) is DType.BF16
        assert to_dtype(torch.bool) is DType.BOOL

    def test_unsupported_dtype(self):
        with pytest.raises(InvalidInput, match="Unsupported dtype"):
            to_dtype(torch.complex64)

    def test_rejects_non_tensor(self):
        with pytest.raises(InvalidInput, match="expected torch.Tensor"):
            to_view("x", [1.0])

    def test_rejects_non_contiguous(self):
        tensor = torch.zeros((4, 4)).t()
        with pytest.raises(InvalidInput, match="non contiguous"):
            to_view("t", tensor)

    def test_rejects_sparse(self):
        tensor = torch.zeros((2, 2)).to_sparse()
        with pytest.raises(InvalidInput, match="sparse"):
            to_view("s", tensor)

    def test_view_round_trip(self):
        tensor = torch.arange(6, dtype=torch.int32).reshape(2, 3)
        restored = from_view(to_view("x", tensor))
        assert restored.dtype == torch.int32
        assert torch.equal(restored, tensor)

    def test_tensors_requiring_grad(self):
        tensor = torch.ones(3, requires_grad=True)
        restored = from_view(to_view("x", tensor))
        assert torch.equal(restored, torch.ones(3))


class TestTorchSaveLoad:
    """Round-trip tests for torch tensors."""

    def test_scenario_large_and_small(self, tmp_path):
        tensors = {
            "w1": torch.rand((1024, 1024), dtype=torch.float32),
            "w2": torch.rand((1, 2, 3), dtype=torch.float64),
        }
        path = tmp_path / "model.tensorsafe"
        save_file(tensors, path)
        loaded = load_file(path)

        for name, tensor in tensors.items():
            assert loaded[name].dtype == tensor.dtype
            assert loaded[name].shape == tensor.shape
            assert torch.equal(loaded[name], tensor)

    def test_scenario_scalar(self):
        loaded = load(save({"w1": torch.tensor(2.5, dtype=torch.float64)}))
        assert loaded["w1"].shape == torch.Size([])
        assert loaded["w1"].item() == 2.5

    def test_scenario_metadata(self, tmp_path):
        path = tmp_path / "model.tensorsafe"
        save_file({"w": torch.zeros(2)}, path, metadata={"hello": "world"})
        with TensorReader(path) as reader:
            assert reader.metadata() == {"hello": "world"}

    def test_bfloat16(self):
        tensor = torch.rand(8).to(torch.bfloat16)
        loaded = load(save({"x": tensor}))
        assert loaded["x"].dtype == torch.bfloat16
        assert torch.equal(loaded["x"], tensor)

    def test_zero_size(self):
        loaded = load(save({"empty": torch.zeros((2, 0))}))
        assert loaded["empty"].shape == torch.Size([2, 0])

    def test_shared_storage(self):
        base = torch.zeros(10)
        with pytest.raises(SharedStorageError) as exc_info:
            save({"a": base[:5], "b": base[5:]})
        assert exc_info.value.groups == [["a", "b"]]

    def test_safe_open_torch(self, tmp_path):
        path = tmp_path / "model.tensorsafe"
        save_file({"a": torch.arange(4, dtype=torch.int64)}, path)
        with safe_open(path, framework="pt") as f:
            tensor = f.get_tensor("a")
            assert isinstance(tensor, torch.Tensor)
            assert tensor.tolist() == [0, 1, 2, 3]

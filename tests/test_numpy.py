"""Tests for the numpy adapter."""

import ml_dtypes
import numpy as np
import pytest

from tensorsafe.dtypes import DType
from tensorsafe.exceptions import DuplicateTensorName, InvalidInput
from tensorsafe.numpy import (
    from_view,
    load,
    load_file,
    save,
    save_file,
    to_dtype,
    to_numpy_dtype,
    to_view,
)
from tensorsafe.reader import TensorReader, safe_open


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


class TestDtypeMapping:
    """Tests for numpy dtype conversion."""

    @pytest.mark.parametrize(
        "np_dtype,dtype",
        [
            (np.bool_, DType.BOOL),
            (np.uint8, DType.U8),
            (np.int8, DType.I8),
            (np.uint16, DType.U16),
            (np.int16, DType.I16),
            (np.uint32, DType.U32),
            (np.int32, DType.I32),
            (np.uint64, DType.U64),
            (np.int64, DType.I64),
            (np.float16, DType.F16),
            (np.float32, DType.F32),
            (np.float64, DType.F64),
            (ml_dtypes.bfloat16, DType.BF16),
            (ml_dtypes.float8_e4m3fn, DType.F8_E4M3),
            (ml_dtypes.float8_e5m2, DType.F8_E5M2),
        ],
    )
    def test_round_trip(self, np_dtype, dtype):
        assert to_dtype(np.dtype(np_dtype)) is dtype
        assert to_numpy_dtype(dtype) == np.dtype(np_dtype)

    def test_big_endian_maps_to_same_dtype(self):
        assert to_dtype(np.dtype(">f4")) is DType.F32

    def test_unsupported(self):
        with pytest.raises(InvalidInput, match="Unsupported dtype"):
            to_dtype(np.dtype(np.complex64))


class TestToView:
    """Tests for wrapping arrays."""

    def test_wraps_without_copy(self):
        array = np.arange(4, dtype=np.int16)
        view = to_view("x", array)
        assert view.dtype is DType.I16
        assert view.shape == (4,)
        assert view.tobytes() == array.tobytes()

    def test_rejects_non_arrays(self):
        with pytest.raises(InvalidInput, match="Key `x` is invalid.*received list"):
            to_view("x", [1, 2, 3])

    def test_rejects_object_arrays(self):
        with pytest.raises(InvalidInput, match="object dtype"):
            to_view("x", np.array([object()], dtype=object))

    def test_rejects_unsupported_dtype(self):
        with pytest.raises(InvalidInput, match="Tensor `x` has unsupported dtype"):
            to_view("x", np.zeros(2, dtype=np.complex128))

    def test_rejects_non_contiguous(self):
        array = np.zeros((4, 4), dtype=np.float32)[:, ::2]
        with pytest.raises(InvalidInput, match="np.ascontiguousarray"):
            to_view("strided", array)

    def test_fortran_order_is_non_contiguous(self):
        array = np.asfortranarray(np.zeros((2, 3), dtype=np.float32))
        with pytest.raises(InvalidInput, match="non contiguous"):
            to_view("f", array)

    def test_big_endian_is_converted(self):
        array = np.array([1.5, -2.0], dtype=">f4")
        view = to_view("x", array)
        assert view.tobytes() == np.array([1.5, -2.0], dtype="<f4").tobytes()


class TestFromView:
    """Tests for building arrays from views."""

    def test_copy_is_writable(self):
        view = to_view("x", np.arange(3, dtype=np.float64))
        array = from_view(view)
        array[0] = 10
        assert array.tolist() == [10, 1, 2]

    def test_zero_copy_is_read_only(self):
        view = to_view("x", np.arange(3, dtype=np.float64))
        array = from_view(view, copy=False)
        assert not array.flags.writeable

    def test_zero_size(self):
        view = to_view("x", np.zeros((2, 0), dtype=np.int32))
        array = from_view(view)
        assert array.shape == (2, 0)
        assert array.dtype == np.int32


class TestSaveLoad:
    """Round-trip tests for numpy arrays."""

    def test_scenario_large_and_small(self, tmp_path, rng):
        tensors = {
            "w1": rng.random((1024, 1024), dtype=np.float32),
            "w2": rng.random((1, 2, 3)),
        }
        path = tmp_path / "model.tensorsafe"
        save_file(tensors, path)
        loaded = load_file(path)

        assert set(loaded) == {"w1", "w2"}
        for name, array in tensors.items():
            assert loaded[name].dtype == array.dtype
            assert loaded[name].shape == array.shape
            np.testing.assert_array_equal(loaded[name], array)

    def test_scenario_scalar(self):
        loaded = load(save({"w1": np.array(3.25, dtype=np.float64)}))
        assert loaded["w1"].shape == ()
        assert loaded["w1"].dtype == np.float64
        assert loaded["w1"] == 3.25

    def test_scenario_metadata(self, tmp_path):
        path = tmp_path / "model.tensorsafe"
        save_file({"w": np.zeros(2, dtype=np.uint8)}, path, metadata={"hello": "world"})
        with TensorReader(path) as reader:
            assert reader.metadata() == {"hello": "world"}

    def test_zero_size_round_trip(self):
        loaded = load(save({"empty": np.zeros((3, 0, 2), dtype=np.float16)}))
        assert loaded["empty"].shape == (3, 0, 2)
        assert loaded["empty"].dtype == np.float16

    def test_all_dtypes(self, rng):
        tensors = {
            "bool": rng.random(5) > 0.5,
            "u8": rng.integers(0, 255, 5, dtype=np.uint8),
            "i8": rng.integers(-128, 127, 5, dtype=np.int8),
            "u16": rng.integers(0, 1000, 5, dtype=np.uint16),
            "i16": rng.integers(-1000, 1000, 5, dtype=np.int16),
            "u32": rng.integers(0, 1000, 5, dtype=np.uint32),
            "i32": rng.integers(-1000, 1000, 5, dtype=np.int32),
            "u64": rng.integers(0, 1000, 5, dtype=np.uint64),
            "i64": rng.integers(-1000, 1000, 5, dtype=np.int64),
            "f16": rng.random(5).astype(np.float16),
            "bf16": rng.random(5).astype(ml_dtypes.bfloat16),
            "f8e4m3": rng.random(5).astype(ml_dtypes.float8_e4m3fn),
            "f8e5m2": rng.random(5).astype(ml_dtypes.float8_e5m2),
            "f32": rng.random(5).astype(np.float32),
            "f64": rng.random(5),
        }
        loaded = load(save(tensors))

        for name, array in tensors.items():
            assert loaded[name].dtype == array.dtype
            assert loaded[name].tobytes() == array.tobytes()

    def test_loaded_arrays_can_be_saved_again(self, tmp_path):
        path = tmp_path / "model.tensorsafe"
        save_file({"a": np.ones(4, dtype=np.float32), "b": np.zeros(2)}, path)
        reloaded = load(save(load_file(path)))
        np.testing.assert_array_equal(reloaded["a"], np.ones(4))

    def test_load_file_without_mmap(self, tmp_path):
        path = tmp_path / "model.tensorsafe"
        save_file({"a": np.arange(3, dtype=np.int64)}, path)
        assert load_file(path, use_mmap=False)["a"].tolist() == [0, 1, 2]

    def test_key_normalization(self):
        loaded = load(save({b"weight": np.zeros(1, dtype=np.uint8)}))
        assert list(loaded) == ["weight"]

    def test_duplicate_after_normalization(self):
        with pytest.raises(DuplicateTensorName):
            save({"w": np.zeros(1), b"w": np.zeros(1)})

    def test_rejects_non_mapping(self):
        with pytest.raises(InvalidInput, match="Expected a mapping"):
            save([np.zeros(1)])

    def test_safe_open_numpy(self, tmp_path):
        path = tmp_path / "model.tensorsafe"
        save_file({"a": np.arange(6, dtype=np.int32).reshape(2, 3)}, path)
        with safe_open(path, framework="numpy") as f:
            np.testing.assert_array_equal(f.get_tensor("a"), [[0, 1, 2], [3, 4, 5]])

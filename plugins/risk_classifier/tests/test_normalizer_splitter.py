import numpy as np
import pytest

from plugins.risk_classifier.core import normalizer, splitter
from plugins.risk_classifier.core.errors import InsufficientDataError, MalformedInputError


def test_minmax_scales_into_unit_interval():
    params = normalizer.fit(np.array([[10.0], [20.0], [30.0]]), 1)

    scaled = normalizer.apply(np.array([[10.0], [20.0], [30.0]]), params)

    assert params.low == (10.0,) and params.high == (30.0,)
    assert scaled[:, 0].tolist() == [0.0, 0.5, 1.0]


def test_zero_range_feature_maps_to_zero():
    params = normalizer.fit(np.array([[5.0, 1.0], [5.0, 3.0]]), 2)

    scaled = normalizer.apply(np.array([[5.0, 2.0], [9.0, 3.0]]), params)

    assert np.isfinite(scaled).all()
    assert scaled[:, 0].tolist() == [0.0, 0.0]


def test_one_hot_columns_pass_through_and_input_is_not_mutated():
    matrix = np.array([[0.0, 1.0, 0.0], [10.0, 0.0, 1.0]])
    original = matrix.copy()
    params = normalizer.fit(matrix, 1)

    scaled = normalizer.apply(matrix, params)

    assert scaled[:, 1:].tolist() == original[:, 1:].tolist()
    assert np.array_equal(matrix, original)


def test_apply_is_not_cumulative():
    matrix = np.array([[1.0], [4.0], [7.0]])
    params = normalizer.fit(matrix, 1)

    first = normalizer.apply(matrix, params)
    second = normalizer.apply(matrix, params)

    assert np.array_equal(first, second)


def test_apply_accepts_single_vector():
    params = normalizer.fit(np.array([[0.0, 1.0], [4.0, 0.0]]), 1)

    assert normalizer.apply(np.array([2.0, 1.0]), params).tolist() == [0.5, 1.0]


def test_zscore_uses_population_std():
    params = normalizer.fit(np.array([[1.0], [3.0]]), 1, method="zscore")

    scaled = normalizer.apply(np.array([[1.0], [3.0]]), params)

    assert params.low == (2.0,) and params.high == (1.0,)
    assert scaled[:, 0].tolist() == [-1.0, 1.0]


def test_fit_rejects_empty_partition_and_unknown_method():
    with pytest.raises(InsufficientDataError):
        normalizer.fit(np.empty((0, 2)), 1)
    with pytest.raises(MalformedInputError):
        normalizer.fit(np.ones((2, 1)), 1, method="robust")


def test_contiguous_split_keeps_order():
    matrix = np.arange(10, dtype=float).reshape(10, 1)
    labels = np.array([0, 1] * 5)

    result = splitter.split(matrix, labels, 0.8)

    assert result.train_index.tolist() == list(range(8))
    assert result.test_index.tolist() == [8, 9]
    assert result.train_x[:, 0].tolist() == [float(i) for i in range(8)]
    assert result.test_y.tolist() == [0, 1]


def test_split_index_is_floored():
    result = splitter.split(np.zeros((7, 1)), np.zeros(7), 0.5)

    assert len(result.train_index) == 3 and len(result.test_index) == 4


def test_seeded_shuffle_is_reproducible():
    matrix = np.arange(20, dtype=float).reshape(20, 1)
    labels = np.zeros(20)

    first = splitter.split(matrix, labels, 0.75, shuffle=True, seed=7)
    second = splitter.split(matrix, labels, 0.75, shuffle=True, seed=7)

    assert first.train_index.tolist() == second.train_index.tolist()
    assert sorted(first.train_index.tolist() + first.test_index.tolist()) == list(range(20))


def test_split_that_leaves_a_side_empty_is_insufficient():
    with pytest.raises(InsufficientDataError):
        splitter.split(np.zeros((1, 1)), np.zeros(1), 0.8)


@pytest.mark.parametrize("fraction", [0.0, 1.0, 1.5])
def test_split_fraction_must_be_open_interval(fraction):
    with pytest.raises(MalformedInputError):
        splitter.split(np.zeros((4, 1)), np.zeros(4), fraction)

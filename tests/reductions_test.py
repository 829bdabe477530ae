import sys

import numpy as np
import pandas as pd
import pytest

import groupframe as gf
from groupframe.reductions import (
    GROUPBY_REDUCTION_TYPES,
    Aggregate,
    GroupByReductionType,
    Reduce,
    check_aggregate,
    funname,
    resolve_function,
)
from groupframe.testing import assert_frame_equal

NUMERIC_COLUMNS = ["int64", "int8", "uint32", "bool", "float32", "float64", "complex128", "objfloat"]
NUMERIC_FUNCTIONS = [gf.sum, gf.prod, gf.maximum, gf.minimum, gf.mean, gf.var, gf.std, gf.first, gf.last, gf.length]
ORDERED_FUNCTIONS = [gf.maximum, gf.minimum, gf.first, gf.last, gf.length]


def make_frame(size, seed=None):
    size = max(size, 8)
    rng = np.random.default_rng(seed)
    rows = np.arange(size)
    # every group keeps at least one non-missing value
    missing = rows % 5 == 3
    floats = rng.normal(size=size)
    floats[rows % 7 == 2] = np.nan
    objfloat = np.array([v if not m else None for v, m in zip(rng.integers(0, 9, size) / 2, missing)], dtype=object)
    return gf.DataFrame(
        {
            "key": rows % 4,
            "int64": rng.integers(-5, 5, size),
            "int8": rng.integers(1, 3, size).astype(np.int8),
            "uint32": rng.integers(0, 10, size).astype(np.uint32),
            "bool": rng.integers(0, 2, size).astype(bool),
            "float32": rng.normal(size=size).astype(np.float32),
            "float64": floats,
            "complex128": rng.normal(size=size) + 1j * rng.normal(size=size),
            "objfloat": objfloat,
            "str": [f"s{v}" for v in rng.integers(0, 5, size)],
            "cat": pd.Categorical.from_codes(np.where(missing, -1, rng.integers(0, 3, size)), categories=["c", "b", "a"]),
        }
    )


def groupings(df):
    gd = gf.groupby(df, "key")
    yield gd
    yield gd[gf.Not(1)]
    yield gf.groupby(df, "key", sort=True)[[3, 0]]


def compare_paths(gd, col, f):
    fast = gf.combine(gd, (col, f, "r"))
    generic = gf.combine(gd, (col, lambda x: f(x), "r"))
    assert_frame_equal(fast, generic, check_exact=False, rtol=1e-4, atol=1e-5)
    return fast


class TestReductions:
    def test_reductions_docstrings(self):
        import doctest

        reductions_module = sys.modules["groupframe.reductions"]
        result = doctest.testmod(
            reductions_module, optionflags=doctest.ELLIPSIS | doctest.NORMALIZE_WHITESPACE
        )
        assert result.failed == 0, f"Doctest failed: {result.failed} failures"

    def test_reduction_types(self):
        assert str(GroupByReductionType.MAX) == "maximum"
        assert "length" in GROUPBY_REDUCTION_TYPES
        assert len(GROUPBY_REDUCTION_TYPES) == 10

    def test_registry(self):
        assert check_aggregate(gf.sum) == Reduce(GroupByReductionType.SUM)
        assert check_aggregate(np.sum) is check_aggregate(gf.sum)
        assert check_aggregate("max") == Reduce(GroupByReductionType.MAX)
        assert check_aggregate(len) == Aggregate(GroupByReductionType.LENGTH)
        assert check_aggregate(gf.compose(gf.first, gf.skipmissing)).condf is not None
        assert check_aggregate(gf.compose(gf.sum, gf.first)) is None
        assert check_aggregate(max) is None
        assert check_aggregate("median") is None

        assert resolve_function("min") is gf.minimum
        assert resolve_function(gf.sum) is gf.sum
        with pytest.raises(gf.ArgumentError):
            resolve_function("median")

    def test_funname(self):
        assert funname(gf.sum) == "sum"
        assert funname("custom") == "custom"
        assert funname(lambda x: x) == "function"
        assert funname(gf.compose(gf.var, gf.skipmissing)) == "var_skipmissing"
        assert funname(object()) == "function"

    def test_compose(self):
        f = gf.compose(gf.mean, gf.skipmissing)
        assert f == gf.compose(gf.mean, gf.skipmissing)
        assert hash(f) == hash(gf.compose(gf.mean, gf.skipmissing))
        assert f != gf.compose(gf.mean, gf.first)
        assert f([1.0, None, 3.0]) == 2.0

    def test_plain_reductions(self):
        assert gf.sum([1, 2, 3]) == 6
        assert gf.sum([]) == 0
        assert gf.sum([1, None]) is gf.missing
        assert gf.prod([2, 3]) == 6
        assert gf.maximum([1, 5, 2]) == 5
        assert np.isnan(gf.minimum(np.array([1.0, np.nan])))
        assert np.isnan(gf.maximum(np.array([np.nan, 1.0], dtype=object)))
        assert gf.maximum(["a", "c", "b"]) == "c"
        assert gf.maximum(["a", None]) is gf.missing
        assert gf.mean([1, 2]) == 1.5
        assert gf.mean([1, None]) is gf.missing
        assert gf.var([1, 2, 3]) == 1.0
        assert gf.std([1, 2, 3]) == 1.0
        assert np.isnan(gf.var([1]))
        assert np.isnan(gf.std(np.array([2.0])))
        assert gf.var(np.array([1 + 1j, 1 - 1j])) == 2.0
        assert gf.var(np.array([1, 3], dtype=object)) == 2.0
        assert gf.std([1, None]) is gf.missing
        assert gf.first(["a", "b"]) == "a"
        assert gf.last(["a", "b"]) == "b"
        assert gf.length([None, 1]) == 2

        cat = pd.Categorical(["b", "a", None, "b"], categories=["b", "a"])
        assert gf.maximum(cat[:2]) == "a"
        assert gf.minimum(cat[:2]) == "b"
        assert gf.maximum(cat) is gf.missing
        assert gf.first(cat[2:]) is gf.missing
        assert gf.maximum(gf.skipmissing(cat)) == "a"
        assert list(gf.skipmissing(cat)) == ["b", "a", "b"]
        assert gf.skipmissing(np.array([1.0, np.nan])).tolist()[0] == 1.0

    def test_plain_reduction_errors(self):
        cat = pd.Categorical(["a"])
        for f in (gf.sum, gf.prod, gf.mean, gf.var, gf.std):
            with pytest.raises(TypeError):
                f(cat)
        for f in (gf.maximum, gf.minimum, gf.first, gf.last, gf.mean):
            with pytest.raises(gf.ArgumentError):
                f([])

    @pytest.mark.parametrize("prob_size", pytest.prob_size)
    @pytest.mark.parametrize("col", NUMERIC_COLUMNS)
    @pytest.mark.parametrize("fun", NUMERIC_FUNCTIONS)
    def test_fastpath_matches_generic(self, prob_size, col, fun):
        df = make_frame(prob_size, pytest.seed)
        for gd in groupings(df):
            compare_paths(gd, col, fun)
            compare_paths(gd, col, gf.compose(fun, gf.skipmissing))

    @pytest.mark.parametrize("prob_size", pytest.prob_size)
    @pytest.mark.parametrize("col", ["str", "cat"])
    @pytest.mark.parametrize("fun", ORDERED_FUNCTIONS)
    def test_fastpath_matches_generic_ordered(self, prob_size, col, fun):
        df = make_frame(prob_size, pytest.seed)
        for gd in groupings(df):
            compare_paths(gd, col, fun)
            compare_paths(gd, col, gf.compose(fun, gf.skipmissing))

    def test_fastpath_dtypes(self):
        df = gf.DataFrame(
            {
                "k": [1, 1, 2],
                "i8": np.array([1, 2, 3], dtype=np.int8),
                "u1": np.array([1, 2, 3], dtype=np.uint8),
                "f4": np.array([1, 2, 3], dtype=np.float32),
                "b": [True, True, False],
                "c": np.array([1j, 1, 2], dtype=np.complex64),
            }
        )
        gd = gf.groupby(df, "k")
        res = gf.combine(
            gd,
            ("i8", gf.sum),
            ("u1", gf.sum),
            ("i8", gf.maximum),
            ("f4", gf.mean),
            ("i8", gf.mean),
            ("b", gf.sum),
            ("b", gf.maximum),
            ("c", gf.var),
            ("f4", gf.var),
            ("u1", gf.first),
        )
        assert res.dtypes == {
            "k": np.dtype(np.int64),
            "i8_sum": np.dtype(np.int64),
            "u1_sum": np.dtype(np.uint64),
            "i8_maximum": np.dtype(np.int8),
            "f4_mean": np.dtype(np.float32),
            "i8_mean": np.dtype(np.float64),
            "b_sum": np.dtype(np.int64),
            "b_maximum": np.dtype(bool),
            "c_var": np.dtype(np.float32),
            "f4_var": np.dtype(np.float32),
            "u1_first": np.dtype(np.uint8),
        }
        assert res["b_sum"].tolist() == [2, 0]
        assert np.isnan(res["f4_var"][1])
        assert res["c_var"][0] == pytest.approx(1.0)

    def test_nan_propagation(self):
        df = gf.DataFrame({"k": [1, 1, 2, 2], "x": [np.nan, 1.0, 2.0, 3.0]})
        gd = gf.groupby(df, "k")
        for f in (gf.sum, gf.maximum, gf.minimum, gf.mean):
            res = compare_paths(gd, "x", f)
            assert np.isnan(res["r"][0])
            assert not np.isnan(res["r"][1])

    def test_missing_values(self):
        df = gf.DataFrame({"k": [1, 1, 2, 2], "x": [None, 1, 2, 3]})
        gd = gf.groupby(df, "k")
        for f in (gf.sum, gf.prod, gf.maximum, gf.minimum, gf.mean, gf.var, gf.std, gf.first):
            res = compare_paths(gd, "x", f)
            assert res["r"][0] is gf.missing
        res = compare_paths(gd, "x", gf.compose(gf.sum, gf.skipmissing))
        assert res["r"].tolist() == [1, 5]
        assert res["r"].dtype == np.dtype(np.int64)
        res = compare_paths(gd, "x", gf.compose(gf.mean, gf.skipmissing))
        assert res["r"].tolist() == [1.0, 2.5]
        res = compare_paths(gd, "x", gf.compose(gf.first, gf.skipmissing))
        assert res["r"].tolist() == [1, 2]
        res = compare_paths(gd, "x", gf.last)
        assert res["r"].tolist() == [1, 3]

    def test_all_missing_group(self):
        df = gf.DataFrame({"k": [1, 1, 2], "x": [None, None, 2.0], "c": pd.Categorical([None, None, "a"])})
        gd = gf.groupby(df, "k")
        for col in ("x", "c"):
            for f in (gf.maximum, gf.minimum, gf.first, gf.last):
                g = gf.compose(f, gf.skipmissing)
                with pytest.raises(gf.ArgumentError):
                    gf.combine(gd, (col, g))
                with pytest.raises(gf.ArgumentError):
                    gf.combine(gd, (col, lambda x: g(x)))
        with pytest.raises(gf.ArgumentError):
            gf.combine(gd, ("x", gf.compose(gf.mean, gf.skipmissing)))
        with pytest.raises(gf.ArgumentError):
            gf.combine(gd, ("x", lambda x: gf.mean(gf.skipmissing(x))))

        res = compare_paths(gd, "x", gf.compose(gf.sum, gf.skipmissing))
        assert res["r"].tolist() == [0, 2.0]
        res = compare_paths(gd, "x", gf.compose(gf.var, gf.skipmissing))
        assert np.isnan(res["r"][0]) and np.isnan(res["r"][1])

    def test_categorical_sum_fails(self):
        df = gf.DataFrame({"k": [1, 2], "c": pd.Categorical(["a", "b"])})
        gd = gf.groupby(df, "k")
        with pytest.raises(TypeError):
            gf.combine(gd, ("c", gf.sum))
        with pytest.raises(TypeError):
            gf.combine(gd, ("c", gf.var))

    def test_datetime_columns(self):
        t = np.array(["2024-01-01", "2024-03-01", "2024-02-01"], dtype="datetime64[ns]")
        df = gf.DataFrame({"k": [1, 1, 2], "t": t})
        gd = gf.groupby(df, "k")
        res = gf.combine(gd, ("t", gf.maximum), ("t", gf.first), gf.nrow)
        assert res["t_maximum"].dtype == t.dtype
        assert res["t_maximum"].tolist() == [t[1].item(), t[2].item()]
        assert res["t_first"].tolist() == [t[0].item(), t[2].item()]

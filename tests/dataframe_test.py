import numpy as np
import pandas as pd
import pytest

import groupframe as gf
from groupframe import dataframe
from groupframe.testing import assert_frame_equal


def build_frame(size, seed=None):
    rng = np.random.default_rng(seed)
    return gf.DataFrame(
        {
            "key": rng.integers(0, 5, size),
            "val": rng.normal(size=size),
            "label": [f"s{i % 3}" for i in range(size)],
        }
    )


class TestDataFrame:
    def test_dataframe_docstrings(self):
        import doctest

        result = doctest.testmod(
            dataframe, optionflags=doctest.ELLIPSIS | doctest.NORMALIZE_WHITESPACE
        )
        assert result.failed == 0, f"Doctest failed: {result.failed} failures"

    def test_construction(self):
        df = gf.DataFrame({"a": [1, 2], "b": ["x", None]})
        assert df.columns == ["a", "b"]
        assert df.shape == (2, 2)
        assert len(df) == 2
        assert df.ncols == 2
        assert df.dtypes["a"] == np.dtype(np.int64)
        assert df["b"][1] is gf.missing
        assert df.a.tolist() == [1, 2]

        df = gf.DataFrame([[1, 2], [3.0, 4.0]], columns=["x", "y"])
        assert df.columns == ["x", "y"]
        assert df["y"].dtype == np.dtype(np.float64)
        assert gf.DataFrame([[1], [2]]).columns == ["0", "1"]

        assert gf.DataFrame().shape == (0, 0)

    def test_construction_errors(self):
        with pytest.raises(ValueError):
            gf.DataFrame({"a": [1, 2], "b": [1]})
        with pytest.raises(ValueError):
            gf.DataFrame([[1]], columns=["a", "b"])
        with pytest.raises(ValueError):
            gf.DataFrame(5)
        with pytest.raises(TypeError):
            gf.DataFrame({1: [1]})

    def test_pandas_conversion(self):
        pd_df = pd.DataFrame({"a": [1, 2], "b": pd.Categorical(["x", "y"])}, index=[5, 6])
        df = gf.DataFrame.from_pandas(pd_df)
        assert df.columns == ["a", "b"]
        assert isinstance(df["b"], pd.Categorical)
        back = df.to_pandas()
        assert back.index.tolist() == [0, 1]
        assert back["a"].tolist() == [1, 2]

    def test_row_access(self):
        df = gf.DataFrame({"a": [1, 2, 3], "b": pd.Categorical(["x", None, "y"])})
        assert df[0] == gf.Row({"a": 1, "b": "x"})
        assert df[-1]["b"] == "y"
        assert df[1]["b"] is gf.missing
        with pytest.raises(IndexError):
            df[3]
        with pytest.raises(KeyError):
            df["c"]

    def test_row_selection(self):
        df = gf.DataFrame({"a": [1, 2, 3], "b": [4, 5, 6]})
        assert df[1:]["a"].tolist() == [2, 3]
        assert df[[2, 0]]["b"].tolist() == [6, 4]
        assert df[np.array([True, False, True])]["a"].tolist() == [1, 3]
        assert df[["b"]].columns == ["b"]
        with pytest.raises(IndexError):
            df[np.array([True, False])]
        with pytest.raises(IndexError):
            df[1.5]

    def test_setitem_delitem(self):
        df = gf.DataFrame({"a": [1, 2]})
        df["b"] = [3, 4]
        assert df.columns == ["a", "b"]
        with pytest.raises(ValueError):
            df["c"] = [1]
        with pytest.raises(TypeError):
            df[0.5] = [1, 2]
        del df["a"]
        assert df.columns == ["b"]
        del df["b"]
        assert df.shape == (0, 0)

    def test_equality(self):
        df1 = gf.DataFrame({"a": [1, None]})
        df2 = gf.DataFrame({"a": [1, None]})
        assert (df1 == df2) is pd.NA
        assert df1.equals(df2)
        assert (df1 == gf.DataFrame({"a": [2, None]})) is False
        assert (df1 != gf.DataFrame({"b": [1, None]})) is True

        nan1 = gf.DataFrame({"x": [np.nan]})
        assert (nan1 == nan1.copy()) is False
        assert nan1.equals(nan1.copy())

        cat = gf.DataFrame({"a": pd.Categorical(["x", "y"])})
        assert cat.equals(gf.DataFrame({"a": ["x", "y"]}))
        assert not cat.equals([1, 2])

    def test_take_select_hcat(self):
        df = gf.DataFrame({"a": [1, 2, 3], "b": [4, 5, 6]})
        assert df.take(np.array([2, 2]))["a"].tolist() == [3, 3]
        assert df.select(["b", 0]).columns == ["b", "a"]
        with pytest.raises(gf.ArgumentError):
            df.select(["a", "a"])
        with pytest.raises(KeyError):
            df.select(["c"])
        with pytest.raises(IndexError):
            df.column_index(2)
        with pytest.raises(TypeError):
            df.column_index(1.0)

        both = df.hcat(gf.DataFrame({"c": [7, 8, 9]}))
        assert both.columns == ["a", "b", "c"]
        assert df.columns == ["a", "b"]
        with pytest.raises(gf.ArgumentError):
            df.hcat(gf.DataFrame({"a": [1, 2, 3]}))
        with pytest.raises(ValueError):
            df.hcat(gf.DataFrame({"c": [1]}))
        assert gf.DataFrame().hcat(df).columns == ["a", "b"]

    def test_concat(self):
        df1 = gf.DataFrame({"a": [1], "b": pd.Categorical(["x"])})
        df2 = gf.DataFrame({"a": [2.5], "b": ["y"]})
        res = gf.DataFrame.concat([df1, df2])
        assert res["a"].dtype == np.dtype(np.float64)
        assert res["b"].tolist() == ["x", "y"]
        assert gf.DataFrame.concat([]).shape == (0, 0)
        with pytest.raises(gf.ArgumentError):
            gf.DataFrame.concat([df1, gf.DataFrame({"a": [1]})])

    def test_copy_rename(self):
        df = gf.DataFrame({"a": [1, 2], "b": [3, 4]})
        deep = df.copy()
        deep["a"][0] = 10
        assert df["a"][0] == 1
        shallow = df.copy(deep=False)
        assert shallow["a"] is df["a"]

        assert df.rename(str.upper).columns == ["A", "B"]
        assert df.columns == ["a", "b"]
        assert df.rename({"a": "b", "b": "a"}).columns == ["b", "a"]
        assert df.rename({"a": "c"}, inplace=True) is None
        assert df.columns == ["c", "b"]
        with pytest.raises(gf.ArgumentError):
            df.rename({"c": "b"})
        with pytest.raises(TypeError):
            df.rename(5)

    def test_consistency(self):
        df = gf.DataFrame({"a": [1, 2], "b": [3, 4]})
        df._check_consistency()
        df.data["b"] = np.array([1, 2, 3])
        with pytest.raises(AssertionError):
            df._check_consistency()
        with pytest.raises(AssertionError):
            df.groupby("a")

    @pytest.mark.parametrize("prob_size", pytest.prob_size)
    def test_subdataframe(self, prob_size):
        df = build_frame(prob_size, pytest.seed)
        rows = np.arange(0, prob_size, 2)
        sdf = gf.SubDataFrame(df, rows)
        assert sdf.parent is df
        assert len(sdf) == len(rows)
        assert sdf.shape == (len(rows), 3)
        assert sdf.columns == df.columns
        assert "val" in sdf
        assert np.array_equal(sdf["val"], df["val"][rows])
        assert np.array_equal(sdf.key, df["key"][rows])
        assert sdf[0] == df[0]
        assert_frame_equal(sdf.to_dataframe(), df.take(rows))
        assert_frame_equal(sdf[1:3], df.take(rows[1:3]))
        assert sdf[["key"]].columns == ["key"]
        assert sdf.equals(df.take(rows))
        assert (sdf == df.take(rows)) is True
        with pytest.raises(AttributeError):
            sdf.missing_column

import numpy as np
import pandas as pd

import groupframe as gf
from groupframe import config, errors, hashing
from groupframe.hashing import (
    MISSING_KEY,
    NAN_KEY,
    NEG_ZERO_KEY,
    compare,
    compare_rows,
    hashkey,
    isequal,
    row_hash,
    row_key,
    sort_ranks,
    sortperm_rows,
)


class TestHashing:
    def test_hashing_docstrings(self):
        import doctest

        result = doctest.testmod(hashing, optionflags=doctest.ELLIPSIS | doctest.NORMALIZE_WHITESPACE)
        assert result.failed == 0, f"Doctest failed: {result.failed} failures"

    def test_errors_docstrings(self):
        import doctest

        result = doctest.testmod(errors, optionflags=doctest.ELLIPSIS | doctest.NORMALIZE_WHITESPACE)
        assert result.failed == 0, f"Doctest failed: {result.failed} failures"

    def test_hashkey(self):
        assert hashkey(gf.missing) is MISSING_KEY
        assert hashkey(None) is MISSING_KEY
        assert hashkey(np.nan) is NAN_KEY
        assert hashkey(complex(np.nan, 0)) is NAN_KEY
        assert hashkey(np.float16("nan")) is NAN_KEY
        assert hashkey("a") == "a"
        assert type(hashkey(np.int32(3))) is int

    def test_isequal(self):
        assert isequal(np.nan, np.float32("nan"))
        assert not isequal(np.nan, gf.missing)
        assert isequal(np.uint8(2), np.int64(2))
        assert isequal(2, 2.0)
        assert not isequal("1", 1)
        assert not isequal(1, gf.missing)

    def test_signed_zero(self):
        assert hashkey(-0.0) is NEG_ZERO_KEY
        assert hashkey(np.float32(-0.0)) is NEG_ZERO_KEY
        assert hashkey(0.0) == hashkey(0) == 0
        assert hashkey(complex(0.0, -0.0)) != hashkey(0j)
        assert hashkey(complex(-0.0, 1.0)) == hashkey(complex(-0.0, 1.0))
        assert not isequal(0.0, -0.0)
        assert not isequal(0, np.float16(-0.0))
        assert isequal(-0.0, np.float32(-0.0))
        assert isequal(complex(1.0, 0.0), 1)

        assert compare(-0.0, 0.0) == -1
        assert compare(0.0, -0.0) == 1
        assert compare(0, 0.0) == 0
        assert compare(-0.0, -1) == 1
        assert sort_ranks(np.array([np.nan, 0.0, -0.0, 1.0, 0.0])).tolist() == [3, 1, 0, 2, 1]

    def test_row_key(self):
        cols = [np.array([1.0, 1.0, np.nan]), gf.dtypes.as_column(["a", "a", None])]
        assert row_key(cols, 0) == row_key(cols, 1)
        assert row_key(cols, 2) == (NAN_KEY, MISSING_KEY)
        assert row_hash(cols, 0) == row_hash(cols, 1)

        cat = pd.Categorical(["x", None])
        assert row_key([cat], 0) == ("x",)
        assert row_key([cat], 1) == (MISSING_KEY,)

    def test_compare(self):
        assert compare(1, 2) == -1
        assert compare(2, 1) == 1
        assert compare(1, 1) == 0
        assert compare(np.nan, 1e300) == 1
        assert compare(gf.missing, np.nan) == 1
        assert compare(gf.missing, np.nan, missing_last=False) == -1

        config.set_missing_order(config.MissingOrder.FIRST)
        assert compare(gf.missing, 1) == -1

    def test_compare_rows(self):
        cat = pd.Categorical(["b", "a", None], categories=["b", "a"])
        nums = np.array([1, 1, 0])
        assert compare_rows([cat], 0, 1) == -1
        assert compare_rows([cat], 2, 1) == 1
        assert compare_rows([cat], 2, 1, missing_last=False) == -1
        assert compare_rows([nums, cat], 0, 1) == -1
        assert compare_rows([nums, cat], 2, 0) == -1
        assert compare_rows([nums], 0, 1) == 0

    def test_sort_ranks(self):
        cat = pd.Categorical(["b", None, "a"], categories=["b", "a"])
        assert sort_ranks(cat).tolist() == [0, 2, 1]
        assert sort_ranks(cat, missing_last=False).tolist() == [0, -1, 1]

        obj = gf.dtypes.as_column(["b", None, "a", "b"])
        assert sort_ranks(obj).tolist() == [1, 2, 0, 1]

        nums = np.array([3, 1])
        assert sort_ranks(nums) is nums
        assert sort_ranks(np.array([2.5, np.nan, -1.0, 2.5])).tolist() == [1, 2, 0, 1]

    def test_sortperm_rows(self):
        a = np.array([2, 1, 2, 1])
        b = gf.dtypes.as_column(["y", "z", "x", None])
        rows = np.arange(4)
        assert sortperm_rows([a, b], rows).tolist() == [1, 3, 2, 0]
        assert sortperm_rows([a, b], rows, missing_last=False).tolist() == [3, 1, 2, 0]
        assert sortperm_rows([], rows).tolist() == [0, 1, 2, 3]
        assert sortperm_rows([a], np.array([0, 1])).tolist() == [1, 0]

"""
Hashing, equality and ordering of grouping keys.

Grouping compares keys with strict equality: missing equals missing, every NaN
equals every other NaN, and numbers of different width or signedness are equal
whenever their values are. Negative zero is distinct from zero. `hashkey` maps a scalar onto a Python object whose
builtin hash and ``==`` implement exactly that, so key tuples can be stored in
ordinary dicts.

Ordering places ordinary values first in their natural order, then NaN, then
missing (or missing first, see `groupframe.config.MissingOrder`). Categorical
columns order by category position.
"""

from __future__ import annotations

from typing import Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from groupframe import config
from groupframe.dtypes import Column, is_categorical, ismissing

__all__ = [
    "MISSING_KEY",
    "NAN_KEY",
    "NEG_ZERO_KEY",
    "hashkey",
    "isequal",
    "value_at",
    "row_key",
    "row_hash",
    "sortkey",
    "compare",
    "compare_rows",
    "sort_ranks",
    "sortperm_rows",
]


class _KeySentinel:
    """Singleton standing in for a key value that is not equal to itself under ``==``."""

    __slots__ = ("name",)

    def __init__(self, name: str) -> None:
        self.name = name

    def __repr__(self) -> str:
        return self.name

    def __reduce__(self) -> str:
        return self.name

    def __copy__(self) -> "_KeySentinel":
        return self

    def __deepcopy__(self, memo) -> "_KeySentinel":
        return self


MISSING_KEY = _KeySentinel("MISSING_KEY")
NAN_KEY = _KeySentinel("NAN_KEY")
NEG_ZERO_KEY = _KeySentinel("NEG_ZERO_KEY")


def _is_neg_zero(x) -> bool:
    return x == 0 and bool(np.signbit(x))


def hashkey(val: object) -> object:
    """
    Normalise a scalar for hashing and equality.

    Examples
    --------
    >>> import numpy as np
    >>> from groupframe.hashing import hashkey
    >>> hashkey(float("nan")) is hashkey(np.float32("nan"))
    True
    >>> hashkey(np.int8(3)) == hashkey(3.0)
    True
    >>> hashkey(-0.0) == hashkey(0.0)
    False

    """
    if ismissing(val):
        return MISSING_KEY
    if isinstance(val, (complex, np.complexfloating)):
        if val != val:
            return NAN_KEY
        re, im = float(val.real), float(val.imag)
        if _is_neg_zero(re) or _is_neg_zero(im):
            return (hashkey(re), hashkey(im))
        return complex(val)
    if isinstance(val, (float, np.floating)):
        if val != val:
            return NAN_KEY
        if _is_neg_zero(val):
            return NEG_ZERO_KEY
        return float(val)
    if isinstance(val, np.generic):
        return val.item()
    return val


def isequal(a: object, b: object) -> bool:
    """
    Strict equality of two scalars.

    Examples
    --------
    >>> from groupframe.hashing import isequal
    >>> from groupframe.dtypes import missing
    >>> isequal(missing, missing), isequal(float("nan"), float("nan")), isequal(1, 1.0)
    (True, True, True)

    """
    return bool(hashkey(a) == hashkey(b))


def value_at(col: Column, i: int) -> object:
    """Return entry `i` of `col`, decoding categoricals so that missing is ``pandas.NA``."""
    if is_categorical(col):
        code = col.codes[i]
        return pd.NA if code < 0 else col.categories[code]
    return col[i]


def row_key(columns: Sequence[Column], i: int) -> Tuple:
    """Return the hashable key of row `i` over `columns`."""
    return tuple(hashkey(value_at(col, i)) for col in columns)


def row_hash(columns: Sequence[Column], i: int) -> int:
    """Return the hash of row `i`; rows with equal keys hash equally."""
    return hash(row_key(columns, i))


def _missing_last(missing_last: Optional[bool]) -> bool:
    if missing_last is None:
        return config.get_missing_order() == config.MissingOrder.LAST
    return missing_last


def sortkey(val: object, missing_last: Optional[bool] = None) -> Tuple:
    """
    Return a tuple ordering `val` among the values of a column.

    Parameters
    ----------
    val : object
        A decoded column value.
    missing_last : bool, optional
        Place missing after every other value; read from `groupframe.config`
        when omitted.

    Returns
    -------
    tuple
        Comparable with the sort key of any other value of the same column.

    """
    if ismissing(val):
        return (2,) if _missing_last(missing_last) else (-1,)
    if isinstance(val, (float, np.floating)) and val != val:
        return (1,)
    if isinstance(val, (int, float, np.integer, np.floating, np.bool_)):
        # negative zero sorts before zero
        return (0, val, not _is_neg_zero(val))
    return (0, val)


def compare(a: object, b: object, missing_last: Optional[bool] = None) -> int:
    """Return -1, 0 or 1 as `a` sorts before, with or after `b`."""
    ka = sortkey(a, missing_last)
    kb = sortkey(b, missing_last)
    if ka < kb:
        return -1
    if kb < ka:
        return 1
    return 0


def compare_rows(
    columns: Sequence[Column], i: int, j: int, missing_last: Optional[bool] = None
) -> int:
    """Compare rows `i` and `j` lexicographically over `columns`."""
    last = _missing_last(missing_last)
    for col in columns:
        if is_categorical(col):
            ci, cj = int(col.codes[i]), int(col.codes[j])
            sentinel = len(col.categories) if last else -1
            ci, cj = (sentinel if ci < 0 else ci), (sentinel if cj < 0 else cj)
            c = (ci > cj) - (ci < cj)
        else:
            c = compare(col[i], col[j], last)
        if c != 0:
            return c
    return 0


def _dense_ranks(values: np.ndarray, missing_last: bool) -> np.ndarray:
    keys = [sortkey(v, missing_last) for v in values]
    order = sorted(range(len(keys)), key=keys.__getitem__)
    ranks = np.empty(len(keys), dtype=np.int64)
    rank = -1
    prev: Optional[Tuple] = None
    for pos in order:
        if prev is None or keys[pos] != prev:
            rank += 1
            prev = keys[pos]
        ranks[pos] = rank
    return ranks


def _float_ranks(col: np.ndarray) -> np.ndarray:
    """Dense ranks of a float column, NaN last and negative zero before zero."""
    neg = np.signbit(col) & (col == 0)
    order = np.lexsort((~neg, col))
    vals, signs = col[order], neg[order]
    same = (vals[1:] == vals[:-1]) | (np.isnan(vals[1:]) & np.isnan(vals[:-1]))
    new = np.ones(len(col), dtype=bool)
    new[1:] = ~(same & (signs[1:] == signs[:-1]))
    ranks = np.empty(len(col), dtype=np.int64)
    ranks[order] = np.cumsum(new) - 1
    return ranks


def sort_ranks(col: Column, missing_last: Optional[bool] = None) -> np.ndarray:
    """
    Return an array that sorts like `col` under ``numpy.lexsort``.

    Integer, complex and datetime columns are returned as they are; float
    columns map to dense ranks with NaN last and negative zero before zero;
    categorical columns map to their codes; other columns map to dense ranks.
    """
    last = _missing_last(missing_last)
    if is_categorical(col):
        codes = col.codes.astype(np.int64)
        sentinel = len(col.categories) if last else -1
        return np.where(codes < 0, sentinel, codes)
    if col.dtype.kind == "f":
        return _float_ranks(col)
    if col.dtype.kind in "biucmM":
        return col
    return _dense_ranks(col, last)


def sortperm_rows(
    columns: Sequence[Column], rows: np.ndarray, missing_last: Optional[bool] = None
) -> np.ndarray:
    """
    Return the permutation of `rows` that sorts them by their keys in `columns`.

    Raises
    ------
    TypeError
        Raised if a column holds values that cannot be ordered against each other.

    """
    keys = [sort_ranks(col[rows], missing_last) for col in columns]
    if not keys:
        return np.arange(len(rows))
    # np.lexsort sorts by the last key first
    return np.lexsort(keys[::-1])

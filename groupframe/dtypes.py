"""
Column and scalar type handling.

A column is either a one-dimensional ``numpy.ndarray`` or a ``pandas.Categorical``.
Strings, mixed values and missing values live in ``object`` arrays, where the
missing value is ``pandas.NA``; ``None`` is normalised to ``pandas.NA`` whenever a
column is built from user data.

The promotion rules are numpy's (``numpy.result_type``), extended so that
anything numpy cannot promote, as well as missing values, widens to ``object``.
"""

from __future__ import annotations

import builtins
from typing import Any, Sequence, Union

import numpy as np
import pandas as pd

__all__ = [
    "missing",
    "ismissing",
    "is_categorical",
    "is_vector",
    "resolve_scalar_dtype",
    "result_type",
    "value_fits",
    "allocate_column",
    "widen_column",
    "column_from_scalars",
    "as_column",
    "decode",
    "missing_mask",
]

missing = pd.NA

Column = Union[np.ndarray, pd.Categorical]

_NUMERIC_KINDS = "biufc"


def ismissing(val: object) -> bool:
    """
    Return True if `val` is the missing value.

    Examples
    --------
    >>> from groupframe.dtypes import ismissing, missing
    >>> ismissing(missing), ismissing(None), ismissing(float("nan"))
    (True, True, False)

    """
    return val is pd.NA or val is None


def is_categorical(col: object) -> bool:
    return isinstance(col, pd.Categorical)


def is_vector(val: object) -> bool:
    """Return True for the one-dimensional containers accepted as a column."""
    if isinstance(val, np.ndarray):
        return val.ndim == 1
    return isinstance(val, (list, pd.Series, pd.api.extensions.ExtensionArray))


def resolve_scalar_dtype(val: object) -> np.dtype:
    """
    Infer the column dtype able to hold `val`.

    Parameters
    ----------
    val : object
        The scalar to examine.

    Returns
    -------
    numpy.dtype
        ``bool``, a numeric dtype or ``object``.

    Examples
    --------
    >>> import numpy as np
    >>> from groupframe.dtypes import resolve_scalar_dtype
    >>> resolve_scalar_dtype(1), resolve_scalar_dtype(np.float32(2.5)), resolve_scalar_dtype("a")
    (dtype('int64'), dtype('float32'), dtype('O'))

    """
    if ismissing(val):
        return np.dtype(object)
    # Python bool or np.bool_
    if isinstance(val, (builtins.bool, np.bool_)):
        return np.dtype(bool)
    # numpy scalars keep their own width
    if isinstance(val, np.generic) and val.dtype.kind in _NUMERIC_KINDS + "mM":
        return val.dtype
    if isinstance(val, builtins.int):
        if -(2**63) <= val < 2**63:
            return np.dtype(np.int64)
        elif 0 <= val < 2**64:
            return np.dtype(np.uint64)
        return np.dtype(object)
    if isinstance(val, builtins.float):
        return np.dtype(np.float64)
    if isinstance(val, builtins.complex):
        return np.dtype(np.complex128)
    return np.dtype(object)


def result_type(*dtypes: np.dtype) -> np.dtype:
    """
    Return the smallest dtype able to hold values of every dtype in `dtypes`.

    Examples
    --------
    >>> import numpy as np
    >>> from groupframe.dtypes import result_type
    >>> result_type(np.dtype(np.int64), np.dtype(np.float32))
    dtype('float64')
    >>> result_type(np.dtype(np.int64), np.dtype(object))
    dtype('O')

    """
    if builtins.any(dt == np.dtype(object) for dt in dtypes):
        return np.dtype(object)
    try:
        return np.result_type(*dtypes)
    except TypeError:
        return np.dtype(object)


def value_fits(val: object, dtype: np.dtype) -> bool:
    """Return True if `val` can be stored in a column of `dtype` without widening."""
    if dtype == np.dtype(object):
        return True
    return result_type(dtype, resolve_scalar_dtype(val)) == dtype


def allocate_column(dtype: np.dtype, length: int) -> np.ndarray:
    """Allocate an uninitialised column; ``object`` columns start filled with missing."""
    if np.dtype(dtype) == np.dtype(object):
        return np.full(length, pd.NA, dtype=object)
    return np.empty(length, dtype=dtype)


def widen_column(col: np.ndarray, dtype: np.dtype, nfilled: int) -> np.ndarray:
    """
    Reallocate `col` with `dtype`, keeping its first `nfilled` entries.

    Parameters
    ----------
    col : numpy.ndarray
        The column being filled.
    dtype : numpy.dtype
        The promoted dtype.
    nfilled : int
        Number of leading entries already written.

    Returns
    -------
    numpy.ndarray
        A new column of the same length.

    """
    newcol = allocate_column(dtype, len(col))
    newcol[:nfilled] = col[:nfilled]
    return newcol


def column_from_scalars(values: Sequence[Any]) -> np.ndarray:
    """
    Build a column from a sequence of scalars, inferring the narrowest dtype.

    Examples
    --------
    >>> from groupframe.dtypes import column_from_scalars
    >>> column_from_scalars([1, 2.5])
    array([1. , 2.5])
    >>> column_from_scalars(["a", None])
    array(['a', <NA>], dtype=object)

    """
    n = len(values)
    if n == 0:
        return np.empty(0, dtype=object)
    dtype = result_type(*{resolve_scalar_dtype(v) for v in values})
    if dtype != np.dtype(object):
        return np.array(values, dtype=dtype)
    out = np.empty(n, dtype=object)
    # element-wise so that tuples and other sequences are stored as scalars
    for i, v in enumerate(values):
        out[i] = pd.NA if v is None else v
    return out


def as_column(values: object) -> Column:
    """
    Convert array-like user data to a column.

    Parameters
    ----------
    values : list, tuple, range, numpy.ndarray, pandas.Series, pandas.Categorical
        One-dimensional data.

    Returns
    -------
    numpy.ndarray or pandas.Categorical

    Raises
    ------
    ValueError
        Raised if `values` is not one-dimensional.

    """
    if isinstance(values, pd.Series):
        values = values.values
    if isinstance(values, pd.Categorical):
        return values
    if isinstance(values, pd.api.extensions.ExtensionArray):
        return column_from_scalars(list(values.to_numpy(dtype=object, na_value=pd.NA)))
    if isinstance(values, np.ndarray):
        if values.ndim != 1:
            raise ValueError(f"columns must be one-dimensional, got {values.ndim} dimensions")
        if values.dtype.kind in "US":
            return values.astype(object)
        if values.dtype == np.dtype(object):
            nones = np.fromiter((v is None for v in values), dtype=bool, count=len(values))
            if nones.any():
                values = values.copy()
                values[nones] = pd.NA
        return values
    if isinstance(values, (str, bytes)) or not hasattr(values, "__iter__"):
        raise ValueError(f"cannot build a column from a scalar of type {type(values).__name__}")
    return column_from_scalars(list(values))


def decode(col: Column) -> np.ndarray:
    """
    Return the values of `col` as a numpy array.

    Categorical columns are decoded to an ``object`` array in which missing entries
    are ``pandas.NA``; numpy columns are returned unchanged.
    """
    if not is_categorical(col):
        return col
    codes = col.codes
    categories = np.asarray(col.categories, dtype=object)
    if len(categories) == 0:
        return np.full(len(codes), pd.NA, dtype=object)
    out = categories[codes]
    out[codes < 0] = pd.NA
    return out


def missing_mask(col: Column) -> np.ndarray:
    """Return a boolean mask of the missing entries of `col`."""
    if is_categorical(col):
        return np.asarray(col.codes < 0)
    if col.dtype == np.dtype(object):
        return np.fromiter((ismissing(v) for v in col), dtype=bool, count=len(col))
    return np.zeros(len(col), dtype=bool)

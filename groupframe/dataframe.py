"""
In-memory tables.

`DataFrame` is an ordered mapping of column names to columns (one-dimensional
numpy arrays or ``pandas.Categorical`` objects) of equal length. `SubDataFrame`
is a read-only view of some rows of a DataFrame; grouped operations hand one
to the user function for every group.
"""

from __future__ import annotations

from collections import UserDict
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from typeguard import typechecked

from groupframe.dtypes import (
    Column,
    as_column,
    decode,
    ismissing,
    result_type,
)
from groupframe.errors import ArgumentError
from groupframe.hashing import isequal, value_at
from groupframe.row import Row

__all__ = ["DataFrame", "SubDataFrame"]


def _neg_zeros(col: np.ndarray) -> np.ndarray:
    """Mask of the entries of a numeric column that hold a negative zero in either part."""
    if col.dtype.kind == "c":
        return _neg_zeros(col.real) | _neg_zeros(col.imag)
    if col.dtype.kind != "f":
        return np.zeros(len(col), dtype=bool)
    return np.signbit(col) & (col == 0)


def _column_equal(left: Column, right: Column, strict: bool):
    """
    Compare two columns element-wise.

    Returns ``True`` or ``False``, or ``pandas.NA`` when not `strict` and the
    result depends on a missing value.
    """
    if len(left) != len(right):
        return False
    left, right = decode(left), decode(right)
    if left.dtype.kind in "biufcmM" and right.dtype.kind in "biufcmM":
        if strict and (left.dtype.kind in "fc" or right.dtype.kind in "fc"):
            return bool(
                np.array_equal(left, right, equal_nan=True)
                and np.array_equal(_neg_zeros(left), _neg_zeros(right))
            )
        return bool(np.array_equal(left, right))
    result = True
    for x, y in zip(left, right):
        if strict:
            if not isequal(x, y):
                return False
        elif ismissing(x) or ismissing(y):
            result = pd.NA
        elif not bool(x == y):
            return False
    return result


def _frames_equal(left, right, strict: bool):
    if list(left.columns) != list(right.columns) or len(left) != len(right):
        return False
    result = True
    for name in left.columns:
        eq = _column_equal(left[name], right[name], strict)
        if eq is False:
            return False
        if eq is pd.NA:
            result = pd.NA
    return result


def _row(frame, i: int) -> Row:
    n = len(frame)
    if not -n <= i < n:
        raise IndexError(f"row index {i} is out of bounds for a frame with {n} rows")
    return Row({name: value_at(frame[name], i % n) for name in frame.columns})


def _row_selector(key, nrows: int) -> Optional[np.ndarray]:
    """Return integer row positions for a row selector, or None if `key` selects columns."""
    if isinstance(key, slice):
        return np.arange(nrows)[key]
    if isinstance(key, (list, np.ndarray)):
        arr = np.asarray(key)
        if len(arr) > 0 and arr.dtype.kind not in "biu":
            return None
        if arr.dtype.kind == "b":
            if len(arr) != nrows:
                raise IndexError(f"boolean index has length {len(arr)}, expected {nrows}")
            return np.flatnonzero(arr)
        return arr.astype(np.int64)
    return None


class DataFrame(UserDict):
    """
    A table of named, equal-length columns.

    Parameters
    ----------
    initialdata : dict, list, DataFrame or pandas.DataFrame, optional
        The columns. Lists of columns are named by `columns`, or ``"0"``,
        ``"1"``, ... when `columns` is omitted. Python lists and tuples are
        converted with `groupframe.dtypes.as_column`.
    columns : list of str, optional
        Column names for list input.

    Raises
    ------
    ValueError
        Raised if the columns have different lengths or the input type is
        not supported.
    TypeError
        Raised if a column label is not a str.

    Examples
    --------
    >>> import groupframe as gf
    >>> df = gf.DataFrame({"a": [1, 1, 2], "b": ["x", "y", None]})
    >>> df.shape
    (3, 2)
    >>> df[2]["b"] is gf.missing
    True

    """

    def __init__(self, initialdata=None, columns: Optional[List[str]] = None):
        super().__init__()
        self._columns: List[str] = []
        self._nrows = 0

        if initialdata is None:
            return

        if isinstance(initialdata, DataFrame):
            # Copy constructor; columns are shared
            items = [(k, initialdata.data[k]) for k in initialdata._columns]
        elif isinstance(initialdata, pd.DataFrame):
            items = [(str(k), initialdata[k]) for k in initialdata.columns]
        elif isinstance(initialdata, dict):
            items = list(initialdata.items())
        elif isinstance(initialdata, list):
            if columns is not None:
                if len(columns) != len(initialdata):
                    raise ValueError("Must have as many labels as columns")
                keys = list(columns)
            else:
                keys = [str(x) for x in range(len(initialdata))]
            items = list(zip(keys, initialdata))
        else:
            raise ValueError("Initialize with a dict or a list of columns, or a pandas.DataFrame.")

        sizes = set()
        for key, val in items:
            if not isinstance(key, str):
                raise TypeError("Column labels must be strings.")
            col = as_column(val)
            sizes.add(len(col))
            if len(sizes) > 1:
                raise ValueError("Input arrays must have equal size.")
            UserDict.__setitem__(self, key, col)
            if key not in self._columns:
                self._columns.append(key)
        if sizes:
            self._nrows = sizes.pop()

    @classmethod
    def from_pandas(cls, pd_df: pd.DataFrame) -> DataFrame:
        """Build a DataFrame from a pandas DataFrame, discarding its index."""
        return cls(pd_df)

    def to_pandas(self) -> pd.DataFrame:
        """Return a pandas DataFrame with the same columns and a default index."""
        return pd.DataFrame({k: self.data[k] for k in self._columns}, columns=self._columns)

    def __getattr__(self, key):
        if key.startswith("_") or key == "data" or key not in self.data:
            raise AttributeError(f"Attribute {key} not found")
        return self.data[key]

    def __dir__(self):
        return list(dir(DataFrame)) + list(self._columns)

    def __iter__(self):
        return iter(list(self._columns))

    def __len__(self):
        """Return the number of rows."""
        return self._nrows

    def __delitem__(self, key):
        UserDict.__delitem__(self, key)
        self._columns.remove(key)
        if not self._columns:
            self._nrows = 0

    def __getitem__(self, key):
        # Select a single column using a string
        if isinstance(key, str):
            if key not in self.data:
                raise KeyError(f"Invalid column name '{key}'.")
            return self.data[key]

        # Select a single row using an integer
        if isinstance(key, (int, np.integer)) and not isinstance(key, (bool, np.bool_)):
            return _row(self, int(key))

        # Select columns using a list of names
        if isinstance(key, (list, tuple)) and len(key) > 0 and all(isinstance(k, str) for k in key):
            return self.select(list(key))

        rows = _row_selector(key, self._nrows)
        if rows is None:
            raise IndexError(f"Invalid selector: {key!r}")
        return self.take(rows)

    def __setitem__(self, key, value):
        if not isinstance(key, str):
            raise TypeError("Column labels must be strings.")
        col = as_column(value)
        if self._columns and len(col) != self._nrows:
            raise ValueError(f"Expected size {self._nrows} but received size {len(col)}.")
        UserDict.__setitem__(self, key, col)
        if key not in self._columns:
            self._columns.append(key)
        self._nrows = len(col)

    def __eq__(self, other):
        """
        Compare two frames element-wise.

        Returns ``True`` or ``False``, or ``pandas.NA`` when the outcome depends
        on a missing value.
        """
        if not isinstance(other, (DataFrame, SubDataFrame)):
            return NotImplemented
        return _frames_equal(self, other, strict=False)

    def __ne__(self, other):
        eq = self.__eq__(other)
        if eq is NotImplemented or eq is pd.NA:
            return eq
        return not eq

    __hash__ = None  # type: ignore[assignment]

    def equals(self, other) -> bool:
        """Return True if `other` has the same column names and values; missing equals missing."""
        if not isinstance(other, (DataFrame, SubDataFrame)):
            return False
        return _frames_equal(self, other, strict=True)

    def _shape_str(self):
        return f"{self._nrows} rows x {self.ncols} columns"

    def __str__(self):
        return f"{self.to_pandas()}\n\n[{self._shape_str()}]"

    def __repr__(self):
        return self.__str__()

    @property
    def columns(self) -> List[str]:
        """The column names, in order."""
        return list(self._columns)

    @property
    def ncols(self) -> int:
        return len(self._columns)

    @property
    def shape(self) -> Tuple[int, int]:
        return self._nrows, len(self._columns)

    @property
    def dtypes(self) -> Dict[str, object]:
        """Map each column name to its dtype (a ``CategoricalDtype`` for categoricals)."""
        return {k: self.data[k].dtype for k in self._columns}

    def column_index(self, key: Union[str, int]) -> int:
        """
        Return the position of a column given by name or position.

        Raises
        ------
        KeyError
            Raised if no column has the name
        IndexError
            Raised if the position is out of bounds

        """
        if isinstance(key, str):
            try:
                return self._columns.index(key)
            except ValueError:
                raise KeyError(f"Invalid column name '{key}'.") from None
        if isinstance(key, (int, np.integer)) and not isinstance(key, (bool, np.bool_)):
            if not 0 <= key < len(self._columns):
                raise IndexError(f"column index {key} is out of bounds for {len(self._columns)} columns")
            return int(key)
        raise TypeError(f"columns are selected by name or position, got {type(key).__name__}")

    def column_at(self, pos: int) -> Column:
        return self.data[self._columns[pos]]

    def take(self, rows: np.ndarray) -> DataFrame:
        """Return a new DataFrame holding the rows at the integer positions `rows`."""
        rows = np.asarray(rows, dtype=np.int64)
        result = DataFrame()
        for k in self._columns:
            UserDict.__setitem__(result, k, self.data[k][rows])
            result._columns.append(k)
        result._nrows = len(rows)
        return result

    def select(self, columns: Sequence[Union[str, int]]) -> DataFrame:
        """Return a new DataFrame holding the given columns, in the given order."""
        result = DataFrame()
        for key in columns:
            name = self._columns[self.column_index(key)]
            if name in result.data:
                raise ArgumentError(f"column {name!r} selected more than once")
            UserDict.__setitem__(result, name, self.data[name])
            result._columns.append(name)
        result._nrows = self._nrows if result._columns else 0
        return result

    def hcat(self, other: DataFrame) -> DataFrame:
        """
        Return a new DataFrame with the columns of `self` followed by those of `other`.

        Raises
        ------
        ArgumentError
            Raised if a column name appears in both frames.
        ValueError
            Raised if the frames have different numbers of rows.

        """
        if self._columns and other._columns and len(self) != len(other):
            raise ValueError(f"Expected size {len(self)} but received size {len(other)}.")
        dup = [k for k in other._columns if k in self.data]
        if dup:
            raise ArgumentError(f"duplicate column names {dup}")
        result = DataFrame(self)
        for k in other._columns:
            UserDict.__setitem__(result, k, other.data[k])
            result._columns.append(k)
        if other._columns:
            result._nrows = len(other)
        return result

    @classmethod
    def concat(cls, items: Sequence[DataFrame]) -> DataFrame:
        """
        Stack frames with identical column names vertically.

        Categorical columns are decoded; column dtypes are promoted as needed.

        Raises
        ------
        ArgumentError
            Raised if the frames do not share the same column names.

        """
        items = list(items)
        if not items:
            return cls()
        names = items[0].columns
        for df in items[1:]:
            if df.columns != names:
                raise ArgumentError("column names of all frames must match")
        data = {}
        for name in names:
            cols = [decode(df[name]) for df in items]
            dtype = result_type(*[c.dtype for c in cols])
            data[name] = np.concatenate([c.astype(dtype) for c in cols])
        return cls(data)

    def copy(self, deep: bool = True) -> DataFrame:
        """Return a copy; columns are copied as well when `deep`."""
        result = DataFrame(self)
        if deep:
            for k in result._columns:
                result.data[k] = result.data[k].copy()
        return result

    @typechecked
    def rename(self, mapper: Union[Callable, Dict], inplace: bool = False) -> Optional[DataFrame]:
        """
        Rename columns.

        Parameters
        ----------
        mapper : callable or dict-like
            Function or dictionary mapping existing names to new ones.
            Names not present in the frame are ignored.
        inplace : bool, default=False
            Modify this frame and return None instead of returning a copy.

        Returns
        -------
        DataFrame or None

        Raises
        ------
        ArgumentError
            Raised if two columns would end up with the same name.

        Examples
        --------
        >>> import groupframe as gf
        >>> df = gf.DataFrame({"a": [1], "b": [2]})
        >>> df.rename({"a": "d"}).columns
        ['d', 'b']

        """
        obj = self if inplace else self.copy(deep=False)
        if callable(mapper):
            newnames = [mapper(k) for k in obj._columns]
        else:
            newnames = [mapper.get(k, k) for k in obj._columns]
        if len(set(newnames)) != len(newnames):
            raise ArgumentError(f"renaming would create duplicate column names {newnames}")
        obj.data = {new: obj.data[old] for old, new in zip(obj._columns, newnames)}
        obj._columns = newnames
        if not inplace:
            return obj
        return None

    def groupby(self, keys, sort: bool = False, skipmissing: bool = False):
        """
        Group the rows of this frame by the values of `keys`.

        See Also
        --------
        groupframe.groupbyclass.groupby

        """
        from groupframe.groupbyclass import groupby

        return groupby(self, keys, sort=sort, skipmissing=skipmissing)

    def _check_consistency(self) -> None:
        """
        Verify that every column has the frame's number of rows.

        Raises
        ------
        AssertionError
            Raised if a column has been resized behind the frame's back.

        """
        for k in self._columns:
            n = len(self.data[k])
            if n != self._nrows:
                raise AssertionError(
                    f"column {k!r} has {n} rows but the data frame has {self._nrows} rows"
                )


class SubDataFrame:
    """
    A read-only view of some rows of a DataFrame.

    Column access returns the selected entries of the parent's column; the
    parent itself is never copied.

    Parameters
    ----------
    parent : DataFrame
        The viewed frame.
    rows : numpy.ndarray
        Integer positions of the viewed rows in `parent`.

    """

    def __init__(self, parent: DataFrame, rows: np.ndarray):
        self._parent = parent
        self._rows = rows

    @property
    def parent(self) -> DataFrame:
        return self._parent

    @property
    def rows(self) -> np.ndarray:
        """Positions of the viewed rows in the parent."""
        return self._rows

    @property
    def columns(self) -> List[str]:
        return self._parent.columns

    @property
    def ncols(self) -> int:
        return self._parent.ncols

    @property
    def shape(self) -> Tuple[int, int]:
        return len(self._rows), self._parent.ncols

    def __len__(self):
        return len(self._rows)

    def __iter__(self):
        return iter(self._parent.columns)

    def __contains__(self, key):
        return key in self._parent.data

    def keys(self):
        return self._parent.columns

    def __getattr__(self, key):
        if key.startswith("_") or key not in self._parent.data:
            raise AttributeError(f"Attribute {key} not found")
        return self._parent.data[key][self._rows]

    def __getitem__(self, key):
        if isinstance(key, str):
            return self._parent[key][self._rows]
        if isinstance(key, (int, np.integer)) and not isinstance(key, (bool, np.bool_)):
            return _row(self, int(key))
        if isinstance(key, (list, tuple)) and len(key) > 0 and all(isinstance(k, str) for k in key):
            return self.to_dataframe().select(list(key))
        rows = _row_selector(key, len(self._rows))
        if rows is None:
            raise IndexError(f"Invalid selector: {key!r}")
        return self._parent.take(self._rows[rows])

    def to_dataframe(self) -> DataFrame:
        """Materialise the view as a new DataFrame."""
        return self._parent.take(self._rows)

    def to_pandas(self) -> pd.DataFrame:
        return self.to_dataframe().to_pandas()

    def __eq__(self, other):
        if not isinstance(other, (DataFrame, SubDataFrame)):
            return NotImplemented
        return _frames_equal(self, other, strict=False)

    def __ne__(self, other):
        eq = self.__eq__(other)
        if eq is NotImplemented or eq is pd.NA:
            return eq
        return not eq

    __hash__ = None  # type: ignore[assignment]

    def equals(self, other) -> bool:
        if not isinstance(other, (DataFrame, SubDataFrame)):
            return False
        return _frames_equal(self, other, strict=True)

    def __repr__(self):
        return f"SubDataFrame of {len(self._rows)} rows\n{self.to_pandas()}"


def is_frame(val: object) -> bool:
    return isinstance(val, (DataFrame, SubDataFrame))

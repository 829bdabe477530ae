"""
Grouping of DataFrame rows by the values of key columns.

`groupby` partitions the rows of a DataFrame into groups of rows sharing the
same key values and returns a `GroupedDataFrame`, a lightweight view holding
the partition and the parent frame.

Partitioning
------------
Every key column is factorised into dense integer codes: numeric columns with
the pandas hash table (``pandas.factorize``), float and complex columns on their
bit patterns so that ``-0.0`` and ``0.0`` stay apart, ``object`` columns with a
Python dict over normalised values (`groupframe.hashing.hashkey`) and categorical
columns through their category codes. The codes of several columns are then
combined into a single integer per row, and a final factorisation numbers the
groups in order of first appearance.

When every key column is categorical and the number of code combinations is
small, group numbers are computed directly from the codes; groups then come
out sorted.

Groups are numbered from 0. Rows dropped because ``skipmissing=True`` and their
key holds a missing value have group number -1.

Examples
--------
>>> import groupframe as gf
>>> df = gf.DataFrame({"k": ["b", "a", "b", None], "v": [1, 2, 3, 4]})
>>> gd = gf.groupby(df, "k", sort=True, skipmissing=True)
>>> len(gd), gd.groups.tolist()
(2, [1, 0, 1, -1])
>>> gd.keys()[0].k
'a'

"""

from __future__ import annotations

from typing import List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from groupframe import config
from groupframe.dataframe import DataFrame, SubDataFrame, _frames_equal
from groupframe.dtypes import Column, is_categorical
from groupframe.errors import ArgumentError
from groupframe.groupkeys import GroupKey, GroupKeys, Not, is_named_key, lookup
from groupframe.hashing import MISSING_KEY, hashkey, sortperm_rows
from groupframe.logger import getGroupFrameLogger

__all__ = [
    "GroupedDataFrame",
    "groupby",
    "groupcols",
    "groupindices",
    "row_group_slots",
    "valuecols",
]

logger = getGroupFrameLogger(name="GroupedDataFrame")


def _factorize_inexact(col: np.ndarray) -> Tuple[np.ndarray, int]:
    """Factorize a float or complex column on bit patterns, so that -0.0 and 0.0 differ."""
    nan = np.isnan(col)
    if col.dtype.kind == "c":
        col = col.astype(np.complex128, copy=False)
        parts = [col.real, col.imag]
    else:
        parts = [col.astype(np.float64, copy=False)]
    combined = None
    for part in parts:
        # every NaN gets the same bit pattern
        bits = np.where(nan, np.nan, part).view(np.int64)
        codes, uniques = pd.factorize(bits)
        combined = codes if combined is None else combined * len(uniques) + codes
    if len(parts) > 1:
        combined, uniques = pd.factorize(combined)
    return combined.astype(np.int64, copy=False), len(uniques)


def _factorize_column(col: Column) -> Tuple[np.ndarray, int, Optional[np.ndarray]]:
    """
    Return dense codes for `col`, their number, and the mask of missing entries.

    The mask is None when the column cannot hold missing values.
    """
    if is_categorical(col):
        codes = col.codes.astype(np.int64)
        miss = codes < 0
        return np.where(miss, len(col.categories), codes), len(col.categories) + 1, miss
    if col.dtype.kind in "fc":
        codes, ncodes = _factorize_inexact(col)
        return codes, ncodes, None
    if col.dtype.kind in "biumM":
        codes, uniques = pd.factorize(col, use_na_sentinel=False)
        return codes.astype(np.int64, copy=False), len(uniques), None
    table: dict = {}
    codes = np.fromiter(
        (table.setdefault(hashkey(v), len(table)) for v in col), dtype=np.int64, count=len(col)
    )
    missing_code = table.get(MISSING_KEY)
    miss = None if missing_code is None else codes == missing_code
    return codes, len(table), miss


def _categorical_slots(
    columns: Sequence[pd.Categorical], skipmissing: bool
) -> Optional[Tuple[int, np.ndarray]]:
    """Number groups straight from category codes, in sorted order, when the key space is small."""
    nrows = len(columns[0])
    cards = [len(col.categories) + 1 for col in columns]
    space = int(np.prod(cards, dtype=object))
    if space > max(nrows, config.get_categorical_fastpath_limit()):
        return None
    missing_last = config.get_missing_order() == config.MissingOrder.LAST

    combined = np.zeros(nrows, dtype=np.int64)
    excluded = np.zeros(nrows, dtype=bool)
    for col, card in zip(columns, cards):
        codes = col.codes.astype(np.int64)
        miss = codes < 0
        if missing_last:
            ranks = np.where(miss, card - 1, codes)
        else:
            ranks = np.where(miss, 0, codes + 1)
        combined = combined * card + ranks
        excluded |= miss

    valid = ~excluded if skipmissing else np.ones(nrows, dtype=bool)
    present = np.unique(combined[valid])
    groups = np.full(nrows, -1, dtype=np.int64)
    groups[valid] = np.searchsorted(present, combined[valid])
    return len(present), groups


def row_group_slots(
    columns: Sequence[Column], skipmissing: bool = False
) -> Tuple[int, np.ndarray, bool]:
    """
    Assign a group number to every row of `columns`.

    Parameters
    ----------
    columns : sequence of columns
        The key columns, all of the same length; at least one.
    skipmissing : bool
        Give rows whose key contains a missing value group number -1.

    Returns
    -------
    ngroups : int
        Number of groups.
    groups : numpy.ndarray
        Group number of every row.
    sorted : bool
        True if group numbers already follow the sort order of the keys.

    """
    nrows = len(columns[0])
    if all(is_categorical(col) for col in columns):
        res = _categorical_slots(columns, skipmissing)
        if res is not None:
            logger.debug(f"grouped {nrows} rows into {res[0]} groups from category codes")
            return res[0], res[1], True

    combined = None
    card = 1
    excluded = np.zeros(nrows, dtype=bool)
    for col in columns:
        codes, ncodes, miss = _factorize_column(col)
        if miss is not None:
            excluded |= miss
        if combined is None:
            combined, card = codes, ncodes
            continue
        if card * max(ncodes, 1) >= 2**63:
            # compress before the key space overflows int64
            combined, uniques = pd.factorize(combined)
            combined = combined.astype(np.int64, copy=False)
            card = len(uniques)
        combined = combined * ncodes + codes
        card *= max(ncodes, 1)

    groups = np.full(nrows, -1, dtype=np.int64)
    if skipmissing and excluded.any():
        valid = ~excluded
        codes, uniques = pd.factorize(combined[valid])
        groups[valid] = codes
    else:
        codes, uniques = pd.factorize(combined)
        groups[:] = codes
    logger.debug(f"grouped {nrows} rows into {len(uniques)} groups by hashing")
    return len(uniques), groups, False


def _first_rows(groups: np.ndarray) -> np.ndarray:
    """Return the first row of every group, in group order."""
    rows = np.flatnonzero(groups >= 0)
    _, first = np.unique(groups[rows], return_index=True)
    return rows[first]


def _sort_groups(columns: Sequence[Column], groups: np.ndarray, ngroups: int) -> np.ndarray:
    """Renumber `groups` so that group numbers follow the sort order of the keys."""
    if ngroups == 0:
        return groups
    perm = sortperm_rows(columns, _first_rows(groups))
    invperm = np.empty(ngroups, dtype=np.int64)
    invperm[perm] = np.arange(ngroups)
    logger.debug(f"sorted {ngroups} groups")
    return np.where(groups >= 0, invperm[groups], -1)


def groupby(
    df: DataFrame,
    cols: Union[str, int, Sequence[Union[str, int]]],
    sort: bool = False,
    skipmissing: bool = False,
) -> GroupedDataFrame:
    """
    Group the rows of `df` by the values of the columns `cols`.

    Parameters
    ----------
    df : DataFrame
        The frame to group.
    cols : str, int or list of str or int
        Names or positions of the key columns. An empty list puts every row in
        a single group.
    sort : bool, default=False
        Number the groups in sorted key order instead of order of first appearance.
    skipmissing : bool, default=False
        Drop rows whose key contains a missing value instead of grouping them.

    Returns
    -------
    GroupedDataFrame

    Raises
    ------
    TypeError
        Raised if `sort` or `skipmissing` is not a bool, or if sorting
        encounters values that cannot be ordered.
    KeyError
        Raised if a column name is unknown.
    ArgumentError
        Raised if a column is listed more than once.
    AssertionError
        Raised if the columns of `df` do not all have the same length.

    Examples
    --------
    >>> import groupframe as gf
    >>> df = gf.DataFrame({"a": [2, 1, 2], "b": ["x", "y", "z"]})
    >>> gd = gf.groupby(df, "a")
    >>> [len(sdf) for sdf in gd]
    [2, 1]

    """
    # Non-bool values that would evaluate to True (e.g. a column list passed
    # positionally) are rejected
    if not isinstance(sort, bool):
        raise TypeError("sort must be of type bool.")
    if not isinstance(skipmissing, bool):
        raise TypeError("skipmissing must be of type bool.")
    if not isinstance(df, DataFrame):
        raise TypeError(f"groupby expects a DataFrame, got {type(df).__name__}")

    if isinstance(cols, (str, int, np.integer)):
        cols = [cols]
    positions = [df.column_index(c) for c in cols]
    if len(set(positions)) != len(positions):
        raise ArgumentError(f"grouping columns must be unique, got {list(cols)}")
    df._check_consistency()

    nrows = len(df)
    if not positions:
        groups = np.zeros(nrows, dtype=np.int64)
        return GroupedDataFrame(df, positions, groups, ngroups=int(nrows > 0))

    columns = [df.column_at(p) for p in positions]
    ngroups, groups, is_sorted = row_group_slots(columns, skipmissing)
    if sort and not is_sorted:
        groups = _sort_groups(columns, groups, ngroups)
    return GroupedDataFrame(df, positions, groups, ngroups=ngroups)


class GroupedDataFrame:
    """
    A DataFrame whose rows are partitioned into groups.

    Indexing with an integer or a key returns the rows of one group as a
    `SubDataFrame`; indexing with a slice, a list, a boolean mask or `Not`
    returns a new GroupedDataFrame holding the selected groups.

    Parameters
    ----------
    parent : DataFrame
        The grouped frame.
    cols : list of int
        Positions of the key columns in `parent`.
    groups : numpy.ndarray
        Group number of every row of `parent`, -1 for rows in no group.
    idx, starts, ends : numpy.ndarray, optional
        Rows ordered by group, and the bounds of each group's block of `idx`;
        computed from `groups` when omitted.
    ngroups : int, optional
        Number of groups, ``groups.max() + 1`` when omitted.

    Attributes
    ----------
    parent : DataFrame
        The grouped frame.
    cols : list of int
        Positions of the key columns.
    groups : numpy.ndarray
        Group number of every row, -1 for excluded rows.
    ngroups : int
        Number of groups.
    idx : numpy.ndarray
        Row positions ordered by group; within a group, rows keep their order.
    starts, ends : numpy.ndarray
        The rows of group ``g`` are ``idx[starts[g]:ends[g]]``.

    """

    def __init__(
        self,
        parent: DataFrame,
        cols: List[int],
        groups: np.ndarray,
        idx: Optional[np.ndarray] = None,
        starts: Optional[np.ndarray] = None,
        ends: Optional[np.ndarray] = None,
        ngroups: Optional[int] = None,
        keymap: Optional[dict] = None,
    ):
        self._parent = parent
        self.cols = list(cols)
        self.groups = groups
        if ngroups is None:
            ngroups = int(groups.max()) + 1 if len(groups) > 0 else 0
        self.ngroups = ngroups
        self._idx = idx
        self._starts = starts
        self._ends = ends
        self._keymap = keymap

    def _compute_indices(self) -> None:
        """Materialise `idx`, `starts` and `ends` with a stable counting sort; idempotent."""
        if self._idx is not None:
            return
        counts = np.bincount(self.groups + 1, minlength=self.ngroups + 1)
        idx = np.argsort(self.groups, kind="stable")
        ends = np.cumsum(counts[1:])
        self._idx = idx[counts[0] :]
        self._ends = ends
        self._starts = ends - counts[1:]
        logger.debug(f"computed indices of {self.ngroups} groups")

    @property
    def parent(self) -> DataFrame:
        return self._parent

    @property
    def idx(self) -> np.ndarray:
        self._compute_indices()
        return self._idx

    @property
    def starts(self) -> np.ndarray:
        self._compute_indices()
        return self._starts

    @property
    def ends(self) -> np.ndarray:
        self._compute_indices()
        return self._ends

    def _indices_computed(self) -> bool:
        return self._idx is not None

    def _key_columns(self) -> List[Column]:
        return [self._parent.column_at(p) for p in self.cols]

    def _rows(self, i: int) -> np.ndarray:
        return self.idx[self.starts[i] : self.ends[i]]

    @property
    def names(self) -> List[str]:
        """Column names of the parent."""
        return self._parent.columns

    def groupcols(self) -> List[str]:
        """Names of the grouping columns."""
        names = self._parent.columns
        return [names[p] for p in self.cols]

    def valuecols(self) -> List[str]:
        """Names of the parent columns that are not grouping columns."""
        keys = set(self.cols)
        return [name for p, name in enumerate(self._parent.columns) if p not in keys]

    def groupindices(self) -> pd.arrays.IntegerArray:
        """
        Return the group number of every row of the parent.

        Rows belonging to no group are ``<NA>``.
        """
        excluded = self.groups < 0
        return pd.arrays.IntegerArray(np.where(excluded, 0, self.groups).astype(np.int64), excluded)

    def keys(self) -> GroupKeys:
        """The keys of the groups, in group order."""
        return GroupKeys(self)

    def lookup(self, key) -> Optional[int]:
        """
        Return the number of the group with key `key`, or None.

        Parameters
        ----------
        key : GroupKey, tuple, dict or namedtuple
            A tuple lists the key values in grouping column order; a dict or a
            namedtuple names every grouping column. Values only need to be
            equal, not of the same type.

        Raises
        ------
        ArgumentError
            Raised if `key` does not match the grouping columns, or is a
            GroupKey of another GroupedDataFrame.

        """
        return lookup(self, key)

    def get(self, key, default=None):
        """Return the group with key `key`, or `default` if there is none."""
        i = lookup(self, key)
        if i is None:
            return default
        return self[i]

    def __contains__(self, key) -> bool:
        if isinstance(key, (bool, np.bool_)):
            raise TypeError("a bool does not identify a group")
        if isinstance(key, (int, np.integer)):
            return 0 <= key < self.ngroups
        return lookup(self, key) is not None

    def __len__(self) -> int:
        return self.ngroups

    def __iter__(self):
        for i in range(self.ngroups):
            yield SubDataFrame(self._parent, self._rows(i))

    def first(self) -> SubDataFrame:
        return self[0]

    def last(self) -> SubDataFrame:
        return self[-1]

    def _check_index(self, i) -> int:
        n = self.ngroups
        if not -n <= i < n:
            raise IndexError(f"group {i} is out of bounds for {n} groups")
        return int(i) % n

    def __getitem__(self, key):
        if isinstance(key, (bool, np.bool_)):
            raise ArgumentError("invalid index: a bool cannot select a group")
        if isinstance(key, (int, np.integer)):
            return SubDataFrame(self._parent, self._rows(self._check_index(key)))
        if isinstance(key, str):
            raise ArgumentError(f"invalid index {key!r}: groups are selected by position or key")
        if isinstance(key, GroupKey):
            return SubDataFrame(self._parent, self._rows(lookup(self, key)))
        if isinstance(key, (tuple, dict)):
            try:
                i = lookup(self, key)
            except ArgumentError:
                raise KeyError(key) from None
            if i is None:
                raise KeyError(key)
            return SubDataFrame(self._parent, self._rows(i))
        return self._select(self._selection(key))

    def _scalar_selection(self, key) -> int:
        if isinstance(key, (bool, np.bool_)):
            raise ArgumentError("invalid index: a bool cannot select a group")
        if isinstance(key, (int, np.integer)):
            return self._check_index(key)
        if isinstance(key, (GroupKey, tuple, dict)):
            i = lookup(self, key)
            if i is None:
                raise KeyError(key)
            return i
        raise ArgumentError(f"invalid index {key!r}")

    def _selection(self, key, unique: bool = True) -> np.ndarray:
        """Translate a multi-group selector into group numbers."""
        n = self.ngroups
        if isinstance(key, Not):
            if isinstance(key.skip, (Not, slice, range, list, np.ndarray, GroupKeys)):
                skip = self._selection(key.skip, unique=False)
            else:
                skip = np.array([self._scalar_selection(key.skip)], dtype=np.int64)
            mask = np.ones(n, dtype=bool)
            mask[skip] = False
            return np.flatnonzero(mask)
        if isinstance(key, slice):
            return np.arange(n)[key]
        if isinstance(key, (range, GroupKeys)):
            key = list(key)
        if isinstance(key, np.ndarray) and key.dtype != np.dtype(object):
            if key.dtype.kind == "b":
                return self._mask_selection(key)
            if key.dtype.kind not in "iu":
                raise ArgumentError(f"invalid index of dtype {key.dtype}")
            key = key.tolist()
        if not isinstance(key, (list, np.ndarray)):
            raise ArgumentError(f"invalid index of type {type(key).__name__}")

        kinds = {self._selector_kind(k) for k in key}
        if len(kinds) > 1:
            raise ArgumentError(f"a group selector must not mix {sorted(kinds)}")
        kind = kinds.pop() if kinds else "int"
        if kind == "bool":
            return self._mask_selection(np.asarray(key, dtype=bool))
        if kind == "int":
            sel = np.array([self._check_index(i) for i in key], dtype=np.int64)
        else:
            sel = np.array([self._scalar_selection(k) for k in key], dtype=np.int64)
        if unique and len(np.unique(sel)) != len(sel):
            raise ArgumentError("duplicate group indices are not allowed")
        return sel

    @staticmethod
    def _selector_kind(k) -> str:
        if isinstance(k, (bool, np.bool_)):
            return "bool"
        if isinstance(k, (int, np.integer)):
            return "int"
        if isinstance(k, GroupKey):
            return "GroupKey"
        if is_named_key(k):
            return "named key"
        if isinstance(k, tuple):
            return "tuple"
        raise ArgumentError(f"invalid group selector element {k!r}")

    def _mask_selection(self, mask: np.ndarray) -> np.ndarray:
        if len(mask) != self.ngroups:
            raise IndexError(f"boolean index has length {len(mask)}, expected {self.ngroups}")
        return np.flatnonzero(mask)

    def _select(self, sel: np.ndarray) -> GroupedDataFrame:
        """Return a GroupedDataFrame holding the groups `sel`, renumbered in that order."""
        self._compute_indices()
        if self.ngroups == 0:
            groups = self.groups.copy()
        else:
            mapping = np.full(self.ngroups, -1, dtype=np.int64)
            mapping[sel] = np.arange(len(sel))
            groups = np.where(self.groups >= 0, mapping[self.groups], -1)
        return GroupedDataFrame(
            self._parent,
            self.cols,
            groups,
            idx=self._idx.copy(),
            starts=self._starts[sel],
            ends=self._ends[sel],
            ngroups=len(sel),
        )

    def _compare(self, other: GroupedDataFrame, strict: bool):
        if self.groupcols() != other.groupcols() or len(self) != len(other):
            return False
        # groupings of unequal frames are unequal, even if their groups match
        result = _frames_equal(self._parent, other._parent, strict)
        if result is False:
            return False
        for g, key in enumerate(self.keys()):
            j = lookup(other, key.to_tuple())
            if j is None:
                return False
            eq = _frames_equal(self[g], other[j], strict)
            if eq is False:
                return False
            if eq is pd.NA:
                result = pd.NA
        return result

    def __eq__(self, other):
        """
        Compare two GroupedDataFrames over equal parents by their groups, whatever their numbering.

        Returns ``pandas.NA`` if the outcome depends on missing values.
        """
        if not isinstance(other, GroupedDataFrame):
            return NotImplemented
        return self._compare(other, strict=False)

    def __ne__(self, other):
        eq = self.__eq__(other)
        if eq is NotImplemented or eq is pd.NA:
            return eq
        return not eq

    __hash__ = None  # type: ignore[assignment]

    def equals(self, other) -> bool:
        """Strict comparison of the groups of two GroupedDataFrames; missing equals missing."""
        if not isinstance(other, GroupedDataFrame):
            return False
        return self._compare(other, strict=True)

    def __copy__(self) -> GroupedDataFrame:
        return GroupedDataFrame(
            self._parent,
            self.cols,
            self.groups.copy(),
            idx=None if self._idx is None else self._idx.copy(),
            starts=None if self._starts is None else self._starts.copy(),
            ends=None if self._ends is None else self._ends.copy(),
            ngroups=self.ngroups,
            keymap=None if self._keymap is None else dict(self._keymap),
        )

    def copy(self) -> GroupedDataFrame:
        """Return a GroupedDataFrame over the same parent that owns copies of the group arrays."""
        return self.__copy__()

    def to_dataframe(self) -> DataFrame:
        """Return the rows of all groups, group after group, as a new DataFrame."""
        if self.ngroups == 0:
            return self._parent.take(np.empty(0, dtype=np.int64))
        rows = np.concatenate([self._rows(i) for i in range(self.ngroups)])
        return self._parent.take(rows)

    def combine(self, *args, keepkeys: bool = True) -> DataFrame:
        """
        Apply functions to every group and combine the results into a DataFrame.

        See Also
        --------
        groupframe.apply.combine

        """
        from groupframe.apply import combine

        return combine(self, *args, keepkeys=keepkeys)

    def apply(self, f) -> GroupedDataFrame:
        """
        Apply `f` to every group and regroup the results by key.

        See Also
        --------
        groupframe.apply.apply

        """
        from groupframe.apply import apply

        return apply(self, f)

    def __repr__(self):
        keys = ", ".join(self.groupcols())
        return f"GroupedDataFrame with {self.ngroups} groups based on keys: {keys}"


def groupindices(gd: GroupedDataFrame) -> pd.arrays.IntegerArray:
    """Return the group number of every row of the parent, ``<NA>`` for rows in no group."""
    return gd.groupindices()


def groupcols(gd: GroupedDataFrame) -> List[str]:
    """Return the names of the grouping columns."""
    return gd.groupcols()


def valuecols(gd: GroupedDataFrame) -> List[str]:
    """Return the names of the non-grouping columns."""
    return gd.valuecols()

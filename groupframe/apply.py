"""
Split-apply-combine over a GroupedDataFrame.

`combine` calls a function on every group and stacks the results, group after
group, into a DataFrame whose leading columns are the grouping keys. `apply`
does the same but regroups the output. `by` and `aggregate` group and combine
in one step.

The function is given either as a callable, which receives each group as a
`SubDataFrame`, or as one or more pairs ``(source, function)`` or
``(source, function, name)`` whose function receives the `source` columns of
each group. The special function `nrow` counts the rows of each group.

The first group's return value fixes the kind of the output
(`ResultKind`): a scalar or a dict of scalars yields one row per group, a
vector or a table yields any number of rows. Column dtypes start from the
first group and are widened when a later group returns values that do not fit.

Examples
--------
>>> import groupframe as gf
>>> df = gf.DataFrame({"a": [1, 1, 2, 2, 3, 3], "b": [10, 20, 30, 40, 50, 60]})
>>> res = gf.combine(df.groupby("a"), ("b", gf.sum))
>>> res.columns
['a', 'b_sum']
>>> res["b_sum"].tolist()
[30, 70, 110]

"""

from __future__ import annotations

import enum
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from groupframe.dataframe import DataFrame, SubDataFrame, _column_equal, is_frame
from groupframe.dtypes import (
    allocate_column,
    as_column,
    decode,
    is_vector,
    resolve_scalar_dtype,
    result_type,
    value_fits,
    widen_column,
)
from groupframe.errors import ArgumentError, DimensionMismatch
from groupframe.groupbyclass import GroupedDataFrame, _first_rows, groupby
from groupframe.groupkeys import is_named_key
from groupframe.logger import getGroupFrameLogger
from groupframe.reductions import (
    Aggregate,
    GroupByReductionType,
    check_aggregate,
    funname,
    resolve_function,
)
from groupframe.row import Row

__all__ = [
    "ResultKind",
    "aggregate",
    "apply",
    "by",
    "combine",
    "nrow",
]

logger = getGroupFrameLogger(name="Apply")

_KIND_CHANGE = (
    "return value must not change its kind (single row or variable number of rows) across groups"
)
_MULTICOL_CHANGE = "function must return only single-column values, or only multiple-column values"


class ResultKind(enum.Enum):
    """The shape of a value returned for one group."""

    SCALAR = "scalar"
    ROW = "row"
    VECTOR = "vector"
    TABLE = "table"

    def __str__(self) -> str:
        """Return the enum value."""
        return self.value

    def __repr__(self) -> str:
        """Return the enum value."""
        return self.value

    @property
    def multicol(self) -> bool:
        return self in (ResultKind.ROW, ResultKind.TABLE)

    @property
    def single_row(self) -> bool:
        return self in (ResultKind.SCALAR, ResultKind.ROW)


class _Result(NamedTuple):
    kind: ResultKind
    # name -> scalar for SCALAR and ROW, name -> column otherwise
    columns: Dict[str, Any]


def nrow(df) -> int:
    """
    Return the number of rows of `df`.

    Passed to `combine` on its own, or as ``(nrow, name)``, it adds a column
    holding the size of every group.
    """
    return len(df)


def _check_names(names) -> None:
    for name in names:
        if not isinstance(name, str):
            raise ArgumentError(f"column names must be strings, got {name!r}")


def _table(columns: Dict[str, Any]) -> _Result:
    _check_names(columns)
    cols = {name: decode(as_column(v)) for name, v in columns.items()}
    if len({len(c) for c in cols.values()}) > 1:
        raise DimensionMismatch("all vectors in a return value must have the same length")
    return _Result(ResultKind.TABLE, cols)


def _wrap(value) -> _Result:
    """Classify a value returned for one group."""
    if isinstance(value, Row):
        _check_names(value.keys())
        return _Result(ResultKind.ROW, dict(value))
    if is_frame(value):
        return _Result(ResultKind.TABLE, {k: decode(value[k]) for k in value.columns})
    if isinstance(value, pd.DataFrame):
        return _wrap(DataFrame(value))
    if isinstance(value, np.ndarray):
        if value.ndim == 0:
            return _Result(ResultKind.SCALAR, {"x1": value[()]})
        if value.ndim == 2:
            return _table({f"x{j + 1}": value[:, j] for j in range(value.shape[1])})
        if value.ndim > 2:
            raise ArgumentError(f"arrays with {value.ndim} dimensions cannot be returned")
    if is_named_key(value):
        d = value if isinstance(value, dict) else value._asdict()
        vectors = [is_vector(v) for v in d.values()]
        if not d or all(vectors):
            return _table(d)
        if any(vectors):
            raise ArgumentError("mixing single values and vectors in a named tuple is not allowed")
        _check_names(d)
        return _Result(ResultKind.ROW, dict(d))
    if is_vector(value):
        return _Result(ResultKind.VECTOR, {"x1": decode(as_column(value))})
    return _Result(ResultKind.SCALAR, {"x1": value})


def _wrap_row(value, first: _Result, names: List[str]) -> Dict[str, Any]:
    res = _wrap(value)
    if not res.kind.single_row:
        raise ArgumentError(_KIND_CHANGE)
    if res.kind.multicol != first.kind.multicol:
        # a bare scalar may fill a one-field row
        if res.kind is ResultKind.SCALAR and len(names) == 1:
            return {names[0]: res.columns["x1"]}
        raise ArgumentError(_MULTICOL_CHANGE)
    return res.columns


def _wrap_table(value, first: _Result) -> Dict[str, Any]:
    res = _wrap(value)
    if res.kind.single_row:
        raise ArgumentError(_KIND_CHANGE)
    if res.kind.multicol != first.kind.multicol:
        raise ArgumentError(_MULTICOL_CHANGE)
    return res.columns


def _check_columns(row: Dict[str, Any], names: List[str]) -> None:
    if len(row) != len(names):
        raise ArgumentError(
            "return value must have the same number of columns for all groups "
            f"(got {len(names)} and {len(row)})"
        )
    if set(row) != set(names):
        raise ArgumentError(
            "return value must have the same column names for all groups "
            f"(got {names} and {list(row)})"
        )


def _fill_row(row: Dict[str, Any], outcols: List[np.ndarray], i: int, colstart: int, names) -> Optional[int]:
    """
    Write `row` into row `i` of `outcols`, starting at column `colstart`.

    Returns the position of the first column whose dtype cannot hold its value,
    or None when the whole row was written.
    """
    for j in range(colstart, len(outcols)):
        val = row[names[j]]
        col = outcols[j]
        if not value_fits(val, col.dtype):
            return j
        col[i] = pd.NA if val is None else val
    return None


def _combine_rows(gd: GroupedDataFrame, call: Callable, first: _Result):
    n = len(gd)
    names = list(first.columns)
    outcols = [allocate_column(resolve_scalar_dtype(v), n) for v in first.columns.values()]
    row = first.columns
    i, colstart = 0, 0
    while True:
        j = _fill_row(row, outcols, i, colstart, names)
        if j is not None:
            # columns before j already hold row i
            for k in range(j, len(outcols)):
                val = row[names[k]]
                col = outcols[k]
                if not value_fits(val, col.dtype):
                    dtype = result_type(col.dtype, resolve_scalar_dtype(val))
                    logger.debug(f"widening column {names[k]!r} from {col.dtype} to {dtype} at group {i}")
                    outcols[k] = widen_column(col, dtype, i)
            colstart = j
            continue
        i += 1
        if i == n:
            break
        row = _wrap_row(call(i), first, names)
        _check_columns(row, names)
        colstart = 0
    return gd.idx[gd.starts], outcols, names


class _ColumnBuffer:
    """Growing output column of a multi-row result."""

    def __init__(self, dtype: np.dtype):
        self.dtype = dtype
        self.chunks: List[np.ndarray] = []

    def fits(self, values: np.ndarray) -> bool:
        return result_type(self.dtype, values.dtype) == self.dtype

    def append(self, values: np.ndarray) -> None:
        self.chunks.append(values)

    def widen(self, dtype: np.dtype) -> None:
        self.dtype = dtype
        self.chunks = [c.astype(dtype) for c in self.chunks]

    def finish(self) -> np.ndarray:
        if not self.chunks:
            return np.empty(0, dtype=self.dtype)
        return np.concatenate(self.chunks).astype(self.dtype, copy=False)


def _append_rows(rows: Dict[str, np.ndarray], outcols: List[_ColumnBuffer], colstart: int, names) -> Optional[int]:
    for j in range(colstart, len(outcols)):
        vals = rows[names[j]]
        if not outcols[j].fits(vals):
            return j
        outcols[j].append(vals)
    return None


def _combine_tables(gd: GroupedDataFrame, call: Callable, first: _Result):
    gidx, starts = gd.idx, gd.starts
    names: Optional[List[str]] = None
    outcols: List[_ColumnBuffer] = []
    idx: List[np.ndarray] = []
    for i in range(len(gd)):
        rows = first.columns if i == 0 else _wrap_table(call(i), first)
        # results without columns contribute no rows
        if not rows:
            continue
        if names is None:
            names = list(rows)
            outcols = [_ColumnBuffer(col.dtype) for col in rows.values()]
        _check_columns(rows, names)
        colstart = 0
        while True:
            j = _append_rows(rows, outcols, colstart, names)
            if j is None:
                break
            for k in range(j, len(outcols)):
                vals = rows[names[k]]
                if not outcols[k].fits(vals):
                    dtype = result_type(outcols[k].dtype, vals.dtype)
                    logger.debug(
                        f"widening column {names[k]!r} from {outcols[k].dtype} to {dtype} at group {i}"
                    )
                    outcols[k].widen(dtype)
            colstart = j
        nrows = len(rows[names[0]])
        idx.append(np.full(nrows, gidx[starts[i]], dtype=np.int64))
    if names is None:
        return np.empty(0, dtype=np.int64), [], []
    return np.concatenate(idx), [c.finish() for c in outcols], names


def _combine_with_first(gd: GroupedDataFrame, call: Callable, first_value):
    """Run `call` over every group, the first group's value being `first_value`."""
    first = _wrap(first_value)
    if first.kind.single_row:
        return _combine_rows(gd, call, first)
    return _combine_tables(gd, call, first)


class _Pair(NamedTuple):
    positions: Optional[List[int]]
    fun: Any
    name: str
    named: bool
    # a single column given by name or position, eligible for a fast path
    single: bool

    def aggregate(self):
        if self.fun is nrow:
            return Aggregate(GroupByReductionType.LENGTH)
        if not self.single:
            return None
        return check_aggregate(self.fun)


def _normalize_pair(parent: DataFrame, p) -> _Pair:
    if p is nrow:
        return _Pair(None, nrow, "nrow", False, False)
    if not isinstance(p, tuple) or len(p) not in (2, 3):
        raise ArgumentError(
            f"expected a function, nrow or a (source, function[, name]) tuple, got {p!r}"
        )
    if p[0] is nrow:
        if len(p) != 2 or not isinstance(p[1], str):
            raise ArgumentError("nrow takes a single str column name: (nrow, name)")
        return _Pair(None, nrow, p[1], True, False)
    source, fun = p[0], p[1]
    single = isinstance(source, (str, int, np.integer)) and not isinstance(source, bool)
    sources = [source] if single else list(source)
    positions = [parent.column_index(s) for s in sources]
    if not callable(fun) and not isinstance(fun, str):
        raise ArgumentError(f"{fun!r} is not a function")
    if len(p) == 3:
        if not isinstance(p[2], str):
            raise ArgumentError(f"target column name must be a str, got {p[2]!r}")
        return _Pair(positions, fun, p[2], True, single)
    names = [parent.columns[pos] for pos in positions]
    return _Pair(positions, fun, "_".join(names + [funname(fun)]), False, single)


def _pair_call(gd: GroupedDataFrame, pair: _Pair) -> Callable:
    parent = gd.parent
    incols = [parent.column_at(pos) for pos in pair.positions]
    fun = resolve_function(pair.fun)

    def call(i):
        rows = gd._rows(i)
        return fun(*[col[rows] for col in incols])

    return call


def _combine_function(gd: GroupedDataFrame, f: Callable):
    parent = gd.parent

    def call(i):
        return f(SubDataFrame(parent, gd._rows(i)))

    idx, outcols, names = _combine_with_first(gd, call, call(0))
    return idx, DataFrame(dict(zip(names, outcols)))


def _combine_pair(gd: GroupedDataFrame, pair: _Pair):
    call = _pair_call(gd, pair)
    firstres = call(0)
    kind = _wrap(firstres).kind
    if kind.multicol and pair.named:
        raise ArgumentError("setting column name for tabular return value is disallowed")
    idx, outcols, names = _combine_with_first(gd, call, firstres)
    if not kind.multicol:
        names = [pair.name]
    return idx, DataFrame(dict(zip(names, outcols)))


def _combine_pairs(gd: GroupedDataFrame, pairs: Sequence[_Pair]):
    names = [p.name for p in pairs]
    if len(set(names)) != len(names):
        dup = sorted({n for n in names if names.count(n) > 1})
        raise ArgumentError(f"duplicate output column names {dup}")
    parent = gd.parent
    idx_agg = None
    results = []
    for pair in pairs:
        agg = pair.aggregate()
        incol = None if pair.positions is None else parent.column_at(pair.positions[0])
        if agg is not None and (incol is None or agg.supports(incol)):
            if idx_agg is None:
                # representative rows, shared by every fast path of this call
                idx_agg = gd.idx[gd.starts] if gd._indices_computed() else _first_rows(gd.groups)
            logger.debug(f"computing {pair.name!r} with the grouped {agg.__class__.__name__} fast path")
            results.append((idx_agg, agg(incol, gd)))
            continue
        call = _pair_call(gd, pair)
        firstres = call(0)
        if _wrap(firstres).kind.multicol:
            raise ArgumentError(
                "a single value or vector result is required when passing multiple functions "
                f"(got {type(firstres).__name__})"
            )
        idx, outcols, _ = _combine_with_first(gd, call, firstres)
        results.append((idx, outcols[0]))
    outcols = [col for _, col in results]
    if any(len(col) != len(outcols[0]) for col in outcols):
        raise ArgumentError("all functions must return values of the same length")
    return results[0][0], DataFrame(dict(zip(names, outcols)))


def _flatten_pairs(args) -> List[Any]:
    flat = []
    for a in args:
        if isinstance(a, list):
            flat.extend(a)
        else:
            flat.append(a)
    return flat


def _combine(gd: GroupedDataFrame, args: Tuple) -> Tuple[np.ndarray, DataFrame]:
    """Return the representative row of every output row, and the function output."""
    if not args:
        raise ArgumentError(
            "combine(gd) is not allowed, use gd.to_dataframe() to combine a "
            "GroupedDataFrame into a DataFrame"
        )
    if len(args) == 1:
        f = args[0]
        if callable(f) and f is not nrow:
            return _combine_function(gd, f)
        if isinstance(f, tuple):
            pair = _normalize_pair(gd.parent, f)
            if pair.aggregate() is None:
                return _combine_pair(gd, pair)
    pairs = [_normalize_pair(gd.parent, p) for p in _flatten_pairs(args)]
    return _combine_pairs(gd, pairs)


def _with_keys(gd: GroupedDataFrame, idx: np.ndarray, valscat: DataFrame) -> DataFrame:
    parent = gd.parent
    keys = gd.groupcols()
    for key in keys:
        if key in valscat.columns and not _column_equal(valscat[key], parent[key][idx], strict=True):
            raise ArgumentError(
                f"column {key!r} in returned data frame is not equal to grouping key {key!r}"
            )
    rest = valscat.select([c for c in valscat.columns if c not in keys])
    return parent.take(idx).select(gd.cols).hcat(rest)


def combine(gd: GroupedDataFrame, *args, keepkeys: bool = True) -> DataFrame:
    """
    Apply functions to every group and combine the results into a DataFrame.

    Parameters
    ----------
    gd : GroupedDataFrame
        The groups.
    *args
        Either one callable, called with each group as a `SubDataFrame`, or
        any number of ``(source, function)`` and ``(source, function, name)``
        tuples, lists of such tuples, and `nrow`. `source` is a column name
        or position, or a list of them; the function receives one column
        slice per source column. A function may be given by the name of a
        reduction, e.g. ``"sum"``.
    keepkeys : bool, default=True
        Prepend the grouping columns to the output.

    Returns
    -------
    DataFrame
        The rows produced for every group, in group order.

    Raises
    ------
    ArgumentError
        Raised if results of different groups have different kinds, column
        counts or column names, if several pairs do not all return values of
        the same length, or if a returned key column differs from the key.
    DimensionMismatch
        Raised if a returned dict holds vectors of different lengths.

    Notes
    -----
    Output names default to ``<source>_<function name>``; values returned by a
    plain callable without names get ``x1``, ``x2``, .... A group whose result
    is a table with no rows or no columns contributes no rows.

    Single-column pairs whose function is a registered reduction (see
    `groupframe.reductions.check_aggregate`) are computed in one pass over the
    rows instead of once per group.

    Examples
    --------
    >>> import groupframe as gf
    >>> df = gf.DataFrame({"a": [1, 2, 1], "c": [1, 2, 3]})
    >>> gd = df.groupby("a")
    >>> res = gf.combine(gd, ("c", gf.sum), gf.nrow)
    >>> res.columns
    ['a', 'c_sum', 'nrow']
    >>> res["c_sum"].tolist(), res["nrow"].tolist()
    ([4, 2], [2, 1])
    >>> gf.combine(gd, lambda sdf: {"first": sdf["c"][0]})["first"].tolist()
    [1, 2]

    """
    if len(gd) == 0:
        empty = gd.parent.take(np.empty(0, dtype=np.int64)).select(gd.cols)
        return empty if keepkeys else DataFrame()
    idx, valscat = _combine(gd, args)
    if not keepkeys:
        return valscat
    return _with_keys(gd, idx, valscat)


def apply(gd: GroupedDataFrame, f) -> GroupedDataFrame:
    """
    Apply `f` to every group and regroup the output.

    `f` is anything accepted by `combine`. The parent of the returned
    GroupedDataFrame holds the grouping columns followed by the output of
    `f`; each group holds the rows produced for one input group. Input
    groups that produced no rows have no counterpart.

    Examples
    --------
    >>> import groupframe as gf
    >>> df = gf.DataFrame({"a": [1, 2, 1], "c": [1, 2, 3]})
    >>> res = gf.apply(df.groupby("a"), lambda sdf: gf.DataFrame() if len(sdf) == 1 else sdf)
    >>> len(res), res.parent["c"].tolist()
    (1, [1, 3])

    """
    nkeys = len(gd.cols)
    keycols = list(range(nkeys))
    if len(gd) == 0:
        newparent = gd.parent.take(np.empty(0, dtype=np.int64)).select(gd.cols)
        empty = np.empty(0, dtype=np.int64)
        return GroupedDataFrame(newparent, keycols, empty, idx=empty, starts=empty, ends=empty, ngroups=0, keymap={})
    idx, valscat = _combine(gd, (f,))
    newparent = _with_keys(gd, idx, valscat)
    if len(idx) == 0:
        empty = np.empty(0, dtype=np.int64)
        return GroupedDataFrame(newparent, keycols, empty, idx=empty, starts=empty, ends=empty, ngroups=0, keymap={})
    breaks = np.flatnonzero(idx[1:] != idx[:-1]) + 1
    starts = np.concatenate([[0], breaks]).astype(np.int64)
    ends = np.concatenate([breaks, [len(idx)]]).astype(np.int64)
    groups = np.repeat(np.arange(len(starts), dtype=np.int64), ends - starts)
    return GroupedDataFrame(
        newparent,
        keycols,
        groups,
        idx=np.arange(len(idx), dtype=np.int64),
        starts=starts,
        ends=ends,
        ngroups=len(starts),
    )


def by(df: DataFrame, cols, *args, sort: bool = False, skipmissing: bool = False, keepkeys: bool = True) -> DataFrame:
    """
    Group `df` by `cols` and combine the groups with `args`.

    Shorthand for ``combine(groupby(df, cols, sort, skipmissing), *args, keepkeys=keepkeys)``.

    Examples
    --------
    >>> import groupframe as gf
    >>> df = gf.DataFrame({"a": [2, 1, 2], "c": [1, 2, 3]})
    >>> gf.by(df, "a", ("c", "max"), sort=True)["c_max"].tolist()
    [2, 3]

    """
    return combine(groupby(df, cols, sort=sort, skipmissing=skipmissing), *args, keepkeys=keepkeys)


def _make_unique(names: List[str]) -> List[str]:
    seen = set()
    out = []
    for name in names:
        new = name
        k = 1
        while new in seen:
            new = f"{name}_{k}"
            k += 1
        seen.add(new)
        out.append(new)
    return out


def _no_columns(sdf) -> DataFrame:
    return DataFrame()


def aggregate(df: DataFrame, cols, fs, sort: bool = False, skipmissing: bool = False) -> DataFrame:
    """
    Apply every function of `fs` to every non-grouping column of every group.

    Parameters
    ----------
    df : DataFrame
    cols : str, int or list
        The grouping columns; an empty list aggregates the whole frame.
    fs : callable, str or list of them
        Functions taking a column slice and returning a scalar or a vector.
    sort, skipmissing : bool
        Passed to `groupby`.

    Returns
    -------
    DataFrame
        The grouping columns, then one column per function and value column,
        named ``<column>_<function name>``. Functions vary slowest. Repeated
        names get a ``_1``, ``_2``, ... suffix.

    Examples
    --------
    >>> import groupframe as gf
    >>> df = gf.DataFrame({"a": [1, 2, 1], "b": [2, 1, 2], "c": [1, 2, 3]})
    >>> gf.aggregate(df, "a", [gf.sum, gf.maximum]).columns
    ['a', 'b_sum', 'c_sum', 'b_maximum', 'c_maximum']

    """
    if callable(fs) or isinstance(fs, str):
        fs = [fs]
    gd = groupby(df, cols, sort=sort, skipmissing=skipmissing)
    valuecols = gd.valuecols()
    sources = [(c, f) for f in fs for c in valuecols]
    if not sources:
        return combine(gd, _no_columns)
    headers = _make_unique([f"{c}_{funname(f)}" for c, f in sources])
    return combine(gd, [(c, f, h) for (c, f), h in zip(sources, headers)])

"""
Reductions over columns and their grouped fast paths.

The functions `sum`, `prod`, `maximum`, `minimum`, `mean`, `var`, `std`,
`first`, `last` and `length` reduce one column (a numpy array, a
``pandas.Categorical`` or a list) to a scalar. Passed to `groupframe.combine`,
they are applied to the rows of each group in turn.

Most of them, alone or composed with `skipmissing`, are also registered as
grouped aggregations: `check_aggregate` maps the function to a descriptor that
reduces every group in one scan over the rows instead of calling the function
once per group. Both ways produce the same values and the same result dtype;
floating point results may differ in the last bits because of summation order.

Examples
--------
>>> import numpy as np
>>> import groupframe as gf
>>> df = gf.DataFrame({"g": [1, 1, 2], "x": [1.0, None, 3.0]})
>>> res = gf.combine(df.groupby("g"), ("x", gf.compose(gf.mean, gf.skipmissing)))
>>> res.columns
['g', 'x_mean_skipmissing']
>>> res["x_mean_skipmissing"].tolist()
[1.0, 3.0]

"""

from __future__ import annotations

import builtins
from dataclasses import dataclass
import enum
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

import numpy as np
import pandas as pd

from groupframe.dtypes import (
    Column,
    as_column,
    column_from_scalars,
    decode,
    is_categorical,
    ismissing,
    missing_mask,
)
from groupframe.errors import ArgumentError
from groupframe.hashing import value_at
from groupframe.logger import getGroupFrameLogger

if TYPE_CHECKING:
    from groupframe.groupbyclass import GroupedDataFrame

__all__ = [
    "GROUPBY_REDUCTION_TYPES",
    "Aggregate",
    "ComposedFunction",
    "GroupByReductionType",
    "Reduce",
    "check_aggregate",
    "compose",
    "first",
    "funname",
    "last",
    "length",
    "maximum",
    "mean",
    "minimum",
    "prod",
    "skipmissing",
    "std",
    "sum",
    "var",
]

logger = getGroupFrameLogger(name="Reductions")

_NUMERIC_KINDS = "biufc"


class GroupByReductionType(enum.Enum):
    SUM = "sum"
    PROD = "prod"
    MAX = "maximum"
    MIN = "minimum"
    MEAN = "mean"
    VAR = "var"
    STD = "std"
    FIRST = "first"
    LAST = "last"
    LENGTH = "length"

    def __str__(self) -> str:
        """Return the enum value."""
        return self.value

    def __repr__(self) -> str:
        """Return the enum value."""
        return self.value


GROUPBY_REDUCTION_TYPES = frozenset(
    [member.value for _, member in GroupByReductionType.__members__.items()]
)


def _values(x) -> Column:
    if isinstance(x, (np.ndarray, pd.Categorical)):
        return x
    return as_column(x)


def _is_numeric(x: Column) -> bool:
    return not is_categorical(x) and x.dtype.kind in _NUMERIC_KINDS


def _add(a, b):
    if ismissing(a) or ismissing(b):
        return pd.NA
    return a + b


def _mul(a, b):
    if ismissing(a) or ismissing(b):
        return pd.NA
    return a * b


def _isnan(a) -> bool:
    return isinstance(a, (float, complex, np.inexact)) and a != a


def _max2(a, b):
    if ismissing(a) or ismissing(b):
        return pd.NA
    if _isnan(a):
        return a
    if _isnan(b):
        return b
    return b if b > a else a


def _min2(a, b):
    if ismissing(a) or ismissing(b):
        return pd.NA
    if _isnan(a):
        return a
    if _isnan(b):
        return b
    return b if b < a else a


def _fold(op: Callable, values, empty):
    it = iter(values)
    try:
        acc = next(it)
    except StopIteration:
        return empty
    for v in it:
        acc = op(acc, v)
    return acc


def _mean_dtype(dtype: np.dtype) -> np.dtype:
    return np.dtype(np.float64) if dtype.kind in "biu" else dtype


def _var_dtype(dtype: np.dtype) -> np.dtype:
    if dtype.kind in "biu":
        return np.dtype(np.float64)
    if dtype.kind == "c":
        return np.empty(0, dtype=dtype).real.dtype
    return dtype


def _object_var(values) -> Any:
    n = builtins.len(values)
    if n == 0:
        return np.nan
    total = _fold(_add, values, 0)
    if ismissing(total):
        return pd.NA
    m = total / n
    if n == 1:
        return np.nan
    s = 0
    for v in values:
        s = s + abs(v - m) ** 2
    return s / (n - 1)


def _sqrt(v):
    return v if ismissing(v) else np.sqrt(v)


def _empty_error(what: str) -> ArgumentError:
    return ArgumentError(f"{what} over an empty collection is not allowed")


def sum(x):
    """
    Return the sum of `x`; missing values propagate.

    The sum of an empty ``object`` column is 0.
    """
    x = _values(x)
    if is_categorical(x):
        raise TypeError("cannot compute the sum of a categorical column")
    if x.dtype.kind in _NUMERIC_KINDS:
        return np.sum(x)
    return _fold(_add, x, 0)


def prod(x):
    """Return the product of `x`; missing values propagate."""
    x = _values(x)
    if is_categorical(x):
        raise TypeError("cannot compute the product of a categorical column")
    if x.dtype.kind in _NUMERIC_KINDS:
        return np.prod(x)
    return _fold(_mul, x, 1)


def _extreme(x, numpy_fn, op, cmp_codes, what):
    x = _values(x)
    if builtins.len(x) == 0:
        raise _empty_error(what)
    if is_categorical(x):
        codes = x.codes
        if (codes < 0).any():
            return pd.NA
        return x.categories[cmp_codes(codes)]
    if x.dtype.kind in _NUMERIC_KINDS:
        return numpy_fn(x)
    return _fold(op, x, None)


def maximum(x):
    """
    Return the largest value of `x`.

    NaN and missing values propagate; categorical columns compare by category
    position.

    Raises
    ------
    ArgumentError
        Raised if `x` is empty.

    """
    return _extreme(x, np.max, _max2, np.max, "maximum")


def minimum(x):
    """
    Return the smallest value of `x`.

    Raises
    ------
    ArgumentError
        Raised if `x` is empty.

    """
    return _extreme(x, np.min, _min2, np.min, "minimum")


def mean(x):
    """
    Return the arithmetic mean of `x`.

    Integer and boolean columns give a float64 mean.

    Raises
    ------
    ArgumentError
        Raised if `x` is empty.

    """
    x = _values(x)
    if is_categorical(x):
        raise TypeError("cannot compute the mean of a categorical column")
    if builtins.len(x) == 0:
        raise ArgumentError("mean of an empty collection is undefined")
    if x.dtype.kind in _NUMERIC_KINDS:
        return np.mean(x)
    total = _fold(_add, x, None)
    return pd.NA if ismissing(total) else total / builtins.len(x)


def var(x):
    """
    Return the sample variance of `x` (``ddof=1``).

    NaN is returned when `x` has fewer than two values.
    """
    x = _values(x)
    if is_categorical(x):
        raise TypeError("cannot compute the variance of a categorical column")
    if x.dtype.kind in _NUMERIC_KINDS:
        if builtins.len(x) <= 1:
            return _var_dtype(x.dtype).type(np.nan)
        return np.var(x, ddof=1)
    return _object_var(x)


def std(x):
    """Return the sample standard deviation of `x` (``ddof=1``); NaN for fewer than two values."""
    return _sqrt(var(x))


def first(x):
    """
    Return the first value of `x`.

    Raises
    ------
    ArgumentError
        Raised if `x` is empty.

    """
    x = _values(x)
    if builtins.len(x) == 0:
        raise _empty_error("first")
    return value_at(x, 0)


def last(x):
    """
    Return the last value of `x`.

    Raises
    ------
    ArgumentError
        Raised if `x` is empty.

    """
    x = _values(x)
    if builtins.len(x) == 0:
        raise _empty_error("last")
    return value_at(x, builtins.len(x) - 1)


def length(x) -> int:
    """Return the number of values in `x`, missing values included."""
    return builtins.len(x)


def skipmissing(x) -> Column:
    """
    Return `x` without its missing values.

    Examples
    --------
    >>> import groupframe as gf
    >>> gf.skipmissing(["a", None, "b"]).tolist()
    ['a', 'b']

    """
    x = _values(x)
    if is_categorical(x):
        return x[x.codes >= 0]
    if x.dtype == np.dtype(object):
        return x[~missing_mask(x)]
    return x


class ComposedFunction:
    """
    The composition ``outer(inner(x))``.

    Compositions of the same functions compare and hash equal, so they can be
    looked up in the aggregation registry.
    """

    def __init__(self, outer: Callable, inner: Callable):
        self.outer = outer
        self.inner = inner

    def __call__(self, *args, **kwargs):
        return self.outer(self.inner(*args, **kwargs))

    @property
    def __name__(self) -> str:
        return f"{funname(self.outer)}_{funname(self.inner)}"

    def __eq__(self, other):
        if not isinstance(other, ComposedFunction):
            return NotImplemented
        return self.outer is other.outer and self.inner is other.inner

    def __hash__(self):
        return hash((id(self.outer), id(self.inner)))

    def __repr__(self):
        return f"compose({self.outer!r}, {self.inner!r})"


def compose(outer: Callable, inner: Callable) -> ComposedFunction:
    """
    Compose two functions.

    Examples
    --------
    >>> import groupframe as gf
    >>> f = gf.compose(gf.sum, gf.skipmissing)
    >>> f([1, None, 2])
    3
    >>> f.__name__
    'sum_skipmissing'

    """
    return ComposedFunction(outer, inner)


def funname(f) -> str:
    """Return the name used for output columns produced by `f`."""
    if isinstance(f, str):
        return f
    name = getattr(f, "__name__", None)
    if not name or name == "<lambda>":
        return "function"
    return name


def _notmissing(col: Column) -> Optional[np.ndarray]:
    if is_categorical(col) or col.dtype == np.dtype(object):
        return ~missing_mask(col)
    return None


def _mean_adjust(acc: np.ndarray, counts: np.ndarray) -> np.ndarray:
    if (counts == 0).any():
        raise ArgumentError("mean of an empty collection is undefined")
    if acc.dtype == np.dtype(object):
        return acc / counts.astype(object)
    return acc / counts


def _first_positions(g: np.ndarray, ngroups: int, from_end: bool = False) -> np.ndarray:
    """Position in `g` of the first (or last) occurrence of every group number."""
    if from_end:
        rev = g[::-1]
        _, pos = np.unique(rev, return_index=True)
        pos = builtins.len(g) - 1 - pos
    else:
        _, pos = np.unique(g, return_index=True)
    if builtins.len(pos) != ngroups:
        raise ArgumentError("some groups contain only missing values")
    return pos


@dataclass(frozen=True)
class Reduce:
    """
    A reduction computed by folding a binary operator over each group.

    Attributes
    ----------
    op : GroupByReductionType
        One of SUM, PROD, MAX, MIN or MEAN.
    condf : callable, optional
        Returns the mask of the values to keep, or None to keep them all.
    adjust : callable, optional
        Maps the accumulators and the per-group counts to the result.
    checkempty : bool
        Raise if a group has no value left after filtering.

    """

    op: GroupByReductionType
    condf: Optional[Callable] = None
    adjust: Optional[Callable] = None
    checkempty: bool = False

    def supports(self, incol: Column) -> bool:
        return is_categorical(incol) or incol.dtype.kind in _NUMERIC_KINDS + "O"

    def __call__(self, incol: Column, gd: GroupedDataFrame) -> np.ndarray:
        ngroups = gd.ngroups
        keep = gd.groups >= 0
        if self.condf is not None:
            mask = self.condf(incol)
            if mask is not None:
                keep &= mask
        g = gd.groups[keep]
        counts = np.bincount(g, minlength=ngroups)
        if self.checkempty and (counts == 0).any():
            raise ArgumentError("some groups contain only missing values")

        if is_categorical(incol):
            if self.op not in (GroupByReductionType.MAX, GroupByReductionType.MIN):
                raise TypeError(f"cannot compute {self.op} of a categorical column")
            return self._categorical_extreme(incol, keep, g, ngroups)
        values = incol[keep]
        if values.dtype.kind in _NUMERIC_KINDS:
            logger.debug(
                f"{self.op} of {len(values)} {values.dtype} values into {ngroups} groups with ufunc.at"
            )
            return self._numeric(values, g, ngroups, counts)
        logger.debug(f"{self.op} of {len(values)} object values into {ngroups} groups by scan")
        return self._objects(values, g, ngroups, counts)

    def _numeric(self, values, g, ngroups, counts) -> np.ndarray:
        op = self.op
        if op is GroupByReductionType.SUM:
            acc = np.zeros(ngroups, dtype=np.sum(values[:0]).dtype)
            np.add.at(acc, g, values)
            return acc
        if op is GroupByReductionType.PROD:
            acc = np.ones(ngroups, dtype=np.prod(values[:0]).dtype)
            np.multiply.at(acc, g, values)
            return acc
        if op is GroupByReductionType.MEAN:
            dtype = _mean_dtype(values.dtype)
            acc = np.zeros(ngroups, dtype=dtype)
            np.add.at(acc, g, values)
            return self.adjust(acc, counts).astype(dtype)
        ufunc = np.maximum if op is GroupByReductionType.MAX else np.minimum
        acc = self._extreme_init(values, g, ngroups)
        ufunc.at(acc, g, values)
        return acc

    def _extreme_init(self, values, g, ngroups) -> np.ndarray:
        """Seed with the dtype's extreme value when it has one, else with each group's first value."""
        dtype = values.dtype
        is_max = self.op is GroupByReductionType.MAX
        if dtype.kind == "b":
            return np.full(ngroups, not is_max, dtype=dtype)
        if dtype.kind in "iu":
            info = np.iinfo(dtype)
            return np.full(ngroups, info.min if is_max else info.max, dtype=dtype)
        if dtype.kind == "f":
            return np.full(ngroups, -np.inf if is_max else np.inf, dtype=dtype)
        return values[_first_positions(g, ngroups)].copy()

    def _objects(self, values, g, ngroups, counts) -> np.ndarray:
        op = {
            GroupByReductionType.SUM: _add,
            GroupByReductionType.PROD: _mul,
            GroupByReductionType.MAX: _max2,
            GroupByReductionType.MIN: _min2,
            GroupByReductionType.MEAN: _add,
        }[self.op]
        unset = object()
        acc: List[Any] = [unset] * ngroups
        for gi, v in zip(g.tolist(), values):
            a = acc[gi]
            acc[gi] = v if a is unset else op(a, v)
        if self.op is GroupByReductionType.MEAN:
            totals = np.empty(ngroups, dtype=object)
            for i, a in enumerate(acc):
                totals[i] = a
            acc = list(self.adjust(totals, counts))
        elif self.op is GroupByReductionType.SUM:
            acc = [0 if a is unset else a for a in acc]
        elif self.op is GroupByReductionType.PROD:
            acc = [1 if a is unset else a for a in acc]
        return column_from_scalars(acc)

    def _categorical_extreme(self, incol, keep, g, ngroups) -> np.ndarray:
        ncats = len(incol.categories)
        codes = incol.codes[keep].astype(np.int64)
        has_missing = np.zeros(ngroups, dtype=bool)
        np.logical_or.at(has_missing, g, codes < 0)
        if self.op is GroupByReductionType.MAX:
            acc = np.full(ngroups, -1, dtype=np.int64)
            np.maximum.at(acc, g, codes)
        else:
            acc = np.full(ngroups, ncats, dtype=np.int64)
            np.minimum.at(acc, g, np.where(codes < 0, ncats, codes))
        return column_from_scalars(
            [pd.NA if m else incol.categories[a] for m, a in zip(has_missing.tolist(), acc.tolist())]
        )


@dataclass(frozen=True)
class Aggregate:
    """
    A grouped aggregation that is not a plain fold: var, std, first, last or length.

    Attributes
    ----------
    kind : GroupByReductionType
    condf : callable, optional
        Returns the mask of the values to keep, or None to keep them all.

    """

    kind: GroupByReductionType
    condf: Optional[Callable] = None

    def supports(self, incol: Column) -> bool:
        if self.kind in (GroupByReductionType.VAR, GroupByReductionType.STD):
            return not is_categorical(incol) and incol.dtype.kind in _NUMERIC_KINDS + "O"
        return True

    def __call__(self, incol: Column, gd: GroupedDataFrame) -> np.ndarray:
        kind = self.kind
        if kind is GroupByReductionType.LENGTH:
            if gd._indices_computed():
                return (gd.ends - gd.starts).astype(np.int64)
            return np.bincount(gd.groups[gd.groups >= 0], minlength=gd.ngroups).astype(np.int64)

        keep = gd.groups >= 0
        if self.condf is not None:
            mask = self.condf(incol)
            if mask is not None:
                keep &= mask
        if kind in (GroupByReductionType.FIRST, GroupByReductionType.LAST):
            return self._first_last(incol, gd, keep)
        if is_categorical(incol):
            raise TypeError(f"cannot compute {kind} of a categorical column")
        res = self._var(incol[keep], gd.groups[keep], gd.ngroups)
        if kind is GroupByReductionType.STD:
            if res.dtype == np.dtype(object):
                return column_from_scalars([_sqrt(v) for v in res])
            return np.sqrt(res)
        return res

    def _first_last(self, incol, gd, keep) -> np.ndarray:
        from_end = self.kind is GroupByReductionType.LAST
        if self.condf is None and gd._indices_computed():
            rows = gd.idx[gd.ends - 1] if from_end else gd.idx[gd.starts]
        else:
            candidates = np.flatnonzero(keep)
            rows = candidates[_first_positions(gd.groups[candidates], gd.ngroups, from_end)]
        if is_categorical(incol) or incol.dtype == np.dtype(object):
            return column_from_scalars(list(decode(incol[rows])))
        return incol[rows]

    def _var(self, values, g, ngroups) -> np.ndarray:
        counts = np.bincount(g, minlength=ngroups)
        if values.dtype.kind not in _NUMERIC_KINDS:
            per_group: List[List[Any]] = [[] for _ in range(ngroups)]
            for gi, v in zip(g.tolist(), values):
                per_group[gi].append(v)
            return column_from_scalars([_object_var(vs) for vs in per_group])
        dtype = _var_dtype(values.dtype)
        work = np.complex128 if values.dtype.kind == "c" else np.float64
        sums = np.zeros(ngroups, dtype=work)
        np.add.at(sums, g, values)
        with np.errstate(invalid="ignore", divide="ignore"):
            means = sums / counts
            dev = np.abs(values - means[g]) ** 2
            ss = np.zeros(ngroups, dtype=np.float64)
            np.add.at(ss, g, dev)
            res = np.where(counts > 1, ss / (counts - 1), np.nan)
        return res.astype(dtype)


_SUM = Reduce(GroupByReductionType.SUM)
_PROD = Reduce(GroupByReductionType.PROD)
_MEAN = Reduce(GroupByReductionType.MEAN, adjust=_mean_adjust)

_AGGREGATES: Dict[Any, Any] = {}


def _register(keys, descriptor) -> None:
    for key in keys:
        _AGGREGATES[key] = descriptor


_register([sum, np.sum, "sum"], _SUM)
_register([prod, np.prod, "prod"], _PROD)
_register([maximum, "maximum", "max"], Reduce(GroupByReductionType.MAX))
_register([minimum, "minimum", "min"], Reduce(GroupByReductionType.MIN))
_register([mean, np.mean, "mean"], _MEAN)
_register([var, "var"], Aggregate(GroupByReductionType.VAR))
_register([std, "std"], Aggregate(GroupByReductionType.STD))
_register([first, "first"], Aggregate(GroupByReductionType.FIRST))
_register([last, "last"], Aggregate(GroupByReductionType.LAST))
_register([length, builtins.len, "length"], Aggregate(GroupByReductionType.LENGTH))

_register([compose(sum, skipmissing)], Reduce(GroupByReductionType.SUM, _notmissing))
_register([compose(prod, skipmissing)], Reduce(GroupByReductionType.PROD, _notmissing))
_register(
    [compose(maximum, skipmissing)], Reduce(GroupByReductionType.MAX, _notmissing, checkempty=True)
)
_register(
    [compose(minimum, skipmissing)], Reduce(GroupByReductionType.MIN, _notmissing, checkempty=True)
)
_register([compose(mean, skipmissing)], Reduce(GroupByReductionType.MEAN, _notmissing, _mean_adjust))
_register([compose(var, skipmissing)], Aggregate(GroupByReductionType.VAR, _notmissing))
_register([compose(std, skipmissing)], Aggregate(GroupByReductionType.STD, _notmissing))
_register([compose(first, skipmissing)], Aggregate(GroupByReductionType.FIRST, _notmissing))
_register([compose(last, skipmissing)], Aggregate(GroupByReductionType.LAST, _notmissing))

_FUNCTIONS: Dict[str, Callable] = {
    "sum": sum,
    "prod": prod,
    "maximum": maximum,
    "max": maximum,
    "minimum": minimum,
    "min": minimum,
    "mean": mean,
    "var": var,
    "std": std,
    "first": first,
    "last": last,
    "length": length,
}


def check_aggregate(f) -> Optional[Any]:
    """
    Return the grouped fast path registered for `f`, or None.

    Examples
    --------
    >>> import groupframe as gf
    >>> gf.reductions.check_aggregate(gf.compose(gf.maximum, gf.skipmissing)).checkempty
    True
    >>> gf.reductions.check_aggregate(lambda x: x) is None
    True

    """
    try:
        return _AGGREGATES.get(f)
    except TypeError:
        # unhashable callables are never registered
        return None


def resolve_function(f) -> Callable:
    """
    Return the callable for `f`, looking up reduction names.

    Raises
    ------
    ArgumentError
        Raised if `f` is a str that does not name a reduction.

    """
    if isinstance(f, str):
        try:
            return _FUNCTIONS[f]
        except KeyError:
            raise ArgumentError(
                f"Unsupported reduction: {f}\nMust be one of {sorted(_FUNCTIONS)}"
            ) from None
    return f

"""
Group keys and key-based lookup.

Every group of a `GroupedDataFrame` is identified by the values its rows take
in the grouping columns. `GroupKey` exposes those values for one group; it
holds a reference to the grouped frame it came from and can only index that
frame. Plain tuples, dicts and namedtuples are structural keys and can be used
with any grouped frame over columns of the right names.

The lookup registry maps the key tuple of each group's representative row
(normalised with `groupframe.hashing.hashkey`) to the group number. It is
built on the first key-based lookup and cached on the grouped frame.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

import numpy as np

from groupframe.errors import ArgumentError
from groupframe.hashing import hashkey, row_key, value_at
from groupframe.logger import getGroupFrameLogger

if TYPE_CHECKING:
    from groupframe.groupbyclass import GroupedDataFrame

__all__ = ["GroupKey", "GroupKeys", "Not", "is_named_key"]

logger = getGroupFrameLogger(name="GroupKeys")


class GroupKey:
    """
    The key of one group of a GroupedDataFrame.

    Behaves like a read-only named tuple: it has a length, can be iterated,
    and its values can be read by position, by name or as attributes. Keys
    over the same grouping column names compare and hash by their values, so
    keys taken from different GroupedDataFrames can be equal; comparing keys
    over different column names raises `ArgumentError`.

    Parameters
    ----------
    parent : GroupedDataFrame
        The grouped frame owning the group.
    idx : int
        The group number.

    Examples
    --------
    >>> import groupframe as gf
    >>> df = gf.DataFrame({"a": ["x", "y", "x"], "b": ["p", "p", "p"]})
    >>> key = df.groupby(["a", "b"]).keys()[1]
    >>> key
    GroupKey({'a': 'y', 'b': 'p'})
    >>> key.a, key["b"], len(key)
    ('y', 'p', 2)

    """

    __slots__ = ("_parent", "_idx")

    def __init__(self, parent: GroupedDataFrame, idx: int):
        self._parent = parent
        self._idx = idx

    @property
    def parent(self) -> GroupedDataFrame:
        return self._parent

    @property
    def group(self) -> int:
        """The group number within the parent."""
        return self._idx

    def keys(self) -> List[str]:
        """The grouping column names."""
        return self._parent.groupcols()

    def values(self) -> List[object]:
        """The key values, in grouping column order."""
        gd = self._parent
        if not 0 <= self._idx < len(gd):
            raise IndexError(f"group {self._idx} is out of bounds for {len(gd)} groups")
        row = gd.idx[gd.starts[self._idx]]
        return [value_at(col, row) for col in gd._key_columns()]

    def items(self) -> List[Tuple[str, object]]:
        return list(zip(self.keys(), self.values()))

    def _hashkeys(self) -> Tuple:
        return tuple(hashkey(v) for v in self.values())

    def to_tuple(self) -> Tuple:
        return tuple(self.values())

    def to_dict(self) -> Dict[str, object]:
        return dict(self.items())

    def __len__(self) -> int:
        return len(self._parent.cols)

    def __iter__(self):
        return iter(self.values())

    def __getitem__(self, key):
        if isinstance(key, str):
            names = self.keys()
            if key not in names:
                raise KeyError(key)
            return self.values()[names.index(key)]
        if isinstance(key, (bool, np.bool_)) or not isinstance(key, (int, np.integer)):
            raise TypeError(f"GroupKey indices must be int or str, not {type(key).__name__}")
        return self.values()[int(key)]

    def __getattr__(self, name):
        if name.startswith("_"):
            raise AttributeError(name)
        names = self.keys()
        if name not in names:
            raise AttributeError(f"GroupKey has no grouping column {name!r}")
        return self.values()[names.index(name)]

    def __eq__(self, other):
        if not isinstance(other, GroupKey):
            return NotImplemented
        if self.keys() != other.keys():
            raise ArgumentError(
                f"cannot compare keys of groupings over columns {self.keys()} and {other.keys()}"
            )
        return self._hashkeys() == other._hashkeys()

    def __ne__(self, other):
        eq = self.__eq__(other)
        if eq is NotImplemented:
            return eq
        return not eq

    def __hash__(self):
        return hash((tuple(self.keys()), self._hashkeys()))

    def __repr__(self):
        return f"GroupKey({self.to_dict()!r})"


class GroupKeys(Sequence):
    """
    The keys of all groups of a GroupedDataFrame, in group order.

    Key objects are created on access.
    """

    def __init__(self, parent: GroupedDataFrame):
        self._parent = parent

    @property
    def parent(self) -> GroupedDataFrame:
        return self._parent

    def __len__(self) -> int:
        return len(self._parent)

    def __getitem__(self, i):
        n = len(self._parent)
        if isinstance(i, slice):
            return [GroupKey(self._parent, j) for j in range(n)[i]]
        if isinstance(i, (list, tuple)) or hasattr(i, "__array__"):
            return [self[j] for j in i]
        if isinstance(i, bool):
            raise TypeError("GroupKeys indices must be integers")
        i = int(i)
        if not -n <= i < n:
            raise IndexError(f"group {i} is out of bounds for {n} groups")
        return GroupKey(self._parent, i % n)

    def __repr__(self):
        return f"GroupKeys of {len(self)} groups over {self._parent.groupcols()}"


class Not:
    """
    Select every group except the ones selected by `skip`.

    `skip` is any selector accepted by `GroupedDataFrame.__getitem__`, including
    another `Not`.

    Examples
    --------
    >>> import groupframe as gf
    >>> gd = gf.DataFrame({"a": [1, 2, 3]}).groupby("a")
    >>> len(gd[gf.Not(0)]), len(gd[gf.Not([0, 1])])
    (2, 1)

    """

    def __init__(self, skip):
        self.skip = skip

    def __repr__(self):
        return f"Not({self.skip!r})"


def is_named_key(key: object) -> bool:
    """Return True for dicts and namedtuples, which identify a group by column names."""
    return isinstance(key, dict) or (isinstance(key, tuple) and hasattr(key, "_fields"))


def key_values(gd: GroupedDataFrame, key: object) -> Tuple:
    """
    Normalise a tuple, dict or namedtuple key to the hashable key of a group.

    Raises
    ------
    ArgumentError
        Raised if a tuple does not have one value per grouping column, or a
        named key does not name exactly the grouping columns.
    TypeError
        Raised if `key` is not a tuple, dict or namedtuple.

    """
    names = gd.groupcols()
    if is_named_key(key):
        d = key if isinstance(key, dict) else key._asdict()
        if len(d) != len(names) or set(d) != set(names):
            raise ArgumentError(
                f"The names of the key {list(d)} do not match the grouping columns {names}"
            )
        vals = [d[n] for n in names]
    elif isinstance(key, tuple):
        if len(key) != len(names):
            raise ArgumentError(
                f"The key has {len(key)} values but there are {len(names)} grouping columns"
            )
        vals = list(key)
    else:
        raise TypeError(f"invalid key type {type(key).__name__}")
    return tuple(hashkey(v) for v in vals)


def build_keymap(gd: GroupedDataFrame) -> Dict[Tuple, int]:
    """Map the key tuple of each group's representative row to the group number."""
    cols = gd._key_columns()
    reps = gd.idx[gd.starts]
    keymap = {row_key(cols, row): g for g, row in enumerate(reps)}
    logger.debug(f"built key registry of {len(keymap)} groups")
    if len(keymap) != len(gd):
        raise AssertionError("group keys are not unique")
    return keymap


def lookup(gd: GroupedDataFrame, key: object) -> Optional[int]:
    """
    Return the group number of `key` in `gd`, or None if no group has this key.

    Raises
    ------
    ArgumentError
        Raised if `key` is a GroupKey of another grouped frame, or if its
        shape does not match the grouping columns.
    IndexError
        Raised if `key` is a GroupKey whose group number is out of bounds.

    """
    if isinstance(key, GroupKey):
        if key.parent is not gd:
            raise ArgumentError(
                "Cannot use a GroupKey to index a GroupedDataFrame other than the one it was derived from."
            )
        if not 0 <= key.group < len(gd):
            raise IndexError(f"group {key.group} is out of bounds for {len(gd)} groups")
        return key.group
    values = key_values(gd, key)
    if gd._keymap is None:
        gd._keymap = build_keymap(gd)
    return gd._keymap.get(values)

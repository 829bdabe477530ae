"""
Runtime settings of the grouping engine.

Defaults are read once from the environment when the module is imported and
can be changed afterwards through the accessor functions.

Environment variables
---------------------
GROUPFRAME_MISSING_ORDER : {"LAST", "FIRST"}
    Where missing key values are placed when groups are sorted.
GROUPFRAME_CATEGORICAL_FASTPATH_LIMIT : int
    Key-space size up to which an all-categorical grouping is computed
    directly from the category codes, whatever the number of rows.
GROUPFRAME_LOG_LEVEL : str
    Read by `groupframe.logger.getGroupFrameLogger`.

"""

from enum import Enum
import os

from typeguard import typechecked

__all__ = [
    "MissingOrder",
    "get_missing_order",
    "set_missing_order",
    "get_categorical_fastpath_limit",
    "set_categorical_fastpath_limit",
]


class MissingOrder(Enum):
    """Placement of missing values relative to all other values when sorting."""

    FIRST = "FIRST"
    LAST = "LAST"

    def __str__(self) -> str:
        """Return the enum value."""
        return self.value

    def __repr__(self) -> str:
        """Return the enum value."""
        return self.value


missingOrderDefVal = MissingOrder(os.getenv("GROUPFRAME_MISSING_ORDER", "LAST").upper())
categoricalFastpathLimitDefVal = int(os.getenv("GROUPFRAME_CATEGORICAL_FASTPATH_LIMIT", "1024"))

missingOrder = missingOrderDefVal
categoricalFastpathLimit = categoricalFastpathLimitDefVal


def get_missing_order() -> MissingOrder:
    """Return where missing keys sort."""
    return missingOrder


@typechecked
def set_missing_order(order: MissingOrder) -> None:
    """
    Set where missing keys sort.

    Parameters
    ----------
    order : MissingOrder

    Raises
    ------
    TypeError
        Raised if order is not a MissingOrder

    """
    global missingOrder
    missingOrder = order


def get_categorical_fastpath_limit() -> int:
    """Return the key-space size below which categorical keys skip hashing."""
    return categoricalFastpathLimit


@typechecked
def set_categorical_fastpath_limit(limit: int) -> None:
    """
    Set the key-space size below which categorical keys skip hashing.

    Parameters
    ----------
    limit : int
        Non-negative number of key combinations

    Raises
    ------
    TypeError
        Raised if limit is not an int
    ValueError
        Raised if limit is negative

    """
    global categoricalFastpathLimit
    if limit < 0:
        raise ValueError(f"limit must be non-negative, got {limit}")
    categoricalFastpathLimit = limit


def set_defaults() -> None:
    """Restore the settings read from the environment."""
    global missingOrder, categoricalFastpathLimit
    missingOrder = missingOrderDefVal
    categoricalFastpathLimit = categoricalFastpathLimitDefVal

from collections import UserDict

from tabulate import tabulate

__all__ = [
    "Row",
]


class Row(UserDict):
    """
    A single row of a DataFrame, mapping column names to values.

    Returned by integer indexing of a `DataFrame` or `SubDataFrame`. When a
    function applied to groups returns a Row, each of its fields becomes an
    output column.

    Examples
    --------
    >>> from groupframe.row import Row
    >>> print(Row({"key": 1, "val": "a"}))
    column    value
    --------  -------
    key       1
    val       a

    """

    def __str__(self) -> str:
        """Return the row as a two-column ASCII table."""
        return tabulate(self.items(), headers=["column", "value"], showindex=False)

    def __repr__(self) -> str:
        return f"Row({dict(self)!r})"

    def _repr_html_(self) -> str:
        """Return the row as a two-column HTML table."""
        return tabulate(self.items(), headers=["column", "value"], tablefmt="html", showindex=False)

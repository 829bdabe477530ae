"""
Exceptions raised by groupframe.

Bounds violations raise the builtin `IndexError`, failed key lookups the
builtin `KeyError`, and broken internal invariants `AssertionError`.
"""

__all__ = ["ArgumentError", "DimensionMismatch"]


class ArgumentError(ValueError):
    """
    Exception raised when an argument, or a value returned by a user function, has a form
    that the operation does not accept.

    Examples
    --------
    >>> from groupframe.errors import ArgumentError
    >>> raise ArgumentError("duplicate group indices are not allowed")
    Traceback (most recent call last):
        ...
    groupframe.errors.ArgumentError: duplicate group indices are not allowed

    """

    pass


class DimensionMismatch(ArgumentError):
    """Exception raised when vectors that must have the same length do not."""

    pass

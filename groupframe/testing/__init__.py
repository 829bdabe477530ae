from ._asserters import (
    assert_class_equal,
    assert_column_equal,
    assert_frame_equal,
    assert_grouping_consistent,
    assert_groups_equal_unordered,
    raise_assert_detail,
)

__all__ = [
    "assert_class_equal",
    "assert_column_equal",
    "assert_frame_equal",
    "assert_grouping_consistent",
    "assert_groups_equal_unordered",
    "raise_assert_detail",
]

# flake8: noqa
# isort: skip_file
# do not run isort, imports are order dependent
"""
groupframe: split-apply-combine for in-memory tables.

groupframe partitions the rows of a table into groups of equal key values,
gives indexed and key-based access to the groups, and applies functions to
every group, combining the results into a new table.

Key Features
------------
- `DataFrame`, a table of numpy and categorical columns, and its row views.
- `groupby`, hash-based grouping with optional sorting and exclusion of
  missing keys.
- `combine`, `apply`, `by` and `aggregate`, with single-pass fast paths for
  the common reductions.

Example:
-------
>>> import groupframe as gf
>>> df = gf.DataFrame({"k": ["a", "b", "a"], "v": [1, 2, 3]})
>>> gf.by(df, "k", ("v", gf.sum))["v_sum"].tolist()
[4, 2]

"""

__version__ = "0.1.0"

from groupframe.errors import *
from groupframe.logger import *
from groupframe import config
from groupframe.dtypes import *
from groupframe.hashing import *
from groupframe.row import *
from groupframe.dataframe import *
from groupframe.groupkeys import *
from groupframe.groupbyclass import *
from groupframe.reductions import *
from groupframe.apply import *

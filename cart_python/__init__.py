"""
CART decision tree growing - splitters, tree builders and estimators
"""

from ._classes import DecisionTreeClassifier, DecisionTreeRegressor
from ._criterion import MSE, Criterion, Entropy, Gini
from ._splitter import (
    SPLITTERS,
    BestSplitter,
    ParentInfo,
    PresortBestSplitter,
    RandomSplitter,
    Splitter,
    SplitRecord,
)
from ._tree import (
    BestFirstTreeBuilder,
    DepthFirstBuilder,
    DepthFirstTreeBuilder,
    Tree,
    TreeBuilder,
)

__all__ = [
    'DecisionTreeClassifier',
    'DecisionTreeRegressor',
    'Criterion',
    'Gini',
    'Entropy',
    'MSE',
    'Splitter',
    'BestSplitter',
    'RandomSplitter',
    'PresortBestSplitter',
    'SPLITTERS',
    'SplitRecord',
    'ParentInfo',
    'TreeBuilder',
    'DepthFirstTreeBuilder',
    'DepthFirstBuilder',
    'BestFirstTreeBuilder',
    'Tree',
]

# _tree.py
# Authors: The scikit-learn developers
# SPDX-License-Identifier: BSD-3-Clause

import heapq
import logging
from itertools import count

import numpy as np
from scipy.sparse import issparse, csr_matrix

from ._splitter import DOUBLE, DTYPE, INFINITY, ParentInfo, SplitRecord

logger = logging.getLogger(__name__)

EPSILON = np.finfo('double').eps

# Nodes with an impurity at or below this value are not split
MIN_IMPURITY_SPLIT = 1e-7

TREE_LEAF = -1
TREE_UNDEFINED = -2

INTPTR_MAX = np.iinfo(np.intp).max


class Node:
    """Node structure for tree."""

    __slots__ = ('left_child', 'right_child', 'feature', 'threshold',
                 'impurity', 'n_node_samples', 'weighted_n_node_samples')

    def __init__(self):
        self.left_child = TREE_UNDEFINED
        self.right_child = TREE_UNDEFINED
        self.feature = TREE_UNDEFINED
        self.threshold = TREE_UNDEFINED
        self.impurity = INFINITY
        self.n_node_samples = 0
        self.weighted_n_node_samples = 0.0

    def __repr__(self):
        return (f"Node(left={self.left_child}, right={self.right_child}, "
                f"feature={self.feature}, threshold={self.threshold:.4f}, "
                f"impurity={self.impurity:.4f}, samples={self.n_node_samples})")


class Tree:
    """Array-based representation of a binary decision tree.

    Nodes are appended in the order the builder commits them; node 0 is the
    root. Internal nodes store `feature`, `threshold` and both children,
    leaves have `left_child == right_child == TREE_LEAF`. Every node keeps
    its value (class counts or mean) in `value`.
    """

    def __init__(self, n_features, n_classes, n_outputs):
        """Constructor."""
        self.n_features = n_features
        self.n_outputs = n_outputs
        self.n_classes = np.asarray(n_classes, dtype=np.intp).reshape(-1)

        self.max_n_classes = int(np.max(self.n_classes))
        self.value_stride = n_outputs * self.max_n_classes

        # Inner structures
        self.max_depth = 0
        self.nodes = []
        self._values = []

    @property
    def node_count(self):
        return len(self.nodes)

    @property
    def children_left(self):
        """Array of left children for each node."""
        return np.array([node.left_child for node in self.nodes], dtype=np.intp)

    @property
    def children_right(self):
        """Array of right children for each node."""
        return np.array([node.right_child for node in self.nodes], dtype=np.intp)

    @property
    def n_leaves(self):
        """Number of leaves in the tree."""
        return int(np.sum(self.children_left == TREE_LEAF))

    @property
    def feature(self):
        """Array of features for each node."""
        return np.array([node.feature for node in self.nodes], dtype=np.intp)

    @property
    def threshold(self):
        """Array of thresholds for each node."""
        return np.array([node.threshold for node in self.nodes], dtype=np.float64)

    @property
    def impurity(self):
        """Array of impurities for each node."""
        return np.array([node.impurity for node in self.nodes], dtype=np.float64)

    @property
    def n_node_samples(self):
        """Array of sample counts for each node."""
        return np.array([node.n_node_samples for node in self.nodes], dtype=np.intp)

    @property
    def weighted_n_node_samples(self):
        """Array of weighted sample counts for each node."""
        return np.array([node.weighted_n_node_samples for node in self.nodes],
                        dtype=np.float64)

    @property
    def value(self):
        """3D array of node values, shape (node_count, n_outputs, max_n_classes)."""
        if not self._values:
            return np.zeros((0, self.n_outputs, self.max_n_classes), dtype=np.float64)
        return np.array(self._values, dtype=np.float64).reshape(
            (self.node_count, self.n_outputs, self.max_n_classes))

    def _add_node(self, parent, is_left, is_leaf, feature, threshold, impurity,
                  n_node_samples, weighted_n_node_samples, value=None):
        """Add a node to the tree.

        The new node is linked to `parent` as its left or right child.
        Returns the id of the new node.
        """
        node_id = self.node_count

        node = Node()
        node.impurity = impurity
        node.n_node_samples = n_node_samples
        node.weighted_n_node_samples = weighted_n_node_samples

        if parent != TREE_UNDEFINED:
            if is_left:
                self.nodes[parent].left_child = node_id
            else:
                self.nodes[parent].right_child = node_id

        if is_leaf:
            node.left_child = TREE_LEAF
            node.right_child = TREE_LEAF
            node.feature = TREE_UNDEFINED
            node.threshold = TREE_UNDEFINED
        else:
            # left_child and right_child will be set later
            node.feature = feature
            node.threshold = threshold

        stored = np.zeros(self.value_stride, dtype=np.float64)
        if value is not None:
            stored[:] = value
        self.nodes.append(node)
        self._values.append(stored)
        return node_id

    def predict(self, X):
        """Predict target for X."""
        return self.value.take(self.apply(X), axis=0, mode='clip')

    def apply(self, X):
        """Finds the terminal region (=leaf node) for each sample in X."""
        X = self._check_predict_input(X)
        n_samples = X.shape[0]

        out = np.zeros(n_samples, dtype=np.intp)

        for i in range(n_samples):
            node_idx = 0

            while True:
                node = self.nodes[node_idx]

                # Check if leaf
                if node.left_child == TREE_LEAF:
                    out[i] = node_idx
                    break

                if X[i, node.feature] <= node.threshold:
                    node_idx = node.left_child
                else:
                    node_idx = node.right_child

        return out

    def decision_path(self, X):
        """Finds the decision path (=node) for each sample in X."""
        X = self._check_predict_input(X)
        n_samples = X.shape[0]

        indptr = np.zeros(n_samples + 1, dtype=np.intp)
        indices = np.zeros(n_samples * (1 + self.max_depth), dtype=np.intp)

        for i in range(n_samples):
            node_idx = 0
            indptr[i + 1] = indptr[i]

            while True:
                node = self.nodes[node_idx]
                indices[indptr[i + 1]] = node_idx
                indptr[i + 1] += 1

                # Check if leaf
                if node.left_child == TREE_LEAF:
                    break

                if X[i, node.feature] <= node.threshold:
                    node_idx = node.left_child
                else:
                    node_idx = node.right_child

        indices = indices[:indptr[n_samples]]
        data = np.ones(shape=len(indices), dtype=np.intp)
        return csr_matrix((data, indices, indptr),
                          shape=(n_samples, self.node_count))

    def _check_predict_input(self, X):
        if issparse(X):
            raise ValueError("Sparse input is not supported, X should be a dense array")
        if not isinstance(X, np.ndarray):
            raise ValueError("X should be in np.ndarray format, got %s" % type(X))
        if X.dtype != DTYPE:
            raise ValueError("X.dtype should be np.float32, got %s" % X.dtype)
        if self.node_count == 0:
            raise ValueError("The tree has no nodes, call build first")
        return X

    def compute_feature_importances(self, normalize=True):
        """Computes the importance of each feature (aka variable)."""
        importances = np.zeros(self.n_features, dtype=np.float64)

        for node in self.nodes:
            if node.left_child != TREE_LEAF:
                left = self.nodes[node.left_child]
                right = self.nodes[node.right_child]

                importances[node.feature] += (
                    node.weighted_n_node_samples * node.impurity -
                    left.weighted_n_node_samples * left.impurity -
                    right.weighted_n_node_samples * right.impurity)

        if self.node_count > 0:
            root_weight = self.nodes[0].weighted_n_node_samples
            if root_weight > 0:
                importances /= root_weight

        if normalize:
            normalizer = np.sum(importances)

            if normalizer > 0.0:
                # Avoid dividing by zero (e.g., when root is pure)
                importances /= normalizer

        return importances


class TreeBuilder:
    """Interface for different tree building strategies.

    The builder owns its splitter; one builder grows one tree per `build`.
    """

    def __init__(self, splitter, min_samples_split, min_samples_leaf,
                 min_weight_leaf, max_depth, max_leaf_nodes=None,
                 min_impurity_decrease=0.0):
        self.splitter = splitter
        self.min_samples_split = min_samples_split
        self.min_samples_leaf = min_samples_leaf
        self.min_weight_leaf = min_weight_leaf
        self.max_depth = INTPTR_MAX if max_depth is None else max_depth
        self.max_leaf_nodes = max_leaf_nodes
        self.min_impurity_decrease = min_impurity_decrease

    def build(self, tree, X, y, sample_weight=None):
        """Build a decision tree from the training set (X, y)."""
        raise NotImplementedError()

    def _check_input(self, X, y, sample_weight):
        """Check input dtype, layout and format"""
        if issparse(X):
            raise ValueError("Sparse input is not supported, X should be a dense array")

        X = np.asfortranarray(X, dtype=DTYPE)

        y = np.asarray(y, dtype=DOUBLE)
        if y.ndim == 1:
            y = y.reshape((-1, 1))
        y = np.ascontiguousarray(y)

        if sample_weight is not None:
            sample_weight = np.ascontiguousarray(sample_weight, dtype=DOUBLE)

        return X, y, sample_weight

    def _is_leaf_before_split(self, n_node_samples, weighted_n_node_samples, impurity):
        # impurity == 0 with tolerance due to rounding errors
        return (n_node_samples < self.min_samples_split or
                n_node_samples < 2 * self.min_samples_leaf or
                weighted_n_node_samples < 2 * self.min_weight_leaf or
                impurity <= MIN_IMPURITY_SPLIT)

    def _is_leaf_after_split(self, split, end):
        # If EPSILON=0 in the below comparison, float precision
        # issues stop splitting, producing trees that are
        # dissimilar to v0.18
        return (split.pos >= end or
                split.improvement + EPSILON < self.min_impurity_decrease)


class StackRecord:
    """Record on stack for depth-first tree growing."""

    __slots__ = ('start', 'end', 'depth', 'parent', 'is_left', 'impurity',
                 'n_constant_features')

    def __init__(self, start=0, end=0, depth=0, parent=TREE_UNDEFINED,
                 is_left=False, impurity=INFINITY, n_constant_features=0):
        self.start = start
        self.end = end
        self.depth = depth
        self.parent = parent
        self.is_left = is_left
        self.impurity = impurity
        self.n_constant_features = n_constant_features


class DepthFirstTreeBuilder(TreeBuilder):
    """Build a decision tree in depth-first fashion.

    Note: this TreeBuilder ignores max_leaf_nodes.
    """

    def build(self, tree, X, y, sample_weight=None):
        """Build a decision tree from the training set (X, y)."""

        # check input
        X, y, sample_weight = self._check_input(X, y, sample_weight)

        # Parameters
        splitter = self.splitter
        max_depth = self.max_depth

        # Recursive partition (without actual recursion)
        splitter.init(X, y, sample_weight)

        first = True
        max_depth_seen = -1

        builder_stack = []
        parent_record = ParentInfo()

        # push root node onto stack
        builder_stack.append(StackRecord(
            start=0,
            end=splitter.n_samples,
            depth=0,
            parent=TREE_UNDEFINED,
            is_left=False,
            impurity=INFINITY,
            n_constant_features=0,
        ))

        while builder_stack:
            stack_record = builder_stack.pop()

            start = stack_record.start
            end = stack_record.end
            depth = stack_record.depth
            parent = stack_record.parent
            is_left = stack_record.is_left
            parent_record.impurity = stack_record.impurity
            parent_record.n_constant_features = stack_record.n_constant_features

            n_node_samples = end - start
            node_impurity = splitter.node_reset(start, end)
            weighted_n_node_samples = splitter.weighted_n_node_samples

            if first:
                parent_record.impurity = node_impurity
                first = False

            is_leaf = (depth >= max_depth or
                       self._is_leaf_before_split(n_node_samples,
                                                  weighted_n_node_samples,
                                                  parent_record.impurity))

            split = SplitRecord(end)
            if not is_leaf:
                splitter.node_split(parent_record, split)
                is_leaf = self._is_leaf_after_split(split, end)

            value = np.zeros(tree.value_stride, dtype=np.float64)
            splitter.node_value(value)

            node_id = tree._add_node(parent, is_left, is_leaf, split.feature,
                                     split.threshold, parent_record.impurity,
                                     n_node_samples, weighted_n_node_samples,
                                     value)

            if not is_leaf:
                # Push right child on stack
                builder_stack.append(StackRecord(
                    start=split.pos,
                    end=end,
                    depth=depth + 1,
                    parent=node_id,
                    is_left=False,
                    impurity=split.impurity_right,
                    n_constant_features=parent_record.n_constant_features,
                ))

                # Push left child on stack
                builder_stack.append(StackRecord(
                    start=start,
                    end=split.pos,
                    depth=depth + 1,
                    parent=node_id,
                    is_left=True,
                    impurity=split.impurity_left,
                    n_constant_features=parent_record.n_constant_features,
                ))

            if depth > max_depth_seen:
                max_depth_seen = depth

        tree.max_depth = max_depth_seen
        logger.debug("depth-first build: %d nodes, %d leaves, depth %d",
                     tree.node_count, tree.n_leaves, tree.max_depth)


# Alias matching the builder's role in the growth strategies
DepthFirstBuilder = DepthFirstTreeBuilder


class FrontierRecord:
    """Record for frontier in best-first tree building.

    A record is a fully evaluated candidate: its split (if any) is already
    applied to the sample array and its value is known. It becomes a tree
    node only when popped from the frontier.
    """

    __slots__ = ('node_id', 'start', 'end', 'pos', 'depth', 'parent', 'is_left',
                 'is_leaf', 'feature', 'threshold', 'impurity', 'impurity_left',
                 'impurity_right', 'improvement', 'weighted_n_node_samples',
                 'value', 'constant_features', 'order')

    def __init__(self):
        self.node_id = TREE_UNDEFINED
        self.start = 0
        self.end = 0
        self.pos = 0
        self.depth = 0
        self.parent = TREE_UNDEFINED
        self.is_left = False
        self.is_leaf = False
        self.feature = TREE_UNDEFINED
        self.threshold = TREE_UNDEFINED
        self.impurity = INFINITY
        self.impurity_left = INFINITY
        self.impurity_right = INFINITY
        self.improvement = -INFINITY
        self.weighted_n_node_samples = 0.0
        self.value = None
        self.constant_features = None
        self.order = 0

    def __lt__(self, other):
        # heapq pops the smallest item: the largest improvement comes first,
        # ties are popped in insertion order
        if self.improvement != other.improvement:
            return self.improvement > other.improvement
        return self.order < other.order


class BestFirstTreeBuilder(TreeBuilder):
    """Build a decision tree in best-first fashion.

    The best node to expand is given by the node at the frontier that has the
    highest impurity improvement.

    Note: this TreeBuilder ignores max_depth.
    """

    def build(self, tree, X, y, sample_weight=None):
        """Build a decision tree from the training set (X, y)."""

        # check input
        X, y, sample_weight = self._check_input(X, y, sample_weight)

        # Parameters
        splitter = self.splitter
        max_leaf_nodes = self.max_leaf_nodes

        # Recursive partition (without actual recursion)
        splitter.init(X, y, sample_weight)

        if max_leaf_nodes is None:
            max_split_nodes = INTPTR_MAX
        else:
            max_split_nodes = max_leaf_nodes - 1
        max_depth_seen = -1

        frontier = []
        self._order = count()

        # add root to frontier
        heapq.heappush(frontier, self._add_split_node(
            splitter=splitter,
            tree=tree,
            start=0,
            end=splitter.n_samples,
            impurity=None,
            is_left=False,
            parent=TREE_UNDEFINED,
            depth=0,
            constant_features=np.empty(0, dtype=np.intp),
        ))

        while frontier:
            record = heapq.heappop(frontier)

            # Once the split budget is spent the remaining records become leaves
            is_leaf = (record.is_leaf or max_split_nodes <= 0)

            record.node_id = tree._add_node(
                record.parent, record.is_left, is_leaf, record.feature,
                record.threshold, record.impurity, record.end - record.start,
                record.weighted_n_node_samples, record.value)

            if not is_leaf:
                # Decrement number of split nodes available
                max_split_nodes -= 1

                # Compute left split node
                split_node_left = self._add_split_node(
                    splitter=splitter,
                    tree=tree,
                    start=record.start,
                    end=record.pos,
                    impurity=record.impurity_left,
                    is_left=True,
                    parent=record.node_id,
                    depth=record.depth + 1,
                    constant_features=record.constant_features,
                )

                # Compute right split node
                split_node_right = self._add_split_node(
                    splitter=splitter,
                    tree=tree,
                    start=record.pos,
                    end=record.end,
                    impurity=record.impurity_right,
                    is_left=False,
                    parent=record.node_id,
                    depth=record.depth + 1,
                    constant_features=record.constant_features,
                )

                # Add nodes to queue
                heapq.heappush(frontier, split_node_left)
                heapq.heappush(frontier, split_node_right)

            if record.depth > max_depth_seen:
                max_depth_seen = record.depth

        tree.max_depth = max_depth_seen
        logger.debug("best-first build: %d nodes, %d leaves, depth %d",
                     tree.node_count, tree.n_leaves, tree.max_depth)

    def _add_split_node(self, splitter, tree, start, end, impurity, is_left,
                        parent, depth, constant_features):
        """Evaluates node w/ partition ``[start, end)`` for the frontier."""
        split = SplitRecord(end)
        node_impurity = splitter.node_reset(start, end)
        weighted_n_node_samples = splitter.weighted_n_node_samples

        if impurity is None:
            impurity = node_impurity

        parent_record = ParentInfo(impurity=impurity,
                                   n_constant_features=len(constant_features))

        n_node_samples = end - start
        is_leaf = self._is_leaf_before_split(n_node_samples,
                                             weighted_n_node_samples,
                                             impurity)

        if not is_leaf:
            splitter.restore_constant_features(constant_features)
            splitter.node_split(parent_record, split)
            is_leaf = self._is_leaf_after_split(split, end)
            constant_features = splitter.constant_features[
                :parent_record.n_constant_features].copy()

        # compute values also for split nodes (might become leafs later).
        value = np.zeros(tree.value_stride, dtype=np.float64)
        splitter.node_value(value)

        res = FrontierRecord()
        res.start = start
        res.end = end
        res.depth = depth
        res.parent = parent
        res.is_left = is_left
        res.impurity = impurity
        res.weighted_n_node_samples = weighted_n_node_samples
        res.value = value
        res.constant_features = constant_features
        res.order = next(self._order)

        if not is_leaf:
            # is split node
            res.pos = split.pos
            res.is_leaf = False
            res.feature = split.feature
            res.threshold = split.threshold
            res.improvement = split.improvement
            res.impurity_left = split.impurity_left
            res.impurity_right = split.impurity_right
        else:
            # is leaf => 0 improvement
            res.pos = end
            res.is_leaf = True
            res.improvement = 0.0
            res.impurity_left = impurity
            res.impurity_right = impurity

        return res

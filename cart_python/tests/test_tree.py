import heapq
import unittest

import numpy as np
from scipy.sparse import csr_matrix

from cart_python._criterion import MSE, Gini
from cart_python._splitter import BestSplitter, PresortBestSplitter, RandomSplitter
from cart_python._tree import (
    TREE_LEAF,
    BestFirstTreeBuilder,
    DepthFirstTreeBuilder,
    FrontierRecord,
    Tree,
)


class RecordingSplitter(BestSplitter):
    """BestSplitter remembering the constant-feature count of every search."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.calls = []

    def node_split(self, parent_record, split):
        before = parent_record.n_constant_features
        rc = super().node_split(parent_record, split)
        self.calls.append((self.start, self.end, split.pos, before,
                           parent_record.n_constant_features))
        return rc


def _build(builder_cls, X, y, splitter_cls=BestSplitter, regression=False,
           max_depth=None, max_leaf_nodes=None, min_samples_leaf=1,
           max_features=None, random_state=0):
    X = np.asarray(X, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    if regression:
        criterion = MSE(1)
        n_classes = [1]
    else:
        n_classes = [int(y.max()) + 1]
        criterion = Gini(1, n_classes)

    splitter = splitter_cls(criterion, max_features, min_samples_leaf, 0.0, random_state)
    if builder_cls is DepthFirstTreeBuilder:
        builder = DepthFirstTreeBuilder(splitter, 2, min_samples_leaf, 0.0, max_depth)
    else:
        builder = BestFirstTreeBuilder(splitter, 2, min_samples_leaf, 0.0, max_depth,
                                       max_leaf_nodes)
    tree = Tree(X.shape[1], n_classes, 1)
    builder.build(tree, X, y)
    return tree, splitter


def _node_depths(tree):
    depths = np.zeros(tree.node_count, dtype=np.intp)
    stack = [(0, 0)]
    while stack:
        node_id, depth = stack.pop()
        depths[node_id] = depth
        if tree.children_left[node_id] != TREE_LEAF:
            stack.append((tree.children_left[node_id], depth + 1))
            stack.append((tree.children_right[node_id], depth + 1))
    return depths


def _noisy_classification(n_samples=100, n_features=3, seed=0):
    random_state = np.random.RandomState(seed)
    X = random_state.uniform(size=(n_samples, n_features))
    y = ((X[:, 0] + 0.3 * random_state.normal(size=n_samples)) > 0.5).astype(int)
    return X, y


class TestDepthFirstBuilder(unittest.TestCase):

    def test_four_samples_depth_one(self):
        tree, _ = _build(DepthFirstTreeBuilder, [[0], [1], [2], [3]], [0, 0, 1, 1],
                         max_depth=1)

        self.assertEqual(tree.node_count, 3)
        self.assertEqual(tree.max_depth, 1)
        np.testing.assert_array_equal(tree.feature, [0, -2, -2])
        np.testing.assert_array_almost_equal(tree.threshold, [1.5, -2, -2])
        np.testing.assert_array_equal(tree.children_left, [1, -1, -1])
        np.testing.assert_array_equal(tree.children_right, [2, -1, -1])
        np.testing.assert_array_almost_equal(tree.impurity, [0.5, 0.0, 0.0])
        np.testing.assert_array_equal(tree.n_node_samples, [4, 2, 2])
        np.testing.assert_array_almost_equal(tree.value[:, 0, :],
                                             [[2, 2], [2, 0], [0, 2]])

    def test_balanced_tree(self):
        X = np.arange(8).reshape((-1, 1))
        y = [0, 0, 1, 1, 10, 10, 11, 11]
        tree, _ = _build(DepthFirstTreeBuilder, X, y, regression=True)

        n_internal = np.sum(tree.children_left != TREE_LEAF)
        self.assertEqual(n_internal, 3)
        self.assertEqual(tree.node_count, 2 * n_internal + 1)
        self.assertEqual(tree.n_leaves, 4)
        self.assertEqual(tree.max_depth, 2)
        # left-to-right depth-first order
        np.testing.assert_array_almost_equal(tree.threshold, [3.5, 1.5, -2, -2, 5.5, -2, -2])
        np.testing.assert_array_almost_equal(tree.value[:, 0, 0],
                                             [5.5, 0.5, 0, 1, 10.5, 10, 11])
        np.testing.assert_array_almost_equal(tree.compute_feature_importances(), [1.0])

    def test_max_depth(self):
        X, y = _noisy_classification()
        for max_depth in [1, 2, 3, 5]:
            tree, _ = _build(DepthFirstTreeBuilder, X, y, max_depth=max_depth)
            depths = _node_depths(tree)
            self.assertLessEqual(depths.max(), max_depth)
            self.assertEqual(tree.max_depth, depths.max())
            n_internal = np.sum(tree.children_left != TREE_LEAF)
            self.assertEqual(tree.node_count, 2 * n_internal + 1)

    def test_leaf_minimums(self):
        X, y = _noisy_classification()
        for splitter_cls in [BestSplitter, RandomSplitter, PresortBestSplitter]:
            tree, _ = _build(DepthFirstTreeBuilder, X, y, splitter_cls=splitter_cls,
                             min_samples_leaf=7)
            self.assertGreaterEqual(tree.n_node_samples.min(), 7)

    def test_constant_features_never_shrink(self):
        X = np.zeros((20, 3))
        X[10:, 1] = np.arange(1, 11)
        X[:, 2] = np.arange(20)
        y = (np.arange(20) % 3 == 0).astype(int)

        tree, splitter = _build(DepthFirstTreeBuilder, X, y, splitter_cls=RecordingSplitter)
        self._check_constant_features(splitter.calls)

    def test_constant_features_never_shrink_best_first(self):
        X = np.zeros((20, 3))
        X[10:, 1] = np.arange(1, 11)
        X[:, 2] = np.arange(20)
        y = (np.arange(20) % 3 == 0).astype(int)

        tree, splitter = _build(BestFirstTreeBuilder, X, y, splitter_cls=RecordingSplitter,
                                max_leaf_nodes=20)
        self._check_constant_features(splitter.calls)

    def _check_constant_features(self, calls):
        self.assertGreater(len(calls), 1)
        by_range = {(start, end): (pos, after) for start, end, pos, _, after in calls}
        for start, end, pos, before, after in calls:
            self.assertGreaterEqual(after, before)
        for start, end, _, before, _ in calls:
            for (p_start, p_end), (p_pos, p_after) in by_range.items():
                if (start, end) in [(p_start, p_pos), (p_pos, p_end)] and p_pos < p_end:
                    self.assertGreaterEqual(before, p_after)
        # feature 0 is constant everywhere
        self.assertGreaterEqual(calls[0][4], 1)

    def test_sparse_input(self):
        criterion = Gini(1, [2])
        splitter = BestSplitter(criterion, None, 1, 0.0, 0)
        builder = DepthFirstTreeBuilder(splitter, 2, 1, 0.0, None)
        with self.assertRaises(ValueError):
            builder.build(Tree(2, [2], 1), csr_matrix(np.eye(2)), np.array([0, 1]))

    def test_apply_predict_decision_path(self):
        tree, _ = _build(DepthFirstTreeBuilder, [[0], [1], [2], [3]], [0, 0, 1, 1])
        X_test = np.array([[0.5], [2.5]], dtype=np.float32)

        np.testing.assert_array_equal(tree.apply(X_test), [1, 2])
        np.testing.assert_array_almost_equal(tree.predict(X_test)[:, 0, :], [[2, 0], [0, 2]])
        np.testing.assert_array_equal(tree.decision_path(X_test).toarray(),
                                      [[1, 1, 0], [1, 0, 1]])
        with self.assertRaises(ValueError):
            tree.apply(X_test.astype(np.float64))


class TestBestFirstBuilder(unittest.TestCase):

    def test_frontier_order(self):
        low = FrontierRecord()
        low.improvement = 0.3
        low.order = 0
        high = FrontierRecord()
        high.improvement = 0.8
        high.order = 1

        for records in ([low, high], [high, low]):
            frontier = []
            for record in records:
                heapq.heappush(frontier, record)
            self.assertIs(heapq.heappop(frontier), high)
            self.assertIs(heapq.heappop(frontier), low)

    def test_ties_pop_in_insertion_order(self):
        records = []
        frontier = []
        for order in range(4):
            record = FrontierRecord()
            record.improvement = 0.0
            record.order = order
            records.append(record)
            heapq.heappush(frontier, record)
        popped = [heapq.heappop(frontier) for _ in range(4)]
        self.assertEqual([r.order for r in popped], [0, 1, 2, 3])

    def test_max_leaf_nodes(self):
        X, y = _noisy_classification()
        for max_leaf_nodes in [2, 3, 5, 8]:
            tree, _ = _build(BestFirstTreeBuilder, X, y, max_leaf_nodes=max_leaf_nodes)
            self.assertEqual(tree.n_leaves, max_leaf_nodes)
            self.assertEqual(tree.node_count, 2 * max_leaf_nodes - 1)

    def test_expands_best_candidate_first(self):
        X = np.arange(12).reshape((-1, 1))
        y = [0, 0, 0, 1, 1, 1, 100, 100, 100, 200, 200, 200]
        tree, _ = _build(BestFirstTreeBuilder, X, y, regression=True, max_leaf_nodes=3)

        # the right child of the root improves far more than the left one
        self.assertEqual(tree.n_leaves, 3)
        np.testing.assert_array_almost_equal(tree.threshold, [5.5, 8.5, -2, -2, -2])
        self.assertEqual(tree.children_right[0], 1)
        self.assertEqual(tree.children_left[0], 2)
        np.testing.assert_array_equal(tree.n_node_samples, [12, 6, 6, 3, 3])
        # the left child was evaluated but committed as a leaf with its known value
        self.assertAlmostEqual(tree.value[2, 0, 0], 0.5)

    def test_ignores_max_depth(self):
        X = np.arange(8).reshape((-1, 1))
        y = [0, 0, 1, 1, 10, 10, 11, 11]
        tree, _ = _build(BestFirstTreeBuilder, X, y, regression=True, max_depth=1,
                         max_leaf_nodes=10)
        self.assertEqual(tree.max_depth, 2)
        self.assertEqual(tree.n_leaves, 4)

    def test_same_splits_as_depth_first(self):
        random_state = np.random.RandomState(0)
        X = random_state.permutation(30).astype(np.float64).reshape((-1, 1))
        y = np.sin(X[:, 0]) + 0.1 * random_state.normal(size=30)

        depth_first, _ = _build(DepthFirstTreeBuilder, X, y, regression=True)
        best_first, _ = _build(BestFirstTreeBuilder, X, y, regression=True)

        self.assertEqual(depth_first.node_count, best_first.node_count)
        np.testing.assert_array_almost_equal(np.sort(depth_first.threshold),
                                             np.sort(best_first.threshold))
        np.testing.assert_array_almost_equal(np.sort(depth_first.value[:, 0, 0]),
                                             np.sort(best_first.value[:, 0, 0]))


class TestRandomSplitterTrees(unittest.TestCase):

    def test_same_seed_same_tree(self):
        X, y = _noisy_classification(seed=3)
        for builder_cls in [DepthFirstTreeBuilder, BestFirstTreeBuilder]:
            first, _ = _build(builder_cls, X, y, splitter_cls=RandomSplitter,
                              max_leaf_nodes=10, max_features=2, random_state=42)
            second, _ = _build(builder_cls, X, y, splitter_cls=RandomSplitter,
                               max_leaf_nodes=10, max_features=2,
                               random_state=np.random.RandomState(42))
            np.testing.assert_array_equal(first.feature, second.feature)
            np.testing.assert_array_equal(first.threshold, second.threshold)
            np.testing.assert_array_equal(first.children_left, second.children_left)
            np.testing.assert_array_equal(first.children_right, second.children_right)

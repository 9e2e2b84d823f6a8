import unittest

import numpy as np
import pytest
from sklearn.datasets import make_classification, make_regression
from sklearn.exceptions import NotFittedError

from cart_python import DecisionTreeClassifier, DecisionTreeRegressor


class TestDecisionTreeClassifier(unittest.TestCase):

    def setUp(self):
        self.X, self.y = make_classification(n_samples=120, n_features=5, n_informative=3,
                                             random_state=0)

    def test_fits_training_data(self):
        for splitter in ["best", "random", "presort"]:
            clf = DecisionTreeClassifier(splitter=splitter, random_state=0).fit(self.X, self.y)
            self.assertEqual(clf.score(self.X, self.y), 1.0)
            self.assertEqual(clf.get_n_leaves(), clf.tree_.n_leaves)
            self.assertEqual(clf.tree_.node_count, 2 * clf.get_n_leaves() - 1)

    def test_presort_same_tree_as_best(self):
        best = DecisionTreeClassifier(splitter="best", random_state=1).fit(self.X, self.y)
        presort = DecisionTreeClassifier(splitter="presort", random_state=1).fit(self.X, self.y)
        np.testing.assert_array_equal(best.tree_.feature, presort.tree_.feature)
        np.testing.assert_array_almost_equal(best.tree_.threshold, presort.tree_.threshold)
        np.testing.assert_array_equal(best.tree_.children_left, presort.tree_.children_left)

    def test_max_leaf_nodes(self):
        for max_leaf_nodes in [2, 4, 7]:
            clf = DecisionTreeClassifier(max_leaf_nodes=max_leaf_nodes, random_state=0)
            clf.fit(self.X, self.y)
            self.assertLessEqual(clf.get_n_leaves(), max_leaf_nodes)

    def test_max_depth(self):
        clf = DecisionTreeClassifier(max_depth=2, random_state=0).fit(self.X, self.y)
        self.assertLessEqual(clf.get_depth(), 2)

    def test_predict_proba(self):
        clf = DecisionTreeClassifier(max_depth=3, random_state=0).fit(self.X, self.y)
        proba = clf.predict_proba(self.X)
        self.assertEqual(proba.shape, (120, 2))
        np.testing.assert_array_almost_equal(proba.sum(axis=1), np.ones(120))
        np.testing.assert_array_equal(clf.classes_.take(np.argmax(proba, axis=1)),
                                      clf.predict(self.X))

    def test_string_labels(self):
        y = np.array(["no", "yes"])[self.y]
        clf = DecisionTreeClassifier(random_state=0).fit(self.X, y)
        np.testing.assert_array_equal(clf.classes_, ["no", "yes"])
        np.testing.assert_array_equal(clf.predict(self.X), y)

    def test_multi_output(self):
        Y = np.column_stack([self.y, 1 - self.y, self.X[:, 0] > 0])
        clf = DecisionTreeClassifier(random_state=0).fit(self.X, Y)
        self.assertEqual(clf.predict(self.X).shape, (120, 3))
        self.assertEqual(len(clf.predict_proba(self.X)), 3)
        np.testing.assert_array_equal(clf.predict(self.X), Y)

    def test_feature_importances(self):
        clf = DecisionTreeClassifier(random_state=0).fit(self.X, self.y)
        importances = clf.feature_importances_
        self.assertEqual(importances.shape, (5,))
        self.assertAlmostEqual(importances.sum(), 1.0)
        self.assertTrue(np.all(importances >= 0))

    def test_apply_and_decision_path(self):
        clf = DecisionTreeClassifier(max_depth=3, random_state=0).fit(self.X, self.y)
        leaves = clf.apply(self.X)
        self.assertTrue(np.all(clf.tree_.children_left[leaves] == -1))
        path = clf.decision_path(self.X)
        self.assertEqual(path.shape, (120, clf.tree_.node_count))
        np.testing.assert_array_equal(path.toarray()[np.arange(120), leaves], np.ones(120))

    def test_sample_weight(self):
        sample_weight = np.ones(120)
        sample_weight[self.y == 0] = 0.0
        clf = DecisionTreeClassifier(random_state=0).fit(self.X, self.y,
                                                         sample_weight=sample_weight)
        # zero-weight samples still count towards the node sizes
        self.assertEqual(clf.tree_.n_node_samples[0], 120)
        self.assertAlmostEqual(clf.tree_.weighted_n_node_samples[0], np.sum(self.y == 1))

    def test_not_fitted(self):
        with self.assertRaises(NotFittedError):
            DecisionTreeClassifier().predict(self.X)

    def test_wrong_number_of_features(self):
        clf = DecisionTreeClassifier(random_state=0).fit(self.X, self.y)
        with self.assertRaises(ValueError):
            clf.predict(self.X[:, :3])


class TestDecisionTreeRegressor(unittest.TestCase):

    def test_fits_training_data(self):
        X, y = make_regression(n_samples=80, n_features=4, random_state=0)
        for splitter in ["best", "random", "presort"]:
            reg = DecisionTreeRegressor(splitter=splitter, random_state=0).fit(X, y)
            np.testing.assert_allclose(reg.predict(X), y, atol=1e-3)

    def test_step_function(self):
        X = np.arange(8).reshape((-1, 1))
        y = np.array([0, 0, 1, 1, 10, 10, 11, 11], dtype=float)
        reg = DecisionTreeRegressor(max_depth=1).fit(X, y)
        np.testing.assert_array_almost_equal(reg.predict([[1], [6]]), [0.5, 10.5])
        self.assertEqual(reg.get_depth(), 1)

    def test_same_random_state_same_tree(self):
        X, y = make_regression(n_samples=60, n_features=6, random_state=2)
        first = DecisionTreeRegressor(splitter="random", max_features=3, random_state=7).fit(X, y)
        second = DecisionTreeRegressor(splitter="random", max_features=3, random_state=7).fit(X, y)
        np.testing.assert_array_equal(first.tree_.feature, second.tree_.feature)
        np.testing.assert_array_equal(first.tree_.threshold, second.tree_.threshold)


@pytest.mark.parametrize("params", [
    {"splitter": "fastest"},
    {"criterion": "mae"},
    {"max_depth": 0},
    {"min_samples_split": 1},
    {"min_samples_leaf": 0},
    {"max_features": 10},
    {"max_leaf_nodes": 1},
    {"min_weight_fraction_leaf": 0.8},
    {"min_impurity_decrease": -1.0},
])
def test_invalid_parameters(params):
    X, y = make_classification(n_samples=30, n_features=4, random_state=0)
    with pytest.raises(ValueError):
        DecisionTreeClassifier(**params).fit(X, y)


def test_negative_sample_weight():
    X, y = make_classification(n_samples=30, n_features=4, random_state=0)
    sample_weight = np.ones(30)
    sample_weight[3] = -1.0
    with pytest.raises(ValueError):
        DecisionTreeClassifier().fit(X, y, sample_weight=sample_weight)

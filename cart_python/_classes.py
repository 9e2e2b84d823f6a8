"""
Decision tree estimators built on the splitters and tree builders of this
package.

`DecisionTreeClassifier` and `DecisionTreeRegressor` follow the
scikit-learn estimator API. Trees are grown depth-first, or best-first when
`max_leaf_nodes` is set.
"""
# Authors: The scikit-learn developers
# SPDX-License-Identifier: BSD-3-Clause

import logging
import numbers
from math import ceil

import numpy as np
from sklearn.base import BaseEstimator, ClassifierMixin, RegressorMixin
from sklearn.utils import check_random_state
from sklearn.utils.validation import check_array, check_is_fitted, check_X_y

from ._criterion import MSE, Entropy, Gini
from ._splitter import DOUBLE, DTYPE, SPLITTERS
from ._tree import BestFirstTreeBuilder, DepthFirstTreeBuilder, Tree

logger = logging.getLogger(__name__)

__all__ = [
    "DecisionTreeClassifier",
    "DecisionTreeRegressor",
]

CRITERIA_CLF = {
    "gini": Gini,
    "log_loss": Entropy,
    "entropy": Entropy,
}
CRITERIA_REG = {
    "squared_error": MSE,
}


class BaseDecisionTree(BaseEstimator):
    """Base class for decision trees.

    Warning: This class should not be used directly.
    Use derived classes instead.
    """

    def __init__(
        self,
        *,
        criterion,
        splitter,
        max_depth,
        min_samples_split,
        min_samples_leaf,
        min_weight_fraction_leaf,
        max_features,
        max_leaf_nodes,
        random_state,
        min_impurity_decrease,
    ):
        self.criterion = criterion
        self.splitter = splitter
        self.max_depth = max_depth
        self.min_samples_split = min_samples_split
        self.min_samples_leaf = min_samples_leaf
        self.min_weight_fraction_leaf = min_weight_fraction_leaf
        self.max_features = max_features
        self.max_leaf_nodes = max_leaf_nodes
        self.random_state = random_state
        self.min_impurity_decrease = min_impurity_decrease

    def get_depth(self):
        """Return the depth of the decision tree."""
        check_is_fitted(self)
        return self.tree_.max_depth

    def get_n_leaves(self):
        """Return the number of leaves of the decision tree."""
        check_is_fitted(self)
        return self.tree_.n_leaves

    def _fit(self, X, y, sample_weight=None, is_classification=False):
        X, y = check_X_y(X, y, dtype=DTYPE, multi_output=True, y_numeric=not is_classification)
        X = np.asfortranarray(X)
        n_samples, self.n_features_in_ = X.shape

        y = np.atleast_1d(y)
        if y.ndim == 1:
            # reshape is necessary to preserve the data contiguity against vs
            # [:, np.newaxis] that does not.
            y = np.reshape(y, (-1, 1))
        self.n_outputs_ = y.shape[1]

        if is_classification:
            y_encoded = np.zeros(y.shape, dtype=int)
            self.classes_ = []
            self.n_classes_ = []
            for k in range(self.n_outputs_):
                classes_k, y_encoded[:, k] = np.unique(y[:, k], return_inverse=True)
                self.classes_.append(classes_k)
                self.n_classes_.append(classes_k.shape[0])
            y = y_encoded
            criteria = CRITERIA_CLF
        else:
            self.n_classes_ = [1] * self.n_outputs_
            criteria = CRITERIA_REG

        self.n_classes_ = np.array(self.n_classes_, dtype=np.intp)
        y = np.ascontiguousarray(y, dtype=DOUBLE)

        if self.criterion not in criteria:
            raise ValueError(
                f"criterion must be one of {sorted(criteria)}, got {self.criterion!r}"
            )
        if self.splitter not in SPLITTERS:
            raise ValueError(
                f"splitter must be one of {sorted(SPLITTERS)}, got {self.splitter!r}"
            )

        max_depth = self._check_max_depth()
        min_samples_leaf = self._check_min_samples_leaf(n_samples)
        min_samples_split = max(self._check_min_samples_split(n_samples),
                                2 * min_samples_leaf)
        max_features = self._check_max_features()
        max_leaf_nodes = self._check_max_leaf_nodes()

        if not 0.0 <= self.min_weight_fraction_leaf <= 0.5:
            raise ValueError("min_weight_fraction_leaf must in [0, 0.5]")
        if self.min_impurity_decrease < 0.0:
            raise ValueError("min_impurity_decrease must be greater than or equal to 0")

        if sample_weight is not None:
            sample_weight = np.asarray(sample_weight, dtype=DOUBLE)
            if sample_weight.shape != (n_samples,):
                raise ValueError(
                    f"sample_weight.shape == {sample_weight.shape}, "
                    f"expected ({n_samples},)"
                )
            min_weight_leaf = self.min_weight_fraction_leaf * np.sum(sample_weight)
        else:
            min_weight_leaf = self.min_weight_fraction_leaf * n_samples

        if is_classification:
            criterion = criteria[self.criterion](self.n_outputs_, self.n_classes_)
        else:
            criterion = criteria[self.criterion](self.n_outputs_)

        splitter = SPLITTERS[self.splitter](
            criterion,
            max_features,
            min_samples_leaf,
            min_weight_leaf,
            check_random_state(self.random_state),
        )

        self.tree_ = Tree(self.n_features_in_, self.n_classes_, self.n_outputs_)

        # Use best-first search if max_leaf_nodes given, else depth-first
        if max_leaf_nodes is None:
            builder = DepthFirstTreeBuilder(
                splitter,
                min_samples_split,
                min_samples_leaf,
                min_weight_leaf,
                max_depth,
                min_impurity_decrease=self.min_impurity_decrease,
            )
        else:
            builder = BestFirstTreeBuilder(
                splitter,
                min_samples_split,
                min_samples_leaf,
                min_weight_leaf,
                max_depth,
                max_leaf_nodes,
                self.min_impurity_decrease,
            )

        logger.debug("fitting %s with %s and %s on %d samples",
                     type(self).__name__, type(splitter).__name__,
                     type(builder).__name__, n_samples)
        builder.build(self.tree_, X, y, sample_weight)

        if self.n_outputs_ == 1 and is_classification:
            self.n_classes_ = self.n_classes_[0]
            self.classes_ = self.classes_[0]

        return self

    def _check_max_depth(self):
        if self.max_depth is None:
            return None
        if not isinstance(self.max_depth, numbers.Integral) or self.max_depth < 1:
            raise ValueError(f"max_depth must be None or an int >= 1, got {self.max_depth!r}")
        return int(self.max_depth)

    def _check_min_samples_leaf(self, n_samples):
        value = self.min_samples_leaf
        if isinstance(value, numbers.Integral):
            if value < 1:
                raise ValueError(f"min_samples_leaf must be at least 1, got {value}")
            return int(value)
        if not 0.0 < value <= 0.5:
            raise ValueError(f"min_samples_leaf must be in (0, 0.5] as a fraction, got {value}")
        return int(ceil(value * n_samples))

    def _check_min_samples_split(self, n_samples):
        value = self.min_samples_split
        if isinstance(value, numbers.Integral):
            if value < 2:
                raise ValueError(f"min_samples_split must be at least 2, got {value}")
            return int(value)
        if not 0.0 < value <= 1.0:
            raise ValueError(f"min_samples_split must be in (0, 1] as a fraction, got {value}")
        return max(2, int(ceil(value * n_samples)))

    def _check_max_features(self):
        n_features = self.n_features_in_
        value = self.max_features
        if value is None:
            max_features = n_features
        elif value == "sqrt":
            max_features = max(1, int(np.sqrt(n_features)))
        elif value == "log2":
            max_features = max(1, int(np.log2(n_features)))
        elif isinstance(value, numbers.Integral):
            max_features = int(value)
        elif isinstance(value, numbers.Real):
            max_features = max(1, int(value * n_features))
        else:
            raise ValueError(f"Invalid value for max_features: {value!r}")

        if not 0 < max_features <= n_features:
            raise ValueError("max_features must be in (0, n_features]")
        return max_features

    def _check_max_leaf_nodes(self):
        value = self.max_leaf_nodes
        if value is None:
            return None
        if not isinstance(value, numbers.Integral) or value < 2:
            raise ValueError(f"max_leaf_nodes {value!r} must be either None or larger than 1")
        return int(value)

    def _validate_X_predict(self, X):
        """Validate the training data on predict (probabilities)."""
        check_is_fitted(self)
        X = check_array(X, dtype=DTYPE)
        if X.shape[1] != self.n_features_in_:
            raise ValueError(
                f"X has {X.shape[1]} features, but {type(self).__name__} "
                f"is expecting {self.n_features_in_} features as input"
            )
        return X

    def predict(self, X):
        """Predict class or regression value for X.

        For a classification model, the predicted class for each sample in X is
        returned. For a regression model, the predicted value based on X is
        returned.
        """
        X = self._validate_X_predict(X)
        proba = self.tree_.predict(X)
        n_samples = X.shape[0]

        # Classification
        if isinstance(self, ClassifierMixin):
            if self.n_outputs_ == 1:
                return self.classes_.take(np.argmax(proba[:, 0], axis=1), axis=0)

            class_type = self.classes_[0].dtype
            predictions = np.zeros((n_samples, self.n_outputs_), dtype=class_type)
            for k in range(self.n_outputs_):
                predictions[:, k] = self.classes_[k].take(
                    np.argmax(proba[:, k], axis=1), axis=0
                )
            return predictions

        # Regression
        if self.n_outputs_ == 1:
            return proba[:, 0, 0]
        return proba[:, :, 0]

    def apply(self, X):
        """Return the index of the leaf that each sample is predicted as."""
        X = self._validate_X_predict(X)
        return self.tree_.apply(X)

    def decision_path(self, X):
        """Return the decision path in the tree as a sparse indicator matrix."""
        X = self._validate_X_predict(X)
        return self.tree_.decision_path(X)

    @property
    def feature_importances_(self):
        """Return the feature importances.

        The importance of a feature is computed as the (normalized) total
        reduction of the criterion brought by that feature.
        """
        check_is_fitted(self)
        return self.tree_.compute_feature_importances()


class DecisionTreeClassifier(ClassifierMixin, BaseDecisionTree):
    """A decision tree classifier.

    Parameters
    ----------
    criterion : {"gini", "entropy", "log_loss"}, default="gini"
        The function to measure the quality of a split.

    splitter : {"best", "random", "presort"}, default="best"
        The strategy used to choose the split at each node. "presort" finds
        the same splits as "best" but sorts every feature once up front.

    max_depth : int, default=None
        The maximum depth of the tree. Ignored when `max_leaf_nodes` is set.

    min_samples_split : int or float, default=2
        The minimum number of samples required to split an internal node.

    min_samples_leaf : int or float, default=1
        The minimum number of samples required to be at a leaf node.

    min_weight_fraction_leaf : float, default=0.0
        The minimum weighted fraction of the sum total of weights required to
        be at a leaf node.

    max_features : int, float, {"sqrt", "log2"} or None, default=None
        The number of features to consider when looking for the best split.

    random_state : int, RandomState instance or None, default=None
        Controls the randomness of the feature sampling and of the random
        thresholds.

    max_leaf_nodes : int, default=None
        Grow a tree with ``max_leaf_nodes`` in best-first fashion.

    min_impurity_decrease : float, default=0.0
        A node will be split if this split induces a decrease of the impurity
        greater than or equal to this value.
    """

    def __init__(
        self,
        *,
        criterion="gini",
        splitter="best",
        max_depth=None,
        min_samples_split=2,
        min_samples_leaf=1,
        min_weight_fraction_leaf=0.0,
        max_features=None,
        random_state=None,
        max_leaf_nodes=None,
        min_impurity_decrease=0.0,
    ):
        super().__init__(
            criterion=criterion,
            splitter=splitter,
            max_depth=max_depth,
            min_samples_split=min_samples_split,
            min_samples_leaf=min_samples_leaf,
            min_weight_fraction_leaf=min_weight_fraction_leaf,
            max_features=max_features,
            max_leaf_nodes=max_leaf_nodes,
            random_state=random_state,
            min_impurity_decrease=min_impurity_decrease,
        )

    def fit(self, X, y, sample_weight=None):
        """Build a decision tree classifier from the training set (X, y)."""
        return self._fit(X, y, sample_weight=sample_weight, is_classification=True)

    def predict_proba(self, X):
        """Predict class probabilities of the input samples X.

        The predicted class probability is the fraction of samples of the same
        class in a leaf.
        """
        X = self._validate_X_predict(X)
        proba = self.tree_.predict(X)

        if self.n_outputs_ == 1:
            proba = proba[:, 0, :self.n_classes_]
            normalizer = proba.sum(axis=1)[:, np.newaxis]
            normalizer[normalizer == 0.0] = 1.0
            return proba / normalizer

        all_proba = []
        for k in range(self.n_outputs_):
            proba_k = proba[:, k, :self.n_classes_[k]]
            normalizer = proba_k.sum(axis=1)[:, np.newaxis]
            normalizer[normalizer == 0.0] = 1.0
            all_proba.append(proba_k / normalizer)
        return all_proba


class DecisionTreeRegressor(RegressorMixin, BaseDecisionTree):
    """A decision tree regressor.

    Parameters are those of `DecisionTreeClassifier`, with
    ``criterion="squared_error"`` as the only criterion.
    """

    def __init__(
        self,
        *,
        criterion="squared_error",
        splitter="best",
        max_depth=None,
        min_samples_split=2,
        min_samples_leaf=1,
        min_weight_fraction_leaf=0.0,
        max_features=None,
        random_state=None,
        max_leaf_nodes=None,
        min_impurity_decrease=0.0,
    ):
        super().__init__(
            criterion=criterion,
            splitter=splitter,
            max_depth=max_depth,
            min_samples_split=min_samples_split,
            min_samples_leaf=min_samples_leaf,
            min_weight_fraction_leaf=min_weight_fraction_leaf,
            max_features=max_features,
            max_leaf_nodes=max_leaf_nodes,
            random_state=random_state,
            min_impurity_decrease=min_impurity_decrease,
        )

    def fit(self, X, y, sample_weight=None):
        """Build a decision tree regressor from the training set (X, y)."""
        return self._fit(X, y, sample_weight=sample_weight, is_classification=False)

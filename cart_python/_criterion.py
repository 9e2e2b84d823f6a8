# _criterion.py
# Authors: The scikit-learn developers
# SPDX-License-Identifier: BSD-3-Clause

import numpy as np

from ._utils import log


class Criterion:
    """Interface for impurity criteria.

    This object stores methods on how to calculate how good a split is using
    different metrics. The statistics of node samples[start:end] are built in
    ``init``; ``update`` then moves samples[pos:new_pos] to the left child,
    always forward. Moving backward needs a fresh ``reset``.
    """

    def __init__(self, n_outputs):
        self.n_outputs = n_outputs

        # Buffers
        self.y = None
        self.sample_weight = None
        self.sample_indices = None

        # Node state
        self.start = 0
        self.end = 0
        self.pos = 0
        self.n_node_samples = 0
        self.weighted_n_samples = 0.0
        self.weighted_n_node_samples = 0.0
        self.weighted_n_left = 0.0
        self.weighted_n_right = 0.0

    def init(self, y, sample_weight, weighted_n_samples, sample_indices, start, end):
        """Initialize the criterion at node samples[start:end]."""
        self.y = y
        self.sample_weight = sample_weight
        self.sample_indices = sample_indices
        self.start = start
        self.end = end
        self.n_node_samples = end - start
        self.weighted_n_samples = weighted_n_samples

        self._init_node_statistics()
        self.reset()
        return 0

    def _init_node_statistics(self):
        raise NotImplementedError()

    def reset(self):
        """Reset the criterion at pos=start."""
        raise NotImplementedError()

    def update(self, new_pos):
        """Update statistics by moving samples[pos:new_pos] to the left."""
        raise NotImplementedError()

    def node_impurity(self):
        """Evaluate the impurity of the current node samples[start:end]."""
        raise NotImplementedError()

    def children_impurity(self):
        """Evaluate the impurity of samples[start:pos] and samples[pos:end]."""
        raise NotImplementedError()

    def node_value(self, dest):
        """Store the node value of samples[start:end] into dest."""
        raise NotImplementedError()

    def _check_forward(self, new_pos):
        if new_pos < self.pos or new_pos > self.end:
            raise ValueError(
                f"update position {new_pos} outside of [{self.pos}, {self.end}]; "
                "call reset() before moving backward"
            )

    def _weight(self, i):
        if self.sample_weight is None:
            return 1.0
        return self.sample_weight[i]

    def proxy_impurity_improvement(self):
        """Compute a proxy of the impurity reduction.

        This method is used to speed up the search for the best split. It
        drops the constant terms of the improvement, so the split with the
        best proxy is also the split with the best improvement.
        """
        impurity_left, impurity_right = self.children_impurity()
        return (- self.weighted_n_right * impurity_right
                - self.weighted_n_left * impurity_left)

    def impurity_improvement(self, impurity_parent, impurity_left, impurity_right):
        """Compute the improvement in impurity.

        This method computes the improvement in impurity when a split occurs.
        The weighted impurity improvement equation is the following::

            N_t / N * (impurity - N_t_R / N_t * right_impurity
                                - N_t_L / N_t * left_impurity)

        where N is the total number of samples, N_t is the number of samples
        at the current node, N_t_L is the number of samples in the left child,
        and N_t_R is the number of samples in the right child.
        """
        if self.weighted_n_node_samples <= 0.0:
            return 0.0
        return ((self.weighted_n_node_samples / self.weighted_n_samples) *
                (impurity_parent - (self.weighted_n_right /
                                    self.weighted_n_node_samples * impurity_right)
                                 - (self.weighted_n_left /
                                    self.weighted_n_node_samples * impurity_left)))


class ClassificationCriterion(Criterion):
    """Abstract criterion for classification.

    ``y`` holds class indices in ``[0, n_classes[k])`` for each output ``k``.
    """

    def __init__(self, n_outputs, n_classes):
        super().__init__(n_outputs)
        self.n_classes = np.asarray(n_classes, dtype=np.intp).reshape(-1)
        if self.n_classes.shape[0] != n_outputs:
            raise ValueError(
                f"n_classes has {self.n_classes.shape[0]} entries, "
                f"expected one per output ({n_outputs})"
            )
        self.max_n_classes = int(np.max(self.n_classes))

        self.sum_total = np.zeros((n_outputs, self.max_n_classes), dtype=np.float64)
        self.sum_left = np.zeros((n_outputs, self.max_n_classes), dtype=np.float64)
        self.sum_right = np.zeros((n_outputs, self.max_n_classes), dtype=np.float64)

    def _init_node_statistics(self):
        self.sum_total.fill(0.0)
        self.weighted_n_node_samples = 0.0

        y = self.y
        for p in range(self.start, self.end):
            i = self.sample_indices[p]
            w = self._weight(i)
            for k in range(self.n_outputs):
                self.sum_total[k, int(y[i, k])] += w
            self.weighted_n_node_samples += w

    def reset(self):
        self.pos = self.start
        self.weighted_n_left = 0.0
        self.weighted_n_right = self.weighted_n_node_samples
        self.sum_left.fill(0.0)
        self.sum_right[:] = self.sum_total
        return 0

    def update(self, new_pos):
        self._check_forward(new_pos)

        y = self.y
        for p in range(self.pos, new_pos):
            i = self.sample_indices[p]
            w = self._weight(i)
            for k in range(self.n_outputs):
                self.sum_left[k, int(y[i, k])] += w
            self.weighted_n_left += w

        np.subtract(self.sum_total, self.sum_left, out=self.sum_right)
        self.weighted_n_right = self.weighted_n_node_samples - self.weighted_n_left
        self.pos = new_pos
        return 0

    def node_value(self, dest):
        """Store the weighted class counts of every output into dest."""
        dest[:self.sum_total.size] = self.sum_total.ravel()

    def node_impurity(self):
        return self._impurity(self.sum_total, self.weighted_n_node_samples)

    def children_impurity(self):
        return (self._impurity(self.sum_left, self.weighted_n_left),
                self._impurity(self.sum_right, self.weighted_n_right))

    def _impurity(self, sum_count, weighted_n):
        raise NotImplementedError()


class Gini(ClassificationCriterion):
    r"""Gini Index impurity criterion.

    Let the target be a classification outcome taking values in 0, 1, ...,
    K-1. If node m represents a region R_m with N_m observations, then let

        count_k = 1/ N_m \sum_{x_i in R_m} I(yi = k)

    be the proportion of class k observations in node m.

    The Gini Index is then defined as:

        index = \sum_{k=0}^{K-1} count_k (1 - count_k)
              = 1 - \sum_{k=0}^{K-1} count_k ** 2
    """

    def _impurity(self, sum_count, weighted_n):
        if weighted_n <= 0.0:
            return 0.0

        gini = 0.0
        for k in range(self.n_outputs):
            counts = sum_count[k, :self.n_classes[k]]
            sq_count = float(np.dot(counts, counts))
            gini += 1.0 - sq_count / (weighted_n * weighted_n)

        return gini / self.n_outputs


class Entropy(ClassificationCriterion):
    r"""Cross Entropy impurity criterion.

    This handles cases where the target is a classification taking values
    0, 1, ... K-2, K-1. If node m represents a region Rm with Nm observations,
    then let

        count_k = 1 / Nm \sum_{x_i in Rm} I(yi = k)

    be the proportion of class k observations in node m.

    The cross-entropy is then defined as

        cross-entropy = -\sum_{k=0}^{K-1} count_k log(count_k)
    """

    def _impurity(self, sum_count, weighted_n):
        if weighted_n <= 0.0:
            return 0.0

        entropy = 0.0
        for k in range(self.n_outputs):
            for c in range(self.n_classes[k]):
                count_k = sum_count[k, c]
                if count_k > 0.0:
                    count_k /= weighted_n
                    entropy -= count_k * log(count_k)

        return entropy / self.n_outputs


class RegressionCriterion(Criterion):
    r"""Abstract regression criterion.

    This handles cases where the target is a continuous value, and is
    evaluated by computing the variance of the target values left and right
    of the split point. The computation takes linear time with `n_samples`
    by using ::

        var = \sum_i^n (y_i - y_bar) ** 2
            = (\sum_i^n y_i ** 2) - n_samples * y_bar ** 2
    """

    def __init__(self, n_outputs):
        super().__init__(n_outputs)
        self.sq_sum_total = 0.0
        self.sq_sum_left = 0.0
        self.sum_total = np.zeros(n_outputs, dtype=np.float64)
        self.sum_left = np.zeros(n_outputs, dtype=np.float64)
        self.sum_right = np.zeros(n_outputs, dtype=np.float64)

    def _init_node_statistics(self):
        self.sq_sum_total = 0.0
        self.sum_total.fill(0.0)
        self.weighted_n_node_samples = 0.0

        y = self.y
        for p in range(self.start, self.end):
            i = self.sample_indices[p]
            w = self._weight(i)
            for k in range(self.n_outputs):
                y_ik = y[i, k]
                self.sum_total[k] += w * y_ik
                self.sq_sum_total += w * y_ik * y_ik
            self.weighted_n_node_samples += w

    def reset(self):
        self.pos = self.start
        self.weighted_n_left = 0.0
        self.weighted_n_right = self.weighted_n_node_samples
        self.sq_sum_left = 0.0
        self.sum_left.fill(0.0)
        self.sum_right[:] = self.sum_total
        return 0

    def update(self, new_pos):
        self._check_forward(new_pos)

        y = self.y
        for p in range(self.pos, new_pos):
            i = self.sample_indices[p]
            w = self._weight(i)
            for k in range(self.n_outputs):
                y_ik = y[i, k]
                self.sum_left[k] += w * y_ik
                self.sq_sum_left += w * y_ik * y_ik
            self.weighted_n_left += w

        np.subtract(self.sum_total, self.sum_left, out=self.sum_right)
        self.weighted_n_right = self.weighted_n_node_samples - self.weighted_n_left
        self.pos = new_pos
        return 0

    def node_value(self, dest):
        """Store the weighted mean of every output into dest."""
        if self.weighted_n_node_samples > 0.0:
            dest[:self.n_outputs] = self.sum_total / self.weighted_n_node_samples
        else:
            dest[:self.n_outputs] = 0.0


class MSE(RegressionCriterion):
    """Mean squared error impurity criterion.

        MSE = var_left + var_right
    """

    def node_impurity(self):
        return self._variance(self.sq_sum_total, self.sum_total,
                              self.weighted_n_node_samples)

    def children_impurity(self):
        impurity_left = self._variance(self.sq_sum_left, self.sum_left,
                                       self.weighted_n_left)
        impurity_right = self._variance(self.sq_sum_total - self.sq_sum_left,
                                        self.sum_right, self.weighted_n_right)
        return impurity_left, impurity_right

    def proxy_impurity_improvement(self):
        # The terms that only depend on the parent node are dropped:
        # sq_sum_total / N_t and the sum over outputs of mean ** 2.
        if self.weighted_n_left <= 0.0 or self.weighted_n_right <= 0.0:
            return -np.inf
        proxy_impurity_left = float(np.dot(self.sum_left, self.sum_left))
        proxy_impurity_right = float(np.dot(self.sum_right, self.sum_right))
        return (proxy_impurity_left / self.weighted_n_left +
                proxy_impurity_right / self.weighted_n_right)

    def _variance(self, sq_sum, sums, weighted_n):
        if weighted_n <= 0.0:
            return 0.0
        mean = sums / weighted_n
        impurity = sq_sum / weighted_n - float(np.dot(mean, mean))
        return impurity / self.n_outputs

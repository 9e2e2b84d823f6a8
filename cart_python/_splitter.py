# _splitter.py
# Authors: The scikit-learn developers
# SPDX-License-Identifier: BSD-3-Clause

import logging

import numpy as np
from scipy.sparse import issparse

from ._partitioner import FEATURE_THRESHOLD, DensePartitioner, PresortPartitioner
from ._utils import rand_int, rand_uniform, seed_from_random_state

logger = logging.getLogger(__name__)

INFINITY = np.inf

DTYPE = np.float32
DOUBLE = np.float64


class SplitRecord:
    """Record of a split for a node.

    ``pos`` is the first position of the right child in the sample array;
    ``pos >= end`` means that no admissible split was found.
    """

    def __init__(self, start_pos=0):
        self.impurity_left = INFINITY
        self.impurity_right = INFINITY
        self.pos = start_pos
        self.feature = 0
        self.threshold = 0.0
        self.improvement = -INFINITY

    def __repr__(self):
        return (f"SplitRecord(feature={self.feature}, threshold={self.threshold:.4f}, "
                f"pos={self.pos}, improvement={self.improvement:.4f})")

    def copy_from(self, other):
        """Copy data from another SplitRecord."""
        self.impurity_left = other.impurity_left
        self.impurity_right = other.impurity_right
        self.pos = other.pos
        self.feature = other.feature
        self.threshold = other.threshold
        self.improvement = other.improvement


class ParentInfo:
    """Information about parent node.

    ``node_split`` writes the number of constant features known after the
    search back into ``n_constant_features``.
    """

    def __init__(self, impurity=INFINITY, n_constant_features=0):
        self.n_constant_features = n_constant_features
        self.impurity = impurity


class Splitter:
    """Abstract splitter class.

    Splitters are called by tree builders to find the best splits on dense
    data, one split at a time.

    The samples array `samples` is maintained by the Splitter object such that
    the samples contained in a node are contiguous. With this setting,
    `node_split` reorganizes the node samples `samples[start:end]` in two
    subsets `samples[start:pos]` and `samples[pos:end]`.

    The 1-d `features` array of size n_features contains the features indices
    and allows fast sampling without replacement of features.

    The 1-d `constant_features` array of size n_features holds in
    `constant_features[:n_constant_features]` the feature ids with constant
    values for all the samples that reached a specific node. The value
    `n_constant_features` is given by the parent node to its child nodes. The
    content of the range `[n_constant_features:]` is left undefined.
    """

    def __init__(
        self,
        criterion,
        max_features,
        min_samples_leaf,
        min_weight_leaf,
        random_state,
    ):
        self.criterion = criterion
        self.n_samples = 0
        self.n_features = 0
        self.max_features = max_features
        self.min_samples_leaf = min_samples_leaf
        self.min_weight_leaf = min_weight_leaf
        self.random_state = random_state
        self.rand_r_state = None

        # Buffers
        self.X = None
        self.samples = None
        self.features = None
        self.feature_values = None
        self.constant_features = None
        self.y = None
        self.sample_weight = None

        # Node state
        self.start = 0
        self.end = 0
        self.weighted_n_samples = 0.0
        self.partitioner = None

    def init(self, X, y, sample_weight=None):
        """Initialize the splitter.

        Take in the input data X, the target Y, and optional sample weights.
        Raises ValueError if the inputs disagree in their number of samples,
        if there are no samples or if a sample weight is negative.
        """
        if issparse(X):
            raise ValueError("Sparse input is not supported, X should be a dense array")

        X = np.asarray(X)
        if X.ndim != 2:
            raise ValueError(f"X should be a 2d array, got {X.ndim}d")
        # columns are scanned one feature at a time
        X = np.asfortranarray(X, dtype=DTYPE)

        n_samples, n_features = X.shape
        if n_samples == 0:
            raise ValueError("Cannot build a tree on 0 samples")

        y = np.asarray(y)
        if y.ndim == 1:
            y = y.reshape((-1, 1))
        if y.shape[0] != n_samples:
            raise ValueError(
                f"Number of labels={y.shape[0]} does not match "
                f"number of samples={n_samples}"
            )

        if sample_weight is not None:
            sample_weight = np.asarray(sample_weight, dtype=DOUBLE)
            if sample_weight.ndim != 1 or sample_weight.shape[0] != n_samples:
                raise ValueError(
                    f"sample_weight.shape == {sample_weight.shape}, "
                    f"expected ({n_samples},)"
                )
            if np.any(sample_weight < 0):
                raise ValueError("Negative values in sample_weight")
            weighted_n_samples = float(np.sum(sample_weight))
        else:
            weighted_n_samples = float(n_samples)

        self.X = X
        self.samples = np.arange(n_samples, dtype=np.intp)
        self.n_samples = n_samples
        self.weighted_n_samples = weighted_n_samples

        self.features = np.arange(n_features, dtype=np.intp)
        self.n_features = n_features

        self.feature_values = np.empty(n_samples, dtype=DTYPE)
        self.constant_features = np.empty(n_features, dtype=np.intp)

        self.y = y
        self.sample_weight = sample_weight

        # Seeded once per build, every draw then advances this state.
        self.rand_r_state = np.array([seed_from_random_state(self.random_state)],
                                     dtype=np.uint32)
        return 0

    def node_reset(self, start, end):
        """Reset splitter on node samples[start:end].

        Returns the impurity of the node.
        """
        self.start = start
        self.end = end

        self.criterion.init(
            self.y,
            self.sample_weight,
            self.weighted_n_samples,
            self.samples,
            start,
            end
        )
        return self.criterion.node_impurity()

    @property
    def weighted_n_node_samples(self):
        """Weighted number of samples of the current node."""
        return self.criterion.weighted_n_node_samples

    def node_split(self, parent_record, split):
        """Find the best split on node samples[start:end].

        Fills `split` and reorders samples[start:end] into samples[start:pos]
        and samples[pos:end]; `split.pos == end` when no admissible split
        exists. Writes the number of constant features known after the
        search back into `parent_record.n_constant_features`. Returns 0.
        """
        raise NotImplementedError("Subclasses must implement node_split")

    def node_value(self, dest):
        """Copy the value of node samples[start:end] into dest."""
        self.criterion.node_value(dest)

    def node_impurity(self):
        """Return the impurity of the current node."""
        return self.criterion.node_impurity()

    def restore_constant_features(self, constant_features):
        """Move the given constant features back to the front of `features`.

        Used when nodes are not split in depth-first order, other nodes may
        have reordered `features` since these constants were found.
        """
        features = self.features
        for i, feature in enumerate(constant_features):
            j = int(np.flatnonzero(features == feature)[0])
            features[i], features[j] = features[j], features[i]
        self.constant_features[:len(constant_features)] = constant_features


def _max_features(splitter):
    if splitter.max_features is None:
        return splitter.n_features
    return splitter.max_features


def node_split_best(splitter, partitioner, criterion, split, parent_record):
    """Find the best split on node samples[start:end]"""
    start = splitter.start
    end = splitter.end

    features = splitter.features
    constant_features = splitter.constant_features
    n_features = splitter.n_features

    feature_values = splitter.feature_values
    max_features = _max_features(splitter)
    min_samples_leaf = splitter.min_samples_leaf
    min_weight_leaf = splitter.min_weight_leaf
    random_state = splitter.rand_r_state

    best_split = SplitRecord(end)
    current_split = SplitRecord()
    current_proxy_improvement = -INFINITY
    best_proxy_improvement = -INFINITY

    impurity = parent_record.impurity

    f_i = n_features
    p_prev = 0

    n_visited_features = 0
    n_found_constants = 0
    n_drawn_constants = 0
    n_known_constants = parent_record.n_constant_features
    n_total_constants = n_known_constants

    partitioner.init_node_split(start, end)

    # Fisher-Yates sampling of up to max_features features
    while (f_i > n_total_constants and
           (n_visited_features < max_features or
            # At least one drawn features must be non constant
            n_visited_features <= n_found_constants + n_drawn_constants)):

        n_visited_features += 1

        f_j = rand_int(n_drawn_constants, f_i - n_found_constants, random_state)

        if f_j < n_known_constants:
            features[n_drawn_constants], features[f_j] = features[f_j], features[n_drawn_constants]
            n_drawn_constants += 1
            continue

        f_j += n_found_constants
        current_split.feature = features[f_j]
        partitioner.sort_samples_and_feature_values(current_split.feature)

        if feature_values[end - 1] <= feature_values[start] + FEATURE_THRESHOLD:
            # We consider this feature constant
            features[f_j], features[n_total_constants] = features[n_total_constants], features[f_j]
            n_found_constants += 1
            n_total_constants += 1
            continue

        f_i -= 1
        features[f_i], features[f_j] = features[f_j], features[f_i]

        # Evaluate all splits
        criterion.reset()
        p = start

        while p < end:
            p_prev, p = partitioner.next_p(p_prev, p)

            if p >= end:
                continue

            # Reject if min_samples_leaf is not guaranteed
            if p - start < min_samples_leaf or end - p < min_samples_leaf:
                continue

            current_split.pos = p
            criterion.update(current_split.pos)

            # Reject if min_weight_leaf is not satisfied
            if ((criterion.weighted_n_left < min_weight_leaf) or
                    (criterion.weighted_n_right < min_weight_leaf)):
                continue

            current_proxy_improvement = criterion.proxy_impurity_improvement()

            if current_proxy_improvement > best_proxy_improvement:
                best_proxy_improvement = current_proxy_improvement
                # sum of halves is used to avoid infinite value
                current_split.threshold = (
                    float(feature_values[p_prev]) / 2.0 + float(feature_values[p]) / 2.0
                )

                if (current_split.threshold == feature_values[p] or
                        current_split.threshold == INFINITY or
                        current_split.threshold == -INFINITY):
                    current_split.threshold = float(feature_values[p_prev])

                best_split.copy_from(current_split)

    # Reorganize into samples[start:best_split.pos] + samples[best_split.pos:end]
    if best_split.pos < end:
        partitioner.partition_samples_final(
            best_split.pos,
            best_split.threshold,
            best_split.feature,
        )

        # The search ranked positions by the proxy, compute the exact values
        criterion.reset()
        criterion.update(best_split.pos)
        best_split.impurity_left, best_split.impurity_right = criterion.children_impurity()
        best_split.improvement = criterion.impurity_improvement(
            impurity,
            best_split.impurity_left,
            best_split.impurity_right
        )

    # Respect invariant for constant features: the original order of
    # element in features[:n_known_constants] must be preserved for sibling
    # and child nodes
    features[:n_known_constants] = constant_features[:n_known_constants]

    # Copy newly found constant features
    constant_features[n_known_constants:n_known_constants + n_found_constants] = \
        features[n_known_constants:n_known_constants + n_found_constants]

    # Return values
    parent_record.n_constant_features = n_total_constants
    split.copy_from(best_split)
    return 0


def node_split_random(splitter, partitioner, criterion, split, parent_record):
    """Find the best random split on node samples[start:end]"""
    # Draw random splits and pick the best
    start = splitter.start
    end = splitter.end

    features = splitter.features
    constant_features = splitter.constant_features
    n_features = splitter.n_features

    max_features = _max_features(splitter)
    min_samples_leaf = splitter.min_samples_leaf
    min_weight_leaf = splitter.min_weight_leaf
    random_state = splitter.rand_r_state

    best_split = SplitRecord(end)
    current_split = SplitRecord()
    current_proxy_improvement = -INFINITY
    best_proxy_improvement = -INFINITY

    impurity = parent_record.impurity

    f_i = n_features
    n_found_constants = 0
    n_drawn_constants = 0
    n_known_constants = parent_record.n_constant_features
    n_total_constants = n_known_constants
    n_visited_features = 0

    partitioner.init_node_split(start, end)

    # Fisher-Yates sampling of up to max_features features
    while (f_i > n_total_constants and
           (n_visited_features < max_features or
            # At least one drawn features must be non constant
            n_visited_features <= n_found_constants + n_drawn_constants)):
        n_visited_features += 1

        f_j = rand_int(n_drawn_constants, f_i - n_found_constants, random_state)

        if f_j < n_known_constants:
            features[n_drawn_constants], features[f_j] = features[f_j], features[n_drawn_constants]
            n_drawn_constants += 1
            continue

        f_j += n_found_constants

        current_split.feature = features[f_j]

        # Find min, max as we will randomly select a threshold between them
        min_feature_value, max_feature_value = partitioner.find_min_max(current_split.feature)

        if max_feature_value <= min_feature_value + FEATURE_THRESHOLD:
            # We consider this feature constant
            features[f_j], features[n_total_constants] = features[n_total_constants], current_split.feature
            n_found_constants += 1
            n_total_constants += 1
            continue

        f_i -= 1
        features[f_i], features[f_j] = features[f_j], features[f_i]

        # Draw a random threshold
        current_split.threshold = rand_uniform(
            float(min_feature_value),
            float(max_feature_value),
            random_state,
        )

        if current_split.threshold == max_feature_value:
            current_split.threshold = float(min_feature_value)

        # Partition
        current_split.pos = partitioner.partition_samples(current_split.threshold)

        # Reject if min_samples_leaf is not guaranteed
        if (current_split.pos - start < min_samples_leaf or
                end - current_split.pos < min_samples_leaf):
            continue

        # Evaluate split
        criterion.reset()
        criterion.update(current_split.pos)

        # Reject if min_weight_leaf is not satisfied
        if ((criterion.weighted_n_left < min_weight_leaf) or
                (criterion.weighted_n_right < min_weight_leaf)):
            continue

        current_proxy_improvement = criterion.proxy_impurity_improvement()

        if current_proxy_improvement > best_proxy_improvement:
            best_proxy_improvement = current_proxy_improvement
            best_split.copy_from(current_split)

    # Reorganize into samples[start:best.pos] + samples[best.pos:end]
    if best_split.pos < end:
        if current_split.feature != best_split.feature:
            partitioner.partition_samples_final(
                best_split.pos,
                best_split.threshold,
                best_split.feature,
            )

        criterion.reset()
        criterion.update(best_split.pos)
        best_split.impurity_left, best_split.impurity_right = criterion.children_impurity()
        best_split.improvement = criterion.impurity_improvement(
            impurity,
            best_split.impurity_left,
            best_split.impurity_right
        )

    # Respect invariant for constant features: the original order of
    # element in features[:n_known_constants] must be preserved for sibling
    # and child nodes
    features[:n_known_constants] = constant_features[:n_known_constants]

    # Copy newly found constant features
    constant_features[n_known_constants:n_known_constants + n_found_constants] = \
        features[n_known_constants:n_known_constants + n_found_constants]

    # Return values
    parent_record.n_constant_features = n_total_constants
    split.copy_from(best_split)
    return 0


class BestSplitter(Splitter):
    """Splitter for finding the best split on dense data."""

    def init(self, X, y, sample_weight=None):
        rc = super().init(X, y, sample_weight)
        if rc != 0:
            return rc

        self.partitioner = DensePartitioner(self.X, self.samples, self.feature_values)
        return 0

    def node_split(self, parent_record, split):
        return node_split_best(
            self,
            self.partitioner,
            self.criterion,
            split,
            parent_record,
        )


class RandomSplitter(Splitter):
    """Splitter for finding the best random split on dense data."""

    def init(self, X, y, sample_weight=None):
        rc = super().init(X, y, sample_weight)
        if rc != 0:
            return rc

        self.partitioner = DensePartitioner(self.X, self.samples, self.feature_values)
        return 0

    def node_split(self, parent_record, split):
        return node_split_random(
            self,
            self.partitioner,
            self.criterion,
            split,
            parent_record,
        )


class PresortBestSplitter(Splitter):
    """Splitter for finding the best split, using presorting.

    The ascending order of every feature over the whole training set is
    computed once in `init`; nodes filter it through a sample mask instead
    of sorting their own samples.
    """

    def __init__(self, criterion, max_features, min_samples_leaf,
                 min_weight_leaf, random_state):
        super().__init__(criterion, max_features, min_samples_leaf,
                         min_weight_leaf, random_state)
        self.X_argsorted = None
        self.sample_mask = None
        self.n_total_samples = 0

    def init(self, X, y, sample_weight=None):
        rc = super().init(X, y, sample_weight)
        if rc != 0:
            return rc

        self.n_total_samples = self.n_samples
        self.X_argsorted = np.asfortranarray(
            np.argsort(self.X, axis=0, kind="mergesort").astype(np.intp, copy=False)
        )
        self.sample_mask = np.zeros(self.n_total_samples, dtype=np.uint8)
        logger.debug("presorted %d features over %d samples",
                     self.n_features, self.n_total_samples)

        self.partitioner = PresortPartitioner(
            self.X, self.samples, self.feature_values,
            self.X_argsorted, self.sample_mask
        )
        return 0

    def node_split(self, parent_record, split):
        try:
            return node_split_best(
                self,
                self.partitioner,
                self.criterion,
                split,
                parent_record,
            )
        finally:
            self.partitioner.clear_node_split()


SPLITTERS = {
    "best": BestSplitter,
    "random": RandomSplitter,
    "presort": PresortBestSplitter,
}

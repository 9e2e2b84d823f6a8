"""Partition samples in the construction of a tree.

This module contains the algorithms for moving sample indices to
the left and right child node given a split determined by the
splitting algorithm in `_splitter.py`.

Only dense data is handled: `DensePartitioner` works on the node's local
samples, `PresortPartitioner` reuses a global per-feature ordering computed
once for the whole training set.
"""
# Authors: The scikit-learn developers
# SPDX-License-Identifier: BSD-3-Clause

import numpy as np


# Feature threshold for considering values equal
FEATURE_THRESHOLD = 1e-7


class DensePartitioner:
    """Partitioner specialized for dense data.

    Note that this partitioner is agnostic to the splitting strategy (best vs. random).
    """
    def __init__(self, X, samples, feature_values):
        self.X = X
        self.samples = samples
        self.feature_values = feature_values
        self.start = 0
        self.end = 0

    def init_node_split(self, start, end):
        """Initialize splitter at the beginning of node_split."""
        self.start = start
        self.end = end

    def sort_samples_and_feature_values(self, current_feature):
        """Simultaneously sort samples[start:end] and feature_values[start:end]
        by the values of current_feature."""
        start = self.start
        end = self.end
        samples = self.samples

        # Copy the values into a contiguous buffer before sorting it, feature
        # columns are read once per node and feature.
        self.feature_values[start:end] = self.X[samples[start:end], current_feature]
        self._sort(self.feature_values, samples, start, end - start)

    def find_min_max(self, current_feature):
        """Find the minimum and maximum value for current_feature.

        The values are cached in feature_values[start:end] for
        `partition_samples`.
        """
        start = self.start
        end = self.end

        values = self.X[self.samples[start:end], current_feature]
        self.feature_values[start:end] = values
        return values.min(), values.max()

    def next_p(self, p_prev, p):
        """Compute the next p_prev and p for iterating over feature values.

        Positions whose value is within FEATURE_THRESHOLD of the next one are
        skipped, a threshold is never placed between (nearly) equal values.
        """
        feature_values = self.feature_values
        end = self.end

        while (p + 1 < end and
               feature_values[p + 1] <= feature_values[p] + FEATURE_THRESHOLD):
            p += 1

        p_prev = p

        # By adding 1, we have
        # (feature_values[p] >= end) or (feature_values[p] > feature_values[p - 1])
        p += 1

        return p_prev, p

    def partition_samples(self, current_threshold):
        """Partition samples for feature_values at the current_threshold."""
        p = self.start
        partition_end = self.end
        samples = self.samples
        feature_values = self.feature_values

        while p < partition_end:
            if feature_values[p] <= current_threshold:
                p += 1
            else:
                partition_end -= 1

                feature_values[p], feature_values[partition_end] = (
                    feature_values[partition_end], feature_values[p]
                )
                samples[p], samples[partition_end] = samples[partition_end], samples[p]

        return partition_end

    def partition_samples_final(self, best_pos, best_threshold, best_feature):
        """Partition samples for X at the best_threshold and best_feature.

        Reads X directly since feature_values may hold another feature.
        """
        # Local invariance: start <= p <= partition_end <= end
        p = self.start
        partition_end = self.end - 1
        samples = self.samples
        X = self.X

        while p <= partition_end:
            if X[samples[p], best_feature] <= best_threshold:
                p += 1
            else:
                samples[p], samples[partition_end] = samples[partition_end], samples[p]
                partition_end -= 1

        if p != best_pos:
            raise RuntimeError(
                f"partition of feature {best_feature} at {best_threshold} ended at "
                f"{p}, expected {best_pos}"
            )

    def _sort(self, feature_values, samples, start, n):
        """Sort n-element arrays feature_values and samples simultaneously."""
        if n == 0:
            return

        # Copy the slices to sort
        fv_slice = feature_values[start:start + n].copy()
        s_slice = samples[start:start + n].copy()

        # Get sorted indices
        sorted_idx = np.argsort(fv_slice, kind="mergesort")

        # Apply sorting to both arrays
        feature_values[start:start + n] = fv_slice[sorted_idx]
        samples[start:start + n] = s_slice[sorted_idx]


class PresortPartitioner(DensePartitioner):
    """Partitioner walking a presorted order of the whole training set.

    ``X_argsorted[:, f]`` is the ascending order of all samples along feature
    ``f``; ``sample_mask`` flags the samples of the current node so the
    presorted order can be filtered instead of sorting the node again.
    """
    def __init__(self, X, samples, feature_values, X_argsorted, sample_mask):
        super().__init__(X, samples, feature_values)
        self.X_argsorted = X_argsorted
        self.sample_mask = sample_mask

    def init_node_split(self, start, end):
        super().init_node_split(start, end)
        self.sample_mask[self.samples[start:end]] = 1

    def clear_node_split(self):
        """Unflag the node samples, the mask must be all-zero between nodes."""
        self.sample_mask[self.samples[self.start:self.end]] = 0

    def sort_samples_and_feature_values(self, current_feature):
        """Filter the presorted order of current_feature through the mask.

        Costs O(n_total_samples) instead of a sort of the node.
        """
        order = self.X_argsorted[:, current_feature]
        active = order[self.sample_mask[order] != 0]

        self.samples[self.start:self.end] = active
        self.feature_values[self.start:self.end] = self.X[active, current_feature]

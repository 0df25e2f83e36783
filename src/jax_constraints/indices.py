"""Index sets made of contiguous segments.

A :class:`BlockIndices` selects rows or columns of vectors and matrices, for
instance the velocity coordinates eliminated by an explicit function. The
index arrays are computed once at construction; when the set is a single
segment, selections are plain slices and therefore views.
"""

from typing import Iterable, Optional, Sequence, Tuple

import numpy as np

from .errors import ConstraintConfigurationError

Segment = Tuple[int, int]


class BlockIndices:
    """Ordered set of disjoint ``(start, length)`` segments.

    Segments are sorted and adjacent ones merged. Overlapping segments, negative
    starts or lengths, and segments beyond ``bound`` (when given) raise
    :class:`ConstraintConfigurationError`.
    """

    def __init__(self, segments: Iterable[Segment] = (), bound: Optional[int] = None):
        cleaned = []
        for start, length in segments:
            start, length = int(start), int(length)
            if start < 0 or length < 0:
                raise ConstraintConfigurationError(f"invalid segment ({start}, {length})")
            if length > 0:
                cleaned.append((start, length))
        cleaned.sort()

        merged = []
        for start, length in cleaned:
            if merged:
                last_start, last_length = merged[-1]
                last_end = last_start + last_length
                if start < last_end:
                    raise ConstraintConfigurationError(
                        f"segments ({last_start}, {last_length}) and ({start}, {length}) overlap")
                if start == last_end:
                    merged[-1] = (last_start, last_length + length)
                    continue
            merged.append((start, length))

        if bound is not None and merged and merged[-1][0] + merged[-1][1] > bound:
            raise ConstraintConfigurationError(
                f"segment {merged[-1]} exceeds dimension {bound}")

        self.segments: Tuple[Segment, ...] = tuple(merged)
        self.indices = np.concatenate(
            [np.arange(s, s + n) for s, n in merged] or [np.zeros(0, dtype=np.intp)]
        ).astype(np.intp)
        self.indices.setflags(write=False)
        if len(merged) == 1:
            self.index = slice(merged[0][0], merged[0][0] + merged[0][1])
        else:
            self.index = self.indices

    @classmethod
    def interval(cls, start: int, length: int) -> "BlockIndices":
        return cls([(start, length)])

    @classmethod
    def full(cls, size: int) -> "BlockIndices":
        return cls([(0, size)])

    @classmethod
    def from_indices(cls, indices: Sequence[int]) -> "BlockIndices":
        """Set of the given indices; duplicates are an error."""
        return cls((i, 1) for i in indices)

    @classmethod
    def coerce(cls, value, bound: Optional[int] = None) -> "BlockIndices":
        """Accept a BlockIndices or a sequence of segments."""
        if isinstance(value, BlockIndices):
            if bound is not None:
                cls(value.segments, bound)
            return value
        return cls(value, bound)

    @property
    def size(self) -> int:
        return len(self.indices)

    def __len__(self) -> int:
        return self.size

    def __iter__(self):
        return iter(self.indices.tolist())

    def __contains__(self, i) -> bool:
        return any(s <= i < s + n for s, n in self.segments)

    def __eq__(self, other):
        return isinstance(other, BlockIndices) and self.segments == other.segments

    def __hash__(self):
        return hash(self.segments)

    def __repr__(self):
        return f"BlockIndices({list(self.segments)})"

    # Set operations

    def intersects(self, other: "BlockIndices") -> bool:
        return len(np.intersect1d(self.indices, other.indices)) > 0

    def intersection(self, other: "BlockIndices") -> "BlockIndices":
        return BlockIndices.from_indices(np.intersect1d(self.indices, other.indices))

    def union(self, other: "BlockIndices") -> "BlockIndices":
        return BlockIndices.from_indices(np.union1d(self.indices, other.indices))

    def difference(self, other: "BlockIndices") -> "BlockIndices":
        return BlockIndices.from_indices(np.setdiff1d(self.indices, other.indices))

    def complement(self, size: int) -> "BlockIndices":
        """Indices of ``range(size)`` not in this set."""
        return BlockIndices.full(size).difference(self)

    # Views

    def view(self, vector: np.ndarray) -> np.ndarray:
        """Selected entries of a vector."""
        return vector[self.index]

    def rview(self, matrix: np.ndarray) -> np.ndarray:
        """Selected rows of a matrix."""
        return matrix[self.index, :]

    def cview(self, matrix: np.ndarray) -> np.ndarray:
        """Selected columns of a matrix."""
        return matrix[:, self.index]

    def block(self, matrix: np.ndarray, cols: "BlockIndices") -> np.ndarray:
        """Rows in this set and columns in ``cols``."""
        return matrix[np.ix_(self.indices, cols.indices)]

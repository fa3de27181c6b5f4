"""
Combinatorial number system for card subsets.

A sorted k-subset of an n-card universe maps to its position in the
lexicographic enumeration of all k-subsets (ascending index sequences).
This rank is the record address in every table file:
- subset aggregate table: k = 0..5 over the 52-card deck
- strategy tables: k = 5 over the 52-card deck
"""

import itertools
from functools import lru_cache
from typing import Sequence, Tuple

import numpy as np

MAX_N = 52
MAX_K = 5


def build_choose_table(max_n: int = MAX_N, max_k: int = MAX_K) -> np.ndarray:
    """Binomial coefficients C(n, k) for n <= max_n, k <= max_k via Pascal's triangle."""
    table = np.zeros((max_n + 1, max_k + 1), dtype=np.int64)
    table[:, 0] = 1
    for n in range(1, max_n + 1):
        for k in range(1, min(n, max_k) + 1):
            table[n, k] = table[n - 1, k - 1] + table[n - 1, k]
    return table


CHOOSE = build_choose_table()
TOTAL_HANDS = int(CHOOSE[MAX_N, 5])
_CHOOSE_LIST = CHOOSE.tolist()


def n_choose_k(n: int, k: int) -> int:
    if k < 0 or n < 0 or k > n:
        return 0
    return _CHOOSE_LIST[n][k]


def rank_combination(sorted_indices: Sequence[int], n: int = MAX_N) -> int:
    """
    Rank of a strictly ascending index sequence among all k-subsets of range(n).

    Skipping the values start..c-1 at a position with r picks left passes
    C(n-start, r) - C(n-c, r) subsets (hockey-stick identity), so the rank is
    a sum of at most 2k table reads.
    """
    k = len(sorted_indices)
    if k > MAX_K:
        raise ValueError(f"Subsets larger than {MAX_K} cards are not indexed")

    rank = 0
    start = 0
    remaining = k
    for index in sorted_indices:
        if index < start or index >= n:
            raise ValueError(f"Indices must be strictly ascending and below {n}: {tuple(sorted_indices)}")
        rank += _CHOOSE_LIST[n - start][remaining] - _CHOOSE_LIST[n - index][remaining]
        start = index + 1
        remaining -= 1
    return rank


def unrank_combination(rank: int, k: int, n: int = MAX_N) -> Tuple[int, ...]:
    """Inverse of rank_combination; always returns a strictly ascending tuple of length k."""
    if not 0 <= k <= MAX_K:
        raise ValueError(f"k must be in 0..{MAX_K}, got {k}")
    if not 0 <= rank < n_choose_k(n, k):
        raise ValueError(f"Rank {rank} out of range for C({n}, {k})")

    result = []
    value = 0
    remaining = k
    while remaining > 0:
        block = _CHOOSE_LIST[n - value - 1][remaining - 1]
        if rank < block:
            result.append(value)
            remaining -= 1
        else:
            rank -= block
        value += 1
    return tuple(result)


def rank_combinations(subsets: np.ndarray, n: int = MAX_N) -> np.ndarray:
    """Vectorized rank_combination over the rows of an (M, k) array of ascending indices."""
    subsets = np.asarray(subsets, dtype=np.int64)
    if subsets.ndim != 2:
        raise ValueError(f"Expected an (M, k) array, got shape {subsets.shape}")

    k = subsets.shape[1]
    ranks = np.zeros(subsets.shape[0], dtype=np.int64)
    start = np.zeros(subsets.shape[0], dtype=np.int64)
    for column in range(k):
        remaining = k - column
        values = subsets[:, column]
        ranks += CHOOSE[n - start, remaining] - CHOOSE[n - values, remaining]
        start = values + 1
    return ranks


@lru_cache(maxsize=None)
def _combinations_cached(n: int, k: int) -> np.ndarray:
    count = n_choose_k(n, k)
    flat = np.fromiter(
        itertools.chain.from_iterable(itertools.combinations(range(n), k)),
        dtype=np.uint8,
        count=count * k,
    )
    combos = flat.reshape(count, k)
    combos.setflags(write=False)
    return combos


def enumerate_combinations(n: int, k: int) -> np.ndarray:
    """
    All k-subsets of range(n) as a read-only (C(n, k), k) uint8 array.

    Row r is unrank_combination(r, k, n). Results are cached per (n, k).
    """
    if not 0 <= k <= MAX_K or not 0 <= n <= MAX_N:
        raise ValueError(f"Unsupported combination space C({n}, {k})")
    return _combinations_cached(n, k)

"""Seeded RNG factory for reproducible population initialization.

Uses NumPy's SeedSequence → PCG64 hierarchy to guarantee:
  - Statistical independence between per-subpopulation streams
  - Bit-exact replay with the same master seed
  - Adding subpopulations doesn't change the streams of existing ones
"""

from __future__ import annotations

from typing import Dict

import numpy as np


def create_rng_hierarchy(
    master_seed: int,
    n_subpops: int,
) -> Dict[str, np.random.Generator]:
    """Create independent RNG streams for each subpopulation + global use.

    Streams created:
      - 'global': Operations not tied to one subpopulation
      - 'subpop_0' .. 'subpop_{n-1}': Per-subpopulation streams

    Args:
        master_seed: Master RNG seed (non-negative integer).
        n_subpops: Number of subpopulations.

    Returns:
        Dictionary mapping stream names to numpy Generator instances.

    Example:
        >>> rngs = create_rng_hierarchy(42, n_subpops=3)
        >>> rngs['subpop_0'].integers(0, 100)
    """
    ss = np.random.SeedSequence(master_seed)
    child_seeds = ss.spawn(n_subpops + 1)

    rngs: Dict[str, np.random.Generator] = {
        'global': np.random.Generator(np.random.PCG64(child_seeds[0])),
    }
    for i in range(n_subpops):
        rngs[f'subpop_{i}'] = np.random.Generator(
            np.random.PCG64(child_seeds[1 + i])
        )
    return rngs


def get_subpop_rng(
    rngs: Dict[str, np.random.Generator],
    sub_pop: int,
) -> np.random.Generator:
    """Get the RNG stream for a specific subpopulation.

    Raises:
        KeyError: If sub_pop doesn't have a stream.
    """
    key = f'subpop_{sub_pop}'
    if key not in rngs:
        n = sum(1 for k in rngs if k.startswith('subpop_'))
        raise KeyError(
            f"No RNG stream for subpopulation {sub_pop}. "
            f"Streams exist for {n} subpopulations"
        )
    return rngs[key]

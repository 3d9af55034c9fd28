# -*- coding: utf-8 -*-
"""Random generator helpers: every stochastic routine takes an explicit ``rng``."""

from typing import List, Optional, Union

import numpy as np

RandomLike = Optional[Union[int, np.random.Generator, np.random.SeedSequence]]


def as_generator(rng: RandomLike = None) -> np.random.Generator:
    if isinstance(rng, np.random.Generator):
        return rng
    return np.random.default_rng(rng)


def spawn_generators(rng: RandomLike, n: int) -> List[np.random.Generator]:
    """Independent child generators, e.g. one per simulation run."""
    if isinstance(rng, np.random.Generator):
        seed_seq = np.random.SeedSequence(int(rng.integers(0, 2**63 - 1)))
    elif isinstance(rng, np.random.SeedSequence):
        seed_seq = rng
    else:
        seed_seq = np.random.SeedSequence(rng)
    return [np.random.default_rng(child) for child in seed_seq.spawn(n)]

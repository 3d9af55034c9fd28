# -*- coding: utf-8 -*-
"""
simulation.py
-------------

Sequential Gaussian and sequential indicator simulation conditioned on the
samples, one random path per realisation.
"""

import warnings
from typing import Optional, Union

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from tqdm import tqdm

from .config import VARIANCE_TOLERANCE
from .data import PredictionGrid, SpatialDataset, check_same_frame, indicator_name
from .errors import HydrokrigeWarning, SingularSystem
from .kriging import MODES, TrendBasis, select_neighbors, solve_kriging_system
from .rng import RandomLike, spawn_generators
from .variograms import VariogramModel


def _simulate_path(model, sample_coords, sample_values, nodes, rng, mode, mean,
                   basis, nmax, maxdist, nmin, indicator, progress=False):
    """
    One realisation. Visits ``nodes`` along a random permutation; each node is
    kriged from the samples plus every node simulated before it, drawn, and
    then added to the conditioning set.
    """
    n0, m = len(sample_coords), len(nodes)
    coords = np.vstack([sample_coords, np.empty((m, sample_coords.shape[1]))])
    values = np.concatenate([sample_values, np.empty(m)])
    count = n0
    simulated = np.full(m, np.nan)
    failed = 0
    tolerance = -VARIANCE_TOLERANCE * model.sill

    for node in tqdm(rng.permutation(m), desc="Simulating", disable=not progress):
        target = nodes[node]
        dist = model.lag_distance(coords[:count], target)[:, 0]
        nearest = int(np.argmin(dist))
        if dist[nearest] == 0:
            # node sits on a conditioning point: take its value, do not duplicate it
            simulated[node] = values[nearest]
            continue
        idx = select_neighbors(dist, nmax, maxdist)
        if len(idx) < max(nmin, 1):
            failed += 1
            continue
        try:
            sol = solve_kriging_system(model, coords[idx], values[idx], target,
                                       mode=mode, mean=mean, basis=basis)
        except SingularSystem:
            failed += 1
            continue
        if sol.variance < tolerance:
            failed += 1
            continue
        if indicator:
            draw = float(rng.random() < np.clip(sol.prediction, 0.0, 1.0))
        else:
            draw = rng.normal(sol.prediction, np.sqrt(max(sol.variance, 0.0)))
        simulated[node] = draw
        coords[count] = target
        values[count] = draw
        count += 1
    return simulated, failed


def sequential_simulation(
    dataset: SpatialDataset,
    attribute: str,
    model: VariogramModel,
    grid: Union[PredictionGrid, np.ndarray],
    nsim: int = 1,
    mode: str = "ordinary",
    mean: Optional[float] = None,
    trend_degree: int = 1,
    nmax: Optional[int] = None,
    maxdist: Optional[float] = None,
    nmin: int = 1,
    indicator: bool = False,
    indicator_threshold: Optional[float] = None,
    rng: RandomLike = None,
    n_jobs: int = 1,
    progress: bool = False,
) -> pd.DataFrame:
    """
    Conditional sequential Gaussian (or indicator) simulation.

    Parameters:
        dataset (SpatialDataset): Conditioning samples.
        attribute (str): Attribute to simulate.
        model (VariogramModel): Variogram of ``attribute`` (or of its indicator).
        grid (PredictionGrid | array): Nodes to simulate.
        nsim (int): Number of realisations, each with its own random path.
        mode, mean, trend_degree: Kriging mode used at every node.
        nmax, maxdist, nmin: Neighbourhood among samples and simulated nodes.
        indicator (bool): Bernoulli draws with the kriged probability instead of
            Normal draws; ``attribute`` must be 0/1.
        indicator_threshold (float): Simulate I(attribute > threshold); implies ``indicator``.
        rng: Seed or Generator; realisations get independent child generators.
        n_jobs (int): Realisations are independent and may run in parallel.

    Returns:
        pd.DataFrame: node coordinates plus one ``sim{k}`` column per realisation.
    """
    if mode not in MODES:
        raise ValueError(f"mode must be one of {MODES}, got {mode!r}")
    if mode == "simple" and mean is None:
        raise ValueError("simple kriging needs a known mean")
    if mode == "simple" and not model.bounded:
        raise ValueError(f"simple kriging needs a bounded variogram, not {model.shape}")
    if nsim < 1:
        raise ValueError("nsim must be at least 1")
    if indicator_threshold is not None:
        name = indicator_name(attribute, indicator_threshold)
        dataset = dataset.indicator(attribute, indicator_threshold, name=name)
        attribute, indicator = name, True

    if isinstance(grid, PredictionGrid):
        check_same_frame(dataset, grid)
        nodes = grid.coords
    else:
        nodes = np.atleast_2d(np.asarray(grid, dtype=float))

    sample_coords = np.asarray(dataset.coords)
    sample_values = np.asarray(dataset.values(attribute))
    basis = TrendBasis.for_coords(sample_coords, trend_degree) if mode == "universal" else None
    generators = spawn_generators(rng, nsim)

    run = delayed(_simulate_path) if n_jobs != 1 else _simulate_path
    jobs = (run(model, sample_coords, sample_values, nodes, gen, mode, mean, basis,
                nmax, maxdist, nmin, indicator, progress and n_jobs == 1)
            for gen in generators)
    results = Parallel(n_jobs=n_jobs)(jobs) if n_jobs != 1 else list(jobs)

    names = ["x", "y", "z"][: nodes.shape[1]]
    out = pd.DataFrame(nodes, columns=names)
    failed = 0
    for k, (simulated, n_failed) in enumerate(results, start=1):
        out[f"sim{k}"] = simulated
        failed += n_failed
    if failed:
        warnings.warn(f"{attribute}: {failed} node draws across {nsim} realisations could not be "
                      f"kriged and were left missing.", HydrokrigeWarning)
    return out

# -*- coding: utf-8 -*-
"""
Created on Tue Sep 22 11:02:37 2026

Removal (depletion) estimators for a single site.

A removal model is any callable that takes the ordered per-pass catches of one
site and returns a RemovalEstimate, or raises RemovalFitError when the catch
pattern cannot be fit.  The regional ratio estimators only ever see the
estimate and its standard error, so models can be swapped freely.

Carle, F.L. and M.R. Strub. 1978. A new method for estimating population size
from removal data. Biometrics 34:621-630.

Seber, G.A.F. 1982. The Estimation of Animal Abundance and Related
Parameters, 2nd edition.  (two pass removal, sect. 7.2)
"""

from collections import namedtuple
import logging

import numpy as np

logger = logging.getLogger(__name__)

RemovalEstimate = namedtuple('RemovalEstimate', ['estimate', 'standard_error'])

# the Carle-Strub search walks N upward one fish at a time, stop somewhere sane
MAX_SEARCH_MULTIPLE = 1000


class RemovalFitError(ValueError):
    '''The removal model could not produce an estimate for these catches'''


def _check_catches(catches):
    catches = np.asarray(catches, dtype=np.int64)
    if catches.ndim != 1 or catches.size == 0:
        raise RemovalFitError("catches must be a non-empty sequence of per-pass counts")
    if np.any(catches < 0):
        raise RemovalFitError(f"negative catch in {catches.tolist()}")
    return catches


def zippin_se(N, catches):
    """
    Standard error of a k-pass removal estimate (Zippin 1958, eq. 4).

    inputs:
    N: population estimate
    catches: ordered per-pass catches

    outputs:
    se: standard error of N, NaN when the variance is undefined
    """
    catches = np.asarray(catches, dtype=np.float64)
    k = len(catches)
    T = catches.sum()
    X = np.sum((k - np.arange(1, k + 1)) * catches)

    # capture probability
    p = T / (k * N - X)
    q = 1. - p
    qk = q ** k

    denom = (1. - qk) ** 2 - (k * p) ** 2 * q ** (k - 1)
    if denom <= 0:
        return np.nan
    var = N * (1. - qk) * qk / denom
    if var < 0:
        return np.nan
    return np.sqrt(var)


def carle_strub(catches, alpha=1, beta=1):
    """
    Carle-Strub weighted likelihood removal estimate.

    The estimate is the smallest N >= T for which

        (N+1)/(N-T+1) * prod_i (kN - X - T + beta + k - i) / (kN - X + alpha + beta + k - i) <= 1

    where T is the total catch, k the number of passes and
    X = sum_i (k - i) * c_i.  With alpha = beta = 1 the prior on the capture
    probability is uniform.

    inputs:
    catches: ordered per-pass catches for one site, at least two passes
    alpha, beta: parameters of the beta prior on capture probability

    outputs:
    RemovalEstimate(estimate, standard_error)
    """
    catches = _check_catches(catches)
    k = len(catches)
    if k < 2:
        raise RemovalFitError("at least two passes are required for a removal estimate")

    T = int(catches.sum())
    if T == 0:
        raise RemovalFitError("no fish were caught")
    X = int(np.sum((k - np.arange(1, k + 1)) * catches))
    i = np.arange(1, k + 1)

    N = T
    max_N = T * MAX_SEARCH_MULTIPLE
    while True:
        part1 = (N + 1.) / (N - T + 1.)
        part2 = np.prod((k * N - X - T + beta + k - i) / (k * N - X + alpha + beta + k - i))
        if part1 * part2 <= 1.:
            break
        N += 1
        if N > max_N:
            raise RemovalFitError(f"estimate did not converge below {max_N} fish")

    se = zippin_se(N, catches)
    if not np.isfinite(se):
        raise RemovalFitError(f"variance undefined at N = {N}")

    logger.debug('carle-strub catches %s -> N = %s, se = %.4f', catches.tolist(), N, se)
    return RemovalEstimate(float(N), float(se))


def seber_two_pass(catches):
    """
    Two pass removal estimate (Seber 1982).

        N = c1^2 / (c1 - c2)
        var(N) = c1^2 c2^2 (c1 + c2) / (c1 - c2)^4

    Fails when the second pass catches as many fish as the first, since the
    catch did not deplete.
    """
    catches = _check_catches(catches)
    if len(catches) != 2:
        raise RemovalFitError(f"two pass estimator given {len(catches)} passes")
    c1, c2 = float(catches[0]), float(catches[1])
    if c1 <= c2:
        raise RemovalFitError(f"catch did not decline between passes ({int(c1)}, {int(c2)})")

    N = c1 ** 2 / (c1 - c2)
    var = c1 ** 2 * c2 ** 2 * (c1 + c2) / (c1 - c2) ** 4
    return RemovalEstimate(N, np.sqrt(var))

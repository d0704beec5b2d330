# -*- coding: utf-8 -*-
"""
Created on Wed Sep 23 08:41:12 2026

Ratio estimators for regional fish density and abundance.

Sites are sampled from a frame of N reaches, a fraction fw of which are wet.
Each sampled site contributes a removal estimate of abundance (M_hat) with
variance (V_M_hat) over a sampled length L2.  Regional density is a ratio of
sums rather than a mean of per-site ratios, and the variance carries two
pieces: the between-site ratio variance scaled by the finite population
correction, and the mean within-site (removal model) variance.

Composite estimates multiply the fraction of handled fish falling in a class
(x / m) by the fish density, then expand to a regional total with
N * fw * L1_bar.

All functions here are pure.  Each call returns a new RatioFit and nothing is
carried between calls, so each size class can be estimated on its own.
"""

from collections import namedtuple
import logging

import numpy as np
import pandas as pd
from scipy.stats import t

from .errors import InputIntegrityError, InsufficientSampleError, NonFiniteResultError

logger = logging.getLogger(__name__)

RegionalEstimate = namedtuple('RegionalEstimate',
                              ['point_estimate',
                               'variance',
                               'standard_error',
                               'ci_lower',
                               'ci_upper',
                               'coefficient_of_variation'])

# everything the power projector needs to rescale a fit
RatioFit = namedtuple('RatioFit',
                      ['estimate',
                       'density',
                       'scale',
                       'residual_ss',
                       'v_ratio',
                       'v_site',
                       'l2_bar',
                       'm_bar',
                       'n',
                       'n_wet_frame',
                       'l1_bar'])


def _as_vectors(**vectors):
    '''coerce per-site inputs to float arrays and check they line up'''
    out = {}
    n = None
    for name, values in vectors.items():
        arr = np.asarray(values, dtype=np.float64)
        if arr.ndim != 1:
            raise InputIntegrityError(f"{name} must be a one dimensional per-site vector")
        if n is None:
            n = arr.size
        elif arr.size != n:
            raise InputIntegrityError(f"{name} has {arr.size} sites, expected {n}")
        if not np.all(np.isfinite(arr)):
            raise InputIntegrityError(f"{name} contains non-finite values")
        out[name] = arr
    return out, n


def _check_frame(n, N, fw):
    if n < 2:
        raise InsufficientSampleError(f"ratio variance needs at least 2 sites, got {n}")
    n_wet_frame = N * fw
    if not np.isfinite(n_wet_frame) or n_wet_frame <= 0:
        raise NonFiniteResultError(f"wet frame size N * fw = {n_wet_frame} must be positive")
    if n > n_wet_frame:
        raise NonFiniteResultError(f"sample of {n} sites exceeds the "
                                   f"{n_wet_frame:g} wet reaches in the frame")
    return n_wet_frame


def confidence_interval(estimate, se, df, alpha=0.05):
    """
    Two sided Student-t interval.  The lower quantile is negative, so both
    bounds are the estimate plus SE times a quantile.  The lower bound may go
    below zero for a count, that is the t approximation and is reported as is.
    """
    lower = estimate + se * t.ppf(alpha / 2., df)
    upper = estimate + se * t.ppf(1. - alpha / 2., df)
    return lower, upper


def coefficient_of_variation(estimate, se):
    '''CV in percent, NaN when the estimate is zero'''
    if estimate == 0:
        return np.nan
    return 100. * se / estimate


def regional_estimate(estimate, variance, n, alpha=0.05):
    if not np.isfinite(variance) or variance < 0:
        raise NonFiniteResultError(f"sampling variance {variance:g} cannot be reported")
    se = np.sqrt(variance)
    lower, upper = confidence_interval(estimate, se, n - 1, alpha)
    return RegionalEstimate(float(estimate),
                            float(variance),
                            float(se),
                            float(lower),
                            float(upper),
                            float(coefficient_of_variation(estimate, se)))


def _density_variance(v_ratio, v_site, n, n_wet_frame, l2_bar, m_bar):
    '''variance of a ratio density given the ratio and site variance pieces'''
    fpc = (n_wet_frame - n) / (n * n_wet_frame)
    return (v_ratio * fpc + v_site / n_wet_frame) / (l2_bar * m_bar) ** 2


def density_ratio(M_hat, V_M_hat, L2, N, fw, L1_bar, alpha=0.05):
    """
    Regional linear density of fish (fish per unit channel length).

    Parameters:
    - M_hat (array-like): removal estimate of abundance per site
    - V_M_hat (array-like): variance of each removal estimate
    - L2 (array-like): sampled length between block nets per site
    - N (int): reaches in the sample frame
    - fw (float): fraction of frame reaches that are wet
    - L1_bar (float): mean reach length in the frame
    - alpha (float): 1 - confidence level

    Returns:
    - RatioFit whose estimate.point_estimate is D_hat
    """
    v, n = _as_vectors(M_hat=M_hat, V_M_hat=V_M_hat, L2=L2)
    n_wet_frame = _check_frame(n, N, fw)

    sum_L2 = v['L2'].sum()
    if sum_L2 == 0:
        raise NonFiniteResultError("sampled length sums to zero")

    D_hat = v['M_hat'].sum() / sum_L2
    residual_ss = np.sum((v['M_hat'] - D_hat * v['L2']) ** 2)
    v_ratio = residual_ss / (n - 1)
    v_site = v['V_M_hat'].mean()
    l2_bar = sum_L2 / n

    V_D = _density_variance(v_ratio, v_site, n, n_wet_frame, l2_bar, 1.)
    logger.debug('density ratio: D_hat = %.6f, V_ratio = %.6f, V_site = %.6f, V_D = %.6g',
                 D_hat, v_ratio, v_site, V_D)

    return RatioFit(regional_estimate(D_hat, V_D, n, alpha),
                    float(D_hat),
                    1.,
                    float(residual_ss),
                    float(v_ratio),
                    float(v_site),
                    float(l2_bar),
                    1.,
                    n,
                    float(n_wet_frame),
                    float(L1_bar))


def composite_ratio(x, m, M_hat, V_M_hat, L2, N, fw, L1_bar, alpha=0.05):
    """
    Regional total abundance of the fish in one class.

    D_hat is the product of the fraction of handled fish in the class,
    sum(x) / sum(m), and the fish density sum(M_hat) / sum(L2).  The total
    T_hat = N * fw * L1_bar * D_hat.

    Parameters:
    - x (array-like): handled fish in the class, per site
    - m (array-like): total handled fish, per site
    - M_hat, V_M_hat, L2, N, fw, L1_bar, alpha: as for density_ratio

    Returns:
    - RatioFit whose estimate.point_estimate is T_hat, with D_hat retained
      as density
    """
    v, n = _as_vectors(x=x, m=m, M_hat=M_hat, V_M_hat=V_M_hat, L2=L2)
    n_wet_frame = _check_frame(n, N, fw)

    sum_m = v['m'].sum()
    if sum_m == 0:
        raise InsufficientSampleError("no fish were handled at any site, class fraction undefined")
    sum_L2 = v['L2'].sum()
    if sum_L2 == 0:
        raise NonFiniteResultError("sampled length sums to zero")

    D_hat = (v['x'].sum() * v['M_hat'].sum()) / (sum_m * sum_L2)
    scale = n_wet_frame * L1_bar
    T_hat = scale * D_hat

    residual_ss = np.sum((v['M_hat'] * v['x'] - D_hat * v['L2'] * v['m']) ** 2)
    v_ratio = residual_ss / (n - 1)
    v_site = v['V_M_hat'].mean()
    l2_bar = sum_L2 / n
    m_bar = v['m'].mean()

    V_D = _density_variance(v_ratio, v_site, n, n_wet_frame, l2_bar, m_bar)
    V_T = V_D * scale ** 2
    logger.debug('composite ratio: D_hat = %.6f, T_hat = %.2f, V_ratio = %.6f, V_T = %.6g',
                 D_hat, T_hat, v_ratio, V_T)

    return RatioFit(regional_estimate(T_hat, V_T, n, alpha),
                    float(D_hat),
                    float(scale),
                    float(residual_ss),
                    float(v_ratio),
                    float(v_site),
                    float(l2_bar),
                    float(m_bar),
                    n,
                    float(n_wet_frame),
                    float(L1_bar))


def project_cv(fit, multiplier):
    """
    Coefficient of variation if the existing sample were replicated
    `multiplier` times.

    Only the ratio variance and the finite population correction change, the
    point estimate, m_bar and site variance are held at the original fit.

        V_ratio(i) = i * SS / (i*n - 1)
        V_D(i)     = (V_ratio(i) * (Nw - i*n) / (i*n*Nw) + V_site / Nw) / (L2_bar * m_bar)^2
        CV(i)      = 100 * sqrt(V_D(i) * scale^2) / estimate

    Returns (sample_size, cv).
    """
    if int(multiplier) != multiplier or multiplier < 1:
        raise ValueError(f"sample multiplier must be a positive integer, got {multiplier}")
    i = int(multiplier)
    n_i = i * fit.n

    if n_i >= fit.n_wet_frame:
        raise NonFiniteResultError(f"projected sample of {n_i} sites meets or exceeds the "
                                   f"{fit.n_wet_frame:g} wet reaches in the frame")
    estimate = fit.estimate.point_estimate
    if estimate == 0:
        raise NonFiniteResultError("CV is undefined for a zero point estimate")

    v_ratio = i * fit.residual_ss / (n_i - 1)
    V_D = _density_variance(v_ratio, fit.v_site, n_i, fit.n_wet_frame, fit.l2_bar, fit.m_bar)
    cv = 100. * np.sqrt(V_D * fit.scale ** 2) / estimate
    return n_i, float(cv)


def power_table(fit, multipliers=(1, 2, 3, 4), skipped=None):
    """
    CV against sample size for each multiplier.

    Without `skipped` the first multiplier that cannot be projected raises
    NonFiniteResultError.  Given a dict, that multiplier is logged, stored as
    skipped[multiplier] = error and left out of the table.
    """
    rows = []
    for i in multipliers:
        try:
            sample_size, cv = project_cv(fit, i)
        except NonFiniteResultError as e:
            if skipped is None:
                raise
            logger.warning("Power analysis at %sx sample skipped: %s", i, e)
            skipped[i] = e
            continue
        rows.append({'multiplier': int(i), 'sample_size': sample_size, 'cv': cv})
    return pd.DataFrame(rows, columns=['multiplier', 'sample_size', 'cv'])

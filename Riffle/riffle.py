# -*- coding: utf-8 -*-
"""
Created on Mon Sep 21 14:37:05 2026

Riffle: regional fish abundance from depletion sampling

The intent of Riffle is to take the reach level results of a multiple pass
electrofishing survey and expand them to the stream network the reaches were
drawn from.  Each sampled reach (a site) is fished between block nets over a
known wetted length L2, and the catch declines pass over pass as fish are
removed.  A removal model (Carle-Strub by default) turns the ordered catches
into an estimate of how many fish were in the reach and how uncertain that
estimate is.

Those site estimates are then combined with ratio estimators: rather than
averaging per site densities, we sum fish over the sample and divide by the sum
of sampled length.  Multiplying by the number of wet reaches in the frame and
the mean reach length scales density up to a regional total.  Fork lengths of
handled fish split the total into juvenile, enigmatic and adult trout, and a
simple power analysis shows how the adult CV would shrink with a bigger
sample.

Everything happens in memory for one survey.  Sites are always processed in
the order of the site table so sums are reproducible.
"""

# import dependencies
import os
import logging

import numpy as np
import pandas as pd
pd.set_option('display.max_columns', None)
pd.set_option('display.width', None)
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt

from .errors import (InputIntegrityError, DegenerateSiteError,
                     InsufficientSampleError, NonFiniteResultError)
from .estimators import density_ratio, composite_ratio, power_table
from .removal import carle_strub, RemovalFitError

logger = logging.getLogger(__name__)

# size class thresholds on fork length (mm)
JUVENILE_MAX_FL = 150.   # juvenile: FL < 150
ADULT_MIN_FL = 200.      # adult: FL > 200, enigmatic in between inclusive
SIZE_CLASSES = ['adult', 'enigmatic', 'juvenile']

# 1 - confidence level for regional intervals
ALPHA = 0.05

# sample multipliers for the power analysis
DEFAULT_MULTIPLIERS = (1, 2, 3, 4)

DEGENERATE_POLICIES = ('raise', 'exclude')

# input columns
SITE_ID = 'site_id'
LENGTH = 'length_between_nets'
PASS = 'pass_number'
CATCH = 'catch_count'
FORK_LENGTH = 'fork_length_mm'
WET = 'wet'

# accepted wet column values, case insensitive
WET_TRUE = ('1', '1.0', 'true', 'yes', 'y', 'wet')
WET_FALSE = ('0', '0.0', 'false', 'no', 'n', 'dry')


def to_dataframe(data, numeric_cols=None):
    """Copies records or a DataFrame into a new DataFrame, coercing numeric_cols."""
    df = data.copy() if isinstance(data, pd.DataFrame) else pd.DataFrame(data)
    if numeric_cols:
        for col in numeric_cols:
            if col in df.columns:
                df[col] = pd.to_numeric(df[col], errors='coerce')
    return df


def read_csv_if_exists(file_path=None, numeric_cols=None):
    """
    Reads a csv into a DataFrame.
      - tolerates file_path=None / "" (returns None)
      - returns None when the file is not there
      - coerces numeric_cols if present
    """
    if not file_path or (isinstance(file_path, str) and not file_path.strip()):
        return None
    if not isinstance(file_path, (str, bytes, os.PathLike)):
        raise TypeError(f"read_csv_if_exists(file_path=...) expected a path, got {type(file_path).__name__}")
    if not os.path.exists(file_path):
        return None

    return to_dataframe(pd.read_csv(file_path), numeric_cols=numeric_cols)


def _frame_from_table(frame):
    '''pull total frame length and N off the first row of a frame table'''
    for col in ('total_frame_length', 'N'):
        if col not in frame.columns:
            raise InputIntegrityError(f"frame table is missing column '{col}'")
    if len(frame) == 0:
        raise InputIntegrityError("frame table is empty")
    row = frame.iloc[0]
    return float(row['total_frame_length']), int(row['N'])


def worksheet_import(wks_path):
    """
    Imports a survey workbook.

    The workbook holds a 'Frame' sheet (total_frame_length, N), a 'Passes'
    sheet (site_id, length_between_nets, pass_number, catch_count and
    optionally wet), a 'Fish' sheet (site_id, pass_number, fork_length_mm) and
    optionally a 'Sites' sheet fixing site order, length and wetness.

    Returns a dictionary of keyword arguments for survey().
    """
    xls = pd.ExcelFile(wks_path, engine='openpyxl')
    frame = pd.read_excel(xls, sheet_name='Frame')
    passes = pd.read_excel(xls, sheet_name='Passes')
    fish = pd.read_excel(xls, sheet_name='Fish')
    sites = pd.read_excel(xls, sheet_name='Sites') if 'Sites' in xls.sheet_names else None
    frame_length, N = _frame_from_table(frame)
    logger.info("Imported workbook %s: %s pass records, %s fish", wks_path, len(passes), len(fish))
    return {'frame_length': frame_length,
            'N': N,
            'passes': passes,
            'fish': fish,
            'sites': sites}


def csv_import(data_dir):
    """
    Same as worksheet_import but from frame.csv, passes.csv, fish.csv and
    optionally sites.csv in data_dir.  A missing fish.csv means nothing was
    measured.
    """
    frame = read_csv_if_exists(os.path.join(data_dir, 'frame.csv'))
    passes = read_csv_if_exists(os.path.join(data_dir, 'passes.csv'))
    if frame is None or passes is None:
        raise FileNotFoundError(f"frame.csv and passes.csv are required in {data_dir}")
    fish = read_csv_if_exists(os.path.join(data_dir, 'fish.csv'))
    sites = read_csv_if_exists(os.path.join(data_dir, 'sites.csv'))
    frame_length, N = _frame_from_table(frame)
    return {'frame_length': frame_length,
            'N': N,
            'passes': passes,
            'fish': fish,
            'sites': sites}


def size_class(fork_length):
    """
    Classify fork lengths (mm) into juvenile (< 150), enigmatic (150 - 200
    inclusive) and adult (> 200).
    """
    fl = np.asarray(fork_length, dtype=np.float64)
    return np.select([fl < JUVENILE_MAX_FL, fl > ADULT_MIN_FL],
                     ['juvenile', 'adult'],
                     default='enigmatic')


def _require_columns(df, columns, table):
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise InputIntegrityError(f"{table} table is missing columns {missing}")
    for c in columns:
        if df[c].isna().any():
            raise InputIntegrityError(f"{table} table has blank or non-numeric values in '{c}'")


def _as_bool(series, site_ids):
    '''wet flags may come in as bools, 0/1 or yes/no text, anything else is an error'''
    if series.dtype == bool:
        return series
    flags = []
    for site_id, v in zip(site_ids, series):
        text = '' if pd.isna(v) else str(v).strip().lower()
        if text in WET_TRUE:
            flags.append(True)
        elif text in WET_FALSE:
            flags.append(False)
        else:
            raise InputIntegrityError(f"site {site_id} has an unrecognised wet flag {v!r}")
    return pd.Series(flags, index=series.index, dtype=bool)


def _site_table(passes, sites):
    '''one row per site in canonical order with L2 and wetness'''
    if sites is not None:
        sites = to_dataframe(sites, numeric_cols=[LENGTH])
        _require_columns(sites, [SITE_ID, LENGTH], 'site')
        if sites[SITE_ID].duplicated().any():
            dupes = sites.loc[sites[SITE_ID].duplicated(), SITE_ID].tolist()
            raise InputIntegrityError(f"site table lists sites more than once: {dupes}")
        table = pd.DataFrame({'L2': sites[LENGTH].values},
                             index=pd.Index(sites[SITE_ID].values, name=SITE_ID))
        table['wet'] = _as_bool(sites[WET], sites[SITE_ID]).values if WET in sites.columns else True
    else:
        _require_columns(passes, [LENGTH], 'pass')
        order = pd.unique(passes[SITE_ID])
        lengths = passes.groupby(SITE_ID, sort=False)[LENGTH]
        conflicting = lengths.nunique()
        conflicting = conflicting[conflicting > 1].index.tolist()
        if conflicting:
            raise InputIntegrityError(f"sites recorded with more than one length between nets: {conflicting}")
        table = pd.DataFrame({'L2': lengths.first().reindex(order).values},
                             index=pd.Index(order, name=SITE_ID))
        if WET in passes.columns:
            wet = passes.assign(**{WET: _as_bool(passes[WET], passes[SITE_ID])}).groupby(SITE_ID, sort=False)[WET].first()
            table['wet'] = wet.reindex(order).values
        else:
            table['wet'] = True

    bad = table.index[~(table['L2'] > 0)].tolist()
    if bad:
        raise InputIntegrityError(f"length between nets must be positive, check sites {bad}")
    return table


def aggregate_sites(passes, fish=None, sites=None):
    """
    Builds per-site catch vectors and size class tallies.

    Parameters:
    - passes (DataFrame or records): site_id, pass_number, catch_count and
      length_between_nets (unless a site table is given).  Without a
      catch_count column catches are tallied from the fish records.
    - fish (DataFrame, records or None): site_id, pass_number, fork_length_mm
    - sites (DataFrame, records or None): site_id, length_between_nets and
      optionally wet.  Fixes the canonical site order, otherwise sites are
      ordered by first appearance in the pass table.

    Returns a DataFrame indexed by site_id in canonical order with columns
    L2, wet, n_passes, catches (tuple ordered by pass), total_catch, m, adult,
    enigmatic and juvenile.

    Raises InputIntegrityError for unknown sites, duplicate or non-contiguous
    pass numbers, negative catches and non-positive lengths.
    """
    passes = to_dataframe(passes, numeric_cols=[LENGTH, PASS, CATCH])
    _require_columns(passes, [SITE_ID, PASS], 'pass')
    derive_catch = CATCH not in passes.columns
    if not derive_catch:
        _require_columns(passes, [CATCH], 'pass')
        if (passes[CATCH] < 0).any():
            bad = passes.loc[passes[CATCH] < 0, SITE_ID].unique().tolist()
            raise InputIntegrityError(f"negative catch recorded at sites {bad}")
        if (passes[CATCH] % 1 != 0).any():
            raise InputIntegrityError("catch counts must be whole numbers")
    if (passes[PASS] % 1 != 0).any():
        raise InputIntegrityError("pass numbers must be whole numbers")

    if fish is None:
        fish = pd.DataFrame(columns=[SITE_ID, PASS, FORK_LENGTH])
    fish = to_dataframe(fish, numeric_cols=[PASS, FORK_LENGTH])
    _require_columns(fish, [SITE_ID, PASS, FORK_LENGTH], 'fish')
    if len(fish) and not (fish[FORK_LENGTH] > 0).all():
        bad = fish.loc[~(fish[FORK_LENGTH] > 0), SITE_ID].unique().tolist()
        raise InputIntegrityError(f"fork lengths must be positive, check sites {bad}")

    table = _site_table(passes, sites)

    # every record has to resolve to a site
    for name, df in (('pass', passes), ('fish', fish)):
        unknown = sorted(set(df[SITE_ID]) - set(table.index), key=str)
        if unknown:
            raise InputIntegrityError(f"{name} records reference unknown sites {unknown}")

    fish = fish.assign(size_class=size_class(fish[FORK_LENGTH]))
    fish_by_site = dict(tuple(fish.groupby(SITE_ID, sort=False)))
    passes_by_site = dict(tuple(passes.groupby(SITE_ID, sort=False)))

    rows = []
    for site_id, site in table.iterrows():
        site_passes = passes_by_site.get(site_id)
        site_fish = fish_by_site.get(site_id)

        if site_passes is None:
            if site['wet']:
                raise InputIntegrityError(f"wet site {site_id} has no pass records")
            pass_numbers = []
        else:
            pass_numbers = sorted(site_passes[PASS].astype(int).tolist())
            if len(set(pass_numbers)) != len(pass_numbers):
                raise InputIntegrityError(f"site {site_id} has duplicate pass numbers {pass_numbers}")
            if pass_numbers != list(range(1, len(pass_numbers) + 1)):
                raise InputIntegrityError(f"site {site_id} pass numbers {pass_numbers} are not 1..k")

        if site_fish is not None:
            orphans = set(site_fish[PASS].astype(int)) - set(pass_numbers)
            if orphans:
                raise InputIntegrityError(f"fish at site {site_id} reference passes {sorted(orphans)} "
                                          f"that were not fished")

        # ordered catch vector, passes without fish are zero
        if derive_catch:
            per_pass = site_fish[PASS].astype(int).value_counts() if site_fish is not None else pd.Series(dtype=int)
            catches = tuple(int(per_pass.get(p, 0)) for p in pass_numbers)
        elif site_passes is not None:
            catches = tuple(site_passes.sort_values(PASS)[CATCH].astype(int).tolist())
        else:
            catches = ()

        if site_fish is not None:
            tally = site_fish['size_class'].value_counts()
        else:
            tally = pd.Series(dtype=int)
        counts = {c: int(tally.get(c, 0)) for c in SIZE_CLASSES}

        rows.append({SITE_ID: site_id,
                     'L2': float(site['L2']),
                     'wet': bool(site['wet']),
                     'n_passes': len(pass_numbers),
                     'catches': catches,
                     'total_catch': int(sum(catches)),
                     'm': sum(counts.values()),
                     **counts})

    out = pd.DataFrame(rows, columns=[SITE_ID, 'L2', 'wet', 'n_passes', 'catches', 'total_catch',
                                      'm'] + SIZE_CLASSES)
    return out.set_index(SITE_ID)


def estimate_site_abundance(site_df, removal_model=carle_strub, on_degenerate='raise'):
    """
    Applies the removal model to every wet site in order.

    Dry sites are left out of the table, catches recorded there are logged and
    ignored.  Sites that caught nothing get M_hat = 0 and V_M_hat = 0 without asking the
    model.  Otherwise M_hat is the model estimate and V_M_hat the square of its
    standard error.

    Parameters:
    - site_df (DataFrame): output of aggregate_sites
    - removal_model (callable): ordered catches -> RemovalEstimate
    - on_degenerate (str): 'raise' aborts with DegenerateSiteError when a site
      cannot be fit, 'exclude' drops the site and logs a warning

    Returns (abundance, excluded) where abundance is indexed by site_id with
    columns M_hat, V_M_hat and SE_M_hat and excluded lists dropped sites.
    """
    if on_degenerate not in DEGENERATE_POLICIES:
        raise ValueError(f"on_degenerate must be one of {DEGENERATE_POLICIES}, got '{on_degenerate}'")

    rows = []
    excluded = []
    for site_id, catches in site_df['catches'].items():
        # dry reaches never enter a regional estimate
        if not site_df.at[site_id, 'wet']:
            if sum(catches) > 0:
                logger.warning("Catches %s recorded at dry site %s are ignored", list(catches), site_id)
            continue
        if sum(catches) == 0:
            rows.append((site_id, 0., 0.))
            continue
        try:
            est = removal_model(list(catches))
            M_hat, se = float(est.estimate), float(est.standard_error)
            if not (np.isfinite(M_hat) and np.isfinite(se)):
                raise RemovalFitError(f"model returned estimate {M_hat} with standard error {se}")
        except RemovalFitError as e:
            err = DegenerateSiteError(site_id, catches, e)
            if on_degenerate == 'raise':
                raise err from e
            logger.warning("%s. Site excluded, the regional estimate is biased by its absence.", err)
            excluded.append(site_id)
            continue
        logger.debug('site %s catches %s: M_hat = %.2f, SE = %.3f', site_id, list(catches), M_hat, se)
        rows.append((site_id, M_hat, se ** 2))

    abundance = pd.DataFrame(rows, columns=[SITE_ID, 'M_hat', 'V_M_hat']).set_index(SITE_ID)
    abundance['SE_M_hat'] = np.sqrt(abundance['V_M_hat'])
    return abundance, excluded


class survey():
    ''' Python class object that holds the tables of one depletion survey and
    produces site and regional estimates from them'''

    def __init__(self, frame_length, N, passes, fish=None, sites=None, fw=None,
                 removal_model=carle_strub, on_degenerate='raise', alpha=ALPHA):
        """
        Initializes a survey.

        Parameters:
        - frame_length (float): total channel length of the sample frame
        - N (int): number of reaches in the sample frame
        - passes, fish, sites: input tables, see aggregate_sites
        - fw (float, optional): fraction of frame reaches that are wet.  When
          omitted the wet fraction of the sampled sites is used.
        - removal_model (callable): per-site removal estimator
        - on_degenerate (str): 'raise' or 'exclude', see estimate_site_abundance
        - alpha (float): 1 - confidence level of the regional intervals
        """
        if N is None or int(N) != N or N <= 0:
            raise InputIntegrityError(f"frame size N must be a positive integer, got {N}")
        if not frame_length or frame_length <= 0:
            raise InputIntegrityError(f"frame length must be positive, got {frame_length}")
        if fw is not None and not 0 < fw <= 1:
            raise InputIntegrityError(f"fraction wet must be in (0, 1], got {fw}")
        if on_degenerate not in DEGENERATE_POLICIES:
            raise ValueError(f"on_degenerate must be one of {DEGENERATE_POLICIES}, got '{on_degenerate}'")

        self.N = int(N)
        self.frame_length = float(frame_length)
        self.L1_bar = self.frame_length / self.N
        self.passes = passes
        self.fish = fish
        self.sites = sites
        self.fw = fw
        self.removal_model = removal_model
        self.on_degenerate = on_degenerate
        self.alpha = alpha

        self.site_df = None
        self.abundance = None
        self.excluded = []
        self.results = {}
        self.failures = {}
        self.power = None

    def aggregate(self):
        '''per-site catch vectors and size class tallies'''
        self.site_df = aggregate_sites(self.passes, self.fish, self.sites)
        logger.info("Aggregated %s sites, %s wet, %s fish handled",
                    len(self.site_df), int(self.site_df['wet'].sum()), int(self.site_df['m'].sum()))
        return self.site_df

    def site_abundance(self):
        '''removal estimates per site: M_hat, V_M_hat and SE_M_hat'''
        if self.site_df is None:
            self.aggregate()
        self.abundance, self.excluded = estimate_site_abundance(self.site_df,
                                                                self.removal_model,
                                                                self.on_degenerate)
        if self.excluded:
            logger.warning("%s sites excluded from regional estimates: %s", len(self.excluded), self.excluded)
        return self.abundance

    def fraction_wet(self):
        '''fw supplied by the caller, else wet sampled sites over sampled sites'''
        if self.fw is not None:
            return self.fw
        if self.site_df is None:
            self.aggregate()
        return float(self.site_df['wet'].mean())

    def estimation_table(self):
        """
        Per-site vectors going into the ratio estimators: wet sites that were
        not excluded, in canonical order.
        """
        if self.abundance is None:
            self.site_abundance()
        return self.site_df[self.site_df['wet']].join(self.abundance, how='inner')

    def regional_density(self):
        '''fish per unit channel length across the wet frame'''
        tbl = self.estimation_table()
        return density_ratio(tbl['M_hat'].values,
                             tbl['V_M_hat'].values,
                             tbl['L2'].values,
                             self.N,
                             self.fraction_wet(),
                             self.L1_bar,
                             self.alpha)

    def class_abundance(self, size_class):
        '''regional total of one size class (adult, enigmatic or juvenile)'''
        if size_class not in SIZE_CLASSES:
            raise ValueError(f"size class must be one of {SIZE_CLASSES}, got '{size_class}'")
        tbl = self.estimation_table()
        return composite_ratio(tbl[size_class].values,
                               tbl['m'].values,
                               tbl['M_hat'].values,
                               tbl['V_M_hat'].values,
                               tbl['L2'].values,
                               self.N,
                               self.fraction_wet(),
                               self.L1_bar,
                               self.alpha)

    def power_analysis(self, size_class='adult', multipliers=DEFAULT_MULTIPLIERS):
        """
        Projects the CV of a size class total for i-fold replication of the
        sample.  Multipliers that cannot be projected (sample would reach the
        wet frame size) are logged, recorded in failures and left out of the
        table.
        """
        fit = self.results.get(size_class)
        if fit is None:
            fit = self.class_abundance(size_class)

        skipped = {}
        self.power = power_table(fit, multipliers, skipped)
        for i, e in skipped.items():
            self.failures[f'power {size_class} x{i}'] = e
        return self.power

    def run(self, power_class='adult', multipliers=DEFAULT_MULTIPLIERS):
        """
        Runs the whole survey: site estimates, regional density, the three
        size class totals and a power analysis.  Each regional target is
        estimated on its own, a failure is logged and kept in failures while the
        remaining targets are still computed.  A degenerate site under the
        'raise' policy aborts the run.
        """
        self.results = {}
        self.failures = {}
        self.site_abundance()

        targets = [('density', self.regional_density)]
        targets += [(c, lambda c=c: self.class_abundance(c)) for c in SIZE_CLASSES]
        for name, estimate in targets:
            try:
                self.results[name] = estimate()
            except (InsufficientSampleError, NonFiniteResultError) as e:
                logger.error("Could not estimate %s: %s", name, e)
                self.failures[name] = e

        if power_class in self.results:
            self.power_analysis(power_class, multipliers)
        else:
            self.power = None
        logger.info("Completed survey estimates - view results")
        return self

    def summary(self):
        """
        Tabulates the regional estimates and writes them to the log.  Returns a
        DataFrame indexed by target.
        """
        if not self.results and not self.failures:
            self.run()

        rows = []
        for name, fit in self.results.items():
            est = fit.estimate
            rows.append({'target': name,
                         'estimate': est.point_estimate,
                         'density': fit.density,
                         'se': est.standard_error,
                         'ci_lower': est.ci_lower,
                         'ci_upper': est.ci_upper,
                         'cv': est.coefficient_of_variation,
                         'n': fit.n})
        self.summary_df = pd.DataFrame(rows, columns=['target', 'estimate', 'density', 'se',
                                                      'ci_lower', 'ci_upper', 'cv', 'n']).set_index('target')

        logger.info("==== Regional Estimates (N = %s, L1_bar = %.2f, fw = %.3f) ====",
                    self.N, self.L1_bar, self.fraction_wet())
        for name, row in self.summary_df.iterrows():
            logger.info("  %-10s %12.4f  SE = %.4f, %d%% CI = [%.4f, %.4f], CV = %.1f%%",
                        name, row['estimate'], row['se'], round((1 - self.alpha) * 100),
                        row['ci_lower'], row['ci_upper'], row['cv'])
            if row['ci_lower'] < 0:
                logger.info("  %-10s lower bound is negative, an artifact of the t approximation", name)
        for name, e in self.failures.items():
            logger.info("  %-10s not estimated: %s", name, e)

        # counted adults should not exceed the expanded adult total
        if 'adult' in self.results:
            counted = int(self.estimation_table()['adult'].sum())
            total = self.results['adult'].estimate.point_estimate
            if counted > total:
                logger.warning("Counted %s adults but the regional adult estimate is only %.1f, "
                               "check the removal fits", counted, total)

        if self.power is not None and len(self.power):
            logger.info("==== Power Analysis ====")
            for _, row in self.power.iterrows():
                logger.info("  n = %4d  CV = %.2f%%", row['sample_size'], row['cv'])

        return self.summary_df

    def plot_power(self):
        """
        CV of the projected total against sample size.  Returns the figure.
        """
        if self.power is None:
            self.power_analysis()
        fig, ax = plt.subplots(figsize=(4, 3), tight_layout=True)
        ax.plot(self.power['sample_size'], self.power['cv'], 'o-', color='darkorange')
        ax.set_xlabel('Sites sampled')
        ax.set_ylabel('CV (%)')
        ax.set_title('Projected precision')
        return fig

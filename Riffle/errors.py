# -*- coding: utf-8 -*-
"""
Created on Tue Sep 22 10:14:51 2026

Exceptions raised by Riffle.  Everything subclasses ValueError so callers
that only care about bad input can catch the built-in.
"""


class RiffleError(ValueError):
    '''Base class for all Riffle failures'''


class InputIntegrityError(RiffleError):
    '''Raised before estimation when the pass, fish or site tables are
    internally inconsistent (unknown site, duplicate or missing passes,
    negative catch, non-positive length, missing columns).'''


class DegenerateSiteError(RiffleError):
    '''Raised when the removal model cannot fit a non-zero catch sequence.'''

    def __init__(self, site_id, catches, reason):
        self.site_id = site_id
        self.catches = tuple(catches)
        self.reason = reason
        super().__init__(f"removal model could not fit site {site_id} "
                         f"with catches {list(self.catches)}: {reason}")


class InsufficientSampleError(RiffleError):
    '''Raised when a ratio estimate is requested from fewer than two sites or
    from sites that handled no fish at all.'''


class NonFiniteResultError(RiffleError):
    '''Raised instead of letting a zero denominator or a non-positive finite
    population correction put NaN or Inf into a reported table.'''

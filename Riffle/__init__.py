# -*- coding: utf-8 -*-
"""
Created on Mon Sep 21 14:30:12 2026

Riffle: regional trout abundance and density from multiple pass depletion
surveys.  The estimation workflow lives in Riffle.riffle, the ratio
estimators in Riffle.estimators and the per-site removal models in
Riffle.removal.
"""

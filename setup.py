# -*- coding: utf-8 -*-
"""
Created on Mon Sep 21 14:28:40 2026
"""

# setup.py
from setuptools import setup, find_packages

setup(
    name='Riffle',
    version='0.1.0',
    packages=find_packages(exclude=['tests', 'tests.*']),
    install_requires=[
        'numpy',
        'pandas',
        'scipy',
        'matplotlib',
        'openpyxl',
    ],
    extras_require={
        'test': ['pytest'],
    },
)

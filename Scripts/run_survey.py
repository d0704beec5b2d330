# -*- coding: utf-8 -*-
"""
Created on Thu Sep 24 16:05:52 2026

Script Intent: run a depletion survey workbook through Riffle and write the
site, regional and power analysis tables next to it.
"""
# import modules
import os
import logging
from Riffle import riffle

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")

# declare workspaces
ws = r"D:\Trout_Survey_2026\Data"
wks = 'trout depletion 2026.xlsx'

# import the survey and run it
inputs = riffle.worksheet_import(os.path.join(ws, wks))
survey = riffle.survey(**inputs, on_degenerate='raise')
survey.run()

sites = survey.abundance
regional = survey.summary()
power = survey.power

sites.to_csv(os.path.join(ws, 'site_estimates.csv'))
regional.to_csv(os.path.join(ws, 'regional_estimates.csv'))
if power is not None:
    power.to_csv(os.path.join(ws, 'power_analysis.csv'), index=False)
    fig = survey.plot_power()
    fig.savefig(os.path.join(ws, 'power_analysis.png'), dpi=300)

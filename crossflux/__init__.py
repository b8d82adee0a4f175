"""CrossFlux - cross-species comparison of metabolic flux profiles.

Expression matrices from two cohorts are turned into reaction activity
scores and flux estimates with a genome-scale metabolic model, then
compared reaction by reaction and pathway by pathway using Spearman
rank correlation.
"""

__version__ = "0.1.0"

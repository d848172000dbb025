"""BIOCARD longitudinal alignment: baseline windows, stream matching, cohort covariates."""

__version__ = "0.1.0"

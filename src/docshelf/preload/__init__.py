"""Predictive document preloading."""

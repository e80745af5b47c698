"""Pytest configuration: render matplotlib figures off-screen."""

import matplotlib

matplotlib.use("Agg")

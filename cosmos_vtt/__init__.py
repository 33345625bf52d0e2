"""Cosmos Engine virtual tabletop: combat and scale resolution core."""

__version__ = "0.1.0"

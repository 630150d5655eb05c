"""Konbase Modul-System: Registry, Persistence-Gateway und Extension-Aggregator."""

__version__ = "0.3.0"

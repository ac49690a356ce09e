"""
Command Line Interface Package

Provides the ``bankrec`` command for loading bank lines and records into the
JSON file store and running suggestions, auto-matching and statistics.
"""

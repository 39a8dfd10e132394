"""
Redzone Fantasy content pipeline.

Ingests fantasy-football articles and videos from configured sources,
normalizes them into one schema and serves them to the web frontend.
"""

__version__ = "0.1.0"

"""
Brand knowledge hub: per-agent context partitioning and automation dispatch tracking.
"""

__version__ = "0.1.0"

"""
SensiLog Analysis - Performance aggregation, settings change detection and
period comparison.
"""

__all__: list[str] = []

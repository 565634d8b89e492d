"""
Core modules for Claude Radar.

This package contains record parsing, session windowing, burn rate
estimation, plan limit detection, aggregation and refresh orchestration.
"""

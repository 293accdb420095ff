"""
SprintPulse - Sprint Health Scoring and Proactive Guidance

This package contains the SprintPulse backend services:
- engine: Health scorer, signal aggregator, guidance builder, trend smoother
- storage: Postgres adapter, models and upsert repositories
- schedulers: Daily health computation and the trend report
- workers: Command-line entry points
- platform: Cross-cutting concerns (config, logging)
"""

__version__ = "0.1.0"

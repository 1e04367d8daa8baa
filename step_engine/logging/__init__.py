"""
Structured logging setup for the step engine
"""

from step_engine.logging.setup import setup_logging

__all__ = ["setup_logging"]

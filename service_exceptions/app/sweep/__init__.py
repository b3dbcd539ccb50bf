"""
Sweep package.

- sweeper: resets every tracked rule and clears the tracking store
- scheduler: interval loop that triggers the sweeper
"""

from .sweeper import ExceptionSweeper
from .scheduler import SweepScheduler

__all__ = ["ExceptionSweeper", "SweepScheduler"]

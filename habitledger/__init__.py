"""
habitledger
Recurring-obligation accounting core: tasks, challenges, completions, streaks and penalties.
"""

__version__ = "0.1.0"

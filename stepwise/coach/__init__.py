"""Coaching messages shown while the user works through steps."""

from stepwise.coach.encouragement import EncouragementWriter, Progress, StepRef

__all__ = ["EncouragementWriter", "Progress", "StepRef"]

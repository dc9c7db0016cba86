"""mneme: dual-algorithm (SM-2 / FSRS) spaced-repetition scheduling engine."""

from mneme.consts import VERSION

__version__ = VERSION

"""Proficiency Proctor - recorded proficiency-test proctoring."""

__version__ = "0.1.0"

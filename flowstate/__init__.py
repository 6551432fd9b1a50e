"""Flow State Dev — compose starter projects from stack modules."""

__version__ = "0.1.0"

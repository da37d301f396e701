"""Counselor - local CBT counseling chat session controller.

Drives a locally loaded language model one response at a time and exposes
the session state a UI observes.
"""

__version__ = "1.0.0"

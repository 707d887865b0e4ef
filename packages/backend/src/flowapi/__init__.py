"""Flow API — onboarding and authentication backend for the Flow App.

Accepts Google ID tokens, verifies them, runs the two-step signup flow,
and issues first-party access/refresh tokens.
"""

__version__ = "0.1.0"

"""Authentication.

Two halves:
1. Incoming identity → a Google ID token is verified against Google's
   published keys and yields the user's email (identity.py)
2. Outgoing credentials → first-party JWT access/refresh tokens signed
   with the app secret (jwt.py)
"""

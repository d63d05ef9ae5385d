"""Turnstile: account lifecycle core.

Account registration, email verification and password reset gated by
single-use, time-bound numeric tokens.
"""

"""Dynamic Assessment Engine.

Evaluates participant-deployed cloud infrastructure against challenge criteria
by running untrusted, per-challenge check units in isolated processes with
short-lived, read-only delegated credentials.
"""

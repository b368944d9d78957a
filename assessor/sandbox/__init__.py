"""Sandboxed execution of check units.

Kept import-light: spawned unit processes import ``assessor.sandbox.worker``.
"""

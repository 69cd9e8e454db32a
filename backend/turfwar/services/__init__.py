"""Process-wide services used by the live game layer: deferred work and tokens."""

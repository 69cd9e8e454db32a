"""Live game state.

Live objects wrap the persisted rows of a running game and keep per-user
state that is never stored: locations, and which users a factory or shop is
visible to, in range of, or pinged for.
"""

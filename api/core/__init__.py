"""
Shared, cross-cutting code for the API.

`core/` holds small building blocks that feature packages use (store session,
upstream feed client). Keep feature-specific SQL and response shaping in the
corresponding feature package (e.g. `stations/`).
"""

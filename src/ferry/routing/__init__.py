"""Routing — ordered registrations with segment-based matching.

Registrations are appended during setup and matched strictly in
registration order; there is no specificity ranking.
"""

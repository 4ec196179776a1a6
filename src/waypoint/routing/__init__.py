"""Routing: ordered route table with anchored template matching.

Routes are registered during setup and scanned in registration order;
the table is frozen before the listener starts.
"""

"""
Periodic sweeps, invoked by the arq worker or the admin job endpoints.
Each returns the number of items it processed; a failing item is logged and skipped.
"""

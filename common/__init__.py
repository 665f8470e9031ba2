"""
Shared configuration, logging and helpers for the recommendation engine.
"""

"""API Resilience Implementations.

Contains the sliding-window rate limiter, rate-limit scoping strategies
and the optional caller-side retry service.
Bounded Context: API Resilience
"""

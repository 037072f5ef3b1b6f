"""Core Application Layer.

Contains the services that mediate every outbound call: credential
freshness, request contracts and dispatch orchestration.
"""

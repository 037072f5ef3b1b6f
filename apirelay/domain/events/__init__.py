"""Domain Event definitions.

Represents significant occurrences within the request layer that other
parts of the system (logging, metrics, tests) might react to.
"""

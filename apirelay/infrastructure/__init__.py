"""Infrastructure Layer: Contains concrete implementations and adapters.

Connects the request layer to the outside world (HTTP, token endpoints,
configuration files, the console) by implementing the interfaces defined
in the domain layer. Also holds the rate limiting and retry machinery.
"""

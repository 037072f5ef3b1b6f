"""Domain layer: value objects, ports and events of the request layer."""

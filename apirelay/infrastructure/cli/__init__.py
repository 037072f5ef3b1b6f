"""Console presentation for the apirelay CLI."""

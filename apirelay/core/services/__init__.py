"""Application services of the request layer."""

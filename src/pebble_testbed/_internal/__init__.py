"""Internal implementation details of pebble-testbed; not a public API."""

"""pebble-testbed tests"""

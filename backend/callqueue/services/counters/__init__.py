"""Counter (service desk) administration and ticket dispatch."""

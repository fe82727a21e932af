"""Service-desk ticket queue: allocation, counter dispatch and daily reset."""

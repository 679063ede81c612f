"""Core runtime: configuration, logging, wiring."""

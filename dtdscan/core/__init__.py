"""Configuration, diagnostics, rules and the scan engine."""

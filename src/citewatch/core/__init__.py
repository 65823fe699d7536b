"""Core data types shared across citewatch."""

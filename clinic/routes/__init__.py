"""Top-level routes that are not tied to a single domain"""

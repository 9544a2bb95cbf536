"""Email parsing, composition and reply derivation."""

"""Authentication primitives: TOTP generation and secret handling."""

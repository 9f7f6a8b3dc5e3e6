"""totpkeep: a personal TOTP authenticator."""

__version__ = "0.1.0"

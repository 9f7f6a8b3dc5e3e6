"""totpkeep CLI entry point.

Usage:
    python -m totpkeep list            # List stored credentials
    python -m totpkeep add NAME SECRET # Add a credential
    python -m totpkeep code ID         # Print the current code
    python -m totpkeep watch           # Live countdown for every credential
"""

from totpkeep.cli import main

if __name__ == "__main__":
    main()

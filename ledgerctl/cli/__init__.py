"""ledgerctl command-line interface.

Exposes:
    cli -- Click group entry point (registered as ``ledgerctl`` script).
"""

from ledgerctl.cli.main import cli

__all__ = ["cli"]

"""Credential backup history."""

from ledgerctl.crypto.backup import ITERATIONS, BackupHistory, CredentialBackupRotator, CryptoSnapshot, rotate

__all__ = ["ITERATIONS", "BackupHistory", "CredentialBackupRotator", "CryptoSnapshot", "rotate"]

"""
Wallet Module - Named, Encrypted Wallet Store
=============================================
Stores named signing keys on disk and hands out WalletHandles.

Security Features:
- PBKDF2-HMAC-SHA256 key derivation with a unique salt per wallet
- Fernet (AES-128-CBC) encryption of every private key
- File permissions 0o600 (owner-only)
- Keys are decrypted on demand and never written back in clear text
"""

import os
import json
import base64
import secrets
from pathlib import Path
from typing import Dict, List, Optional
from datetime import datetime

from eth_account import Account
from eth_account.signers.local import LocalAccount
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .utils import WalletError, logger, validate_private_key, format_address


class WalletHandle:
    """
    Signing identity for one named wallet.

    The engine only reads `address` and calls `sign_transaction`.
    """

    def __init__(self, name: str, account: LocalAccount):
        self.name = name
        self._account = account

    @property
    def address(self) -> str:
        return self._account.address

    def sign_transaction(self, tx: dict):
        return self._account.sign_transaction(tx)

    def __repr__(self) -> str:
        return f"WalletHandle({self.name}, {format_address(self.address)})"


class WalletManager:
    """
    Named wallets persisted as JSON:

        {"wallets": {"<name>": {"address", "salt", "encrypted_key", "created"}}}
    """

    ITERATIONS = 600_000  # OWASP 2023 recommended minimum

    def __init__(self, wallet_file: str, password: str, iterations: Optional[int] = None):
        self.wallet_file = Path(wallet_file)
        self._password = password
        self.iterations = iterations or self.ITERATIONS
        self._wallets: Dict[str, Dict[str, str]] = {}
        self._load()

    def _derive_key(self, salt: bytes) -> bytes:
        """Derive encryption key from password using PBKDF2."""
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=self.iterations,
        )
        return base64.urlsafe_b64encode(kdf.derive(self._password.encode()))

    def _load(self):
        if not self.wallet_file.exists():
            logger.debug(f"No wallet file at {self.wallet_file}, starting empty")
            return
        with open(self.wallet_file, 'r') as f:
            data = json.load(f)
        self._wallets = data.get("wallets", {})
        logger.debug(f"Loaded {len(self._wallets)} wallets from {self.wallet_file}")

    def _save(self):
        self.wallet_file.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "wallets": self._wallets,
            "iterations": self.iterations,
            "updated_at": datetime.now().isoformat(),
        }
        with open(self.wallet_file, 'w') as f:
            json.dump(data, f, indent=2)
        os.chmod(self.wallet_file, 0o600)

    def add(self, name: str, private_key: str) -> str:
        """Encrypt and store a key under `name`. Returns the address."""
        if not name:
            raise WalletError("Wallet name must not be empty")
        if not validate_private_key(private_key):
            raise WalletError("Invalid private key")

        account = Account.from_key(private_key)
        salt = secrets.token_bytes(16)
        encrypted = Fernet(self._derive_key(salt)).encrypt(private_key.strip().encode())

        self._wallets[name] = {
            "address": account.address,
            "salt": base64.b64encode(salt).decode(),
            "encrypted_key": encrypted.decode(),
            "created": datetime.now().isoformat(),
        }
        self._save()
        logger.info(f"Wallet {name} added with address {account.address}")
        return account.address

    def import_file(self, file_path: str) -> int:
        """
        Import wallets from a JSON file of the form
        {"name": {"privateKey": "0x..."}}. Returns the number imported.
        """
        with open(file_path, 'r') as f:
            entries = json.load(f)

        imported = 0
        for name, entry in entries.items():
            key = entry.get("privateKey") or entry.get("private_key")
            if not key:
                continue
            try:
                self.add(name, key)
                imported += 1
            except WalletError as e:
                logger.warning(f"Skipping wallet {name}: {e}")
        logger.info(f"Imported {imported} wallets from {file_path}")
        return imported

    def remove(self, name: str) -> bool:
        if name not in self._wallets:
            return False
        del self._wallets[name]
        self._save()
        return True

    def list(self) -> List[Dict[str, str]]:
        return [{"name": name, "address": w["address"]} for name, w in self._wallets.items()]

    def names(self) -> List[str]:
        return list(self._wallets.keys())

    def get(self, name: str) -> Optional[WalletHandle]:
        """Decrypt and return the wallet, or None if it does not exist."""
        entry = self._wallets.get(name)
        if entry is None:
            logger.error(f"Wallet {name} not found")
            return None

        salt = base64.b64decode(entry["salt"])
        try:
            private_key = Fernet(self._derive_key(salt)).decrypt(entry["encrypted_key"].encode()).decode()
        except InvalidToken:
            raise WalletError(f"Could not decrypt wallet {name}: wrong password?")

        return WalletHandle(name, Account.from_key(private_key))

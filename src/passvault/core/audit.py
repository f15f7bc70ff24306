"""Vault-wide password hygiene checks."""

from __future__ import annotations

from collections import defaultdict
from typing import Dict, List

from .models import Entry, Vault
from .validator import Strength, password_strength


def find_weak_passwords(vault: Vault) -> List[Entry]:
    return [e for e in vault.entries if e.password and password_strength(e.password) is Strength.WEAK]


def find_duplicate_passwords(vault: Vault) -> Dict[str, List[Entry]]:
    """Group entries sharing a password; keyed by the first entry's id, never the password."""
    by_password: Dict[str, List[Entry]] = defaultdict(list)
    for entry in vault.entries:
        if entry.password:
            by_password[entry.password].append(entry)
    return {group[0].id: group for group in by_password.values() if len(group) > 1}


def security_score(vault: Vault) -> float:
    """100 minus weak passwords and reuse groups as a percentage of entries, floored at 0."""
    if not vault.entries:
        return 100.0
    issues = len(find_weak_passwords(vault)) + len(find_duplicate_passwords(vault))
    return max(0.0, 100.0 - issues / len(vault.entries) * 100.0)

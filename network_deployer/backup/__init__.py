"""
Хранилище снапшотов конфигурации.

- BackupStore: снапшоты с SHA-256, манифест, индекс SHA256SUMS
- IntegrityIssue: результат проверки целостности
"""

from .store import BackupStore, IntegrityIssue, LATEST

__all__ = ["BackupStore", "IntegrityIssue", "LATEST"]

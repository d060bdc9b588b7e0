"""
CLI команды.

Каждый модуль содержит обработчики команд:
- deploy.py: enforce-compliance, deploy-templates, bulk-update
- backup.py: backup, list-backups, verify-backups
- rollback.py: rollback

Обработчик принимает (args, ctx, settings) и возвращает код выхода.
"""

from .deploy import cmd_enforce_compliance, cmd_deploy_templates, cmd_bulk_update
from .backup import cmd_backup, cmd_list_backups, cmd_verify_backups
from .rollback import cmd_rollback

__all__ = [
    "cmd_enforce_compliance",
    "cmd_deploy_templates",
    "cmd_bulk_update",
    "cmd_backup",
    "cmd_list_backups",
    "cmd_verify_backups",
    "cmd_rollback",
]

"""
Network Deployer - батчевое применение конфигурации на сетевой парк.

Возможности:
- Бэкап running/startup конфигурации с SHA-256 и манифестом
- Выкат изменений батчами (enforce-compliance, deploy-templates, bulk-update)
- Проверки после применения и автоматический откат на снапшот
- Остановка выката при превышении доли ошибок
- Откат на точку восстановления (latest или дата)

Примеры использования:
    # CLI
    python -m network_deployer backup --target all
    python -m network_deployer bulk-update --config-file snmp.cfg --target nyc

    # Python API
    from network_deployer.backup import BackupStore
    from network_deployer.core.pipeline import ChangeExecutor, FleetOrchestrator

    executor = ChangeExecutor(driver, BackupStore("backups"))
    report = FleetOrchestrator(executor).run(request)

Автор: Network Automation Team
Версия: 1.0.0
"""

__version__ = "1.0.0"
__author__ = "Network Automation Team"

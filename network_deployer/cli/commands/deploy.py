"""
Команды изменения конфигурации.

Команды: enforce-compliance, deploy-templates, bulk-update
"""

import logging
from typing import Tuple

from ..utils import (
    execute_request,
    get_batch_size,
    get_step_filter,
    load_checks,
    load_targets,
    load_vars,
    parse_checks,
    read_text,
    read_yaml,
)
from ...core.exceptions import ConfigError
from ...core.models import (
    ChangePolicy,
    ChangeRequest,
    Operation,
    TemplateSpec,
    VerificationCheck,
)

logger = logging.getLogger(__name__)


def load_baseline(filepath: str) -> Tuple[TemplateSpec, Tuple[VerificationCheck, ...]]:
    """
    Загружает baseline для enforce-compliance.

    Формат YAML:
        config: |
          {% for server in ntp_servers %}
          ntp server {{ server }}
          {% endfor %}
        variables:
          ntp_servers: [10.10.0.1, 10.10.0.2]
        checks:
          - command: show running-config | include ntp server
            expect: "ntp server 10.10.0.1"

    Вместо config можно указать template: <файл в каталоге шаблонов>.

    Raises:
        ConfigError: Нет config/template или нет проверок
    """
    data = read_yaml(filepath)
    if not isinstance(data, dict):
        raise ConfigError("Baseline должен быть словарём", config_file=filepath)

    source = data.get("config")
    template_id = data.get("template") or ""
    if not source and not template_id:
        raise ConfigError("В baseline нужен 'config' или 'template'", config_file=filepath)

    variables = data.get("variables") or {}
    if not isinstance(variables, dict):
        raise ConfigError("variables должен быть словарём", config_file=filepath, key="variables")

    checks = parse_checks(data.get("checks"), source=filepath)
    if not checks:
        raise ConfigError(
            "В baseline нужны проверки соответствия (checks)",
            config_file=filepath,
            key="checks",
        )

    spec = TemplateSpec(
        template_id=template_id,
        by_role=data.get("by_role") or {},
        variables=variables,
        source=source or None,
    )
    return spec, checks


def _policy(args, settings, operation: Operation) -> ChangePolicy:
    return ChangePolicy.for_operation(
        operation,
        get_step_filter(args),
        auto_rollback=settings.rollout.auto_rollback,
    )


def cmd_enforce_compliance(args, ctx, settings) -> int:
    """Обработчик команды enforce-compliance."""
    operation = Operation.ENFORCE_COMPLIANCE
    template, checks = load_baseline(args.baseline)
    devices = load_targets(args, settings)

    request = ChangeRequest(
        operation=operation,
        devices=devices,
        template=template,
        batch_size=get_batch_size(args, settings, operation),
        checks=checks,
        policy=_policy(args, settings, operation),
        description=f"baseline {args.baseline}",
    )
    return execute_request(args, ctx, settings, request)


def cmd_deploy_templates(args, ctx, settings) -> int:
    """Обработчик команды deploy-templates."""
    operation = Operation.DEPLOY_TEMPLATES
    devices = load_targets(args, settings)

    by_role = dict(settings.templates.by_role)
    template_id = args.template or ""
    if not template_id and not by_role:
        raise ConfigError(
            "Укажите --template или templates.by_role в config.yaml",
            key="templates.by_role",
        )

    request = ChangeRequest(
        operation=operation,
        devices=devices,
        template=TemplateSpec(
            template_id=template_id,
            # Явный --template важнее маппинга по ролям
            by_role={} if args.template else by_role,
            variables=load_vars(args.vars),
        ),
        batch_size=get_batch_size(args, settings, operation),
        checks=load_checks(args.checks),
        policy=_policy(args, settings, operation),
        description=f"template {template_id or 'by_role'}",
    )
    return execute_request(args, ctx, settings, request)


def cmd_bulk_update(args, ctx, settings) -> int:
    """Обработчик команды bulk-update (одинаковый фрагмент на все устройства)."""
    operation = Operation.BULK_UPDATE
    payload = read_text(args.config_file)
    if not payload.strip():
        raise ConfigError("Файл конфигурации пуст", config_file=args.config_file)
    devices = load_targets(args, settings)

    request = ChangeRequest(
        operation=operation,
        devices=devices,
        payload=payload,
        batch_size=get_batch_size(args, settings, operation),
        checks=load_checks(args.checks),
        policy=_policy(args, settings, operation),
        description=f"bulk update {args.config_file}",
    )
    return execute_request(args, ctx, settings, request)

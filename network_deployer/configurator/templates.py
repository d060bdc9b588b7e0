"""
Рендеринг конфигурации из шаблонов Jinja2.

Неопределённая переменная — ошибка (StrictUndefined), а не пустая строка:
устройство не должно получить частично отрендеренную конфигурацию.

Пример использования:
    renderer = TemplateRenderer("templates")
    config_text = renderer.render("ntp.j2", {"ntp_servers": ["10.10.0.1"]})
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from jinja2 import (
    Environment,
    FileSystemLoader,
    StrictUndefined,
    TemplateNotFound,
    TemplateSyntaxError,
    UndefinedError,
    meta,
)

from ..core.exceptions import TemplateError, UndefinedVariableError

logger = logging.getLogger(__name__)


class TemplateRenderer:
    """
    Рендеринг шаблонов из каталога.

    Attributes:
        template_dir: Каталог шаблонов
    """

    def __init__(self, template_dir: Union[str, Path] = "templates"):
        self.template_dir = Path(template_dir)
        self.env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )

    def render(self, template_id: str, variables: Optional[Dict[str, Any]] = None) -> str:
        """
        Рендерит шаблон по имени файла.

        Args:
            template_id: Имя шаблона относительно template_dir
            variables: Переменные

        Returns:
            str: Текст конфигурации

        Raises:
            UndefinedVariableError: Переменная не определена
            TemplateError: Шаблон не найден или синтаксическая ошибка
        """
        try:
            template = self.env.get_template(template_id)
        except TemplateNotFound as e:
            raise TemplateError(
                f"Шаблон не найден в {self.template_dir}",
                template_id=template_id,
            ) from e
        except TemplateSyntaxError as e:
            raise TemplateError(
                f"Синтаксическая ошибка в строке {e.lineno}: {e.message}",
                template_id=template_id,
            ) from e

        return self._render(template, template_id, variables or {})

    def render_string(
        self,
        text: str,
        variables: Optional[Dict[str, Any]] = None,
        template_id: str = "<string>",
    ) -> str:
        """
        Рендерит шаблон из строки (например, из baseline-файла).

        Raises:
            UndefinedVariableError: Переменная не определена
            TemplateError: Синтаксическая ошибка
        """
        try:
            template = self.env.from_string(text)
        except TemplateSyntaxError as e:
            raise TemplateError(
                f"Синтаксическая ошибка в строке {e.lineno}: {e.message}",
                template_id=template_id,
            ) from e

        return self._render(template, template_id, variables or {})

    def _render(self, template, template_id: str, variables: Dict[str, Any]) -> str:
        try:
            rendered = template.render(**variables)
        except UndefinedError as e:
            raise UndefinedVariableError(str(e), template_id=template_id) from e

        logger.debug(f"Шаблон {template_id} отрендерен ({len(rendered)} символов)")
        return rendered

    def list_templates(self) -> List[str]:
        """Все шаблоны каталога."""
        if not self.template_dir.is_dir():
            return []
        return sorted(self.env.list_templates())

    def variables_of(self, template_id: str) -> List[str]:
        """
        Переменные, которые использует шаблон (без include/extends).

        Raises:
            TemplateError: Шаблон не найден
        """
        try:
            source, _, _ = self.env.loader.get_source(self.env, template_id)
        except TemplateNotFound as e:
            raise TemplateError("Шаблон не найден", template_id=template_id) from e
        return sorted(meta.find_undeclared_variables(self.env.parse(source)))

"""
Модуль управления учётными данными.

Источники (по приоритету):
- Явная передача
- Переменные окружения
- Интерактивный ввод (getpass), только если разрешён

Хранилища секретов (vault) не поддерживаются.

Пример использования:
    creds = CredentialsManager().get_credentials(interactive=False)
"""

import os
import logging
from getpass import getpass
from dataclasses import dataclass
from typing import Optional

from .exceptions import ConfigError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Credentials:
    """
    Контейнер для учётных данных.

    Attributes:
        username: Имя пользователя
        password: Пароль
        secret: Enable пароль (опционально)
    """
    username: str
    password: str
    secret: Optional[str] = None

    def __repr__(self) -> str:
        return f"Credentials(username={self.username!r}, password='***')"


class CredentialsManager:
    """
    Менеджер учётных данных.

    Переменные окружения: NET_USERNAME, NET_PASSWORD, NET_SECRET.

    Example:
        manager = CredentialsManager()
        creds = manager.get_credentials()
    """

    ENV_USERNAME = "NET_USERNAME"
    ENV_PASSWORD = "NET_PASSWORD"
    ENV_SECRET = "NET_SECRET"

    def __init__(
        self,
        username: Optional[str] = None,
        password: Optional[str] = None,
        secret: Optional[str] = None,
    ):
        self._credentials: Optional[Credentials] = None

        if username and password:
            self._credentials = Credentials(
                username=username,
                password=password,
                secret=secret,
            )

    def get_credentials(self, interactive: bool = True) -> Credentials:
        """
        Получает учётные данные.

        Args:
            interactive: Разрешить интерактивный ввод

        Returns:
            Credentials: Объект с учётными данными

        Raises:
            ConfigError: Если не удалось получить credentials
        """
        if self._credentials:
            return self._credentials

        env_username = os.getenv(self.ENV_USERNAME)
        env_password = os.getenv(self.ENV_PASSWORD)

        if env_username and env_password:
            logger.info("Используем учётные данные из переменных окружения")
            self._credentials = Credentials(
                username=env_username,
                password=env_password,
                secret=os.getenv(self.ENV_SECRET) or None,
            )
            return self._credentials

        if interactive:
            logger.info("Запрос учётных данных интерактивно")
            self._credentials = self._prompt_credentials()
            return self._credentials

        raise ConfigError(
            "Не удалось получить учётные данные. "
            f"Установите {self.ENV_USERNAME} и {self.ENV_PASSWORD} "
            "или включите интерактивный режим.",
            key=self.ENV_USERNAME,
        )

    def _prompt_credentials(self) -> Credentials:
        """Запрашивает учётные данные интерактивно."""
        username = input("Имя пользователя: ").strip()
        password = getpass("Пароль: ")
        secret = getpass("Enable пароль (Enter если не требуется): ")

        return Credentials(
            username=username,
            password=password,
            secret=secret or None,
        )

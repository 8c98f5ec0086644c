# === FILE: speed_scout/config.py ===
"""
Загрузка и валидация конфигурации SpeedScout.
Схема описана через Pydantic, файл может быть YAML или JSON.
"""
from __future__ import annotations

import errno
import json
import os
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple, Type, Union

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    HttpUrl,
    field_validator,
)

DEFAULT_CATEGORIES: Tuple[str, ...] = ("performance", "accessibility", "best-practices", "seo")
API_KEY_ENV = "PAGESPEED_API_KEY"


class ScoutConfig(BaseModel):
    """Конфигурация клиента анализа и сервера шаринга."""
    model_config = ConfigDict(extra="forbid", frozen=True, validate_default=True)

    workers_url: HttpUrl = Field(
        "https://lazy-pagespeed-api.blackflash.workers.dev",
        description="Базовый URL сервера шаринга / прокси анализа.",
    )
    pagespeed_url: HttpUrl = Field(
        "https://www.googleapis.com/pagespeedonline/v5/runPagespeed",
        description="Endpoint PageSpeed Insights API.",
    )
    api_key: Optional[str] = Field(None, min_length=1, description="Ключ PageSpeed API (Pro-режим).")
    locale: str = Field("zh_TW", min_length=2, description="Локаль отчётов.")
    categories: Tuple[str, ...] = Field(DEFAULT_CATEGORIES, min_length=1)
    timeout: float = Field(120.0, gt=0, description="Таймаут одного запроса анализа (секунд).")
    launch_interval: float = Field(1.0, ge=0, description="Пауза между запуском URL в пакете (секунд).")
    share_ttl_days: int = Field(7, ge=1, description="Срок жизни ссылки шаринга (дней).")
    storage_dir: Path = Field(Path("data"), description="Каталог для объектов отчётов.")
    redis_url: Optional[str] = Field(None, description="Redis для KV-хранилища шаринга.")
    host: str = Field("127.0.0.1", min_length=1)
    port: int = Field(8787, ge=0, le=65535)

    @field_validator("workers_url", mode="before")
    def _strip_trailing_slash(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.rstrip("/")
        return v

    @property
    def pro_mode(self) -> bool:
        return bool(self.api_key)

    @property
    def workers_base(self) -> str:
        return str(self.workers_url).rstrip("/")


_DEFAULT_CFG = Path("configs/default.yaml")

# суффикс -> (название формата, парсер, исключение парсера)
_READERS: Dict[str, Tuple[str, Callable[[str], Any], Type[Exception]]] = {
    ".yaml": ("YAML", yaml.safe_load, yaml.YAMLError),
    ".yml": ("YAML", yaml.safe_load, yaml.YAMLError),
    ".json": ("JSON", json.loads, json.JSONDecodeError),
}


def _load_file(path: Path) -> dict[str, Any]:
    """Читает конфиг; синтаксическая ошибка -> ValueError, не-mapping -> TypeError."""
    suffix = path.suffix.lower()
    if suffix not in _READERS:
        raise ValueError(f"Неподдерживаемый формат конфига: {suffix}")
    fmt, parse, parse_error = _READERS[suffix]
    try:
        data = parse(path.read_text(encoding="utf-8")) or {}
    except parse_error as exc:
        raise ValueError(f"Неправильный {fmt} в {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise TypeError(f"Верхний уровень {fmt} должен быть mapping, получено {type(data).__name__}")
    return data


def _missing(path: Path) -> FileNotFoundError:
    return FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(path))


def load_config(path: Union[str, Path, None], *, required: bool = True) -> ScoutConfig:
    """
    Читает YAML или JSON и возвращает проверенный ScoutConfig.

    Без ``path`` берётся configs/default.yaml; если его нет, то при
    ``required=False`` используются значения по умолчанию, иначе
    FileNotFoundError. Ключ API из PAGESPEED_API_KEY подставляется, когда
    в файле он не задан. Ошибки схемы пробрасываются как ValidationError.
    """
    if path is not None:
        cfg_path = Path(path).expanduser().resolve()
        if not cfg_path.is_file():
            raise _missing(cfg_path)
        data = _load_file(cfg_path)
    elif _DEFAULT_CFG.exists():
        data = _load_file(_DEFAULT_CFG)
    elif required:
        raise _missing(_DEFAULT_CFG)
    else:
        data = {}

    env_key = os.environ.get(API_KEY_ENV)
    if env_key and not data.get("api_key"):
        data["api_key"] = env_key
    return ScoutConfig(**data)


__all__ = ["ScoutConfig", "load_config", "DEFAULT_CATEGORIES", "API_KEY_ENV"]

"""Константы приложения."""

from pathlib import Path

# ==============================================================================
# ПУТИ К ФАЙЛАМ И ДИРЕКТОРИЯМ
# ==============================================================================

# Корень проекта (где лежит pyproject.toml)
PROJECT_ROOT = Path(__file__).parent.parent.parent

# Папка для данных (SQLite-база, логи)
#
# В контейнере: /data — персистентный том (абсолютный путь обязателен!)
# Локально: ./data — папка в корне проекта
_CONTAINER_DATA = Path("/data")
DATA_DIR = _CONTAINER_DATA if _CONTAINER_DATA.exists() else PROJECT_ROOT / "data"

# Создаём директорию если не существует (важно для первого запуска)
DATA_DIR.mkdir(parents=True, exist_ok=True)

# Конфигурация бизнес-логики (отрасли, языки, тарифы)
CONFIG_YAML_PATH = PROJECT_ROOT / "config.yaml"

# ==============================================================================
# ЛИМИТЫ
# ==============================================================================

# Значение лимита тарифа "без ограничений"
UNLIMITED = -1

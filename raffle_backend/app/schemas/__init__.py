# -*- coding: utf-8 -*-
# raffle_backend/app/schemas/__init__.py
# =============================================================================
# Назначение кода:
# Фасад Pydantic-схем API розыгрышей. Даёт единый импорт:
#     from raffle_backend.app.schemas import RaffleOut, PurchaseIn, ...
#
# Канон / инварианты:
# • Здесь НЕТ бизнес-логики - только агрегация схем.
# • Имена экспортируются из подмодулей строго по их __all__.
# • При конфликте имён между модулями - логируем предупреждение и НЕ
#   перезаписываем уже экспортированное имя.
# =============================================================================

from __future__ import annotations

from importlib import import_module
from typing import Dict, List, Tuple

from raffle_backend.app.core.logging_core import get_logger

_logger = get_logger(__name__)

SCHEMAS_VERSION: str = "v1.0"

# Порядок важен: чем раньше модуль - тем выше приоритет его имён при конфликте.
_SCHEMA_MODULES_ORDERED: List[str] = [
    "raffle_backend.app.schemas.common_schemas",
    "raffle_backend.app.schemas.raffles_schemas",
]

# name -> (module_name, object_ref)
_export_registry: Dict[str, Tuple[str, object]] = {}

__all__: List[str] = []


def _safe_register(name: str, module_name: str, value: object) -> None:
    if name in _export_registry:
        prev_module, _ = _export_registry[name]
        _logger.warning(
            "Schema name conflict: %s from %s already exported; skipped duplicate from %s",
            name,
            prev_module,
            module_name,
        )
        return
    globals()[name] = value
    _export_registry[name] = (module_name, value)
    __all__.append(name)


for _mod_path in _SCHEMA_MODULES_ORDERED:
    _mod = import_module(_mod_path)
    for _public_name in list(_mod.__all__):
        _safe_register(_public_name, _mod_path, getattr(_mod, _public_name))

__all__ = sorted(set(__all__))


def get_public_exports() -> Dict[str, object]:
    """Сводка экспортов фасада: версия, число модулей/символов, имена по модулям."""
    by_module: Dict[str, List[str]] = {}
    for name, (mod, _obj) in _export_registry.items():
        by_module.setdefault(mod, []).append(name)
    for names in by_module.values():
        names.sort()
    return {
        "version": SCHEMAS_VERSION,
        "modules": len(_SCHEMA_MODULES_ORDERED),
        "symbols": len(__all__),
        "by_module": dict(sorted(by_module.items())),
    }

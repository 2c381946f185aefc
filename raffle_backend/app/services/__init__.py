# -*- coding: utf-8 -*-
# raffle_backend/app/services/__init__.py
# =============================================================================
# Сервисный слой розыгрышей (единая точка входа)
# -----------------------------------------------------------------------------
# Состав:
#   • deposit_policy_service - политика депозита по размерам товара;
#   • tickets_service        - расчёт числа билетов и аллокатор (reserve);
#   • raffle_state_service   - машина состояний розыгрыша;
#   • winner_service         - выбор победителя и финализация;
#   • raffles_service        - операции магазина и витрины;
#   • products_service       - товары магазина;
#   • payments_service       - приём подтверждённых платежей;
#   • deposits_service       - учёт гарантийных депозитов;
#   • admin/*                - модерация и журнал аудита.
#
# Важные принципы:
#   • Никакой бизнес-логики здесь нет: модули импортируются напрямую
#     (raffle_backend.app.services.<module>), пакет ничего не загружает сам.
# =============================================================================

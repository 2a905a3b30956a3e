"""
Order Service: 設定

すべて環境変数から読む。未設定ならローカル開発用の既定値を使う。
"""

import os

DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite+aiosqlite:///./order_management.db")
REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379")
ORDER_EVENTS_CHANNEL = os.environ.get("ORDER_EVENTS_CHANNEL", "order_events")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
SEED_PRODUCTS = os.environ.get("SEED_PRODUCTS", "1").lower() not in ("0", "false", "no")

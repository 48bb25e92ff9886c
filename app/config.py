from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml

DEFAULT_CONFIG: dict[str, Any] = {
    "service": {
        "name": "PCRS",
        "support_text": "PCRS Support: call 0302000000 or email support@pcrs.gov.gh",
        "portal_url": "https://ncstcs.vercel.app",
    },
    "dialog": {
        "variant": "courier",
        "registration_fields": None,
        "name_min_length": 3,
    },
    "sessions": {
        "ttl_minutes": 15,
        "lock_timeout_sec": 10,
        "purge_interval_sec": 60,
    },
    "records": {
        "backend": "sqlite",
        "sqlite_path": "data/records/pcrs.db",
        "timeout_sec": 5,
        "dynamodb": {
            "region": None,
            "table_prefix": "pcrs",
            "tables": {
                "identities": None,
                "identity_keys": None,
                "loans": None,
                "activity": None,
            },
        },
    },
    "phone": {
        "country_code": "233",
    },
    "loan": {
        "min_amount": 10,
        "max_amount": 1000,
        "currency": "GHS",
    },
    "notifications": {
        "enabled": False,
        "channels": [],
        "timeout_sec": 10,
        "max_workers": 2,
        "sms": {
            "api_key": None,
            "sender": "PCRS",
            "endpoint": None,
            "send_lookup_details": False,
        },
        "email": {
            "smtp_host": "smtp.gmail.com",
            "smtp_port": 465,
            "username": None,
            "password": None,
            "sender": None,
        },
    },
    "ussd": {
        "path": "/ussd",
    },
    "admin": {
        "token": None,
    },
    "logging": {
        "level": "INFO",
    },
}


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    result = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_config(config_path: str | None = None) -> dict[str, Any]:
    if not config_path:
        return DEFAULT_CONFIG

    path = Path(config_path)
    if not path.exists():
        return DEFAULT_CONFIG

    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return DEFAULT_CONFIG

    if path.suffix.lower() == ".json":
        loaded = json.loads(text)
    else:
        loaded = yaml.safe_load(text)
    data = loaded if isinstance(loaded, dict) else {}
    return deep_merge(DEFAULT_CONFIG, data)


def configure_logging(config: dict[str, Any]) -> None:
    level_name = str(config.get("logging", {}).get("level", "INFO") or "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

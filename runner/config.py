import json
import os
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from dotenv import load_dotenv

from yad2_checker.core.errors import ConfigError
from yad2_checker.core.storage import DEFAULT_STORE_URI
from yad2_checker.models import SourceDescriptor, Subscriber
from yad2_checker.suppliers.descriptor import parse_descriptor


@dataclass(frozen=True)
class Settings:
    telegram_token: str
    sources: tuple[SourceDescriptor, ...]
    subscribers: tuple[Subscriber, ...]
    store_uri: str = DEFAULT_STORE_URI
    check_interval_seconds: float = 60
    api_url: Optional[str] = None
    legacy_api_url: Optional[str] = None
    proxy_url: Optional[str] = None
    request_timeout_seconds: float = 15
    request_delay_seconds: float = 1
    log_level: str = "INFO"


def _first(env: Mapping[str, str], *names: str) -> Optional[str]:
    # older deployments used the names of the Node version of the bot
    for name in names:
        value = env.get(name)
        if value is not None and value.strip():
            return value.strip()
    return None


def _json(name: str, raw: str) -> Any:
    try:
        return json.loads(raw)
    except ValueError as e:
        raise ConfigError(f"{name} is not valid JSON: {e}") from e


def _number(env: Mapping[str, str], name: str, default: float) -> float:
    raw = _first(env, name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from e
    if value < 0:
        raise ConfigError(f"{name} must not be negative")
    return value


def parse_sources(raw: str) -> tuple[SourceDescriptor, ...]:
    data = _json("SOURCE_URLS", raw)
    if isinstance(data, str):
        data = [data]
    if not isinstance(data, list) or not all(isinstance(u, str) for u in data):
        raise ConfigError("SOURCE_URLS must be a JSON list of URLs")
    try:
        return tuple(parse_descriptor(u) for u in data)
    except ValueError as e:
        raise ConfigError(str(e)) from e


def _subscriber(entry: Any) -> Subscriber:
    if isinstance(entry, bool):
        raise ConfigError(f"Bad subscriber entry: {entry!r}")
    if isinstance(entry, (int, str)) and str(entry).strip():
        return Subscriber(id=str(entry).strip())
    if isinstance(entry, dict) and entry.get("id") not in (None, "", 0):
        return Subscriber(
            id=str(entry["id"]),
            first_name=entry.get("first_name"),
            last_name=entry.get("last_name"),
        )
    raise ConfigError(f"Bad subscriber entry: {entry!r}")


def parse_subscribers(raw: str) -> tuple[Subscriber, ...]:
    data = _json("SUBSCRIBERS", raw)
    entries = data if isinstance(data, list) else [data]
    subs: dict[str, Subscriber] = {}
    for entry in entries:
        sub = _subscriber(entry)
        subs.setdefault(sub.id, sub)
    return tuple(subs.values())


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    if env is None:
        load_dotenv()
        env = os.environ

    token = _first(env, "TELEGRAM_TOKEN", "TELEGRAM_BOT_TOKEN")
    if not token:
        raise ConfigError("TELEGRAM_TOKEN not found in environment or .env")

    raw_sources = _first(env, "SOURCE_URLS", "URLS")
    sources = parse_sources(raw_sources) if raw_sources else ()
    if not sources:
        raise ConfigError("No sources configured (SOURCE_URLS)")

    raw_subs = _first(env, "SUBSCRIBERS", "USER_DATA")
    subscribers = parse_subscribers(raw_subs) if raw_subs else ()
    if not subscribers:
        raise ConfigError("No subscribers configured (SUBSCRIBERS)")

    return Settings(
        telegram_token=token,
        sources=sources,
        subscribers=subscribers,
        store_uri=_first(env, "STORE_URI") or DEFAULT_STORE_URI,
        check_interval_seconds=_number(env, "CHECK_INTERVAL_SECONDS", 60),
        api_url=_first(env, "API_URL"),
        legacy_api_url=_first(env, "LEGACY_API_URL"),
        proxy_url=_first(env, "PROXY_URL"),
        request_timeout_seconds=_number(env, "REQUEST_TIMEOUT_SECONDS", 15),
        request_delay_seconds=_number(env, "REQUEST_DELAY_SECONDS", 1),
        log_level=(_first(env, "LOG_LEVEL") or "INFO").upper(),
    )

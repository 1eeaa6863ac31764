import argparse
import asyncio
import csv
import json
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from property_weather_search.api.schemas import search_response
from property_weather_search.logging_setup import configure_logging
from property_weather_search.search.filters import available_filters, parse_filters
from property_weather_search.services import build_services
from property_weather_search.settings import Settings, get_settings
from property_weather_search.storage import PropertyStore, records_from_rows


def _settings_for(args) -> Settings:
    settings = get_settings()
    if getattr(args, "db", None):
        settings = replace(settings, db_path=args.db)
    return settings


def _read_rows(path: Path) -> List[dict]:
    if not path.exists():
        raise FileNotFoundError(f"input file does not exist: {path}")
    if path.suffix.lower() == ".csv":
        with path.open(encoding="utf-8", newline="") as handle:
            return list(csv.DictReader(handle))
    with path.open(encoding="utf-8") as handle:
        data = json.load(handle)
    if isinstance(data, dict):
        data = data.get("properties") or data.get("data") or []
    if not isinstance(data, list):
        raise ValueError("input JSON must be a list of property objects")
    return data


async def _with_services(settings: Settings, fn):
    services = build_services(settings)
    try:
        return await fn(services)
    finally:
        await services.aclose()


def cmd_serve(args, settings: Settings) -> int:
    import uvicorn

    from property_weather_search.api.app import create_app

    uvicorn.run(
        create_app(settings=settings),
        host=args.host,
        port=args.port,
        log_level=settings.log_level.lower(),
    )
    return 0


def cmd_init_db(args, settings: Settings) -> int:
    store = PropertyStore(settings.db_path)
    print(json.dumps({"db": str(store.path), "active": store.count_properties()}))
    return 0


def cmd_seed(args, settings: Settings) -> int:
    store = PropertyStore(settings.db_path)
    records = records_from_rows(_read_rows(Path(args.input)))
    written = store.upsert_properties(records)
    print(json.dumps({"db": str(store.path), "upserted": written}))
    return 0


def cmd_sync(args, settings: Settings) -> int:
    async def _run(services):
        snapshot = await services.snapshots.refresh()
        return {"count": len(snapshot.records), "version": snapshot.version}

    print(json.dumps(asyncio.run(_with_services(settings, _run))))
    return 0


def cmd_search(args, settings: Settings) -> int:
    params = {
        "searchText": args.text,
        "city": args.city,
        "state": args.state,
        "tempMin": args.temp_min,
        "tempMax": args.temp_max,
        "humidityMin": args.humidity_min,
        "humidityMax": args.humidity_max,
        "weatherCondition": args.condition,
        "limit": args.limit,
        "offset": args.offset,
    }
    filters = parse_filters(params)

    async def _run(services):
        result = await services.engine.search(filters)
        return search_response(
            result, {"applied": filters.to_dict(), "available": available_filters()}
        )

    body = asyncio.run(_with_services(settings, _run))
    print(body.model_dump_json(indent=2 if args.pretty else None))
    return 0


def cmd_refresh_weather(args, settings: Settings) -> int:
    async def _run(services):
        return await services.refresher.run_once()

    print(json.dumps(asyncio.run(_with_services(settings, _run))))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="property_weather_search",
        description="Property search with live weather filters",
    )
    parser.add_argument("--log-level", default=None, help="Logging level (DEBUG, INFO, etc.)")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_serve = sub.add_parser("serve", help="Run the HTTP API")
    p_serve.add_argument("--host", default="0.0.0.0")
    p_serve.add_argument("--port", type=int, default=3000)
    p_serve.set_defaults(func=cmd_serve)

    p_init = sub.add_parser("init-db", help="Create the property table")
    p_init.add_argument("--db", default=None, help="SQLite DB path (default: PWS_DB_PATH)")
    p_init.set_defaults(func=cmd_init_db)

    p_seed = sub.add_parser("seed", help="Upsert properties from a JSON or CSV file")
    p_seed.add_argument("--input", required=True, help="Path to .json or .csv")
    p_seed.add_argument("--db", default=None, help="SQLite DB path (default: PWS_DB_PATH)")
    p_seed.set_defaults(func=cmd_seed)

    p_sync = sub.add_parser("sync", help="Reload the property snapshot from the store")
    p_sync.add_argument("--db", default=None)
    p_sync.set_defaults(func=cmd_sync)

    p_search = sub.add_parser("search", help="Run one search and print the response")
    p_search.add_argument("--db", default=None)
    p_search.add_argument("--text", default=None, help="Name substring")
    p_search.add_argument("--city", default=None)
    p_search.add_argument("--state", default=None)
    p_search.add_argument("--temp-min", default=None)
    p_search.add_argument("--temp-max", default=None)
    p_search.add_argument("--humidity-min", default=None)
    p_search.add_argument("--humidity-max", default=None)
    p_search.add_argument("--condition", default=None, help="Clear|Cloudy|Drizzle|Rainy|Snow")
    p_search.add_argument("--limit", default=None)
    p_search.add_argument("--offset", default=None)
    p_search.add_argument("--pretty", action="store_true")
    p_search.set_defaults(func=cmd_search)

    p_refresh = sub.add_parser("refresh-weather", help="Re-fetch weather for all coordinates once")
    p_refresh.add_argument("--db", default=None)
    p_refresh.set_defaults(func=cmd_refresh_weather)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = _settings_for(args)
    configure_logging(args.log_level or settings.log_level)
    return args.func(args, settings)


def _safe_main():
    try:
        code = main()
    except SystemExit:
        raise
    except Exception as exc:
        print(json.dumps({"error": str(exc)}))
        raise SystemExit(1)
    raise SystemExit(code)


if __name__ == "__main__":
    _safe_main()

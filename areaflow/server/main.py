"""CLI argument parsing and uvicorn entry point."""

import logging
import os


def main():
    import argparse
    import uvicorn

    parser = argparse.ArgumentParser(description="AreaFlow automation engine server")
    parser.add_argument("--host", default=os.getenv("AREAFLOW_HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=int(os.getenv("AREAFLOW_PORT", "8000")))
    parser.add_argument("--log-level", default=None, help="Overrides logging.level from the config file")
    args = parser.parse_args()

    level = args.log_level or _configured_log_level()
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(levelname)s: %(name)s - %(message)s",
    )

    from .app import api

    uvicorn.run(api, host=args.host, port=args.port)


def _configured_log_level() -> str:
    """Read logging.level from the config file without substituting env vars."""
    import yaml

    path = os.getenv("AREAFLOW_CONFIG", "config.yaml")
    if not os.path.exists(path):
        return "INFO"
    try:
        with open(path, "r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f) or {}
    except yaml.YAMLError:
        return "INFO"
    return str((cfg.get("logging") or {}).get("level", "INFO"))


if __name__ == "__main__":
    main()

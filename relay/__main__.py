import argparse
import asyncio
import logging

from .server import RelayServer

logging.basicConfig(level=logging.INFO)


def main() -> None:
    parser = argparse.ArgumentParser(description="Hokm room relay")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8766)
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args()

    logging.getLogger().setLevel(getattr(logging, args.log_level.upper(), logging.INFO))
    server = RelayServer()
    asyncio.run(server.start(host=args.host, port=args.port))


if __name__ == "__main__":
    main()

"""CLI harness for the bridge: ask (send rows to the model), info (describe the plugin)."""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from rowbridge.bridge import OllamaBridge
from rowbridge.cancel import CancelToken
from rowbridge.settings import BridgeSettings


def _load_input(path: str) -> Any:
    if path == "-":
        return json.load(sys.stdin)
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def _jsonl_query(path: Path):
    """Lazy sub-query over a JSONL file; each call starts a fresh read."""

    def evaluate() -> Iterator[Any]:
        with open(path, encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line:
                    yield json.loads(line)

    return evaluate


def _cmd_ask(args: argparse.Namespace) -> int:
    options: dict[str, Any] = {
        "model": args.model,
        "prompt": args.prompt,
        "limit": args.limit,
        "base_url": args.base_url,
        "stream": args.stream,
    }
    if args.jsonl:
        jsonl_path = Path(args.jsonl).resolve()
        if not jsonl_path.exists():
            print(f"Error: file not found: {jsonl_path}", file=sys.stderr)
            return 1
        options["query"] = _jsonl_query(jsonl_path)
    else:
        try:
            options["input"] = _load_input(args.input)
        except (OSError, json.JSONDecodeError) as e:
            print(f"Error: cannot read input: {e}", file=sys.stderr)
            return 1

    bridge = OllamaBridge(BridgeSettings())

    async def run() -> int:
        cancel = CancelToken()
        if args.timeout:
            cancel.cancel_after(args.timeout)
        failed = False
        async for row in bridge.call(options, cancel=cancel):
            if "error" in row:
                failed = True
            if args.stream and "token" in row and not args.json:
                sys.stdout.write(row["token"])
                sys.stdout.flush()
                continue
            print(json.dumps(row, ensure_ascii=False))
        if args.stream and not args.json:
            print()
        return 1 if failed else 0

    return asyncio.run(run())


def _cmd_info(args: argparse.Namespace) -> int:
    info = OllamaBridge(BridgeSettings()).info()
    print(json.dumps(info.model_dump(), indent=2))
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Send rows to an Ollama model")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log at INFO level")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_ask = sub.add_parser("ask", help="Render rows into the prompt and ask the model")
    src = p_ask.add_mutually_exclusive_group(required=True)
    src.add_argument("--input", "-i", help="JSON file with a row object or an array of rows ('-' for stdin)")
    src.add_argument("--jsonl", help="JSONL file read lazily as a sub-query (one row per line)")
    p_ask.add_argument("--model", "-m", default=None, help="Model name (default qwen2.5:latest)")
    p_ask.add_argument("--prompt", "-p", default=None, help="Prompt template; %%INPUT%% is replaced by the rows")
    p_ask.add_argument("--limit", "-n", type=int, default=None, help="Max rows read from --jsonl (default 100)")
    p_ask.add_argument("--base-url", default=None, help="Ollama URL (default OLLAMA_BASEURL or localhost)")
    p_ask.add_argument("--stream", "-s", action="store_true", help="Print tokens as they arrive")
    p_ask.add_argument("--json", action="store_true", help="With --stream, print one JSON row per token")
    p_ask.add_argument("--timeout", "-t", type=float, default=None, help="Cancel after this many seconds")
    p_ask.set_defaults(func=_cmd_ask)

    p_info = sub.add_parser("info", help="Print the plugin description as JSON")
    p_info.set_defaults(func=_cmd_info)

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())

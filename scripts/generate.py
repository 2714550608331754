#!/usr/bin/env python3
"""CLI: generate a diagram from a prompt and optionally commit it to GitHub."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

# Ensure the package is importable when running as a script
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from drawsync import codec, config
from drawsync.agent.pipeline import generate
from drawsync.agent.prompts import build_system_instruction
from drawsync.errors import DrawsyncError
from drawsync.github_store import GitHubStore
from drawsync.storage.settings_store import SettingsStore


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate an Excalidraw diagram from a description")
    parser.add_argument("prompt", type=str, help="Description of the diagram")
    parser.add_argument(
        "--provider",
        choices=["openai", "anthropic"],
        default=None,
        help="Override the saved provider",
    )
    parser.add_argument("--model", type=str, default=None, help="Override the saved model id")
    parser.add_argument(
        "-o", "--output",
        type=Path,
        default=None,
        help="Write the diagram here (default: stdout)",
    )
    parser.add_argument(
        "--wrap",
        action="store_true",
        help="Write the .excalidraw wrapper form instead of a bare element array",
    )
    parser.add_argument("--repo", type=str, default=None, help="GitHub repo URL to commit to")
    parser.add_argument("--path", type=str, default=None, help="Path inside the repo")
    parser.add_argument("--message", type=str, default=None, help="Commit message")
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)-5s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
    )

    store = SettingsStore(config.SETTINGS_PATH)
    store.init_db()
    provider_config = store.load_provider_config()
    if args.provider:
        provider_config.provider = args.provider
    if args.model:
        provider_config.model = args.model

    try:
        text = generate(provider_config, build_system_instruction(), args.prompt)
    except DrawsyncError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if args.wrap:
        text = codec.serialize_file(codec.parse_document(text))

    if args.output:
        args.output.write_text(text + "\n", encoding="utf-8")
        print(f"Wrote {args.output}")
    else:
        print(text)

    if args.repo:
        if not (args.path and args.message):
            print("Error: --repo needs --path and --message.", file=sys.stderr)
            sys.exit(1)
        token = store.get_github_token()
        try:
            result = GitHubStore(token=token).save_file(args.repo, args.path, text, args.message, token)
        except DrawsyncError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
        print(f"Saved! Commit: {result.commit_sha[:7]}")


if __name__ == "__main__":
    main()

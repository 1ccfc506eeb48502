#!/usr/bin/env python3
"""
CLI for the vaultscript interpreter.

Usage:
    python -m vaultscript run FILE [--config FILE] [--verbose] [--no-wait]
    python -m vaultscript tokens FILE
    python -m vaultscript parse FILE

Examples:
    # Run a script and wait for its scheduled triggers
    python -m vaultscript run examples/wallet.vs

    # Use a private key for '@ENC' variables
    python -m vaultscript run examples/wallet.vs --config vaultscript.yaml

    # Dump the token stream or the syntax tree
    python -m vaultscript tokens examples/wallet.vs
    python -m vaultscript parse examples/wallet.vs
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional


def _read_source(path_str: str) -> Optional[str]:
    source_path = Path(path_str)
    if not source_path.exists():
        print(f"Error: File not found: {source_path}", file=sys.stderr)
        return None
    return source_path.read_text(encoding="utf-8")


def _configure_logging(level_name: Optional[str]) -> None:
    if not level_name:
        return
    logging.basicConfig(
        level=getattr(logging, level_name.upper(), logging.INFO),
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def cmd_tokens(args):
    """Print the token stream of a script, one token per line."""
    from .lexer import tokenize
    from .errors import ScriptError

    source = _read_source(args.file)
    if source is None:
        return 1

    try:
        tokens = tokenize(source, args.file)
    except ScriptError as e:
        print(e, file=sys.stderr)
        return 1

    for token in tokens:
        print(f"{token.line}:{token.column}\t{token.type.name}\t{token.lexeme!r}")
    return 0


def cmd_parse(args):
    """Print the syntax tree of a script."""
    from .lexer import tokenize
    from .parser import parse
    from .ast import format_ast
    from .errors import ScriptError

    source = _read_source(args.file)
    if source is None:
        return 1

    try:
        statements = parse(tokenize(source, args.file), source=source)
    except ScriptError as e:
        print(e, file=sys.stderr)
        return 1

    if statements:
        print(format_ast(statements))
    return 0


def cmd_run(args):
    """Run a script, then wait for its scheduled triggers."""
    from .config import RuntimeConfig, load_config
    from .lexer import tokenize
    from .parser import parse
    from .runtime import Interpreter
    from .errors import ScriptError

    source = _read_source(args.file)
    if source is None:
        return 1

    try:
        config = load_config(args.config) if args.config else RuntimeConfig()
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    _configure_logging("DEBUG" if args.verbose else config.log_level)

    try:
        statements = parse(tokenize(source, args.file), source=source)
    except ScriptError as e:
        print(e, file=sys.stderr)
        return 1

    try:
        cipher = None
        if config.encryption_key is not None or config.encryption_iv is not None:
            cipher = config.build_cipher()
        interpreter = Interpreter(config=config, cipher=cipher, source=source)
    except ValueError as e:
        # Bad key or IV lengths
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        interpreter.execute(statements)
        if not args.no_wait:
            interpreter.scheduler.wait()
    except ScriptError as e:
        print(e, file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Interrupted", file=sys.stderr)
        return 130
    finally:
        interpreter.shutdown()

    if interpreter.scheduler.errors:
        for error in interpreter.scheduler.errors:
            print(error, file=sys.stderr)
        return 1
    return 0


def main(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(
        prog='python -m vaultscript',
        description='vaultscript interpreter',
    )

    subparsers = parser.add_subparsers(dest='action', required=True)

    # run command
    run_parser = subparsers.add_parser('run', help='Run a script')
    run_parser.add_argument('file', help='Script source file')
    run_parser.add_argument('-c', '--config', metavar='FILE',
                            help='YAML runtime configuration')
    run_parser.add_argument('-v', '--verbose', action='store_true',
                            help='Log debug output to stderr')
    run_parser.add_argument('--no-wait', action='store_true',
                            help='Exit without waiting for scheduled triggers')

    # tokens command
    tokens_parser = subparsers.add_parser('tokens', help='Print the token stream')
    tokens_parser.add_argument('file', help='Script source file')

    # parse command
    parse_parser = subparsers.add_parser('parse', help='Print the syntax tree')
    parse_parser.add_argument('file', help='Script source file')

    args = parser.parse_args(argv)

    if args.action == 'run':
        return cmd_run(args)
    elif args.action == 'tokens':
        return cmd_tokens(args)
    elif args.action == 'parse':
        return cmd_parse(args)
    else:
        parser.print_help()
        return 1


if __name__ == '__main__':
    sys.exit(main())

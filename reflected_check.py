import argparse
import importlib
import logging
import sys

from reflected.reflected_manager import BindingManager
from reflected.reflected_printer import Printer
from reflected.reflected_serialize import serialize
from reflected.reflected_table import load_table_file


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="reflected_check",
        description="Run the reflected binding pass against host modules and report the outcome.",
    )
    parser.add_argument("-m", "--module", action="append", default=[], dest="modules",
                        help="host or consumer module to import and scan (repeatable)")
    parser.add_argument("-t", "--table", action="append", default=[], dest="tables",
                        help="binding table file (.yaml, .json, .toml) (repeatable)")
    parser.add_argument("--ambiguity", choices=("first", "error"), default="first",
                        help="overload ambiguity policy (default: first match)")
    parser.add_argument("--format", choices=("text", "json", "yaml", "xml"), default="text", dest="fmt")
    parser.add_argument("--strict", action="store_true", help="exit with status 1 when any binding failed")
    parser.add_argument("-v", "--verbose", action="count", default=0)
    return parser


def main(argv=None) -> int:
    """Import the modules, bind everything, print the report. Returns the exit status."""
    args = build_parser().parse_args(argv)
    level = logging.WARNING if args.verbose == 0 else (logging.INFO if args.verbose == 1 else logging.DEBUG)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    modules = []
    for name in args.modules:
        try:
            modules.append(importlib.import_module(name))
        except ImportError as e:
            print(f"Error: cannot import module {name!r}: {e}", file=sys.stderr)
            return 2

    manager = BindingManager(modules, ambiguity=args.ambiguity)
    for path in args.tables:
        try:
            manager.register(load_table_file(path))
        except FileNotFoundError:
            print(f"Error: file not found: {path}", file=sys.stderr)
            return 2
        except (ValueError, KeyError) as e:
            print(f"Error: invalid binding table {path}: {e}", file=sys.stderr)
            return 2

    report = manager.process_all()
    if args.fmt == "text":
        print(Printer().pformat(report))
    else:
        print(serialize(report.to_dict(), fmt=args.fmt))

    if args.strict and not report.ok:
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

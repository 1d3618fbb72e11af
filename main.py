from __future__ import annotations

import argparse
import logging
import sys
import typing

from polyexpr import Expression, ParsingException, parse

logger = logging.getLogger("polyexpr.shell")

EXIT_COMMANDS = ("exit", "quit")


def run(lines: typing.Iterable[str], out: typing.TextIO) -> list[Expression]:
    parsed: list[Expression] = []

    for line in lines:
        line = line.strip()
        if not line:
            continue
        if line in EXIT_COMMANDS:
            break

        try:
            expr = parse(line)
        except ParsingException as e:
            logger.debug("Rejected input %r", line)
            print(f" -> {e}", file=out)
            continue

        print(f" =  {expr}", file=out)
        parsed.append(expr)

    return parsed


def read_lines(prompt: str = " ~ ") -> typing.Iterator[str]:
    while 1:
        try:
            yield input(prompt)
        except EOFError:
            return


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Read expressions and print their simplified form.")
    parser.add_argument("--verbose", "-v", action="store_true", help="log parser decisions")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    run(read_lines(), sys.stdout)
    return 0


if __name__ == '__main__':
    sys.exit(main())

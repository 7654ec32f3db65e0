import argparse
import sys

from waveforge.core import EditSession
from waveforge.utils.logger import logger


def parse_effect(arg):
    """
    'kind=value' or 'kind=v1,v2,v3'; filters take 'filter:shape=freq'.

    Raises:
        ValueError: a value is not a number
    """
    kind, _, value = arg.partition("=")
    kind, _, shape = kind.partition(":")
    values = [float(v) for v in value.split(",") if v]
    params = values[0] if len(values) == 1 else values
    return kind, params, shape or None


def main(argv=None):
    parser = argparse.ArgumentParser(description="Apply offline effects to an audio file.")
    parser.add_argument("input", help="Audio file to load")
    parser.add_argument("output", help="WAV file to write")
    parser.add_argument(
        "-e", "--effect", action="append", default=[],
        help="Effect to apply, in order, e.g. timeStretch=1.5, eq=3,0,-2, filter:highpass=200"
    )
    args = parser.parse_args(argv)

    with EditSession() as session:
        if not session.load_file(args.input):
            return 1

        for arg in args.effect:
            try:
                kind, params, shape = parse_effect(arg)
            except ValueError as e:
                logger.error(f"Skipping {arg}: {e}")
                continue
            if not session.apply_effect(kind, params, shape=shape):
                logger.error(f"Skipping {arg}: {session.last_error}")

        session.export(args.output)
    return 0


if __name__ == "__main__":
    sys.exit(main())

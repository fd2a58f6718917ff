"""``python -m hulud_guard {detect,cleanup} [options]``"""
import sys

from . import cleanup, detect

COMMANDS = {"detect": detect.main, "cleanup": cleanup.main}


def main(argv=None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    if not argv or argv[0] not in COMMANDS:
        print(f"usage: python -m hulud_guard {{{','.join(COMMANDS)}}} [options]", file=sys.stderr)
        return 2
    return COMMANDS[argv[0]](argv[1:])


if __name__ == "__main__":
    raise SystemExit(main())

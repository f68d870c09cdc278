import sys
import contextlib


@contextlib.contextmanager
def open_output(path, mode="w"):
    """!
    Opens `path` for writing, or stdout when no path is given
    """
    if path is None or str(path) == "-":
        if "b" in mode:
            yield sys.stdout.buffer
        else:
            yield sys.stdout
        return

    with open(path, mode) as f:
        yield f

import json
import sys


def main(argv: list[str]) -> None:
    """Print the arguments and where this module was loaded from.

    Build and run it with::

        pyexploder build --app-dir examples/hello_app -e hello.app:main -o hello.pyz
        ./hello.pyz one two
    """

    payload: dict[str, object] = {
        "argv": argv,
        "loaded_from": __file__,
    }
    json.dump(payload, sys.stdout, indent=2, sort_keys=True)
    sys.stdout.write("\n")

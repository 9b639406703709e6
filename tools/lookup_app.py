import argparse
import json
import sys
from pathlib import Path

from dotenv import load_dotenv

if __package__ in {None, ""}:
    project_root = Path(__file__).resolve().parent.parent
    sys.path.insert(0, str(project_root))

from playscrape.services.exceptions import AppLookupError  # noqa: E402
from playscrape.services.pipeline import AppLookupPipeline  # noqa: E402
from playscrape.services.sanitize import sanitize_package  # noqa: E402
from playscrape.utils.logging_config import setup_logging  # noqa: E402


def main(argv=None, pipeline=None, stdout=None, stderr=None) -> int:
    """Print the JSON record for one package; return 1 when the lookup fails."""
    parser = argparse.ArgumentParser(description="Look up a storefront listing.")
    parser.add_argument("package", help="Package id, e.g. com.example.app")
    parser.add_argument(
        "--no-cache",
        action="store_true",
        help="Always fetch the listing instead of reading the result cache.",
    )
    args = parser.parse_args(argv)
    stdout = stdout or sys.stdout
    stderr = stderr or sys.stderr

    load_dotenv()
    setup_logging(stream=sys.stderr)
    pipeline = pipeline or AppLookupPipeline.from_settings()

    try:
        package = sanitize_package(args.package)
        result = pipeline.lookup(package, use_cache=not args.no_cache)
    except AppLookupError as exc:
        print(f"Error: {exc}", file=stderr)
        return 1

    print(json.dumps(result.record.to_dict(), indent=2, ensure_ascii=False), file=stdout)
    return 0


if __name__ == "__main__":
    sys.exit(main())

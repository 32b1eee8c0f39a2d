"""CLI command that validates an extraction config before any run."""

from __future__ import annotations

import argparse
import json

from xpathfeed.extraction.config import load_context_config
from xpathfeed.extraction.errors import ConfigurationError
from xpathfeed.extraction.validation import validate_context


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Validate XPath extraction configuration")
    parser.add_argument("--config", required=True, help="JSON extraction config")
    args = parser.parse_args(argv)

    try:
        config = load_context_config(args.config)
    except ConfigurationError as exc:
        issues = [{"element": issue.element, "message": issue.message} for issue in exc.issues]
        payload = {"config": args.config, "valid": False, "error": exc.message, "issues": issues}
        print(json.dumps(payload, ensure_ascii=False, indent=2))
        return 1

    issues = validate_context(config)
    payload = {
        "config": args.config,
        "valid": not issues,
        "issues": [{"element": issue.element, "message": issue.message} for issue in issues],
        "fields": [
            {
                "key": spec.key,
                "target": spec.target,
                "variables": config.available_variables(spec.key),
            }
            for spec in config.fields
        ],
    }
    print(json.dumps(payload, ensure_ascii=False, indent=2))
    return 0 if not issues else 1


if __name__ == "__main__":
    raise SystemExit(main())

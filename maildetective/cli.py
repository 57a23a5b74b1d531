#!/usr/bin/env python3
"""
Mail Detective command line - analyze one email address or URL
"""

import sys
import json
import logging
import argparse

from maildetective.config import settings
from maildetective.services.analysis_service import AnalysisService


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Mail Detective risk analysis')
    parser.add_argument('kind', choices=['email', 'url'], help='What VALUE is')
    parser.add_argument('value', help='Email address or URL to analyze')
    parser.add_argument('--offline', action='store_true',
                        help='Skip every reputation source (heuristics only)')
    parser.add_argument('--log-level', default=settings.LOG_LEVEL,
                        help='Logging level (default: %(default)s)')
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), stream=sys.stderr)

    service = AnalysisService(offline=args.offline)
    if args.kind == 'email':
        result = service.analyze_email(args.value)
    else:
        result = service.analyze_url(args.value)

    print(json.dumps(result.model_dump(mode='json', by_alias=True), indent=2))
    return 0 if result.is_safe else 1


if __name__ == "__main__":
    sys.exit(main())

#!/usr/bin/env python3
"""CLI entry point for metadata-scrape command.

Completes BibTeX entries from multiple bibliographic sources.
"""

import sys


def main() -> None:
    """Entry point for metadata-scrape command."""
    from metadata_scraper.service import main as scrape_main

    sys.exit(scrape_main())


if __name__ == "__main__":
    main()

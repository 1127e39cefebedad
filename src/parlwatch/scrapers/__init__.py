"""
HTML scrapers for pages not covered by the open-data feeds.

Each scraper is split into a pure extractor over page HTML (``extract_*``)
and an async ``fetch_*`` that downloads pages through ParlamentoClient.
"""

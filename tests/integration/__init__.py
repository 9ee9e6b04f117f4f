"""Integration tests for danfe-retriever.

These tests require:
- Playwright Chromium (playwright install chromium)
- Live access to meudanfe.com.br
- RUN_BROWSER_TESTS=1 in the environment or .env
"""

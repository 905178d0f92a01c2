"""Release notes service for GitHub repositories.

This package ingests GitHub webhook events and turns accumulated repository
activity into structured, AI-assisted release notes:
- Webhook signature verification and event normalization
- Idempotent ingestion of releases, pull requests and commits
- Label-based categorization of pull requests
- Changelog assembly with LLM generation and a deterministic fallback
- Markdown, HTML and JSON rendering
"""

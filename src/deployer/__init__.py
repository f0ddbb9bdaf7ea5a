"""Continuous-deployment control plane driven by GitHub App webhooks.

This package implements the deployer service, providing:
- GitHub webhook intake and repository resolution
- Per-repository deployment pipeline (clone, extract, build, persist, apply)
- GitHub App installation linking
- GitHub OAuth state correlation and code exchange
- Identity provider login and session establishment
"""

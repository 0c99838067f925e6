"""Entry point for ``python -m BuildInfo.DependencyDownload``."""

from BuildInfo.DependencyDownload.cli import app

if __name__ == "__main__":
    app()

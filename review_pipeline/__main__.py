# review_pipeline/__main__.py
"""Entry point for `python -m review_pipeline`."""

from review_pipeline.cli import app

if __name__ == "__main__":
    app()

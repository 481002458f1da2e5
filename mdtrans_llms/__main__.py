"""
Entry point for running MdTrans-LLMs as a module.

Usage:
    python -m mdtrans_llms --help
    python -m mdtrans_llms translate README.md --backend dummy
    python -m mdtrans_llms update old.md new.md -o README.ja.md
"""
from .cli import app


if __name__ == "__main__":
    app()

"""
Entry point for running recallkit as a module.

Usage:
    python -m recallkit review infra-go module1/warmup_1/v1 recalled
    python -m recallkit stats infra-go
    python -m recallkit --help
"""
from .cli import main

if __name__ == "__main__":
    main()
